# Overview: Coupon evaluation for orders plus coupon administration.

from __future__ import annotations

from sqlalchemy import or_, update

from ..extensions import db
from ..models import Coupon, Order
from ..models.coupons import COUPON_TYPE_PERCENTAGE
from ..models.orders import ORDER_STATUS_CANCELLED
from ..errors import ConflictError, InvalidStateError, NotFoundError
from ..time_utils import as_naive_utc, utcnow


# =============================================================================
# EVALUATION
# =============================================================================

def _find_by_code(org_id: int, code: str) -> Coupon | None:
    return (
        db.session.query(Coupon)
        .filter_by(org_id=org_id, code=code.strip().upper())
        .first()
    )


def _user_usage_count(coupon_id: int, user_id: int) -> int:
    return (
        db.session.query(Order)
        .filter(
            Order.coupon_id == coupon_id,
            Order.user_id == user_id,
            Order.status != ORDER_STATUS_CANCELLED,
        )
        .count()
    )


def compute_discount(coupon: Coupon, amount_cents: int) -> int:
    """Discount in minor units; never exceeds the amount."""
    if coupon.discount_type == COUPON_TYPE_PERCENTAGE:
        discount = amount_cents * coupon.value // 100
        if coupon.max_discount_cents is not None:
            discount = min(discount, coupon.max_discount_cents)
    else:
        discount = min(coupon.value, amount_cents)
    return max(min(discount, amount_cents), 0)


def check_applicable(coupon: Coupon, amount_cents: int, user_id: int | None = None) -> None:
    """Raise InvalidStateError if `coupon` cannot be applied to `amount_cents`."""
    now = utcnow()

    if not coupon.is_active:
        raise InvalidStateError("Coupon is not active")
    if coupon.valid_from is not None and now < as_naive_utc(coupon.valid_from):
        raise InvalidStateError("Coupon is not yet valid")
    if coupon.valid_until is not None and now > as_naive_utc(coupon.valid_until):
        raise InvalidStateError("Coupon has expired")

    if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
        raise InvalidStateError("Coupon usage limit reached")

    if user_id is not None and coupon.per_user_limit is not None:
        if _user_usage_count(coupon.id, user_id) >= coupon.per_user_limit:
            raise InvalidStateError("You have already used this coupon")

    if coupon.min_order_amount_cents is not None and amount_cents < coupon.min_order_amount_cents:
        raise InvalidStateError(
            "Order amount is below the coupon minimum",
            details={"min_order_amount_cents": coupon.min_order_amount_cents},
        )


def validate_coupon(org_id: int, code: str, order_amount_cents: int, user_id: int | None = None) -> dict:
    """
    Check a coupon code against an order amount. Read-only.

    Returns {"coupon", "discount_cents", "final_amount_cents"}.
    """
    coupon = _find_by_code(org_id, code)
    if not coupon:
        raise NotFoundError("Invalid coupon code")

    check_applicable(coupon, order_amount_cents, user_id)
    discount = compute_discount(coupon, order_amount_cents)
    return {
        "coupon": coupon,
        "discount_cents": discount,
        "final_amount_cents": order_amount_cents - discount,
    }


def evaluate_for_order(
    org_id: int, code: str, subtotal_cents: int, user_id: int | None = None,
) -> tuple[Coupon, int] | None:
    """Like validate_coupon, but a coupon that does not apply yields None."""
    try:
        result = validate_coupon(org_id, code, subtotal_cents, user_id)
    except (NotFoundError, InvalidStateError):
        return None
    return result["coupon"], result["discount_cents"]


def claim_coupon_use(coupon_id: int) -> bool:
    """
    Atomically count one use of a coupon. Does not commit.

    Returns False if the coupon was exhausted or deactivated in the meantime.
    """
    stmt = (
        update(Coupon)
        .where(
            Coupon.id == coupon_id,
            Coupon.is_active.is_(True),
            or_(Coupon.usage_limit.is_(None), Coupon.usage_count < Coupon.usage_limit),
        )
        .values(usage_count=Coupon.usage_count + 1, version_id=Coupon.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    return bool(db.session.execute(stmt).rowcount)


# =============================================================================
# ADMINISTRATION
# =============================================================================

def _code_taken(org_id: int, code: str, exclude_id: int | None = None) -> bool:
    q = db.session.query(Coupon.id).filter_by(org_id=org_id, code=code)
    if exclude_id is not None:
        q = q.filter(Coupon.id != exclude_id)
    return q.first() is not None


def list_coupons(org_id: int, include_inactive: bool = False) -> list[Coupon]:
    q = db.session.query(Coupon).filter_by(org_id=org_id)
    if not include_inactive:
        q = q.filter_by(is_active=True)
    return q.order_by(Coupon.created_at.desc(), Coupon.id.desc()).all()


def get_coupon(coupon_id: int, org_id: int) -> Coupon:
    coupon = db.session.get(Coupon, coupon_id)
    if not coupon or coupon.org_id != org_id:
        raise NotFoundError("Coupon not found")
    return coupon


def create_coupon(org_id: int, data: dict) -> Coupon:
    """`data` is a validated patch (see validation.COUPON_POLICY)."""
    if _code_taken(org_id, data["code"]):
        raise ConflictError("Coupon code already exists", details={"code": data["code"]})

    coupon = Coupon(org_id=org_id, **data)
    db.session.add(coupon)
    db.session.commit()
    return coupon


def update_coupon(coupon_id: int, org_id: int, data: dict) -> Coupon:
    coupon = get_coupon(coupon_id, org_id)

    if "code" in data and data["code"] != coupon.code and _code_taken(org_id, data["code"], coupon.id):
        raise ConflictError("Coupon code already exists", details={"code": data["code"]})

    for key, value in data.items():
        setattr(coupon, key, value)
    db.session.commit()
    return coupon


def delete_coupon(coupon_id: int, org_id: int) -> None:
    coupon = get_coupon(coupon_id, org_id)

    in_use = db.session.query(Order.id).filter_by(coupon_id=coupon.id).first()
    if in_use:
        raise ConflictError("Coupon has been used by orders; deactivate it instead")

    db.session.delete(coupon)
    db.session.commit()
