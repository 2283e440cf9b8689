# Overview: Order placement, lookup and status lifecycle.

"""
Order Engine

PLACEMENT (one transaction):
1. session must be ACTIVE and unexpired
2. lines priced from the catalog; unit prices are snapshots
3. optional coupon applied best-effort (a coupon that does not apply is ignored)
4. order number allocated from the per-organization counter row
5. order + lines inserted
6. finite stock decremented with conditional UPDATEs
7. coupon usage claimed with a conditional UPDATE

Any failure in 4-7 rolls the whole transaction back, including stock already
decremented for earlier lines. The NEW_ORDER event goes out after commit.

STATUS LIFECYCLE:
    PENDING -> ACCEPTED -> PREPARING -> READY -> DELIVERED
    any non-terminal state -> CANCELLED
Each *_at timestamp is written once, the first time its status is reached.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Order, OrderItem, OrderingSession
from ..models.orders import (
    ORDER_STATUSES,
    ORDER_STATUS_PENDING,
    ORDER_STATUS_ACCEPTED,
    ORDER_STATUS_PREPARING,
    ORDER_STATUS_READY,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_CANCELLED,
)
from ..errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from ..time_utils import utcnow
from . import catalog_service, coupon_service, event_service, session_service
from .concurrency import lock_for_update, run_with_retry
from .sequence_service import ensure_sequence, next_order_number


TRANSITIONS = {
    ORDER_STATUS_PENDING: frozenset({ORDER_STATUS_ACCEPTED, ORDER_STATUS_CANCELLED}),
    ORDER_STATUS_ACCEPTED: frozenset({ORDER_STATUS_PREPARING, ORDER_STATUS_CANCELLED}),
    ORDER_STATUS_PREPARING: frozenset({ORDER_STATUS_READY, ORDER_STATUS_CANCELLED}),
    ORDER_STATUS_READY: frozenset({ORDER_STATUS_DELIVERED, ORDER_STATUS_CANCELLED}),
    ORDER_STATUS_DELIVERED: frozenset(),
    ORDER_STATUS_CANCELLED: frozenset(),
}

STATUS_TIMESTAMPS = {
    ORDER_STATUS_ACCEPTED: "accepted_at",
    ORDER_STATUS_PREPARING: "preparing_at",
    ORDER_STATUS_READY: "ready_at",
    ORDER_STATUS_DELIVERED: "delivered_at",
    ORDER_STATUS_CANCELLED: "cancelled_at",
}


def can_transition(current: str, new: str) -> bool:
    return new in TRANSITIONS.get(current, frozenset())


def apply_status(order: Order, new_status: str) -> None:
    """Set status and its timestamp (first time only). Does not commit."""
    order.status = new_status
    ts_field = STATUS_TIMESTAMPS.get(new_status)
    if ts_field and getattr(order, ts_field) is None:
        setattr(order, ts_field, utcnow())


# =============================================================================
# PLACEMENT
# =============================================================================

def create_order(
    session_id: str,
    items: list[dict],
    coupon_code: str | None = None,
    chair_number: int | None = None,
    notes: str | None = None,
    user_id: int | None = None,
) -> Order:
    """
    Place an order for an active session.

    `items` is a list of {"item_id", "quantity", "options"?, "notes"?}.
    Raises NotFoundError, InvalidStateError; see module docstring for the flow.
    """
    if not items:
        raise ValidationError("Order must contain at least one item", details={"items": ["is required"]})

    session = session_service.get_session(session_id)
    org_id = session.org_id
    space_id = session.space_id
    if user_id is None:
        user_id = session.user_id
    if chair_number is None:
        chair_number = session.chair_number

    ensure_sequence(org_id)

    def _op() -> str:
        resolved = []
        demand: dict[int, int] = {}
        for line in items:
            item = catalog_service.get_item(line["item_id"], org_id)
            if not item.is_active or not item.is_available:
                raise InvalidStateError(f"{item.name} is not available")
            demand[item.id] = demand.get(item.id, 0) + line["quantity"]
            resolved.append((item, line))

        items_by_id = {item.id: item for item, _ in resolved}
        for item_id, quantity in demand.items():
            item = items_by_id[item_id]
            if item.stock is not None and item.stock < quantity:
                raise InvalidStateError(f"Insufficient stock for {item.name}")

        subtotal = 0
        order_lines = []
        for position, (item, line) in enumerate(resolved):
            unit_price = 0 if item.is_free else item.price_cents
            line_total = unit_price * line["quantity"]
            subtotal += line_total
            order_lines.append(OrderItem(
                item_id=item.id,
                position=position,
                quantity=line["quantity"],
                unit_price_cents=unit_price,
                line_total_cents=line_total,
                item_name=item.name,
                options=line.get("options"),
                notes=line.get("notes"),
            ))

        coupon = None
        discount = 0
        if coupon_code:
            applied = coupon_service.evaluate_for_order(org_id, coupon_code, subtotal, user_id)
            if applied:
                coupon, discount = applied

        order = Order(
            order_number=next_order_number(org_id),
            org_id=org_id,
            session_id=session_id,
            space_id=space_id,
            user_id=user_id,
            coupon_id=coupon.id if coupon else None,
            subtotal_cents=subtotal,
            discount_cents=discount,
            total_cents=max(subtotal - discount, 0),
            status=ORDER_STATUS_PENDING,
            chair_number=chair_number,
            notes=notes,
            lines=order_lines,
        )
        db.session.add(order)
        db.session.flush()

        for item_id, quantity in demand.items():
            if items_by_id[item_id].stock is None:
                continue
            if not catalog_service.try_decrement_stock(item_id, quantity):
                raise InvalidStateError(f"Insufficient stock for {items_by_id[item_id].name}")

        if coupon and not coupon_service.claim_coupon_use(coupon.id):
            raise InvalidStateError("Coupon usage limit reached")

        db.session.commit()
        return order.id

    order = get_order(run_with_retry(_op))

    current_app.logger.info(
        "Order %s placed (org %s, session %s, total %s)",
        order.order_number, org_id, session_id, order.total_cents,
    )
    event_service.publish_order_event(event_service.EVENT_NEW_ORDER, order)
    return order


# =============================================================================
# QUERIES
# =============================================================================

def get_order(order_id: str) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found")
    return order


def list_session_orders(session_id: str) -> list[Order]:
    if not db.session.get(OrderingSession, session_id):
        raise NotFoundError("Session not found")
    return (
        db.session.query(Order)
        .filter_by(session_id=session_id)
        .order_by(Order.placed_at.desc(), Order.order_number.desc())
        .all()
    )


def list_org_orders(
    org_id: int, status: str | None = None, limit: int = 50, offset: int = 0,
) -> tuple[list[Order], int]:
    q = db.session.query(Order).filter_by(org_id=org_id)
    if status:
        q = q.filter_by(status=status)
    total = q.count()
    orders = (
        q.order_by(Order.placed_at.desc(), Order.order_number.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return orders, total


# =============================================================================
# STATUS LIFECYCLE
# =============================================================================

def update_order_status(order_id: str, new_status: str, org_id: int) -> Order:
    if new_status not in ORDER_STATUSES:
        raise ValidationError(
            f"Unknown order status: {new_status}",
            details={"status": [f"must be one of {', '.join(ORDER_STATUSES)}"]},
        )

    def _op() -> tuple[Order, str | None]:
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise NotFoundError("Order not found")
        if order.org_id != org_id:
            raise ForbiddenError("Order belongs to another organization")

        previous = order.status
        if previous == new_status:
            return order, None

        if not can_transition(previous, new_status):
            raise InvalidStateError(
                f"Cannot change order from {previous} to {new_status}",
                details={"allowed": sorted(TRANSITIONS.get(previous, ()))},
            )

        apply_status(order, new_status)
        db.session.commit()
        return order, previous

    order, previous = run_with_retry(_op)
    if previous is not None:
        current_app.logger.info("Order %s: %s -> %s", order.order_number, previous, new_status)
        event_service.publish_order_event(event_service.EVENT_STATUS_UPDATE, order)
    return order
