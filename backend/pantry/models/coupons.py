from __future__ import annotations

from ..extensions import db
from pantry.time_utils import to_utc_z

COUPON_TYPE_PERCENTAGE = "PERCENTAGE"
COUPON_TYPE_FIXED = "FIXED"

VALID_COUPON_TYPES = (COUPON_TYPE_PERCENTAGE, COUPON_TYPE_FIXED)


class Coupon(db.Model):
    """
    Discount code scoped to an organization.

    VALUE: percent (1-100) for PERCENTAGE, minor currency units for FIXED.
    max_discount_cents only applies to PERCENTAGE coupons.

    usage_count is incremented exactly once per order that applies the coupon,
    by a conditional UPDATE, and is never decremented.
    """
    __tablename__ = "coupons"
    __table_args__ = (
        db.UniqueConstraint("org_id", "code", name="uq_coupons_org_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    # Stored uppercase; lookups uppercase the input
    code = db.Column(db.String(20), nullable=False)
    description = db.Column(db.String(200), nullable=True)

    discount_type = db.Column(db.String(16), nullable=False)
    value = db.Column(db.Integer, nullable=False)

    min_order_amount_cents = db.Column(db.Integer, nullable=True)
    max_discount_cents = db.Column(db.Integer, nullable=True)

    usage_limit = db.Column(db.Integer, nullable=True)
    per_user_limit = db.Column(db.Integer, nullable=True, default=1)
    usage_count = db.Column(db.Integer, nullable=False, default=0)

    valid_from = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    valid_until = db.Column(db.DateTime(timezone=True), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def summary(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "discount_type": self.discount_type,
            "value": self.value,
            "description": self.description,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "code": self.code,
            "description": self.description,
            "discount_type": self.discount_type,
            "value": self.value,
            "min_order_amount_cents": self.min_order_amount_cents,
            "max_discount_cents": self.max_discount_cents,
            "usage_limit": self.usage_limit,
            "per_user_limit": self.per_user_limit,
            "usage_count": self.usage_count,
            "valid_from": to_utc_z(self.valid_from),
            "valid_until": to_utc_z(self.valid_until),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
