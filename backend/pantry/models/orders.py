from __future__ import annotations

import uuid

from ..extensions import db
from pantry.time_utils import to_utc_z

ORDER_STATUS_PENDING = "PENDING"
ORDER_STATUS_ACCEPTED = "ACCEPTED"
ORDER_STATUS_PREPARING = "PREPARING"
ORDER_STATUS_READY = "READY"
ORDER_STATUS_DELIVERED = "DELIVERED"
ORDER_STATUS_CANCELLED = "CANCELLED"

ORDER_STATUSES = (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_ACCEPTED,
    ORDER_STATUS_PREPARING,
    ORDER_STATUS_READY,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_CANCELLED,
)


class Order(db.Model):
    """
    Order placed against an ordering session.

    INVARIANTS:
    - subtotal_cents == sum(line.unit_price_cents * line.quantity)
    - total_cents == subtotal_cents - discount_cents, never negative
    - unit prices on lines are snapshots taken at placement time
    - each *_at status timestamp is written once, when that status is reached

    Orders are never deleted.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("org_id", "order_number", name="uq_orders_org_number"),
        db.Index("ix_orders_org_status_placed", "org_id", "status", "placed_at"),
        db.CheckConstraint("total_cents >= 0", name="ck_orders_total_non_negative"),
    )

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Human-readable, sequential per organization (e.g., "ORD-00042")
    order_number = db.Column(db.String(32), nullable=False)

    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    session_id = db.Column(db.String(36), db.ForeignKey("sessions.id"), nullable=False, index=True)
    space_id = db.Column(db.Integer, db.ForeignKey("spaces.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), nullable=True, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PENDING, index=True)
    chair_number = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    placed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    accepted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    preparing_at = db.Column(db.DateTime(timezone=True), nullable=True)
    ready_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    session = db.relationship("OrderingSession", backref=db.backref("orders", lazy=True))
    space = db.relationship("Space")
    coupon = db.relationship("Coupon")
    lines = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        order_by="OrderItem.position",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "org_id": self.org_id,
            "session_id": self.session_id,
            "space_id": self.space_id,
            "space_name": self.space.name if self.space else None,
            "user_id": self.user_id,
            "coupon_id": self.coupon_id,
            "coupon_code": self.coupon.code if self.coupon else None,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "status": self.status,
            "chair_number": self.chair_number,
            "notes": self.notes,
            "placed_at": to_utc_z(self.placed_at),
            "accepted_at": to_utc_z(self.accepted_at),
            "preparing_at": to_utc_z(self.preparing_at),
            "ready_at": to_utc_z(self.ready_at),
            "delivered_at": to_utc_z(self.delivered_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "payment": self.payment.to_dict() if self.payment else None,
        }
        if include_lines:
            data["items"] = [line.to_dict() for line in self.lines]
        return data


class OrderItem(db.Model):
    """Individual line on an order. Price fields are snapshots."""
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(36), db.ForeignKey("orders.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False)

    # Request order of the line within the order
    position = db.Column(db.Integer, nullable=False, default=0)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    # Name snapshot so kitchen tickets survive catalog renames
    item_name = db.Column(db.String(255), nullable=False)

    options = db.Column(db.JSON, nullable=True)
    notes = db.Column(db.String(200), nullable=True)

    item = db.relationship("Item")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "options": self.options,
            "notes": self.notes,
        }


class OrderSequence(db.Model):
    """
    Per-organization order number counter.

    next_number is advanced with a single UPDATE ... SET next_number = next_number + 1
    so contention is partitioned by tenant and no global lock is needed.
    """
    __tablename__ = "order_sequences"

    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), primary_key=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
