from __future__ import annotations

import uuid

from ..extensions import db
from pantry.time_utils import to_utc_z

PAYMENT_STATUS_PENDING = "PENDING"
PAYMENT_STATUS_COMPLETED = "COMPLETED"
PAYMENT_STATUS_FAILED = "FAILED"
PAYMENT_STATUS_PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"
PAYMENT_STATUS_REFUNDED = "REFUNDED"


class Payment(db.Model):
    """
    Settlement record for an order (one-to-one).

    REFUND ACCOUNTING:
    - refunded_amount_cents never exceeds amount_cents
    - REFUNDED only when refunded_amount_cents == amount_cents
    - PARTIALLY_REFUNDED when 0 < refunded_amount_cents < amount_cents
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint(
            "refunded_amount_cents >= 0 AND refunded_amount_cents <= amount_cents",
            name="ck_payments_refund_bounds",
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    order_id = db.Column(db.String(36), db.ForeignKey("orders.id"), nullable=False, unique=True)

    provider = db.Column(db.String(32), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False)

    status = db.Column(db.String(24), nullable=False, default=PAYMENT_STATUS_PENDING, index=True)

    # Provider-side references
    external_order_id = db.Column(db.String(64), nullable=True, index=True)
    external_payment_id = db.Column(db.String(64), nullable=True, index=True)

    refunded_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Audit data (verification signature, refund ids)
    audit_metadata = db.Column("metadata", db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)

    order = db.relationship("Order", backref=db.backref("payment", uselist=False, lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def refundable_cents(self) -> int:
        return self.amount_cents - self.refunded_amount_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "provider": self.provider,
            "amount_cents": self.amount_cents,
            "currency": self.currency,
            "status": self.status,
            "external_order_id": self.external_order_id,
            "external_payment_id": self.external_payment_id,
            "refunded_amount_cents": self.refunded_amount_cents,
            "refunded_at": to_utc_z(self.refunded_at),
            "created_at": to_utc_z(self.created_at),
        }
