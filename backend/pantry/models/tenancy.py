from __future__ import annotations

from ..extensions import db
from pantry.time_utils import to_utc_z


class Organization(db.Model):
    """
    Multi-tenant root: every tenant is an Organization.

    All spaces, catalog items, coupons, orders and users belong to exactly one
    organization. No data may cross organization boundaries.

    PAYMENT SETTINGS:
    - require_payment: False means every order settles through the no-payment path
    - payment_provider: hosted checkout provider name (e.g. "razorpay"), None for free
    - currency: ISO code; all *_cents amounts are in this currency's minor unit
    """
    __tablename__ = "organizations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(64), nullable=False, unique=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    require_payment = db.Column(db.Boolean, nullable=False, default=False)
    payment_provider = db.Column(db.String(32), nullable=True)
    currency = db.Column(db.String(3), nullable=False, default="INR")

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Organization id={self.id} slug={self.slug!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "is_active": self.is_active,
            "require_payment": self.require_payment,
            "payment_provider": self.payment_provider,
            "currency": self.currency,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Space(db.Model):
    """
    Physical location (meeting room, floor pantry corner) identified by a QR code.

    Scanning the QR code opens an ordering session bound to this space.
    """
    __tablename__ = "spaces"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_spaces_org_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)

    # Opaque value printed in the QR code
    qr_code = db.Column(db.String(64), nullable=False, unique=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("spaces", lazy=True))

    def __repr__(self) -> str:
        return f"<Space id={self.id} name={self.name!r} org_id={self.org_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
