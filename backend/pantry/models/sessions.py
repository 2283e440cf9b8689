from __future__ import annotations

import uuid

from ..extensions import db
from pantry.time_utils import to_utc_z

SESSION_STATUS_ACTIVE = "ACTIVE"
SESSION_STATUS_CLOSED = "CLOSED"


class OrderingSession(db.Model):
    """
    Time-boxed ordering context opened by scanning a space's QR code.

    LIFECYCLE: created ACTIVE; moves to CLOSED on explicit close or when a
    lookup finds it past expires_at. Never deleted, only superseded by a new
    session for the same space.
    """
    __tablename__ = "sessions"
    __table_args__ = (
        db.Index("ix_sessions_status_expires", "status", "expires_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    space_id = db.Column(db.Integer, db.ForeignKey("spaces.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    guest_name = db.Column(db.String(120), nullable=True)
    chair_number = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=SESSION_STATUS_ACTIVE)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    space = db.relationship("Space", backref=db.backref("sessions", lazy=True))
    user = db.relationship("User")

    @property
    def org_id(self) -> int:
        return self.space.org_id

    def routing(self) -> dict:
        """Minimal fields kept in the Redis routing cache."""
        return {
            "id": self.id,
            "space_id": self.space_id,
            "org_id": self.space.org_id,
            "user_id": self.user_id,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "space_id": self.space_id,
            "space_name": self.space.name if self.space else None,
            "org_id": self.space.org_id if self.space else None,
            "user_id": self.user_id,
            "guest_name": self.guest_name,
            "chair_number": self.chair_number,
            "status": self.status,
            "expires_at": to_utc_z(self.expires_at),
            "created_at": to_utc_z(self.created_at),
        }
