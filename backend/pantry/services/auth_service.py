# Overview: Bearer token validation for optional and staff-only routes.

"""
Bearer Token Service

Tokens are cryptographically secure random strings handed to the client once;
the database stores only their SHA-256 hash. Issuing tokens is an operator
task (see `flask tokens issue`); login and SSO flows live outside this service.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from ..extensions import db
from ..models import AuthToken, User, Organization
from ..errors import NotFoundError, InvalidStateError
from pantry.time_utils import utcnow, as_naive_utc

TOKEN_DEFAULT_LIFETIME = timedelta(days=7)


@dataclass
class AuthContext:
    """Identity and tenant context of an authenticated request."""
    user: User
    token: AuthToken
    org_id: int

    @property
    def role(self) -> str:
        return self.user.role


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy)."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    SHA-256 is sufficient here: tokens are already high-entropy, unlike passwords.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def issue_token(user_id: int, lifetime: timedelta = TOKEN_DEFAULT_LIFETIME) -> tuple[AuthToken, str]:
    """
    Issue a token for an active user of an active organization.

    Returns (token_record, plaintext_token).
    """
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    if not user.is_active:
        raise InvalidStateError("User is not active")

    org = db.session.get(Organization, user.org_id)
    if not org or not org.is_active:
        raise InvalidStateError("Organization is not active")

    plaintext = generate_token()
    record = AuthToken(
        user_id=user.id,
        org_id=user.org_id,
        token_hash=hash_token(plaintext),
        expires_at=utcnow() + lifetime,
    )
    db.session.add(record)
    db.session.commit()
    return record, plaintext


def validate_token(token: str) -> AuthContext | None:
    """
    Return the AuthContext for a valid token, None otherwise.

    Invalid means unknown, revoked, expired, or belonging to a deactivated
    user or organization.
    """
    record = db.session.query(AuthToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not record:
        return None

    if as_naive_utc(record.expires_at) <= utcnow():
        return None

    user = record.user
    if not user or not user.is_active:
        return None

    org = db.session.get(Organization, record.org_id)
    if not org or not org.is_active:
        return None

    return AuthContext(user=user, token=record, org_id=record.org_id)


def revoke_token(token: str) -> bool:
    record = db.session.query(AuthToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not record:
        return False

    record.is_revoked = True
    record.revoked_at = utcnow()
    db.session.commit()
    return True
