# Overview: Ordering session lifecycle: open on QR scan, lookup, close, lazy expiry.

"""
Session Manager

SECURITY/CORRECTNESS MODEL:
- the relational store is authoritative for status and expiry
- Redis holds a routing hint under session:<id> with TTL == session TTL
- a cache hit never short-circuits the ACTIVE/expiry check
- cache writes and evictions are best-effort: failures are logged, not raised
"""

from __future__ import annotations

import json

import redis
from flask import current_app
from sqlalchemy.orm import joinedload

from ..extensions import db, redis_store
from ..models import Organization, OrderingSession, Space
from ..models.sessions import SESSION_STATUS_ACTIVE, SESSION_STATUS_CLOSED
from ..errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from ..time_utils import as_naive_utc, minutes_from_now, utcnow
from ..validation import SESSION_TTL_MAX_MINUTES, SESSION_TTL_MIN_MINUTES
from . import catalog_service

CACHE_KEY_PREFIX = "session:"


def _cache_key(session_id: str) -> str:
    return f"{CACHE_KEY_PREFIX}{session_id}"


def _cache_put(session: OrderingSession, ttl_seconds: int) -> None:
    try:
        redis_store.client.setex(_cache_key(session.id), ttl_seconds, json.dumps(session.routing()))
    except redis.RedisError:
        current_app.logger.warning("Session cache write failed for %s", session.id, exc_info=True)


def _cache_evict(session_id: str) -> None:
    try:
        redis_store.client.delete(_cache_key(session_id))
    except redis.RedisError:
        current_app.logger.warning("Session cache evict failed for %s", session_id, exc_info=True)


def cached_routing(session_id: str) -> dict | None:
    """Advisory routing data from Redis. Never used for authorization."""
    try:
        raw = redis_store.client.get(_cache_key(session_id))
    except redis.RedisError:
        current_app.logger.warning("Session cache read failed for %s", session_id, exc_info=True)
        return None
    return json.loads(raw) if raw else None


def _is_expired(session: OrderingSession) -> bool:
    return as_naive_utc(session.expires_at) <= utcnow()


def open_session(
    space_code: str,
    ttl_minutes: int,
    guest_name: str | None = None,
    chair_number: int | None = None,
    user_id: int | None = None,
) -> OrderingSession:
    if not (SESSION_TTL_MIN_MINUTES <= ttl_minutes <= SESSION_TTL_MAX_MINUTES):
        raise ValidationError(
            f"ttl_minutes must be between {SESSION_TTL_MIN_MINUTES} and {SESSION_TTL_MAX_MINUTES}",
            details={"ttl_minutes": ["out of range"]},
        )

    space = (
        db.session.query(Space)
        .join(Organization, Organization.id == Space.org_id)
        .filter(
            Space.qr_code == space_code,
            Space.is_active.is_(True),
            Organization.is_active.is_(True),
        )
        .first()
    )
    if not space:
        raise NotFoundError("Invalid QR code")

    session = OrderingSession(
        space_id=space.id,
        user_id=user_id,
        guest_name=guest_name,
        chair_number=chair_number,
        status=SESSION_STATUS_ACTIVE,
        expires_at=minutes_from_now(ttl_minutes),
    )
    db.session.add(session)
    db.session.commit()

    _cache_put(session, ttl_minutes * 60)
    current_app.logger.info("Opened session %s for space %s (org %s)", session.id, space.id, space.org_id)
    return session


def get_session_record(session_id: str) -> OrderingSession:
    """Load a session regardless of status. NotFoundError if absent."""
    session = (
        db.session.query(OrderingSession)
        .options(joinedload(OrderingSession.space))
        .filter_by(id=session_id)
        .first()
    )
    if not session:
        raise NotFoundError("Session not found")
    return session


def get_session(session_id: str) -> OrderingSession:
    """
    Return an ACTIVE, unexpired session.

    An ACTIVE session found past its expiry is closed here and its cache entry
    evicted before InvalidStateError is raised.
    """
    session = get_session_record(session_id)

    if session.status != SESSION_STATUS_ACTIVE:
        raise InvalidStateError("Session is closed")

    if _is_expired(session):
        session.status = SESSION_STATUS_CLOSED
        db.session.commit()
        _cache_evict(session.id)
        raise InvalidStateError("Session has expired")

    return session


def close_session(session_id: str, requesting_user_id: int | None = None) -> OrderingSession:
    session = get_session_record(session_id)

    if requesting_user_id is not None and session.user_id != requesting_user_id:
        raise ForbiddenError("Cannot close another user's session")

    _cache_evict(session.id)
    if session.status != SESSION_STATUS_CLOSED:
        session.status = SESSION_STATUS_CLOSED
        db.session.commit()
        current_app.logger.info("Closed session %s", session.id)
    return session


def session_menu(session_id: str) -> dict:
    session = get_session(session_id)
    return {
        "session": session.to_dict(),
        "categories": catalog_service.get_menu(session.org_id),
    }


def expire_stale_sessions() -> int:
    """Close every ACTIVE session past its expiry. Returns the number closed."""
    stale_ids = [
        sid for (sid,) in db.session.query(OrderingSession.id)
        .filter(
            OrderingSession.status == SESSION_STATUS_ACTIVE,
            OrderingSession.expires_at <= utcnow(),
        )
        .all()
    ]
    if not stale_ids:
        return 0

    (
        db.session.query(OrderingSession)
        .filter(OrderingSession.id.in_(stale_ids))
        .update({"status": SESSION_STATUS_CLOSED}, synchronize_session=False)
    )
    db.session.commit()

    for sid in stale_ids:
        _cache_evict(sid)
    return len(stale_ids)
