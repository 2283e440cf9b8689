# backend/pantry/routes/system.py
"""
System health endpoint.

Reports the relational store (required) and Redis (degraded when down,
since sessions and orders keep working without the cache and event channel).
"""

import time

import redis
from flask import Blueprint, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db, redis_store
from ..models.sessions import OrderingSession, SESSION_STATUS_ACTIVE
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        active_sessions = db.session.query(OrderingSession).filter_by(status=SESSION_STATUS_ACTIVE).count()
        expired_sessions = db.session.query(OrderingSession).filter(
            OrderingSession.status == SESSION_STATUS_ACTIVE,
            OrderingSession.expires_at <= utcnow(),
        ).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "active_sessions": active_sessions,
                "expired_pending_cleanup": expired_sessions,
            },
        }
    except SQLAlchemyError:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_redis_health() -> dict:
    start_time = time.time()
    try:
        redis_store.client.ping()
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except redis.RedisError:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.warning("Redis health check failed", exc_info=True)
        return {
            "status": "degraded",
            "latency_ms": round(elapsed_ms, 2),
            "warning": "Session cache and order events unavailable",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (Redis down)
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    redis_health = check_redis_health()

    if database_health["status"] == "unhealthy":
        overall_status, http_status = "unhealthy", 503
    elif redis_health["status"] != "healthy":
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "redis": redis_health,
        },
    }, http_status
