# Overview: UTC helpers; every timestamp is stored and compared as naive UTC.

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Canonical server 'now' (naive UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def minutes_from_now(minutes: int) -> datetime:
    return utcnow() + timedelta(minutes=minutes)


def as_naive_utc(dt: datetime) -> datetime:
    """
    SQLite returns naive datetimes; PostgreSQL returns aware ones for
    timezone=True columns. Compare only after passing through here.
    """
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    ISO-8601 string -> naive UTC. Blank input gives None.

    Offsets ("Z", "+05:30") are converted; a string without one is taken
    to be UTC already.
    """
    text = (value or "").strip()
    if not text:
        return None
    if text[-1] in "zZ":
        text = f"{text[:-1]}+00:00"
    return as_naive_utc(datetime.fromisoformat(text))


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Whole-second ISO-8601 with a trailing 'Z' for API payloads."""
    if dt is None:
        return None
    stamp = as_naive_utc(dt).replace(microsecond=0)
    return f"{stamp.isoformat()}Z"
