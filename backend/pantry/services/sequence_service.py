# Overview: Per-organization order number allocation.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import OrderSequence

ORDER_NUMBER_PREFIX = "ORD"
ORDER_NUMBER_PAD = 5


class OrderSequenceError(Exception):
    """Raised when an organization has no order counter row."""
    pass


def format_order_number(number: int) -> str:
    return f"{ORDER_NUMBER_PREFIX}-{number:0{ORDER_NUMBER_PAD}d}"


def ensure_sequence(org_id: int) -> None:
    """
    Create the organization's counter row on first use. Commits.

    Two first orders racing here both try the INSERT; the loser's
    IntegrityError just means the row now exists.
    """
    if db.session.get(OrderSequence, org_id) is not None:
        return
    db.session.add(OrderSequence(org_id=org_id, next_number=1))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()


def next_order_number(org_id: int) -> str:
    """
    Allocate the next order number for an organization ("ORD-00042").

    Runs inside the caller's transaction, so a number is only consumed when
    the order that took it commits. Contention is per organization.
    """
    stmt = (
        update(OrderSequence)
        .where(OrderSequence.org_id == org_id)
        .values(next_number=OrderSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    if not db.session.execute(stmt).rowcount:
        raise OrderSequenceError(f"No order sequence for organization {org_id}")

    current = (
        db.session.query(OrderSequence.next_number)
        .filter_by(org_id=org_id)
        .scalar()
    )
    return format_order_number(current - 1)
