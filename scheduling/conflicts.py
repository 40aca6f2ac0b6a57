"""
Conflict detection for a trainer's schedule.

Only sessions in an active status (scheduled, confirmed) take part; cancelled
and completed sessions never block a slot. Queries run on the caller's
SQLAlchemy session so rows flushed earlier in the same transaction are seen.
"""
import logging
from datetime import date

from sqlalchemy import text

from .errors import ConflictError
from .timeslots import format_time, overlaps

log = logging.getLogger(__name__)


def lock_slot(trainer_id: int, session_date: date) -> None:
    """
    Serialize check-then-insert for one (trainer, date) until the transaction
    ends. PostgreSQL only; SQLite already serializes writers.
    """
    from app import db

    if db.session.get_bind().dialect.name != 'postgresql':
        return
    db.session.execute(
        text('SELECT pg_advisory_xact_lock(:trainer_id, :day)'),
        {'trainer_id': trainer_id, 'day': session_date.toordinal()},
    )


def active_sessions_on(trainer_id: int, session_date: date, exclude_session_id=None):
    from app import Session, ACTIVE_STATUSES

    q = Session.query.filter(
        Session.trainer_id == trainer_id,
        Session.session_date == session_date,
        Session.status.in_(ACTIVE_STATUSES),
    )
    if exclude_session_id is not None:
        q = q.filter(Session.id != exclude_session_id)
    return q.order_by(Session.id.asc()).all()


def find_conflict(trainer_id: int, session_date: date, start, duration, exclude_session_id=None):
    """
    First active session of the trainer on `session_date` whose interval
    overlaps [start, start + duration), in id order. None when the slot is free.
    """
    for existing in active_sessions_on(trainer_id, session_date, exclude_session_id):
        if overlaps(start, duration, existing.session_time, existing.duration):
            log.info(
                "Slot %s %s+%sm for trainer %s collides with session %s",
                session_date, start, duration, trainer_id, existing.id,
            )
            return existing
    return None


def conflict_error(existing, first=False) -> ConflictError:
    client_name = existing.client.name if existing.client else 'another client'
    at = format_time(existing.session_time)
    if first:
        message = (f"The first session overlaps with an existing session for {client_name} "
                   f"at {at} on {existing.session_date.isoformat()}")
    else:
        message = f"This session overlaps with an existing session for {client_name} at {at}"
    return ConflictError(
        message,
        client_name=client_name,
        session_date=existing.session_date,
        session_time=at,
        session_id=existing.id,
    )
