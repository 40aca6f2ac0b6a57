"""
Session lifecycle: create (single or recurring), update, cancel.

Every public operation runs in one database transaction on the request's
SQLAlchemy session. Validation and not-found errors are raised before anything
is written; a conflict or a database failure rolls the whole transaction back.
The one deliberate partial success is recurring creation, where later dates
that collide are skipped while the rest of the series is committed.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from .conflicts import conflict_error, find_conflict, lock_slot
from .errors import InfrastructureError, NotFoundError, SchedulingError, ValidationError
from .recurrence import PATTERNS, generate_series
from .timeslots import DEFAULT_DURATION, parse_date, parse_time

log = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    'session_date', 'session_time', 'duration', 'session_type',
    'location', 'meeting_link', 'notes', 'status', 'workout_id',
)
SLOT_FIELDS = ('session_date', 'session_time', 'duration')

STATUS_TRANSITIONS = {
    'scheduled': ('confirmed', 'completed', 'cancelled'),
    'confirmed': ('completed', 'cancelled'),
    'completed': (),
    'cancelled': (),
}


@dataclass
class RecurringSeries:
    parent: object
    children: List[object] = field(default_factory=list)
    skipped_dates: List[date] = field(default_factory=list)
    summary: str = ''

    @property
    def sessions(self):
        return [self.parent] + self.children


@contextmanager
def _transaction():
    from app import db

    try:
        yield db.session
        db.session.commit()
    except SchedulingError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        log.exception("Scheduling transaction rolled back")
        raise InfrastructureError() from exc
    except Exception:
        db.session.rollback()
        raise


# ——— field validation ———
def _as_int(value, name):
    if isinstance(value, bool):
        raise ValidationError(f'{name} must be an integer')
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{name} must be an integer') from None


def _duration(value):
    if value is None:
        return DEFAULT_DURATION
    minutes = _as_int(value, 'duration')
    if minutes <= 0:
        raise ValidationError('duration must be a positive number of minutes')
    return minutes


def _session_type(value):
    from app import SESSION_TYPES

    if value is None:
        return 'in_person'
    if value not in SESSION_TYPES:
        raise ValidationError(f"session_type must be one of {', '.join(SESSION_TYPES)}")
    return value


# column sizes from the sessions table; notes is unbounded text
TEXT_LIMITS = {'location': 255, 'meeting_link': 500, 'notes': None}


def _text(value, name):
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f'{name} must be a string')
    limit = TEXT_LIMITS[name]
    if limit is not None and len(value) > limit:
        raise ValidationError(f'{name} must be at most {limit} characters')
    return value or None


def _day_of_week(value):
    day = _as_int(value, 'day_of_week')
    if not 0 <= day <= 6:
        raise ValidationError('day_of_week must be between 0 and 6')
    return day


def _session_values(fields):
    if not fields.get('session_date') or not fields.get('session_time'):
        raise ValidationError('Date and time are required')
    workout_id = fields.get('workout_id')
    return {
        'session_date': parse_date(fields['session_date']),
        'session_time': parse_time(fields['session_time']),
        'duration': _duration(fields.get('duration')),
        'session_type': _session_type(fields.get('session_type')),
        'location': _text(fields.get('location'), 'location'),
        'meeting_link': _text(fields.get('meeting_link'), 'meeting_link'),
        'notes': _text(fields.get('notes'), 'notes'),
        'workout_id': _as_int(workout_id, 'workout_id') if workout_id is not None else None,
    }


def _normalize_changes(changes):
    from app import SESSION_STATUSES

    if not changes:
        raise ValidationError('No fields to update')
    unknown = sorted(set(changes) - set(UPDATABLE_FIELDS))
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(unknown)}")

    out = {}
    for key, value in changes.items():
        if key in ('session_date', 'session_time', 'duration', 'session_type', 'status') and value is None:
            raise ValidationError(f'{key} cannot be cleared')
        if key == 'session_date':
            out[key] = parse_date(value)
        elif key == 'session_time':
            out[key] = parse_time(value)
        elif key == 'duration':
            out[key] = _duration(value)
        elif key == 'session_type':
            out[key] = _session_type(value)
        elif key == 'status':
            if value not in SESSION_STATUSES:
                raise ValidationError(f"status must be one of {', '.join(SESSION_STATUSES)}")
            out[key] = value
        elif key == 'workout_id':
            out[key] = _as_int(value, 'workout_id') if value is not None else None
        else:
            out[key] = _text(value, key)
    return out


# ——— lookups scoped to the trainer ———
def _get_client(trainer_id, client_id):
    from app import Client

    client = Client.query.filter_by(id=_as_int(client_id, 'client_id'), trainer_id=trainer_id).first()
    if client is None:
        raise NotFoundError('Client not found')
    return client


def _check_workout(trainer_id, workout_id):
    from app import Workout

    if workout_id is None:
        return
    if Workout.query.filter_by(id=workout_id, trainer_id=trainer_id).first() is None:
        raise NotFoundError('Workout not found')


def _get_session(session_id, trainer_id):
    from app import Session

    s = Session.query.filter_by(id=session_id, trainer_id=trainer_id).first()
    if s is None:
        raise NotFoundError('Session not found')
    return s


def _record_cancellation(s, actor_id, reason=None):
    from app import db, SessionChange

    db.session.add(SessionChange(
        session_id=s.id,
        change_type='cancelled',
        original_date=s.session_date,
        original_time=s.session_time,
        reason=reason or None,
        requested_by=actor_id,
    ))


def _summary(created, skipped):
    message = f"Created {created} recurring session{'s' if created != 1 else ''}"
    if skipped:
        shown = ', '.join(d.isoformat() for d in skipped[:3])
        more = '...' if len(skipped) > 3 else ''
        message += (f". {len(skipped)} date{'s' if len(skipped) != 1 else ''} "
                    f"skipped due to conflicts: {shown}{more}")
    return message


# ——— operations ———
def create_session(trainer_id: int, client_id: int, fields: dict):
    """Book one session. Raises ConflictError when the slot is taken."""
    from app import db, Session

    values = _session_values(fields)
    with _transaction():
        client = _get_client(trainer_id, client_id)
        _check_workout(trainer_id, values['workout_id'])

        lock_slot(trainer_id, values['session_date'])
        existing = find_conflict(trainer_id, values['session_date'], values['session_time'], values['duration'])
        if existing is not None:
            raise conflict_error(existing)

        s = Session(
            trainer_id=trainer_id,
            client_id=client.user_id,
            status='scheduled',
            is_recurring=False,
            **values,
        )
        db.session.add(s)

    log.info("Created session %s for trainer %s on %s", s.id, trainer_id, values['session_date'])
    return s


def create_recurring_series(trainer_id: int, client_id: int, fields: dict,
                            pattern: str, end_date, day_of_week) -> RecurringSeries:
    """
    Book a recurring series. The first date must be free or nothing is
    written; later dates that collide are skipped and reported.
    """
    from app import db, Session

    values = _session_values(fields)
    end = parse_date(end_date)
    dow = _day_of_week(day_of_week)
    stored_pattern = pattern if pattern in PATTERNS else 'weekly'

    dates = generate_series(values['session_date'], end, pattern)
    first = next(dates, None)
    if first is None:
        raise ValidationError('No valid dates found for recurring pattern')

    common = dict(values, trainer_id=trainer_id, status='scheduled',
                  is_recurring=True, recurring_pattern=stored_pattern, day_of_week=dow)
    common.pop('session_date')

    with _transaction():
        client = _get_client(trainer_id, client_id)
        _check_workout(trainer_id, values['workout_id'])
        common['client_id'] = client.user_id

        lock_slot(trainer_id, first)
        existing = find_conflict(trainer_id, first, values['session_time'], values['duration'])
        if existing is not None:
            raise conflict_error(existing, first=True)

        parent = Session(session_date=first, recurring_end_date=end, **common)
        db.session.add(parent)
        db.session.flush()

        series = RecurringSeries(parent=parent)
        for day in dates:
            lock_slot(trainer_id, day)
            if find_conflict(trainer_id, day, values['session_time'], values['duration']) is not None:
                series.skipped_dates.append(day)
                continue
            child = Session(session_date=day, recurring_parent_id=parent.id, **common)
            db.session.add(child)
            db.session.flush()
            series.children.append(child)

    series.summary = _summary(len(series.sessions), series.skipped_dates)
    log.info("Trainer %s: series %s, %d created, %d skipped",
             trainer_id, parent.id, len(series.sessions), len(series.skipped_dates))
    return series


def update_session(session_id: int, trainer_id: int, changes: dict):
    """
    Apply the supplied fields only. A changed date, time or duration is
    re-checked against the trainer's other active sessions first.
    """
    values = _normalize_changes(changes)

    with _transaction():
        s = _get_session(session_id, trainer_id)

        if any(k in values for k in SLOT_FIELDS):
            session_date = values.get('session_date', s.session_date)
            session_time = values.get('session_time', s.session_time)
            duration = values.get('duration', s.duration)
            lock_slot(trainer_id, session_date)
            existing = find_conflict(trainer_id, session_date, session_time, duration, exclude_session_id=s.id)
            if existing is not None:
                raise conflict_error(existing)

        if 'workout_id' in values:
            _check_workout(trainer_id, values['workout_id'])

        new_status = values.get('status')
        if new_status is not None and new_status != s.status:
            if new_status not in STATUS_TRANSITIONS[s.status]:
                raise ValidationError(f'Cannot change status from {s.status} to {new_status}')
            if new_status == 'cancelled':
                _record_cancellation(s, trainer_id)

        for key, value in values.items():
            setattr(s, key, value)
        s.updated_at = datetime.utcnow()

    log.info("Updated session %s (%s)", session_id, ', '.join(sorted(values)))
    return s


def cancel_session(session_id: int, trainer_id: int, reason: Optional[str] = None):
    """Cancel one occurrence. Other sessions of the same series are untouched."""
    with _transaction():
        s = _get_session(session_id, trainer_id)
        if s.status == 'cancelled':
            return s
        if s.status == 'completed':
            raise ValidationError('Completed sessions cannot be cancelled')
        _record_cancellation(s, trainer_id, reason)
        s.status = 'cancelled'
        s.updated_at = datetime.utcnow()

    log.info("Cancelled session %s", session_id)
    return s


def cancel_recurring_series(parent_id: int, trainer_id: int, reason: Optional[str] = None):
    """Maintenance cascade: cancel a series parent and its active children."""
    from app import Session, ACTIVE_STATUSES

    with _transaction():
        parent = _get_session(parent_id, trainer_id)
        if not parent.is_recurring or parent.recurring_parent_id is not None:
            raise NotFoundError('Recurring series not found')

        children = (Session.query
                    .filter(Session.recurring_parent_id == parent.id,
                            Session.trainer_id == trainer_id,
                            Session.status.in_(ACTIVE_STATUSES))
                    .order_by(Session.session_date.asc(), Session.id.asc())
                    .all())

        cancelled = []
        now = datetime.utcnow()
        for s in [parent] + children:
            if not s.is_active:
                continue
            _record_cancellation(s, trainer_id, reason)
            s.status = 'cancelled'
            s.updated_at = now
            cancelled.append(s)

    log.info("Cancelled %d session(s) of series %s", len(cancelled), parent_id)
    return cancelled


def list_upcoming_sessions(trainer_id: int, start_date=None, end_date=None, limit: int = 100):
    from app import Session, ACTIVE_STATUSES

    q = Session.query.filter(
        Session.trainer_id == trainer_id,
        Session.status.in_(ACTIVE_STATUSES),
        Session.session_date >= (parse_date(start_date) if start_date else date.today()),
    )
    if end_date:
        q = q.filter(Session.session_date <= parse_date(end_date))
    q = q.order_by(Session.session_date.asc(), Session.session_time.asc())
    if limit and 0 < limit <= 1000:
        q = q.limit(limit)
    return q.all()


def list_client_sessions(trainer_id: int, client_id: int, start_date=None, end_date=None):
    from app import Session

    client = _get_client(trainer_id, client_id)
    q = Session.query.filter(Session.trainer_id == trainer_id, Session.client_id == client.user_id)
    if start_date:
        q = q.filter(Session.session_date >= parse_date(start_date))
    if end_date:
        q = q.filter(Session.session_date <= parse_date(end_date))
    return q.order_by(Session.session_date.asc(), Session.session_time.asc()).all()


def list_workout_sessions(trainer_id: int, workout_id: int):
    """Active sessions of the trainer that follow one workout template."""
    from app import Session, ACTIVE_STATUSES

    workout_id = _as_int(workout_id, 'workout_id')
    _check_workout(trainer_id, workout_id)
    return (Session.query
            .filter(Session.workout_id == workout_id,
                    Session.trainer_id == trainer_id,
                    Session.status.in_(ACTIVE_STATUSES))
            .order_by(Session.session_date.asc(), Session.session_time.asc())
            .all())


def list_client_upcoming(client_user_id: int, limit: int = 20):
    """A client's own upcoming active sessions, across all of their trainers."""
    from app import Session, ACTIVE_STATUSES

    return (Session.query
            .filter(Session.client_id == client_user_id,
                    Session.status.in_(ACTIVE_STATUSES),
                    Session.session_date >= date.today())
            .order_by(Session.session_date.asc(), Session.session_time.asc())
            .limit(limit)
            .all())


def get_availability(trainer_id: int):
    from app import TrainerAvailability

    return (TrainerAvailability.query
            .filter_by(trainer_id=trainer_id)
            .order_by(TrainerAvailability.day_of_week.asc(), TrainerAvailability.start_time.asc())
            .all())


def set_availability(trainer_id: int, day_of_week, start_time, end_time, is_available=True):
    """Upsert one weekly window. Stored for display; bookings don't consult it."""
    from app import db, TrainerAvailability

    dow = _day_of_week(day_of_week)
    start = parse_time(start_time)
    end = parse_time(end_time)
    if end <= start:
        raise ValidationError('end_time must be after start_time')

    with _transaction():
        slot = TrainerAvailability.query.filter_by(
            trainer_id=trainer_id, day_of_week=dow, start_time=start,
        ).first()
        if slot is None:
            slot = TrainerAvailability(trainer_id=trainer_id, day_of_week=dow, start_time=start)
            db.session.add(slot)
        slot.end_time = end
        slot.is_available = bool(is_available)
        slot.updated_at = datetime.utcnow()
    return slot
