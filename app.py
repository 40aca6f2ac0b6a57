from datetime import datetime
import logging
import os
from functools import wraps

import click
from flask import Flask, request, session as flask_session, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from sqlalchemy import CheckConstraint, Enum, Index, UniqueConstraint
from sqlalchemy.orm import validates
from dotenv import load_dotenv

from scheduling.errors import SchedulingError, ValidationError


load_dotenv()

app = Flask(__name__)
app.config['SECRET_KEY'] = os.getenv('SECRET_KEY', 'dev-secret-change-me')
app.config['SQLALCHEMY_DATABASE_URI'] = os.getenv('DATABASE_URL', 'sqlite:///schedule.db')
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
if not app.config['SQLALCHEMY_DATABASE_URI'].startswith('sqlite'):
    # one pooled connection per request; the pool is shared by all workers
    app.config['SQLALCHEMY_ENGINE_OPTIONS'] = {
        'pool_size': int(os.getenv('DB_POOL_SIZE', 20)),
        'pool_timeout': int(os.getenv('DB_POOL_TIMEOUT', 2)),
        'pool_pre_ping': True,
    }

logging.basicConfig(
    level=os.getenv('LOG_LEVEL', 'INFO').upper(),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)
log = logging.getLogger(__name__)

SESSION_STATUSES = ('scheduled', 'confirmed', 'completed', 'cancelled')
ACTIVE_STATUSES = ('scheduled', 'confirmed')
SESSION_TYPES = ('in_person', 'online', 'hybrid')
USER_ROLES = ('trainer', 'client')

db = SQLAlchemy(app)
migrate = Migrate(app, db)


# ——— Models ———
class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    role = db.Column(Enum(*USER_ROLES, name='user_role'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    @validates('email')
    def normalize_email(self, key, value):
        return value.strip().lower()

    def __repr__(self):
        return f"<User {self.id} {self.role} {self.name}>"


class Client(db.Model):
    __tablename__ = 'clients'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    trainer_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    user = db.relationship('User', foreign_keys=[user_id])

    __table_args__ = (
        UniqueConstraint('user_id', 'trainer_id', name='uq_clients_user_trainer'),
    )


class Workout(db.Model):
    __tablename__ = 'workouts'
    id = db.Column(db.Integer, primary_key=True)
    trainer_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)


class Session(db.Model):
    __tablename__ = 'sessions'
    id = db.Column(db.Integer, primary_key=True)
    trainer_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    client_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    workout_id = db.Column(db.Integer, db.ForeignKey('workouts.id', ondelete='SET NULL'), nullable=True)
    session_date = db.Column(db.Date, nullable=False)
    session_time = db.Column(db.Time, nullable=False)
    duration = db.Column(db.Integer, default=60, nullable=False)
    session_type = db.Column(db.String(20), default='in_person', nullable=False)
    location = db.Column(db.String(255))
    meeting_link = db.Column(db.String(500))
    notes = db.Column(db.Text)
    status = db.Column(Enum(*SESSION_STATUSES, name='session_status'), default='scheduled', nullable=False, index=True)
    is_recurring = db.Column(db.Boolean, default=False, nullable=False)
    recurring_pattern = db.Column(db.String(20))
    recurring_end_date = db.Column(db.Date)
    day_of_week = db.Column(db.Integer)
    recurring_parent_id = db.Column(db.Integer, db.ForeignKey('sessions.id', ondelete='SET NULL'), nullable=True, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    client = db.relationship('User', foreign_keys=[client_id])
    # one level only: the first occurrence is the parent of every other one
    children = db.relationship(
        'Session',
        backref=db.backref('parent', remote_side=[id]),
        order_by='Session.session_date',
    )

    __table_args__ = (
        CheckConstraint('duration > 0', name='ck_sessions_duration_positive'),
        CheckConstraint('day_of_week BETWEEN 0 AND 6', name='ck_sessions_day_of_week'),
        Index('ix_sessions_trainer_date', 'trainer_id', 'session_date'),
    )

    @property
    def is_active(self):
        return self.status in ACTIVE_STATUSES

    def to_dict(self):
        return {
            'id': self.id,
            'trainer_id': self.trainer_id,
            'client_id': self.client_id,
            'client_name': self.client.name if self.client else None,
            'workout_id': self.workout_id,
            'session_date': self.session_date.isoformat(),
            'session_time': self.session_time.strftime('%H:%M'),
            'duration': self.duration,
            'session_type': self.session_type,
            'location': self.location,
            'meeting_link': self.meeting_link,
            'notes': self.notes,
            'status': self.status,
            'is_recurring': self.is_recurring,
            'recurring_pattern': self.recurring_pattern,
            'recurring_end_date': self.recurring_end_date.isoformat() if self.recurring_end_date else None,
            'day_of_week': self.day_of_week,
            'recurring_parent_id': self.recurring_parent_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Session {self.id} {self.session_date} {self.session_time} {self.duration}m {self.status}>"


class SessionChange(db.Model):
    __tablename__ = 'session_changes'
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('sessions.id', ondelete='CASCADE'), nullable=False, index=True)
    change_type = db.Column(db.String(20), nullable=False)
    original_date = db.Column(db.Date)
    original_time = db.Column(db.Time)
    reason = db.Column(db.Text)
    requested_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    session = db.relationship('Session', backref=db.backref('changes', order_by='SessionChange.id'))


class TrainerAvailability(db.Model):
    __tablename__ = 'trainer_availability'
    id = db.Column(db.Integer, primary_key=True)
    trainer_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    day_of_week = db.Column(db.Integer, nullable=False)
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=False)
    is_available = db.Column(db.Boolean, default=True, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('trainer_id', 'day_of_week', 'start_time', name='uq_availability_slot'),
        CheckConstraint('day_of_week BETWEEN 0 AND 6', name='ck_availability_day_of_week'),
        CheckConstraint('end_time > start_time', name='ck_availability_range'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'trainer_id': self.trainer_id,
            'day_of_week': self.day_of_week,
            'start_time': self.start_time.strftime('%H:%M'),
            'end_time': self.end_time.strftime('%H:%M'),
            'is_available': self.is_available,
        }


# lifecycle imports the models above lazily
from scheduling import lifecycle  # noqa: E402


# ——— Helpers & Decorators ———
def trainer_required(f):
    @wraps(f)
    def wrapper(*args, **kwargs):
        if not flask_session.get('trainer_id'):
            return jsonify({'ok': False, 'error': 'unauthorized', 'message': 'Trainer login required'}), 401
        return f(*args, **kwargs)
    return wrapper


def client_required(f):
    @wraps(f)
    def wrapper(*args, **kwargs):
        if not flask_session.get('client_user_id'):
            return jsonify({'ok': False, 'error': 'unauthorized', 'message': 'Client login required'}), 401
        return f(*args, **kwargs)
    return wrapper


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Expected a JSON object body')
    return data


@app.errorhandler(SchedulingError)
def handle_scheduling_error(err):
    return jsonify(err.to_dict()), err.status_code


SESSION_FIELDS = (
    'session_date', 'session_time', 'duration', 'session_type',
    'location', 'meeting_link', 'notes', 'workout_id',
)


# ——— Routes: Trainer schedule ———
@app.route('/trainer/sessions/upcoming', methods=['GET'])
@trainer_required
def upcoming_sessions():
    sessions = lifecycle.list_upcoming_sessions(
        flask_session['trainer_id'],
        start_date=request.args.get('start_date'),
        end_date=request.args.get('end_date'),
        limit=request.args.get('limit', 100, type=int),
    )
    log.debug("Fetched %d sessions for trainer %s", len(sessions), flask_session['trainer_id'])
    return jsonify([s.to_dict() for s in sessions])


@app.route('/trainer/clients/<int:client_id>/sessions', methods=['GET'])
@trainer_required
def client_sessions(client_id):
    sessions = lifecycle.list_client_sessions(
        flask_session['trainer_id'],
        client_id,
        start_date=request.args.get('start_date'),
        end_date=request.args.get('end_date'),
    )
    return jsonify([s.to_dict() for s in sessions])


@app.route('/trainer/workouts/<int:workout_id>/sessions', methods=['GET'])
@trainer_required
def workout_sessions(workout_id):
    sessions = lifecycle.list_workout_sessions(flask_session['trainer_id'], workout_id)
    return jsonify([s.to_dict() for s in sessions])


@app.route('/trainer/sessions', methods=['POST'])
@trainer_required
def create_session():
    data = _json_body()
    trainer_id = flask_session['trainer_id']
    client_id = data.get('client_id')
    if not client_id or not data.get('session_date') or not data.get('session_time'):
        raise ValidationError('Client ID, date, and time are required')

    fields = {k: data[k] for k in SESSION_FIELDS if k in data}

    if data.get('is_recurring') and data.get('recurring_end_date') and data.get('day_of_week') is not None:
        series = lifecycle.create_recurring_series(
            trainer_id,
            client_id,
            fields,
            pattern=data.get('recurring_pattern') or 'weekly',
            end_date=data['recurring_end_date'],
            day_of_week=data['day_of_week'],
        )
        return jsonify({
            'ok': True,
            'message': series.summary,
            'parent_id': series.parent.id,
            'sessions': [s.to_dict() for s in series.sessions],
            'skipped_dates': [d.isoformat() for d in series.skipped_dates],
        }), 201

    s = lifecycle.create_session(trainer_id, client_id, fields)
    return jsonify(s.to_dict()), 201


@app.route('/trainer/sessions/<int:session_id>', methods=['PUT'])
@trainer_required
def update_session(session_id):
    data = _json_body()
    s = lifecycle.update_session(session_id, flask_session['trainer_id'], data)
    return jsonify(s.to_dict())


@app.route('/trainer/sessions/<int:session_id>/cancel', methods=['POST'])
@trainer_required
def cancel_session(session_id):
    data = request.get_json(silent=True) or {}
    s = lifecycle.cancel_session(session_id, flask_session['trainer_id'], reason=data.get('reason'))
    return jsonify(s.to_dict())


@app.route('/trainer/sessions/<int:session_id>/cancel-series', methods=['POST'])
@trainer_required
def cancel_series(session_id):
    data = request.get_json(silent=True) or {}
    cancelled = lifecycle.cancel_recurring_series(session_id, flask_session['trainer_id'], reason=data.get('reason'))
    return jsonify({
        'ok': True,
        'message': f"Cancelled {len(cancelled)} session{'s' if len(cancelled) != 1 else ''}",
        'sessions': [s.to_dict() for s in cancelled],
    })


@app.route('/trainer/availability', methods=['GET', 'POST'])
@trainer_required
def trainer_availability():
    trainer_id = flask_session['trainer_id']
    if request.method == 'POST':
        data = _json_body()
        if data.get('day_of_week') is None or not data.get('start_time') or not data.get('end_time'):
            raise ValidationError('Day of week, start time, and end time are required')
        slot = lifecycle.set_availability(
            trainer_id,
            data['day_of_week'],
            data['start_time'],
            data['end_time'],
            is_available=data.get('is_available') is not False,
        )
        return jsonify(slot.to_dict()), 201
    return jsonify([a.to_dict() for a in lifecycle.get_availability(trainer_id)])


# ——— Routes: Client ———
@app.route('/client/sessions/upcoming', methods=['GET'])
@client_required
def client_upcoming():
    sessions = lifecycle.list_client_upcoming(flask_session['client_user_id'])
    return jsonify([s.to_dict() for s in sessions])


# ——— CLI: maintenance ———
@app.cli.command('cancel-series')
@click.argument('parent_id', type=int)
@click.option('--trainer', 'trainer_id', type=int, required=True, help='Owning trainer id')
@click.option('--reason', default=None, help='Reason stored in the audit trail')
def cancel_series_command(parent_id, trainer_id, reason):
    """Cancel a recurring parent session and all of its active occurrences."""
    cancelled = lifecycle.cancel_recurring_series(parent_id, trainer_id, reason=reason)
    click.echo(f"Cancelled {len(cancelled)} session(s) in series {parent_id}")
