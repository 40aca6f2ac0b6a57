"""
Pytest configuration and fixtures

Every test gets a fresh in-memory SQLite schema built from the models.
"""
import os

# must be set before the app module reads its config
os.environ['DATABASE_URL'] = 'sqlite://'

from itertools import combinations  # noqa: E402

import pytest  # noqa: E402

from app import app as flask_app, db, User, Client, Workout, Session, ACTIVE_STATUSES  # noqa: E402
from scheduling.timeslots import overlaps  # noqa: E402


@pytest.fixture
def app():
    flask_app.config.update(TESTING=True)
    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def http(app):
    return app.test_client()


@pytest.fixture
def trainer(app):
    u = User(name='Tess Trainer', email='tess@example.com', role='trainer')
    db.session.add(u)
    db.session.commit()
    return u


@pytest.fixture
def other_trainer(app):
    u = User(name='Omar Trainer', email='omar@example.com', role='trainer')
    db.session.add(u)
    db.session.commit()
    return u


def _make_client(trainer, name, email):
    u = User(name=name, email=email, role='client')
    db.session.add(u)
    db.session.flush()
    c = Client(user_id=u.id, trainer_id=trainer.id)
    db.session.add(c)
    db.session.commit()
    return c


@pytest.fixture
def client(trainer):
    return _make_client(trainer, 'Alice Client', 'alice@example.com')


@pytest.fixture
def other_client(trainer):
    return _make_client(trainer, 'Bob Client', 'bob@example.com')


@pytest.fixture
def workout(trainer):
    w = Workout(trainer_id=trainer.id, name='Lower body')
    db.session.add(w)
    db.session.commit()
    return w


@pytest.fixture
def book(app):
    """Insert a session directly, bypassing the conflict check."""
    def _book(trainer, client, day, at, duration=60, status='scheduled', **extra):
        s = Session(
            trainer_id=trainer.id,
            client_id=client.user_id,
            session_date=day,
            session_time=at,
            duration=duration,
            status=status,
            **extra,
        )
        db.session.add(s)
        db.session.commit()
        return s
    return _book


@pytest.fixture
def assert_no_overlaps(app):
    """No two active sessions of a trainer overlap on the same date."""
    def _check(trainer_id):
        rows = Session.query.filter(
            Session.trainer_id == trainer_id,
            Session.status.in_(ACTIVE_STATUSES),
        ).all()
        for a, b in combinations(rows, 2):
            if a.session_date == b.session_date:
                assert not overlaps(a.session_time, a.duration, b.session_time, b.duration), (a, b)
    return _check
