"""Shared fixtures: an app on in-memory SQLite seeded with the demo catalog."""

import pytest

from install_tracker import create_app, db
from install_tracker.catalog import seed
from install_tracker.models import Component, Worker, InstallationSession


@pytest.fixture
def app():
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'ALLOW_DB_RESET': True,
    })
    with app.app_context():
        db.create_all()
        seed()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def validator(app):
    return app.extensions['sequence_validator']


@pytest.fixture
def worker(app):
    return Worker.query.filter_by(employee_id='EMP001').one()


@pytest.fixture
def session_id(app, worker):
    s = InstallationSession(worker_id=worker.id)
    db.session.add(s)
    db.session.commit()
    return s.id


@pytest.fixture
def parts(app):
    """Map sequence order -> Component."""
    return {c.sequence_order: c for c in Component.query.all()}
