"""Shared fixtures for the attendance session tests."""
from datetime import datetime, timedelta

import pytest
from flask_jwt_extended import create_access_token

from qr_attendance import SESSION_MANAGER_KEY, create_app, db
from qr_attendance.config import SessionSettings
from qr_attendance.services.records import StaticRosterProvider
from qr_attendance.services.session_manager import SessionManager

START = datetime(2026, 3, 2, 9, 0, 0)
DHAKA = (23.8103, 90.4125)


class FrozenClock:
    """Clock the tests move by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def app():
    """Create test app."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def clock():
    return FrozenClock(START)


@pytest.fixture
def roster():
    return StaticRosterProvider()


@pytest.fixture
def settings(app):
    return SessionSettings.from_mapping(app.config)


@pytest.fixture
def manager(app, settings, clock, roster):
    """Session manager with a frozen clock, also used by the API."""
    manager = SessionManager(settings=settings, roster_provider=roster, clock=clock)
    app.extensions[SESSION_MANAGER_KEY] = manager
    return manager


@pytest.fixture
def auth_headers(app):
    """Build bearer headers for a given identity and role."""
    def make(identity: str, role: str, section_id: str = None) -> dict:
        claims = {'role': role}
        if section_id is not None:
            claims['section_id'] = section_id
        token = create_access_token(identity=identity, additional_claims=claims)
        return {'Authorization': f'Bearer {token}'}
    return make
