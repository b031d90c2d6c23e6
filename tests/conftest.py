"""
Pytest configuration and fixtures for parking system tests.
"""
import pytest
import sys
import os
from datetime import datetime, timedelta

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import create_app
from broadcast import Broadcaster
from models import db, OwnerSettings, ParkingSession, STATUS_ACTIVE, STATUS_COMPLETED
from notifications import ReceiptDispatcher


OWNER = 'owner-1'
OTHER_OWNER = 'owner-2'


class FakeDispatcher(ReceiptDispatcher):
    """Records receipts instead of sending them."""

    name = 'fake'

    def __init__(self):
        self.sent = []
        self.result = True

    def send(self, recipient, message):
        self.sent.append((recipient, message))
        return self.result


class RecordingBroadcaster(Broadcaster):
    """Broadcaster that also keeps every published event."""

    def __init__(self):
        super().__init__()
        self.events = []

    def publish(self, owner_id, event, payload):
        self.events.append((owner_id, event, payload))
        return super().publish(owner_id, event, payload)


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def test_app(dispatcher, broadcaster):
    """Create application configured for testing with in-memory SQLite."""
    app = create_app({
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'TESTING': True,
        'PARKING_TIMEZONE': 'UTC',
        'EVENT_STREAM_HEARTBEAT': 1,
        'RECEIPT_DISPATCHER': dispatcher,
        'BROADCASTER': broadcaster,
    })

    with app.app_context():
        yield app
        db.session.rollback()
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(test_app):
    """Flask test client."""
    return test_app.test_client()


@pytest.fixture
def service(test_app):
    """The ParkingService wired into the test app."""
    return test_app.extensions['parking']


@pytest.fixture
def owner_settings(test_app):
    """Settings with a 10/hour rate and auto-calculation on."""
    settings = OwnerSettings(owner_id=OWNER, hourly_rate=10.0, currency='USD', auto_calculate=True)
    db.session.add(settings)
    db.session.commit()
    return settings


@pytest.fixture
def completed_session(test_app):
    """A completed 125 minute session with no amount yet."""
    entry = datetime(2026, 10, 19, 8, 0)
    session = ParkingSession(
        owner_id=OWNER,
        vehicle_number='AB1234',
        entry_time=entry,
        exit_time=entry + timedelta(minutes=125),
        duration_minutes=125,
        status=STATUS_COMPLETED,
    )
    db.session.add(session)
    db.session.commit()
    return session


@pytest.fixture
def active_session(test_app):
    session = ParkingSession(
        owner_id=OWNER,
        vehicle_number='CD5678',
        entry_time=datetime(2026, 10, 19, 9, 0),
        status=STATUS_ACTIVE,
    )
    db.session.add(session)
    db.session.commit()
    return session


def owner_headers(owner_id=OWNER):
    return {'X-Owner-Id': owner_id}
