"""Shared fixtures: app on a throwaway SQLite file, pinned clock, admin client helpers."""
from datetime import date, datetime, timedelta

import pytest

from app import create_app
from config import Config
from models import db

ADMIN_TOKEN = "test-token"
BOOKING_DAY = date(2026, 2, 10)


class TestConfig(Config):
    TESTING = True
    ADMIN_API_TOKEN = ADMIN_TOKEN
    LOG_LEVEL = "WARNING"


class FrozenClock:
    """Callable clock the app reads through CLOCK; tests move it forward by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 2, 10, 9, 0))


def build_app(db_path, clock, **settings):
    settings.update(SQLALCHEMY_DATABASE_URI="sqlite:///" + str(db_path), CLOCK=clock)
    return create_app(type("PinnedConfig", (TestConfig,), settings))


@pytest.fixture
def app(tmp_path, clock):
    app = build_app(tmp_path / "groundslot-test.db", clock)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_headers():
    return {"X-Admin-Token": ADMIN_TOKEN}


@pytest.fixture
def customer():
    return {"name": "Ali Khan", "phone": "0300-1234567", "email": "ali@example.com"}


@pytest.fixture
def make_booking(app, clock, customer):
    """Create a pending booking on BOOKING_DAY through the service layer."""
    from services.bookings import create_booking

    def _make(hours, advance=500, method="easypaisa", who=None, slot_date=BOOKING_DAY):
        return create_booking(
            slot_date,
            hours,
            customer=who or customer,
            pricing={"advance_payment": advance, "advance_payment_method": method},
            now=clock(),
        )
    return _make
