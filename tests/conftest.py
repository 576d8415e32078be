"""Shared test fixtures."""

from __future__ import annotations

import os
from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

# Set test environment before importing app modules
os.environ["DATABASE_URL"] = "sqlite://"  # In-memory DB for tests

from roomstay.clock import utcnow
from roomstay.database import Base
from roomstay.events import EventBus
from roomstay.models.booking import Booking, BookingStatus
from roomstay.models.property import Property, Room

# Import all models to register them
import roomstay.models.payment  # noqa: F401
import roomstay.models.rate  # noqa: F401


def _noop_close(self):
    """Prevent session.close() from detaching objects during tests."""
    pass


@pytest.fixture
def db_session():
    """Create a fresh in-memory database for each test."""
    engine = create_engine("sqlite://", echo=False)
    Base.metadata.create_all(engine)
    session_factory = sessionmaker(bind=engine)
    session = session_factory()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def noop_close(db_session: Session):
    """Keep the shared test session open when code under test closes it."""
    from unittest.mock import patch

    with patch.object(type(db_session), "close", _noop_close):
        yield


@pytest.fixture
def sample_property(db_session: Session) -> Property:
    """Create a sample property."""
    prop = Property(
        name="Villa Test",
        address="Jl. Test No. 1",
        city="Jakarta",
        tenant_name="Test Tenant",
        tenant_email="tenant@example.com",
    )
    db_session.add(prop)
    db_session.commit()
    return prop


@pytest.fixture
def sample_room(db_session: Session, sample_property: Property) -> Room:
    """A two-guest room at Rp 1.000.000 a night."""
    room = Room(
        property_id=sample_property.id,
        name="Deluxe Room",
        base_price=Decimal("1000000"),
        capacity=2,
    )
    db_session.add(room)
    db_session.commit()
    return room


@pytest.fixture
def stay_dates() -> tuple[date, date]:
    """A four-night stay a month from now."""
    check_in = date.today() + timedelta(days=30)
    return check_in, check_in + timedelta(days=4)


@pytest.fixture
def sample_booking(db_session: Session, sample_room: Room, stay_dates) -> Booking:
    """A booking still waiting for payment."""
    check_in, check_out = stay_dates
    booking = Booking(
        booking_number="BK-TEST-00001",
        room_id=sample_room.id,
        guest_name="Siti Rahma",
        guest_email="siti@example.com",
        check_in_date=check_in,
        check_out_date=check_out,
        num_guests=2,
        total_price=Decimal("4000000"),
        status=BookingStatus.WAITING_PAYMENT,
        payment_deadline=utcnow() + timedelta(hours=1),
    )
    db_session.add(booking)
    db_session.commit()
    return booking


@pytest.fixture
def event_bus():
    """Create a fresh event bus for each test."""
    return EventBus()
