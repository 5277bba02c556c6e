"""Shared fixtures for unit tests."""

from datetime import date

import pytest
import pytest_asyncio

from app.core.notifications import BookingDetails
from app.infra.database import build_engine, build_session_factory
from app.models.database import Base

from .fakes import FakeClock, RecordingEmailSender, RecordingSmsSender


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sms_sender():
    return RecordingSmsSender()


@pytest.fixture
def email_sender():
    return RecordingEmailSender()


@pytest.fixture
def booking_details():
    """Booking with every optional field filled in."""
    return BookingDetails(
        customer_name="Asha Patnaik",
        phone="9000000001",
        email="asha@example.com",
        address="12 Janpath, Bhubaneswar",
        service_name="Blood Sample Collection",
        preferred_date="2026-11-02",
        preferred_time="10:00 AM",
        notes="Ring the bell twice",
        booking_id="b-1",
        status="pending",
    )


@pytest.fixture
def booking_data():
    """Validated booking payload as the API passes it to the handler."""
    return {
        "customer_name": "Asha Patnaik",
        "phone": "9000000001",
        "email": "asha@example.com",
        "address": "12 Janpath, Bhubaneswar",
        "service_name": "Blood Sample Collection",
        "preferred_date": date(2026, 11, 2),
        "preferred_time": "10:00 AM",
        "notes": None,
        "price": "499",
    }


@pytest_asyncio.fixture
async def session_factory():
    """In-memory SQLite database with all tables created."""
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield build_session_factory(engine)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session
