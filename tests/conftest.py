"""Pytest fixtures."""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"

from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from jose import jwt  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from safetrails.core.clock import ManualClock  # noqa: E402
from safetrails.core.config import settings  # noqa: E402
from safetrails.core.deps import get_clock, get_dispatcher, get_store  # noqa: E402
from safetrails.db.base import Base  # noqa: E402
from safetrails.db.store import EntityStore  # noqa: E402
from safetrails.main import app  # noqa: E402
from safetrails.models import LocationSample, SosTicket, Trip, UserPosition, UserSafetyProfile  # noqa: E402,F401 - register for create_all
from safetrails.schemas.trip import TripCreate  # noqa: E402
from safetrails.services.location_service import LocationSampler  # noqa: E402
from safetrails.services.sos_service import SosLifecycleManager  # noqa: E402
from safetrails.services.trip_service import TripLifecycleManager  # noqa: E402

T0 = datetime(2025, 6, 1, 8, 0, tzinfo=timezone.utc)


class RecordingDispatcher:
    def __init__(self):
        self.dispatched = []

    def dispatch(self, ticket):
        self.dispatched.append(ticket.id)


@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def store(engine):
    return EntityStore(sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine))


@pytest.fixture
def clock():
    return ManualClock(T0)


@pytest.fixture
def trips(store, clock):
    return TripLifecycleManager(store, clock)


@pytest.fixture
def sos(store, clock, trips):
    return SosLifecycleManager(store, clock, trips)


@pytest.fixture
def sampler(store, clock):
    return LocationSampler(store, clock)


@pytest.fixture
def make_trip(trips, clock):
    """Create a trip for ``owner``; ``start=True`` also starts it."""

    def _make(owner="alice", start=False, title="Coastal walk"):
        trip = trips.create(
            owner,
            TripCreate(
                title=title,
                planned_start=clock.now(),
                planned_end=clock.now() + timedelta(hours=6),
                start_location="Harbour",
                end_location="Lighthouse",
            ),
        )
        if start:
            trip = trips.start(trip.id, owner, 12.97, 77.59)
        return trip

    return _make


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def client(store, clock, dispatcher):
    """Test client wired to the per-test store and clock."""
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def make_token(user_id: str, role: str | None = None) -> str:
    claims = {"sub": user_id}
    if role:
        claims["role"] = role
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def auth(user_id: str, role: str | None = None) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, role)}"}
