"""Entity store tests."""

import pytest
from sqlalchemy.exc import OperationalError

from safetrails.core.errors import StateConflictError, StoreUnavailableError
from safetrails.db.store import EntityStore
from safetrails.models import Trip, UserSafetyProfile


def test_put_applies_when_version_matches(store, make_trip):
    trip = make_trip()

    updated = store.put(Trip, trip.id, expected_version=trip.version, values={"title": "Renamed"})

    assert updated.title == "Renamed"
    assert updated.version == trip.version + 1


def test_put_with_stale_version_conflicts(store, make_trip):
    trip = make_trip()
    store.put(Trip, trip.id, expected_version=trip.version, values={"title": "First"})

    with pytest.raises(StateConflictError):
        store.put(Trip, trip.id, expected_version=trip.version, values={"title": "Second"})
    assert store.get(Trip, trip.id).title == "First"


def test_put_with_moved_status_conflicts(store, make_trip):
    trip = make_trip()
    with pytest.raises(StateConflictError):
        store.put(Trip, trip.id, expected_version=trip.version, expected_status="ACTIVE", values={"title": "x"})


def test_failing_after_hook_rolls_back_the_write(store, make_trip):
    trip = make_trip()

    def reject(db, entity):
        raise StateConflictError("no")

    with pytest.raises(StateConflictError):
        store.put(Trip, trip.id, expected_version=trip.version, values={"title": "Lost"}, after=reject)
    assert store.get(Trip, trip.id).version == trip.version


def test_insert_if_absent_rejects_duplicates(store):
    created = store.insert_if_absent(UserSafetyProfile(user_id="alice", safety_score=90, version=1))
    assert created.safety_score == 90

    with pytest.raises(StateConflictError):
        store.insert_if_absent(UserSafetyProfile(user_id="alice", safety_score=50, version=1))
    assert store.get(UserSafetyProfile, "alice").safety_score == 90


def test_connection_faults_surface_as_store_unavailable():
    class BrokenSession:
        def get(self, *args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        def rollback(self):
            pass

        def close(self):
            pass

    store = EntityStore(BrokenSession)

    with pytest.raises(StoreUnavailableError):
        store.get(Trip, "t-1")
