"""Stale-trip reaper: complete ACTIVE trips abandoned by their client."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta

from sqlalchemy import func, select

from safetrails.core.clock import Clock
from safetrails.db.store import EntityStore
from safetrails.jobs.base import ReconciliationJob
from safetrails.models.location_sample import LocationSample, SampleSource
from safetrails.models.trip import Trip, TripStatus
from safetrails.services.trip_service import TripLifecycleManager


class StaleTripReaperJob(ReconciliationJob):
    name = "stale_trip_reaper"

    def __init__(
        self,
        store: EntityStore,
        clock: Clock,
        trips: TripLifecycleManager,
        interval: timedelta = timedelta(hours=1),
        stale_after: timedelta = timedelta(hours=2),
        batch_size: int = 500,
    ) -> None:
        super().__init__(store, clock, interval, batch_size)
        self._trips = trips
        self.stale_after = stale_after

    def select_candidates(self, now: datetime) -> Iterable[Trip]:
        cutoff = now - self.stale_after
        latest = (
            select(LocationSample.trip_id, func.max(LocationSample.timestamp).label("last_ts"))
            .where(LocationSample.source != SampleSource.BACKFILL.value)
            .group_by(LocationSample.trip_id)
            .subquery()
        )
        # Last sign of life: newest device sample, or the start time. Backfilled
        # samples echo an old position and do not count.
        last_seen = func.coalesce(latest.c.last_ts, Trip.actual_start)
        return self._store.query(
            select(Trip)
            .outerjoin(latest, latest.c.trip_id == Trip.id)
            .where(Trip.status == TripStatus.ACTIVE.value, last_seen < cutoff)
            .order_by(last_seen, Trip.id)
            .limit(self.batch_size)
        )

    def process(self, candidate: Trip, now: datetime) -> bool:
        self._trips.reap_stale(candidate, now, cutoff=now - self.stale_after)
        return True
