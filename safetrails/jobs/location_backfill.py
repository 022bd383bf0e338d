"""Location backfill: keep a trail for active trips when the client under-reports."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func, or_, select

from safetrails.core.clock import Clock
from safetrails.db.store import EntityStore
from safetrails.jobs.base import ReconciliationJob
from safetrails.models.location_sample import LocationSample
from safetrails.models.trip import Trip, TripStatus
from safetrails.models.user_position import UserPosition
from safetrails.services.location_service import LocationSampler

logger = logging.getLogger(__name__)


@dataclass
class BackfillCandidate:
    trip: Trip
    position: UserPosition


class LocationBackfillJob(ReconciliationJob):
    """Every ACTIVE trip whose owner has a known position gets a sample at
    least once per interval; the position is copied as a BACKFILL sample."""

    name = "location_backfill"

    def __init__(
        self,
        store: EntityStore,
        clock: Clock,
        sampler: LocationSampler,
        interval: timedelta = timedelta(minutes=10),
        batch_size: int = 500,
    ) -> None:
        super().__init__(store, clock, interval, batch_size)
        self._sampler = sampler

    def select_candidates(self, now: datetime) -> Iterable[BackfillCandidate]:
        cutoff = now - self.interval
        latest = (
            select(LocationSample.trip_id, func.max(LocationSample.timestamp).label("last_ts"))
            .group_by(LocationSample.trip_id)
            .subquery()
        )
        rows = self._store.rows(
            select(Trip, UserPosition)
            .join(UserPosition, UserPosition.user_id == Trip.owner_id)
            .outerjoin(latest, latest.c.trip_id == Trip.id)
            .where(
                Trip.status == TripStatus.ACTIVE.value,
                or_(latest.c.last_ts.is_(None), latest.c.last_ts < cutoff),
            )
            .order_by(Trip.id)
            .limit(self.batch_size)
        )
        return [BackfillCandidate(trip=trip, position=position) for trip, position in rows]

    def candidate_id(self, candidate: BackfillCandidate) -> str:
        return candidate.trip.id

    def process(self, candidate: BackfillCandidate, now: datetime) -> bool:
        self._sampler.backfill(candidate.trip, candidate.position, now)
        return True
