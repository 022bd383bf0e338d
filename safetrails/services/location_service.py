"""Location sampling for active trips."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from safetrails.core.clock import Clock, ensure_utc
from safetrails.core.errors import InvalidTripStateError, NotFoundError, ValidationError
from safetrails.core.safety_policies import MAX_REPORT_CLOCK_SKEW_SECONDS
from safetrails.db.store import EntityStore
from safetrails.models.location_sample import LocationSample, SampleSource
from safetrails.models.trip import Trip, TripStatus
from safetrails.models.user_position import UserPosition
from safetrails.services.geo_service import validate_coordinates

logger = logging.getLogger(__name__)


def _require_active(trip: Trip) -> None:
    if trip.status != TripStatus.ACTIVE.value:
        raise InvalidTripStateError(f"Trip is {trip.status}; locations are only recorded for ACTIVE trips")


class LocationSampler:
    """Decides whether a position becomes a LocationSample.

    Direct reports are always recorded. Backfill samples come from the
    owner's last-known position and only fill gaps.
    """

    def __init__(self, store: EntityStore, clock: Clock) -> None:
        self._store = store
        self._clock = clock

    def report(
        self,
        trip_id: str,
        user_id: str,
        latitude: float,
        longitude: float,
        *,
        timestamp: datetime | None = None,
        accuracy: float | None = None,
        speed: float | None = None,
        heading: float | None = None,
        altitude: float | None = None,
    ) -> LocationSample:
        validate_coordinates(latitude, longitude)
        now = self._clock.now()
        reported_at = ensure_utc(timestamp)
        if reported_at is not None and reported_at > now + timedelta(seconds=MAX_REPORT_CLOCK_SKEW_SECONDS):
            raise ValidationError({"timestamp": "must not be in the future"})

        def _guard(trip: Trip) -> None:
            if trip.owner_id != user_id:
                raise NotFoundError("Trip not found")
            _require_active(trip)

        sample = self._store.append_sample(
            trip_id,
            _guard,
            latitude=latitude,
            longitude=longitude,
            at=now,
            source=SampleSource.REPORT.value,
            accuracy=accuracy,
            speed=speed,
            heading=heading,
            altitude=altitude,
            reported_at=reported_at,
        )
        logger.debug("Trip %s: location sample %s recorded", trip_id, sample.id)
        return sample

    def backfill(self, trip: Trip, position: UserPosition, now: datetime) -> LocationSample:
        """Append a sample at ``now`` from the owner's last-known position."""
        sample = self._store.append_sample(
            trip.id,
            _require_active,
            latitude=position.latitude,
            longitude=position.longitude,
            at=now,
            source=SampleSource.BACKFILL.value,
        )
        logger.debug("Trip %s: backfilled sample %s", trip.id, sample.id)
        return sample
