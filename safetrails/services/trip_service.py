"""Trip lifecycle: the only writer of Trip.status."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from safetrails.core.clock import Clock, ensure_utc
from safetrails.core.errors import InvalidTripStateError, NotFoundError, StateConflictError
from safetrails.core.safety_policies import BASE_SAFETY_SCORE
from safetrails.db.store import EntityStore, conditional_update, insert_sample, upsert_position
from safetrails.models.location_sample import LocationSample, SampleSource
from safetrails.models.sos_ticket import OPEN_SOS_STATUSES, SosTicket
from safetrails.models.trip import Trip, TripStatus
from safetrails.models.user_safety_profile import UserSafetyProfile
from safetrails.schemas.trip import TripCreate
from safetrails.services.geo_service import path_distance_km, validate_coordinates

logger = logging.getLogger(__name__)

PLANNED = TripStatus.PLANNED.value
ACTIVE = TripStatus.ACTIVE.value
COMPLETED = TripStatus.COMPLETED.value
CANCELLED = TripStatus.CANCELLED.value
EMERGENCY = TripStatus.EMERGENCY.value

# Allowed transitions map: {from_status: {to_status, ...}}. Nothing targets PLANNED.
TRIP_TRANSITIONS: dict[str, frozenset[str]] = {
    PLANNED: frozenset({ACTIVE, CANCELLED}),
    ACTIVE: frozenset({COMPLETED, CANCELLED, EMERGENCY}),
    EMERGENCY: frozenset({ACTIVE}),
    COMPLETED: frozenset(),
    CANCELLED: frozenset(),
}


def is_valid_transition(from_status: str, to_status: str) -> bool:
    return to_status in TRIP_TRANSITIONS.get(from_status, frozenset())


@dataclass
class TripStats:
    trip_id: str
    status: str
    start_time: datetime | None
    end_time: datetime | None
    duration_minutes: int | None
    total_distance_km: float
    location_samples: int
    sos_alerts: int
    safety_score: int


class TripLifecycleManager:
    """Validates and applies trip transitions against the entity store.

    Each transition is one conditional write keyed on the status and version
    observed at read time. A lost race surfaces as StateConflictError and is
    never retried here; the caller re-reads and decides.
    """

    def __init__(self, store: EntityStore, clock: Clock) -> None:
        self._store = store
        self._clock = clock

    # ---------- Reads ----------

    def get(self, trip_id: str, owner_id: str) -> Trip:
        """Get a trip owned by ``owner_id``. Foreign trips look missing."""
        trip = self._store.get(Trip, trip_id)
        if trip is None or trip.owner_id != owner_id:
            raise NotFoundError("Trip not found")
        return trip

    def list_for_owner(
        self,
        owner_id: str,
        status: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> list[Trip]:
        """List owner's trips, newest first."""
        stmt = select(Trip).where(Trip.owner_id == owner_id)
        if status:
            stmt = stmt.where(Trip.status == status)
        stmt = stmt.order_by(Trip.created_at.desc(), Trip.id.desc()).limit(limit).offset(offset)
        return self._store.query(stmt)

    def stats(self, trip_id: str, owner_id: str) -> TripStats:
        trip = self.get(trip_id, owner_id)
        points = self._store.rows(
            select(LocationSample.latitude, LocationSample.longitude)
            .where(LocationSample.trip_id == trip.id)
            .order_by(LocationSample.id)
        )
        sos_count = self._store.scalar(
            select(func.count()).select_from(SosTicket).where(SosTicket.trip_id == trip.id)
        )

        duration = None
        start, end = ensure_utc(trip.actual_start), ensure_utc(trip.actual_end)
        if start and end:
            duration = int((end - start).total_seconds() // 60)

        return TripStats(
            trip_id=trip.id,
            status=trip.status,
            start_time=start,
            end_time=end,
            duration_minutes=duration,
            total_distance_km=path_distance_km((p.latitude, p.longitude) for p in points),
            location_samples=len(points),
            sos_alerts=sos_count or 0,
            safety_score=trip.safety_score_snapshot,
        )

    # ---------- Owner-triggered transitions ----------

    def create(self, owner_id: str, data: TripCreate) -> Trip:
        profile = self._store.get(UserSafetyProfile, owner_id)
        now = self._clock.now()
        trip = Trip(
            owner_id=owner_id,
            title=data.title.strip(),
            description=data.description,
            start_location=data.start_location,
            end_location=data.end_location,
            planned_start=ensure_utc(data.planned_start),
            planned_end=ensure_utc(data.planned_end),
            status=PLANNED,
            safety_score_snapshot=profile.safety_score if profile else BASE_SAFETY_SCORE,
            version=1,
            created_at=now,
            updated_at=now,
        )
        trip = self._store.add(trip)
        logger.info("Trip %s created for user %s", trip.id, owner_id)
        return trip

    def start(self, trip_id: str, owner_id: str, latitude: float, longitude: float) -> Trip:
        """PLANNED -> ACTIVE, recording the first sample at the start position."""
        validate_coordinates(latitude, longitude)
        trip = self.get(trip_id, owner_id)
        self._require(trip, {PLANNED}, "start")
        now = self._clock.now()
        return self._transition(
            trip,
            ACTIVE,
            {"actual_start": now},
            after=self._record_fix(latitude, longitude, now, SampleSource.START),
        )

    def end(self, trip_id: str, owner_id: str, latitude: float, longitude: float) -> Trip:
        """ACTIVE -> COMPLETED, recording the final sample."""
        validate_coordinates(latitude, longitude)
        trip = self.get(trip_id, owner_id)
        self._require(trip, {ACTIVE}, "end")
        now = self._clock.now()
        return self._transition(
            trip,
            COMPLETED,
            {"actual_end": now},
            after=self._record_fix(latitude, longitude, now, SampleSource.END),
        )

    def cancel(self, trip_id: str, owner_id: str, reason: str | None = None) -> Trip:
        trip = self.get(trip_id, owner_id)
        self._require(trip, {PLANNED, ACTIVE}, "cancel")
        return self._transition(trip, CANCELLED, {"cancel_reason": reason})

    # ---------- Transitions owned by other components ----------

    def force_emergency(self, trip: Trip, db: Session | None = None) -> Trip:
        """ACTIVE -> EMERGENCY. Called by the SOS lifecycle when a ticket is raised.

        With ``db`` the write joins the caller's transaction.
        """
        self._require(trip, {ACTIVE}, "enter emergency")
        return self._transition(trip, EMERGENCY, {}, db=db)

    def clear_emergency(self, trip: Trip) -> Trip:
        """EMERGENCY -> ACTIVE. Called by the SOS lifecycle once no open ticket remains.

        Open tickets are recounted inside the write, after the trip row is
        taken, so a ticket raised since the caller's check rolls it back.
        """
        self._require(trip, {EMERGENCY}, "leave emergency")

        def _no_open_tickets(db: Session, updated: Trip) -> None:
            open_count = db.execute(
                select(func.count())
                .select_from(SosTicket)
                .where(SosTicket.trip_id == updated.id, SosTicket.status.in_(OPEN_SOS_STATUSES))
            ).scalar_one()
            if open_count:
                raise StateConflictError(f"Trip {updated.id} still has {open_count} open SOS ticket(s)")

        return self._transition(trip, ACTIVE, {}, after=_no_open_tickets)

    def reap_stale(self, trip: Trip, now: datetime, cutoff: datetime) -> Trip:
        """ACTIVE -> COMPLETED for a trip abandoned since ``cutoff``.

        Staleness is re-checked inside the write so a sample that lands after
        the reaper's scan rolls the reap back.
        """
        self._require(trip, {ACTIVE}, "reap")

        def _still_stale(db: Session, updated: Trip) -> None:
            latest = ensure_utc(
                db.execute(
                    select(func.max(LocationSample.timestamp)).where(
                        LocationSample.trip_id == updated.id,
                        LocationSample.source != SampleSource.BACKFILL.value,
                    )
                ).scalar_one_or_none()
            )
            if latest is not None and latest >= cutoff:
                raise StateConflictError(f"Trip {updated.id} reported a location after the stale scan")

        return self._transition(trip, COMPLETED, {"actual_end": now}, after=_still_stale)

    # ---------- Internals ----------

    def _require(self, trip: Trip, allowed: set[str], action: str) -> None:
        if trip.status not in allowed:
            raise InvalidTripStateError(f"Cannot {action} a trip that is {trip.status}")

    def _record_fix(
        self,
        latitude: float,
        longitude: float,
        at: datetime,
        source: SampleSource,
    ) -> Callable[[Session, Trip], None]:
        def _after(db: Session, updated: Trip) -> None:
            insert_sample(
                db,
                trip_id=updated.id,
                user_id=updated.owner_id,
                latitude=latitude,
                longitude=longitude,
                at=at,
                source=source.value,
            )
            upsert_position(db, updated.owner_id, latitude, longitude, at)

        return _after

    def _transition(
        self,
        trip: Trip,
        target: str,
        values: dict,
        after: Callable[[Session, Trip], None] | None = None,
        db: Session | None = None,
    ) -> Trip:
        if not is_valid_transition(trip.status, target):
            raise InvalidTripStateError(f"Trip cannot move from {trip.status} to {target}")
        source = trip.status
        values = {"status": target, "updated_at": self._clock.now(), **values}
        if db is None:
            updated = self._store.put(
                Trip,
                trip.id,
                expected_status=source,
                expected_version=trip.version,
                values=values,
                after=after,
            )
        else:
            updated = conditional_update(
                db, Trip, trip.id, expected_status=source, expected_version=trip.version, values=values
            )
            if after is not None:
                after(db, updated)
        logger.info("Trip %s: %s -> %s", trip.id, source, target)
        return updated
