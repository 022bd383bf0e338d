"""Entity store: short-lived sessions and state-conditioned writes.

Every public method opens its own session, commits on success and hands back
detached entities. Status changes go through :meth:`EntityStore.put`, which
turns the optimistic precondition into the ``WHERE`` clause of a single
``UPDATE``; zero affected rows means another writer got there first.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy import Select, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker

from safetrails.core.clock import ensure_utc
from safetrails.core.errors import NotFoundError, StateConflictError, StoreUnavailableError
from safetrails.models.location_sample import LocationSample, SampleSource
from safetrails.models.trip import Trip
from safetrails.models.user_position import UserPosition

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")


def _primary_key(model: type) -> Any:
    return model.__mapper__.primary_key[0]


def _dialect_insert(db: Session, model: type):
    name = db.get_bind().dialect.name
    if name == "postgresql":
        return postgresql.insert(model)
    if name == "sqlite":
        return sqlite.insert(model)
    return None


def insert_sample(
    db: Session,
    *,
    trip_id: str,
    user_id: str,
    latitude: float,
    longitude: float,
    at: datetime,
    source: str,
    accuracy: float | None = None,
    speed: float | None = None,
    heading: float | None = None,
    altitude: float | None = None,
    reported_at: datetime | None = None,
) -> LocationSample:
    """Append a sample, clamping its timestamp so per-trip order never goes backwards.

    Must run in a transaction that already holds the trip row (conditional
    update or ``SELECT ... FOR UPDATE``) so concurrent appends serialize.
    """
    latest = db.execute(
        select(func.max(LocationSample.timestamp)).where(LocationSample.trip_id == trip_id)
    ).scalar_one_or_none()
    timestamp = ensure_utc(at)
    latest = ensure_utc(latest)
    if latest is not None and latest > timestamp:
        timestamp = latest

    sample = LocationSample(
        trip_id=trip_id,
        user_id=user_id,
        latitude=latitude,
        longitude=longitude,
        timestamp=timestamp,
        accuracy=accuracy,
        speed=speed,
        heading=heading,
        altitude=altitude,
        source=source,
        reported_at=reported_at,
    )
    db.add(sample)
    db.flush()
    return sample


def upsert_position(db: Session, user_id: str, latitude: float, longitude: float, at: datetime) -> None:
    """Record a user's last-known position; an older fix never overwrites a newer one."""
    stmt = _dialect_insert(db, UserPosition)
    if stmt is not None:
        stmt = stmt.values(user_id=user_id, latitude=latitude, longitude=longitude, updated_at=at)
        stmt = stmt.on_conflict_do_update(
            index_elements=[UserPosition.user_id],
            set_={
                "latitude": stmt.excluded.latitude,
                "longitude": stmt.excluded.longitude,
                "updated_at": stmt.excluded.updated_at,
            },
            where=UserPosition.updated_at <= stmt.excluded.updated_at,
        )
        db.execute(stmt)
        return

    position = db.get(UserPosition, user_id, with_for_update=True)
    if position is None:
        db.add(UserPosition(user_id=user_id, latitude=latitude, longitude=longitude, updated_at=at))
    elif ensure_utc(position.updated_at) <= ensure_utc(at):
        position.latitude = latitude
        position.longitude = longitude
        position.updated_at = at
    db.flush()


def lock_trip(db: Session, trip_id: str) -> Trip | None:
    """Load a trip with its row locked until the surrounding transaction ends."""
    return db.execute(select(Trip).where(Trip.id == trip_id).with_for_update()).scalar_one_or_none()


def conditional_update(
    db: Session,
    model: type[ModelT],
    entity_id: Any,
    *,
    expected_version: int,
    values: dict[str, Any],
    expected_status: str | None = None,
) -> ModelT:
    """Single guarded ``UPDATE`` that bumps the version; StateConflictError if no row matched."""
    pk = _primary_key(model)
    conditions = [pk == entity_id, model.version == expected_version]
    if expected_status is not None:
        conditions.append(model.status == expected_status)
    result = db.execute(
        update(model)
        .where(*conditions)
        .values(version=model.version + 1, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise StateConflictError(f"{model.__name__} {entity_id} changed since it was read")
    return db.get(model, entity_id, populate_existing=True)


class EntityStore:
    """Repository for trips, samples, tickets and profiles."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    @contextmanager
    def session(self) -> Iterator[Session]:
        """One unit of work. Connectivity faults surface as StoreUnavailableError."""
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except (OperationalError, InterfaceError, PoolTimeoutError) as exc:
            db.rollback()
            logger.warning("Store unavailable: %s", exc)
            raise StoreUnavailableError("Entity store is unavailable, retry later") from exc
        except DBAPIError as exc:
            db.rollback()
            if exc.connection_invalidated:
                logger.warning("Store connection invalidated: %s", exc)
                raise StoreUnavailableError("Entity store is unavailable, retry later") from exc
            raise
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def get(self, model: type[ModelT], entity_id: Any) -> ModelT | None:
        with self.session() as db:
            return db.get(model, entity_id)

    def add(self, entity: ModelT, after: Callable[[Session, ModelT], None] | None = None) -> ModelT:
        """Insert a new entity, optionally running extra writes in the same transaction."""
        with self.session() as db:
            db.add(entity)
            db.flush()
            if after is not None:
                after(db, entity)
            db.refresh(entity)
            return entity

    def query(self, stmt: Select) -> list[Any]:
        with self.session() as db:
            return list(db.execute(stmt).scalars().all())

    def rows(self, stmt: Select) -> Sequence[Any]:
        with self.session() as db:
            return db.execute(stmt).all()

    def scalar(self, stmt: Select) -> Any:
        with self.session() as db:
            return db.execute(stmt).scalar_one_or_none()

    def put(
        self,
        model: type[ModelT],
        entity_id: Any,
        *,
        expected_version: int,
        values: dict[str, Any],
        expected_status: str | None = None,
        after: Callable[[Session, ModelT], None] | None = None,
    ) -> ModelT:
        """Conditional write: applies ``values`` only if the entity is still as observed.

        Raises StateConflictError when the status or version moved on since the
        caller's read. ``after`` runs inside the same transaction, once the row
        is updated, for dependent inserts.
        """
        with self.session() as db:
            entity = conditional_update(
                db,
                model,
                entity_id,
                expected_version=expected_version,
                values=values,
                expected_status=expected_status,
            )
            if after is not None:
                after(db, entity)
            return entity

    def insert_if_absent(self, entity: ModelT) -> ModelT:
        """Insert keyed on primary key; StateConflictError if another writer created it first."""
        model = type(entity)
        pk_name = _primary_key(model).name
        with self.session() as db:
            stmt = _dialect_insert(db, model)
            if stmt is None:
                if db.get(model, getattr(entity, pk_name)) is not None:
                    raise StateConflictError(f"{model.__name__} {getattr(entity, pk_name)} already exists")
                db.add(entity)
                db.flush()
                return entity
            columns = {prop.key: getattr(entity, prop.key) for prop in model.__mapper__.column_attrs}
            result = db.execute(
                stmt.values(**{k: v for k, v in columns.items() if v is not None}).on_conflict_do_nothing(
                    index_elements=[pk_name]
                )
            )
            if result.rowcount != 1:
                raise StateConflictError(f"{model.__name__} {getattr(entity, pk_name)} already exists")
            return db.get(model, getattr(entity, pk_name))

    def append_sample(
        self,
        trip_id: str,
        guard: Callable[[Trip], None],
        **sample_fields: Any,
    ) -> LocationSample:
        """Lock the trip, run ``guard`` against it, then append a sample and move the owner's position.

        ``guard`` raises to reject; it sees the trip as of the lock, so a trip
        completed by another writer a moment earlier is rejected here.
        Backfilled samples leave the last-known position alone.
        """
        with self.session() as db:
            trip = lock_trip(db, trip_id)
            if trip is None:
                raise NotFoundError("Trip not found")
            guard(trip)
            sample = insert_sample(db, trip_id=trip_id, user_id=trip.owner_id, **sample_fields)
            if sample.source != SampleSource.BACKFILL.value:
                upsert_position(db, trip.owner_id, sample.latitude, sample.longitude, sample.timestamp)
            return sample
