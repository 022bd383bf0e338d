"""SOS ticket lifecycle."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select

from safetrails.core.clock import Clock
from safetrails.core.errors import (
    ForbiddenError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from safetrails.core.security import Actor
from safetrails.db.store import EntityStore, lock_trip, upsert_position
from safetrails.models.sos_ticket import OPEN_SOS_STATUSES, TERMINAL_SOS_STATUSES, SosStatus, SosTicket, SosType
from safetrails.models.trip import Trip, TripStatus
from safetrails.schemas.sos import EmergencyContact, contact_list_adapter
from safetrails.services.geo_service import validate_coordinates
from safetrails.services.trip_service import TripLifecycleManager

logger = logging.getLogger(__name__)

NEW = SosStatus.NEW.value
ACKNOWLEDGED = SosStatus.ACKNOWLEDGED.value
IN_PROGRESS = SosStatus.IN_PROGRESS.value
RESOLVED = SosStatus.RESOLVED.value
FALSE_ALARM = SosStatus.FALSE_ALARM.value

SOS_TRANSITIONS: dict[str, frozenset[str]] = {
    NEW: frozenset({ACKNOWLEDGED, RESOLVED, FALSE_ALARM}),
    ACKNOWLEDGED: frozenset({IN_PROGRESS, RESOLVED, FALSE_ALARM}),
    IN_PROGRESS: frozenset({RESOLVED, FALSE_ALARM}),
    RESOLVED: frozenset(),
    FALSE_ALARM: frozenset(),
}

OUTCOME_OK = "ok"
OUTCOME_ALREADY_TERMINAL = "already_terminal"


@dataclass
class SosTransitionResult:
    """Outcome of a ticket transition. ``applied`` is False for terminal no-ops."""

    ticket: SosTicket
    applied: bool

    @property
    def outcome(self) -> str:
        return OUTCOME_OK if self.applied else OUTCOME_ALREADY_TERMINAL


def parse_contacts(contacts: Sequence[EmergencyContact | dict[str, Any]]) -> list[EmergencyContact]:
    """Validate an emergency-contact list into typed records."""
    raw = [c.model_dump() if isinstance(c, EmergencyContact) else c for c in contacts]
    try:
        return contact_list_adapter.validate_python(raw)
    except PydanticValidationError as exc:
        fields = {
            "emergency_contacts." + ".".join(str(p) for p in err["loc"]): err["msg"]
            for err in exc.errors()
        }
        raise ValidationError(fields) from exc


def mask_phone(phone: str) -> str:
    """Hide all but the last four digits."""
    digits = re.sub(r"\D", "", phone)
    return "***-***-" + digits[-4:]


class SosLifecycleManager:
    """Validates and applies ticket transitions; puts the linked trip into and out of EMERGENCY."""

    def __init__(self, store: EntityStore, clock: Clock, trips: TripLifecycleManager) -> None:
        self._store = store
        self._clock = clock
        self._trips = trips

    # ---------- Reads ----------

    def get(self, ticket_id: str, actor: Actor) -> SosTicket:
        """Get a ticket. Travelers only see their own; operators see all."""
        ticket = self._store.get(SosTicket, ticket_id)
        if ticket is None:
            raise NotFoundError("SOS ticket not found")
        if not (actor.is_operator or actor.is_system) and ticket.user_id != actor.user_id:
            raise NotFoundError("SOS ticket not found")
        return ticket

    def list_for_owner(
        self,
        owner_id: str,
        status: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> list[SosTicket]:
        stmt = select(SosTicket).where(SosTicket.user_id == owner_id)
        if status:
            stmt = stmt.where(SosTicket.status == status)
        stmt = stmt.order_by(SosTicket.created_at.desc(), SosTicket.id.desc()).limit(limit).offset(offset)
        return self._store.query(stmt)

    def list_all(
        self,
        status: str | None = None,
        sos_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[SosTicket]:
        """Operator queue, newest first."""
        stmt = select(SosTicket)
        if status:
            stmt = stmt.where(SosTicket.status == status)
        if sos_type:
            stmt = stmt.where(SosTicket.sos_type == sos_type)
        stmt = stmt.order_by(SosTicket.created_at.desc(), SosTicket.id.desc()).limit(limit).offset(offset)
        return self._store.query(stmt)

    def stats_for_owner(self, owner_id: str) -> dict[str, Any]:
        rows = self._store.rows(
            select(SosTicket.status, SosTicket.sos_type, func.count())
            .where(SosTicket.user_id == owner_id)
            .group_by(SosTicket.status, SosTicket.sos_type)
        )
        by_status = {s.value: 0 for s in SosStatus}
        by_type: dict[str, int] = {}
        total = 0
        for status, sos_type, count in rows:
            by_status[status] = by_status.get(status, 0) + count
            by_type[sos_type] = by_type.get(sos_type, 0) + count
            total += count
        return {"total": total, "by_status": by_status, "by_type": by_type}

    def open_ticket_count(self, trip_id: str) -> int:
        return self._store.scalar(
            select(func.count())
            .select_from(SosTicket)
            .where(SosTicket.trip_id == trip_id, SosTicket.status.in_(OPEN_SOS_STATUSES))
        ) or 0

    @staticmethod
    def test_contacts(contacts: Sequence[EmergencyContact | dict[str, Any]]) -> list[dict[str, str]]:
        """Dry run over a contact list: validates it and returns masked entries."""
        parsed = parse_contacts(contacts)
        if not parsed:
            raise ValidationError({"emergency_contacts": "No emergency contacts configured"})
        return [{"name": c.name, "relation": c.relation, "phone": mask_phone(c.phone)} for c in parsed]

    # ---------- Creation ----------

    def trigger(
        self,
        owner_id: str,
        *,
        location: str,
        latitude: float,
        longitude: float,
        contacts: Sequence[EmergencyContact | dict[str, Any]] = (),
        sos_type: str = SosType.GENERAL.value,
        description: str | None = None,
        trip_id: str | None = None,
    ) -> SosTicket:
        """Raise a NEW ticket with a frozen copy of the contacts.

        A linked ACTIVE trip is forced into EMERGENCY in the same transaction.
        A linked trip in any other state is only referenced.
        """
        validate_coordinates(latitude, longitude)
        if not location or not location.strip():
            raise ValidationError({"location": "is required"})
        if sos_type not in {t.value for t in SosType}:
            raise ValidationError({"sos_type": f"unknown type {sos_type!r}"})
        snapshot = [c.model_dump() for c in parse_contacts(contacts)]

        now = self._clock.now()
        ticket = SosTicket(
            user_id=owner_id,
            trip_id=trip_id,
            status=NEW,
            sos_type=sos_type,
            description=description,
            location=location.strip(),
            latitude=latitude,
            longitude=longitude,
            contact_snapshot=snapshot,
            dispatch_requested_at=now,
            version=1,
            created_at=now,
            updated_at=now,
        )

        # The trip row stays locked until commit, so clearing emergency waits for this ticket.
        with self._store.session() as db:
            trip = None
            if trip_id is not None:
                trip = lock_trip(db, trip_id)
                if trip is None or trip.owner_id != owner_id:
                    raise NotFoundError("Trip not found")
            db.add(ticket)
            db.flush()
            upsert_position(db, owner_id, latitude, longitude, now)
            if trip is not None and trip.status == TripStatus.ACTIVE.value:
                self._trips.force_emergency(trip, db=db)
            db.refresh(ticket)
        logger.info("SOS %s raised by user %s (trip=%s, contacts=%s)", ticket.id, owner_id, trip_id, len(snapshot))
        return ticket

    # ---------- Transitions ----------

    def acknowledge(self, ticket_id: str, actor: Actor) -> SosTransitionResult:
        return self._apply(ticket_id, actor, ACKNOWLEDGED, operator_only=True)

    def begin_work(self, ticket_id: str, actor: Actor) -> SosTransitionResult:
        return self._apply(ticket_id, actor, IN_PROGRESS, operator_only=True)

    def resolve(
        self,
        ticket_id: str,
        actor: Actor,
        note: str | None = None,
        expected_version: int | None = None,
    ) -> SosTransitionResult:
        return self._apply(ticket_id, actor, RESOLVED, note=note, expected_version=expected_version)

    def mark_false_alarm(self, ticket_id: str, actor: Actor, note: str | None = None) -> SosTransitionResult:
        return self._apply(ticket_id, actor, FALSE_ALARM, note=note)

    def cancel(self, ticket_id: str, actor: Actor, reason: str | None = None) -> SosTransitionResult:
        """Owner withdraws an accidental trigger. Only while the ticket is still NEW."""
        ticket = self.get(ticket_id, actor)
        if ticket.status in TERMINAL_SOS_STATUSES:
            return SosTransitionResult(ticket=ticket, applied=False)
        if ticket.user_id != actor.user_id:
            raise ForbiddenError("Only the traveler who raised this SOS can cancel it")
        if ticket.status != NEW:
            raise StateConflictError(f"SOS {ticket.id} is {ticket.status}; only NEW tickets can be cancelled")
        note = f"Cancellation reason: {reason}" if reason else "Cancelled by traveler"
        return self._write(ticket, actor, FALSE_ALARM, note)

    def clear_if_no_open_tickets(self, trip_id: str) -> bool:
        """Return the trip to ACTIVE when it is in EMERGENCY and no open ticket references it.

        Raises StateConflictError when the trip moved, or a ticket was raised
        against it, between this check and the write.
        """
        if self.open_ticket_count(trip_id):
            return False
        trip = self._store.get(Trip, trip_id)
        if trip is None or trip.status != TripStatus.EMERGENCY.value:
            return False
        self._trips.clear_emergency(trip)
        return True

    def _apply(
        self,
        ticket_id: str,
        actor: Actor,
        target: str,
        note: str | None = None,
        operator_only: bool = False,
        expected_version: int | None = None,
    ) -> SosTransitionResult:
        ticket = self.get(ticket_id, actor)
        if ticket.status in TERMINAL_SOS_STATUSES:
            logger.info("SOS %s already %s; %s ignored", ticket.id, ticket.status, target)
            return SosTransitionResult(ticket=ticket, applied=False)
        if operator_only and not actor.is_operator:
            raise ForbiddenError(f"Only operators can move an SOS to {target}")
        if expected_version is not None and ticket.version != expected_version:
            raise StateConflictError(f"SOS {ticket.id} changed since it was read")
        if target not in SOS_TRANSITIONS[ticket.status]:
            raise StateConflictError(f"SOS {ticket.id} cannot move from {ticket.status} to {target}")
        return self._write(ticket, actor, target, note)

    def _write(self, ticket: SosTicket, actor: Actor, target: str, note: str | None) -> SosTransitionResult:
        now = self._clock.now()
        values: dict[str, Any] = {"status": target, "updated_at": now}
        if target in TERMINAL_SOS_STATUSES:
            values.update(resolved_at=now, resolved_by=actor.user_id, resolution_note=note)
        elif note:
            values["resolution_note"] = note

        try:
            updated = self._store.put(
                SosTicket,
                ticket.id,
                expected_status=ticket.status,
                expected_version=ticket.version,
                values=values,
            )
        except StateConflictError:
            # A retried request racing its own first attempt lands here.
            current = self._store.get(SosTicket, ticket.id)
            if current is not None and current.status in TERMINAL_SOS_STATUSES:
                return SosTransitionResult(ticket=current, applied=False)
            raise

        logger.info("SOS %s: %s -> %s by %s", ticket.id, ticket.status, target, actor.user_id)
        if target in TERMINAL_SOS_STATUSES and updated.trip_id is not None:
            # Counted after our own terminal write commits, so the last of
            # several concurrent closers always sees zero open tickets.
            try:
                self.clear_if_no_open_tickets(updated.trip_id)
            except StateConflictError:
                logger.warning("SOS %s: trip %s changed while leaving emergency", updated.id, updated.trip_id)
        return SosTransitionResult(ticket=updated, applied=True)
