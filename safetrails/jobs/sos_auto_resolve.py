"""SOS auto-resolver: close tickets nobody has touched for days."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import datetime, timedelta

from sqlalchemy import exists, select

from safetrails.core.clock import Clock
from safetrails.core.safety_policies import AUTO_RESOLVE_NOTE
from safetrails.core.security import SYSTEM_ACTOR
from safetrails.db.store import EntityStore
from safetrails.jobs.base import ReconciliationJob
from safetrails.models.sos_ticket import OPEN_SOS_STATUSES, SosTicket
from safetrails.models.trip import Trip, TripStatus
from safetrails.services.sos_service import SosLifecycleManager

logger = logging.getLogger(__name__)


class SosAutoResolverJob(ReconciliationJob):
    """Resolves inactive tickets through the normal resolve path, then
    returns EMERGENCY trips left without any open ticket to ACTIVE (a crash
    between a ticket closing and its trip clearing leaves such trips behind)."""

    name = "sos_auto_resolver"

    def __init__(
        self,
        store: EntityStore,
        clock: Clock,
        sos: SosLifecycleManager,
        interval: timedelta = timedelta(hours=24),
        inactivity: timedelta = timedelta(days=3),
        batch_size: int = 500,
    ) -> None:
        super().__init__(store, clock, interval, batch_size)
        self._sos = sos
        self.inactivity = inactivity

    def select_candidates(self, now: datetime) -> Iterator[SosTicket | Trip]:
        cutoff = now - self.inactivity
        yield from self._store.query(
            select(SosTicket)
            .where(SosTicket.status.in_(OPEN_SOS_STATUSES), SosTicket.updated_at < cutoff)
            .order_by(SosTicket.updated_at, SosTicket.id)
            .limit(self.batch_size)
        )
        # Queried after the tickets above are processed, so trips they cleared are not listed.
        has_open_ticket = exists().where(
            SosTicket.trip_id == Trip.id,
            SosTicket.status.in_(OPEN_SOS_STATUSES),
        )
        yield from self._store.query(
            select(Trip)
            .where(Trip.status == TripStatus.EMERGENCY.value, ~has_open_ticket)
            .order_by(Trip.id)
            .limit(self.batch_size)
        )

    def process(self, candidate: SosTicket | Trip, now: datetime) -> bool:
        if isinstance(candidate, Trip):
            cleared = self._sos.clear_if_no_open_tickets(candidate.id)
            if cleared:
                logger.warning("Trip %s was in EMERGENCY with no open SOS; returned to ACTIVE", candidate.id)
            return cleared

        days = int(self.inactivity.total_seconds() // 86400)
        result = self._sos.resolve(
            candidate.id,
            SYSTEM_ACTOR,
            note=AUTO_RESOLVE_NOTE.format(days=days),
            expected_version=candidate.version,
        )
        return result.applied
