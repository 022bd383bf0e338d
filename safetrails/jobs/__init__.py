"""Reconciliation jobs and their wiring."""

from __future__ import annotations

from datetime import timedelta

from safetrails.core.clock import Clock
from safetrails.core.config import Settings
from safetrails.db.store import EntityStore
from safetrails.jobs.base import JobReport, ReconciliationJob
from safetrails.jobs.location_backfill import LocationBackfillJob
from safetrails.jobs.safety_scores import SafetyScoreJob
from safetrails.jobs.scheduler import AsyncioScheduler, ManualScheduler, Scheduler
from safetrails.jobs.sos_auto_resolve import SosAutoResolverJob
from safetrails.jobs.stale_trips import StaleTripReaperJob
from safetrails.services.community import CommunityCounter
from safetrails.services.location_service import LocationSampler
from safetrails.services.sos_service import SosLifecycleManager
from safetrails.services.trip_service import TripLifecycleManager

__all__ = [
    "AsyncioScheduler",
    "JobReport",
    "LocationBackfillJob",
    "ManualScheduler",
    "ReconciliationJob",
    "SafetyScoreJob",
    "Scheduler",
    "SosAutoResolverJob",
    "StaleTripReaperJob",
    "build_jobs",
    "register_jobs",
]


def build_jobs(
    store: EntityStore,
    clock: Clock,
    settings: Settings,
    community: CommunityCounter,
) -> list[ReconciliationJob]:
    """The four reconciliation jobs, configured from settings."""
    trips = TripLifecycleManager(store, clock)
    sos = SosLifecycleManager(store, clock, trips)
    sampler = LocationSampler(store, clock)
    batch = settings.job_batch_size
    return [
        LocationBackfillJob(
            store,
            clock,
            sampler,
            interval=timedelta(minutes=settings.location_backfill_interval_minutes),
            batch_size=batch,
        ),
        StaleTripReaperJob(
            store,
            clock,
            trips,
            interval=timedelta(minutes=settings.stale_trip_interval_minutes),
            stale_after=timedelta(minutes=settings.stale_trip_window_minutes),
            batch_size=batch,
        ),
        SosAutoResolverJob(
            store,
            clock,
            sos,
            interval=timedelta(hours=settings.sos_auto_resolve_interval_hours),
            inactivity=timedelta(days=settings.sos_inactivity_days),
            batch_size=batch,
        ),
        SafetyScoreJob(
            store,
            clock,
            community,
            interval=timedelta(hours=settings.safety_score_interval_hours),
            batch_size=batch,
        ),
    ]


def register_jobs(scheduler: Scheduler, jobs: list[ReconciliationJob]) -> None:
    for job in jobs:
        scheduler.register(job.name, job.interval, job.run_once)
