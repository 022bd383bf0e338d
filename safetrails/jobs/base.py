"""Shared pass loop for the reconciliation jobs."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from safetrails.core.clock import Clock
from safetrails.core.errors import StateConflictError, StoreUnavailableError
from safetrails.db.store import EntityStore

logger = logging.getLogger(__name__)


@dataclass
class JobReport:
    """Summary of one pass."""

    job: str
    started_at: datetime
    finished_at: datetime | None = None
    scanned: int = 0
    applied: int = 0
    conflicts: int = 0
    failed: int = 0
    failed_ids: list[str] = field(default_factory=list)
    skipped: bool = False
    aborted: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "job": self.job,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "scanned": self.scanned,
            "applied": self.applied,
            "conflicts": self.conflicts,
            "failed": self.failed,
            "failed_ids": list(self.failed_ids),
            "skipped": self.skipped,
            "aborted": self.aborted,
        }


class ReconciliationJob(ABC):
    """Periodic corrective pass over persisted state.

    Subclasses pick a bounded set of candidates and correct one entity at a
    time through the lifecycle managers. A failure on one entity is logged and
    the pass moves on; that entity is retried on the next tick. A store-wide
    outage aborts the pass and is re-raised to the scheduler.
    """

    name: str = "job"

    def __init__(self, store: EntityStore, clock: Clock, interval: timedelta, batch_size: int = 500) -> None:
        self._store = store
        self._clock = clock
        self.interval = interval
        self.batch_size = batch_size
        self.last_report: JobReport | None = None
        self._run_lock = threading.Lock()

    @abstractmethod
    def select_candidates(self, now: datetime) -> Iterable[Any]:
        """Entities that need correcting as of ``now``."""

    @abstractmethod
    def process(self, candidate: Any, now: datetime) -> bool:
        """Correct one entity. Returns True when a write was applied."""

    def candidate_id(self, candidate: Any) -> str:
        return str(getattr(candidate, "id", candidate))

    def run_once(self) -> JobReport:
        now = self._clock.now()
        if not self._run_lock.acquire(blocking=False):
            logger.warning("%s: previous pass still running, skipping this tick", self.name)
            return JobReport(job=self.name, started_at=now, finished_at=now, skipped=True)

        report = JobReport(job=self.name, started_at=now)
        try:
            for candidate in self.select_candidates(now):
                report.scanned += 1
                entity_id = self.candidate_id(candidate)
                try:
                    if self.process(candidate, now):
                        report.applied += 1
                except StoreUnavailableError:
                    raise
                except StateConflictError as exc:
                    report.conflicts += 1
                    logger.info("%s: %s changed concurrently, left for next tick (%s)", self.name, entity_id, exc)
                except Exception:
                    report.failed += 1
                    report.failed_ids.append(entity_id)
                    logger.exception("%s: failed to reconcile %s", self.name, entity_id)
        except StoreUnavailableError:
            report.aborted = True
            logger.error("%s: store unavailable, pass aborted after %s entities", self.name, report.scanned)
            raise
        except Exception:
            # Candidate selection itself failed (e.g. a collaborator is down).
            report.aborted = True
            logger.error("%s: pass aborted after %s entities", self.name, report.scanned)
            raise
        finally:
            report.finished_at = self._clock.now()
            self.last_report = report
            self._run_lock.release()

        logger.info(
            "%s: scanned=%s applied=%s conflicts=%s failed=%s",
            self.name,
            report.scanned,
            report.applied,
            report.conflicts,
            report.failed,
        )
        return report
