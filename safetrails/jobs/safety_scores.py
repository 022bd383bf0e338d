"""Safety-score recomputation for every known user."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func, select, union

from safetrails.core.clock import Clock
from safetrails.db.store import EntityStore
from safetrails.jobs.base import ReconciliationJob
from safetrails.models.sos_ticket import SosTicket
from safetrails.models.trip import Trip, TripStatus
from safetrails.models.user_safety_profile import UserSafetyProfile
from safetrails.services.community import CommunityCounter
from safetrails.services.safety_score import compute_safety_score


@dataclass
class ScoreCandidate:
    user_id: str
    sos_count: int
    community_post_count: int
    completed_trip_count: int
    profile: UserSafetyProfile | None


class SafetyScoreJob(ReconciliationJob):
    """Users are walked in pages of ``batch_size``; counts are fetched per page."""

    name = "safety_score_recompute"

    def __init__(
        self,
        store: EntityStore,
        clock: Clock,
        community: CommunityCounter,
        interval: timedelta = timedelta(hours=24),
        batch_size: int = 500,
    ) -> None:
        super().__init__(store, clock, interval, batch_size)
        self._community = community

    def select_candidates(self, now: datetime) -> Iterator[ScoreCandidate]:
        after = ""
        while True:
            user_ids = self._user_page(after)
            if not user_ids:
                return
            yield from self._load_page(user_ids)
            if len(user_ids) < self.batch_size:
                return
            after = user_ids[-1]

    def candidate_id(self, candidate: ScoreCandidate) -> str:
        return candidate.user_id

    def process(self, candidate: ScoreCandidate, now: datetime) -> bool:
        score = compute_safety_score(
            candidate.sos_count,
            candidate.community_post_count,
            candidate.completed_trip_count,
        )
        profile = candidate.profile
        if profile is None:
            self._store.insert_if_absent(
                UserSafetyProfile(user_id=candidate.user_id, safety_score=score, last_recomputed_at=now, version=1)
            )
            return True
        if profile.safety_score == score:
            return False
        self._store.put(
            UserSafetyProfile,
            candidate.user_id,
            expected_version=profile.version,
            values={"safety_score": score, "last_recomputed_at": now},
        )
        return True

    def _user_page(self, after: str) -> list[str]:
        known = union(
            select(Trip.owner_id.label("user_id")),
            select(SosTicket.user_id.label("user_id")),
            select(UserSafetyProfile.user_id.label("user_id")),
        ).subquery()
        return self._store.query(
            select(known.c.user_id)
            .where(known.c.user_id > after)
            .order_by(known.c.user_id)
            .limit(self.batch_size)
        )

    def _load_page(self, user_ids: Sequence[str]) -> list[ScoreCandidate]:
        sos_counts = {
            uid: n
            for uid, n in self._store.rows(
                select(SosTicket.user_id, func.count())
                .where(SosTicket.user_id.in_(user_ids))
                .group_by(SosTicket.user_id)
            )
        }
        completed = {
            uid: n
            for uid, n in self._store.rows(
                select(Trip.owner_id, func.count())
                .where(Trip.owner_id.in_(user_ids), Trip.status == TripStatus.COMPLETED.value)
                .group_by(Trip.owner_id)
            )
        }
        profiles = {
            p.user_id: p
            for p in self._store.query(select(UserSafetyProfile).where(UserSafetyProfile.user_id.in_(user_ids)))
        }
        posts = self._community.count_posts(user_ids)
        return [
            ScoreCandidate(
                user_id=uid,
                sos_count=sos_counts.get(uid, 0),
                community_post_count=posts.get(uid, 0),
                completed_trip_count=completed.get(uid, 0),
                profile=profiles.get(uid),
            )
            for uid in user_ids
        ]
