"""Read-only community contribution counts from the engagement service."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

import httpx

from safetrails.core.config import Settings


class CommunityServiceError(Exception):
    """Raised when community counts cannot be fetched."""


class CommunityCounter(Protocol):
    def count_posts(self, user_ids: Sequence[str]) -> dict[str, int]: ...


class NullCommunityCounter:
    """Everyone has zero posts. Used when no engagement service is configured."""

    def count_posts(self, user_ids: Sequence[str]) -> dict[str, int]:
        return {uid: 0 for uid in user_ids}


class HttpCommunityCounter:
    """Batch lookup: POST {base}/post-counts {"user_ids": [...]} -> {"counts": {uid: n}}."""

    def __init__(self, base_url: str, timeout: float = 5.0) -> None:
        self._url = base_url.rstrip("/") + "/post-counts"
        self._timeout = timeout

    def count_posts(self, user_ids: Sequence[str]) -> dict[str, int]:
        if not user_ids:
            return {}
        try:
            response = httpx.post(self._url, json={"user_ids": list(user_ids)}, timeout=self._timeout)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise CommunityServiceError(f"Community service request failed: {exc}") from exc

        data = response.json()
        counts = data.get("counts") if isinstance(data, dict) else None
        if not isinstance(counts, dict):
            raise CommunityServiceError("Community service response missing 'counts' field")
        return {uid: max(0, int(counts.get(uid, 0) or 0)) for uid in user_ids}


def build_community_counter(settings: Settings) -> CommunityCounter:
    if settings.community_service_url:
        return HttpCommunityCounter(settings.community_service_url, settings.http_timeout_seconds)
    return NullCommunityCounter()
