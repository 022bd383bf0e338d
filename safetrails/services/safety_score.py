"""Safety score formula."""

from safetrails.core.safety_policies import (
    BASE_SAFETY_SCORE,
    COMMUNITY_BONUS_CAP,
    COMMUNITY_POST_BONUS,
    COMPLETED_TRIP_BONUS,
    COMPLETED_TRIP_BONUS_CAP,
    MAX_SAFETY_SCORE,
    MIN_SAFETY_SCORE,
    SOS_PENALTY,
)


def compute_safety_score(sos_count: int, community_post_count: int, completed_trip_count: int) -> int:
    """100 - 10/SOS + 2/post (max +20) + 1/completed trip (max +30), clamped to [0, 100]."""
    if min(sos_count, community_post_count, completed_trip_count) < 0:
        raise ValueError("counts must not be negative")
    score = BASE_SAFETY_SCORE
    score -= SOS_PENALTY * sos_count
    score += min(COMMUNITY_POST_BONUS * community_post_count, COMMUNITY_BONUS_CAP)
    score += min(COMPLETED_TRIP_BONUS * completed_trip_count, COMPLETED_TRIP_BONUS_CAP)
    return max(MIN_SAFETY_SCORE, min(MAX_SAFETY_SCORE, score))
