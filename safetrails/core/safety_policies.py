"""Safety policy constants."""

from __future__ import annotations

# Safety score formula
BASE_SAFETY_SCORE = 100
SOS_PENALTY = 10
COMMUNITY_POST_BONUS = 2
COMMUNITY_BONUS_CAP = 20
COMPLETED_TRIP_BONUS = 1
COMPLETED_TRIP_BONUS_CAP = 30
MIN_SAFETY_SCORE = 0
MAX_SAFETY_SCORE = 100

# Note attached to tickets closed by the auto-resolver
AUTO_RESOLVE_NOTE = "Auto-resolved: No activity for {days}+ days"

# Accepted clock skew for client-reported sample timestamps (seconds)
MAX_REPORT_CLOCK_SKEW_SECONDS = 300

# Earth radius used by the straight-line distance approximation
EARTH_RADIUS_KM = 6371.0
