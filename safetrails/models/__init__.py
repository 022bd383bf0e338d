"""SQLAlchemy models."""

from __future__ import annotations

from safetrails.models.location_sample import LocationSample, SampleSource
from safetrails.models.sos_ticket import SosStatus, SosTicket, SosType
from safetrails.models.trip import Trip, TripStatus
from safetrails.models.user_position import UserPosition
from safetrails.models.user_safety_profile import UserSafetyProfile

__all__ = [
    "LocationSample",
    "SampleSource",
    "SosStatus",
    "SosTicket",
    "SosType",
    "Trip",
    "TripStatus",
    "UserPosition",
    "UserSafetyProfile",
]
