"""Straight-line distance helpers."""

import math
from collections.abc import Iterable

from safetrails.core.errors import ValidationError
from safetrails.core.safety_policies import EARTH_RADIUS_KM


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance between two lat/lng points in kilometers."""
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def path_distance_km(points: Iterable[tuple[float, float]]) -> float:
    """Sum of straight-line hops along an ordered path of (lat, lng) points."""
    total = 0.0
    previous: tuple[float, float] | None = None
    for point in points:
        if previous is not None:
            total += haversine_km(previous[0], previous[1], point[0], point[1])
        previous = point
    return round(total, 2)


def validate_coordinates(latitude: float, longitude: float) -> None:
    """Raise ValidationError for coordinates outside the WGS84 range."""
    fields: dict[str, str] = {}
    if latitude is None or not -90 <= latitude <= 90:
        fields["latitude"] = "must be between -90 and 90"
    if longitude is None or not -180 <= longitude <= 180:
        fields["longitude"] = "must be between -180 and 180"
    if fields:
        raise ValidationError(fields)
