"""Trip and location schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from safetrails.core.clock import ensure_utc


class TripCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    planned_start: datetime
    planned_end: datetime
    start_location: str | None = Field(default=None, max_length=255)
    end_location: str | None = Field(default=None, max_length=255)

    @model_validator(mode="after")
    def _check_window(self) -> "TripCreate":
        if not self.title.strip():
            raise ValueError("title must not be blank")
        # Naive values are read as UTC.
        if ensure_utc(self.planned_end) < ensure_utc(self.planned_start):
            raise ValueError("planned_end must not be before planned_start")
        return self


class Coordinates(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class TripCancel(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class LocationReport(Coordinates):
    """Raw position report from the mobile client."""

    timestamp: datetime | None = None
    accuracy: float | None = Field(default=None, ge=0)
    speed: float | None = Field(default=None, ge=0)
    heading: float | None = Field(default=None, ge=0, le=360)
    altitude: float | None = None


class TripResponse(BaseModel):
    id: str
    owner_id: str
    title: str
    description: str | None
    start_location: str | None
    end_location: str | None
    planned_start: datetime
    planned_end: datetime
    actual_start: datetime | None
    actual_end: datetime | None
    status: str
    safety_score_snapshot: int
    cancel_reason: str | None
    version: int

    model_config = {"from_attributes": True}


class LocationSampleResponse(BaseModel):
    id: int
    trip_id: str
    user_id: str
    latitude: float
    longitude: float
    timestamp: datetime
    accuracy: float | None
    speed: float | None
    heading: float | None
    altitude: float | None
    source: str
    reported_at: datetime | None

    model_config = {"from_attributes": True}


class TripStatsResponse(BaseModel):
    trip_id: str
    status: str
    start_time: datetime | None
    end_time: datetime | None
    duration_minutes: int | None
    total_distance_km: float
    location_samples: int
    sos_alerts: int
    safety_score: int

    model_config = {"from_attributes": True}
