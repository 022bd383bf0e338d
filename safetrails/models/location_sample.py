"""Location sample model."""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from safetrails.db.base import Base


class SampleSource(str, enum.Enum):
    START = "START"
    END = "END"
    REPORT = "REPORT"
    BACKFILL = "BACKFILL"


class LocationSample(Base):
    """One geolocated observation on a trip. Append-only."""

    __tablename__ = "location_samples"
    __table_args__ = (
        Index("ix_location_samples_trip_timestamp", "trip_id", "timestamp"),
    )

    # Autoincrement ids give store order for the per-trip timestamp ordering.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    trip_id: Mapped[str] = mapped_column(ForeignKey("trips.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    accuracy: Mapped[float | None] = mapped_column(Float, nullable=True)
    speed: Mapped[float | None] = mapped_column(Float, nullable=True)
    heading: Mapped[float | None] = mapped_column(Float, nullable=True)
    altitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    source: Mapped[str] = mapped_column(String(20), nullable=False)  # START | END | REPORT | BACKFILL
    reported_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
