"""SOS ticket model."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from safetrails.db.base import Base, new_id


class SosStatus(str, enum.Enum):
    NEW = "NEW"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    FALSE_ALARM = "FALSE_ALARM"


class SosType(str, enum.Enum):
    GENERAL = "GENERAL"
    MEDICAL = "MEDICAL"
    SECURITY = "SECURITY"
    ACCIDENT = "ACCIDENT"
    NATURAL_DISASTER = "NATURAL_DISASTER"


TERMINAL_SOS_STATUSES = frozenset({SosStatus.RESOLVED.value, SosStatus.FALSE_ALARM.value})
OPEN_SOS_STATUSES = frozenset(
    {SosStatus.NEW.value, SosStatus.ACKNOWLEDGED.value, SosStatus.IN_PROGRESS.value}
)


class SosTicket(Base):
    """One emergency episode raised by a traveler."""

    __tablename__ = "sos_tickets"
    __table_args__ = (
        Index("ix_sos_tickets_trip_status", "trip_id", "status"),
        Index("ix_sos_tickets_status_updated", "status", "updated_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    trip_id: Mapped[str | None] = mapped_column(ForeignKey("trips.id", ondelete="SET NULL"), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SosStatus.NEW.value)
    sos_type: Mapped[str] = mapped_column(String(30), nullable=False, default=SosType.GENERAL.value)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    # Written once at creation; list of {name, phone, relation}
    contact_snapshot: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    resolved_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    resolution_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    dispatch_requested_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
