"""User safety profile model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from safetrails.db.base import Base


class UserSafetyProfile(Base):
    """Derived safety score of a user, recomputed wholesale by the safety-score job."""

    __tablename__ = "user_safety_profiles"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    safety_score: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    last_recomputed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
