"""Workout model for logged training sessions."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fitness_tracker.models.base import Base, UTCDateTime, utcnow


class Workout(Base):
    """A workout logged by a user; only ever visible to its owner."""

    __tablename__ = "workouts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True, index=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)  # auth provider UUID

    # Workout details
    type: Mapped[str] = mapped_column(String(100))
    duration: Mapped[int] = mapped_column(Integer)  # minutes
    calories: Mapped[int] = mapped_column(Integer)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ai_analysis: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps (updated_at stays null until the first update)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True), default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Workout(id={self.id}, user_id='{self.user_id}', type='{self.type}')>"
