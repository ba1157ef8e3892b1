from __future__ import annotations
from typing import Optional
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Integer, String, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base


class Room(Base):
    __tablename__ = "rooms"

    id:   Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    allows_overlap: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class Event(Base):
    __tablename__ = "events"

    id:    Mapped[int]       = mapped_column(Integer, primary_key=True, index=True)
    title: Mapped[str]       = mapped_column(String(200), nullable=False)
    start: Mapped[datetime]  = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end:   Mapped[datetime]  = mapped_column(DateTime(timezone=True), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)
    room_id: Mapped[int] = mapped_column(ForeignKey("rooms.id"), nullable=False, index=True)
    status:  Mapped[str] = mapped_column(String(32), nullable=False, default="pending_review")
    owner:   Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # series: children point at the first occurrence's row
    is_recurring:    Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    recurrence_rule: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    series_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"), nullable=True, index=True
    )

    @property
    def series_root(self) -> int:
        return self.series_id or self.id
