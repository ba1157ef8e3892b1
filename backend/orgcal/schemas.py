# backend/orgcal/schemas.py
from __future__ import annotations
from typing import Literal, Optional
from datetime import date, datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .recurrence import MAX_INTERVAL, RecurrenceConfig

Frequency = Literal["none", "daily", "weekly", "monthly", "yearly"]
EndType = Literal["never", "on", "after"]
Status = Literal["draft", "pending_review", "approved", "rejected", "published", "cancelled"]
Scope = Literal["single", "series"]


class RecurrenceIn(BaseModel):
    """Recurrence settings as the rule builder sends them (camelCase)."""
    frequency: Frequency = "none"
    interval: int = Field(default=1, ge=1, le=MAX_INTERVAL)
    daysOfWeek: Optional[list[int]] = None
    dayOfMonth: Optional[int] = None
    monthOfYear: Optional[int] = None
    monthlyType: Literal["dayOfMonth", "weekday"] = "dayOfMonth"
    weekOfMonth: Optional[int] = None
    dayOfWeekForMonth: Optional[int] = None
    endType: EndType = "never"
    endDate: Optional[date] = None
    occurrences: Optional[int] = None

    def to_config(self) -> RecurrenceConfig:
        return RecurrenceConfig(
            frequency=self.frequency,
            interval=self.interval,
            days_of_week=frozenset(self.daysOfWeek or ()),
            day_of_month=self.dayOfMonth,
            month_of_year=self.monthOfYear,
            monthly_type="weekday" if self.monthlyType == "weekday" else "day_of_month",
            week_of_month=self.weekOfMonth,
            day_of_week_for_month=self.dayOfWeekForMonth,
            end_type=self.endType,
            end_date=self.endDate,
            occurrences=self.occurrences,
        )

    @classmethod
    def from_config(cls, config: RecurrenceConfig) -> "RecurrenceIn":
        return cls(
            frequency=config.frequency,
            interval=config.interval,
            daysOfWeek=sorted(config.days_of_week) or None,
            dayOfMonth=config.day_of_month,
            monthOfYear=config.month_of_year,
            monthlyType="weekday" if config.monthly_type == "weekday" else "dayOfMonth",
            weekOfMonth=config.week_of_month,
            dayOfWeekForMonth=config.day_of_week_for_month,
            endType=config.end_type,
            endDate=config.end_date,
            occurrences=config.occurrences,
        )


class RuleIn(BaseModel):
    rule: Optional[str] = None


class RuleOut(BaseModel):
    rule: Optional[str] = None
    summary: str


class RoomIn(BaseModel):
    name: str
    allows_overlap: bool = False


class RoomOut(RoomIn):
    id: int
    model_config = ConfigDict(from_attributes=True)


class EventIn(BaseModel):
    """Event creation/update. Naive datetimes are read in ``tz`` (UTC if unset)."""
    title: str = Field(min_length=1, max_length=200)
    start: datetime
    end:   datetime
    room_id: int
    description: Optional[str] = None
    owner:       Optional[str] = None
    status: Status = "pending_review"
    tz: Optional[str] = None
    recurrence: Optional[RecurrenceIn] = None


class EventOut(BaseModel):
    id: int
    title: str
    start: datetime
    end:   datetime
    room_id: int
    description: Optional[str] = None
    owner:       Optional[str] = None
    status: str
    is_recurring: bool = False
    recurrence_rule: Optional[str] = None
    series_id: Optional[int] = None
    model_config = ConfigDict(from_attributes=True)

    @field_validator("start", "end")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        # SQLite hands datetimes back without their zone; they are stored as UTC
        return v.replace(tzinfo=timezone.utc) if v.tzinfo is None else v


class EventCreated(EventOut):
    """The first occurrence, plus how many more rows the series produced."""
    instances: int = 0
    summary: str = "Does not repeat"


class StatusIn(BaseModel):
    status: Status


class PositionedOut(BaseModel):
    id: int
    title: str
    room_id: int
    status: str
    start: datetime
    end: datetime
    column: int
    totalColumns: int
    topOffsetMinutes: float
    heightMinutes: float
    top: float
    height: float
    left: float
    width: float
