# backend/orgcal/layout.py
"""
Side-by-side layout for a day column of the calendar.

Two passes: ``assign_columns`` gives every event the first column that is
free at its start, then ``compute_overlap_widths`` sizes each event by the
number of columns it actually collides with.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any, Iterable, Optional, Sequence
from zoneinfo import ZoneInfo

from .conflicts import overlaps

DEFAULT_MIN_HEIGHT = 20


@dataclass(frozen=True)
class PositionedEvent:
    """Screen geometry for one event; derived on every render, never stored."""
    event: Any
    start: datetime
    end: datetime
    column: int = 0
    total_columns: int = 1
    top_offset_minutes: float = 0.0
    height_minutes: float = 0.0
    top: float = 0.0      # px
    height: float = 0.0   # px
    left: float = 0.0     # percent
    width: float = 100.0  # percent


def _sort_key(e: Any):
    # earlier first; on a tie the longer event claims a column first, then by id
    return (e.start, -(e.end - e.start), str(getattr(e, "id", "")))


def assign_columns(events: Iterable[Any]) -> list[PositionedEvent]:
    """Greedy column assignment in start order."""
    column_ends: list[datetime] = []
    placed: list[PositionedEvent] = []

    for e in sorted(events, key=_sort_key):
        column = next(
            (i for i, last_end in enumerate(column_ends) if last_end <= e.start),
            len(column_ends),
        )
        if column == len(column_ends):
            column_ends.append(e.end)
        else:
            column_ends[column] = e.end
        placed.append(PositionedEvent(event=e, start=e.start, end=e.end, column=column))

    return placed


def compute_overlap_widths(placed: Sequence[PositionedEvent]) -> list[PositionedEvent]:
    """Width = 100 / (columns colliding with the event, its own included)."""
    out: list[PositionedEvent] = []
    for p in placed:
        columns = {p.column}
        columns.update(q.column for q in placed if overlaps(p.start, p.end, q.start, q.end))
        width = 100 / len(columns)
        out.append(replace(p, total_columns=len(columns), width=width, left=p.column * width))
    return out


def place_vertically(
    p: PositionedEvent,
    window_start_hour: int = 0,
    px_per_minute: float = 1.0,
    min_height: float = DEFAULT_MIN_HEIGHT,
) -> PositionedEvent:
    offset = (p.start.hour - window_start_hour) * 60 + p.start.minute + p.start.second / 60
    duration = (p.end - p.start).total_seconds() / 60
    return replace(
        p,
        top_offset_minutes=offset,
        height_minutes=duration,
        top=offset * px_per_minute,
        height=max(duration * px_per_minute, min_height),
    )


def pack(
    day_events: Iterable[Any],
    window_start_hour: int = 0,
    px_per_minute: float = 1.0,
    min_height: float = DEFAULT_MIN_HEIGHT,
) -> list[PositionedEvent]:
    """
    Lay out one day's events. Items only need ``start`` and ``end``
    datetimes; the original item is kept on ``PositionedEvent.event``.
    """
    placed = compute_overlap_widths(assign_columns(day_events))
    return [place_vertically(p, window_start_hour, px_per_minute, min_height) for p in placed]


def events_for_day(events: Iterable[Any], day: date, tz: Optional[ZoneInfo] = None) -> list[Any]:
    """Events whose start falls on ``day`` (in ``tz`` when given)."""
    out = []
    for e in events:
        start = e.start.astimezone(tz) if tz is not None and e.start.tzinfo else e.start
        if start.date() == day:
            out.append(e)
    return out
