# backend/orgcal/conflicts.py
"""Room booking conflicts."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional

from .instances import Occurrence

# statuses that hold a room; draft/rejected/cancelled never block
BLOCKING_STATUSES = frozenset({"pending_review", "approved", "published"})
EVENT_STATUSES = ("draft", "pending_review", "approved", "rejected", "published", "cancelled")


@dataclass(frozen=True)
class RoomPolicy:
    room_id: Any
    allows_overlap: bool = False


@dataclass(frozen=True)
class Reservation:
    id: Any
    room_id: Any
    title: str
    start: datetime
    end: datetime
    status: str = "pending_review"
    owner: Optional[str] = None


@dataclass(frozen=True)
class ConflictResult:
    conflict: bool
    with_: Optional[Reservation] = None

    @property
    def message(self) -> Optional[str]:
        if not self.conflict or self.with_ is None:
            return None
        other = self.with_
        owner = other.owner or "Another user"
        status = other.status.replace("_", " ")
        return (f'This room is already booked for "{other.title}" by {owner} '
                f"({status}) during this time.")


NO_CONFLICT = ConflictResult(conflict=False)


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Open-boundary overlap: touching endpoints do not count."""
    return a_start < b_end and b_start < a_end


def has_conflict(
    room: RoomPolicy,
    start: datetime,
    end: datetime,
    reservations: Iterable[Reservation],
    exclude_id: Any = None,
) -> ConflictResult:
    """First blocking reservation in ``room`` that overlaps [start, end)."""
    if room.allows_overlap:
        return NO_CONFLICT
    for r in reservations:
        if r.room_id != room.room_id or r.status not in BLOCKING_STATUSES:
            continue
        if exclude_id is not None and r.id == exclude_id:
            continue
        if overlaps(start, end, r.start, r.end):
            return ConflictResult(conflict=True, with_=r)
    return NO_CONFLICT


def find_series_conflict(
    room: RoomPolicy,
    occurrences: Iterable[Occurrence],
    reservations: Iterable[Reservation],
    exclude_ids: Iterable[Any] = (),
) -> tuple[Optional[Occurrence], ConflictResult]:
    """Check each occurrence in turn; returns the first clash, or (None, NO_CONFLICT)."""
    if room.allows_overlap:
        return None, NO_CONFLICT
    excluded = set(exclude_ids)
    snapshot = [r for r in reservations if r.id not in excluded]
    for occ in occurrences:
        result = has_conflict(room, occ.start, occ.end, snapshot)
        if result.conflict:
            return occ, result
    return None, NO_CONFLICT
