# backend/orgcal/instances.py
"""
Expand a RecurrenceConfig into concrete occurrences.

``generate`` is pure: every instant comes in through its arguments and
nothing reads the clock. The first occurrence (the event as entered) is
not part of the result; callers treat it as occurrence zero.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterator, Optional

from dateutil.relativedelta import relativedelta, SU, MO, TU, WE, TH, FR, SA

from .recurrence import RecurrenceConfig, validate_config

logger = logging.getLogger(__name__)

SAFETY_HORIZON = relativedelta(years=1)
DEFAULT_MAX_INSTANCES = 100

# Sunday-first, indexed by the 0=Sunday..6=Saturday ordinals
_WEEKDAYS = (SU, MO, TU, WE, TH, FR, SA)


@dataclass(frozen=True)
class Occurrence:
    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


# ───────────────────────── Calendar helpers ─────────────────────────
def nth_weekday_of_month(year: int, month: int, dow: int, n: int) -> Optional[date]:
    """
    The nth ``dow`` (0=Sunday) of a month, or the last one when ``n`` is -1.
    None when the month has no such day (a 5th Friday in a four-Friday month).
    """
    first = date(year, month, 1)
    if n == -1:
        found = first + relativedelta(day=31, weekday=_WEEKDAYS[dow](-1))
    else:
        found = first + relativedelta(weekday=_WEEKDAYS[dow](+n))
    return found if found.month == month else None


def scan_days(cursor: datetime, limit: int, until: Optional[datetime] = None) -> Iterator[datetime]:
    """The ``limit`` days following ``cursor``, same clock time, never past ``until``."""
    for n in range(1, limit + 1):
        day = cursor + timedelta(days=n)
        if until is not None and day > until:
            return
        yield day


def _on_day(template: datetime, d: date) -> datetime:
    return template.replace(year=d.year, month=d.month, day=d.day)


def _past(candidate: datetime, until: Optional[datetime]) -> bool:
    return until is not None and candidate > until


# ───────────────────────── Candidate streams ────────────────────────
def _daily(start: datetime, config: RecurrenceConfig, until: Optional[datetime]) -> Iterator[datetime]:
    step = timedelta(days=config.interval)
    cursor = start
    while True:
        cursor += step
        if _past(cursor, until):
            return
        yield cursor


def _weekly(start: datetime, config: RecurrenceConfig, until: Optional[datetime]) -> Iterator[datetime]:
    def matches(day: datetime) -> bool:
        weeks = (day - start).days // 7
        return (day.weekday() + 1) % 7 in config.days_of_week and weeks % config.interval == 0

    cursor = start
    while True:
        window = scan_days(cursor, 7 * config.interval, until)
        found = next((d for d in window if matches(d)), None)
        if found is None:
            return
        yield found
        cursor = found


def _monthly(start: datetime, config: RecurrenceConfig, until: Optional[datetime]) -> Iterator[datetime]:
    k = 1
    while True:
        if config.by_weekday:
            target = start.date() + relativedelta(months=k * config.interval)
            if until is not None and target.replace(day=1) > until.date():
                return
            found = nth_weekday_of_month(target.year, target.month,
                                         config.day_of_week_for_month, config.week_of_month)
            if found is None:
                logger.debug("no %s weekday %s in %04d-%02d, skipping",
                             config.week_of_month, config.day_of_week_for_month,
                             target.year, target.month)
            else:
                candidate = _on_day(start, found)
                if _past(candidate, until):
                    return
                yield candidate
        else:
            # relativedelta clamps to the month's last day
            candidate = start + relativedelta(months=k * config.interval,
                                              day=config.day_of_month or start.day)
            if _past(candidate, until):
                return
            yield candidate
        k += 1


def _yearly(start: datetime, config: RecurrenceConfig, until: Optional[datetime]) -> Iterator[datetime]:
    k = 1
    while True:
        candidate = start + relativedelta(
            years=k * config.interval,
            month=config.month_of_year or start.month,
            day=config.day_of_month or start.day,
        )
        if _past(candidate, until):
            return
        yield candidate
        k += 1


_STREAMS = {
    "daily": _daily,
    "weekly": _weekly,
    "monthly": _monthly,
    "yearly": _yearly,
}


# ───────────────────────── Public API ───────────────────────────────
def series_limit(start: datetime, config: RecurrenceConfig) -> Optional[datetime]:
    """Latest allowed instance start, or None when only a count bounds the series."""
    if config.end_type == "on" and config.end_date is not None:
        return datetime.combine(config.end_date, time.max, tzinfo=start.tzinfo)
    if config.end_type == "never":
        try:
            return start + SAFETY_HORIZON
        except (OverflowError, ValueError):
            # horizon lies past the last representable day
            return None
    return None


def generate(
    series_start: datetime,
    series_end: datetime,
    config: RecurrenceConfig,
    max_instances: int = DEFAULT_MAX_INSTANCES,
) -> list[Occurrence]:
    """
    Occurrences after the first one, ascending.

    Stops at whichever comes first: ``max_instances``, the configured end
    (date or count), one calendar year past ``series_start`` for open-ended
    series, or the last day ``datetime`` can represent.
    Raises RecurrenceConfigError for an invalid config before any work is done.
    """
    validate_config(config)
    if series_end < series_start:
        raise ValueError("Series end must not be before its start")
    if not config.is_recurring:
        return []

    duration = series_end - series_start
    limit = series_limit(series_start, config)
    cap = max_instances
    if config.end_type == "after":
        cap = min(cap, config.occurrences - 1)
    if cap <= 0:
        return []

    out: list[Occurrence] = []
    try:
        for candidate in _STREAMS[config.frequency](series_start, config, limit):
            out.append(Occurrence(candidate, candidate + duration))
            if len(out) >= cap:
                break
    except (OverflowError, ValueError):
        # date arithmetic left the supported calendar range (year 9999)
        logger.info("series from %s ran past the end of the calendar after %d instances",
                    series_start, len(out))
    return out


def expand_series(
    series_start: datetime,
    series_end: datetime,
    config: RecurrenceConfig,
    max_instances: int = DEFAULT_MAX_INSTANCES,
) -> list[Occurrence]:
    """Occurrence zero followed by everything ``generate`` produces."""
    first = Occurrence(series_start, series_end)
    return [first, *generate(series_start, series_end, config, max_instances)]
