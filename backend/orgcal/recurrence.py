# backend/orgcal/recurrence.py
"""
Recurrence configuration and its compact rule-string form.

A rule string looks like ``FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE;COUNT=10``.
Encoding is deterministic (fixed token order); decoding is permissive and
never raises, so rules written by older or newer versions stay readable.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Iterable, Optional

# ───────────────────────── Vocabulary ───────────────────────────────
FREQUENCIES = ("none", "daily", "weekly", "monthly", "yearly")
END_TYPES = ("never", "on", "after")
MONTHLY_TYPES = ("day_of_month", "weekday")
MAX_INTERVAL = 999

# Sunday-first, matching the 0=Sunday..6=Saturday ordinals
DAY_CODES = ("SU", "MO", "TU", "WE", "TH", "FR", "SA")
DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")
MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)
ORDINAL_WORDS = {1: "first", 2: "second", 3: "third", 4: "fourth", 5: "fifth", -1: "last"}

UNIT_NAMES = {"daily": "day", "weekly": "week", "monthly": "month", "yearly": "year"}

ORDINAL_DAY_RE = re.compile(r"^(?P<n>[+-]?\d)?(?P<code>SU|MO|TU|WE|TH|FR|SA)$")
UNTIL_RE = re.compile(r"^(?P<y>\d{4})(?P<m>\d{2})(?P<d>\d{2})")


class RecurrenceConfigError(ValueError):
    """Raised when a recurrence config cannot be expanded."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("; ".join(errors))


@dataclass(frozen=True)
class RecurrenceConfig:
    """How an event repeats. Fields that don't apply to the frequency are None."""
    frequency: str = "none"
    interval: int = 1
    days_of_week: frozenset = field(default_factory=frozenset)
    day_of_month: Optional[int] = None
    month_of_year: Optional[int] = None
    monthly_type: str = "day_of_month"
    week_of_month: Optional[int] = None          # 1..5, or -1 for "last"
    day_of_week_for_month: Optional[int] = None  # 0..6
    end_type: str = "never"
    end_date: Optional[date] = None
    occurrences: Optional[int] = None

    @property
    def is_recurring(self) -> bool:
        return self.frequency != "none"

    @property
    def by_weekday(self) -> bool:
        return self.frequency == "monthly" and self.monthly_type == "weekday"


NO_RECURRENCE = RecurrenceConfig()


# ───────────────────────── Validation & defaults ────────────────────
def validate_config(config: RecurrenceConfig) -> None:
    """Raise RecurrenceConfigError listing every problem with ``config``."""
    errors: list[str] = []

    if config.frequency not in FREQUENCIES:
        errors.append(f"Unknown frequency: {config.frequency!r}")
    if config.frequency == "none":
        return _raise_if(errors)

    if not isinstance(config.interval, int) or config.interval < 1:
        errors.append("Interval must be a positive integer")
    elif config.interval > MAX_INTERVAL:
        errors.append(f"Interval must be at most {MAX_INTERVAL}")

    if config.frequency == "weekly":
        if not config.days_of_week:
            errors.append("Please select at least one day for weekly recurrence")
        elif any(d not in range(7) for d in config.days_of_week):
            errors.append("Days of week must be between 0 (Sunday) and 6 (Saturday)")

    if config.frequency in ("monthly", "yearly") and config.day_of_month is not None:
        if not 1 <= config.day_of_month <= 31:
            errors.append("Day of month must be between 1 and 31")

    if config.frequency == "yearly" and config.month_of_year is not None:
        if not 1 <= config.month_of_year <= 12:
            errors.append("Month must be between 1 and 12")

    if config.by_weekday:
        if config.week_of_month not in ORDINAL_WORDS:
            errors.append("Week of month must be 1-5 or -1 (last)")
        if config.day_of_week_for_month not in range(7):
            errors.append("Weekday for monthly recurrence must be between 0 and 6")
    elif config.frequency == "monthly" and config.monthly_type not in MONTHLY_TYPES:
        errors.append(f"Unknown monthly type: {config.monthly_type!r}")

    if config.end_type not in END_TYPES:
        errors.append(f"Unknown end type: {config.end_type!r}")
    elif config.end_type == "on" and config.end_date is None:
        errors.append("An end date is required when the series ends on a date")
    elif config.end_type == "after" and (not config.occurrences or config.occurrences < 1):
        errors.append("A positive number of occurrences is required")

    _raise_if(errors)


def _raise_if(errors: list[str]) -> None:
    if errors:
        raise RecurrenceConfigError(errors)


def js_weekday(d: date) -> int:
    """Python's Mon=0..Sun=6 → Sun=0..Sat=6."""
    return (d.weekday() + 1) % 7


def default_config(frequency: str, start: Optional[datetime] = None) -> RecurrenceConfig:
    """Config a freshly picked frequency starts from, seeded by the event start."""
    if frequency not in FREQUENCIES or frequency == "none":
        return NO_RECURRENCE
    days = frozenset({js_weekday(start)}) if frequency == "weekly" and start else frozenset()
    dom = start.day if frequency in ("monthly", "yearly") and start else None
    moy = start.month if frequency == "yearly" and start else None
    return RecurrenceConfig(
        frequency=frequency,
        days_of_week=days,
        day_of_month=dom,
        month_of_year=moy,
    )


def cleared(config: RecurrenceConfig) -> RecurrenceConfig:
    """Normalize so that ``none`` carries no other fields and only one end field is set."""
    if not config.is_recurring:
        return NO_RECURRENCE
    return replace(
        config,
        end_date=config.end_date if config.end_type == "on" else None,
        occurrences=config.occurrences if config.end_type == "after" else None,
    )


# ───────────────────────── Encode ───────────────────────────────────
def encode(config: RecurrenceConfig, start: Optional[datetime] = None) -> Optional[str]:
    """
    Build the rule string for ``config``; None when it does not repeat.

    ``start`` is accepted for parity with callers that seed from the event
    start; the rule itself carries no start information.
    """
    if config.frequency == "none":
        return None

    parts = [f"FREQ={config.frequency.upper()}"]

    if config.interval > 1:
        parts.append(f"INTERVAL={config.interval}")

    if config.frequency == "weekly" and config.days_of_week:
        parts.append("BYDAY=" + ",".join(DAY_CODES[d] for d in sorted(config.days_of_week)))

    if config.by_weekday and config.week_of_month is not None and config.day_of_week_for_month is not None:
        parts.append(f"BYDAY={config.week_of_month}{DAY_CODES[config.day_of_week_for_month]}")
    elif config.frequency in ("monthly", "yearly") and config.day_of_month:
        parts.append(f"BYMONTHDAY={config.day_of_month}")

    if config.frequency == "yearly" and config.month_of_year:
        parts.append(f"BYMONTH={config.month_of_year}")

    if config.end_type == "on" and config.end_date:
        parts.append(f"UNTIL={_until_token(config.end_date)}")
    elif config.end_type == "after" and config.occurrences:
        parts.append(f"COUNT={config.occurrences}")

    return ";".join(parts)


def _until_token(d: date) -> str:
    # end of the chosen day, written without a zone conversion
    day = d.date() if isinstance(d, datetime) else d
    return day.strftime("%Y%m%d") + "T235959Z"


# ───────────────────────── Decode ───────────────────────────────────
def _int_or_none(raw: str) -> Optional[int]:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _parse_days(raw: str) -> list[tuple[Optional[int], int]]:
    out: list[tuple[Optional[int], int]] = []
    for token in raw.split(","):
        m = ORDINAL_DAY_RE.match(token.strip().upper())
        if not m:
            continue
        n = int(m.group("n")) if m.group("n") else None
        out.append((n, DAY_CODES.index(m.group("code"))))
    return out


def decode(rule: Optional[str]) -> RecurrenceConfig:
    """Parse a rule string. Unknown keys and malformed values are skipped."""
    if not rule or not rule.strip():
        return NO_RECURRENCE

    values: dict = {}
    days: list[tuple[Optional[int], int]] = []

    for part in rule.strip().removeprefix("RRULE:").split(";"):
        key, sep, value = part.partition("=")
        if not sep:
            continue
        key, value = key.strip().upper(), value.strip()

        if key == "FREQ":
            freq = value.lower()
            if freq in FREQUENCIES:
                values["frequency"] = freq
        elif key == "INTERVAL":
            n = _int_or_none(value)
            if n and 0 < n <= MAX_INTERVAL:
                values["interval"] = n
        elif key == "BYDAY":
            days = _parse_days(value)
        elif key == "BYMONTHDAY":
            n = _int_or_none(value)
            if n is not None:
                values["day_of_month"] = n
        elif key == "BYMONTH":
            n = _int_or_none(value)
            if n is not None:
                values["month_of_year"] = n
        elif key == "UNTIL":
            m = UNTIL_RE.match(value)
            if m:
                try:
                    values["end_date"] = date(int(m["y"]), int(m["m"]), int(m["d"]))
                    values["end_type"] = "on"
                except ValueError:
                    pass
        elif key == "COUNT":
            n = _int_or_none(value)
            if n and n > 0:
                values["occurrences"] = n
                values["end_type"] = "after"

    freq = values.get("frequency", "none")
    ordinal = [(n, d) for n, d in days if n is not None]
    if freq == "monthly" and ordinal:
        n, d = ordinal[0]
        values.update(monthly_type="weekday", week_of_month=n, day_of_week_for_month=d)
    elif days:
        values["days_of_week"] = frozenset(d for n, d in days if n is None)

    return RecurrenceConfig(**values)


# ───────────────────────── Summary ──────────────────────────────────
def day_suffix(day: int) -> str:
    if 11 <= day <= 13:
        return "th"
    return {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")


def _join_days(days: Iterable[int]) -> str:
    return ", ".join(DAY_NAMES[d] for d in sorted(days))


def summarize(config: RecurrenceConfig) -> str:
    """Human-readable sentence, e.g. 'Repeats every 2 weeks on Monday, Wednesday'."""
    if config.frequency not in UNIT_NAMES:
        return "Does not repeat"

    unit = UNIT_NAMES[config.frequency]
    if config.interval > 1:
        summary = f"Repeats every {config.interval} {unit}s"
    else:
        summary = f"Repeats every {unit}"

    if config.frequency == "weekly" and config.days_of_week:
        summary += f" on {_join_days(config.days_of_week)}"
    elif config.by_weekday and config.week_of_month in ORDINAL_WORDS and config.day_of_week_for_month is not None:
        summary += f" on the {ORDINAL_WORDS[config.week_of_month]} {DAY_NAMES[config.day_of_week_for_month]}"
    elif config.frequency == "monthly" and config.day_of_month:
        summary += f" on the {config.day_of_month}{day_suffix(config.day_of_month)}"
    elif config.frequency == "yearly" and config.month_of_year and config.day_of_month:
        summary += f" on {MONTH_NAMES[config.month_of_year - 1]} {config.day_of_month}{day_suffix(config.day_of_month)}"

    if config.end_type == "on" and config.end_date:
        d = config.end_date
        summary += f", until {MONTH_NAMES[d.month - 1]} {d.day}, {d.year}"
    elif config.end_type == "after" and config.occurrences:
        plural = "s" if config.occurrences > 1 else ""
        summary += f", for {config.occurrences} occurrence{plural}"

    return summary
