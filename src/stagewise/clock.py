# src/stagewise/clock.py
"""Business-hours clock: chronology log and elapsed-time measurement.

The chronology is the sole input to stage-time computation. It is kept as an
append-only list plus an index of the last entry per stage so the clock never
has to scan the whole history on every query.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from stagewise.errors import ConfigurationError
from stagewise.pipeline import Stage

logger = logging.getLogger(__name__)

BusinessHourPredicate = Callable[[datetime], bool]

_SAMPLE_STEP = timedelta(minutes=1)
_BLOCK_STEP = timedelta(hours=1)


def parse_timestamp(value: str | datetime) -> datetime:
    """Return an aware datetime. Naive values are taken to be UTC."""
    ts = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts


def wall_minutes_between(start: datetime, end: datetime) -> int:
    if end <= start:
        return 0
    return int((end - start).total_seconds() // 60)


# ---------------------------------------------------------------------------
# Chronology
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChronologyEntry:
    stage: str
    entered_at: datetime

    def to_dict(self) -> dict[str, str]:
        return {"stage": self.stage, "entered_at": self.entered_at.isoformat()}


class Chronology:
    """Append-only, time-ordered record of stage entries."""

    def __init__(self, entries: Iterable[ChronologyEntry] = ()) -> None:
        self._entries: list[ChronologyEntry] = []
        self._last_index: dict[str, int] = {}
        for entry in entries:
            self.append(entry.stage, entry.entered_at)

    @classmethod
    def from_rows(cls, rows: Iterable[Any]) -> Chronology:
        """Build from ``(stage, entered_at)`` pairs or mappings with those keys."""
        entries = []
        for row in rows:
            if isinstance(row, tuple):
                stage, entered_at = row
            else:
                stage, entered_at = row["stage"], row["entered_at"]
            entries.append(ChronologyEntry(stage, parse_timestamp(entered_at)))
        return cls(entries)

    def append(self, stage: str, entered_at: datetime) -> ChronologyEntry:
        """Append a stage entry.

        Timestamps never go backwards: an entry older than the tail is clamped
        to the tail's timestamp.
        """
        entered_at = parse_timestamp(entered_at)
        if self._entries and entered_at < self._entries[-1].entered_at:
            logger.debug("Clamping chronology entry for %s from %s", stage, entered_at.isoformat())
            entered_at = self._entries[-1].entered_at
        entry = ChronologyEntry(stage, entered_at)
        self._entries.append(entry)
        self._last_index[stage] = len(self._entries) - 1
        return entry

    def last_entry_for(self, stage: str) -> ChronologyEntry | None:
        idx = self._last_index.get(stage)
        return None if idx is None else self._entries[idx]

    @property
    def current_stage(self) -> str | None:
        return self._entries[-1].stage if self._entries else None

    @property
    def last(self) -> ChronologyEntry | None:
        return self._entries[-1] if self._entries else None

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ChronologyEntry]:
        return iter(self._entries)

    def __getitem__(self, index: int) -> ChronologyEntry:
        return self._entries[index]

    def to_list(self) -> list[dict[str, str]]:
        return [e.to_dict() for e in self._entries]


# ---------------------------------------------------------------------------
# Business calendar
# ---------------------------------------------------------------------------


def _parse_clock_time(value: str | time) -> time:
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(value)
    except ValueError as exc:
        msg = f"Invalid business-hours time '{value}': expected HH:MM"
        raise ConfigurationError(msg) from exc


@dataclass(frozen=True)
class BusinessCalendar:
    """Working days and hours in one timezone.

    ``days`` uses ``datetime.weekday()`` numbering (Monday is 0).
    """

    start: time = time(9, 0)
    end: time = time(17, 30)
    days: frozenset[int] = field(default_factory=lambda: frozenset({0, 1, 2, 3, 4}))
    timezone: str = "UTC"

    def __post_init__(self) -> None:
        if self.end <= self.start:
            msg = f"Business day must end after it starts ({self.start} - {self.end})"
            raise ConfigurationError(msg)
        if not self.days or not all(0 <= d <= 6 for d in self.days):
            msg = f"Business days must be a non-empty subset of 0-6, got {sorted(self.days)}"
            raise ConfigurationError(msg)
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            msg = f"Unknown timezone '{self.timezone}'"
            raise ConfigurationError(msg) from exc

    @classmethod
    def from_config(cls, raw: dict[str, Any] | None) -> BusinessCalendar:
        """Build from the ``business_hours`` section of config.json."""
        if not raw:
            return cls()
        kwargs: dict[str, Any] = {}
        if "start" in raw:
            kwargs["start"] = _parse_clock_time(raw["start"])
        if "end" in raw:
            kwargs["end"] = _parse_clock_time(raw["end"])
        if "days" in raw:
            kwargs["days"] = frozenset(int(d) for d in raw["days"])
        if "timezone" in raw:
            kwargs["timezone"] = str(raw["timezone"])
        return cls(**kwargs)

    def to_config(self) -> dict[str, Any]:
        return {
            "start": self.start.strftime("%H:%M"),
            "end": self.end.strftime("%H:%M"),
            "days": sorted(self.days),
            "timezone": self.timezone,
        }

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def hours_per_day(self) -> float:
        minutes = (self.end.hour * 60 + self.end.minute) - (self.start.hour * 60 + self.start.minute)
        return minutes / 60

    def is_business_hour(self, ts: datetime) -> bool:
        local = parse_timestamp(ts).astimezone(self.tzinfo)
        return local.weekday() in self.days and self.start <= local.time() < self.end

    def hours_between(self, start: datetime, end: datetime) -> float:
        """Exact business hours in ``[start, end)``, summed day by day."""
        start, end = parse_timestamp(start), parse_timestamp(end)
        if end <= start:
            return 0.0
        tz = self.tzinfo
        local_start, local_end = start.astimezone(tz), end.astimezone(tz)
        total = 0.0
        day = local_start.date()
        while day <= local_end.date():
            if day.weekday() in self.days:
                opens = datetime.combine(day, self.start, tzinfo=tz)
                closes = datetime.combine(day, self.end, tzinfo=tz)
                lo, hi = max(opens, local_start), min(closes, local_end)
                if hi > lo:
                    total += (hi.astimezone(UTC) - lo.astimezone(UTC)).total_seconds()
            day += timedelta(days=1)
        return total / 3600


DEFAULT_CALENDAR = BusinessCalendar()


def _sample_minutes(start: datetime, end: datetime, is_business_hour: BusinessHourPredicate) -> timedelta:
    counted = timedelta(0)
    cursor = start
    while cursor < end:
        step = min(_SAMPLE_STEP, end - cursor)
        if is_business_hour(cursor):
            counted += step
        cursor += _SAMPLE_STEP
    return counted


def business_hours_between(start: datetime, end: datetime, is_business_hour: BusinessHourPredicate) -> float:
    """Integrate an arbitrary business-hour predicate over ``[start, end)``.

    Whole clock hours are checked at their first and last minute and only
    sampled minute by minute when the two checks disagree, so a year-long
    interval costs tens of thousands of calls rather than half a million.
    The partial hours at either end are always sampled per minute. A
    predicate that closes and reopens inside one clock hour is read at hour
    resolution.
    """
    start, end = parse_timestamp(start), parse_timestamp(end)
    if end <= start:
        return 0.0
    boundary = start.replace(minute=0, second=0, microsecond=0)
    if boundary < start:
        boundary += _BLOCK_STEP
    boundary = min(boundary, end)

    counted = _sample_minutes(start, boundary, is_business_hour)
    cursor = boundary
    while cursor + _BLOCK_STEP <= end:
        opens = is_business_hour(cursor)
        if opens == is_business_hour(cursor + _BLOCK_STEP - _SAMPLE_STEP):
            if opens:
                counted += _BLOCK_STEP
        else:
            counted += _sample_minutes(cursor, cursor + _BLOCK_STEP, is_business_hour)
        cursor += _BLOCK_STEP
    counted += _sample_minutes(cursor, end, is_business_hour)
    return counted.total_seconds() / 3600


# ---------------------------------------------------------------------------
# Elapsed time and SLA
# ---------------------------------------------------------------------------


def stage_entered_at(chronology: Chronology, current_stage: str, created_at: datetime | str) -> datetime:
    """When the project last entered *current_stage*, falling back to creation time."""
    entry = chronology.last_entry_for(current_stage)
    return entry.entered_at if entry is not None else parse_timestamp(created_at)


def elapsed_business_hours(
    chronology: Chronology,
    current_stage: str,
    created_at: datetime | str,
    *,
    now: datetime | None = None,
    calendar: BusinessCalendar | None = None,
    is_business_hour: BusinessHourPredicate | None = None,
) -> float:
    """Business hours spent in *current_stage* since it was last entered.

    A plain ``is_business_hour`` callable takes precedence over *calendar*;
    with neither, the default Monday-Friday 09:00-17:30 UTC calendar applies.
    """
    start = stage_entered_at(chronology, current_stage, created_at)
    end = parse_timestamp(now) if now is not None else datetime.now(UTC)
    if is_business_hour is not None:
        hours = business_hours_between(start, end, is_business_hour)
    else:
        hours = (calendar or DEFAULT_CALENDAR).hours_between(start, end)
    return max(0.0, hours)


def is_overdue(stage: Stage, elapsed_hours: float) -> bool:
    limit = stage.max_instance_time_hours
    if not limit:
        return False
    return elapsed_hours >= limit
