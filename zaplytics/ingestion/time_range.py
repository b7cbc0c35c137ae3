"""
Time range resolution: selector → [since, until] + bucket granularity.

`24h` buckets by hour, every other range by day. A `custom` selection with a
missing bound resolves to None: the caller is awaiting input and must neither
fetch nor render statistics (distinct from "no data").
"""

from __future__ import annotations

import time as _time
from dataclasses import dataclass
from datetime import date, datetime, time, timezone, tzinfo
from enum import Enum
from typing import Any, Mapping

SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 86400


class TimeRange(str, Enum):
    LAST_24H = "24h"
    LAST_7D = "7d"
    LAST_30D = "30d"
    LAST_90D = "90d"
    LAST_YEAR = "1y"
    CUSTOM = "custom"


class Granularity(str, Enum):
    HOUR = "hour"
    DAY = "day"

    @property
    def seconds(self) -> int:
        return SECONDS_PER_HOUR if self is Granularity.HOUR else SECONDS_PER_DAY


_RANGE_SECONDS: dict[TimeRange, int] = {
    TimeRange.LAST_24H: SECONDS_PER_DAY,
    TimeRange.LAST_7D: 7 * SECONDS_PER_DAY,
    TimeRange.LAST_30D: 30 * SECONDS_PER_DAY,
    TimeRange.LAST_90D: 90 * SECONDS_PER_DAY,
    TimeRange.LAST_YEAR: 365 * SECONDS_PER_DAY,
}

Bound = date | datetime | int | float | str | None


@dataclass(frozen=True)
class CustomRange:
    """User-picked bounds; either side may still be missing."""

    start: Bound = None
    end: Bound = None

    @property
    def is_complete(self) -> bool:
        return self.start is not None and self.end is not None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "CustomRange | None":
        """Build from a {"from": ..., "to": ...} mapping (API / CLI shape)."""
        if data is None:
            return None

        def _bound(key: str) -> Any:
            value = data.get(key)
            return None if isinstance(value, str) and not value.strip() else value

        return cls(start=_bound("from"), end=_bound("to"))


@dataclass(frozen=True)
class ResolvedTimeRange:
    """Inclusive [since, until] window in unix seconds plus bucket granularity."""

    since: int
    until: int
    granularity: Granularity

    @property
    def bucket_seconds(self) -> int:
        return self.granularity.seconds

    def contains(self, timestamp: int) -> bool:
        return self.since <= timestamp <= self.until

    def to_dict(self) -> dict[str, Any]:
        return {
            "since": self.since,
            "until": self.until,
            "granularity": self.granularity.value,
        }


def parse_time_range(value: TimeRange | str) -> TimeRange:
    """Return the TimeRange for a selector string; ValueError if unknown."""
    if isinstance(value, TimeRange):
        return value
    try:
        return TimeRange((value or "").strip().lower())
    except ValueError as e:
        allowed = ", ".join(r.value for r in TimeRange)
        raise ValueError(f"Unknown time range {value!r} (expected one of: {allowed})") from e


def _parse_bound(text: str) -> date | datetime | int:
    """Accept epoch seconds, an ISO date (YYYY-MM-DD) or an ISO datetime."""
    text = text.strip()
    if text.lstrip("-").isdigit():
        return int(text)
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        return datetime.fromisoformat(text)
    except ValueError as e:
        raise ValueError(f"Unparsable time bound: {text!r}") from e


def _to_epoch(bound: Bound, tz: tzinfo, *, end_of_day: bool) -> int:
    if isinstance(bound, bool):
        raise ValueError("time bound must not be a boolean")
    if isinstance(bound, str):
        bound = _parse_bound(bound)
    if isinstance(bound, (int, float)):
        return int(bound)
    if isinstance(bound, datetime):
        if bound.tzinfo is None:
            bound = bound.replace(tzinfo=tz)
        return int(bound.timestamp())
    if isinstance(bound, date):
        moment = datetime.combine(bound, time.max if end_of_day else time.min, tzinfo=tz)
        return int(moment.timestamp())
    raise ValueError(f"Unsupported time bound: {bound!r}")


def resolve_time_range(
    selector: TimeRange | str,
    custom_range: CustomRange | None = None,
    *,
    now: int | None = None,
    tz: tzinfo = timezone.utc,
) -> ResolvedTimeRange | None:
    """
    Map a range selector to a concrete window.

    Returns None when `selector` is custom and either bound is missing.
    Raises ValueError for unknown selectors or an inverted custom range.
    Date-only custom bounds cover whole days in `tz`.
    """
    rng = parse_time_range(selector)
    if rng is TimeRange.CUSTOM:
        if custom_range is None or not custom_range.is_complete:
            return None
        since = _to_epoch(custom_range.start, tz, end_of_day=False)
        until = _to_epoch(custom_range.end, tz, end_of_day=True)
        if since > until:
            raise ValueError("custom range 'from' must not be after 'to'")
        return ResolvedTimeRange(since=since, until=until, granularity=Granularity.DAY)

    until = int(now if now is not None else _time.time())
    since = until - _RANGE_SECONDS[rng]
    granularity = Granularity.HOUR if rng is TimeRange.LAST_24H else Granularity.DAY
    return ResolvedTimeRange(since=since, until=until, granularity=granularity)
