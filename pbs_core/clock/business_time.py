"""
Business Clock — converts between wall-clock times and stored instants.

All stored instants are ISO-8601 strings with an explicit UTC offset,
rendered in the single business timezone (Australia/Melbourne by default),
e.g. "2025-03-08T09:00:00+11:00". Hour offsets are absolute durations;
day/week/month offsets step the business calendar.
"""

import calendar
import math
import re
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Union
from zoneinfo import ZoneInfo

from pbs_core.errors import InvalidDurationError

InstantLike = Union[str, datetime]

_OFFSET_PATTERN = re.compile(r"^\s*([+-]?\d+)\s*(hour|day|week|month)s?\s*$", re.IGNORECASE)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BusinessClock:
    """Timezone-anchored clock. Stateless apart from its configuration."""

    def __init__(
        self,
        timezone_name: str = "Australia/Melbourne",
        now_fn: Optional[Callable[[], datetime]] = None,
    ):
        self.timezone_name = timezone_name
        self.tz = ZoneInfo(timezone_name)
        self._now_fn = now_fn or _utc_now

    def now(self) -> str:
        """Current instant, canonical form."""
        return self.to_canonical(self._now_fn())

    def parse(self, value: InstantLike) -> datetime:
        """
        Parse an instant into an aware datetime.

        Naive values are read as business wall-clock time.
        """
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, str):
            text = value.strip()
            if text.endswith(("Z", "z")):
                text = text[:-1] + "+00:00"
            try:
                parsed = datetime.fromisoformat(text)
            except ValueError as e:
                raise InvalidDurationError(f"Malformed instant: {value!r}") from e
        else:
            raise InvalidDurationError(f"Malformed instant: {value!r}")

        if parsed.tzinfo is None or parsed.utcoffset() is None:
            parsed = parsed.replace(tzinfo=self.tz)
        return parsed

    def to_canonical(self, value: InstantLike) -> str:
        return self.parse(value).astimezone(self.tz).isoformat()

    def offset_before(self, reference: InstantLike, duration_hours: Union[int, float, timedelta]) -> str:
        """Instant exactly duration_hours of elapsed time before reference."""
        delta = self._duration(duration_hours)
        instant = self.parse(reference).astimezone(timezone.utc) - delta
        return self.to_canonical(instant)

    def offset_after(self, reference: InstantLike, duration_hours: Union[int, float, timedelta]) -> str:
        """Instant exactly duration_hours of elapsed time after reference."""
        delta = self._duration(duration_hours)
        instant = self.parse(reference).astimezone(timezone.utc) + delta
        return self.to_canonical(instant)

    def calculate_due_date(self, base: InstantLike, offset: str) -> str:
        """
        Apply an offset string such as "48 hours", "3 days", "1 week"
        or "-2 months" to base.
        """
        amount, unit = self._parse_offset(offset)
        if unit == "hour":
            start = self.parse(base).astimezone(timezone.utc)
            return self.to_canonical(start + timedelta(hours=amount))

        local = self.parse(base).astimezone(self.tz)
        if unit == "day":
            shifted = local + timedelta(days=amount)
        elif unit == "week":
            shifted = local + timedelta(weeks=amount)
        else:
            shifted = _add_months(local, amount)
        return self.to_canonical(shifted)

    def _duration(self, duration_hours: Union[int, float, timedelta]) -> timedelta:
        if isinstance(duration_hours, timedelta):
            hours = duration_hours.total_seconds() / 3600
        elif isinstance(duration_hours, bool) or not isinstance(duration_hours, (int, float)):
            raise InvalidDurationError(f"Duration must be a number of hours, got {duration_hours!r}")
        else:
            hours = float(duration_hours)
        if not math.isfinite(hours) or hours < 0:
            raise InvalidDurationError(f"Duration must be a finite, non-negative number of hours, got {duration_hours!r}")
        return timedelta(hours=hours)

    @staticmethod
    def _parse_offset(offset: str):
        if not isinstance(offset, str):
            raise InvalidDurationError(f"Offset must be a string, got {offset!r}")
        match = _OFFSET_PATTERN.match(offset)
        if not match:
            raise InvalidDurationError(f"Unrecognized offset: {offset!r}")
        return int(match.group(1)), match.group(2).lower()


def _add_months(value: datetime, months: int) -> datetime:
    index = value.month - 1 + months
    year = value.year + index // 12
    month = index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def is_valid_offset(offset: str) -> bool:
    """True if offset is a number followed by hour/day/week/month."""
    return isinstance(offset, str) and bool(_OFFSET_PATTERN.match(offset))


def format_offset(offset: str) -> str:
    """Normalize an offset for display: "1 days" -> "1 day", "3 Week" -> "3 weeks"."""
    match = _OFFSET_PATTERN.match(offset) if isinstance(offset, str) else None
    if not match:
        return offset
    amount, unit = int(match.group(1)), match.group(2).lower()
    return f"{amount} {unit}" if abs(amount) == 1 else f"{amount} {unit}s"
