"""
Timestamp and duration helpers.

Callers send points in time as ``{"seconds": ..., "nanoseconds": ...}`` pairs.
They are converted to a ``Timestamp`` at the boundary so nothing malformed
reaches the ledger.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from dateutil.relativedelta import relativedelta

NANOS_PER_SECOND = 1_000_000_000

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
# 0001-01-01T00:00:00Z through 9999-12-31T23:59:59Z
MIN_SECONDS = -62_135_596_800
MAX_SECONDS = 253_402_300_799


class InvalidTimestamp(ValueError):
    """Raised when a wire value cannot be read as a timestamp."""


def _as_int(value, field):
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidTimestamp(f"'{field}' must be an integer")
    return value


@dataclass(frozen=True, order=True)
class Timestamp:
    seconds: int
    nanoseconds: int = 0

    def __post_init__(self):
        _as_int(self.seconds, 'seconds')
        _as_int(self.nanoseconds, 'nanoseconds')
        if not 0 <= self.nanoseconds < NANOS_PER_SECOND:
            raise InvalidTimestamp("'nanoseconds' must be between 0 and 999999999")
        if not MIN_SECONDS <= self.seconds <= MAX_SECONDS:
            raise InvalidTimestamp("'seconds' is outside the years 1 to 9999")

    @classmethod
    def from_datetime(cls, value: datetime) -> Timestamp:
        """Build a timestamp from a datetime; naive values are taken as UTC."""
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        delta = value - EPOCH
        seconds = delta.days * 86400 + delta.seconds
        return cls(seconds=seconds, nanoseconds=delta.microseconds * 1000)

    @classmethod
    def from_wire(cls, value) -> Timestamp:
        """
        Parse a timestamp from request data.

        Accepts ``{"seconds", "nanoseconds"}``, the ``{"_seconds",
        "_nanoseconds"}`` JSON shape, an ISO-8601 string or a datetime.

        Raises:
            InvalidTimestamp: for any other shape or out-of-range values
        """
        if isinstance(value, Timestamp):
            return value
        if isinstance(value, datetime):
            return cls.from_datetime(value)
        if isinstance(value, str):
            try:
                parsed = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
            except ValueError:
                raise InvalidTimestamp(f"Invalid ISO-8601 timestamp: {value!r}")
            return cls.from_datetime(parsed)
        if isinstance(value, dict):
            if 'seconds' in value:
                keys = ('seconds', 'nanoseconds')
            elif '_seconds' in value:
                keys = ('_seconds', '_nanoseconds')
            else:
                raise InvalidTimestamp("Timestamp must contain 'seconds' and 'nanoseconds'")
            if set(value) != set(keys):
                raise InvalidTimestamp(f"Timestamp must contain exactly {keys}")
            return cls(
                seconds=_as_int(value[keys[0]], 'seconds'),
                nanoseconds=_as_int(value[keys[1]], 'nanoseconds'),
            )
        raise InvalidTimestamp(f"Unsupported timestamp value: {type(value).__name__}")

    def to_datetime(self) -> datetime:
        """Aware UTC datetime; precision is truncated to microseconds."""
        return EPOCH + timedelta(seconds=self.seconds, microseconds=self.nanoseconds // 1000)

    def to_wire(self) -> dict:
        return {'seconds': self.seconds, 'nanoseconds': self.nanoseconds}


def add_months(value: datetime, months: int) -> datetime:
    """
    Add calendar months, keeping the day in range.

    Jan 31 + 1 month lands on the last day of February.
    """
    return value + relativedelta(months=months)
