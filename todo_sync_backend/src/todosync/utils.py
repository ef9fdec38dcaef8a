from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional, Union

# Shared type for incoming timestamps which can be a date, datetime, or ISO8601 string
TimestampInput = Union[date, datetime, str]

# Fixed-width storage format so stored timestamps sort lexicographically.
_DB_FORMAT = "%Y-%m-%dT%H:%M:%S.%f"


# PUBLIC_INTERFACE
def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# PUBLIC_INTERFACE
def ensure_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.
    Naive datetimes are interpreted as already being in UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# PUBLIC_INTERFACE
def parse_timestamp(value: Optional[TimestampInput], field: str = "timestamp") -> Optional[datetime]:
    """
    Normalize timestamp input into an aware UTC datetime.
    - Strings are parsed as ISO8601; a trailing 'Z' is accepted. A bare date becomes midnight.
    - A date (not datetime) is promoted to midnight.
    - A datetime is converted to UTC.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return ensure_utc(value)

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    if isinstance(value, str):
        s = value.strip()
        if s.endswith(("Z", "z")):
            s = s[:-1] + "+00:00"
        try:
            return ensure_utc(datetime.fromisoformat(s))
        except ValueError:
            try:
                d = date.fromisoformat(s)
            except ValueError as e:
                raise ValueError(
                    f"Invalid {field} format. Use ISO8601 date or datetime string "
                    "(e.g., '2025-01-31' or '2025-01-31T13:45:00Z')."
                ) from e
            return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)

    raise ValueError(f"Invalid type for {field}; expected date, datetime, or ISO8601 string.")


def to_db_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return ensure_utc(value).strftime(_DB_FORMAT)


def from_db_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.strptime(value, _DB_FORMAT).replace(tzinfo=timezone.utc)
