from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional, Union

# Incoming target dates can be a date, a datetime, or an ISO8601 string
TargetDateInput = Union[date, datetime, str]


# PUBLIC_INTERFACE
def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# PUBLIC_INTERFACE
def parse_target_date(value: Optional[TargetDateInput]) -> Optional[date]:
    """
    Normalize a target date into a ``date``.

    - None stays None.
    - A datetime keeps only its date part.
    - A string is parsed as an ISO date first, then as an ISO datetime
      (a trailing 'Z' is accepted, as browsers send it).
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return value.date()

    if isinstance(value, date):
        return value

    if isinstance(value, str):
        s = value.strip()
        try:
            return date.fromisoformat(s)
        except ValueError:
            pass
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(s).date()
        except ValueError as e:
            raise ValueError(
                "Invalid targetDate format. Use an ISO8601 date or datetime string (e.g., '2025-01-31')."
            ) from e

    raise ValueError("Invalid type for targetDate; expected date, datetime, or ISO8601 string.")


# PUBLIC_INTERFACE
def parse_timestamp(value: Union[datetime, str]) -> datetime:
    """Parse a stored ISO8601 timestamp, treating naive values as UTC."""
    if isinstance(value, str):
        s = value.strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        value = datetime.fromisoformat(s)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value
