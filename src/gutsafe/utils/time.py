"""Time utilities for gutsafe.

Provides timezone-aware datetime helpers used for error and report timestamps.
"""

from datetime import UTC, datetime
from typing import Any


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


def epoch_millis(moment: datetime | None = None) -> int:
    """Milliseconds since the Unix epoch for ``moment`` (default: now)."""
    return int((moment or utc_now()).timestamp() * 1000)


def coerce_timestamp(value: Any) -> datetime:
    """Datetime from ``value``: datetimes pass, ISO strings parse, else now."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    return utc_now()
