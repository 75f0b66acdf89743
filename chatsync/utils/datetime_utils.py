"""
Centralized datetime utilities.

All timestamps written to the record store are UTC. Typing timestamps are
epoch milliseconds; other timestamps are ISO 8601 strings with a 'Z' suffix.
Readers accept every shape a record may carry.
"""
import time
from datetime import datetime, timezone
from typing import Any, Optional


def utc_now() -> datetime:
    """
    Get current UTC time as timezone-aware datetime.

    Returns:
        datetime: Current time in UTC with timezone info
    """
    return datetime.now(timezone.utc)


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """
    Ensure datetime is UTC timezone-aware.

    Converts naive datetime (assumed to be UTC) to timezone-aware UTC.
    If datetime is already timezone-aware, converts to UTC.

    Args:
        dt: Datetime object (naive or aware) or None

    Returns:
        datetime | None: UTC timezone-aware datetime or None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        # Naive datetime - assume UTC
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def to_iso_utc(dt: datetime | None) -> str | None:
    """
    Convert datetime to ISO format with 'Z' suffix (UTC indicator).

    Args:
        dt: Datetime object or None

    Returns:
        str | None: ISO 8601 string with 'Z' suffix (e.g., "2025-12-16T11:30:00.123456Z")
                   or None if input is None

    Example:
        >>> dt = datetime(2025, 12, 16, 11, 30, 0, 123456, tzinfo=timezone.utc)
        >>> to_iso_utc(dt)
        "2025-12-16T11:30:00.123456Z"
    """
    if dt is None:
        return None

    utc_dt = ensure_utc(dt)
    return utc_dt.isoformat().replace('+00:00', 'Z')


def from_epoch_ms(value: float) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def to_epoch_ms(value: Any) -> Optional[int]:
    """
    Normalize a stored timestamp to epoch milliseconds.

    Accepts epoch milliseconds (int/float), datetimes (naive means UTC),
    ISO 8601 strings and {"seconds": ..., "nanoseconds": ...} maps.

    Args:
        value: Timestamp in any supported shape

    Returns:
        Epoch milliseconds, or None when the value cannot be interpreted
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        return int(value)

    if isinstance(value, datetime):
        return int(ensure_utc(value).timestamp() * 1000)

    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            return None
        return int(ensure_utc(parsed).timestamp() * 1000)

    if isinstance(value, dict) and isinstance(value.get("seconds"), (int, float)):
        nanos = value.get("nanoseconds") or 0
        return int(value["seconds"] * 1000 + nanos // 1_000_000)

    return None
