"""
Time Utilities

Token expiry values arrive as Unix seconds, Unix milliseconds or ISO-8601
strings depending on the issuer. Everything is normalized to UTC-aware
datetimes before comparison.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

UTC = timezone.utc

# Values at or above this are treated as milliseconds (year 33658 in seconds).
_MILLIS_THRESHOLD = 1e12


def utc_now() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure a datetime is UTC-aware.

    - If `dt` is naive, treat it as UTC.
    - If `dt` is timezone-aware, convert it to UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _from_epoch(value: float) -> datetime:
    if value >= _MILLIS_THRESHOLD:
        value = value / 1000
    return datetime.fromtimestamp(value, UTC)


def normalize_expiry(value: Any) -> Optional[datetime]:
    """
    Normalize an expiry value to an absolute UTC instant.

    Accepts epoch seconds, epoch milliseconds (int, float or numeric string),
    ISO-8601 strings and datetimes. Returns None if the value cannot be parsed.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)):
        try:
            return _from_epoch(float(value))
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return _from_epoch(float(text))
        except ValueError:
            pass
        except (OverflowError, OSError):
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return ensure_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def expires_within(value: Any, seconds: float, now: Optional[datetime] = None) -> bool:
    """
    Whether `value` expires within `seconds` from `now`.

    Unparseable values count as expired.
    """
    expiry = normalize_expiry(value)
    if expiry is None:
        return True
    current = ensure_utc(now) if now is not None else utc_now()
    return (expiry - current).total_seconds() < seconds
