"""Time helpers for cache freshness and plan naming."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union
import math


def to_utc(dt_or_str: Union[datetime, str]) -> datetime:
    """Return ``datetime`` converted to UTC."""

    if isinstance(dt_or_str, datetime):
        dt = dt_or_str
    else:
        dt = datetime.fromisoformat(dt_or_str.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    return dt


def _to_dt(value: Any) -> Optional[datetime]:
    """
    Convert several timestamp representations to UTC-aware datetime.
    Returns None if the value cannot be parsed.
    Accepted forms:
      - aware/naive datetime (naive -> assume UTC)
      - ISO-8601 string
      - int/float unix seconds (Universalis reports milliseconds, callers divide)
    """
    if isinstance(value, datetime):
        return to_utc(value)

    if isinstance(value, (int, float)) and math.isfinite(value):
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        v = value.strip()
        if not v:
            return None
        try:
            return to_utc(v)
        except ValueError:
            return None

    return None


def from_unix_ms(value: Any) -> Optional[datetime]:
    """Parse a unix timestamp in milliseconds."""
    if isinstance(value, (int, float)) and math.isfinite(value):
        return _to_dt(value / 1000.0)
    return _to_dt(value)


def is_stale(dt_like, max_age_hours: float) -> bool:
    """True when ``dt_like`` is older than ``max_age_hours`` or unparseable."""
    dt = _to_dt(dt_like)
    if dt is None:
        return True
    return datetime.now(timezone.utc) - dt > timedelta(hours=max_age_hours)


def plan_name(now: Optional[datetime] = None) -> str:
    """Default display name for a freshly built plan."""
    now = now or datetime.now()
    return f"Plan {now:%Y-%m-%d %H:%M}"


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


__all__ = ["to_utc", "from_unix_ms", "is_stale", "plan_name", "now_utc"]
