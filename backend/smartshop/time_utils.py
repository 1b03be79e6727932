"""
Time handling.

Every timestamp stored by SmartShop is a naive datetime in UTC. Incoming
strings are normalized on the way in and rendered with a trailing "Z" on
the way out.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time, UTC-naive."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    ISO-8601 string -> UTC-naive datetime.

    Blank input gives None. Strings without an offset are taken as UTC;
    "Z" and "+HH:MM" offsets are converted. Unparseable input raises
    ValueError.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()
    if text[-1] in "Zz":
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Render as "YYYY-MM-DDTHH:MM:SSZ", treating naive values as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"


def days_until(target: Optional[datetime], now: Optional[datetime] = None) -> Optional[int]:
    """
    Whole days from now until target, rounded up.

    A target 1.2 days away counts as 2; a target in the past is <= 0.
    """
    if target is None:
        return None
    now = now or utcnow()
    seconds = (target - now).total_seconds()
    return math.ceil(seconds / 86400)
