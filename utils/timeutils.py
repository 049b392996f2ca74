"""
Time helpers shared by config, token codec and the auth service.
"""
from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$", re.IGNORECASE)

_UNITS = {
    "": 1,
    "s": 1,
    "m": 60,
    "h": 60 * 60,
    "d": 24 * 60 * 60,
}


def parse_duration(raw, default: timedelta | None = None) -> timedelta:
    """
    Parse "15m", "7d", "24h", "30s" or a bare number of seconds.
    Falls back to `default` when raw is empty; raises ValueError otherwise.
    """
    if isinstance(raw, timedelta):
        return raw
    if raw is None or str(raw).strip() == "":
        if default is None:
            raise ValueError("duration is required")
        return default
    match = _DURATION_RE.match(str(raw))
    if not match:
        raise ValueError(f"Invalid duration: {raw!r}")
    value, unit = match.groups()
    seconds = int(value) * _UNITS[unit.lower()]
    if seconds <= 0:
        raise ValueError(f"Duration must be positive: {raw!r}")
    return timedelta(seconds=seconds)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
