"""
Time Accounting

Pure functions that turn a session, its pauses and an explicit "now" into
net worked time. Nothing here reads the clock, so identical inputs always
give identical outputs.

Rules:
- Closed pauses count with their full length.
- An open pause (no pause_end) counts up to `now`.
- Net time = (now - start_time) - pause time, floored to whole seconds
  and clamped at zero.
"""
import math
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Any


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (e.g. from SQLite) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def whole_seconds(delta: timedelta) -> int:
    """Floor a timedelta to whole seconds, never below zero."""
    return max(0, math.floor(delta.total_seconds()))


def total_pause_time(pauses: Iterable[Any], now: datetime) -> timedelta:
    """
    Sum the length of every pause.

    An open pause is treated as closing at `now`. A pause that would
    have a negative length contributes nothing.
    """
    now = ensure_utc(now)
    total = timedelta(0)
    for pause in pauses:
        start = ensure_utc(pause.pause_start)
        end = ensure_utc(pause.pause_end) or now
        total += max(end - start, timedelta(0))
    return total


def net_elapsed(session: Any, pauses: Iterable[Any], now: datetime) -> int:
    """
    Net worked seconds of a session at instant `now`.

    Args:
        session: Object with a `start_time` attribute
        pauses: Objects with `pause_start` / `pause_end` attributes
        now: The instant to measure against

    Returns:
        Whole seconds, never negative.
    """
    now = ensure_utc(now)
    gross = now - ensure_utc(session.start_time)
    return whole_seconds(gross - total_pause_time(pauses, now))


def format_duration(seconds: int) -> str:
    """
    Format seconds as "HH:MM:SS".

    Hours are zero padded to two digits but not capped:
    >>> format_duration(3661)
    '01:01:01'
    >>> format_duration(360000)
    '100:00:00'
    """
    seconds = max(0, int(seconds))
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def parse_duration(value: Optional[str]) -> int:
    """Parse an "HH:MM:SS" (or "HH:MM") duration back into seconds."""
    if not value:
        return 0
    parts = [int(part) for part in value.strip().split(":")]
    while len(parts) < 3:
        parts.append(0)
    hours, minutes, secs = parts[:3]
    return hours * 3600 + minutes * 60 + secs


def describe_elapsed(delta: timedelta) -> str:
    """Human readable age of a session: whole hours from one hour up, else minutes."""
    seconds = whole_seconds(delta)
    if seconds >= 3600:
        return f"{seconds // 3600} horas"
    return f"{seconds // 60} minutos"
