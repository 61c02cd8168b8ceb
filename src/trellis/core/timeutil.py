"""Instant arithmetic: snapping, clamping, and local-date parsing.

Instants are integer milliseconds since the Unix epoch.  Snapping is
anchored to *local* midnight of the instant's own calendar day, never to
UTC midnight or to the epoch.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS

# Named snap increments accepted by config and the CLI.
SNAP_INCREMENTS: dict[str, int] = {
    "1d": DAY_MS,
    "8h": 8 * HOUR_MS,
    "1h": HOUR_MS,
}

_LOCAL_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------


def to_instant(dt: datetime) -> int:
    """Return the millisecond instant for *dt* (naive values are local time)."""
    return round(dt.timestamp() * 1000)


def from_instant(instant: int) -> datetime:
    """Return a naive local datetime for *instant*."""
    seconds, millis = divmod(instant, 1000)
    return datetime.fromtimestamp(seconds) + timedelta(milliseconds=millis)


def local_midnight(instant: int) -> int:
    """Return the instant of local midnight on the calendar day of *instant*."""
    day = from_instant(instant).replace(hour=0, minute=0, second=0, microsecond=0)
    return to_instant(day)


def parse_local_date(value: str) -> int:
    """Parse ``YYYY-MM-DD`` as local midnight, or a full ISO datetime.

    Bare dates ignore any timezone so that sample data lands on the local
    calendar day it names.  Datetimes with an explicit offset keep it.

    Raises:
        ValueError: If *value* is neither form.
    """
    match = _LOCAL_DATE_RE.match(value.strip())
    if match:
        year, month, day = (int(g) for g in match.groups())
        return to_instant(datetime(year, month, day))
    return to_instant(datetime.fromisoformat(value.strip()))


def format_instant(instant: int) -> str:
    """Format *instant* as a local ISO-8601 datetime (seconds precision)."""
    return from_instant(instant).isoformat(timespec="seconds")


# ---------------------------------------------------------------------------
# Snapping and clamping
# ---------------------------------------------------------------------------


def snap(instant: int, enabled: bool, increment_ms: int) -> int:
    """Round *instant* to the nearest multiple of *increment_ms* past local midnight.

    Ties round up.  The grid restarts at every local midnight, so a value
    rounded up never lands past the next midnight; this keeps ``snap``
    idempotent for increments that do not divide the day evenly.

    Raises:
        ValueError: If snapping is enabled and *increment_ms* is not positive.
    """
    if not enabled:
        return instant
    if increment_ms <= 0:
        raise ValueError(f"Snap increment must be positive, got {increment_ms}")

    day_start = local_midnight(instant)
    offset = instant - day_start
    remainder = offset % increment_ms
    if remainder * 2 >= increment_ms:
        corrected = offset + (increment_ms - remainder)
        next_midnight = local_midnight(day_start + DAY_MS + 2 * HOUR_MS)
        return min(day_start + corrected, next_midnight)
    return day_start + offset - remainder


def clamp_instant(instant: int, lower: int | None, upper: int | None) -> int:
    """Clamp *instant* into ``[lower, upper]``; ``None`` leaves a side open."""
    if lower is not None and instant < lower:
        return lower
    if upper is not None and instant > upper:
        return upper
    return instant
