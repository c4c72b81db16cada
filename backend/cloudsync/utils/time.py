"""Timezone helpers – provide a single UTC-aware *now()* function.

Sync entities store timestamps as integer epoch seconds (the wire format the
clients use); scheduling code needs aware datetimes.  Both come from here so
tests can patch one place.
"""

from datetime import datetime
from datetime import timezone


def utc_now() -> datetime:  # noqa: D401 – simple utility
    """Return *aware* current time in UTC."""

    return datetime.now(timezone.utc)


def now_sec() -> int:  # noqa: D401 – simple utility
    """Return the current time as whole epoch seconds."""

    return int(utc_now().timestamp())


__all__ = ["utc_now", "now_sec"]
