"""Clock utilities.

All wall-clock timestamps in arousal-engine MUST be UTC-aware.  Expiry
arithmetic uses the monotonic clock so it is immune to wall-clock jumps.
This module is the single source of "now" so tests can monkey-patch it
trivially.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def monotonic() -> float:
    """Return monotonic seconds for TTL and budget arithmetic."""
    return time.monotonic()
