from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Callable

# Millisecond wall clock; injected wherever expiry is computed.
Clock = Callable[[], float]


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def now_unix_ms() -> float:
    """Current wall-clock time in milliseconds since the Unix epoch."""
    return time.time() * 1000.0

