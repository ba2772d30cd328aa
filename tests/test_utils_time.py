"""Tests for filament_sync.utils.time module."""

from __future__ import annotations

import time
from datetime import datetime, timezone

from filament_sync.utils.time import now_unix_ms, utcnow


class TestUtcnow:
    """Tests for utcnow function."""

    def test_returns_timezone_aware_datetime(self) -> None:
        """Should return a timezone-aware UTC datetime."""
        result = utcnow()
        assert result.tzinfo == timezone.utc

    def test_returns_current_time(self) -> None:
        """Should return approximately current time."""
        before = datetime.now(timezone.utc)
        result = utcnow()
        after = datetime.now(timezone.utc)

        assert before <= result <= after


class TestNowUnixMs:
    """Tests for now_unix_ms function."""

    def test_is_milliseconds(self) -> None:
        """Should track time.time() scaled to milliseconds."""
        before = time.time() * 1000.0
        result = now_unix_ms()
        after = time.time() * 1000.0

        assert before <= result <= after
