"""Rich-based logging for the sync core.

Covers the lines every sync component emits (REST retries, dropped frames,
connection state, preview fetch failures) plus the replay summary panel.
"""

from __future__ import annotations

from typing import Any

from filament_sync.utils.console_logger import BaseConsoleLogger


class SyncLogger(BaseConsoleLogger):
    """Logger for gateway, REST and scheduler activity."""

    def __init__(self) -> None:
        super().__init__(__name__)

    # -------------------------------------------------------------------------
    # REST: Rate Limiting & Retries
    # -------------------------------------------------------------------------

    def rate_limit(self, retry_after: float) -> None:
        """Log a rate limit warning with retry time."""
        self._logger.warning(f"Rate limited. Waiting {retry_after:.1f}s...")

    def retry(
        self, attempt: int, max_attempts: int, wait_time: float, reason: str = ""
    ) -> None:
        """Log a retry attempt with optional reason."""
        msg = f"Retry {attempt}/{max_attempts} in {wait_time:.2f}s"
        if reason:
            msg += f" ({reason})"
        self._logger.warning(msg)

    # -------------------------------------------------------------------------
    # Gateway
    # -------------------------------------------------------------------------

    def event_dropped(self, event_type: object, reason: str) -> None:
        """Log a frame that failed to decode. Never user-visible."""
        self._logger.debug(f"Dropped gateway event {event_type!r}: {reason}")

    def connection_state(self, previous: str, current: str) -> None:
        self._logger.debug(f"Gateway connection {previous} -> {current}")

    def scope_changed(self, guild_id: str | None, channel_ids: tuple[str, ...]) -> None:
        if guild_id is None:
            self._logger.info("Gateway scope cleared")
        else:
            self._logger.info(
                f"Gateway scope guild={guild_id} channels={len(channel_ids)}"
            )

    # -------------------------------------------------------------------------
    # Media previews
    # -------------------------------------------------------------------------

    def preview_failed(self, attachment_id: str, attempts: int, reason: str) -> None:
        self._logger.warning(
            f"Preview {attachment_id} failed after {attempts} attempt(s): {reason}"
        )

    # -------------------------------------------------------------------------
    # Summary
    # -------------------------------------------------------------------------

    def summary(
        self,
        frames: int = 0,
        decoded: int = 0,
        dropped: int = 0,
        elapsed: float = 0.0,
        state: dict[str, int] | None = None,
        **kwargs: Any,
    ) -> None:
        """Print the replay summary."""
        self.print_summary(
            "Replay",
            elapsed=elapsed,
            stats={
                "Frames read": frames,
                "Events applied": decoded,
                "Frames dropped": dropped,
            },
            extra_sections={"Client state": state} if state else None,
            style="cyan",
        )


# Global logger instance
logger = SyncLogger()
