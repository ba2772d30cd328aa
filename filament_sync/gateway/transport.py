"""Duplex gateway transport interface.

The controller only needs to open a scoped stream, change its channel
subscription and close it; the concrete socket implementation lives with the
host application and is injected.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Protocol

FrameHandler = Callable[[str | bytes], None]
OpenChangeHandler = Callable[[bool], None]


class GatewayConnection(Protocol):
    """One open stream scoped to a guild and a channel set."""

    def set_subscribed_channels(
        self, guild_id: str, channel_ids: Sequence[str]
    ) -> None: ...

    def close(self) -> None: ...


class GatewayTransport(Protocol):
    async def connect(
        self,
        access_token: str,
        guild_id: str,
        channel_ids: Sequence[str],
        on_frame: FrameHandler,
        on_open_change: OpenChangeHandler,
    ) -> GatewayConnection:
        """Open a stream.

        ``on_frame`` receives every inbound text frame. ``on_open_change`` is
        called with True once the stream is usable and with False when it
        drops. Raises ``OSError`` if the stream cannot be opened.
        """
        ...
