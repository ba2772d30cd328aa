"""Gateway connection and subscription lifecycle.

Keeps at most one live stream, scoped to the active guild and the channels
the user can currently read:
- a guild change opens a new stream; a channel-set change on the same guild
  only updates the subscription
- losing access tears the stream down and clears presence
- a dropped stream reconnects with doubling backoff (1s up to 30s)
- every inbound frame is decoded and handed to the ``StateStore``; frames
  from a superseded stream, or arriving after ``close()``, are ignored
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from enum import Enum

from filament_sync.gateway.decoder import decode_frame
from filament_sync.gateway.events import (
    GatewayEvent,
    ProfileUpdateEvent,
    WorkspaceMemberUpdateEvent,
    WorkspaceRoleAssignmentAddEvent,
    WorkspaceRoleAssignmentRemoveEvent,
    WorkspaceRoleCreateEvent,
    WorkspaceRoleDeleteEvent,
    WorkspaceRoleReorderEvent,
    WorkspaceRoleUpdateEvent,
)
from filament_sync.gateway.logger import logger
from filament_sync.gateway.transport import GatewayConnection, GatewayTransport
from filament_sync.services.username_cache import UsernameCache
from filament_sync.state import StateStore

INITIAL_RECONNECT_DELAY = 1.0  # seconds
MAX_RECONNECT_DELAY = 30.0  # seconds

PERMISSION_EVENTS: tuple[type[GatewayEvent], ...] = (
    WorkspaceRoleCreateEvent,
    WorkspaceRoleUpdateEvent,
    WorkspaceRoleDeleteEvent,
    WorkspaceRoleReorderEvent,
    WorkspaceRoleAssignmentAddEvent,
    WorkspaceRoleAssignmentRemoveEvent,
    WorkspaceMemberUpdateEvent,
)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


class GatewayController:
    """Owns the gateway stream for the active scope.

    Args:
        transport: Opens streams
        store: Receives every decoded event
        access_token: Bearer token passed to the transport
        username_cache: Primed with usernames seen in ``profile_update``
        sleep: Injected for tests
        on_permissions_changed: Called with the guild id after a role or
            membership event for the active guild, so the caller can
            re-check channel access
    """

    def __init__(
        self,
        transport: GatewayTransport,
        store: StateStore,
        access_token: str,
        *,
        username_cache: UsernameCache | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        on_permissions_changed: Callable[[str], None] | None = None,
    ) -> None:
        self._transport = transport
        self._store = store
        self._access_token = access_token
        self._username_cache = username_cache
        self._sleep = sleep
        self._on_permissions_changed = on_permissions_changed

        self._state = ConnectionState.DISCONNECTED
        self._guild_id: str | None = None
        self._channel_ids: tuple[str, ...] = ()
        self._connection: GatewayConnection | None = None
        # Bumped whenever the current stream is replaced or torn down;
        # callbacks carry the generation they were created for.
        self._generation = 0
        self._reconnect_delay = INITIAL_RECONNECT_DELAY
        self._reconnect_task: asyncio.Task[None] | None = None
        self._closed = False

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def guild_id(self) -> str | None:
        return self._guild_id

    @property
    def channel_ids(self) -> tuple[str, ...]:
        return self._channel_ids

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def reconnect_delay(self) -> float:
        """Delay the next reconnect attempt will wait."""
        return self._reconnect_delay

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        logger.connection_state(self._state.value, state.value)
        self._state = state

    # -------------------------------------------------------------------------
    # Scope
    # -------------------------------------------------------------------------

    async def set_scope(
        self,
        guild_id: str | None,
        channel_ids: Iterable[str],
        can_access: bool = True,
    ) -> None:
        """Point the stream at a guild and the channels the user may read.

        Without access, guild or channels the stream is closed and presence
        for the old scope is cleared.
        """
        if self._closed:
            return
        channels = tuple(dict.fromkeys(channel_ids))

        if not can_access or guild_id is None or not channels:
            self.disconnect()
            return

        if guild_id == self._guild_id and set(channels) == set(self._channel_ids):
            return

        logger.scope_changed(guild_id, channels)
        same_guild = guild_id == self._guild_id
        self._guild_id = guild_id
        self._channel_ids = channels

        if same_guild and self._connection is not None:
            self._connection.set_subscribed_channels(guild_id, channels)
            return

        self._teardown()
        self._reconnect_delay = INITIAL_RECONNECT_DELAY
        await self._connect(self._generation)

    def disconnect(self) -> None:
        """Drop the stream and its scope, clearing presence.

        Synchronous so it can run from a store listener when access to the
        active guild disappears mid-event.
        """
        if self._closed:
            return
        if self._guild_id is not None or self._connection is not None:
            logger.scope_changed(None, ())
        self._teardown()
        self._guild_id = None
        self._channel_ids = ()
        self._store.clear_presence()
        self._set_state(ConnectionState.DISCONNECTED)

    # -------------------------------------------------------------------------
    # Connection
    # -------------------------------------------------------------------------

    def _teardown(self) -> None:
        """Drop the current stream and anything scheduled for it."""
        self._generation += 1
        if self._reconnect_task is not None:
            if self._reconnect_task is not asyncio.current_task():
                self._reconnect_task.cancel()
            self._reconnect_task = None
        if self._connection is not None:
            connection, self._connection = self._connection, None
            connection.close()

    async def _connect(self, generation: int) -> None:
        guild_id = self._guild_id
        if guild_id is None:
            return
        self._set_state(
            ConnectionState.RECONNECTING
            if self._state is ConnectionState.RECONNECTING
            else ConnectionState.CONNECTING
        )
        try:
            connection = await self._transport.connect(
                self._access_token,
                guild_id,
                self._channel_ids,
                lambda frame: self.on_frame(frame, generation),
                lambda is_open: self._on_open_change(is_open, generation),
            )
        except OSError as e:
            if self._closed or generation != self._generation:
                return
            logger.warning(f"Gateway connect failed: {e}")
            self._schedule_reconnect(generation)
            return

        # The scope moved on (or close() ran) while connecting.
        if self._closed or generation != self._generation:
            connection.close()
            return
        self._connection = connection

    def _on_open_change(self, is_open: bool, generation: int) -> None:
        if self._closed or generation != self._generation:
            return
        if is_open:
            self._reconnect_delay = INITIAL_RECONNECT_DELAY
            self._set_state(ConnectionState.OPEN)
            return
        self._connection = None
        self._schedule_reconnect(generation)

    def _schedule_reconnect(self, generation: int) -> None:
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._set_state(ConnectionState.RECONNECTING)
        self._reconnect_task = asyncio.create_task(
            self._reconnect(generation), name="gateway-reconnect"
        )

    async def _reconnect(self, generation: int) -> None:
        delay = self._reconnect_delay
        self._reconnect_delay = min(delay * 2, MAX_RECONNECT_DELAY)
        logger.info(f"Gateway reconnecting in {delay:.0f}s")
        await self._sleep(delay)
        if self._closed or generation != self._generation:
            return
        self._reconnect_task = None
        await self._connect(generation)

    # -------------------------------------------------------------------------
    # Frames
    # -------------------------------------------------------------------------

    def on_frame(self, frame: str | bytes, generation: int | None = None) -> bool:
        """Decode one inbound frame and apply it to the store.

        Args:
            frame: Raw text frame
            generation: Stream the frame came from; None means the current one

        Returns:
            True if the store snapshot changed.
        """
        if self._closed:
            return False
        if generation is not None and generation != self._generation:
            return False
        event = decode_frame(frame)
        if event is None:
            return False

        if isinstance(event, ProfileUpdateEvent) and self._username_cache is not None:
            username = event.updated_fields.username
            if username is not None:
                self._username_cache.prime_cache({event.user_id: username})

        changed = self._store.apply(event)

        if (
            self._on_permissions_changed is not None
            and isinstance(event, PERMISSION_EVENTS)
            and getattr(event, "guild_id", None) == self._guild_id
        ):
            self._on_permissions_changed(event.guild_id)
        return changed

    # -------------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Close the stream for good. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        task = self._reconnect_task
        self._teardown()
        if task is not None and task is not asyncio.current_task():
            await asyncio.gather(task, return_exceptions=True)
        self._set_state(ConnectionState.CLOSED)
