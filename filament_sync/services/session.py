"""One signed-in client session.

Wires the REST client, the state store, the username cache, the media
preview scheduler and the gateway controller together:
- opening a channel scopes the store, loads its latest history page and
  points the gateway at the guild's channels
- the preview scheduler follows the store's message list
- reactions are applied optimistically and settled from the REST response
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable

import httpx

from filament_sync.api.client import FilamentAPIError, FilamentClient
from filament_sync.config.settings import SyncSettings
from filament_sync.gateway.controller import GatewayController
from filament_sync.gateway.logger import logger
from filament_sync.gateway.transport import GatewayTransport
from filament_sync.services.media_preview import MediaPreviewScheduler, preview_fetcher
from filament_sync.services.username_cache import UsernameCache
from filament_sync.state import ClientState, StateStore


class SyncSession:
    """Owns every stateful component of one client session."""

    def __init__(
        self,
        settings: SyncSettings,
        client: FilamentClient,
        transport: GatewayTransport,
        *,
        store: StateStore | None = None,
        sleep: Callable[[float], Awaitable[object]] | None = None,
    ) -> None:
        self.settings = settings
        self.client = client
        self.store = store or StateStore()
        self.usernames = UsernameCache.from_config(
            client.lookup_users_by_ids, settings.username_cache
        )
        sleep_kwargs = {"sleep": sleep} if sleep is not None else {}
        self.previews = MediaPreviewScheduler.from_config(
            preview_fetcher(client, settings.media_preview.max_preview_bytes),
            settings.media_preview,
            **sleep_kwargs,
        )
        self.gateway = GatewayController(
            transport,
            self.store,
            settings.access_token,
            username_cache=self.usernames,
            on_permissions_changed=self._on_permissions_changed,
            **sleep_kwargs,
        )
        self._refresh_task: asyncio.Task[None] | None = None
        self._unsubscribe = self.store.subscribe(self._on_state)
        self._messages = self.store.state.messages
        self._workspaces = self.store.state.workspaces

    def _on_state(self, state: ClientState, version: int) -> None:
        if state.messages is not self._messages:
            self._messages = state.messages
            self.previews.sync(state.messages)
        if state.workspaces is not self._workspaces:
            self._workspaces = state.workspaces
            self._enforce_access()

    def _enforce_access(self) -> None:
        """Leave the active channel once it drops out of the workspace list.

        Covers being kicked or banned from the active guild and the channel
        disappearing from a refreshed snapshot.
        """
        state = self.store.state
        guild_id, channel_id = state.active_guild_id, state.active_channel_id
        if guild_id is None or channel_id is None:
            return
        if channel_id in self.readable_channel_ids(guild_id):
            return
        logger.warning(f"Lost access to channel {channel_id} in guild {guild_id}")
        self.gateway.disconnect()
        self.store.set_scope(None, None)

    def _on_permissions_changed(self, guild_id: str) -> None:
        """Re-check access after a role or membership change in the active guild."""
        self._enforce_access()
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(
                self._refresh_after_permission_change(guild_id),
                name="workspace-refresh",
            )

    async def _refresh_after_permission_change(self, guild_id: str) -> None:
        try:
            await self.refresh_workspaces()
        except (FilamentAPIError, httpx.HTTPError) as e:
            logger.warning(
                f"Workspace refresh after permission change in {guild_id} failed: {e}"
            )

    # -------------------------------------------------------------------------
    # Workspaces & channels
    # -------------------------------------------------------------------------

    async def refresh_workspaces(self) -> None:
        """Replace the workspace list with a fresh REST snapshot."""
        workspaces = await self.client.fetch_workspace_snapshot()
        self.store.set_workspaces(workspaces)

    def readable_channel_ids(self, guild_id: str) -> tuple[str, ...]:
        for workspace in self.store.state.workspaces:
            if workspace.guild_id == guild_id:
                return tuple(channel.channel_id for channel in workspace.channels)
        return ()

    async def open_channel(self, guild_id: str | None, channel_id: str | None) -> None:
        """Make a channel active: load its history and subscribe to its guild.

        A channel the user can no longer see (not in the workspace list)
        tears the gateway down instead.
        """
        self.store.set_scope(guild_id, channel_id)
        channels = self.readable_channel_ids(guild_id) if guild_id else ()
        can_access = channel_id is not None and channel_id in channels
        if can_access:
            page = await self.client.get_channel_messages(guild_id, channel_id)
            self.store.load_history(page.messages)
        await self.gateway.set_scope(guild_id, channels, can_access=can_access)

    async def load_older_messages(self, limit: int = 50) -> bool:
        """Fetch the page before the oldest loaded message.

        Returns:
            True if the server reported more history beyond this page.
        """
        state = self.store.state
        if state.active_guild_id is None or state.active_channel_id is None:
            return False
        before = state.messages[0].message_id if state.messages else None
        page = await self.client.get_channel_messages(
            state.active_guild_id, state.active_channel_id, before=before, limit=limit
        )
        self.store.load_history(page.messages)
        return page.next_before is not None

    # -------------------------------------------------------------------------
    # Reactions
    # -------------------------------------------------------------------------

    async def toggle_reaction(self, message_id: str, emoji: str) -> bool:
        """Toggle the local user's reaction and confirm it with the server.

        Returns:
            True if the user reacts after the toggle.

        Raises:
            FilamentAPIError, httpx.HTTPError: The request failed; the
                optimistic change has been rolled back.
        """
        state = self.store.state
        if state.active_guild_id is None or state.active_channel_id is None:
            raise ValueError("No active channel")
        guild_id, channel_id = state.active_guild_id, state.active_channel_id

        key, reacted = self.store.toggle_reaction(message_id, emoji)
        call = (
            self.client.add_message_reaction
            if reacted
            else self.client.remove_message_reaction
        )
        try:
            count = await call(guild_id, channel_id, message_id, emoji)
        except (FilamentAPIError, httpx.HTTPError) as e:
            logger.warning(f"Reaction {emoji} on {message_id} failed: {e}")
            self.store.fail_reaction(key)
            raise
        self.store.confirm_reaction(key, count)
        return reacted

    # -------------------------------------------------------------------------
    # Usernames
    # -------------------------------------------------------------------------

    async def resolve_usernames(self, user_ids: Iterable[str]) -> dict[str, str]:
        """Resolve usernames, preferring names seen on the gateway."""
        known = self.store.state.usernames
        ids = list(dict.fromkeys(user_ids))
        resolved = {user_id: known[user_id] for user_id in ids if user_id in known}
        missing = [user_id for user_id in ids if user_id not in resolved]
        if missing:
            resolved.update(await self.usernames.resolve_usernames(missing))
        return resolved

    # -------------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        self._unsubscribe()
        await self.gateway.close()
        await self.previews.close()
        await self.usernames.close()
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
            await asyncio.gather(self._refresh_task, return_exceptions=True)
