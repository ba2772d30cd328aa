"""Replay runner.

Feeds a JSONL capture (one gateway frame per line) through the decoder and
the ``StateStore`` exactly as a live connection would, then reports what the
client state ended up holding. With ``persist`` the resulting workspace list
is written to the snapshot store, seeded from whatever was stored before.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from pathlib import Path

from filament_sync.config.settings import SyncSettings
from filament_sync.core import BaseRunner
from filament_sync.db.repositories import load_workspaces, save_workspaces
from filament_sync.gateway.decoder import decode_frame
from filament_sync.gateway.logger import logger
from filament_sync.state import ClientState, StateStore


def read_frames(path: str | Path) -> Iterator[str]:
    """Yield the non-blank lines of a capture file."""
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line:
                yield line


def state_counts(state: ClientState) -> dict[str, int]:
    """Size of each part of a client state snapshot, for the summary panel."""
    return {
        "Messages": len(state.messages),
        "Reactions": len(state.reaction_view()),
        "Online members": len(state.online_member_ids),
        "Voice participants": sum(len(roster) for roster in state.voice_rosters.values()),
        "Workspaces": len(state.workspaces),
        "Known usernames": len(state.usernames),
    }


class ReplayRunner(BaseRunner):
    """Replays one capture file into a fresh store."""

    def __init__(
        self,
        settings: SyncSettings,
        events_path: str | Path,
        *,
        self_user_id: str | None = None,
        guild_id: str | None = None,
        channel_id: str | None = None,
        persist: bool = False,
    ) -> None:
        super().__init__(settings.database_url)
        self.settings = settings
        self.events_path = Path(events_path)
        self.guild_id = guild_id
        self.channel_id = channel_id
        self.persist = persist
        self.store = StateStore(ClientState(self_user_id=self_user_id))
        # Stats
        self.frames = 0
        self.decoded = 0
        self.dropped = 0

    async def _run(self) -> None:
        if self.persist:
            await self.init_db()
            async with self.async_session() as session:
                stored = await load_workspaces(session)
            if stored:
                logger.info(f"Loaded {len(stored)} stored workspace(s)")
                self.store.set_workspaces(stored)

        if self.guild_id is not None:
            self.store.set_scope(self.guild_id, self.channel_id)

        with logger.block(self.events_path.name) as block:
            block.field("guild", self.guild_id or "-")
            block.field("channel", self.channel_id or "-")
            self.replay(read_frames(self.events_path))
            block.result(
                f"applied {self.decoded:,} of {self.frames:,} frames",
                success=self.dropped == 0,
            )

        if self.persist:
            async with self.async_session() as session:
                try:
                    written = await save_workspaces(session, self.store.state.workspaces)
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
            logger.success(f"Saved {written} workspace(s) to snapshot store")

    def replay(self, frames: Iterable[str]) -> None:
        """Apply frames in order, counting decoded and dropped ones."""
        for frame in frames:
            self.frames += 1
            event = decode_frame(frame)
            if event is None:
                self.dropped += 1
                continue
            self.decoded += 1
            self.store.apply(event)

    def _log_summary(self, elapsed: float) -> None:
        logger.summary(
            frames=self.frames,
            decoded=self.decoded,
            dropped=self.dropped,
            elapsed=elapsed,
            state=state_counts(self.store.state),
        )


async def run_replay(
    events_path: str | Path,
    config_path: str = "config.json",
    *,
    self_user_id: str | None = None,
    guild_id: str | None = None,
    channel_id: str | None = None,
    persist: bool = False,
) -> ReplayRunner:
    """Replay a capture file.

    Args:
        events_path: JSONL capture, one frame per line
        config_path: Path to config.json
        self_user_id: Id of the local user (for membership removal events)
        guild_id: Active guild; scoped events for other guilds are ignored
        channel_id: Active channel within ``guild_id``
        persist: Save the resulting workspace list to the snapshot store
    """
    from filament_sync.config.settings import load_config
    from filament_sync.db.engine import dispose_engines

    settings = load_config(config_path)
    runner = ReplayRunner(
        settings,
        events_path,
        self_user_id=self_user_id,
        guild_id=guild_id,
        channel_id=channel_id,
        persist=persist,
    )
    try:
        await runner.run()
    finally:
        await dispose_engines()
    return runner
