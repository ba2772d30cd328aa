"""Username resolution cache.

Resolves user ids to usernames through a batched lookup call, with:
- positive entries kept for 5 minutes and negative entries (id not
  resolvable) for 30 seconds
- a capacity bound with least-recently-touched eviction
- coalescing: an id already being looked up is awaited, not re-requested;
  lookups run as tasks owned by the cache, so cancelling one caller never
  cancels the result other callers are waiting on
- fixed-size batches to bound request fan-out

The clock and lookup function are injected so the cache can be driven by a
fake clock in tests and shared by whatever owns the connection lifecycle.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass

from filament_sync.config.settings import UsernameCacheConfig
from filament_sync.utils.time import Clock, now_unix_ms

UsernameLookup = Callable[[list[str]], Awaitable[Mapping[str, str]]]


@dataclass
class UsernameCacheEntry:
    """``username=None`` marks a negative entry."""

    username: str | None
    expires_at_unix_ms: float
    touched_at_unix_ms: float


class UsernameCache:
    """TTL + LRU username cache with coalesced, batched lookups."""

    def __init__(
        self,
        lookup: UsernameLookup,
        *,
        clock: Clock = now_unix_ms,
        capacity: int = 2048,
        batch_size: int = 32,
        ttl_ms: float = 5 * 60 * 1000,
        negative_ttl_ms: float = 30 * 1000,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self._lookup = lookup
        self._clock = clock
        self.capacity = capacity
        self.batch_size = batch_size
        self.ttl_ms = ttl_ms
        self.negative_ttl_ms = negative_ttl_ms
        self._entries: dict[str, UsernameCacheEntry] = {}
        self._inflight: dict[str, asyncio.Future[str | None]] = {}
        self._batches: set[asyncio.Task[None]] = set()

    @classmethod
    def from_config(
        cls,
        lookup: UsernameLookup,
        config: UsernameCacheConfig,
        *,
        clock: Clock = now_unix_ms,
    ) -> "UsernameCache":
        return cls(
            lookup,
            clock=clock,
            capacity=config.capacity,
            batch_size=config.batch_size,
            ttl_ms=config.ttl_ms,
            negative_ttl_ms=config.negative_ttl_ms,
        )

    def __len__(self) -> int:
        return len(self._entries)

    # -------------------------------------------------------------------------
    # Entry bookkeeping
    # -------------------------------------------------------------------------

    def _read_entry(self, user_id: str, now: float) -> UsernameCacheEntry | None:
        entry = self._entries.get(user_id)
        if entry is None:
            return None
        if entry.expires_at_unix_ms <= now:
            del self._entries[user_id]
            return None
        entry.touched_at_unix_ms = now
        return entry

    def _write_entry(self, user_id: str, username: str | None, now: float) -> None:
        ttl = self.ttl_ms if username is not None else self.negative_ttl_ms
        self._entries[user_id] = UsernameCacheEntry(
            username=username,
            expires_at_unix_ms=now + ttl,
            touched_at_unix_ms=now,
        )
        self._evict_if_needed()

    def _evict_if_needed(self) -> None:
        overflow = len(self._entries) - self.capacity
        if overflow <= 0:
            return
        oldest = sorted(
            self._entries.items(), key=lambda item: item[1].touched_at_unix_ms
        )
        for user_id, _ in oldest[:overflow]:
            del self._entries[user_id]

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def get_cached_username(self, user_id: str) -> str | None:
        """Return a live positive entry without triggering a lookup."""
        entry = self._read_entry(user_id, self._clock())
        return entry.username if entry is not None else None

    def prime_cache(self, entries: Mapping[str, str]) -> None:
        """Store known usernames (e.g. from a profile update event)."""
        now = self._clock()
        for user_id, username in entries.items():
            self._write_entry(user_id, username, now)

    def invalidate(self, user_id: str | None = None) -> None:
        """Drop one entry, or everything (entries and in-flight trackers)."""
        if user_id is None:
            self._entries.clear()
            self._inflight.clear()
            return
        self._entries.pop(user_id, None)
        self._inflight.pop(user_id, None)

    async def resolve_usernames(self, user_ids: Iterable[str]) -> dict[str, str]:
        """Resolve usernames, serving from cache where possible.

        Returns:
            Mapping of resolvable ids to usernames; negative ids are omitted.

        Raises:
            Exception: Whatever the lookup raised, if a batch this call
                depends on failed. Nothing is cached for a failed batch.
        """
        now = self._clock()
        resolved: dict[str, str] = {}
        waiting: dict[str, asyncio.Future[str | None]] = {}
        misses: list[str] = []

        for user_id in dict.fromkeys(user_ids):
            entry = self._read_entry(user_id, now)
            if entry is not None:
                if entry.username is not None:
                    resolved[user_id] = entry.username
                continue
            inflight = self._inflight.get(user_id)
            if inflight is not None:
                waiting[user_id] = inflight
                continue
            misses.append(user_id)

        if misses:
            loop = asyncio.get_running_loop()
            for start in range(0, len(misses), self.batch_size):
                chunk = misses[start : start + self.batch_size]
                futures = {user_id: loop.create_future() for user_id in chunk}
                self._inflight.update(futures)
                waiting.update(futures)
                self._start_batch(chunk, futures)

        if not waiting:
            return resolved

        # asyncio.wait leaves the shared futures alone if this caller is cancelled
        await asyncio.wait(set(waiting.values()))
        for user_id, future in waiting.items():
            if future.cancelled():
                raise asyncio.CancelledError(f"lookup for {user_id} was cancelled")
            error = future.exception()
            if error is not None:
                raise error
            username = future.result()
            if username is not None:
                resolved[user_id] = username
        return resolved

    def _start_batch(
        self, chunk: list[str], futures: dict[str, asyncio.Future[str | None]]
    ) -> None:
        for future in futures.values():
            future.add_done_callback(_consume_result)
        task = asyncio.ensure_future(self._lookup_batch(chunk, futures))
        self._batches.add(task)
        task.add_done_callback(self._batches.discard)

    async def close(self) -> None:
        """Cancel running lookups; their waiters see ``CancelledError``."""
        batches = list(self._batches)
        for task in batches:
            task.cancel()
        if batches:
            await asyncio.gather(*batches, return_exceptions=True)
        self._inflight.clear()

    async def _lookup_batch(
        self, chunk: list[str], futures: dict[str, asyncio.Future[str | None]]
    ) -> None:
        """Run one lookup and settle its futures.

        Lookup errors reach callers through the futures; only cancellation
        propagates from here.
        """
        try:
            found = await self._lookup(chunk)
        except asyncio.CancelledError:
            self._settle(chunk, futures, cancelled=True)
            raise
        except Exception as e:
            self._settle(chunk, futures, error=e)
            return

        now = self._clock()
        for user_id in chunk:
            username = found.get(user_id)
            # An invalidate() while in flight detaches the tracker; don't
            # resurrect the entry it dropped.
            if self._inflight.get(user_id) is futures[user_id]:
                self._write_entry(user_id, username, now)
        self._settle(chunk, futures, results=found)

    def _settle(
        self,
        chunk: list[str],
        futures: dict[str, asyncio.Future[str | None]],
        *,
        results: Mapping[str, str] | None = None,
        error: Exception | None = None,
        cancelled: bool = False,
    ) -> None:
        for user_id in chunk:
            future = futures[user_id]
            if self._inflight.get(user_id) is future:
                del self._inflight[user_id]
            if future.done():
                continue
            if cancelled:
                future.cancel()
            elif error is not None:
                future.set_exception(error)
            else:
                future.set_result((results or {}).get(user_id))


def _consume_result(future: asyncio.Future[str | None]) -> None:
    # Mark the outcome retrieved even when every waiter was cancelled
    if not future.cancelled():
        future.exception()
