"""Attachment preview fetching.

Selects image/video attachments small enough to preview inline and fetches
each one in its own task:
- the first fetch waits a short initial delay so a burst of history pages
  doesn't fan out into immediate downloads
- failed fetches retry with a geometric, capped delay, then mark the
  attachment as failed until ``retry()`` is called
- targets that leave the message set have their tasks cancelled and their
  state dropped
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass

import httpx

from filament_sync.api.client import AttachmentPreview, FilamentAPIError, FilamentClient
from filament_sync.config.settings import MediaPreviewConfig
from filament_sync.domain import Message
from filament_sync.gateway.logger import logger
from filament_sync.utils.mime import MediaKind, resolve_attachment_preview_type

DEFAULT_MAX_PREVIEW_BYTES = 25 * 1024 * 1024
DEFAULT_MAX_RETRIES = 2
DEFAULT_INITIAL_DELAY_MS = 75.0

RETRY_BASE_MS = 250.0
RETRY_GROWTH_FACTOR = 1.5
RETRY_CAP_MS = 10_000.0


@dataclass(frozen=True)
class MediaPreviewTarget:
    """An attachment selected for inline preview."""

    attachment_id: str
    guild_id: str
    channel_id: str
    filename: str
    mime_type: str
    size_bytes: int


@dataclass(frozen=True)
class MediaPreview:
    kind: MediaKind
    mime_type: str
    data: bytes


PreviewFetch = Callable[[MediaPreviewTarget], Awaitable[AttachmentPreview]]
Sleep = Callable[[float], Awaitable[object]]


def collect_media_preview_targets(
    messages: Iterable[Message], max_preview_bytes: int = DEFAULT_MAX_PREVIEW_BYTES
) -> dict[str, MediaPreviewTarget]:
    """Pick the attachments worth previewing, keyed by attachment id.

    An attachment qualifies when its declared MIME type (or, for a generic
    declared type, its filename extension) is an image or video, and it is
    no larger than ``max_preview_bytes``.
    """
    targets: dict[str, MediaPreviewTarget] = {}
    for message in messages:
        for attachment in message.attachments:
            kind, _ = resolve_attachment_preview_type(
                None, attachment.mime_type, attachment.filename
            )
            if kind == "file" or attachment.size_bytes > max_preview_bytes:
                continue
            targets[attachment.attachment_id] = MediaPreviewTarget(
                attachment_id=attachment.attachment_id,
                guild_id=message.guild_id,
                channel_id=message.channel_id,
                filename=attachment.filename,
                mime_type=attachment.mime_type,
                size_bytes=attachment.size_bytes,
            )
    return targets


def media_preview_retry_delay_ms(
    attempt: int,
    base_ms: float = RETRY_BASE_MS,
    growth_factor: float = RETRY_GROWTH_FACTOR,
    cap_ms: float = RETRY_CAP_MS,
) -> float:
    """Delay before retry number ``attempt`` (1-based; lower values count as 1)."""
    exponent = max(attempt, 1) - 1
    try:
        delay = base_ms * growth_factor**exponent
    except OverflowError:
        return cap_ms
    return min(cap_ms, delay)


class MediaPreviewScheduler:
    """Keeps one fetch task per preview target of the current message set.

    State is exposed as snapshots (``previews``, ``loading_ids``,
    ``failed_ids``); ``on_change`` fires after every change to them.
    """

    def __init__(
        self,
        fetch: PreviewFetch,
        *,
        max_preview_bytes: int = DEFAULT_MAX_PREVIEW_BYTES,
        max_retries: int = DEFAULT_MAX_RETRIES,
        initial_delay_ms: float = DEFAULT_INITIAL_DELAY_MS,
        retry_base_ms: float = RETRY_BASE_MS,
        retry_growth_factor: float = RETRY_GROWTH_FACTOR,
        retry_cap_ms: float = RETRY_CAP_MS,
        sleep: Sleep = asyncio.sleep,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must not be negative")
        self._fetch = fetch
        self.max_preview_bytes = max_preview_bytes
        self.max_retries = max_retries
        self.initial_delay_ms = initial_delay_ms
        self.retry_base_ms = retry_base_ms
        self.retry_growth_factor = retry_growth_factor
        self.retry_cap_ms = retry_cap_ms
        self._sleep = sleep
        self._on_change = on_change

        self._targets: dict[str, MediaPreviewTarget] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._attempts: dict[str, int] = {}
        self._previews: dict[str, MediaPreview] = {}
        self._loading: set[str] = set()
        self._failed: set[str] = set()
        self._closed = False

    @classmethod
    def from_config(
        cls,
        fetch: PreviewFetch,
        config: MediaPreviewConfig,
        **kwargs,
    ) -> "MediaPreviewScheduler":
        return cls(
            fetch,
            max_preview_bytes=config.max_preview_bytes,
            max_retries=config.max_retries,
            initial_delay_ms=config.initial_delay_ms,
            retry_base_ms=config.retry_base_ms,
            retry_growth_factor=config.retry_growth_factor,
            retry_cap_ms=config.retry_cap_ms,
            **kwargs,
        )

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    @property
    def previews(self) -> dict[str, MediaPreview]:
        return dict(self._previews)

    @property
    def loading_ids(self) -> frozenset[str]:
        return frozenset(self._loading)

    @property
    def failed_ids(self) -> frozenset[str]:
        return frozenset(self._failed)

    @property
    def target_ids(self) -> frozenset[str]:
        return frozenset(self._targets)

    def attempts(self, attachment_id: str) -> int:
        return self._attempts.get(attachment_id, 0)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def sync(self, messages: Iterable[Message]) -> None:
        """Reconcile running fetches with the attachments of ``messages``."""
        if self._closed:
            return
        targets = collect_media_preview_targets(messages, self.max_preview_bytes)
        changed = False

        for attachment_id in list(self._targets):
            if attachment_id not in targets:
                self._drop(attachment_id)
                changed = True

        for attachment_id, target in targets.items():
            if attachment_id in self._targets:
                continue
            self._targets[attachment_id] = target
            self._start(attachment_id)
            changed = True

        if changed:
            self._notify()

    def retry(self, attachment_id: str) -> bool:
        """Restart a failed fetch with a fresh attempt budget.

        Returns:
            False if the attachment is not a current target or is not failed.
        """
        if self._closed or attachment_id not in self._targets:
            return False
        if attachment_id not in self._failed:
            return False
        self._attempts.pop(attachment_id, None)
        self._start(attachment_id)
        self._notify()
        return True

    async def close(self) -> None:
        """Cancel every fetch. Later calls to ``sync``/``retry`` do nothing."""
        if self._closed:
            return
        self._closed = True
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._loading.clear()

    # -------------------------------------------------------------------------
    # Task management
    # -------------------------------------------------------------------------

    def _start(self, attachment_id: str) -> None:
        self._failed.discard(attachment_id)
        self._loading.add(attachment_id)
        self._tasks[attachment_id] = asyncio.create_task(
            self._run(attachment_id), name=f"preview-{attachment_id}"
        )

    def _drop(self, attachment_id: str) -> None:
        task = self._tasks.pop(attachment_id, None)
        if task is not None:
            task.cancel()
        self._targets.pop(attachment_id, None)
        self._attempts.pop(attachment_id, None)
        self._previews.pop(attachment_id, None)
        self._loading.discard(attachment_id)
        self._failed.discard(attachment_id)

    def _finish(self, attachment_id: str) -> None:
        self._loading.discard(attachment_id)
        if self._tasks.get(attachment_id) is asyncio.current_task():
            del self._tasks[attachment_id]
        self._notify()

    async def _run(self, attachment_id: str) -> None:
        target = self._targets[attachment_id]
        if self._attempts.get(attachment_id, 0) == 0:
            await self._sleep(self.initial_delay_ms / 1000)

        while True:
            try:
                payload = await self._fetch(target)
            except (FilamentAPIError, httpx.HTTPError) as e:
                attempt = self._attempts.get(attachment_id, 0) + 1
                self._attempts[attachment_id] = attempt
                if attempt > self.max_retries:
                    self._failed.add(attachment_id)
                    logger.preview_failed(attachment_id, attempt, str(e))
                    self._finish(attachment_id)
                    return
                delay_ms = media_preview_retry_delay_ms(
                    attempt,
                    self.retry_base_ms,
                    self.retry_growth_factor,
                    self.retry_cap_ms,
                )
                logger.retry(attempt, self.max_retries, delay_ms / 1000, str(e))
                await self._sleep(delay_ms / 1000)
                continue
            except Exception as e:
                # Not transient: fail now and leave it to a manual retry()
                attempt = self._attempts.get(attachment_id, 0) + 1
                self._attempts[attachment_id] = attempt
                self._failed.add(attachment_id)
                logger.preview_failed(attachment_id, attempt, f"{type(e).__name__}: {e}")
                self._finish(attachment_id)
                return
            break

        kind, mime_type = resolve_attachment_preview_type(
            payload.mime_type, target.mime_type, target.filename
        )
        self._attempts.pop(attachment_id, None)
        # Served bytes that turn out not to be media are left as a plain file.
        if kind != "file":
            self._previews[attachment_id] = MediaPreview(
                kind=kind, mime_type=mime_type, data=payload.data
            )
        self._finish(attachment_id)

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()


def preview_fetcher(client: FilamentClient, max_preview_bytes: int) -> PreviewFetch:
    """Adapt ``FilamentClient.download_attachment_preview`` to a ``PreviewFetch``."""

    async def fetch(target: MediaPreviewTarget) -> AttachmentPreview:
        return await client.download_attachment_preview(
            target.guild_id, target.channel_id, target.attachment_id, max_preview_bytes
        )

    return fetch
