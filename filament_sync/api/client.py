"""Filament REST API client with retry handling.

This module provides an async HTTP client for the Filament REST API with:
- Automatic rate limit handling (429 responses, Retry-After)
- Exponential backoff for server errors (5xx), timeouts and transport errors
- Bearer-token auth and fail-closed validation of response bodies
"""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, TypeVar
from urllib.parse import quote

import httpx
from pydantic import StrictStr, ValidationError

from filament_sync.domain import Channel, MessageHistoryPage, Workspace
from filament_sync.domain.base import DomainModel
from filament_sync.domain.types import (
    GuildName,
    NonNegativeInt,
    ReactionEmoji,
    Ulid,
    Username,
)
from filament_sync.domain.workspace import GuildVisibility
from filament_sync.gateway.logger import logger

# Retry configuration
MAX_RETRIES = 3
MAX_RATE_LIMIT_RETRIES = 10  # Cap on consecutive 429 retries
INITIAL_BACKOFF = 0.5  # seconds
MAX_BACKOFF = 8.0  # seconds
DEFAULT_RETRY_AFTER = 1.0  # seconds, when Retry-After is missing or unparseable

MAX_LOOKUP_USER_IDS = 64
MAX_HISTORY_PAGE = 100

ModelT = TypeVar("ModelT", bound=DomainModel)


class FilamentAPIError(Exception):
    """Raised when the Filament API returns an error or an invalid body."""

    def __init__(self, status_code: int, code: str, message: str = "") -> None:
        self.status_code = status_code
        self.code = code
        self.message = message or code
        super().__init__(f"Filament API error {status_code} ({code}): {self.message}")


# -----------------------------------------------------------------------------
# Response bodies
# -----------------------------------------------------------------------------


class UserLookupEntry(DomainModel):
    user_id: Ulid
    username: Username


class UserLookupResponse(DomainModel):
    users: tuple[UserLookupEntry, ...]


class GuildEntry(DomainModel):
    guild_id: Ulid
    name: GuildName
    visibility: GuildVisibility = "private"


class GuildListResponse(DomainModel):
    guilds: tuple[GuildEntry, ...]


class ChannelListResponse(DomainModel):
    channels: tuple[Channel, ...]


class ReactionResponse(DomainModel):
    emoji: ReactionEmoji
    count: NonNegativeInt


class ErrorBody(DomainModel):
    error: StrictStr = "unexpected_error"
    message: StrictStr | None = None


@dataclass(frozen=True)
class AttachmentPreview:
    """Downloaded preview bytes with the MIME type the server reported."""

    data: bytes
    mime_type: str | None


def _parse(model: type[ModelT], data: Any, status_code: int = 200) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise FilamentAPIError(
            status_code, "invalid_response", f"{model.__name__}: {e.error_count()} error(s)"
        ) from e


def _retry_after_seconds(value: str | None) -> float:
    """Parse a Retry-After header given as delta-seconds or an HTTP date."""
    if not value:
        return DEFAULT_RETRY_AFTER
    try:
        seconds = float(value)
    except ValueError:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return DEFAULT_RETRY_AFTER
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        seconds = (when - datetime.now(timezone.utc)).total_seconds()
    if not math.isfinite(seconds):
        return DEFAULT_RETRY_AFTER
    return max(seconds, 0.0)


def _error_from_response(response: httpx.Response) -> FilamentAPIError:
    try:
        body = ErrorBody.model_validate(response.json())
    except (ValueError, ValidationError):
        return FilamentAPIError(response.status_code, "unexpected_error", response.text)
    return FilamentAPIError(response.status_code, body.error, body.message or "")


@dataclass
class FilamentClient:
    """Async Filament REST API client.

    Handles rate limits and retries automatically. Use as an async context
    manager so the underlying connection pool is closed.
    """

    base_url: str
    access_token: str
    timeout: float = 30.0

    def __post_init__(self) -> None:
        self._client: httpx.AsyncClient | None = None

    @property
    def headers(self) -> dict[str, str]:
        """Build request headers."""
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
        }

    async def __aenter__(self) -> "FilamentClient":
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _send(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        """Send a request with rate limit and retry handling.

        Returns:
            The successful (2xx) response.

        Raises:
            FilamentAPIError: On client errors, or when retries run out.
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Use async with.")

        backoff = INITIAL_BACKOFF
        rate_limit_retries = 0
        attempt = 0

        while True:
            try:
                response = await self._client.request(
                    method, path, params=params, json=json
                )
            except (httpx.TimeoutException, httpx.TransportError) as e:
                if attempt < MAX_RETRIES:
                    attempt += 1
                    reason = "timeout" if isinstance(e, httpx.TimeoutException) else str(e)
                    logger.retry(attempt, MAX_RETRIES, backoff, reason)
                    await asyncio.sleep(backoff)
                    backoff = min(backoff * 2, MAX_BACKOFF)
                    continue
                raise

            if 200 <= response.status_code < 300:
                return response

            # Rate limited - wait and retry (doesn't count as attempt)
            if response.status_code == 429:
                rate_limit_retries += 1
                if rate_limit_retries > MAX_RATE_LIMIT_RETRIES:
                    raise FilamentAPIError(429, "rate_limited", "Max rate limit retries exceeded")
                retry_after = _retry_after_seconds(response.headers.get("Retry-After"))
                logger.rate_limit(retry_after)
                await asyncio.sleep(retry_after)
                continue

            if response.status_code >= 500 and attempt < MAX_RETRIES:
                attempt += 1
                logger.retry(attempt, MAX_RETRIES, backoff, f"HTTP {response.status_code}")
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, MAX_BACKOFF)
                continue

            # 4xx fail fast; 5xx once retries are exhausted
            raise _error_from_response(response)

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Send a request and return the decoded JSON body (None for 204)."""
        response = await self._send(method, path, params=params, json=json)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise FilamentAPIError(
                response.status_code, "invalid_response", "body is not JSON"
            ) from e

    # -------------------------------------------------------------------------
    # User endpoints
    # -------------------------------------------------------------------------

    async def lookup_users_by_ids(self, user_ids: list[str]) -> dict[str, str]:
        """Resolve usernames for a batch of user ids.

        Ids the server does not return are simply absent from the result.
        """
        if not user_ids:
            return {}
        if len(user_ids) > MAX_LOOKUP_USER_IDS:
            raise ValueError(f"At most {MAX_LOOKUP_USER_IDS} ids per lookup")
        data = await self._request("POST", "/users/lookup", json={"user_ids": user_ids})
        result = _parse(UserLookupResponse, data)
        requested = set(user_ids)
        return {
            entry.user_id: entry.username
            for entry in result.users
            if entry.user_id in requested
        }

    # -------------------------------------------------------------------------
    # Workspace endpoints
    # -------------------------------------------------------------------------

    async def list_workspaces(self) -> list[Workspace]:
        """Fetch the guilds the user belongs to (without channels)."""
        result = _parse(GuildListResponse, await self._request("GET", "/guilds"))
        return [
            Workspace(
                guild_id=guild.guild_id,
                guild_name=guild.name,
                visibility=guild.visibility,
            )
            for guild in result.guilds
        ]

    async def list_guild_channels(self, guild_id: str) -> list[Channel]:
        data = await self._request("GET", f"/guilds/{guild_id}/channels")
        return list(_parse(ChannelListResponse, data).channels)

    async def fetch_workspace_snapshot(self) -> list[Workspace]:
        """Fetch every workspace together with its channel list."""
        workspaces = await self.list_workspaces()
        snapshot: list[Workspace] = []
        for workspace in workspaces:
            channels = await self.list_guild_channels(workspace.guild_id)
            snapshot.append(workspace.model_copy(update={"channels": tuple(channels)}))
        return snapshot

    # -------------------------------------------------------------------------
    # Message endpoints
    # -------------------------------------------------------------------------

    async def get_channel_messages(
        self,
        guild_id: str,
        channel_id: str,
        before: str | None = None,
        limit: int = 50,
    ) -> MessageHistoryPage:
        """Fetch one page of channel history.

        Args:
            guild_id: Guild of the channel
            channel_id: The channel to fetch from
            before: Only return messages older than this message id
            limit: Max messages to return (1-100)
        """
        params: dict[str, Any] = {"limit": max(1, min(limit, MAX_HISTORY_PAGE))}
        if before:
            params["before"] = before
        data = await self._request(
            "GET", f"/guilds/{guild_id}/channels/{channel_id}/messages", params=params
        )
        return _parse(MessageHistoryPage, data)

    def _reaction_path(
        self, guild_id: str, channel_id: str, message_id: str, emoji: str
    ) -> str:
        return (
            f"/guilds/{guild_id}/channels/{channel_id}/messages/{message_id}"
            f"/reactions/{quote(emoji, safe='')}"
        )

    async def add_message_reaction(
        self, guild_id: str, channel_id: str, message_id: str, emoji: str
    ) -> int:
        """React to a message. Returns the new reaction count."""
        data = await self._request(
            "POST", self._reaction_path(guild_id, channel_id, message_id, emoji)
        )
        return _parse(ReactionResponse, data).count

    async def remove_message_reaction(
        self, guild_id: str, channel_id: str, message_id: str, emoji: str
    ) -> int:
        """Remove the user's reaction. Returns the new reaction count."""
        data = await self._request(
            "DELETE", self._reaction_path(guild_id, channel_id, message_id, emoji)
        )
        return _parse(ReactionResponse, data).count

    # -------------------------------------------------------------------------
    # Attachment endpoints
    # -------------------------------------------------------------------------

    async def download_attachment_preview(
        self,
        guild_id: str,
        channel_id: str,
        attachment_id: str,
        max_bytes: int,
    ) -> AttachmentPreview:
        """Download attachment bytes for an inline preview.

        Raises:
            FilamentAPIError: 413 if the body exceeds ``max_bytes``.
        """
        response = await self._send(
            "GET", f"/guilds/{guild_id}/channels/{channel_id}/attachments/{attachment_id}"
        )
        data = response.content
        if len(data) > max_bytes:
            raise FilamentAPIError(413, "preview_too_large", f"{len(data)} bytes")
        return AttachmentPreview(data=data, mime_type=response.headers.get("Content-Type"))
