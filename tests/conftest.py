"""Shared fixtures for filament-sync tests."""

from __future__ import annotations

from typing import Any, Callable

import pytest


def ulid(n: int) -> str:
    """Deterministic valid ULID; ordering follows ``n``."""
    return f"01J{n:023d}"


GUILD_ID = ulid(1)
CHANNEL_ID = ulid(2)
OTHER_CHANNEL_ID = ulid(3)
SELF_USER_ID = ulid(10)
USER_ID = ulid(11)


def _message_payload(
    message_id: str,
    *,
    created_at_unix: int = 1_700_000_000,
    content: str = "hello",
    guild_id: str = GUILD_ID,
    channel_id: str = CHANNEL_ID,
    author_id: str = USER_ID,
    **extra: Any,
) -> dict[str, Any]:
    payload = {
        "message_id": message_id,
        "guild_id": guild_id,
        "channel_id": channel_id,
        "author_id": author_id,
        "content": content,
        "markdown_tokens": [{"type": "text", "text": content}],
        "attachments": [],
        "created_at_unix": created_at_unix,
    }
    payload.update(extra)
    return payload


def _participant_payload(
    user_id: str = USER_ID,
    identity: str = "identity-a",
    **flags: Any,
) -> dict[str, Any]:
    payload = {
        "user_id": user_id,
        "identity": identity,
        "joined_at_unix": 1_700_000_000,
        "updated_at_unix": 1_700_000_000,
        "is_muted": False,
        "is_deafened": False,
        "is_speaking": False,
        "is_video_enabled": False,
        "is_screen_share_enabled": False,
    }
    payload.update(flags)
    return payload


@pytest.fixture
def guild_id() -> str:
    return GUILD_ID


@pytest.fixture
def channel_id() -> str:
    return CHANNEL_ID


@pytest.fixture
def self_user_id() -> str:
    return SELF_USER_ID


@pytest.fixture
def make_message_payload() -> Callable[..., dict[str, Any]]:
    """Factory for ``message_create`` payloads in the active channel."""
    return _message_payload


@pytest.fixture
def make_participant_payload() -> Callable[..., dict[str, Any]]:
    """Factory for voice participant records."""
    return _participant_payload


@pytest.fixture
def workspace_payload() -> dict[str, Any]:
    return {
        "guild_id": GUILD_ID,
        "guild_name": "Filament",
        "visibility": "private",
        "channels": [{"channel_id": CHANNEL_ID, "name": "general", "kind": "text"}],
        "roles": [
            {
                "role_id": ulid(20),
                "name": "workspace_owner",
                "position": 3,
                "is_system": True,
                "permissions": ["manage_roles"],
                "color_hex": "#aa00ff",
            },
            {
                "role_id": ulid(21),
                "name": "member",
                "position": 1,
                "is_system": True,
                "permissions": [],
            },
        ],
    }
