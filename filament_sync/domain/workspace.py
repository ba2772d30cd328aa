"""Workspace (guild), channel and role records."""

from __future__ import annotations

from typing import Literal

from pydantic import StrictBool

from filament_sync.domain.base import DomainModel
from filament_sync.domain.types import (
    ChannelName,
    ColorHex,
    GuildName,
    PermissionName,
    PositiveInt,
    RoleName,
    Ulid,
)

GuildVisibility = Literal["private", "public"]
ChannelKind = Literal["text", "voice"]


class Channel(DomainModel):
    channel_id: Ulid
    name: ChannelName
    kind: ChannelKind = "text"


class WorkspaceRole(DomainModel):
    """A guild role. ``color_hex`` is stored as ``#RRGGBB`` uppercase."""

    role_id: Ulid
    name: RoleName
    position: PositiveInt
    is_system: StrictBool
    permissions: tuple[PermissionName, ...] = ()
    color_hex: ColorHex | None = None


class Workspace(DomainModel):
    """A guild as the local client knows it.

    Channel ids are unique within ``channels``; reducers keep it that way.
    """

    guild_id: Ulid
    guild_name: GuildName
    visibility: GuildVisibility = "private"
    channels: tuple[Channel, ...] = ()
    roles: tuple[WorkspaceRole, ...] = ()
