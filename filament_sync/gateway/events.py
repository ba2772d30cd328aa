"""Typed gateway event payloads.

Each event type on the wire maps to exactly one model below. The closed set
of models is ``GatewayEvent``'s subclasses listed in ``EVENT_MODELS``; the
state store keeps a handler for every one of them.

Payload field names match the wire (``snake_case``). Partial-update payloads
carry an ``updated_fields`` object; a field that is absent there is left
untouched, which is why reducers consult ``model_fields_set``.
"""

from __future__ import annotations

from typing import Any, ClassVar, Literal

from pydantic import Field, StrictBool, field_validator, model_validator

from filament_sync.domain import (
    Channel,
    GuildVisibility,
    MarkdownToken,
    Message,
    VoiceParticipant,
    VoiceStreamKind,
    WorkspaceRole,
)
from filament_sync.domain.base import DomainModel
from filament_sync.domain.types import (
    ColorHex,
    GuildName,
    MessageContent,
    NonNegativeInt,
    PermissionName,
    ReactionEmoji,
    RoleName,
    Ulid,
    UnixTimestamp,
    Username,
    VoiceIdentity,
)

MAX_PRESENCE_SYNC_USER_IDS = 1024
MAX_VOICE_PARTICIPANT_SYNC_SIZE = 512
MAX_ROLE_REORDER_IDS = 64


class GatewayEvent(DomainModel):
    """Base class for every decoded gateway event."""

    event_type: ClassVar[str]


class _PartialUpdate(DomainModel):
    """An ``updated_fields`` object.

    At least one field must be present, and a present field may only be
    null when it is listed in ``nullable_fields``.
    """

    nullable_fields: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="after")
    def require_any_field(self) -> "_PartialUpdate":
        if not self.model_fields_set:
            raise ValueError("updated_fields must contain at least one field")
        for name in self.model_fields_set - self.nullable_fields:
            if getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


# -----------------------------------------------------------------------------
# Session
# -----------------------------------------------------------------------------


class ReadyEvent(GatewayEvent):
    event_type: ClassVar[str] = "ready"

    user_id: Ulid


class SubscribedEvent(GatewayEvent):
    event_type: ClassVar[str] = "subscribed"

    guild_id: Ulid
    channel_id: Ulid


# -----------------------------------------------------------------------------
# Messages
# -----------------------------------------------------------------------------


class MessageCreateEvent(GatewayEvent):
    """A new message. The wire payload is the message record itself."""

    event_type: ClassVar[str] = "message_create"

    message: Message

    @model_validator(mode="before")
    @classmethod
    def wrap_message(cls, data: Any) -> Any:
        if isinstance(data, dict) and "message" not in data:
            return {"message": data}
        return data

    @property
    def guild_id(self) -> str:
        return self.message.guild_id

    @property
    def channel_id(self) -> str:
        return self.message.channel_id


class MessageUpdateFields(_PartialUpdate):
    content: MessageContent | None = None
    markdown_tokens: tuple[MarkdownToken, ...] | None = None


class MessageUpdateEvent(GatewayEvent):
    event_type: ClassVar[str] = "message_update"

    guild_id: Ulid
    channel_id: Ulid
    message_id: Ulid
    updated_fields: MessageUpdateFields
    updated_at_unix: UnixTimestamp


class MessageDeleteEvent(GatewayEvent):
    event_type: ClassVar[str] = "message_delete"

    guild_id: Ulid
    channel_id: Ulid
    message_id: Ulid
    deleted_at_unix: UnixTimestamp


class MessageReactionEvent(GatewayEvent):
    """Authoritative reaction count for one message and emoji."""

    event_type: ClassVar[str] = "message_reaction"

    guild_id: Ulid
    channel_id: Ulid
    message_id: Ulid
    emoji: ReactionEmoji
    count: NonNegativeInt


# -----------------------------------------------------------------------------
# Presence
# -----------------------------------------------------------------------------


class PresenceSyncEvent(GatewayEvent):
    event_type: ClassVar[str] = "presence_sync"

    guild_id: Ulid
    user_ids: tuple[Ulid, ...] = Field(max_length=MAX_PRESENCE_SYNC_USER_IDS)

    @field_validator("user_ids", mode="after")
    @classmethod
    def dedupe_user_ids(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(dict.fromkeys(v))


class PresenceUpdateEvent(GatewayEvent):
    event_type: ClassVar[str] = "presence_update"

    guild_id: Ulid
    user_id: Ulid
    status: Literal["online", "offline"]


# -----------------------------------------------------------------------------
# Workspace and members
# -----------------------------------------------------------------------------


class ChannelCreateEvent(GatewayEvent):
    event_type: ClassVar[str] = "channel_create"

    guild_id: Ulid
    channel: Channel


class WorkspaceUpdateFields(_PartialUpdate):
    name: GuildName | None = None
    visibility: GuildVisibility | None = None


class WorkspaceUpdateEvent(GatewayEvent):
    event_type: ClassVar[str] = "workspace_update"

    guild_id: Ulid
    updated_fields: WorkspaceUpdateFields
    updated_at_unix: UnixTimestamp


class WorkspaceMemberAddEvent(GatewayEvent):
    event_type: ClassVar[str] = "workspace_member_add"

    guild_id: Ulid
    user_id: Ulid
    role: RoleName
    joined_at_unix: UnixTimestamp


class WorkspaceMemberUpdateFields(_PartialUpdate):
    role: RoleName | None = None


class WorkspaceMemberUpdateEvent(GatewayEvent):
    event_type: ClassVar[str] = "workspace_member_update"

    guild_id: Ulid
    user_id: Ulid
    updated_fields: WorkspaceMemberUpdateFields
    updated_at_unix: UnixTimestamp


class WorkspaceMemberRemoveEvent(GatewayEvent):
    event_type: ClassVar[str] = "workspace_member_remove"

    guild_id: Ulid
    user_id: Ulid
    reason: Literal["kick", "ban", "leave"]
    removed_at_unix: UnixTimestamp


class WorkspaceMemberBanEvent(GatewayEvent):
    event_type: ClassVar[str] = "workspace_member_ban"

    guild_id: Ulid
    user_id: Ulid
    banned_at_unix: UnixTimestamp


# -----------------------------------------------------------------------------
# Roles
# -----------------------------------------------------------------------------


class WorkspaceRoleCreateEvent(GatewayEvent):
    event_type: ClassVar[str] = "workspace_role_create"

    guild_id: Ulid
    role: WorkspaceRole


class WorkspaceRoleUpdateFields(_PartialUpdate):
    """``color_hex: null`` clears the color; omitting it leaves it alone."""

    nullable_fields: ClassVar[frozenset[str]] = frozenset({"color_hex"})

    name: RoleName | None = None
    permissions: tuple[PermissionName, ...] | None = None
    color_hex: ColorHex | None = None


class WorkspaceRoleUpdateEvent(GatewayEvent):
    event_type: ClassVar[str] = "workspace_role_update"

    guild_id: Ulid
    role_id: Ulid
    updated_fields: WorkspaceRoleUpdateFields
    updated_at_unix: UnixTimestamp


class WorkspaceRoleDeleteEvent(GatewayEvent):
    event_type: ClassVar[str] = "workspace_role_delete"

    guild_id: Ulid
    role_id: Ulid
    deleted_at_unix: UnixTimestamp


class WorkspaceRoleReorderEvent(GatewayEvent):
    """New role hierarchy, highest role first."""

    event_type: ClassVar[str] = "workspace_role_reorder"

    guild_id: Ulid
    role_ids: tuple[Ulid, ...] = Field(max_length=MAX_ROLE_REORDER_IDS)
    updated_at_unix: UnixTimestamp

    @field_validator("role_ids", mode="after")
    @classmethod
    def reject_duplicates(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if len(set(v)) != len(v):
            raise ValueError("role_ids must be unique")
        return v


class WorkspaceRoleAssignmentAddEvent(GatewayEvent):
    event_type: ClassVar[str] = "workspace_role_assignment_add"

    guild_id: Ulid
    user_id: Ulid
    role_id: Ulid
    assigned_at_unix: UnixTimestamp


class WorkspaceRoleAssignmentRemoveEvent(GatewayEvent):
    event_type: ClassVar[str] = "workspace_role_assignment_remove"

    guild_id: Ulid
    user_id: Ulid
    role_id: Ulid
    removed_at_unix: UnixTimestamp


# -----------------------------------------------------------------------------
# Voice
# -----------------------------------------------------------------------------


class VoiceParticipantSyncEvent(GatewayEvent):
    """Full roster snapshot. Repeated identities keep their first entry."""

    event_type: ClassVar[str] = "voice_participant_sync"

    guild_id: Ulid
    channel_id: Ulid
    participants: tuple[VoiceParticipant, ...] = Field(
        max_length=MAX_VOICE_PARTICIPANT_SYNC_SIZE
    )
    synced_at_unix: UnixTimestamp

    @field_validator("participants", mode="after")
    @classmethod
    def dedupe_identities(
        cls, v: tuple[VoiceParticipant, ...]
    ) -> tuple[VoiceParticipant, ...]:
        seen: set[str] = set()
        unique: list[VoiceParticipant] = []
        for participant in v:
            if participant.identity in seen:
                continue
            seen.add(participant.identity)
            unique.append(participant)
        return tuple(unique)


class VoiceParticipantJoinEvent(GatewayEvent):
    event_type: ClassVar[str] = "voice_participant_join"

    guild_id: Ulid
    channel_id: Ulid
    participant: VoiceParticipant


class VoiceParticipantUpdateFields(_PartialUpdate):
    is_muted: StrictBool | None = None
    is_deafened: StrictBool | None = None
    is_speaking: StrictBool | None = None
    is_video_enabled: StrictBool | None = None
    is_screen_share_enabled: StrictBool | None = None


class VoiceParticipantUpdateEvent(GatewayEvent):
    event_type: ClassVar[str] = "voice_participant_update"

    guild_id: Ulid
    channel_id: Ulid
    user_id: Ulid
    identity: VoiceIdentity
    updated_fields: VoiceParticipantUpdateFields
    updated_at_unix: UnixTimestamp


class VoiceParticipantLeaveEvent(GatewayEvent):
    event_type: ClassVar[str] = "voice_participant_leave"

    guild_id: Ulid
    channel_id: Ulid
    user_id: Ulid
    identity: VoiceIdentity
    left_at_unix: UnixTimestamp


class VoiceStreamPublishEvent(GatewayEvent):
    event_type: ClassVar[str] = "voice_stream_publish"

    guild_id: Ulid
    channel_id: Ulid
    user_id: Ulid
    identity: VoiceIdentity
    stream: VoiceStreamKind
    published_at_unix: UnixTimestamp


class VoiceStreamUnpublishEvent(GatewayEvent):
    event_type: ClassVar[str] = "voice_stream_unpublish"

    guild_id: Ulid
    channel_id: Ulid
    user_id: Ulid
    identity: VoiceIdentity
    stream: VoiceStreamKind
    unpublished_at_unix: UnixTimestamp


# -----------------------------------------------------------------------------
# Profiles
# -----------------------------------------------------------------------------


class ProfileUpdateFields(_PartialUpdate):
    username: Username | None = None
    about_markdown: MessageContent | None = None


class ProfileUpdateEvent(GatewayEvent):
    event_type: ClassVar[str] = "profile_update"

    user_id: Ulid
    updated_fields: ProfileUpdateFields
    updated_at_unix: UnixTimestamp


class ProfileAvatarUpdateEvent(GatewayEvent):
    event_type: ClassVar[str] = "profile_avatar_update"

    user_id: Ulid
    avatar_version: NonNegativeInt
    updated_at_unix: UnixTimestamp


EVENT_MODELS: dict[str, type[GatewayEvent]] = {
    model.event_type: model
    for model in (
        ReadyEvent,
        SubscribedEvent,
        MessageCreateEvent,
        MessageUpdateEvent,
        MessageDeleteEvent,
        MessageReactionEvent,
        PresenceSyncEvent,
        PresenceUpdateEvent,
        ChannelCreateEvent,
        WorkspaceUpdateEvent,
        WorkspaceMemberAddEvent,
        WorkspaceMemberUpdateEvent,
        WorkspaceMemberRemoveEvent,
        WorkspaceMemberBanEvent,
        WorkspaceRoleCreateEvent,
        WorkspaceRoleUpdateEvent,
        WorkspaceRoleDeleteEvent,
        WorkspaceRoleReorderEvent,
        WorkspaceRoleAssignmentAddEvent,
        WorkspaceRoleAssignmentRemoveEvent,
        VoiceParticipantSyncEvent,
        VoiceParticipantJoinEvent,
        VoiceParticipantUpdateEvent,
        VoiceParticipantLeaveEvent,
        VoiceStreamPublishEvent,
        VoiceStreamUnpublishEvent,
        ProfileUpdateEvent,
        ProfileAvatarUpdateEvent,
    )
}
