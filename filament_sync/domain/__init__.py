"""Filament domain records.

All records are frozen pydantic models validated with strict scalar types.
"""

from filament_sync.domain.base import DomainModel
from filament_sync.domain.message import (
    Attachment,
    MarkdownToken,
    Message,
    MessageHistoryPage,
    MessageReaction,
)
from filament_sync.domain.voice import VoiceParticipant, VoiceStreamKind
from filament_sync.domain.workspace import (
    Channel,
    ChannelKind,
    GuildVisibility,
    Workspace,
    WorkspaceRole,
)

__all__ = [
    "DomainModel",
    "Attachment",
    "MarkdownToken",
    "Message",
    "MessageHistoryPage",
    "MessageReaction",
    "VoiceParticipant",
    "VoiceStreamKind",
    "Channel",
    "ChannelKind",
    "GuildVisibility",
    "Workspace",
    "WorkspaceRole",
]
