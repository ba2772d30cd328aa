"""Message, attachment and markdown token records."""

from __future__ import annotations

from typing import Annotated

from pydantic import StrictBool, StrictStr, StringConstraints

from filament_sync.domain.base import DomainModel
from filament_sync.domain.types import (
    Filename,
    MessageContent,
    MimeType,
    NonNegativeInt,
    ReactionEmoji,
    Ulid,
    UnixTimestamp,
)


class MarkdownToken(DomainModel):
    """One token of server-rendered markdown. Rendering is out of scope."""

    type: Annotated[StrictStr, StringConstraints(min_length=1, max_length=32)]
    text: StrictStr | None = None
    href: StrictStr | None = None
    language: StrictStr | None = None


class Attachment(DomainModel):
    attachment_id: Ulid
    filename: Filename
    mime_type: MimeType
    size_bytes: NonNegativeInt


class MessageReaction(DomainModel):
    """Reaction summary as delivered with a history page."""

    emoji: ReactionEmoji
    count: NonNegativeInt
    reacted_by_me: StrictBool = False


class Message(DomainModel):
    """One channel message.

    ``reactions`` only seeds reaction state when a history page is loaded;
    live counts are tracked in the reaction overlay, not here.
    """

    message_id: Ulid
    guild_id: Ulid
    channel_id: Ulid
    author_id: Ulid
    content: MessageContent
    markdown_tokens: tuple[MarkdownToken, ...] = ()
    attachments: tuple[Attachment, ...] = ()
    reactions: tuple[MessageReaction, ...] = ()
    created_at_unix: UnixTimestamp


class MessageHistoryPage(DomainModel):
    """One page of ``GET .../messages``; ``next_before`` is the cursor for older pages."""

    messages: tuple[Message, ...]
    next_before: Ulid | None = None
