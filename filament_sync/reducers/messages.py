"""Message list reducers.

A channel's messages are a tuple ordered ascending by ``created_at_unix``,
with ties broken by ``message_id``. All functions are pure and return the input
object itself when nothing changes.
"""

from __future__ import annotations

from collections.abc import Iterable

from filament_sync.domain import Message
from filament_sync.gateway.events import (
    MessageCreateEvent,
    MessageDeleteEvent,
    MessageUpdateEvent,
)

MessageList = tuple[Message, ...]


def _index_of(messages: MessageList, message_id: str) -> int | None:
    for index, message in enumerate(messages):
        if message.message_id == message_id:
            return index
    return None


def _chronology_key(message: Message) -> tuple[int, str]:
    return (message.created_at_unix, message.message_id)


def _insertion_index(messages: MessageList, message: Message) -> int:
    """Index after the last message that sorts before ``message``.

    Equal timestamps fall back to the id (ULIDs sort by creation time), so
    two creates applied in either order produce the same list. Scans from
    the tail since live messages almost always land at the end.
    """
    key = _chronology_key(message)
    index = len(messages)
    while index > 0 and _chronology_key(messages[index - 1]) > key:
        index -= 1
    return index


def merge_message(messages: MessageList, message: Message) -> MessageList:
    """Insert or replace one message by id.

    A replacement whose timestamp is unchanged stays where it is; otherwise
    the message is (re)inserted at its chronological position.
    """
    existing_index = _index_of(messages, message.message_id)
    if existing_index is not None:
        existing = messages[existing_index]
        if existing == message:
            return messages
        if existing.created_at_unix == message.created_at_unix:
            return (
                messages[:existing_index] + (message,) + messages[existing_index + 1 :]
            )
        messages = messages[:existing_index] + messages[existing_index + 1 :]

    index = _insertion_index(messages, message)
    return messages[:index] + (message,) + messages[index:]


def apply_message_create(messages: MessageList, event: MessageCreateEvent) -> MessageList:
    return merge_message(messages, event.message)


def apply_message_update(messages: MessageList, event: MessageUpdateEvent) -> MessageList:
    """Shallow-merge the fields present in ``updated_fields``; unknown ids are a no-op."""
    index = _index_of(messages, event.message_id)
    if index is None:
        return messages

    fields = event.updated_fields
    changes = {name: getattr(fields, name) for name in fields.model_fields_set}
    existing = messages[index]
    updated = existing.model_copy(update=changes)
    if updated == existing:
        return messages
    return messages[:index] + (updated,) + messages[index + 1 :]


def apply_message_delete(messages: MessageList, event: MessageDeleteEvent) -> MessageList:
    index = _index_of(messages, event.message_id)
    if index is None:
        return messages
    return messages[:index] + messages[index + 1 :]


def merge_message_history(
    existing: MessageList, page: Iterable[Message]
) -> MessageList:
    """Merge a page of older history into the live list.

    The result holds each id once and is fully ordered by
    ``(created_at_unix, message_id)``. For ids present on both sides the
    live copy wins, whichever side happened to be newer on the wire.
    """
    by_id: dict[str, Message] = {}
    for message in page:
        by_id[message.message_id] = message
    for message in existing:
        by_id[message.message_id] = message
    merged = tuple(sorted(by_id.values(), key=_chronology_key))
    if merged == existing:
        return existing
    return merged
