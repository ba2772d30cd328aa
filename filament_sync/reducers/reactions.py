"""Reaction state with an optimistic overlay.

Reaction state lives in two layers keyed by ``"<message_id>|<emoji>"``:

- ``confirmed``: what the server last told us
- ``pending``: local optimistic changes awaiting confirmation

``ReactionOverlay.view()`` combines them. A pending entry is dropped when the
server reports a count for its key or when the request behind it fails.

Across every reachable state ``count == 0`` implies ``reacted is False``:
zero-count entries are never stored, and ``view()`` filters them.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace

from filament_sync.domain import Message
from filament_sync.gateway.events import MessageReactionEvent

KEY_SEPARATOR = "|"


@dataclass(frozen=True)
class ReactionView:
    count: int
    reacted: bool


@dataclass(frozen=True)
class MessageReactionView:
    """One rendered reaction chip for a message."""

    emoji: str
    count: int
    reacted: bool


def reaction_key(message_id: str, emoji: str) -> str:
    return f"{message_id}{KEY_SEPARATOR}{emoji}"


def split_reaction_key(key: str) -> tuple[str, str]:
    """Split a reaction key into ``(message_id, emoji)``.

    Raises:
        ValueError: If the key was not built by ``reaction_key``.
    """
    message_id, separator, emoji = key.partition(KEY_SEPARATOR)
    if not separator or not message_id or not emoji:
        raise ValueError(f"Malformed reaction key: {key!r}")
    return message_id, emoji


def _without_prefix(entries: Mapping[str, ReactionView], prefix: str) -> dict[str, ReactionView]:
    return {key: value for key, value in entries.items() if not key.startswith(prefix)}


def _is_visible(entry: ReactionView) -> bool:
    return entry.count > 0


@dataclass(frozen=True)
class ReactionOverlay:
    confirmed: Mapping[str, ReactionView] = field(default_factory=dict)
    pending: Mapping[str, ReactionView] = field(default_factory=dict)

    def view(self) -> dict[str, ReactionView]:
        """Confirmed state with pending entries laid over it."""
        merged = dict(self.confirmed)
        merged.update(self.pending)
        return {key: entry for key, entry in merged.items() if _is_visible(entry)}

    def get(self, key: str) -> ReactionView | None:
        entry = self.pending.get(key) or self.confirmed.get(key)
        if entry is None or not _is_visible(entry):
            return None
        return entry

    def set_pending(self, key: str, entry: ReactionView) -> "ReactionOverlay":
        split_reaction_key(key)
        if entry.count <= 0:
            entry = ReactionView(count=0, reacted=False)
        if self.pending.get(key) == entry:
            return self
        return replace(self, pending={**self.pending, key: entry})

    def clear_pending(self, key: str) -> "ReactionOverlay":
        if key not in self.pending:
            return self
        pending = dict(self.pending)
        del pending[key]
        return replace(self, pending=pending)


def toggle_reaction(overlay: ReactionOverlay, key: str) -> tuple[ReactionOverlay, bool]:
    """Optimistically flip the local user's reaction on ``key``.

    Returns:
        (new overlay, True if the user now reacts / False if they removed it)
    """
    current = overlay.get(key) or ReactionView(count=0, reacted=False)
    if current.reacted:
        entry = ReactionView(count=max(current.count - 1, 0), reacted=False)
    else:
        entry = ReactionView(count=current.count + 1, reacted=True)
    return overlay.set_pending(key, entry), entry.reacted


def apply_message_reaction_update(
    overlay: ReactionOverlay, event: MessageReactionEvent
) -> ReactionOverlay:
    """Apply an authoritative reaction count.

    The server owns the count. The local ``reacted`` flag survives only
    while the count stays above zero; at zero the entry is dropped.
    """
    key = reaction_key(event.message_id, event.emoji)
    return confirm_reaction_count(overlay, key, event.count)


def confirm_reaction_count(
    overlay: ReactionOverlay, key: str, count: int
) -> ReactionOverlay:
    previous = overlay.get(key)
    confirmed = dict(overlay.confirmed)
    if count > 0:
        reacted = previous.reacted if previous is not None else False
        confirmed[key] = ReactionView(count=count, reacted=reacted)
    else:
        confirmed.pop(key, None)

    pending = dict(overlay.pending)
    pending.pop(key, None)

    if confirmed == overlay.confirmed and pending == overlay.pending:
        return overlay
    return ReactionOverlay(confirmed=confirmed, pending=pending)


def clear_message_reactions(overlay: ReactionOverlay, message_id: str) -> ReactionOverlay:
    """Drop every entry of one message, leaving other messages' keys alone."""
    prefix = f"{message_id}{KEY_SEPARATOR}"
    confirmed = _without_prefix(overlay.confirmed, prefix)
    pending = _without_prefix(overlay.pending, prefix)
    if len(confirmed) == len(overlay.confirmed) and len(pending) == len(overlay.pending):
        return overlay
    return ReactionOverlay(confirmed=confirmed, pending=pending)


def seed_message_reactions(
    overlay: ReactionOverlay, messages: Iterable[Message]
) -> ReactionOverlay:
    """Load reaction summaries delivered with a history page into ``confirmed``."""
    confirmed = dict(overlay.confirmed)
    for message in messages:
        for reaction in message.reactions:
            key = reaction_key(message.message_id, reaction.emoji)
            if reaction.count > 0:
                confirmed[key] = ReactionView(
                    count=reaction.count, reacted=reaction.reacted_by_me
                )
            else:
                confirmed.pop(key, None)
    if confirmed == overlay.confirmed:
        return overlay
    return replace(overlay, confirmed=confirmed)


def reaction_views_for_message(
    message_id: str, view: Mapping[str, ReactionView]
) -> list[MessageReactionView]:
    """Reaction chips of one message, most popular first, then by emoji."""
    prefix = f"{message_id}{KEY_SEPARATOR}"
    chips = [
        MessageReactionView(emoji=key[len(prefix) :], count=entry.count, reacted=entry.reacted)
        for key, entry in view.items()
        if key.startswith(prefix)
    ]
    chips.sort(key=lambda chip: (-chip.count, chip.emoji))
    return chips
