"""Voice roster reducers.

Rosters map ``(guild_id, channel_id)`` to the ordered participants of that
channel. Each user has at most one identity on record per channel: a join
under a new identity supersedes the old one. A leave only removes the
participant when its identity is still the one on record, so a late "leave"
for a superseded session cannot evict the user's current session.
"""

from __future__ import annotations

from collections.abc import Mapping

from filament_sync.domain import VoiceParticipant, VoiceStreamKind
from filament_sync.gateway.events import (
    VoiceParticipantJoinEvent,
    VoiceParticipantLeaveEvent,
    VoiceParticipantSyncEvent,
    VoiceParticipantUpdateEvent,
    VoiceStreamPublishEvent,
    VoiceStreamUnpublishEvent,
)

RosterKey = tuple[str, str]
Roster = tuple[VoiceParticipant, ...]
Rosters = Mapping[RosterKey, Roster]

# Flag patched by a stream publish; unpublish applies the opposite value.
_PUBLISH_FLAGS: dict[VoiceStreamKind, tuple[str, bool]] = {
    "microphone": ("is_muted", False),
    "camera": ("is_video_enabled", True),
    "screen_share": ("is_screen_share_enabled", True),
}


def _with_roster(rosters: Rosters, key: RosterKey, roster: Roster) -> Rosters:
    if rosters.get(key, ()) == roster:
        return rosters
    updated = dict(rosters)
    if roster:
        updated[key] = roster
    else:
        updated.pop(key, None)
    return updated


def _patch_participant(
    rosters: Rosters,
    key: RosterKey,
    user_id: str,
    identity: str,
    changes: dict[str, object],
) -> Rosters:
    roster = rosters.get(key, ())
    patched = tuple(
        participant.model_copy(update=changes)
        if participant.user_id == user_id and participant.identity == identity
        else participant
        for participant in roster
    )
    return _with_roster(rosters, key, patched)


def apply_voice_sync(rosters: Rosters, event: VoiceParticipantSyncEvent) -> Rosters:
    return _with_roster(rosters, (event.guild_id, event.channel_id), event.participants)


def apply_voice_join(rosters: Rosters, event: VoiceParticipantJoinEvent) -> Rosters:
    """Record a participant, superseding any other identity of the same user.

    A repeated join for an identity already on record replaces it in place.
    """
    key = (event.guild_id, event.channel_id)
    joined = event.participant
    roster = rosters.get(key, ())

    updated: list[VoiceParticipant] = []
    replaced = False
    for participant in roster:
        if participant.identity == joined.identity:
            if not replaced:
                updated.append(joined)
                replaced = True
            continue
        if participant.user_id == joined.user_id:
            continue
        updated.append(participant)
    if not replaced:
        updated.append(joined)
    return _with_roster(rosters, key, tuple(updated))


def apply_voice_update(rosters: Rosters, event: VoiceParticipantUpdateEvent) -> Rosters:
    fields = event.updated_fields
    changes: dict[str, object] = {
        name: getattr(fields, name) for name in fields.model_fields_set
    }
    changes["updated_at_unix"] = event.updated_at_unix
    return _patch_participant(
        rosters, (event.guild_id, event.channel_id), event.user_id, event.identity, changes
    )


def apply_voice_stream_publish(
    rosters: Rosters, event: VoiceStreamPublishEvent
) -> Rosters:
    flag, value = _PUBLISH_FLAGS[event.stream]
    return _patch_participant(
        rosters,
        (event.guild_id, event.channel_id),
        event.user_id,
        event.identity,
        {flag: value},
    )


def apply_voice_stream_unpublish(
    rosters: Rosters, event: VoiceStreamUnpublishEvent
) -> Rosters:
    flag, value = _PUBLISH_FLAGS[event.stream]
    return _patch_participant(
        rosters,
        (event.guild_id, event.channel_id),
        event.user_id,
        event.identity,
        {flag: not value},
    )


def apply_voice_leave(rosters: Rosters, event: VoiceParticipantLeaveEvent) -> Rosters:
    key = (event.guild_id, event.channel_id)
    roster = rosters.get(key, ())
    remaining = tuple(
        participant
        for participant in roster
        if not (
            participant.user_id == event.user_id
            and participant.identity == event.identity
        )
    )
    return _with_roster(rosters, key, remaining)

