from __future__ import annotations

from collections.abc import Mapping

from filament_sync.gateway.events import ProfileAvatarUpdateEvent, ProfileUpdateEvent

Usernames = Mapping[str, str]
AvatarVersions = Mapping[str, int]


def apply_profile_update(usernames: Usernames, event: ProfileUpdateEvent) -> Usernames:
    """Record a username change; other profile fields are not tracked."""
    username = event.updated_fields.username
    if username is None or usernames.get(event.user_id) == username:
        return usernames
    return {**usernames, event.user_id: username}


def apply_profile_avatar_update(
    versions: AvatarVersions, event: ProfileAvatarUpdateEvent
) -> AvatarVersions:
    # Versions only move forward; a late, older update is ignored
    if versions.get(event.user_id, -1) >= event.avatar_version:
        return versions
    return {**versions, event.user_id: event.avatar_version}
