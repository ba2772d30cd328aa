"""Unit tests for filament_sync.reducers.presence and reducers.profiles."""

from __future__ import annotations

from conftest import GUILD_ID, USER_ID, ulid
from filament_sync.gateway.events import (
    PresenceSyncEvent,
    PresenceUpdateEvent,
    ProfileAvatarUpdateEvent,
    ProfileUpdateEvent,
)
from filament_sync.reducers.presence import apply_presence_sync, apply_presence_update
from filament_sync.reducers.profiles import (
    apply_profile_avatar_update,
    apply_profile_update,
)


def _presence(user_id: str, status: str) -> PresenceUpdateEvent:
    return PresenceUpdateEvent.model_validate(
        {"guild_id": GUILD_ID, "user_id": user_id, "status": status}
    )


def _avatar(version: int) -> ProfileAvatarUpdateEvent:
    return ProfileAvatarUpdateEvent.model_validate(
        {"user_id": USER_ID, "avatar_version": version, "updated_at_unix": 1_700_000_000}
    )


class TestPresence:
    """Tests for presence reducers."""

    def test_sync_replaces_set(self):
        event = PresenceSyncEvent.model_validate(
            {"guild_id": GUILD_ID, "user_ids": [USER_ID, ulid(12)]}
        )

        result = apply_presence_sync(frozenset({ulid(99)}), event)

        assert result == {USER_ID, ulid(12)}
        assert apply_presence_sync(result, event) is result

    def test_online_is_idempotent(self):
        online = apply_presence_update(frozenset(), _presence(USER_ID, "online"))

        assert online == {USER_ID}
        assert apply_presence_update(online, _presence(USER_ID, "online")) is online

    def test_offline_for_absent_user_is_noop(self):
        online = frozenset({ulid(12)})

        assert apply_presence_update(online, _presence(USER_ID, "offline")) is online

    def test_disjoint_updates_commute(self):
        a = _presence(USER_ID, "online")
        b = _presence(ulid(12), "online")
        start = frozenset()

        assert apply_presence_update(apply_presence_update(start, a), b) == (
            apply_presence_update(apply_presence_update(start, b), a)
        )


class TestProfiles:
    """Tests for profile reducers."""

    def test_username_change_recorded(self):
        event = ProfileUpdateEvent.model_validate(
            {
                "user_id": USER_ID,
                "updated_fields": {"username": "alice"},
                "updated_at_unix": 1_700_000_000,
            }
        )

        usernames = apply_profile_update({}, event)

        assert usernames == {USER_ID: "alice"}
        assert apply_profile_update(usernames, event) is usernames

    def test_about_only_update_is_noop(self):
        event = ProfileUpdateEvent.model_validate(
            {
                "user_id": USER_ID,
                "updated_fields": {"about_markdown": "hi"},
                "updated_at_unix": 1_700_000_000,
            }
        )
        usernames = {USER_ID: "alice"}

        assert apply_profile_update(usernames, event) is usernames

    def test_avatar_version_only_moves_forward(self):
        versions = apply_profile_avatar_update({}, _avatar(3))

        assert versions == {USER_ID: 3}
        assert apply_profile_avatar_update(versions, _avatar(2)) is versions
        assert apply_profile_avatar_update(versions, _avatar(3)) is versions
        assert apply_profile_avatar_update(versions, _avatar(4)) == {USER_ID: 4}
