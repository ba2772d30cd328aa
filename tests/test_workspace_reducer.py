"""Unit tests for filament_sync.reducers.workspace."""

from __future__ import annotations

import pytest

from conftest import GUILD_ID, SELF_USER_ID, USER_ID, ulid
from filament_sync.domain import Workspace
from filament_sync.gateway.events import (
    ChannelCreateEvent,
    WorkspaceMemberAddEvent,
    WorkspaceMemberRemoveEvent,
    WorkspaceMemberUpdateEvent,
    WorkspaceRoleAssignmentAddEvent,
    WorkspaceRoleAssignmentRemoveEvent,
    WorkspaceRoleCreateEvent,
    WorkspaceRoleDeleteEvent,
    WorkspaceRoleReorderEvent,
    WorkspaceRoleUpdateEvent,
    WorkspaceUpdateEvent,
)
from filament_sync.reducers.workspace import (
    apply_channel_create,
    apply_member_add,
    apply_member_remove,
    apply_member_update,
    apply_role_assignment_add,
    apply_role_assignment_remove,
    apply_role_create,
    apply_role_delete,
    apply_role_reorder,
    apply_role_update,
    apply_workspace_update,
    drop_role_assignments,
    remove_member,
    upsert_workspace,
)

OWNER_ROLE_ID = ulid(20)
MEMBER_ROLE_ID = ulid(21)


@pytest.fixture
def workspaces(workspace_payload) -> tuple[Workspace, ...]:
    return (Workspace.model_validate(workspace_payload),)


def _channel_create(channel_id: str, name: str = "random") -> ChannelCreateEvent:
    return ChannelCreateEvent.model_validate(
        {
            "guild_id": GUILD_ID,
            "channel": {"channel_id": channel_id, "name": name, "kind": "text"},
        }
    )


def _role_ids(workspaces) -> list[str]:
    return [role.role_id for role in workspaces[0].roles]


# ---------------------------------------------------------------------------
# TestChannelCreate
# ---------------------------------------------------------------------------


class TestChannelCreate:
    """Tests for apply_channel_create."""

    def test_adds_channel(self, workspaces):
        result = apply_channel_create(workspaces, _channel_create(ulid(4)))

        assert [c.channel_id for c in result[0].channels][-1] == ulid(4)

    def test_duplicate_delivery_adds_once(self, workspaces):
        event = _channel_create(ulid(4))

        once = apply_channel_create(workspaces, event)
        twice = apply_channel_create(once, event)

        assert twice is once
        ids = [c.channel_id for c in twice[0].channels]
        assert ids.count(ulid(4)) == 1

    def test_unknown_guild_is_noop(self, workspaces):
        event = ChannelCreateEvent.model_validate(
            {"guild_id": ulid(999), "channel": {"channel_id": ulid(4), "name": "x"}}
        )

        assert apply_channel_create(workspaces, event) is workspaces


# ---------------------------------------------------------------------------
# TestWorkspaceUpdate
# ---------------------------------------------------------------------------


class TestWorkspaceUpdate:
    """Tests for apply_workspace_update and upsert_workspace."""

    def test_renames(self, workspaces):
        event = WorkspaceUpdateEvent.model_validate(
            {
                "guild_id": GUILD_ID,
                "updated_fields": {"name": "Renamed"},
                "updated_at_unix": 1_700_000_000,
            }
        )

        result = apply_workspace_update(workspaces, event)

        assert result[0].guild_name == "Renamed"
        assert result[0].visibility == "private"

    def test_upsert_same_workspace_is_noop(self, workspaces):
        assert upsert_workspace(workspaces, workspaces[0]) is workspaces


# ---------------------------------------------------------------------------
# TestMemberRemove
# ---------------------------------------------------------------------------


class TestMemberRemove:
    """Tests for apply_member_remove."""

    def _remove(self, user_id: str, reason: str = "kick") -> WorkspaceMemberRemoveEvent:
        return WorkspaceMemberRemoveEvent.model_validate(
            {
                "guild_id": GUILD_ID,
                "user_id": user_id,
                "reason": reason,
                "removed_at_unix": 1_700_000_000,
            }
        )

    def test_self_removal_drops_workspace(self, workspaces):
        assert apply_member_remove(workspaces, self._remove(SELF_USER_ID), SELF_USER_ID) == ()

    def test_other_user_keeps_workspace(self, workspaces):
        result = apply_member_remove(workspaces, self._remove(USER_ID), SELF_USER_ID)

        assert result is workspaces

    def test_unknown_self_keeps_workspace(self, workspaces):
        assert apply_member_remove(workspaces, self._remove(SELF_USER_ID), None) is workspaces


# ---------------------------------------------------------------------------
# TestRoles
# ---------------------------------------------------------------------------


class TestRoles:
    """Tests for role create/update/delete/reorder."""

    def _role_create(self, role_id: str, position: int) -> WorkspaceRoleCreateEvent:
        return WorkspaceRoleCreateEvent.model_validate(
            {
                "guild_id": GUILD_ID,
                "role": {
                    "role_id": role_id,
                    "name": "moderator",
                    "position": position,
                    "is_system": False,
                },
            }
        )

    def test_create_sorts_by_position(self, workspaces):
        result = apply_role_create(workspaces, self._role_create(ulid(22), 2))

        assert _role_ids(result) == [OWNER_ROLE_ID, ulid(22), MEMBER_ROLE_ID]

    def test_create_idempotent(self, workspaces):
        event = self._role_create(ulid(22), 2)

        once = apply_role_create(workspaces, event)

        assert apply_role_create(once, event) is once

    def test_update_only_present_fields(self, workspaces):
        event = WorkspaceRoleUpdateEvent.model_validate(
            {
                "guild_id": GUILD_ID,
                "role_id": OWNER_ROLE_ID,
                "updated_fields": {"color_hex": None},
                "updated_at_unix": 1_700_000_000,
            }
        )

        result = apply_role_update(workspaces, event)

        owner = result[0].roles[0]
        assert owner.color_hex is None
        assert owner.name == "workspace_owner"

    def test_delete(self, workspaces):
        event = WorkspaceRoleDeleteEvent.model_validate(
            {"guild_id": GUILD_ID, "role_id": MEMBER_ROLE_ID, "deleted_at_unix": 1_700_000_000}
        )

        result = apply_role_delete(workspaces, event)

        assert _role_ids(result) == [OWNER_ROLE_ID]
        assert apply_role_delete(result, event) is result

    def test_reorder(self, workspaces):
        event = WorkspaceRoleReorderEvent.model_validate(
            {
                "guild_id": GUILD_ID,
                "role_ids": [MEMBER_ROLE_ID, ulid(999)],
                "updated_at_unix": 1_700_000_000,
            }
        )

        result = apply_role_reorder(workspaces, event)

        assert _role_ids(result) == [MEMBER_ROLE_ID, OWNER_ROLE_ID]
        assert [role.position for role in result[0].roles] == [2, 1]
        assert apply_role_reorder(result, event) is result


# ---------------------------------------------------------------------------
# TestMembers
# ---------------------------------------------------------------------------


class TestMembers:
    """Tests for membership and role assignment maps."""

    def test_member_add_and_update(self):
        add = WorkspaceMemberAddEvent.model_validate(
            {
                "guild_id": GUILD_ID,
                "user_id": USER_ID,
                "role": "member",
                "joined_at_unix": 1_700_000_000,
            }
        )
        update = WorkspaceMemberUpdateEvent.model_validate(
            {
                "guild_id": GUILD_ID,
                "user_id": USER_ID,
                "updated_fields": {"role": "moderator"},
                "updated_at_unix": 1_700_000_100,
            }
        )

        members = apply_member_add({}, add)
        assert apply_member_add(members, add) is members
        members = apply_member_update(members, update)

        assert members == {GUILD_ID: {USER_ID: "moderator"}}

    def test_update_unknown_member_is_noop(self):
        update = WorkspaceMemberUpdateEvent.model_validate(
            {
                "guild_id": GUILD_ID,
                "user_id": USER_ID,
                "updated_fields": {"role": "moderator"},
                "updated_at_unix": 1_700_000_100,
            }
        )
        members: dict = {}

        assert apply_member_update(members, update) is members

    def test_remove_member(self):
        members = {GUILD_ID: {USER_ID: "member", SELF_USER_ID: "owner"}}

        result = remove_member(members, GUILD_ID, USER_ID)

        assert result == {GUILD_ID: {SELF_USER_ID: "owner"}}
        assert remove_member(result, GUILD_ID, USER_ID) is result

    def test_role_assignments(self):
        add = WorkspaceRoleAssignmentAddEvent.model_validate(
            {
                "guild_id": GUILD_ID,
                "user_id": USER_ID,
                "role_id": MEMBER_ROLE_ID,
                "assigned_at_unix": 1_700_000_000,
            }
        )
        remove = WorkspaceRoleAssignmentRemoveEvent.model_validate(
            {
                "guild_id": GUILD_ID,
                "user_id": USER_ID,
                "role_id": MEMBER_ROLE_ID,
                "removed_at_unix": 1_700_000_100,
            }
        )

        assigned = apply_role_assignment_add({}, add)
        assert assigned == {GUILD_ID: {USER_ID: frozenset({MEMBER_ROLE_ID})}}
        assert apply_role_assignment_add(assigned, add) is assigned

        removed = apply_role_assignment_remove(assigned, remove)
        assert removed == {GUILD_ID: {USER_ID: frozenset()}}
        assert apply_role_assignment_remove(removed, remove) is removed

    def test_drop_role_assignments(self):
        assignments = {GUILD_ID: {USER_ID: frozenset({MEMBER_ROLE_ID, OWNER_ROLE_ID})}}

        result = drop_role_assignments(assignments, GUILD_ID, MEMBER_ROLE_ID)

        assert result == {GUILD_ID: {USER_ID: frozenset({OWNER_ROLE_ID})}}
        assert drop_role_assignments(result, GUILD_ID, MEMBER_ROLE_ID) is result
