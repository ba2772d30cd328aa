"""Workspace, role and membership reducers.

Workspaces are a tuple of ``Workspace`` records; roles inside a workspace
are kept highest position first. Membership is tracked separately as
``guild_id -> user_id -> role name`` and role assignments as
``guild_id -> user_id -> frozenset(role_id)``.

Events naming an unknown guild, role or member are absorbed as no-ops and
the input object is returned unchanged.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping

from filament_sync.domain import Workspace, WorkspaceRole
from filament_sync.gateway.events import (
    ChannelCreateEvent,
    WorkspaceMemberAddEvent,
    WorkspaceMemberBanEvent,
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

WorkspaceList = tuple[Workspace, ...]
Members = Mapping[str, Mapping[str, str]]
RoleAssignments = Mapping[str, Mapping[str, frozenset[str]]]


def _update_workspace(
    workspaces: WorkspaceList,
    guild_id: str,
    update: Callable[[Workspace], Workspace],
) -> WorkspaceList:
    for index, workspace in enumerate(workspaces):
        if workspace.guild_id != guild_id:
            continue
        updated = update(workspace)
        if updated == workspace:
            return workspaces
        return workspaces[:index] + (updated,) + workspaces[index + 1 :]
    return workspaces


def _sorted_roles(roles: tuple[WorkspaceRole, ...]) -> tuple[WorkspaceRole, ...]:
    return tuple(sorted(roles, key=lambda role: -role.position))


# -----------------------------------------------------------------------------
# Workspace list
# -----------------------------------------------------------------------------


def upsert_workspace(workspaces: WorkspaceList, workspace: Workspace) -> WorkspaceList:
    """Insert a workspace or replace the one with the same guild id."""
    for index, existing in enumerate(workspaces):
        if existing.guild_id == workspace.guild_id:
            if existing == workspace:
                return workspaces
            return workspaces[:index] + (workspace,) + workspaces[index + 1 :]
    return workspaces + (workspace,)


def remove_workspace(workspaces: WorkspaceList, guild_id: str) -> WorkspaceList:
    remaining = tuple(w for w in workspaces if w.guild_id != guild_id)
    return workspaces if len(remaining) == len(workspaces) else remaining


def apply_channel_create(workspaces: WorkspaceList, event: ChannelCreateEvent) -> WorkspaceList:
    """Append the channel unless its id is already known (at-least-once delivery)."""

    def add_channel(workspace: Workspace) -> Workspace:
        if any(c.channel_id == event.channel.channel_id for c in workspace.channels):
            return workspace
        return workspace.model_copy(
            update={"channels": workspace.channels + (event.channel,)}
        )

    return _update_workspace(workspaces, event.guild_id, add_channel)


def apply_workspace_update(
    workspaces: WorkspaceList, event: WorkspaceUpdateEvent
) -> WorkspaceList:
    fields = event.updated_fields
    changes: dict[str, object] = {}
    if "name" in fields.model_fields_set:
        changes["guild_name"] = fields.name
    if "visibility" in fields.model_fields_set:
        changes["visibility"] = fields.visibility

    return _update_workspace(
        workspaces, event.guild_id, lambda w: w.model_copy(update=changes)
    )


def apply_member_remove(
    workspaces: WorkspaceList,
    event: WorkspaceMemberRemoveEvent | WorkspaceMemberBanEvent,
    self_user_id: str | None,
) -> WorkspaceList:
    """Being kicked or banned looks exactly like leaving: the guild disappears."""
    if self_user_id is None or event.user_id != self_user_id:
        return workspaces
    return remove_workspace(workspaces, event.guild_id)


# -----------------------------------------------------------------------------
# Roles
# -----------------------------------------------------------------------------


def apply_role_create(
    workspaces: WorkspaceList, event: WorkspaceRoleCreateEvent
) -> WorkspaceList:
    """Add a role, replacing any role with the same id."""

    def add_role(workspace: Workspace) -> Workspace:
        others = tuple(r for r in workspace.roles if r.role_id != event.role.role_id)
        roles = _sorted_roles(others + (event.role,))
        if roles == workspace.roles:
            return workspace
        return workspace.model_copy(update={"roles": roles})

    return _update_workspace(workspaces, event.guild_id, add_role)


def apply_role_update(
    workspaces: WorkspaceList, event: WorkspaceRoleUpdateEvent
) -> WorkspaceList:
    fields = event.updated_fields
    changes = {name: getattr(fields, name) for name in fields.model_fields_set}

    def update_role(workspace: Workspace) -> Workspace:
        roles = tuple(
            role.model_copy(update=changes) if role.role_id == event.role_id else role
            for role in workspace.roles
        )
        if roles == workspace.roles:
            return workspace
        return workspace.model_copy(update={"roles": roles})

    return _update_workspace(workspaces, event.guild_id, update_role)


def apply_role_delete(
    workspaces: WorkspaceList, event: WorkspaceRoleDeleteEvent
) -> WorkspaceList:
    def delete_role(workspace: Workspace) -> Workspace:
        roles = tuple(r for r in workspace.roles if r.role_id != event.role_id)
        if len(roles) == len(workspace.roles):
            return workspace
        return workspace.model_copy(update={"roles": roles})

    return _update_workspace(workspaces, event.guild_id, delete_role)


def apply_role_reorder(
    workspaces: WorkspaceList, event: WorkspaceRoleReorderEvent
) -> WorkspaceList:
    """Reorder roles, highest first.

    Listed roles move to the top in the given order, unlisted roles follow in
    their current order, and positions are re-derived from the result so the
    top role has the highest position. Unknown ids are ignored.
    """

    def reorder(workspace: Workspace) -> Workspace:
        by_id = {role.role_id: role for role in workspace.roles}
        listed = [by_id[role_id] for role_id in event.role_ids if role_id in by_id]
        listed_ids = {role.role_id for role in listed}
        rest = [role for role in workspace.roles if role.role_id not in listed_ids]
        ordered = listed + rest
        total = len(ordered)
        roles = tuple(
            role.model_copy(update={"position": total - index})
            for index, role in enumerate(ordered)
        )
        if roles == workspace.roles:
            return workspace
        return workspace.model_copy(update={"roles": roles})

    return _update_workspace(workspaces, event.guild_id, reorder)


# -----------------------------------------------------------------------------
# Members and role assignments
# -----------------------------------------------------------------------------


def _set_member(members: Members, guild_id: str, user_id: str, role: str) -> Members:
    guild_members = members.get(guild_id, {})
    if guild_members.get(user_id) == role:
        return members
    return {**members, guild_id: {**guild_members, user_id: role}}


def apply_member_add(members: Members, event: WorkspaceMemberAddEvent) -> Members:
    return _set_member(members, event.guild_id, event.user_id, event.role)


def apply_member_update(members: Members, event: WorkspaceMemberUpdateEvent) -> Members:
    role = event.updated_fields.role
    guild_members = members.get(event.guild_id, {})
    if role is None or event.user_id not in guild_members:
        return members
    return _set_member(members, event.guild_id, event.user_id, role)


def remove_member(members: Members, guild_id: str, user_id: str) -> Members:
    guild_members = members.get(guild_id)
    if not guild_members or user_id not in guild_members:
        return members
    remaining = {uid: role for uid, role in guild_members.items() if uid != user_id}
    return {**members, guild_id: remaining}


def drop_guild(mapping: Mapping[str, object], guild_id: str) -> Mapping[str, object]:
    if guild_id not in mapping:
        return mapping
    return {key: value for key, value in mapping.items() if key != guild_id}


def apply_role_assignment_add(
    assignments: RoleAssignments, event: WorkspaceRoleAssignmentAddEvent
) -> RoleAssignments:
    guild_assignments = assignments.get(event.guild_id, {})
    current = guild_assignments.get(event.user_id, frozenset())
    if event.role_id in current:
        return assignments
    return {
        **assignments,
        event.guild_id: {**guild_assignments, event.user_id: current | {event.role_id}},
    }


def apply_role_assignment_remove(
    assignments: RoleAssignments, event: WorkspaceRoleAssignmentRemoveEvent
) -> RoleAssignments:
    guild_assignments = assignments.get(event.guild_id, {})
    current = guild_assignments.get(event.user_id, frozenset())
    if event.role_id not in current:
        return assignments
    return {
        **assignments,
        event.guild_id: {**guild_assignments, event.user_id: current - {event.role_id}},
    }


def drop_role_assignments(
    assignments: RoleAssignments, guild_id: str, role_id: str
) -> RoleAssignments:
    """Forget a deleted role for every member of one guild."""
    guild_assignments = assignments.get(guild_id)
    if not guild_assignments or not any(
        role_id in roles for roles in guild_assignments.values()
    ):
        return assignments
    return {
        **assignments,
        guild_id: {uid: roles - {role_id} for uid, roles in guild_assignments.items()},
    }
