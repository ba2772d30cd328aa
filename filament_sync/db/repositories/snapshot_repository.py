"""Workspace snapshot repository."""

from __future__ import annotations

from collections.abc import Iterable

from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from filament_sync.db.models import WorkspaceSnapshot
from filament_sync.domain import Workspace
from filament_sync.gateway.logger import logger


def workspace_to_row(workspace: Workspace, sort_index: int = 0) -> WorkspaceSnapshot:
    return WorkspaceSnapshot(
        guild_id=workspace.guild_id,
        guild_name=workspace.guild_name,
        visibility=workspace.visibility,
        sort_index=sort_index,
        channels=[channel.model_dump(mode="json") for channel in workspace.channels],
        roles=[role.model_dump(mode="json") for role in workspace.roles],
    )


def workspace_from_row(row: WorkspaceSnapshot) -> Workspace | None:
    """Rebuild a ``Workspace`` from a stored row, or None if it no longer validates."""
    try:
        return Workspace.model_validate(
            {
                "guild_id": row.guild_id,
                "guild_name": row.guild_name,
                "visibility": row.visibility,
                "channels": row.channels,
                "roles": row.roles,
            }
        )
    except ValidationError as e:
        logger.warning(
            f"Skipping stored workspace {row.guild_id}: {e.error_count()} error(s)"
        )
        return None


async def save_workspaces(session: AsyncSession, workspaces: Iterable[Workspace]) -> int:
    """Replace the stored workspace list.

    The caller owns the transaction (commit/rollback).

    Args:
        session: Database session
        workspaces: Workspaces in display order

    Returns:
        Number of rows written.
    """
    rows = [workspace_to_row(workspace, index) for index, workspace in enumerate(workspaces)]
    await session.execute(delete(WorkspaceSnapshot))
    session.add_all(rows)
    await session.flush()
    return len(rows)


async def load_workspaces(session: AsyncSession) -> list[Workspace]:
    """Load the stored workspace list in display order, skipping invalid rows."""
    result = await session.execute(
        select(WorkspaceSnapshot).order_by(WorkspaceSnapshot.sort_index)
    )
    workspaces = []
    for row in result.scalars():
        workspace = workspace_from_row(row)
        if workspace is not None:
            workspaces.append(workspace)
    return workspaces
