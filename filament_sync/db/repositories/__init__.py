"""Repository layer for the snapshot store."""

from filament_sync.db.repositories.snapshot_repository import (
    load_workspaces,
    save_workspaces,
    workspace_from_row,
    workspace_to_row,
)

__all__ = [
    "load_workspaces",
    "save_workspaces",
    "workspace_from_row",
    "workspace_to_row",
]
