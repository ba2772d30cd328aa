"""Snapshot store ORM models."""

from filament_sync.db.base import Base
from filament_sync.db.models.workspace_snapshot import WorkspaceSnapshot

__all__ = [
    "Base",
    "WorkspaceSnapshot",
]
