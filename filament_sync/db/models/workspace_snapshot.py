"""Cached workspace list.

LATEST-STATE SNAPSHOT: every save replaces the whole list, so a restarted
client can render its guild sidebar before the first REST refresh returns.
Channels and roles are stored as JSON arrays in their wire shape and are
re-validated on load; a row that no longer validates is skipped.
"""

from datetime import datetime

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from filament_sync.db.base import Base, TZDateTime
from filament_sync.utils.time import utcnow


class WorkspaceSnapshot(Base):
    """One guild of the cached workspace list."""

    __tablename__ = "workspace_snapshots"

    # ULID of the guild
    guild_id: Mapped[str] = mapped_column(String(26), primary_key=True)

    guild_name: Mapped[str] = mapped_column(String(64), nullable=False)

    # "private" | "public"
    visibility: Mapped[str] = mapped_column(String(16), nullable=False)

    # Position in the sidebar when saved
    sort_index: Mapped[int] = mapped_column(nullable=False, default=0)

    channels: Mapped[list] = mapped_column(nullable=False, default=list)
    roles: Mapped[list] = mapped_column(nullable=False, default=list)

    updated_at: Mapped[datetime] = mapped_column(
        TZDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (Index("ix_workspace_snapshots_sort_index", "sort_index"),)

    def __repr__(self) -> str:
        return (
            f"<WorkspaceSnapshot(guild_id={self.guild_id}, "
            f"guild_name='{self.guild_name}')>"
        )
