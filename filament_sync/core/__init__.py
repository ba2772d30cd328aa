"""Base runner for batch jobs over the sync core.

Provides common infrastructure for command-line runners:
- Snapshot store engine and session management
- Timing
- Common run() interface

Usage:
    class MyRunner(BaseRunner):
        async def _run(self):
            # Implementation
            pass

        def _log_summary(self, elapsed):
            # Log final statistics
            pass
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from filament_sync.db.engine import get_async_session, get_engine
from filament_sync.db.models import Base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker


class BaseRunner(ABC):
    """Abstract base class for runners.

    Subclasses must implement:
    - _run(): The actual job
    - _log_summary(): Log final statistics
    """

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url
        self.engine: AsyncEngine = get_engine(database_url)
        self.async_session: async_sessionmaker[AsyncSession] = get_async_session(
            database_url
        )
        self.start_time: float = 0.0

    async def init_db(self) -> None:
        """Create tables if they don't exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def run(self) -> None:
        self.start_time = time.time()
        await self._run()
        elapsed = time.time() - self.start_time
        self._log_summary(elapsed)

    @abstractmethod
    async def _run(self) -> None: ...

    @abstractmethod
    def _log_summary(self, elapsed: float) -> None:
        """Log the final summary statistics.

        Args:
            elapsed: Total time elapsed in seconds.
        """
        ...
