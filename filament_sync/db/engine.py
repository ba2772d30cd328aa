"""Snapshot store engine and session factories.

The snapshot store is usually a local SQLite file next to the client, but any
SQLAlchemy async URL works. Engines are created once per URL:

    engine = get_engine()  # settings.database_url
    engine = get_engine("sqlite+aiosqlite:///:memory:")

    Session = get_async_session()
    async with Session() as session:
        ...

Call ``dispose_engines()`` on shutdown.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

# database_url -> engine
_engine_cache: dict[str, AsyncEngine] = {}


def _is_memory_sqlite(url: URL) -> bool:
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")


def _engine_options(url: URL) -> dict[str, Any]:
    """Pool options for ``url``.

    An in-memory SQLite database lives inside one connection, so every session
    must share it. File databases need their directory to exist before the
    first connect.
    """
    if url.get_backend_name() != "sqlite":
        return {"pool_pre_ping": True}
    if _is_memory_sqlite(url):
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}

    Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)
    return {}


def get_engine(database_url: str | None = None) -> AsyncEngine:
    """Get or create the async engine for ``database_url``.

    Args:
        database_url: SQLAlchemy async URL. If None, uses
            ``SyncSettings.database_url``.
    """
    if database_url is None:
        from filament_sync.config.settings import get_settings

        database_url = get_settings().database_url

    engine = _engine_cache.get(database_url)
    if engine is None:
        url = make_url(database_url)
        engine = create_async_engine(url, echo=False, **_engine_options(url))
        _engine_cache[database_url] = engine
    return engine


@lru_cache(maxsize=8)
def get_async_session(
    database_url: str | None = None,
) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to ``get_engine(database_url)``."""
    return async_sessionmaker(bind=get_engine(database_url), expire_on_commit=False)


async def dispose_engines() -> None:
    """Close every cached engine and forget the session factories."""
    engines = list(_engine_cache.values())
    _engine_cache.clear()
    get_async_session.cache_clear()
    for engine in engines:
        await engine.dispose()
