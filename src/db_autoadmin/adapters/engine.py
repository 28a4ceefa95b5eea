"""Async engine construction and the connection handle used by services.

Provides ``create_async_engine_pooled()`` and ``Database``, a thin wrapper
over SQLAlchemy's ``AsyncEngine`` that hands out read connections and
transactions.

Usage:
    from db_autoadmin.adapters.engine import Database

    db = Database("sqlite:///admin.db")
    async with db.transaction() as conn:
        await conn.execute(insert(tags).values(name="Tag 1"))
    await db.close()
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

logger = logging.getLogger(__name__)


def normalize_url(database_url: str) -> str:
    """Rewrite a plain database URL to its async driver scheme.

    - ``postgres://`` / ``postgresql://`` -> ``postgresql+asyncpg://``
    - ``sqlite://`` -> ``sqlite+aiosqlite://``

    URLs that already name a driver are returned unchanged.
    """
    url = database_url
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        url = "postgresql+asyncpg://" + url[len("postgresql://"):]
    if url.startswith("sqlite://"):
        url = "sqlite+aiosqlite://" + url[len("sqlite://"):]
    return url


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_async_engine_pooled(database_url: str, **kwargs: Any) -> AsyncEngine:
    """Create an async SQLAlchemy engine with connection pooling.

    Default pool settings for server databases:

    - ``pool_size=5``: Reasonable default for typical workloads.
    - ``max_overflow=10``: Allow burst connections.
    - ``pool_pre_ping=True``: Validate connections before checkout.
    - ``pool_recycle=300``: Recycle connections every 5 minutes.

    SQLite keeps SQLAlchemy's own pool choice and gets foreign key
    enforcement switched on for every new connection.

    Args:
        database_url: Connection URL, normalized by ``normalize_url()``.
        **kwargs: Additional keyword arguments forwarded to
            ``create_async_engine``.

    Returns:
        Configured ``AsyncEngine``.
    """
    url = normalize_url(database_url)
    is_sqlite = url.startswith("sqlite")

    defaults: dict[str, Any] = {"echo": False}
    if not is_sqlite:
        defaults.update(
            {
                "pool_size": 5,
                "max_overflow": 10,
                "pool_pre_ping": True,
                "pool_recycle": 300,
            }
        )
    # Caller kwargs override defaults
    merged = {**defaults, **kwargs}

    engine = create_async_engine(url, **merged)
    if is_sqlite:
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


class Database:
    """Connection handle shared by every service call.

    Reads use ``connect()``; writes use ``transaction()``, which commits on
    success and rolls back when the block raises.

    Args:
        engine_or_url: An existing ``AsyncEngine`` or a database URL.
        **engine_kwargs: Forwarded to ``create_async_engine_pooled`` when a
            URL is given.
    """

    def __init__(self, engine_or_url: AsyncEngine | str, **engine_kwargs: Any) -> None:
        if isinstance(engine_or_url, AsyncEngine):
            self._engine = engine_or_url
        else:
            self._engine = create_async_engine_pooled(engine_or_url, **engine_kwargs)

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @property
    def dialect_name(self) -> str:
        return self._engine.dialect.name

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[AsyncConnection]:
        """Connection for read-only statements."""
        async with self._engine.connect() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncConnection]:
        """Connection inside a transaction committed when the block exits."""
        async with self._engine.begin() as conn:
            yield conn

    async def test_connection(self) -> bool:
        """Run ``SELECT 1`` to verify the database is reachable."""
        async with self._engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            return result.scalar() == 1

    async def close(self) -> None:
        """Dispose of the engine and its connection pool."""
        logger.debug("Disposing engine %s", self._engine.url.render_as_string(hide_password=True))
        await self._engine.dispose()
