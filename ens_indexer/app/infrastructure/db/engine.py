from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ens_indexer.app.config import settings


def create_app_async_engine(*, echo: bool = False, url: str | None = None) -> AsyncEngine:
    """
    Factory for AsyncEngine used by the indexer loops and maintenance tasks.

    The pool is capped at DB_MAX_CONNECTIONS; the scanners' worker pools and
    the stream client share it.
    """
    pool_size = max(1, settings.db_max_connections // 2)
    return create_async_engine(
        url or settings.database_url,  # postgresql+asyncpg://...
        echo=echo,
        pool_pre_ping=True,
        pool_size=pool_size,
        max_overflow=settings.db_max_connections - pool_size,
    )
