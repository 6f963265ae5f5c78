from __future__ import annotations

import logging

from ens_indexer.app.application.services.backfill_placeholder_names import backfill_placeholder_names
from ens_indexer.app.infrastructure.db.engine import create_app_async_engine
from ens_indexer.app.infrastructure.factories.services_factory import name_resolver_factory
from ens_indexer.app.infrastructure.factories.stores_factory import stores_factory

logger = logging.getLogger(__name__)


async def backfill_placeholder_names_task(
    *,
    batch_size: int = 100,
    limit: int | None = None,
    delay_seconds: float = 1.0,
    backend: str = "sqlalchemy",
) -> None:
    """Task: resolve `token-<id>` placeholder rows in batches."""
    engine = create_app_async_engine()
    resolver = name_resolver_factory()
    try:
        stores = stores_factory(backend=backend, engine=engine)
        stats = await backfill_placeholder_names(
            names=stores.maintenance,
            resolver=resolver,
            batch_size=batch_size,
            limit=limit,
            delay_seconds=delay_seconds,
        )
        logger.info("Placeholder backfill finished: %s", stats)
    finally:
        await resolver.aclose()
        await engine.dispose()
