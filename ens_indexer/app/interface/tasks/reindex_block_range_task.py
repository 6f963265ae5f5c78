from __future__ import annotations

import logging

from ens_indexer.app.application.services.reindex_block_range import BlockRange, reindex_block_range
from ens_indexer.app.config import settings
from ens_indexer.app.infrastructure.db.engine import create_app_async_engine
from ens_indexer.app.infrastructure.factories.chain_factory import chain_log_source_factory
from ens_indexer.app.infrastructure.factories.scanner_factory import scanner_factory
from ens_indexer.app.infrastructure.factories.services_factory import (
    job_publisher_factory,
    name_resolver_factory,
)
from ens_indexer.app.infrastructure.factories.stores_factory import stores_factory

logger = logging.getLogger(__name__)


async def reindex_block_range_task(
    *,
    contract: str,
    from_block: int,
    to_block: int,
    backend: str = "sqlalchemy",
) -> None:
    """
    Task: replay one contract's logs over [from_block, to_block].

    The live cursor is left untouched.
    """
    engine = create_app_async_engine()
    resolver = name_resolver_factory()
    jobs = job_publisher_factory()
    try:
        scanner = scanner_factory(
            contract=contract,
            source=chain_log_source_factory(),
            stores=stores_factory(backend=backend, engine=engine),
            resolver=resolver,
            jobs=jobs,
        )
        results = await reindex_block_range(
            scanner=scanner,
            block_range=BlockRange(from_block=from_block, to_block=to_block),
            batch_size=settings.scanner_batch_size,
        )
        logger.info(
            "Reindexed %s blocks %d-%d: %d events, %d failed",
            contract,
            from_block,
            to_block,
            sum(r.decoded for r in results),
            sum(r.failed for r in results),
        )
    finally:
        await jobs.stop(timeout=settings.job_queue_shutdown_timeout_seconds)
        await resolver.aclose()
        await engine.dispose()
