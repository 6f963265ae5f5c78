from __future__ import annotations

import asyncio
import logging
import signal

from ens_indexer.app.application.services.name_records import NameRecordService
from ens_indexer.app.application.services.stream_events_reconciler import StreamEventsReconciler
from ens_indexer.app.config import settings
from ens_indexer.app.infrastructure.db.engine import create_app_async_engine
from ens_indexer.app.infrastructure.factories.chain_factory import chain_log_source_factory
from ens_indexer.app.infrastructure.factories.scanner_factory import SCANNER_NAMES, scanner_factory
from ens_indexer.app.infrastructure.factories.services_factory import (
    job_publisher_factory,
    name_resolver_factory,
)
from ens_indexer.app.infrastructure.factories.stores_factory import stores_factory
from ens_indexer.app.infrastructure.streams.opensea_stream_client import OpenSeaStreamClient

logger = logging.getLogger(__name__)


def _install_stop_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            logger.debug("Signal %s handler not supported on this platform", sig)


async def run_indexer_task(*, backend: str = "sqlalchemy") -> None:
    """
    Task: run the live indexer until SIGINT/SIGTERM.

    - registrar scanner (Transfer / NameRegistered / NameRenewed),
    - Seaport scanner (OrderFulfilled / OrderCancelled),
    - OpenSea stream client, when OPENSEA_API_KEY is set.

    All loops share one engine, one resolver (and its cache) and one job
    publisher. On stop, each loop finishes its current batch or message, then
    queued jobs are drained and the pool is released.
    """
    stop = asyncio.Event()
    _install_stop_handlers(stop)

    engine = create_app_async_engine()
    resolver = name_resolver_factory()
    jobs = job_publisher_factory()
    try:
        stores = stores_factory(backend=backend, engine=engine)
        source = chain_log_source_factory()

        loops = [
            scanner_factory(
                contract=contract,
                source=source,
                stores=stores,
                resolver=resolver,
                jobs=jobs,
            ).run(stop)
            for contract in SCANNER_NAMES
        ]

        if settings.opensea_stream_enabled:
            stream = OpenSeaStreamClient(
                url=settings.opensea_stream_url,
                api_key=settings.opensea_api_key.get_secret_value(),  # type: ignore[union-attr]
                collection_slug=settings.opensea_collection_slug,
                handler=StreamEventsReconciler(
                    names=stores.names,
                    records=NameRecordService(names=stores.names, resolver=resolver, jobs=jobs),
                    marketplace=stores.marketplace,
                    jobs=jobs,
                    collection_slug=settings.opensea_collection_slug,
                ),
            )
            loops.append(stream.run(stop))
        else:
            logger.warning("OPENSEA_API_KEY not set, marketplace stream disabled")

        logger.info("Indexer started with %d loops", len(loops))
        await asyncio.gather(*loops)
    finally:
        await jobs.stop(timeout=settings.job_queue_shutdown_timeout_seconds)
        await resolver.aclose()
        await engine.dispose()
        logger.info("Indexer stopped")
