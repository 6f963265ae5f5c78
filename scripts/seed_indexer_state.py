import asyncio
import logging

from dotenv import load_dotenv
from sqlalchemy.dialects.postgresql import insert

load_dotenv()

from ens_indexer.app.config import settings  # noqa: E402
from ens_indexer.app.infrastructure.db.engine import create_app_async_engine  # noqa: E402
from ens_indexer.app.infrastructure.db.models.indexer_state import IndexerStateDB  # noqa: E402

logger = logging.getLogger(__name__)


def initial_cursors() -> list[dict]:
    """
    Cursor rows for the monitored contracts.

    A cursor is the last processed block, so the first scanned block is
    start_block itself. Contracts without a positive start block are left
    alone; their scanner starts from its own default.
    """
    starts = {
        settings.ens_registrar_address: settings.start_block,
        settings.seaport_address: settings.seaport_start_block,
    }
    return [
        {"contract_address": address, "last_processed_block": start - 1}
        for address, start in starts.items()
        if start is not None and start > 0
    ]


async def seed_indexer_state() -> None:
    values = initial_cursors()
    if not values:
        logger.info("Nothing to seed")
        return

    engine = create_app_async_engine()
    try:
        stmt = insert(IndexerStateDB).values(values)
        stmt = stmt.on_conflict_do_nothing(
            index_elements=[IndexerStateDB.contract_address]
        )

        async with engine.begin() as conn:
            result = await conn.execute(stmt)
        logger.info("Seeded %d of %d cursor rows", result.rowcount, len(values))
    finally:
        await engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    asyncio.run(seed_indexer_state())
