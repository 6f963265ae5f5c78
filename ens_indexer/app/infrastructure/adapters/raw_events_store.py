from __future__ import annotations

import json

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from ens_indexer.app.domain.ports.out import RawEventStore
from ens_indexer.app.domain.records import RawEventRecord


class SqlAlchemyRawEventStore(RawEventStore):
    """Append-only writer for blockchain_events; replays are dropped by the unique key."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def record_raw_event(self, *, record: RawEventRecord) -> bool:
        sql = text(
            """
            INSERT INTO blockchain_events (
                block_number,
                transaction_hash,
                log_index,
                contract_address,
                event_name,
                event_data,
                processed
            )
            VALUES (
                :block_number,
                :transaction_hash,
                :log_index,
                :contract_address,
                :event_name,
                CAST(:event_data AS JSONB),
                true
            )
            ON CONFLICT (transaction_hash, log_index) DO NOTHING
            RETURNING id
            """
        )
        async with self._engine.begin() as conn:
            result = await conn.execute(
                sql,
                {
                    "block_number": record.block_number,
                    "transaction_hash": record.transaction_hash,
                    "log_index": record.log_index,
                    "contract_address": record.contract_address,
                    "event_name": record.event_name,
                    "event_data": json.dumps(record.event_data),
                },
            )
            return result.first() is not None
