from __future__ import annotations

from datetime import datetime

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from ens_indexer.app.domain.ports.out import CursorStore


class SqlAlchemyCursorStore(CursorStore):
    """
    Cursor adapter over indexer_state.

    Saving never moves a cursor backwards, so a late writer for an older range
    is a no-op.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def get_cursor(self, *, contract_address: str) -> int | None:
        sql = text(
            """
            SELECT last_processed_block
            FROM indexer_state
            WHERE contract_address = :contract_address
            """
        )
        async with self._engine.connect() as conn:
            result = await conn.execute(sql, {"contract_address": contract_address.lower()})
            row = result.one_or_none()

        return int(row.last_processed_block) if row is not None else None

    async def save_cursor(
        self,
        *,
        contract_address: str,
        block_number: int,
        block_timestamp: datetime | None,
    ) -> None:
        sql = text(
            """
            INSERT INTO indexer_state (
                contract_address,
                last_processed_block,
                last_processed_timestamp,
                updated_at
            )
            VALUES (
                :contract_address,
                :block_number,
                :block_timestamp,
                NOW()
            )
            ON CONFLICT (contract_address) DO UPDATE SET
                last_processed_block = GREATEST(indexer_state.last_processed_block, EXCLUDED.last_processed_block),
                last_processed_timestamp = CASE
                    WHEN EXCLUDED.last_processed_block >= indexer_state.last_processed_block
                        THEN COALESCE(EXCLUDED.last_processed_timestamp, indexer_state.last_processed_timestamp)
                    ELSE indexer_state.last_processed_timestamp
                END,
                updated_at = NOW()
            """
        )
        async with self._engine.begin() as conn:
            await conn.execute(
                sql,
                {
                    "contract_address": contract_address.lower(),
                    "block_number": block_number,
                    "block_timestamp": block_timestamp,
                },
            )
