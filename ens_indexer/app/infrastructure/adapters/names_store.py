from __future__ import annotations

import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Row
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine

from ens_indexer.app.domain.errors import NameConflictError
from ens_indexer.app.domain.names import (
    PLACEHOLDER_PREFIX,
    NameRow,
    NameUpsert,
    ResolvedName,
    has_emoji,
    has_numbers,
)
from ens_indexer.app.domain.ports.out import NameMaintenanceStore, NameStore
from ens_indexer.app.domain.records import ActivityRecord, TransactionRecord
from ens_indexer.app.infrastructure.adapters.db_errors import is_unique_violation
from ens_indexer.app.infrastructure.db.models.ens_names import REAL_NAME_UNIQUE_INDEX

logger = logging.getLogger(__name__)

_PLACEHOLDER_LIKE = f"{PLACEHOLDER_PREFIX}%"
_RETURNING = "RETURNING id, token_id, name, owner_address, clubs"

# The incoming owner wins unless the stored owner came from a later chain log.
_OWNER_WINS = """
    EXCLUDED.owner_address IS NOT NULL
    AND (
        EXCLUDED.owner_block_number IS NULL
        OR ens_names.owner_block_number IS NULL
        OR (EXCLUDED.owner_block_number, EXCLUDED.owner_log_index)
           >= (ens_names.owner_block_number, COALESCE(ens_names.owner_log_index, -1))
    )
"""

_UPSERT_NAME_SQL = text(
    f"""
    INSERT INTO ens_names (
        token_id,
        name,
        owner_address,
        owner_block_number,
        owner_log_index,
        registrant,
        expiry_date,
        registration_date,
        last_transfer_date,
        metadata,
        has_numbers,
        has_emoji,
        created_at,
        updated_at
    )
    VALUES (
        :token_id,
        :name,
        :owner_address,
        :owner_block_number,
        :owner_log_index,
        :registrant,
        :expiry_date,
        :registration_date,
        :last_transfer_date,
        CAST(:metadata AS JSONB),
        :has_numbers,
        :has_emoji,
        NOW(),
        NOW()
    )
    ON CONFLICT (token_id) DO UPDATE SET
        name = CASE WHEN ens_names.name LIKE :placeholder_like THEN EXCLUDED.name ELSE ens_names.name END,
        has_numbers = CASE WHEN ens_names.name LIKE :placeholder_like THEN EXCLUDED.has_numbers ELSE ens_names.has_numbers END,
        has_emoji = CASE WHEN ens_names.name LIKE :placeholder_like THEN EXCLUDED.has_emoji ELSE ens_names.has_emoji END,
        owner_address = CASE WHEN {_OWNER_WINS} THEN EXCLUDED.owner_address ELSE ens_names.owner_address END,
        owner_block_number = CASE WHEN {_OWNER_WINS}
            THEN COALESCE(EXCLUDED.owner_block_number, ens_names.owner_block_number)
            ELSE ens_names.owner_block_number END,
        owner_log_index = CASE WHEN {_OWNER_WINS}
            THEN COALESCE(EXCLUDED.owner_log_index, ens_names.owner_log_index)
            ELSE ens_names.owner_log_index END,
        registrant = COALESCE(EXCLUDED.registrant, ens_names.registrant),
        expiry_date = GREATEST(ens_names.expiry_date, EXCLUDED.expiry_date),
        registration_date = COALESCE(EXCLUDED.registration_date, ens_names.registration_date),
        last_transfer_date = GREATEST(ens_names.last_transfer_date, EXCLUDED.last_transfer_date),
        metadata = COALESCE(EXCLUDED.metadata, ens_names.metadata),
        updated_at = NOW()
    {_RETURNING}
    """
)

_INSERT_NAME_IF_MISSING_SQL = text(
    f"""
    INSERT INTO ens_names (
        token_id,
        name,
        owner_address,
        registrant,
        expiry_date,
        registration_date,
        metadata,
        has_numbers,
        has_emoji,
        created_at,
        updated_at
    )
    VALUES (
        :token_id,
        :name,
        :owner_address,
        :registrant,
        :expiry_date,
        :registration_date,
        CAST(:metadata AS JSONB),
        :has_numbers,
        :has_emoji,
        NOW(),
        NOW()
    )
    ON CONFLICT (token_id) DO NOTHING
    {_RETURNING}
    """
)


class SqlAlchemyNameStore(NameStore, NameMaintenanceStore):
    """
    Adapter for ens_names plus the logs that reference it (transactions,
    activity_history).

    Writes use INSERT ... ON CONFLICT so that both the scanners and the stream
    client can write the same row without coordination. The real-name partial
    unique index surfaces as NameConflictError.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    # ---------------------------------------------------------------------
    # Reads
    # ---------------------------------------------------------------------

    async def get_name_by_token_id(self, *, token_id: str) -> NameRow | None:
        sql = text(
            """
            SELECT id, token_id, name, owner_address, clubs
            FROM ens_names
            WHERE token_id = :token_id
            """
        )
        async with self._engine.connect() as conn:
            result = await conn.execute(sql, {"token_id": token_id})
            return self._to_row(result.one_or_none())

    async def get_name_by_name(self, *, name: str) -> NameRow | None:
        sql = text(
            """
            SELECT id, token_id, name, owner_address, clubs
            FROM ens_names
            WHERE name = :name
            ORDER BY id
            LIMIT 1
            """
        )
        async with self._engine.connect() as conn:
            result = await conn.execute(sql, {"name": name})
            return self._to_row(result.one_or_none())

    # ---------------------------------------------------------------------
    # Name writes
    # ---------------------------------------------------------------------

    async def upsert_name(self, *, record: NameUpsert) -> NameRow:
        params = self._name_params(record)
        params["placeholder_like"] = _PLACEHOLDER_LIKE
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(_UPSERT_NAME_SQL, params)
                row = result.one()
        except IntegrityError as exc:
            if is_unique_violation(exc, REAL_NAME_UNIQUE_INDEX):
                raise NameConflictError(record.name, record.token_id) from exc
            raise
        return self._to_row(row)  # type: ignore[return-value]

    async def insert_name_if_missing(self, *, record: NameUpsert) -> NameRow:
        params = self._name_params(record)
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(_INSERT_NAME_IF_MISSING_SQL, params)
                row = result.one_or_none()
        except IntegrityError as exc:
            if is_unique_violation(exc, REAL_NAME_UNIQUE_INDEX):
                raise NameConflictError(record.name, record.token_id) from exc
            raise

        if row is not None:
            return self._to_row(row)  # type: ignore[return-value]

        existing = await self.get_name_by_token_id(token_id=record.token_id)
        if existing is None:
            # deleted between the insert and the read; treat like a fresh insert
            return await self.insert_name_if_missing(record=record)
        return existing

    async def update_expiry(self, *, token_id: str, expiry_date: datetime) -> NameRow | None:
        sql = text(
            f"""
            UPDATE ens_names
            SET expiry_date = GREATEST(expiry_date, :expiry_date),
                updated_at = NOW()
            WHERE token_id = :token_id
            {_RETURNING}
            """
        )
        async with self._engine.begin() as conn:
            result = await conn.execute(sql, {"token_id": token_id, "expiry_date": expiry_date})
            return self._to_row(result.one_or_none())

    # ---------------------------------------------------------------------
    # Append-only logs
    # ---------------------------------------------------------------------

    async def record_transaction(self, *, record: TransactionRecord) -> bool:
        sql = text(
            """
            INSERT INTO transactions (
                transaction_hash,
                ens_name_id,
                transaction_type,
                from_address,
                to_address,
                price_wei,
                block_number,
                timestamp
            )
            VALUES (
                :transaction_hash,
                :ens_name_id,
                :transaction_type,
                :from_address,
                :to_address,
                :price_wei,
                :block_number,
                :timestamp
            )
            ON CONFLICT (transaction_hash) DO NOTHING
            RETURNING id
            """
        )
        async with self._engine.begin() as conn:
            result = await conn.execute(
                sql,
                {
                    "transaction_hash": record.transaction_hash,
                    "ens_name_id": record.ens_name_id,
                    "transaction_type": record.transaction_type,
                    "from_address": record.from_address,
                    "to_address": record.to_address,
                    "price_wei": _decimal(record.price_wei),
                    "block_number": record.block_number,
                    "timestamp": record.timestamp,
                },
            )
            return result.first() is not None

    async def record_activity(self, *, record: ActivityRecord) -> None:
        sql = text(
            """
            INSERT INTO activity_history (
                ens_name_id,
                event_type,
                actor_address,
                counterparty_address,
                platform,
                price_wei,
                currency_address,
                transaction_hash,
                block_number,
                metadata,
                created_at
            )
            VALUES (
                :ens_name_id,
                :event_type,
                :actor_address,
                :counterparty_address,
                :platform,
                :price_wei,
                :currency_address,
                :transaction_hash,
                :block_number,
                CAST(:metadata AS JSONB),
                :created_at
            )
            ON CONFLICT DO NOTHING
            """
        )
        async with self._engine.begin() as conn:
            await conn.execute(
                sql,
                {
                    "ens_name_id": record.ens_name_id,
                    "event_type": record.event_type,
                    "actor_address": record.actor_address,
                    "counterparty_address": record.counterparty_address,
                    "platform": record.platform,
                    "price_wei": _decimal(record.price_wei),
                    "currency_address": record.currency_address,
                    "transaction_hash": record.transaction_hash,
                    "block_number": record.block_number,
                    "metadata": json.dumps(record.metadata) if record.metadata is not None else None,
                    "created_at": record.created_at,
                },
            )

    # ---------------------------------------------------------------------
    # Maintenance
    # ---------------------------------------------------------------------

    async def list_placeholder_names(self, *, before_id: int | None, limit: int) -> list[NameRow]:
        if before_id is None:
            sql = text(
                """
                SELECT id, token_id, name, owner_address, clubs
                FROM ens_names
                WHERE name LIKE :placeholder_like
                ORDER BY id DESC
                LIMIT :limit
                """
            )
            params: dict[str, Any] = {"placeholder_like": _PLACEHOLDER_LIKE, "limit": limit}
        else:
            sql = text(
                """
                SELECT id, token_id, name, owner_address, clubs
                FROM ens_names
                WHERE name LIKE :placeholder_like
                  AND id < :before_id
                ORDER BY id DESC
                LIMIT :limit
                """
            )
            params = {"placeholder_like": _PLACEHOLDER_LIKE, "before_id": before_id, "limit": limit}

        async with self._engine.connect() as conn:
            result = await conn.execute(sql, params)
            return [self._to_row(r) for r in result.all()]  # type: ignore[misc]

    async def rename_placeholder(self, *, name_id: int, new_name: str, new_token_id: str | None = None) -> str:
        lock_sql = text("SELECT id, name FROM ens_names WHERE id = :id FOR UPDATE")
        duplicate_sql = text(
            """
            SELECT id FROM ens_names
            WHERE (name = :name OR token_id = :token_id)
              AND id <> :id
            LIMIT 1
            """
        )
        delete_sql = text("DELETE FROM ens_names WHERE id = :id AND name LIKE :placeholder_like")
        rename_sql = text(
            """
            UPDATE ens_names
            SET name = :name,
                token_id = COALESCE(:token_id, token_id),
                has_numbers = :has_numbers,
                has_emoji = :has_emoji,
                updated_at = NOW()
            WHERE id = :id
              AND name LIKE :placeholder_like
            """
        )

        try:
            async with self._engine.begin() as conn:
                current = (await conn.execute(lock_sql, {"id": name_id})).one_or_none()
                if current is None or not current.name.startswith(PLACEHOLDER_PREFIX):
                    return "skipped"

                duplicate = (
                    await conn.execute(duplicate_sql, {"name": new_name, "token_id": new_token_id, "id": name_id})
                ).one_or_none()
                if duplicate is not None:
                    await conn.execute(delete_sql, {"id": name_id, "placeholder_like": _PLACEHOLDER_LIKE})
                    logger.info(
                        "Deleted placeholder row %s: %s already stored as row %s",
                        name_id,
                        new_name,
                        duplicate.id,
                        extra={"ens_name_id": name_id, "ens_name": new_name},
                    )
                    return "deleted_duplicate"

                await conn.execute(
                    rename_sql,
                    {
                        "id": name_id,
                        "name": new_name,
                        "token_id": new_token_id,
                        "has_numbers": has_numbers(new_name),
                        "has_emoji": has_emoji(new_name),
                        "placeholder_like": _PLACEHOLDER_LIKE,
                    },
                )
                return "renamed"
        except IntegrityError as exc:
            # another writer stored the same name after our duplicate check
            if is_unique_violation(exc, REAL_NAME_UNIQUE_INDEX):
                logger.info(
                    "Name %s claimed concurrently, leaving placeholder row %s for the next pass",
                    new_name,
                    name_id,
                )
                return "skipped"
            raise

    async def list_names_for_refresh(self, *, after_id: int | None, limit: int) -> list[NameRow]:
        sql = text(
            """
            SELECT id, token_id, name, owner_address, clubs
            FROM ens_names
            WHERE name NOT LIKE :placeholder_like
              AND id > :after_id
            ORDER BY id ASC
            LIMIT :limit
            """
        )
        async with self._engine.connect() as conn:
            result = await conn.execute(
                sql,
                {
                    "placeholder_like": _PLACEHOLDER_LIKE,
                    "after_id": after_id if after_id is not None else 0,
                    "limit": limit,
                },
            )
            return [self._to_row(r) for r in result.all()]  # type: ignore[misc]

    async def apply_resolved_metadata(self, *, name_id: int, resolved: ResolvedName) -> None:
        sql = text(
            """
            UPDATE ens_names
            SET expiry_date = GREATEST(expiry_date, :expiry_date),
                registration_date = COALESCE(:registration_date, registration_date),
                owner_address = CASE WHEN owner_block_number IS NULL
                    THEN COALESCE(:owner_address, owner_address)
                    ELSE owner_address END,
                metadata = COALESCE(metadata, CAST('{}' AS JSONB)) || CAST(:text_records AS JSONB),
                updated_at = NOW()
            WHERE id = :id
            """
        )
        async with self._engine.begin() as conn:
            await conn.execute(
                sql,
                {
                    "id": name_id,
                    "expiry_date": resolved.expiry_date,
                    "registration_date": resolved.registration_date,
                    "owner_address": resolved.owner,
                    "text_records": json.dumps(resolved.text_records or {}),
                },
            )

    # ---------------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------------

    @staticmethod
    def _name_params(record: NameUpsert) -> dict[str, Any]:
        return {
            "token_id": record.token_id,
            "name": record.name,
            "owner_address": record.owner_address,
            "owner_block_number": record.owner_block_number,
            "owner_log_index": record.owner_log_index,
            "registrant": record.registrant,
            "expiry_date": record.expiry_date,
            "registration_date": record.registration_date,
            "last_transfer_date": record.last_transfer_date,
            "metadata": json.dumps(record.text_records) if record.text_records else None,
            "has_numbers": record.has_numbers,
            "has_emoji": record.has_emoji,
        }

    @staticmethod
    def _to_row(row: Row[Any] | None) -> NameRow | None:
        if row is None:
            return None
        return NameRow(
            id=int(row.id),
            token_id=str(row.token_id),
            name=str(row.name),
            owner_address=row.owner_address,
            clubs=tuple(row.clubs or ()),
        )


def _decimal(value: int | None) -> Decimal | None:
    return Decimal(value) if value is not None else None
