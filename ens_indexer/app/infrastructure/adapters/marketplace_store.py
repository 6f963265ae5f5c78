from __future__ import annotations

import json
from decimal import Decimal
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Row
from sqlalchemy.ext.asyncio import AsyncEngine

from ens_indexer.app.domain.ports.out import MarketplaceStore
from ens_indexer.app.domain.records import ListingRow, ListingUpsert, OfferUpsert, SaleRecord


class SqlAlchemyMarketplaceStore(MarketplaceStore):
    """
    Adapter for listings, offers and sales.

    - listings/offers are keyed by (order_hash, source); repeated delivery of
      the same order updates the row instead of adding one,
    - status moves are guarded by the current status so a late event cannot
      resurrect a closed order,
    - sales are insert-only, deduplicated by (transaction_hash, ens_name_id).
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    # ---------------------------------------------------------------------
    # Listings
    # ---------------------------------------------------------------------

    async def find_listing_by_order_hash(self, *, order_hash: str) -> ListingRow | None:
        sql = text(
            """
            SELECT id, ens_name_id, seller_address, order_hash, status, source
            FROM listings
            WHERE order_hash = :order_hash
            ORDER BY (status = 'active') DESC, id DESC
            LIMIT 1
            """
        )
        async with self._engine.connect() as conn:
            result = await conn.execute(sql, {"order_hash": order_hash})
            return self._to_listing(result.one_or_none())

    async def find_active_listing(self, *, ens_name_id: int, seller_address: str) -> ListingRow | None:
        sql = text(
            """
            SELECT id, ens_name_id, seller_address, order_hash, status, source
            FROM listings
            WHERE ens_name_id = :ens_name_id
              AND seller_address = :seller_address
              AND status = 'active'
            ORDER BY id DESC
            LIMIT 1
            """
        )
        async with self._engine.connect() as conn:
            result = await conn.execute(
                sql,
                {"ens_name_id": ens_name_id, "seller_address": seller_address},
            )
            return self._to_listing(result.one_or_none())

    async def set_listing_status(self, *, listing_id: int, status: str) -> None:
        sql = text(
            """
            UPDATE listings
            SET status = :status,
                updated_at = NOW()
            WHERE id = :id
              AND status = 'active'
            """
        )
        async with self._engine.begin() as conn:
            await conn.execute(sql, {"id": listing_id, "status": status})

    async def cancel_superseded_listings(
        self,
        *,
        ens_name_id: int,
        seller_address: str,
        order_hash: str | None,
    ) -> int:
        if order_hash is None:
            sql = text(
                """
                UPDATE listings
                SET status = 'cancelled',
                    updated_at = NOW()
                WHERE ens_name_id = :ens_name_id
                  AND seller_address = :seller_address
                  AND status = 'active'
                """
            )
            params: dict[str, Any] = {"ens_name_id": ens_name_id, "seller_address": seller_address}
        else:
            sql = text(
                """
                UPDATE listings
                SET status = 'cancelled',
                    updated_at = NOW()
                WHERE ens_name_id = :ens_name_id
                  AND seller_address = :seller_address
                  AND status = 'active'
                  AND (order_hash IS NULL OR order_hash <> :order_hash)
                """
            )
            params = {
                "ens_name_id": ens_name_id,
                "seller_address": seller_address,
                "order_hash": order_hash,
            }

        async with self._engine.begin() as conn:
            result = await conn.execute(sql, params)
            return int(result.rowcount or 0)

    async def upsert_listing(self, *, record: ListingUpsert) -> int:
        sql = text(
            """
            INSERT INTO listings (
                ens_name_id,
                seller_address,
                price_wei,
                currency_address,
                order_hash,
                order_data,
                status,
                source,
                expires_at,
                created_at,
                updated_at
            )
            VALUES (
                :ens_name_id,
                :seller_address,
                :price_wei,
                :currency_address,
                :order_hash,
                CAST(:order_data AS JSONB),
                'active',
                :source,
                :expires_at,
                NOW(),
                NOW()
            )
            ON CONFLICT (order_hash, source) DO UPDATE SET
                price_wei = EXCLUDED.price_wei,
                currency_address = EXCLUDED.currency_address,
                order_data = COALESCE(EXCLUDED.order_data, listings.order_data),
                expires_at = COALESCE(EXCLUDED.expires_at, listings.expires_at),
                updated_at = NOW()
            RETURNING id
            """
        )
        async with self._engine.begin() as conn:
            result = await conn.execute(
                sql,
                {
                    "ens_name_id": record.ens_name_id,
                    "seller_address": record.seller_address,
                    "price_wei": Decimal(record.price_wei),
                    "currency_address": record.currency_address,
                    "order_hash": record.order_hash,
                    "order_data": json.dumps(record.order_data) if record.order_data is not None else None,
                    "source": record.source,
                    "expires_at": record.expires_at,
                },
            )
            return int(result.scalar_one())

    async def cancel_listing_by_order(
        self,
        *,
        order_hash: str,
        seller_address: str | None = None,
    ) -> int:
        if seller_address is None:
            sql = text(
                """
                UPDATE listings
                SET status = 'cancelled',
                    updated_at = NOW()
                WHERE order_hash = :order_hash
                  AND status = 'active'
                """
            )
            params: dict[str, Any] = {"order_hash": order_hash}
        else:
            sql = text(
                """
                UPDATE listings
                SET status = 'cancelled',
                    updated_at = NOW()
                WHERE order_hash = :order_hash
                  AND seller_address = :seller_address
                  AND status = 'active'
                """
            )
            params = {"order_hash": order_hash, "seller_address": seller_address}

        async with self._engine.begin() as conn:
            result = await conn.execute(sql, params)
            return int(result.rowcount or 0)

    # ---------------------------------------------------------------------
    # Offers
    # ---------------------------------------------------------------------

    async def upsert_offer(self, *, record: OfferUpsert) -> int:
        sql = text(
            """
            INSERT INTO offers (
                ens_name_id,
                buyer_address,
                offer_amount_wei,
                currency_address,
                order_hash,
                status,
                source,
                expires_at,
                created_at,
                updated_at
            )
            VALUES (
                :ens_name_id,
                :buyer_address,
                :offer_amount_wei,
                :currency_address,
                :order_hash,
                'pending',
                :source,
                :expires_at,
                NOW(),
                NOW()
            )
            ON CONFLICT (order_hash, source) DO UPDATE SET
                offer_amount_wei = EXCLUDED.offer_amount_wei,
                currency_address = EXCLUDED.currency_address,
                expires_at = COALESCE(EXCLUDED.expires_at, offers.expires_at),
                updated_at = NOW()
            RETURNING id
            """
        )
        async with self._engine.begin() as conn:
            result = await conn.execute(
                sql,
                {
                    "ens_name_id": record.ens_name_id,
                    "buyer_address": record.buyer_address,
                    "offer_amount_wei": Decimal(record.offer_amount_wei),
                    "currency_address": record.currency_address,
                    "order_hash": record.order_hash,
                    "source": record.source,
                    "expires_at": record.expires_at,
                },
            )
            return int(result.scalar_one())

    # ---------------------------------------------------------------------
    # Sales
    # ---------------------------------------------------------------------

    async def sale_exists(self, *, order_hash: str, ens_name_id: int) -> bool:
        sql = text(
            """
            SELECT 1
            FROM sales
            WHERE order_hash = :order_hash
              AND ens_name_id = :ens_name_id
            LIMIT 1
            """
        )
        async with self._engine.connect() as conn:
            result = await conn.execute(sql, {"order_hash": order_hash, "ens_name_id": ens_name_id})
            return result.first() is not None

    async def record_sale(self, *, record: SaleRecord) -> bool:
        sql = text(
            """
            INSERT INTO sales (
                ens_name_id,
                listing_id,
                seller_address,
                buyer_address,
                sale_price_wei,
                currency_address,
                platform_fee_wei,
                creator_fee_wei,
                order_hash,
                transaction_hash,
                block_number,
                source,
                metadata,
                sale_date
            )
            VALUES (
                :ens_name_id,
                :listing_id,
                :seller_address,
                :buyer_address,
                :sale_price_wei,
                :currency_address,
                :platform_fee_wei,
                :creator_fee_wei,
                :order_hash,
                :transaction_hash,
                :block_number,
                :source,
                CAST(:metadata AS JSONB),
                COALESCE(:sale_date, NOW())
            )
            ON CONFLICT (transaction_hash, ens_name_id) DO NOTHING
            RETURNING id
            """
        )
        async with self._engine.begin() as conn:
            result = await conn.execute(
                sql,
                {
                    "ens_name_id": record.ens_name_id,
                    "listing_id": record.listing_id,
                    "seller_address": record.seller_address,
                    "buyer_address": record.buyer_address,
                    "sale_price_wei": Decimal(record.sale_price_wei),
                    "currency_address": record.currency_address,
                    "platform_fee_wei": _decimal(record.platform_fee_wei),
                    "creator_fee_wei": _decimal(record.creator_fee_wei),
                    "order_hash": record.order_hash,
                    "transaction_hash": record.transaction_hash,
                    "block_number": record.block_number,
                    "source": record.source,
                    "metadata": json.dumps(record.metadata) if record.metadata is not None else None,
                    "sale_date": record.sale_date,
                },
            )
            return result.first() is not None

    @staticmethod
    def _to_listing(row: Row[Any] | None) -> ListingRow | None:
        if row is None:
            return None
        return ListingRow(
            id=int(row.id),
            ens_name_id=int(row.ens_name_id),
            seller_address=row.seller_address,
            order_hash=row.order_hash,
            status=row.status,
            source=row.source,
        )


def _decimal(value: int | None) -> Decimal | None:
    return Decimal(value) if value is not None else None
