from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from ens_indexer.app.infrastructure.db.db_base import BaseDB
from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column


# ---------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------


class ListingsDB(BaseDB):
    """
    Sell-side orders. At most one row per (order_hash, source).

    Content is owned by the producer that created the row; other producers
    only move `status`.
    """

    __tablename__ = "listings"
    __table_args__ = (
        UniqueConstraint("order_hash", "source", name="listings_order_hash_source_unique"),
        CheckConstraint(
            "status IN ('active', 'sold', 'cancelled', 'expired')",
            name="status",
        ),
        Index("ix_listings_name_seller_status", "ens_name_id", "seller_address", "status"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    ens_name_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("ens_names.id", ondelete="CASCADE"), nullable=False
    )
    seller_address: Mapped[str] = mapped_column(String(42), nullable=False)
    price_wei: Mapped[Decimal] = mapped_column(Numeric(78, 0), nullable=False)
    currency_address: Mapped[str] = mapped_column(
        String(42), nullable=False, server_default=text("'0x0000000000000000000000000000000000000000'")
    )
    order_hash: Mapped[str | None] = mapped_column(String(100), nullable=True)
    order_data: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, server_default=text("'active'"))
    source: Mapped[str] = mapped_column(String(20), nullable=False, server_default=text("'grails'"))
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------
# Offers
# ---------------------------------------------------------------------


class OffersDB(BaseDB):
    """Buy-side orders. At most one row per (order_hash, source)."""

    __tablename__ = "offers"
    __table_args__ = (
        UniqueConstraint("order_hash", "source", name="offers_order_hash_source_unique"),
        CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected', 'expired')",
            name="status",
        ),
        Index("ix_offers_ens_name_id", "ens_name_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    ens_name_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("ens_names.id", ondelete="CASCADE"), nullable=False
    )
    buyer_address: Mapped[str] = mapped_column(String(42), nullable=False)
    offer_amount_wei: Mapped[Decimal] = mapped_column(Numeric(78, 0), nullable=False)
    currency_address: Mapped[str] = mapped_column(
        String(42), nullable=False, server_default=text("'0x0000000000000000000000000000000000000000'")
    )
    order_hash: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, server_default=text("'pending'"))
    source: Mapped[str] = mapped_column(String(20), nullable=False, server_default=text("'grails'"))
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------


class SalesDB(BaseDB):
    """
    Completed sales, immutable once written.

    One row per (transaction_hash, ens_name_id); bundle orders produce one
    row per name.
    """

    __tablename__ = "sales"
    __table_args__ = (
        UniqueConstraint("transaction_hash", "ens_name_id", name="sales_transaction_name_unique"),
        CheckConstraint("source IN ('blockchain', 'opensea', 'grails')", name="source"),
        Index("ix_sales_order_hash", "order_hash"),
        Index("ix_sales_ens_name_id_sale_date", "ens_name_id", "sale_date"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    ens_name_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("ens_names.id", ondelete="CASCADE"), nullable=False
    )
    listing_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("listings.id", ondelete="SET NULL"), nullable=True
    )

    seller_address: Mapped[str | None] = mapped_column(String(42), nullable=True)
    buyer_address: Mapped[str | None] = mapped_column(String(42), nullable=True)
    sale_price_wei: Mapped[Decimal] = mapped_column(Numeric(78, 0), nullable=False)
    currency_address: Mapped[str] = mapped_column(String(42), nullable=False)
    platform_fee_wei: Mapped[Decimal | None] = mapped_column(Numeric(78, 0), nullable=True)
    creator_fee_wei: Mapped[Decimal | None] = mapped_column(Numeric(78, 0), nullable=True)

    order_hash: Mapped[str | None] = mapped_column(String(100), nullable=True)
    transaction_hash: Mapped[str | None] = mapped_column(String(100), nullable=True)
    block_number: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONB, nullable=True)

    sale_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
