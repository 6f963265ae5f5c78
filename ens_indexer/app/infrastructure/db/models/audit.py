from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from ens_indexer.app.infrastructure.db.db_base import BaseDB
from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column


class BlockchainEventsDB(BaseDB):
    """
    Every decoded chain log, keyed by (transaction_hash, log_index).

    Used for audit and replay detection; never updated.
    """

    __tablename__ = "blockchain_events"
    __table_args__ = (
        UniqueConstraint("transaction_hash", "log_index", name="blockchain_events_tx_log_unique"),
        Index("ix_blockchain_events_contract_block", "contract_address", "block_number"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    transaction_hash: Mapped[str] = mapped_column(String(100), nullable=False)
    log_index: Mapped[int] = mapped_column(Integer, nullable=False)
    contract_address: Mapped[str] = mapped_column(String(42), nullable=False)
    event_name: Mapped[str] = mapped_column(String(100), nullable=False)
    event_data: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    processed: Mapped[bool] = mapped_column(nullable=False, default=True, server_default="true")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ActivityHistoryDB(BaseDB):
    """
    Per-name activity feed (mints, listings, sales, ...).

    Rows tied to a transaction are unique per (name, event type, tx) so that
    re-scanning a range does not repeat them.
    """

    __tablename__ = "activity_history"
    __table_args__ = (
        Index(
            "activity_history_tx_event_unique",
            "ens_name_id",
            "event_type",
            "transaction_hash",
            unique=True,
            postgresql_where=text("transaction_hash IS NOT NULL"),
        ),
        Index("ix_activity_history_ens_name_created", "ens_name_id", "created_at"),
        Index("ix_activity_history_actor", "actor_address"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    ens_name_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("ens_names.id", ondelete="CASCADE"), nullable=False
    )
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_address: Mapped[str] = mapped_column(String(42), nullable=False)
    counterparty_address: Mapped[str | None] = mapped_column(String(42), nullable=True)
    platform: Mapped[str] = mapped_column(String(50), nullable=False)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")
    price_wei: Mapped[Decimal | None] = mapped_column(Numeric(78, 0), nullable=True)
    currency_address: Mapped[str | None] = mapped_column(String(42), nullable=True)
    transaction_hash: Mapped[str | None] = mapped_column(String(100), nullable=True)
    block_number: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
