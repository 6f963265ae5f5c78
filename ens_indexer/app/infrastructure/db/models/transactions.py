from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from ens_indexer.app.infrastructure.db.db_base import BaseDB
from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column


class TransactionsDB(BaseDB):
    """
    Append-only log of on-chain activity per name.

    One row per transaction hash; replays hit ON CONFLICT DO NOTHING.
    """

    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint(
            "transaction_type IN ('sale', 'transfer', 'registration', 'renewal')",
            name="transaction_type",
        ),
        Index("ix_transactions_ens_name_id", "ens_name_id"),
        Index("ix_transactions_block_number", "block_number"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    transaction_hash: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    ens_name_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("ens_names.id", ondelete="CASCADE"), nullable=False
    )
    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False)

    from_address: Mapped[str | None] = mapped_column(String(42), nullable=True)
    to_address: Mapped[str | None] = mapped_column(String(42), nullable=True)
    price_wei: Mapped[Decimal | None] = mapped_column(Numeric(78, 0), nullable=True)

    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    timestamp: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
