from __future__ import annotations

from datetime import datetime

from ens_indexer.app.infrastructure.db.db_base import BaseDB
from sqlalchemy import BigInteger, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column


class IndexerStateDB(BaseDB):
    """
    Scanner cursor. One row per monitored contract.

    Written only by the scanner that owns the contract, after a whole block
    range has been applied.
    """

    __tablename__ = "indexer_state"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    contract_address: Mapped[str] = mapped_column(String(42), nullable=False, unique=True)
    last_processed_block: Mapped[int] = mapped_column(BigInteger, nullable=False)
    last_processed_timestamp: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
