from __future__ import annotations

from datetime import datetime
from typing import Any

from ens_indexer.app.infrastructure.db.db_base import BaseDB
from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import Mapped, mapped_column

REAL_NAME_UNIQUE_INDEX = "ens_names_real_name_unique"


class EnsNamesDB(BaseDB):
    """
    One row = one registrar token.

    `name` starts as a `token-<id>` placeholder when resolution fails and is
    replaced in place once the real name is known. Real names are unique;
    placeholders are exempt from that index.
    """

    __tablename__ = "ens_names"
    __table_args__ = (
        Index(
            REAL_NAME_UNIQUE_INDEX,
            "name",
            unique=True,
            postgresql_where=text("name NOT LIKE 'token-%' AND name ~ '^[a-z0-9-]+\\.eth$'"),
        ),
        Index("ix_ens_names_owner_address", "owner_address"),
        Index("ix_ens_names_expiry_date", "expiry_date"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)

    # Identity
    token_id: Mapped[str] = mapped_column(String(80), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)

    # Ownership
    owner_address: Mapped[str | None] = mapped_column(String(42), nullable=True)
    registrant: Mapped[str | None] = mapped_column(String(42), nullable=True)
    # Position of the chain log that last set owner_address, for out-of-order writes
    owner_block_number: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    owner_log_index: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Lifecycle
    expiry_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    registration_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_transfer_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Enrichment
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONB, nullable=True)
    clubs: Mapped[list[str] | None] = mapped_column(ARRAY(Text), nullable=True)
    has_numbers: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    has_emoji: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
