from __future__ import annotations

from datetime import datetime
from typing import Any

from ens_indexer.app.infrastructure.db.db_base import BaseDB
from sqlalchemy import BigInteger, DateTime, Index, Integer, String, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column


class JobQueueDB(BaseDB):
    """
    Outbound jobs for external workers.

    The indexer only inserts rows in state 'created'; workers own every other
    transition. A singleton_key deduplicates jobs that are still pending.
    """

    __tablename__ = "job_queue"
    __table_args__ = (
        Index(
            "job_queue_pending_singleton_unique",
            "name",
            "singleton_key",
            unique=True,
            postgresql_where=text("state = 'created' AND singleton_key IS NOT NULL"),
        ),
        Index("ix_job_queue_name_state_start_after", "name", "state", "start_after"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    state: Mapped[str] = mapped_column(String(20), nullable=False, server_default=text("'created'"))
    retry_limit: Mapped[int] = mapped_column(Integer, nullable=False, server_default="3")
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    singleton_key: Mapped[str | None] = mapped_column(String(200), nullable=True)
    start_after: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
