from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from ens_indexer.app.domain.events import ChainEvent, RawLog, StreamEvent
from ens_indexer.app.domain.names import NameRow, NameUpsert, ResolvedName
from ens_indexer.app.domain.records import (
    ActivityRecord,
    ListingRow,
    ListingUpsert,
    OfferUpsert,
    RawEventRecord,
    SaleRecord,
    TransactionRecord,
)


class ChainLogSource(Protocol):
    """
    Read-only port over a JSON-RPC endpoint.

    Only the three calls the scanners need are exposed.
    """

    async def get_block_number(self) -> int: ...

    async def get_logs(
        self,
        *,
        address: str,
        from_block: int,
        to_block: int,
    ) -> list[RawLog]: ...

    async def get_block_timestamp(self, *, block_number: int) -> datetime: ...


class EvmEventDecoder(Protocol):
    def decode(
        self,
        *,
        topic0: bytes | None,
        topic1: bytes | None,
        topic2: bytes | None,
        topic3: bytes | None,
        data: bytes,
    ) -> dict[str, Any] | None:
        """
        Decode an EVM log (topics + data) into a dict of typed fields.

        Return:
          - dict[str, Any] for decoded event fields
          - None if the log is not the expected event
        """
        ...


class LogDecoder(Protocol):
    """Total decoder: every log maps to a ChainEvent, unknown ones to UnknownLog."""

    def decode_log(self, log: RawLog) -> ChainEvent: ...


class ChainEventReconciler(Protocol):
    """
    Applies one decoded chain event to the store.

    Implementations must be idempotent: the scanner re-delivers a whole range
    after a crash or an RPC failure.
    """

    async def handle(self, event: ChainEvent) -> None: ...


class StreamEventHandler(Protocol):
    async def handle(self, event: StreamEvent) -> None: ...


class NameResolver(Protocol):
    """
    Port for mapping token ids to human-readable names.

    Lookups never raise for unknown ids; they return None so callers can fall
    back to a placeholder.
    """

    async def resolve_one(self, *, token_id: str) -> ResolvedName | None: ...

    async def resolve_batch(self, *, token_ids: list[str]) -> dict[str, str | None]: ...

    def clear_cache(self) -> None: ...


class CursorStore(Protocol):
    async def get_cursor(self, *, contract_address: str) -> int | None: ...

    async def save_cursor(
        self,
        *,
        contract_address: str,
        block_number: int,
        block_timestamp: datetime | None,
    ) -> None: ...


class RawEventStore(Protocol):
    async def record_raw_event(self, *, record: RawEventRecord) -> bool:
        """Return True when the row was new, False on replay."""
        ...


class NameStore(Protocol):
    """
    Port for the ens_names table and the append-only logs hanging off it.

    `upsert_name` and `insert_name_if_missing` raise NameConflictError when the
    real-name unique index rejects the write.
    """

    async def get_name_by_token_id(self, *, token_id: str) -> NameRow | None: ...

    async def get_name_by_name(self, *, name: str) -> NameRow | None: ...

    async def upsert_name(self, *, record: NameUpsert) -> NameRow: ...

    async def insert_name_if_missing(self, *, record: NameUpsert) -> NameRow: ...

    async def update_expiry(self, *, token_id: str, expiry_date: datetime) -> NameRow | None: ...

    async def record_transaction(self, *, record: TransactionRecord) -> bool: ...

    async def record_activity(self, *, record: ActivityRecord) -> None: ...


class NameMaintenanceStore(Protocol):
    """Port used by the batch maintenance jobs, not by the live loops."""

    async def list_placeholder_names(
        self,
        *,
        before_id: int | None,
        limit: int,
    ) -> list[NameRow]: ...

    async def rename_placeholder(
        self,
        *,
        name_id: int,
        new_name: str,
        new_token_id: str | None = None,
    ) -> str:
        """
        Return "renamed", "deleted_duplicate" or "skipped".

        `new_token_id` moves the row to a corrected (wrapped) token id; a row
        already holding that name or token id makes this one a duplicate.
        The placeholder precondition is re-checked at write time.
        """
        ...

    async def list_names_for_refresh(
        self,
        *,
        after_id: int | None,
        limit: int,
    ) -> list[NameRow]: ...

    async def apply_resolved_metadata(
        self,
        *,
        name_id: int,
        resolved: ResolvedName,
    ) -> None: ...


class MarketplaceStore(Protocol):
    """Port for listings, offers and sales."""

    async def find_listing_by_order_hash(self, *, order_hash: str) -> ListingRow | None: ...

    async def find_active_listing(self, *, ens_name_id: int, seller_address: str) -> ListingRow | None: ...

    async def set_listing_status(self, *, listing_id: int, status: str) -> None: ...

    async def cancel_superseded_listings(
        self,
        *,
        ens_name_id: int,
        seller_address: str,
        order_hash: str | None,
    ) -> int: ...

    async def upsert_listing(self, *, record: ListingUpsert) -> int: ...

    async def cancel_listing_by_order(
        self,
        *,
        order_hash: str,
        seller_address: str | None = None,
    ) -> int: ...

    async def upsert_offer(self, *, record: OfferUpsert) -> int: ...

    async def sale_exists(self, *, order_hash: str, ens_name_id: int) -> bool: ...

    async def record_sale(self, *, record: SaleRecord) -> bool: ...


@dataclass(frozen=True)
class JobOptions:
    retry_limit: int = 3
    start_after_seconds: float = 0.0
    singleton_key: str | None = None


class JobPublisher(Protocol):
    """
    Fire-and-forget producer for the external job queue.

    `publish` returns immediately; failures are logged by the implementation
    and never reach the caller.
    """

    def publish(
        self,
        name: str,
        payload: dict[str, Any],
        *,
        options: JobOptions | None = None,
    ) -> None: ...

    async def stop(self, *, timeout: float) -> None: ...
