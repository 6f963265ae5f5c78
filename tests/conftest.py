import os
import re
from datetime import datetime, timezone
from typing import Any

import pytest

# Settings are read when ens_indexer.app.config is first imported.
os.environ.setdefault("RPC_URL", "http://localhost:8545")
os.environ.setdefault("POSTGRES_USER", "indexer")
os.environ.setdefault("POSTGRES_PASSWORD", "indexer")
os.environ.setdefault("POSTGRES_SERVER", "localhost")
os.environ.setdefault("POSTGRES_DB", "ens_indexer")

from ens_indexer.app.domain.errors import NameConflictError  # noqa: E402
from ens_indexer.app.domain.events import RawLog  # noqa: E402
from ens_indexer.app.domain.names import NameRow, NameUpsert, ResolvedName, is_placeholder  # noqa: E402
from ens_indexer.app.domain.ports.out import JobOptions  # noqa: E402
from ens_indexer.app.domain.records import (  # noqa: E402
    ActivityRecord,
    ListingRow,
    ListingUpsert,
    OfferUpsert,
    RawEventRecord,
    SaleRecord,
    TransactionRecord,
)

_REAL_NAME = re.compile(r"^[a-z0-9-]+\.eth$")


# ---------------------------------------------------------------------
# Store fakes
# ---------------------------------------------------------------------


class FakeNameStore:
    """In-memory ens_names with the same merge and uniqueness rules as the SQL adapter."""

    def __init__(self) -> None:
        self.rows: dict[int, dict[str, Any]] = {}
        self.transactions: dict[str, TransactionRecord] = {}
        self.activity: list[ActivityRecord] = []
        self._next_id = 1

    # NameStore

    async def get_name_by_token_id(self, *, token_id: str) -> NameRow | None:
        row = self._by_token(token_id)
        return self._to_row(row) if row else None

    async def get_name_by_name(self, *, name: str) -> NameRow | None:
        for row in self.rows.values():
            if row["name"] == name:
                return self._to_row(row)
        return None

    async def upsert_name(self, *, record: NameUpsert) -> NameRow:
        row = self._by_token(record.token_id)
        if row is None:
            self._check_unique(record.name, record.token_id)
            row = self._create(record)
            return self._to_row(row)

        if is_placeholder(row["name"]) and record.name != row["name"]:
            self._check_unique(record.name, record.token_id)
            row["name"] = record.name

        if self._owner_wins(row, record):
            row["owner_address"] = record.owner_address
            if record.owner_block_number is not None:
                row["owner_block_number"] = record.owner_block_number
                row["owner_log_index"] = record.owner_log_index

        row["expiry_date"] = _latest(row["expiry_date"], record.expiry_date)
        for key in ("registrant", "registration_date"):
            value = getattr(record, key)
            if value is not None:
                row[key] = value
        if record.text_records:
            row["metadata"] = dict(record.text_records)
        if record.last_transfer_date is not None:
            current = row["last_transfer_date"]
            row["last_transfer_date"] = max(current, record.last_transfer_date) if current else record.last_transfer_date
        return self._to_row(row)

    async def insert_name_if_missing(self, *, record: NameUpsert) -> NameRow:
        row = self._by_token(record.token_id)
        if row is None:
            self._check_unique(record.name, record.token_id)
            row = self._create(record, with_position=False)
        return self._to_row(row)

    async def update_expiry(self, *, token_id: str, expiry_date: datetime) -> NameRow | None:
        row = self._by_token(token_id)
        if row is None:
            return None
        row["expiry_date"] = _latest(row["expiry_date"], expiry_date)
        return self._to_row(row)

    async def record_transaction(self, *, record: TransactionRecord) -> bool:
        if record.transaction_hash in self.transactions:
            return False
        self.transactions[record.transaction_hash] = record
        return True

    async def record_activity(self, *, record: ActivityRecord) -> None:
        if record.transaction_hash is not None:
            for existing in self.activity:
                if (existing.ens_name_id, existing.event_type, existing.transaction_hash) == (
                    record.ens_name_id,
                    record.event_type,
                    record.transaction_hash,
                ):
                    return
        self.activity.append(record)

    # NameMaintenanceStore

    async def list_placeholder_names(self, *, before_id: int | None, limit: int) -> list[NameRow]:
        ids = sorted(
            (i for i, r in self.rows.items() if is_placeholder(r["name"]) and (before_id is None or i < before_id)),
            reverse=True,
        )
        return [self._to_row(self.rows[i]) for i in ids[:limit]]

    async def rename_placeholder(self, *, name_id: int, new_name: str, new_token_id: str | None = None) -> str:
        row = self.rows.get(name_id)
        if row is None or not is_placeholder(row["name"]):
            return "skipped"
        if any(
            r["name"] == new_name or (new_token_id is not None and r["token_id"] == new_token_id)
            for i, r in self.rows.items()
            if i != name_id
        ):
            del self.rows[name_id]
            return "deleted_duplicate"
        row["name"] = new_name
        if new_token_id is not None:
            row["token_id"] = new_token_id
        return "renamed"

    async def list_names_for_refresh(self, *, after_id: int | None, limit: int) -> list[NameRow]:
        ids = sorted(
            i for i, r in self.rows.items() if not is_placeholder(r["name"]) and i > (after_id or 0)
        )
        return [self._to_row(self.rows[i]) for i in ids[:limit]]

    async def apply_resolved_metadata(self, *, name_id: int, resolved: ResolvedName) -> None:
        row = self.rows[name_id]
        row["expiry_date"] = _latest(row["expiry_date"], resolved.expiry_date)
        if resolved.registration_date is not None:
            row["registration_date"] = resolved.registration_date
        if resolved.owner is not None and row["owner_block_number"] is None:
            row["owner_address"] = resolved.owner
        row["metadata"] = {**(row["metadata"] or {}), **resolved.text_records}

    # helpers

    def add(self, *, token_id: str, name: str, owner: str | None = None, clubs: tuple[str, ...] = ()) -> NameRow:
        row = self._create(NameUpsert(token_id=token_id, name=name, owner_address=owner), with_position=False)
        row["clubs"] = list(clubs)
        return self._to_row(row)

    def row(self, token_id: str) -> dict[str, Any] | None:
        return self._by_token(token_id)

    def _by_token(self, token_id: str) -> dict[str, Any] | None:
        for row in self.rows.values():
            if row["token_id"] == token_id:
                return row
        return None

    def _check_unique(self, name: str, token_id: str) -> None:
        if is_placeholder(name) or not _REAL_NAME.match(name):
            return
        for row in self.rows.values():
            if row["name"] == name and row["token_id"] != token_id:
                raise NameConflictError(name, token_id)

    @staticmethod
    def _owner_wins(row: dict[str, Any], record: NameUpsert) -> bool:
        if record.owner_address is None:
            return False
        if record.owner_block_number is None or row["owner_block_number"] is None:
            return True
        stored = (row["owner_block_number"], row["owner_log_index"] if row["owner_log_index"] is not None else -1)
        return (record.owner_block_number, record.owner_log_index) >= stored

    def _create(self, record: NameUpsert, *, with_position: bool = True) -> dict[str, Any]:
        row = {
            "id": self._next_id,
            "token_id": record.token_id,
            "name": record.name,
            "owner_address": record.owner_address,
            "owner_block_number": record.owner_block_number if with_position else None,
            "owner_log_index": record.owner_log_index if with_position else None,
            "registrant": record.registrant,
            "expiry_date": record.expiry_date,
            "registration_date": record.registration_date,
            "last_transfer_date": record.last_transfer_date if with_position else None,
            "metadata": dict(record.text_records) if record.text_records else None,
            "clubs": [],
        }
        self.rows[self._next_id] = row
        self._next_id += 1
        return row

    @staticmethod
    def _to_row(row: dict[str, Any]) -> NameRow:
        return NameRow(
            id=row["id"],
            token_id=row["token_id"],
            name=row["name"],
            owner_address=row["owner_address"],
            clubs=tuple(row["clubs"] or ()),
        )


def _latest(stored: datetime | None, incoming: datetime | None) -> datetime | None:
    if stored is None or incoming is None:
        return stored or incoming
    return max(stored, incoming)


class FakeMarketplaceStore:
    def __init__(self) -> None:
        self.listings: dict[int, dict[str, Any]] = {}
        self.offers: dict[int, dict[str, Any]] = {}
        self.sales: list[SaleRecord] = []
        self._next_id = 1

    async def find_listing_by_order_hash(self, *, order_hash: str) -> ListingRow | None:
        matches = [r for r in self.listings.values() if r["order_hash"] == order_hash]
        matches.sort(key=lambda r: (r["status"] == "active", r["id"]), reverse=True)
        return self._to_listing(matches[0]) if matches else None

    async def find_active_listing(self, *, ens_name_id: int, seller_address: str) -> ListingRow | None:
        matches = [
            r
            for r in self.listings.values()
            if r["ens_name_id"] == ens_name_id and r["seller_address"] == seller_address and r["status"] == "active"
        ]
        return self._to_listing(max(matches, key=lambda r: r["id"])) if matches else None

    async def set_listing_status(self, *, listing_id: int, status: str) -> None:
        row = self.listings.get(listing_id)
        if row is not None and row["status"] == "active":
            row["status"] = status

    async def cancel_superseded_listings(self, *, ens_name_id: int, seller_address: str, order_hash: str | None) -> int:
        count = 0
        for row in self.listings.values():
            if (
                row["ens_name_id"] == ens_name_id
                and row["seller_address"] == seller_address
                and row["status"] == "active"
                and (order_hash is None or row["order_hash"] is None or row["order_hash"] != order_hash)
            ):
                row["status"] = "cancelled"
                count += 1
        return count

    async def upsert_listing(self, *, record: ListingUpsert) -> int:
        if record.order_hash is not None:
            for row in self.listings.values():
                if (row["order_hash"], row["source"]) == (record.order_hash, record.source):
                    row["price_wei"] = record.price_wei
                    row["currency_address"] = record.currency_address
                    return row["id"]
        listing_id = self._next_id
        self._next_id += 1
        self.listings[listing_id] = {
            "id": listing_id,
            "ens_name_id": record.ens_name_id,
            "seller_address": record.seller_address,
            "price_wei": record.price_wei,
            "currency_address": record.currency_address,
            "order_hash": record.order_hash,
            "source": record.source,
            "status": "active",
        }
        return listing_id

    async def cancel_listing_by_order(self, *, order_hash: str, seller_address: str | None = None) -> int:
        count = 0
        for row in self.listings.values():
            if (
                row["order_hash"] == order_hash
                and row["status"] == "active"
                and (seller_address is None or row["seller_address"] == seller_address)
            ):
                row["status"] = "cancelled"
                count += 1
        return count

    async def upsert_offer(self, *, record: OfferUpsert) -> int:
        if record.order_hash is not None:
            for row in self.offers.values():
                if (row["order_hash"], row["source"]) == (record.order_hash, record.source):
                    row["offer_amount_wei"] = record.offer_amount_wei
                    return row["id"]
        offer_id = self._next_id
        self._next_id += 1
        self.offers[offer_id] = {
            "id": offer_id,
            "ens_name_id": record.ens_name_id,
            "buyer_address": record.buyer_address,
            "offer_amount_wei": record.offer_amount_wei,
            "order_hash": record.order_hash,
            "source": record.source,
            "status": "pending",
        }
        return offer_id

    async def sale_exists(self, *, order_hash: str, ens_name_id: int) -> bool:
        return any(s.order_hash == order_hash and s.ens_name_id == ens_name_id for s in self.sales)

    async def record_sale(self, *, record: SaleRecord) -> bool:
        if record.transaction_hash is not None and any(
            (s.transaction_hash, s.ens_name_id) == (record.transaction_hash, record.ens_name_id) for s in self.sales
        ):
            return False
        self.sales.append(record)
        return True

    def add_listing(self, *, ens_name_id: int, seller: str, order_hash: str, source: str = "opensea") -> int:
        listing_id = self._next_id
        self._next_id += 1
        self.listings[listing_id] = {
            "id": listing_id,
            "ens_name_id": ens_name_id,
            "seller_address": seller,
            "price_wei": 1,
            "currency_address": "0x0000000000000000000000000000000000000000",
            "order_hash": order_hash,
            "source": source,
            "status": "active",
        }
        return listing_id

    @staticmethod
    def _to_listing(row: dict[str, Any]) -> ListingRow:
        return ListingRow(
            id=row["id"],
            ens_name_id=row["ens_name_id"],
            seller_address=row["seller_address"],
            order_hash=row["order_hash"],
            status=row["status"],
            source=row["source"],
        )


class FakeCursorStore:
    def __init__(self, cursors: dict[str, int] | None = None) -> None:
        self.cursors: dict[str, int] = dict(cursors or {})
        self.saves: list[tuple[str, int]] = []

    async def get_cursor(self, *, contract_address: str) -> int | None:
        return self.cursors.get(contract_address)

    async def save_cursor(self, *, contract_address: str, block_number: int, block_timestamp: datetime | None) -> None:
        self.saves.append((contract_address, block_number))
        self.cursors[contract_address] = max(self.cursors.get(contract_address, block_number), block_number)


class FakeRawEventStore:
    def __init__(self) -> None:
        self.events: dict[tuple[str, int], RawEventRecord] = {}

    async def record_raw_event(self, *, record: RawEventRecord) -> bool:
        key = (record.transaction_hash, record.log_index)
        if key in self.events:
            return False
        self.events[key] = record
        return True


# ---------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------


class FakeResolver:
    def __init__(self) -> None:
        self.names: dict[str, ResolvedName] = {}
        self.calls: list[str] = []
        self.batch_calls: list[list[str]] = []
        self.cleared = 0

    async def resolve_one(self, *, token_id: str) -> ResolvedName | None:
        self.calls.append(token_id)
        return self.names.get(token_id)

    async def resolve_batch(self, *, token_ids: list[str]) -> dict[str, str | None]:
        self.batch_calls.append(list(token_ids))
        return {t: (self.names[t].name if t in self.names else None) for t in token_ids}

    def clear_cache(self) -> None:
        self.cleared += 1


class FakeJobPublisher:
    def __init__(self) -> None:
        self.published: list[tuple[str, dict[str, Any], JobOptions | None]] = []
        self.stopped = False

    def publish(self, name: str, payload: dict[str, Any], *, options: JobOptions | None = None) -> None:
        self.published.append((name, payload, options))

    async def stop(self, *, timeout: float) -> None:
        self.stopped = True

    def names(self) -> list[str]:
        return [name for name, _, _ in self.published]


class FakeChainSource:
    """Scripted RPC: a head block, logs per block and a timestamp per block."""

    def __init__(self, *, head: int = 0, logs: list[RawLog] | None = None) -> None:
        self.head = head
        self.logs: list[RawLog] = list(logs or [])
        self.fail_get_logs: Exception | None = None
        self.get_logs_calls: list[tuple[int, int]] = []

    async def get_block_number(self) -> int:
        return self.head

    async def get_logs(self, *, address: str, from_block: int, to_block: int) -> list[RawLog]:
        self.get_logs_calls.append((from_block, to_block))
        if self.fail_get_logs is not None:
            raise self.fail_get_logs
        return [
            log
            for log in self.logs
            if log.address == address and from_block <= log.block_number <= to_block
        ]

    async def get_block_timestamp(self, *, block_number: int) -> datetime:
        return datetime.fromtimestamp(1_700_000_000 + block_number * 12, tz=timezone.utc)


# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------


@pytest.fixture
def name_store() -> FakeNameStore:
    return FakeNameStore()


@pytest.fixture
def marketplace() -> FakeMarketplaceStore:
    return FakeMarketplaceStore()


@pytest.fixture
def cursor_store() -> FakeCursorStore:
    return FakeCursorStore()


@pytest.fixture
def raw_events() -> FakeRawEventStore:
    return FakeRawEventStore()


@pytest.fixture
def resolver() -> FakeResolver:
    return FakeResolver()


@pytest.fixture
def jobs() -> FakeJobPublisher:
    return FakeJobPublisher()


@pytest.fixture
def chain() -> FakeChainSource:
    return FakeChainSource()
