from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

TransactionType = Literal["sale", "transfer", "registration", "renewal"]
ListingStatus = Literal["active", "sold", "cancelled", "expired"]
OfferStatus = Literal["pending", "accepted", "rejected", "expired"]
SaleSource = Literal["blockchain", "opensea", "grails"]


@dataclass(frozen=True)
class TransactionRecord:
    transaction_hash: str
    ens_name_id: int
    transaction_type: TransactionType
    block_number: int
    timestamp: datetime | None
    from_address: str | None = None
    to_address: str | None = None
    price_wei: int | None = None


@dataclass(frozen=True)
class ActivityRecord:
    ens_name_id: int
    event_type: str
    actor_address: str
    platform: str
    created_at: datetime
    counterparty_address: str | None = None
    price_wei: int | None = None
    currency_address: str | None = None
    transaction_hash: str | None = None
    block_number: int | None = None
    metadata: dict[str, Any] | None = None


@dataclass(frozen=True)
class RawEventRecord:
    contract_address: str
    event_name: str
    block_number: int
    transaction_hash: str
    log_index: int
    event_data: dict[str, Any]


@dataclass(frozen=True)
class ListingUpsert:
    ens_name_id: int
    seller_address: str
    price_wei: int
    currency_address: str
    order_hash: str | None
    source: str
    expires_at: datetime | None = None
    order_data: dict[str, Any] | None = None


@dataclass(frozen=True)
class ListingRow:
    id: int
    ens_name_id: int
    seller_address: str
    order_hash: str | None
    status: str
    source: str


@dataclass(frozen=True)
class OfferUpsert:
    ens_name_id: int
    buyer_address: str
    offer_amount_wei: int
    currency_address: str
    order_hash: str | None
    source: str
    expires_at: datetime | None = None


@dataclass(frozen=True)
class SaleRecord:
    ens_name_id: int
    seller_address: str | None
    buyer_address: str | None
    sale_price_wei: int
    currency_address: str
    source: SaleSource
    order_hash: str | None
    transaction_hash: str | None
    block_number: int | None
    sale_date: datetime | None
    listing_id: int | None = None
    platform_fee_wei: int | None = None
    creator_fee_wei: int | None = None
    metadata: dict[str, Any] | None = None
