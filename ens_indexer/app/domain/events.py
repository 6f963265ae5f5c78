from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Union


# ---------------------------------------------------------------------
# Chain logs
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class RawLog:
    """
    Chain log as returned by the RPC source, before decoding.

    Addresses and hashes are lowercase 0x-prefixed hex strings.
    """

    address: str
    block_number: int
    transaction_hash: str
    log_index: int
    topics: tuple[bytes, ...]
    data: bytes


@dataclass(frozen=True)
class LogContext:
    contract_address: str
    block_number: int
    transaction_hash: str
    log_index: int

    @classmethod
    def from_raw(cls, log: RawLog) -> "LogContext":
        return cls(
            contract_address=log.address,
            block_number=log.block_number,
            transaction_hash=log.transaction_hash,
            log_index=log.log_index,
        )


@dataclass(frozen=True)
class TransferLog:
    ctx: LogContext
    from_address: str
    to_address: str
    token_id: int

    event_name = "Transfer"


@dataclass(frozen=True)
class NameRegisteredLog:
    ctx: LogContext
    token_id: int
    owner: str
    expires: int

    event_name = "NameRegistered"


@dataclass(frozen=True)
class NameRenewedLog:
    ctx: LogContext
    token_id: int
    expires: int

    event_name = "NameRenewed"


@dataclass(frozen=True)
class OfferItem:
    item_type: int
    token: str
    identifier: int
    amount: int


@dataclass(frozen=True)
class ConsiderationItem:
    item_type: int
    token: str
    identifier: int
    amount: int
    recipient: str


@dataclass(frozen=True)
class OrderFulfilledLog:
    ctx: LogContext
    order_hash: str
    offerer: str
    zone: str
    recipient: str
    offer: tuple[OfferItem, ...]
    consideration: tuple[ConsiderationItem, ...]

    event_name = "OrderFulfilled"


@dataclass(frozen=True)
class OrderCancelledLog:
    ctx: LogContext
    order_hash: str
    offerer: str | None = None
    zone: str | None = None

    event_name = "OrderCancelled"


@dataclass(frozen=True)
class UnknownLog:
    """Log that matched none of the known signatures, or failed to decode."""

    ctx: LogContext
    topic0: str | None
    reason: str = "unrecognized"

    event_name = "Unknown"


ChainEvent = Union[
    TransferLog,
    NameRegisteredLog,
    NameRenewedLog,
    OrderFulfilledLog,
    OrderCancelledLog,
    UnknownLog,
]


def event_data(event: ChainEvent) -> dict[str, Any]:
    """
    JSON-safe projection of a decoded event's arguments.

    Integers are rendered as decimal strings so that uint256 values survive
    JSON consumers that only have doubles.
    """
    return _json_safe({k: v for k, v in vars(event).items() if k != "ctx"})


def _json_safe(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if hasattr(value, "__dataclass_fields__"):
        return _json_safe(vars(value))
    return value


# ---------------------------------------------------------------------
# Marketplace stream messages
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class StreamItem:
    nft_id: str
    token_id: str
    name: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ItemListed:
    item: StreamItem
    order_hash: str | None
    seller: str
    price_wei: int
    currency: str
    expires_at: datetime | None
    listed_at: datetime | None
    protocol_data: dict[str, Any] | None = None

    event_name = "item_listed"


@dataclass(frozen=True)
class ItemSold:
    item: StreamItem
    order_hash: str | None
    buyer: str | None
    seller: str | None
    price_wei: int
    currency: str
    transaction_hash: str | None
    block_number: int | None
    protocol_fee_wei: int | None
    creator_fee_wei: int | None
    sold_at: datetime | None

    event_name = "item_sold"


@dataclass(frozen=True)
class ItemTransferred:
    item: StreamItem
    from_address: str | None
    to_address: str
    transaction_hash: str | None
    block_number: int | None
    transferred_at: datetime | None

    event_name = "item_transferred"


@dataclass(frozen=True)
class ItemCancelled:
    order_hash: str
    maker: str
    item: StreamItem | None = None

    event_name = "item_cancelled"


@dataclass(frozen=True)
class ItemReceivedBid:
    item: StreamItem
    order_hash: str | None
    bidder: str
    price_wei: int
    currency: str
    expires_at: datetime | None
    created_at: datetime | None

    event_name = "item_received_bid"


@dataclass(frozen=True)
class CollectionOffer:
    collection_slug: str | None
    order_hash: str | None
    maker: str
    price_wei: int
    quantity: int | None = None

    event_name = "collection_offer"


@dataclass(frozen=True)
class ItemMetadataUpdated:
    item: StreamItem | None

    event_name = "item_metadata_updated"


@dataclass(frozen=True)
class UnknownStreamMessage:
    event_name: str
    payload: Any
    reason: str = "unrecognized"


StreamEvent = Union[
    ItemListed,
    ItemSold,
    ItemTransferred,
    ItemCancelled,
    ItemReceivedBid,
    CollectionOffer,
    ItemMetadataUpdated,
    UnknownStreamMessage,
]
