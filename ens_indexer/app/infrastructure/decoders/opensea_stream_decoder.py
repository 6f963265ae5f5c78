from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from ens_indexer.app.domain.events import (
    CollectionOffer,
    ItemCancelled,
    ItemListed,
    ItemMetadataUpdated,
    ItemReceivedBid,
    ItemSold,
    ItemTransferred,
    StreamEvent,
    StreamItem,
    UnknownStreamMessage,
)
from ens_indexer.app.domain.names import ZERO_ADDRESS, normalize_address

# Values above this are epoch milliseconds, below it epoch seconds.
_MS_THRESHOLD = 10_000_000_000


class _MissingField(ValueError):
    pass


def decode_stream_message(message: Mapping[str, Any]) -> StreamEvent:
    """
    Turn one channel message ({topic, event, payload}) into a typed event.

    Total: unknown event names and payloads missing required fields come back
    as UnknownStreamMessage.
    """
    event_name = str(message.get("event") or "")
    payload = message.get("payload")
    data = _unwrap(payload)

    builder = _BUILDERS.get(event_name)
    if builder is None:
        return UnknownStreamMessage(event_name=event_name, payload=payload)

    try:
        return builder(data)
    except _MissingField as exc:
        return UnknownStreamMessage(event_name=event_name, payload=payload, reason=f"missing {exc}")
    except (ValueError, TypeError, AttributeError, InvalidOperation, OverflowError, OSError) as exc:
        return UnknownStreamMessage(event_name=event_name, payload=payload, reason=f"malformed: {exc}")


def parse_expiration(value: Any) -> datetime | None:
    """
    Expiration fields arrive as epoch seconds, epoch milliseconds or ISO-8601
    strings depending on the event type.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _from_epoch(value)
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.isdigit():
            return _from_epoch(int(stripped))
        try:
            parsed = datetime.fromisoformat(stripped.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


# ---------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------


def _listed(data: Mapping[str, Any]) -> ItemListed:
    item = _require_item(data)
    seller = _require(_account(data.get("maker")), "maker.address")
    return ItemListed(
        item=item,
        order_hash=_str_or_none(data.get("order_hash")),
        seller=seller,
        price_wei=_wei(data.get("base_price")),
        currency=_payment_token(data),
        expires_at=parse_expiration(data.get("expiration_date")),
        listed_at=parse_expiration(data.get("listing_date") or data.get("event_timestamp")),
        protocol_data=data.get("protocol_data") if isinstance(data.get("protocol_data"), dict) else None,
    )


def _sold(data: Mapping[str, Any]) -> ItemSold:
    item = _require_item(data)
    tx = data.get("transaction") if isinstance(data.get("transaction"), dict) else {}
    block_number = tx.get("block_number")
    return ItemSold(
        item=item,
        order_hash=_str_or_none(data.get("order_hash")),
        buyer=_account(data.get("taker")),
        seller=_account(data.get("maker")),
        price_wei=_wei(data.get("sale_price")),
        currency=_payment_token(data),
        transaction_hash=_str_or_none(tx.get("hash") or tx.get("transaction_hash")),
        block_number=int(block_number) if block_number is not None else None,
        protocol_fee_wei=_fee(data.get("protocol_fee")),
        creator_fee_wei=_fee(data.get("creator_fee")),
        sold_at=parse_expiration(tx.get("timestamp") or data.get("closing_date") or data.get("event_timestamp")),
    )


def _transferred(data: Mapping[str, Any]) -> ItemTransferred:
    item = _require_item(data)
    tx = data.get("transaction") if isinstance(data.get("transaction"), dict) else {}
    block_number = tx.get("block_number")
    return ItemTransferred(
        item=item,
        from_address=_account(data.get("from_account")),
        to_address=_require(_account(data.get("to_account")), "to_account.address"),
        transaction_hash=_str_or_none(tx.get("hash") or tx.get("transaction_hash")),
        block_number=int(block_number) if block_number is not None else None,
        transferred_at=parse_expiration(tx.get("timestamp") or data.get("event_timestamp")),
    )


def _cancelled(data: Mapping[str, Any]) -> ItemCancelled:
    return ItemCancelled(
        order_hash=_require(_str_or_none(data.get("order_hash")), "order_hash"),
        maker=_require(_account(data.get("maker")), "maker.address"),
        item=_item(data),
    )


def _bid(data: Mapping[str, Any]) -> ItemReceivedBid:
    item = _require_item(data)
    return ItemReceivedBid(
        item=item,
        order_hash=_str_or_none(data.get("order_hash")),
        bidder=_require(_account(data.get("maker")), "maker.address"),
        price_wei=_wei(data.get("base_price")),
        currency=_payment_token(data),
        expires_at=parse_expiration(data.get("expiration_date")),
        created_at=parse_expiration(data.get("created_date") or data.get("event_timestamp")),
    )


def _collection_offer(data: Mapping[str, Any]) -> CollectionOffer:
    collection = data.get("collection") if isinstance(data.get("collection"), dict) else {}
    quantity = data.get("quantity")
    return CollectionOffer(
        collection_slug=_str_or_none(collection.get("slug")),
        order_hash=_str_or_none(data.get("order_hash")),
        maker=_require(_account(data.get("maker")), "maker.address"),
        price_wei=_wei(_require(data.get("base_price"), "base_price")),
        quantity=int(quantity) if quantity is not None else None,
    )


def _metadata_updated(data: Mapping[str, Any]) -> ItemMetadataUpdated:
    return ItemMetadataUpdated(item=_item(data))


_BUILDERS = {
    "item_listed": _listed,
    "item_sold": _sold,
    "item_transferred": _transferred,
    "item_cancelled": _cancelled,
    "item_received_bid": _bid,
    "collection_offer": _collection_offer,
    "item_metadata_updated": _metadata_updated,
}


# ---------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------


def _unwrap(payload: Any) -> Mapping[str, Any]:
    if not isinstance(payload, dict):
        return {}
    inner = payload.get("payload")
    if isinstance(inner, dict):
        return inner
    return payload


def _item(data: Mapping[str, Any]) -> StreamItem | None:
    item = data.get("item")
    if not isinstance(item, dict):
        return None
    nft_id = item.get("nft_id")
    if not isinstance(nft_id, str) or not nft_id:
        return None
    token_id = nft_id.split("/")[-1]
    if not token_id.isdigit():
        return None
    metadata = item.get("metadata") if isinstance(item.get("metadata"), dict) else {}
    return StreamItem(
        nft_id=nft_id,
        token_id=token_id,
        name=_str_or_none(metadata.get("name")),
        metadata=dict(metadata),
    )


def _require_item(data: Mapping[str, Any]) -> StreamItem:
    return _require(_item(data), "item.nft_id")


def _require(value: Any, field_name: str) -> Any:
    if value is None:
        raise _MissingField(field_name)
    return value


def _account(value: Any) -> str | None:
    if isinstance(value, dict):
        return normalize_address(value.get("address"))
    return None


def _payment_token(data: Mapping[str, Any]) -> str:
    token = data.get("payment_token")
    if isinstance(token, dict) and token.get("address"):
        return str(token["address"]).lower()
    return ZERO_ADDRESS


def _wei(value: Any) -> int:
    if value is None or value == "":
        return 0
    return int(Decimal(str(value)))


def _fee(value: Any) -> int | None:
    if isinstance(value, dict):
        value = value.get("value")
    if value is None or value == "":
        return None
    return _wei(value)


def _str_or_none(value: Any) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _from_epoch(value: int | float) -> datetime:
    seconds = value / 1000 if value > _MS_THRESHOLD else value
    return datetime.fromtimestamp(seconds, tz=timezone.utc)
