from __future__ import annotations

from typing import Any

from ens_indexer.app.domain.events import (
    ChainEvent,
    ConsiderationItem,
    LogContext,
    OfferItem,
    OrderCancelledLog,
    OrderFulfilledLog,
    UnknownLog,
)
from ens_indexer.app.infrastructure.decoders.contract_log_decoder import ContractLogDecoder

_SPENT_ITEM = [
    {"name": "itemType", "type": "uint8"},
    {"name": "token", "type": "address"},
    {"name": "identifier", "type": "uint256"},
    {"name": "amount", "type": "uint256"},
]

_RECEIVED_ITEM = _SPENT_ITEM + [{"name": "recipient", "type": "address"}]

# Seaport 1.5/1.6 order lifecycle events
SEAPORT_EVENTS_ABI = [
    {
        "type": "event",
        "name": "OrderFulfilled",
        "inputs": [
            {"name": "orderHash", "type": "bytes32", "indexed": False},
            {"name": "offerer", "type": "address", "indexed": True},
            {"name": "zone", "type": "address", "indexed": True},
            {"name": "recipient", "type": "address", "indexed": False},
            {"name": "offer", "type": "tuple[]", "indexed": False, "components": _SPENT_ITEM},
            {"name": "consideration", "type": "tuple[]", "indexed": False, "components": _RECEIVED_ITEM},
        ],
    },
    {
        "type": "event",
        "name": "OrderCancelled",
        "inputs": [
            {"name": "orderHash", "type": "bytes32", "indexed": False},
            {"name": "offerer", "type": "address", "indexed": True},
            {"name": "zone", "type": "address", "indexed": True},
        ],
    },
]


class SeaportLogDecoder(ContractLogDecoder):
    """Decoder for Seaport OrderFulfilled / OrderCancelled."""

    def __init__(self) -> None:
        super().__init__(events_abi=SEAPORT_EVENTS_ABI)

    def _build(self, event_name: str, args: dict[str, Any], ctx: LogContext) -> ChainEvent:
        if event_name == "OrderFulfilled":
            return OrderFulfilledLog(
                ctx=ctx,
                order_hash=args["orderHash"],
                offerer=args["offerer"],
                zone=args["zone"],
                recipient=args["recipient"],
                offer=tuple(
                    OfferItem(item_type=t, token=tok, identifier=ident, amount=amt)
                    for t, tok, ident, amt in args["offer"]
                ),
                consideration=tuple(
                    ConsiderationItem(item_type=t, token=tok, identifier=ident, amount=amt, recipient=rcpt)
                    for t, tok, ident, amt, rcpt in args["consideration"]
                ),
            )
        if event_name == "OrderCancelled":
            return OrderCancelledLog(
                ctx=ctx,
                order_hash=args["orderHash"],
                offerer=args.get("offerer"),
                zone=args.get("zone"),
            )
        return UnknownLog(ctx=ctx, topic0=None, reason=f"no builder for {event_name}")
