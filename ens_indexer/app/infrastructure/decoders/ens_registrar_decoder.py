from __future__ import annotations

from typing import Any

from ens_indexer.app.domain.events import (
    ChainEvent,
    LogContext,
    NameRegisteredLog,
    NameRenewedLog,
    TransferLog,
    UnknownLog,
)
from ens_indexer.app.infrastructure.decoders.contract_log_decoder import ContractLogDecoder

# BaseRegistrarImplementation event fragments
ENS_REGISTRAR_EVENTS_ABI = [
    {
        "type": "event",
        "name": "Transfer",
        "inputs": [
            {"name": "from", "type": "address", "indexed": True},
            {"name": "to", "type": "address", "indexed": True},
            {"name": "tokenId", "type": "uint256", "indexed": True},
        ],
    },
    {
        "type": "event",
        "name": "NameRegistered",
        "inputs": [
            {"name": "id", "type": "uint256", "indexed": True},
            {"name": "owner", "type": "address", "indexed": True},
            {"name": "expires", "type": "uint256", "indexed": False},
        ],
    },
    {
        "type": "event",
        "name": "NameRenewed",
        "inputs": [
            {"name": "id", "type": "uint256", "indexed": True},
            {"name": "expires", "type": "uint256", "indexed": False},
        ],
    },
]


class EnsRegistrarLogDecoder(ContractLogDecoder):
    """Decoder for the .eth registrar: Transfer, NameRegistered, NameRenewed."""

    def __init__(self) -> None:
        super().__init__(events_abi=ENS_REGISTRAR_EVENTS_ABI)

    def _build(self, event_name: str, args: dict[str, Any], ctx: LogContext) -> ChainEvent:
        if event_name == "Transfer":
            return TransferLog(
                ctx=ctx,
                from_address=args["from"],
                to_address=args["to"],
                token_id=args["tokenId"],
            )
        if event_name == "NameRegistered":
            return NameRegisteredLog(
                ctx=ctx,
                token_id=args["id"],
                owner=args["owner"],
                expires=args["expires"],
            )
        if event_name == "NameRenewed":
            return NameRenewedLog(ctx=ctx, token_id=args["id"], expires=args["expires"])
        return UnknownLog(ctx=ctx, topic0=None, reason=f"no builder for {event_name}")
