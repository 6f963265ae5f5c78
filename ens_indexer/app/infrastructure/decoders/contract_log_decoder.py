from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Mapping, Sequence

from eth_abi.exceptions import DecodingError

from ens_indexer.app.domain.events import ChainEvent, LogContext, RawLog, UnknownLog
from ens_indexer.app.domain.ports.out import LogDecoder
from ens_indexer.app.infrastructure.decoders.abi_event_decoder import AbiEventDecoder

logger = logging.getLogger(__name__)


class ContractLogDecoder(LogDecoder, ABC):
    """
    Dispatches a raw log to the AbiEventDecoder whose topic0 matches and turns
    the decoded dict into a typed event.

    decode_log never raises: unmatched logs and logs whose payload does not fit
    the ABI both come back as UnknownLog, with `reason` telling them apart.
    """

    def __init__(self, *, events_abi: Sequence[Mapping[str, Any]]) -> None:
        decoders = [AbiEventDecoder(event_abi=abi) for abi in events_abi]
        self._by_topic0: dict[bytes, AbiEventDecoder] = {d.topic0: d for d in decoders}

    @property
    def topics(self) -> list[bytes]:
        return list(self._by_topic0)

    def decode_log(self, log: RawLog) -> ChainEvent:
        ctx = LogContext.from_raw(log)
        topic0 = bytes(log.topics[0]) if log.topics else None
        topic0_hex = "0x" + topic0.hex() if topic0 is not None else None

        decoder = self._by_topic0.get(topic0) if topic0 is not None else None
        if decoder is None:
            return UnknownLog(ctx=ctx, topic0=topic0_hex)

        topics = list(log.topics[1:4]) + [None] * (4 - len(log.topics))
        try:
            args = decoder.decode(
                topic0=topic0,
                topic1=topics[0],
                topic2=topics[1],
                topic3=topics[2],
                data=log.data,
            )
            if args is None:
                return UnknownLog(ctx=ctx, topic0=topic0_hex, reason=f"{decoder.name}: missing indexed topics")
            return self._build(decoder.name, args, ctx)
        except (DecodingError, ValueError, KeyError, TypeError, IndexError) as exc:
            logger.warning(
                "Failed to decode %s log: %s",
                decoder.name,
                exc,
                extra={
                    "transaction_hash": log.transaction_hash,
                    "block_number": log.block_number,
                    "log_index": log.log_index,
                },
            )
            return UnknownLog(ctx=ctx, topic0=topic0_hex, reason=f"{decoder.name}: {exc}")

    @abstractmethod
    def _build(self, event_name: str, args: dict[str, Any], ctx: LogContext) -> ChainEvent:
        """Map one decoded event dict to its typed event."""
