from __future__ import annotations

from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any

from web3 import AsyncWeb3

from ens_indexer.app.domain.events import RawLog
from ens_indexer.app.domain.ports.out import ChainLogSource

_TIMESTAMP_CACHE_SIZE = 2048


class Web3ChainLogSource(ChainLogSource):
    """
    ChainLogSource over AsyncWeb3.

    Block timestamps are cached (bounded LRU) since every event in a range
    asks for the timestamp of its block and ranges are small.
    """

    def __init__(self, *, w3: AsyncWeb3) -> None:
        self._w3 = w3
        self._timestamps: OrderedDict[int, datetime] = OrderedDict()

    async def get_block_number(self) -> int:
        return int(await self._w3.eth.block_number)

    async def get_logs(
        self,
        *,
        address: str,
        from_block: int,
        to_block: int,
    ) -> list[RawLog]:
        logs = await self._w3.eth.get_logs(
            {
                "address": self._w3.to_checksum_address(address),
                "fromBlock": from_block,
                "toBlock": to_block,
            }
        )
        return [self._to_raw_log(log) for log in logs]

    async def get_block_timestamp(self, *, block_number: int) -> datetime:
        cached = self._timestamps.get(block_number)
        if cached is not None:
            self._timestamps.move_to_end(block_number)
            return cached

        block = await self._w3.eth.get_block(block_number)
        ts = datetime.fromtimestamp(int(block["timestamp"]), tz=timezone.utc)

        self._timestamps[block_number] = ts
        if len(self._timestamps) > _TIMESTAMP_CACHE_SIZE:
            self._timestamps.popitem(last=False)
        return ts

    @staticmethod
    def _to_raw_log(log: Any) -> RawLog:
        return RawLog(
            address=str(log["address"]).lower(),
            block_number=int(log["blockNumber"]),
            transaction_hash=_hex(log["transactionHash"]),
            log_index=int(log["logIndex"]),
            topics=tuple(bytes(t) for t in log["topics"]),
            data=bytes(log["data"]),
        )


def _hex(value: Any) -> str:
    # HexBytes.hex() dropped the 0x prefix in hexbytes 1.x
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    s = str(value).lower()
    return s if s.startswith("0x") else "0x" + s
