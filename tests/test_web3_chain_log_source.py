from datetime import datetime, timezone

import pytest

from ens_indexer.app.infrastructure.fetchers.web3_chain_log_source import Web3ChainLogSource


class _FakeEth:
    def __init__(self) -> None:
        self.block_calls: list[int] = []
        self.filters: list[dict] = []

    @property
    async def block_number(self) -> int:
        return 1234

    async def get_logs(self, params: dict) -> list[dict]:
        self.filters.append(params)
        return [
            {
                "address": "0x57f1887a8BF19b14fC0dF6Fd9B2acc9Af147eA85",
                "blockNumber": 100,
                "transactionHash": b"\xab" * 32,
                "logIndex": 3,
                "topics": [b"\x01" * 32],
                "data": b"\x02",
            }
        ]

    async def get_block(self, block_number: int) -> dict:
        self.block_calls.append(block_number)
        return {"timestamp": 1_700_000_000}


class _FakeWeb3:
    def __init__(self) -> None:
        self.eth = _FakeEth()

    @staticmethod
    def to_checksum_address(address: str) -> str:
        return address.upper()


class TestWeb3ChainLogSource:
    @pytest.mark.asyncio
    async def test_block_number(self):
        assert await Web3ChainLogSource(w3=_FakeWeb3()).get_block_number() == 1234

    @pytest.mark.asyncio
    async def test_logs_are_normalized(self):
        w3 = _FakeWeb3()
        source = Web3ChainLogSource(w3=w3)

        [log] = await source.get_logs(address="0xabc", from_block=1, to_block=2)

        assert w3.eth.filters == [{"address": "0XABC", "fromBlock": 1, "toBlock": 2}]
        assert log.address == "0x57f1887a8bf19b14fc0df6fd9b2acc9af147ea85"
        assert log.transaction_hash == "0x" + "ab" * 32
        assert log.topics == (b"\x01" * 32,)
        assert (log.block_number, log.log_index, log.data) == (100, 3, b"\x02")

    @pytest.mark.asyncio
    async def test_block_timestamps_are_cached(self):
        w3 = _FakeWeb3()
        source = Web3ChainLogSource(w3=w3)

        first = await source.get_block_timestamp(block_number=7)
        second = await source.get_block_timestamp(block_number=7)

        assert first == second == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)
        assert w3.eth.block_calls == [7]
