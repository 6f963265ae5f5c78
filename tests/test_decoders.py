import pytest
from eth_abi import encode
from eth_utils import keccak

from ens_indexer.app.domain.events import (
    NameRegisteredLog,
    NameRenewedLog,
    OrderCancelledLog,
    OrderFulfilledLog,
    RawLog,
    TransferLog,
    UnknownLog,
)
from ens_indexer.app.infrastructure.decoders.contract_log_decoder import ContractLogDecoder
from ens_indexer.app.infrastructure.decoders.ens_registrar_decoder import EnsRegistrarLogDecoder
from ens_indexer.app.infrastructure.decoders.seaport_decoder import SeaportLogDecoder

REGISTRAR = "0x57f1887a8bf19b14fc0df6fd9b2acc9af147ea85"
SEAPORT = "0x0000000000000068f116a894984e2db1123eb395"
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20
TX = "0x" + "ab" * 32


def _addr_topic(address: str) -> bytes:
    return bytes(12) + bytes.fromhex(address[2:])


def _uint_topic(value: int) -> bytes:
    return value.to_bytes(32, "big")


def _log(address: str, topics: list[bytes], data: bytes = b"", *, block: int = 100, index: int = 0) -> RawLog:
    return RawLog(
        address=address,
        block_number=block,
        transaction_hash=TX,
        log_index=index,
        topics=tuple(topics),
        data=data,
    )


class TestEnsRegistrarLogDecoder:
    def test_transfer(self):
        decoder = EnsRegistrarLogDecoder()
        topic0 = keccak(text="Transfer(address,address,uint256)")
        log = _log(REGISTRAR, [topic0, _addr_topic(ALICE), _addr_topic(BOB), _uint_topic(42)], index=7)

        event = decoder.decode_log(log)

        assert isinstance(event, TransferLog)
        assert event.from_address == ALICE
        assert event.to_address == BOB
        assert event.token_id == 42
        assert event.ctx.log_index == 7
        assert event.ctx.transaction_hash == TX

    def test_name_registered(self):
        decoder = EnsRegistrarLogDecoder()
        topic0 = keccak(text="NameRegistered(uint256,address,uint256)")
        log = _log(REGISTRAR, [topic0, _uint_topic(2**200), _addr_topic(ALICE)], encode(["uint256"], [1_800_000_000]))

        event = decoder.decode_log(log)

        assert isinstance(event, NameRegisteredLog)
        assert event.token_id == 2**200
        assert event.owner == ALICE
        assert event.expires == 1_800_000_000

    def test_name_renewed(self):
        decoder = EnsRegistrarLogDecoder()
        topic0 = keccak(text="NameRenewed(uint256,uint256)")
        log = _log(REGISTRAR, [topic0, _uint_topic(5)], encode(["uint256"], [1_900_000_000]))

        event = decoder.decode_log(log)

        assert isinstance(event, NameRenewedLog)
        assert (event.token_id, event.expires) == (5, 1_900_000_000)

    def test_unknown_topic_is_unrecognized(self):
        decoder = EnsRegistrarLogDecoder()
        log = _log(REGISTRAR, [keccak(text="Approval(address,address,uint256)")])

        event = decoder.decode_log(log)

        assert isinstance(event, UnknownLog)
        assert event.reason == "unrecognized"

    def test_log_without_topics_is_unrecognized(self):
        event = EnsRegistrarLogDecoder().decode_log(_log(REGISTRAR, []))

        assert isinstance(event, UnknownLog)
        assert event.topic0 is None

    def test_truncated_data_is_reported_not_raised(self):
        decoder = EnsRegistrarLogDecoder()
        topic0 = keccak(text="NameRegistered(uint256,address,uint256)")
        log = _log(REGISTRAR, [topic0, _uint_topic(1), _addr_topic(ALICE)], b"\x00" * 5)

        event = decoder.decode_log(log)

        assert isinstance(event, UnknownLog)
        assert event.reason.startswith("NameRegistered:")

    def test_missing_indexed_topic(self):
        decoder = EnsRegistrarLogDecoder()
        topic0 = keccak(text="Transfer(address,address,uint256)")
        log = _log(REGISTRAR, [topic0, _addr_topic(ALICE)])

        event = decoder.decode_log(log)

        assert isinstance(event, UnknownLog)
        assert event.reason == "Transfer: missing indexed topics"


class TestSeaportLogDecoder:
    FULFILLED = (
        "OrderFulfilled(bytes32,address,address,address,"
        "(uint8,address,uint256,uint256)[],(uint8,address,uint256,uint256,address)[])"
    )

    def test_order_fulfilled(self):
        decoder = SeaportLogDecoder()
        order_hash = b"\x11" * 32
        data = encode(
            [
                "bytes32",
                "address",
                "(uint8,address,uint256,uint256)[]",
                "(uint8,address,uint256,uint256,address)[]",
            ],
            [
                order_hash,
                BOB,
                [(2, REGISTRAR, 77, 1)],
                [(0, "0x" + "00" * 20, 10**18, 10**18, ALICE)],
            ],
        )
        log = _log(SEAPORT, [keccak(text=self.FULFILLED), _addr_topic(ALICE), _addr_topic("0x" + "00" * 20)], data)

        event = decoder.decode_log(log)

        assert isinstance(event, OrderFulfilledLog)
        assert event.order_hash == "0x" + "11" * 32
        assert event.offerer == ALICE
        assert event.recipient == BOB
        assert len(event.offer) == 1
        assert event.offer[0].token == REGISTRAR
        assert event.offer[0].identifier == 77
        assert event.consideration[0].amount == 10**18
        assert event.consideration[0].recipient == ALICE

    def test_order_cancelled(self):
        decoder = SeaportLogDecoder()
        topic0 = keccak(text="OrderCancelled(bytes32,address,address)")
        log = _log(SEAPORT, [topic0, _addr_topic(ALICE), _addr_topic(BOB)], encode(["bytes32"], [b"\x22" * 32]))

        event = decoder.decode_log(log)

        assert isinstance(event, OrderCancelledLog)
        assert event.order_hash == "0x" + "22" * 32
        assert event.offerer == ALICE

    def test_registrar_topic_is_unknown_to_seaport(self):
        topic0 = keccak(text="Transfer(address,address,uint256)")

        event = SeaportLogDecoder().decode_log(_log(SEAPORT, [topic0]))

        assert isinstance(event, UnknownLog)
        assert event.reason == "unrecognized"


class TestContractLogDecoder:
    def test_base_class_cannot_be_instantiated(self):
        with pytest.raises(TypeError):
            ContractLogDecoder(events_abi=[])
