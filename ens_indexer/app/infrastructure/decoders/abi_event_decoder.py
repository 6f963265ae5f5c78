from __future__ import annotations

from typing import Any, Mapping

from eth_abi import decode as abi_decode
from eth_utils import keccak

from ens_indexer.app.domain.ports.out import EvmEventDecoder


class AbiEventDecoder(EvmEventDecoder):
    """
    ABI-based decoder for a single contract event.

    It:
    - computes topic0 = keccak("EventName(type1,type2,...)"), expanding tuple
      components into their canonical "(t1,t2)[]" form,
    - decodes indexed args from topics (address / uint / bytes32),
    - decodes non-indexed args from `data` with eth_abi.

    Output dict is keyed by the ABI input names. Addresses come back as
    lowercase 0x-hex strings, bytes32 as 0x-hex strings.
    """

    def __init__(self, *, event_abi: Mapping[str, Any]) -> None:
        self._event_abi = event_abi
        self._name = str(event_abi["name"])
        self._signature = self._event_signature(event_abi)
        self._topic0 = keccak(text=self._signature)

        self._inputs: list[Mapping[str, Any]] = list(event_abi.get("inputs", []))
        self._indexed_inputs = [i for i in self._inputs if i.get("indexed") is True]
        self._non_indexed_inputs = [i for i in self._inputs if not i.get("indexed")]

        self._non_indexed_types = [self._canonical_type(i) for i in self._non_indexed_inputs]
        self._non_indexed_names = [i["name"] for i in self._non_indexed_inputs]

    @property
    def name(self) -> str:
        return self._name

    @property
    def topic0(self) -> bytes:
        return self._topic0

    @property
    def event_signature(self) -> str:
        return self._signature

    def decode(
        self,
        *,
        topic0: bytes | None,
        topic1: bytes | None,
        topic2: bytes | None,
        topic3: bytes | None,
        data: bytes,
    ) -> dict[str, Any] | None:
        if topic0 is None or bytes(topic0) != self._topic0:
            return None

        topics = [topic1, topic2, topic3][: len(self._indexed_inputs)]
        if len(topics) != len(self._indexed_inputs) or any(t is None for t in topics):
            return None

        out: dict[str, Any] = {}
        for inp, topic in zip(self._indexed_inputs, topics, strict=True):
            out[inp["name"]] = self._decode_topic(inp["type"], topic)

        out.update(self._decode_non_indexed_data(data))
        return out

    # ---------------------------------------------------------------------
    # ABI helpers
    # ---------------------------------------------------------------------

    def _event_signature(self, event_abi: Mapping[str, Any]) -> str:
        name = event_abi.get("name")
        inputs = event_abi.get("inputs", [])
        if not isinstance(name, str) or not isinstance(inputs, list):
            raise ValueError("Invalid event ABI: missing name/inputs")
        types = []
        for inp in inputs:
            if not isinstance(inp, dict) or "type" not in inp:
                raise ValueError("Invalid event ABI inputs")
            types.append(self._canonical_type(inp))
        return f"{name}({','.join(types)})"

    def _canonical_type(self, inp: Mapping[str, Any]) -> str:
        typ = inp["type"]
        if not typ.startswith("tuple"):
            return typ
        suffix = typ[len("tuple"):]  # "", "[]", "[3]"
        inner = ",".join(self._canonical_type(c) for c in inp.get("components", []))
        return f"({inner}){suffix}"

    def _decode_non_indexed_data(self, data: bytes) -> dict[str, Any]:
        if not self._non_indexed_inputs:
            return {}

        values = abi_decode(self._non_indexed_types, bytes(data))

        out: dict[str, Any] = {}
        for name, typ, val in zip(self._non_indexed_names, self._non_indexed_types, values, strict=True):
            out[name] = self._normalize_abi_value(typ, val)
        return out

    # ---------------------------------------------------------------------
    # Topic / ABI value normalization
    # ---------------------------------------------------------------------

    def _as_bytes32(self, b: bytes) -> bytes:
        bb = bytes(b)
        if len(bb) != 32:
            raise ValueError(f"Expected 32 bytes (bytes32 topic), got len={len(bb)}")
        return bb

    def _decode_topic(self, typ: str, topic: bytes) -> Any:
        t = self._as_bytes32(topic)
        if typ == "address":
            # left-zero padded to 32 bytes
            return "0x" + t[-20:].hex()
        if typ.startswith("uint"):
            return int.from_bytes(t, byteorder="big", signed=False)
        if typ.startswith("int"):
            return int.from_bytes(t, byteorder="big", signed=True)
        # bytes32 and hashed dynamic types
        return "0x" + t.hex()

    def _normalize_abi_value(self, typ: str, val: Any) -> Any:
        if typ.startswith("("):
            # flat tuple or tuple[]; nested tuples do not occur in the events we decode
            inner = typ[1 : typ.rindex(")")].split(",")
            if typ.endswith("]"):
                return [self._normalize_tuple(inner, v) for v in val]
            return self._normalize_tuple(inner, val)

        if typ.endswith("]"):
            base = typ[: typ.rindex("[")]
            return [self._normalize_abi_value(base, v) for v in val]

        if typ == "address":
            if isinstance(val, (bytes, bytearray)):
                return "0x" + bytes(val).hex()
            return str(val).lower()

        if typ.startswith("uint") or typ.startswith("int"):
            return int(val)

        if typ.startswith("bytes"):
            if isinstance(val, (bytes, bytearray, memoryview)):
                return "0x" + bytes(val).hex()
            return val

        return val

    def _normalize_tuple(self, types: list[str], val: Any) -> tuple[Any, ...]:
        return tuple(self._normalize_abi_value(t, v) for t, v in zip(types, val, strict=True))
