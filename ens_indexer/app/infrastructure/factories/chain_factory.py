from __future__ import annotations

from typing import Callable, Dict

from web3 import AsyncHTTPProvider, AsyncWeb3

from ens_indexer.app.config import settings
from ens_indexer.app.domain.ports.out import ChainLogSource, LogDecoder
from ens_indexer.app.infrastructure.decoders.ens_registrar_decoder import EnsRegistrarLogDecoder
from ens_indexer.app.infrastructure.decoders.seaport_decoder import SeaportLogDecoder
from ens_indexer.app.infrastructure.fetchers.web3_chain_log_source import Web3ChainLogSource

_RPC_TIMEOUT_SECONDS = 30


def _make_web3_source() -> ChainLogSource:
    w3 = AsyncWeb3(
        AsyncHTTPProvider(
            settings.rpc_url,
            request_kwargs={"timeout": _RPC_TIMEOUT_SECONDS},
        )
    )
    return Web3ChainLogSource(w3=w3)


_CHAIN_LOG_SOURCE_REGISTRY: Dict[str, Callable[[], ChainLogSource]] = {
    "web3": _make_web3_source,
}

_LOG_DECODER_REGISTRY: Dict[str, Callable[[], LogDecoder]] = {
    "ens_registrar": EnsRegistrarLogDecoder,
    "seaport": SeaportLogDecoder,
}


def chain_log_source_factory(*, backend: str = "web3") -> ChainLogSource:
    try:
        factory = _CHAIN_LOG_SOURCE_REGISTRY[backend]
    except KeyError:
        raise ValueError(f"Unsupported chain log source backend: {backend!r}")
    return factory()


def log_decoder_factory(*, contract: str) -> LogDecoder:
    """Decoder for one monitored contract kind ("ens_registrar" or "seaport")."""
    try:
        factory = _LOG_DECODER_REGISTRY[contract]
    except KeyError:
        raise ValueError(f"Unsupported contract for log decoding: {contract!r}")
    return factory()
