from __future__ import annotations

from typing import Callable, Dict

from ens_indexer.app.application.services.block_scanner import BlockScanner, ScannerSettings
from ens_indexer.app.application.services.ens_events_reconciler import EnsEventsReconciler
from ens_indexer.app.application.services.name_records import NameRecordService
from ens_indexer.app.application.services.order_events_reconciler import OrderEventsReconciler
from ens_indexer.app.config import settings
from ens_indexer.app.domain.ports.out import ChainLogSource, JobPublisher, NameResolver
from ens_indexer.app.infrastructure.factories.chain_factory import log_decoder_factory
from ens_indexer.app.infrastructure.factories.stores_factory import Stores


def _scanner_settings(*, contract_address: str, start_block: int | None) -> ScannerSettings:
    return ScannerSettings(
        contract_address=contract_address,
        confirmations=settings.confirmations,
        batch_size=settings.scanner_batch_size,
        concurrency=settings.scanner_concurrency,
        start_block=start_block,
        idle_sleep_seconds=settings.scanner_idle_sleep_seconds,
        error_backoff_seconds=settings.scanner_error_backoff_seconds,
    )


def _make_registrar_scanner(
    *,
    source: ChainLogSource,
    stores: Stores,
    resolver: NameResolver,
    jobs: JobPublisher,
) -> BlockScanner:
    records = NameRecordService(names=stores.names, resolver=resolver, jobs=jobs)
    return BlockScanner(
        name="ens_registrar",
        source=source,
        decoder=log_decoder_factory(contract="ens_registrar"),
        reconciler=EnsEventsReconciler(
            source=source,
            names=stores.names,
            records=records,
            resolver=resolver,
            jobs=jobs,
        ),
        cursors=stores.cursors,
        raw_events=stores.raw_events,
        settings=_scanner_settings(
            contract_address=settings.ens_registrar_address,
            start_block=settings.start_block or 0,
        ),
    )


def _make_seaport_scanner(
    *,
    source: ChainLogSource,
    stores: Stores,
    resolver: NameResolver,
    jobs: JobPublisher,
) -> BlockScanner:
    records = NameRecordService(names=stores.names, resolver=resolver, jobs=jobs)
    return BlockScanner(
        name="seaport",
        source=source,
        decoder=log_decoder_factory(contract="seaport"),
        reconciler=OrderEventsReconciler(
            source=source,
            names=stores.names,
            records=records,
            marketplace=stores.marketplace,
            jobs=jobs,
            registrar_address=settings.ens_registrar_address,
        ),
        cursors=stores.cursors,
        raw_events=stores.raw_events,
        settings=_scanner_settings(
            contract_address=settings.seaport_address,
            start_block=settings.seaport_start_block,
        ),
    )


ScannerFactory = Callable[..., BlockScanner]

_SCANNER_REGISTRY: Dict[str, ScannerFactory] = {
    "ens_registrar": _make_registrar_scanner,
    "seaport": _make_seaport_scanner,
}

SCANNER_NAMES: tuple[str, ...] = tuple(_SCANNER_REGISTRY)


def scanner_factory(
    *,
    contract: str,
    source: ChainLogSource,
    stores: Stores,
    resolver: NameResolver,
    jobs: JobPublisher,
) -> BlockScanner:
    """
    Wire a scanner for one monitored contract:
    - the contract's log decoder,
    - its reconciler (registrar or order events) over the shared stores,
    - tuning taken from settings.
    """
    try:
        factory = _SCANNER_REGISTRY[contract]
    except KeyError:
        raise ValueError(f"Unsupported scanner contract: {contract!r}")
    return factory(source=source, stores=stores, resolver=resolver, jobs=jobs)
