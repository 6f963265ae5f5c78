from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict

from sqlalchemy.ext.asyncio import AsyncEngine

from ens_indexer.app.domain.ports.out import (
    CursorStore,
    MarketplaceStore,
    NameMaintenanceStore,
    NameStore,
    RawEventStore,
)
from ens_indexer.app.infrastructure.adapters.cursor_store import SqlAlchemyCursorStore
from ens_indexer.app.infrastructure.adapters.marketplace_store import SqlAlchemyMarketplaceStore
from ens_indexer.app.infrastructure.adapters.names_store import SqlAlchemyNameStore
from ens_indexer.app.infrastructure.adapters.raw_events_store import SqlAlchemyRawEventStore


@dataclass(frozen=True)
class Stores:
    names: NameStore
    maintenance: NameMaintenanceStore
    marketplace: MarketplaceStore
    cursors: CursorStore
    raw_events: RawEventStore


def _make_sqlalchemy_stores(engine: AsyncEngine) -> Stores:
    names = SqlAlchemyNameStore(engine=engine)
    return Stores(
        names=names,
        maintenance=names,
        marketplace=SqlAlchemyMarketplaceStore(engine=engine),
        cursors=SqlAlchemyCursorStore(engine=engine),
        raw_events=SqlAlchemyRawEventStore(engine=engine),
    )


StoresFactory = Callable[[AsyncEngine], Stores]

_STORES_REGISTRY: Dict[str, StoresFactory] = {
    "sqlalchemy": _make_sqlalchemy_stores,
}


def stores_factory(*, backend: str, engine: AsyncEngine) -> Stores:
    """All store adapters for one backend, sharing a single engine."""
    try:
        factory = _STORES_REGISTRY[backend]
    except KeyError:
        raise ValueError(f"Unsupported store backend: {backend!r}")
    return factory(engine)
