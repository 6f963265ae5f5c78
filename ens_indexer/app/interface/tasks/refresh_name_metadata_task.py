from __future__ import annotations

from ens_indexer.app.application.services.refresh_name_metadata import refresh_name_metadata
from ens_indexer.app.infrastructure.db.engine import create_app_async_engine
from ens_indexer.app.infrastructure.factories.services_factory import name_resolver_factory
from ens_indexer.app.infrastructure.factories.stores_factory import stores_factory


async def refresh_name_metadata_task(
    *,
    limit: int | None = None,
    backend: str = "sqlalchemy",
) -> None:
    """
    Task: re-resolve stored names and refresh expiry, registration date,
    owner and text records.
    """
    engine = create_app_async_engine()
    resolver = name_resolver_factory()
    try:
        stores = stores_factory(backend=backend, engine=engine)
        await refresh_name_metadata(
            names=stores.maintenance,
            resolver=resolver,
            limit=limit,
        )
    finally:
        await resolver.aclose()
        await engine.dispose()
