from __future__ import annotations

import logging
from dataclasses import dataclass

from ens_indexer.app.domain.ports.out import NameMaintenanceStore, NameResolver

logger = logging.getLogger(__name__)


@dataclass
class RefreshStats:
    scanned: int = 0
    updated: int = 0
    unresolved: int = 0


async def refresh_name_metadata(
    *,
    names: NameMaintenanceStore,
    resolver: NameResolver,
    limit: int | None = None,
    page_size: int = 100,
) -> RefreshStats:
    """
    Re-resolve stored names and write back expiry, registration date, owner
    and text records.

    The resolver cache is cleared first so that every lookup hits the graph.
    Expiry only moves forward, and an owner already set from a chain event is
    left alone.
    """
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    if limit is not None and limit <= 0:
        raise ValueError("limit must be positive")

    resolver.clear_cache()
    stats = RefreshStats()
    after_id: int | None = None

    while limit is None or stats.scanned < limit:
        size = page_size if limit is None else min(page_size, limit - stats.scanned)
        rows = await names.list_names_for_refresh(after_id=after_id, limit=size)
        if not rows:
            break

        for row in rows:
            stats.scanned += 1
            after_id = row.id
            resolved = await resolver.resolve_one(token_id=row.token_id)
            if resolved is None:
                stats.unresolved += 1
                continue
            await names.apply_resolved_metadata(name_id=row.id, resolved=resolved)
            stats.updated += 1

        if len(rows) < size:
            break

    logger.info(
        "Metadata refresh done: scanned=%d updated=%d unresolved=%d",
        stats.scanned,
        stats.updated,
        stats.unresolved,
    )
    return stats
