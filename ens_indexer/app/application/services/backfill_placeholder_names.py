from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from ens_indexer.app.domain.ports.out import NameMaintenanceStore, NameResolver

logger = logging.getLogger(__name__)


@dataclass
class BackfillStats:
    scanned: int = 0
    renamed: int = 0
    deleted_duplicates: int = 0
    unresolved: int = 0
    skipped: int = 0


async def backfill_placeholder_names(
    *,
    names: NameMaintenanceStore,
    resolver: NameResolver,
    batch_size: int = 100,
    limit: int | None = None,
    delay_seconds: float = 1.0,
) -> BackfillStats:
    """
    Resolve `token-<id>` rows, newest first.

    Each page is resolved with one batch query. A resolved name that already
    belongs to another row makes the placeholder a duplicate, which is deleted
    (its transaction history is not carried over). Wrapped names are moved to
    the wrapper's token id as they are renamed.
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    if limit is not None and limit <= 0:
        raise ValueError("limit must be positive")

    stats = BackfillStats()
    before_id: int | None = None

    while limit is None or stats.scanned < limit:
        page_size = batch_size if limit is None else min(batch_size, limit - stats.scanned)
        rows = await names.list_placeholder_names(before_id=before_id, limit=page_size)
        if not rows:
            break

        stats.scanned += len(rows)
        before_id = rows[-1].id

        resolved = await resolver.resolve_batch(token_ids=[row.token_id for row in rows])
        for row in rows:
            new_name = resolved.get(row.token_id)
            if not new_name:
                stats.unresolved += 1
                continue

            # served from the cache the batch query just filled
            full = await resolver.resolve_one(token_id=row.token_id)
            new_token_id = full.token_id if full is not None and full.token_id != row.token_id else None

            outcome = await names.rename_placeholder(name_id=row.id, new_name=new_name, new_token_id=new_token_id)
            if outcome == "renamed":
                stats.renamed += 1
            elif outcome == "deleted_duplicate":
                stats.deleted_duplicates += 1
            else:
                stats.skipped += 1

        logger.info(
            "Placeholder backfill: scanned=%d renamed=%d duplicates=%d unresolved=%d",
            stats.scanned,
            stats.renamed,
            stats.deleted_duplicates,
            stats.unresolved,
        )

        if len(rows) < page_size:
            break
        if delay_seconds > 0:
            await asyncio.sleep(delay_seconds)

    return stats
