from __future__ import annotations

from collections.abc import Awaitable, Callable

from .backfill_placeholder_names_task import backfill_placeholder_names_task
from .refresh_name_metadata_task import refresh_name_metadata_task
from .reindex_block_range_task import reindex_block_range_task
from .run_indexer_task import run_indexer_task

TaskFn = Callable[..., Awaitable[None]]

TASKS: dict[str, TaskFn] = {
    "reindex_block_range_task": reindex_block_range_task,
    "backfill_placeholder_names_task": backfill_placeholder_names_task,
    "refresh_name_metadata_task": refresh_name_metadata_task,
}

__all__ = ["TASKS", "run_indexer_task"]
