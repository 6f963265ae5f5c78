from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ens_indexer.app.domain.ports.out import JobOptions, JobPublisher

logger = logging.getLogger(__name__)

_INSERT_JOB_SQL = text(
    """
    INSERT INTO job_queue (
        name,
        data,
        state,
        retry_limit,
        singleton_key,
        start_after,
        created_at
    )
    VALUES (
        :name,
        CAST(:data AS JSONB),
        'created',
        :retry_limit,
        :singleton_key,
        NOW() + make_interval(secs => :start_after_seconds),
        NOW()
    )
    ON CONFLICT DO NOTHING
    """
)


class PostgresJobPublisher(JobPublisher):
    """
    Best-effort producer for the job_queue table.

    The engine is created on the first publish and shared by every later one.
    publish() schedules the insert and returns; a failed insert is logged and
    dropped. stop() gives in-flight inserts a bounded time to finish.
    """

    def __init__(
        self,
        *,
        database_url: str | None = None,
        engine_factory: Callable[[], AsyncEngine] | None = None,
    ) -> None:
        if database_url is None and engine_factory is None:
            raise ValueError("database_url or engine_factory is required")
        self._database_url = database_url
        self._engine_factory = engine_factory
        self._engine: AsyncEngine | None = None
        self._pending: set[asyncio.Task[None]] = set()
        self._closed = False

    @property
    def in_flight(self) -> int:
        return len(self._pending)

    def publish(
        self,
        name: str,
        payload: dict[str, Any],
        *,
        options: JobOptions | None = None,
    ) -> None:
        if self._closed:
            logger.warning("Job publisher is stopped, dropping %s job", name, extra={"job": name})
            return

        task = asyncio.get_running_loop().create_task(self._send(name, payload, options or JobOptions()))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def stop(self, *, timeout: float = 5.0) -> None:
        self._closed = True

        pending = set(self._pending)
        if pending:
            logger.info("Waiting up to %.1fs for %d queued jobs", timeout, len(pending))
            _, not_done = await asyncio.wait(pending, timeout=timeout)
            if not_done:
                logger.warning("Dropping %d jobs still in flight after %.1fs", len(not_done), timeout)
                for task in not_done:
                    task.cancel()
                await asyncio.gather(*not_done, return_exceptions=True)

        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None

    async def _send(self, name: str, payload: dict[str, Any], options: JobOptions) -> None:
        try:
            await self._insert(name, payload, options)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Failed to publish %s job", name, extra={"job": name, "payload": payload})

    async def _insert(self, name: str, payload: dict[str, Any], options: JobOptions) -> None:
        engine = self._get_engine()
        async with engine.begin() as conn:
            await conn.execute(
                _INSERT_JOB_SQL,
                {
                    "name": name,
                    "data": json.dumps(payload),
                    "retry_limit": options.retry_limit,
                    "singleton_key": options.singleton_key,
                    "start_after_seconds": float(options.start_after_seconds),
                },
            )

    def _get_engine(self) -> AsyncEngine:
        if self._engine is None:
            if self._engine_factory is not None:
                self._engine = self._engine_factory()
            else:
                self._engine = create_async_engine(
                    self._database_url,  # type: ignore[arg-type]
                    pool_pre_ping=True,
                    pool_size=2,
                    max_overflow=0,
                )
        return self._engine
