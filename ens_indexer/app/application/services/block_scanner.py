from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from ens_indexer.app.domain.events import ChainEvent, UnknownLog, event_data
from ens_indexer.app.domain.ports.out import (
    ChainEventReconciler,
    ChainLogSource,
    CursorStore,
    LogDecoder,
    RawEventStore,
)
from ens_indexer.app.domain.records import RawEventRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScannerSettings:
    contract_address: str
    confirmations: int = 12
    batch_size: int = 100
    concurrency: int = 5
    start_block: int | None = None
    idle_sleep_seconds: float = 12.0
    error_backoff_seconds: float = 5.0

    def validate(self) -> None:
        if self.confirmations < 0:
            raise ValueError("confirmations must be non-negative")
        if self.batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if self.concurrency <= 0:
            raise ValueError("concurrency must be positive")
        if self.start_block is not None and self.start_block < 0:
            raise ValueError("start_block must be non-negative")


@dataclass(frozen=True)
class RangeResult:
    from_block: int
    to_block: int
    logs: int
    decoded: int
    failed: int


class BlockScanner:
    """
    Confirmation-lagged log scanner for a single contract.

    Per iteration:
    - target = head - confirmations; nothing to do -> idle sleep,
    - fetch logs for [cursor + 1, min(cursor + batch_size, target)],
    - decode every log (unknown ones are skipped), apply the known ones on a
      bounded worker pool, wait for the pool to drain,
    - only then persist the cursor.

    An exception while fetching the range or saving the cursor retries the same
    range after a backoff. An exception while applying one event is logged
    and does not stop the rest of the range.
    """

    def __init__(
        self,
        *,
        name: str,
        source: ChainLogSource,
        decoder: LogDecoder,
        reconciler: ChainEventReconciler,
        cursors: CursorStore,
        raw_events: RawEventStore,
        settings: ScannerSettings,
    ) -> None:
        settings.validate()
        self._name = name
        self._source = source
        self._decoder = decoder
        self._reconciler = reconciler
        self._cursors = cursors
        self._raw_events = raw_events
        self._settings = settings
        self._contract = settings.contract_address.lower()
        self._cursor: int | None = None
        self._cursor_loaded = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def cursor(self) -> int | None:
        return self._cursor

    async def run(self, stop: asyncio.Event) -> None:
        logger.info(
            "%s scanner started for %s (confirmations=%d, batch=%d, workers=%d)",
            self._name,
            self._contract,
            self._settings.confirmations,
            self._settings.batch_size,
            self._settings.concurrency,
        )
        while not stop.is_set():
            try:
                progressed = await self.step()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(
                    "%s scanner failed, retrying in %.0fs",
                    self._name,
                    self._settings.error_backoff_seconds,
                    extra={"contract": self._contract, "cursor": self._cursor},
                )
                await _sleep_or_stop(stop, self._settings.error_backoff_seconds)
                continue

            if not progressed:
                await _sleep_or_stop(stop, self._settings.idle_sleep_seconds)

        logger.info("%s scanner stopped at block %s", self._name, self._cursor)

    async def step(self) -> bool:
        """Process at most one range. Returns False when caught up."""
        if not self._cursor_loaded:
            self._cursor = await self._cursors.get_cursor(contract_address=self._contract)
            self._cursor_loaded = True

        head = await self._source.get_block_number()
        target = head - self._settings.confirmations
        from_block = self._next_block()
        if from_block > target:
            logger.debug("%s scanner caught up (next=%d, target=%d)", self._name, from_block, target)
            return False

        to_block = min(from_block + self._settings.batch_size - 1, target)
        await self.process_range(from_block=from_block, to_block=to_block)

        block_timestamp = await self._source.get_block_timestamp(block_number=to_block)
        await self._cursors.save_cursor(
            contract_address=self._contract,
            block_number=to_block,
            block_timestamp=block_timestamp,
        )
        self._cursor = to_block
        return True

    async def process_range(self, *, from_block: int, to_block: int) -> RangeResult:
        logs = await self._source.get_logs(
            address=self._contract,
            from_block=from_block,
            to_block=to_block,
        )

        events: list[ChainEvent] = []
        for log in logs:
            event = self._decoder.decode_log(log)
            if isinstance(event, UnknownLog):
                if event.reason != "unrecognized":
                    logger.warning(
                        "Skipping undecodable log: %s",
                        event.reason,
                        extra={
                            "transaction_hash": event.ctx.transaction_hash,
                            "block_number": event.ctx.block_number,
                        },
                    )
                continue
            events.append(event)

        semaphore = asyncio.Semaphore(self._settings.concurrency)

        async def worker(event: ChainEvent) -> bool:
            async with semaphore:
                return await self._apply(event)

        outcomes = await asyncio.gather(*(worker(e) for e in events))
        failed = sum(1 for ok in outcomes if not ok)

        if events or failed:
            logger.info(
                "%s scanner processed blocks %d-%d: %d logs, %d events, %d failed",
                self._name,
                from_block,
                to_block,
                len(logs),
                len(events),
                failed,
            )
        return RangeResult(
            from_block=from_block,
            to_block=to_block,
            logs=len(logs),
            decoded=len(events),
            failed=failed,
        )

    async def _apply(self, event: ChainEvent) -> bool:
        ctx = event.ctx
        try:
            await self._raw_events.record_raw_event(
                record=RawEventRecord(
                    contract_address=ctx.contract_address,
                    event_name=event.event_name,
                    block_number=ctx.block_number,
                    transaction_hash=ctx.transaction_hash,
                    log_index=ctx.log_index,
                    event_data=event_data(event),
                )
            )
            await self._reconciler.handle(event)
            return True
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception(
                "Failed to process %s event",
                event.event_name,
                extra={
                    "transaction_hash": ctx.transaction_hash,
                    "block_number": ctx.block_number,
                    "log_index": ctx.log_index,
                    "error_code": getattr(getattr(exc, "orig", None), "sqlstate", None),
                },
            )
            return False

    def _next_block(self) -> int:
        if self._cursor is not None:
            return self._cursor + 1
        return self._settings.start_block or 0


async def _sleep_or_stop(stop: asyncio.Event, seconds: float) -> None:
    try:
        await asyncio.wait_for(stop.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        pass
