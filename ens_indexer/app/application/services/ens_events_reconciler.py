from __future__ import annotations

import logging
from datetime import datetime, timezone

from ens_indexer.app.application.services.name_records import NameRecordService
from ens_indexer.app.domain.events import (
    ChainEvent,
    NameRegisteredLog,
    NameRenewedLog,
    TransferLog,
)
from ens_indexer.app.domain.jobs import OWNERSHIP_CHANGED
from ens_indexer.app.domain.names import ZERO_ADDRESS
from ens_indexer.app.domain.ports.out import (
    ChainEventReconciler,
    ChainLogSource,
    JobPublisher,
    NameResolver,
    NameStore,
)
from ens_indexer.app.domain.records import ActivityRecord, TransactionRecord

logger = logging.getLogger(__name__)


class EnsEventsReconciler(ChainEventReconciler):
    """
    Applies registrar events (Transfer, NameRegistered, NameRenewed).

    Timestamps written for an event are the block's timestamp, so replaying a
    range reproduces the same rows.
    """

    def __init__(
        self,
        *,
        source: ChainLogSource,
        names: NameStore,
        records: NameRecordService,
        resolver: NameResolver,
        jobs: JobPublisher,
    ) -> None:
        self._source = source
        self._names = names
        self._records = records
        self._resolver = resolver
        self._jobs = jobs

    async def handle(self, event: ChainEvent) -> None:
        if isinstance(event, TransferLog):
            await self._on_transfer(event)
        elif isinstance(event, NameRegisteredLog):
            await self._on_registered(event)
        elif isinstance(event, NameRenewedLog):
            await self._on_renewed(event)
        else:
            logger.debug("Ignoring %s event on registrar", event.event_name)

    async def _on_transfer(self, event: TransferLog) -> None:
        ctx = event.ctx
        block_time = await self._source.get_block_timestamp(block_number=ctx.block_number)

        row = await self._records.write(
            token_id=str(event.token_id),
            owner=event.to_address,
            owner_position=(ctx.block_number, ctx.log_index),
            last_transfer_date=block_time,
        )

        created = await self._names.record_transaction(
            record=TransactionRecord(
                transaction_hash=ctx.transaction_hash,
                ens_name_id=row.id,
                transaction_type="transfer",
                block_number=ctx.block_number,
                timestamp=block_time,
                from_address=event.from_address,
                to_address=event.to_address,
            )
        )
        logger.debug(
            "Transfer of %s to %s%s",
            row.name,
            event.to_address,
            "" if created else " (replay)",
            extra={"token_id": row.token_id, "transaction_hash": ctx.transaction_hash},
        )

        self._jobs.publish(
            OWNERSHIP_CHANGED,
            {
                "ensNameId": row.id,
                "newOwner": event.to_address,
                "blockNumber": ctx.block_number,
                "transactionHash": ctx.transaction_hash,
            },
        )

    async def _on_registered(self, event: NameRegisteredLog) -> None:
        ctx = event.ctx
        block_time = await self._source.get_block_timestamp(block_number=ctx.block_number)

        row = await self._records.write(
            token_id=str(event.token_id),
            owner=event.owner,
            owner_position=(ctx.block_number, ctx.log_index),
            registrant=event.owner,
            expiry_date=_from_epoch(event.expires),
            registration_date=block_time,
        )

        await self._names.record_activity(
            record=ActivityRecord(
                ens_name_id=row.id,
                event_type="mint",
                actor_address=event.owner,
                platform="blockchain",
                created_at=block_time,
                transaction_hash=ctx.transaction_hash,
                block_number=ctx.block_number,
            )
        )
        await self._names.record_transaction(
            record=TransactionRecord(
                transaction_hash=ctx.transaction_hash,
                ens_name_id=row.id,
                transaction_type="registration",
                block_number=ctx.block_number,
                timestamp=block_time,
                from_address=ZERO_ADDRESS,
                to_address=event.owner,
            )
        )
        logger.info(
            "Registered %s to %s",
            row.name,
            event.owner,
            extra={"token_id": row.token_id, "block_number": ctx.block_number},
        )

    async def _on_renewed(self, event: NameRenewedLog) -> None:
        ctx = event.ctx
        expiry = _from_epoch(event.expires)
        token_id = str(event.token_id)

        row = await self._names.update_expiry(token_id=token_id, expiry_date=expiry)
        if row is None:
            # wrapped names are stored under the wrapper's id
            resolved = await self._resolver.resolve_one(token_id=token_id)
            if resolved is not None and resolved.token_id != token_id:
                row = await self._names.update_expiry(token_id=resolved.token_id, expiry_date=expiry)

        if row is None:
            logger.warning(
                "Renewal for unknown token %s, skipping",
                token_id,
                extra={"token_id": token_id, "transaction_hash": ctx.transaction_hash},
            )
            return

        block_time = await self._source.get_block_timestamp(block_number=ctx.block_number)
        await self._names.record_transaction(
            record=TransactionRecord(
                transaction_hash=ctx.transaction_hash,
                ens_name_id=row.id,
                transaction_type="renewal",
                block_number=ctx.block_number,
                timestamp=block_time,
                from_address=row.owner_address,
                to_address=row.owner_address,
            )
        )


def _from_epoch(value: int) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)
