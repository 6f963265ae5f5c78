from __future__ import annotations

import logging

from ens_indexer.app.application.services.name_records import NameRecordService
from ens_indexer.app.domain.events import (
    ChainEvent,
    OfferItem,
    OrderCancelledLog,
    OrderFulfilledLog,
)
from ens_indexer.app.domain.jobs import CLUB_FLOOR_PRICE_UPDATE
from ens_indexer.app.domain.names import ZERO_ADDRESS, is_eth_or_weth
from ens_indexer.app.domain.ports.out import (
    ChainEventReconciler,
    ChainLogSource,
    JobPublisher,
    MarketplaceStore,
    NameStore,
)
from ens_indexer.app.domain.records import SaleRecord, TransactionRecord

logger = logging.getLogger(__name__)


class OrderEventsReconciler(ChainEventReconciler):
    """
    Applies Seaport order events that involve registrar tokens.

    Orders whose offer holds no registrar token are ignored. A fulfilled
    order marks its listing sold, records one sale per name, a sale
    transaction, and moves ownership to the recipient.
    """

    def __init__(
        self,
        *,
        source: ChainLogSource,
        names: NameStore,
        records: NameRecordService,
        marketplace: MarketplaceStore,
        jobs: JobPublisher,
        registrar_address: str,
    ) -> None:
        self._source = source
        self._names = names
        self._records = records
        self._marketplace = marketplace
        self._jobs = jobs
        self._registrar = registrar_address.lower()

    async def handle(self, event: ChainEvent) -> None:
        if isinstance(event, OrderFulfilledLog):
            await self._on_fulfilled(event)
        elif isinstance(event, OrderCancelledLog):
            await self._on_cancelled(event)
        else:
            logger.debug("Ignoring %s event on order contract", event.event_name)

    def _name_items(self, event: OrderFulfilledLog) -> list[OfferItem]:
        return [item for item in event.offer if item.token.lower() == self._registrar]

    async def _on_fulfilled(self, event: OrderFulfilledLog) -> None:
        items = self._name_items(event)
        if not items:
            return

        ctx = event.ctx
        block_time = await self._source.get_block_timestamp(block_number=ctx.block_number)

        listing = await self._marketplace.find_listing_by_order_hash(order_hash=event.order_hash)
        if listing is not None and listing.status == "active":
            await self._marketplace.set_listing_status(listing_id=listing.id, status="sold")

        if event.consideration:
            price_wei = event.consideration[0].amount
            currency = event.consideration[0].token.lower()
        else:
            price_wei, currency = 0, ZERO_ADDRESS

        for item in items:
            row = await self._records.write(
                token_id=str(item.identifier),
                owner=event.recipient,
                owner_position=(ctx.block_number, ctx.log_index),
                last_transfer_date=block_time,
            )

            if await self._marketplace.sale_exists(order_hash=event.order_hash, ens_name_id=row.id):
                logger.debug(
                    "Sale for order %s already recorded",
                    event.order_hash,
                    extra={"order_hash": event.order_hash, "token_id": row.token_id},
                )
            else:
                created = await self._marketplace.record_sale(
                    record=SaleRecord(
                        ens_name_id=row.id,
                        seller_address=event.offerer,
                        buyer_address=event.recipient,
                        sale_price_wei=price_wei,
                        currency_address=currency,
                        source="blockchain",
                        order_hash=event.order_hash,
                        transaction_hash=ctx.transaction_hash,
                        block_number=ctx.block_number,
                        sale_date=block_time,
                        listing_id=listing.id if listing is not None else None,
                    )
                )
                if created:
                    logger.info(
                        "Sale of %s for %s wei",
                        row.name,
                        price_wei,
                        extra={"order_hash": event.order_hash, "transaction_hash": ctx.transaction_hash},
                    )
                    if row.clubs and is_eth_or_weth(currency):
                        self._jobs.publish(
                            CLUB_FLOOR_PRICE_UPDATE,
                            {"ensNameId": row.id, "clubs": list(row.clubs)},
                        )

            await self._names.record_transaction(
                record=TransactionRecord(
                    transaction_hash=ctx.transaction_hash,
                    ens_name_id=row.id,
                    transaction_type="sale",
                    block_number=ctx.block_number,
                    timestamp=block_time,
                    from_address=event.offerer,
                    to_address=event.recipient,
                    price_wei=price_wei,
                )
            )

    async def _on_cancelled(self, event: OrderCancelledLog) -> None:
        cancelled = await self._marketplace.cancel_listing_by_order(order_hash=event.order_hash)
        if cancelled:
            logger.info(
                "Cancelled %d listing(s) for order %s",
                cancelled,
                event.order_hash,
                extra={"order_hash": event.order_hash},
            )
