from __future__ import annotations

import logging

from ens_indexer.app.application.services.name_records import NameRecordService
from ens_indexer.app.domain.events import (
    CollectionOffer,
    ItemCancelled,
    ItemListed,
    ItemMetadataUpdated,
    ItemReceivedBid,
    ItemSold,
    ItemTransferred,
    StreamEvent,
    UnknownStreamMessage,
)
from ens_indexer.app.domain.jobs import CLUB_FLOOR_PRICE_UPDATE
from ens_indexer.app.domain.names import is_eth_or_weth
from ens_indexer.app.domain.ports.out import (
    JobPublisher,
    MarketplaceStore,
    NameStore,
    StreamEventHandler,
)
from ens_indexer.app.domain.records import (
    ListingUpsert,
    OfferUpsert,
    SaleRecord,
    TransactionRecord,
)

logger = logging.getLogger(__name__)

STREAM_SOURCE = "opensea"


class StreamEventsReconciler(StreamEventHandler):
    """
    Applies decoded marketplace stream events.

    Listings and bids never move ownership of an existing row; only sales and
    transfers do. Names that do not look canonical are resolved before any
    write (see NameRecordService).
    """

    def __init__(
        self,
        *,
        names: NameStore,
        records: NameRecordService,
        marketplace: MarketplaceStore,
        jobs: JobPublisher,
        collection_slug: str,
    ) -> None:
        self._names = names
        self._records = records
        self._marketplace = marketplace
        self._jobs = jobs
        self._collection_slug = collection_slug

    async def handle(self, event: StreamEvent) -> None:
        if isinstance(event, ItemListed):
            await self._on_listed(event)
        elif isinstance(event, ItemSold):
            await self._on_sold(event)
        elif isinstance(event, ItemTransferred):
            await self._on_transferred(event)
        elif isinstance(event, ItemCancelled):
            await self._on_cancelled(event)
        elif isinstance(event, ItemReceivedBid):
            await self._on_bid(event)
        elif isinstance(event, CollectionOffer):
            self._on_collection_offer(event)
        elif isinstance(event, ItemMetadataUpdated):
            pass
        elif isinstance(event, UnknownStreamMessage):
            logger.debug("Ignoring stream event %r (%s)", event.event_name, event.reason)

    async def _on_listed(self, event: ItemListed) -> None:
        row = await self._records.write(
            token_id=event.item.token_id,
            name_hint=event.item.name,
            owner=event.seller,
            touch_owner=False,
        )

        superseded = await self._marketplace.cancel_superseded_listings(
            ens_name_id=row.id,
            seller_address=event.seller,
            order_hash=event.order_hash,
        )
        if superseded:
            logger.info(
                "Cancelled %d older listing(s) of %s by %s",
                superseded,
                row.name,
                event.seller,
                extra={"order_hash": event.order_hash, "token_id": row.token_id},
            )

        await self._marketplace.upsert_listing(
            record=ListingUpsert(
                ens_name_id=row.id,
                seller_address=event.seller,
                price_wei=event.price_wei,
                currency_address=event.currency,
                order_hash=event.order_hash,
                source=STREAM_SOURCE,
                expires_at=event.expires_at,
                order_data=event.protocol_data,
            )
        )
        logger.info(
            "Listing of %s at %s wei",
            row.name,
            event.price_wei,
            extra={"order_hash": event.order_hash, "token_id": row.token_id},
        )

    async def _on_sold(self, event: ItemSold) -> None:
        row = await self._records.write(
            token_id=event.item.token_id,
            name_hint=event.item.name,
            owner=event.buyer,
            last_transfer_date=event.sold_at,
        )

        listing = None
        if event.seller:
            listing = await self._marketplace.find_active_listing(
                ens_name_id=row.id,
                seller_address=event.seller,
            )
            if listing is not None:
                await self._marketplace.set_listing_status(listing_id=listing.id, status="sold")

        if not (event.buyer and event.seller):
            logger.warning(
                "Sale of %s without buyer or seller, not recording",
                row.name,
                extra={"order_hash": event.order_hash, "token_id": row.token_id},
            )
            return

        if event.order_hash is None and event.transaction_hash is None:
            logger.warning(
                "Sale of %s has neither order hash nor transaction hash, not recording",
                row.name,
                extra={"token_id": row.token_id},
            )
            return

        if event.order_hash is not None and await self._marketplace.sale_exists(
            order_hash=event.order_hash, ens_name_id=row.id
        ):
            logger.debug("Sale for order %s already recorded", event.order_hash, extra={"order_hash": event.order_hash})
        else:
            created = await self._marketplace.record_sale(
                record=SaleRecord(
                    ens_name_id=row.id,
                    seller_address=event.seller,
                    buyer_address=event.buyer,
                    sale_price_wei=event.price_wei,
                    currency_address=event.currency,
                    source=STREAM_SOURCE,
                    order_hash=event.order_hash,
                    transaction_hash=event.transaction_hash,
                    block_number=event.block_number,
                    sale_date=event.sold_at,
                    listing_id=listing.id if listing is not None else None,
                    platform_fee_wei=event.protocol_fee_wei,
                    creator_fee_wei=event.creator_fee_wei,
                    metadata={"item_metadata": event.item.metadata} if event.item.metadata else None,
                )
            )
            if created and row.clubs and is_eth_or_weth(event.currency):
                self._jobs.publish(
                    CLUB_FLOOR_PRICE_UPDATE,
                    {"ensNameId": row.id, "clubs": list(row.clubs)},
                )

        if event.transaction_hash is not None:
            await self._names.record_transaction(
                record=TransactionRecord(
                    transaction_hash=event.transaction_hash,
                    ens_name_id=row.id,
                    transaction_type="sale",
                    block_number=event.block_number or 0,
                    timestamp=event.sold_at,
                    from_address=event.seller,
                    to_address=event.buyer,
                    price_wei=event.price_wei,
                )
            )

    async def _on_transferred(self, event: ItemTransferred) -> None:
        row = await self._records.write(
            token_id=event.item.token_id,
            name_hint=event.item.name,
            owner=event.to_address,
            last_transfer_date=event.transferred_at,
        )
        if event.transaction_hash is not None:
            await self._names.record_transaction(
                record=TransactionRecord(
                    transaction_hash=event.transaction_hash,
                    ens_name_id=row.id,
                    transaction_type="transfer",
                    block_number=event.block_number or 0,
                    timestamp=event.transferred_at,
                    from_address=event.from_address,
                    to_address=event.to_address,
                )
            )
        logger.info(
            "Transfer of %s to %s",
            row.name,
            event.to_address,
            extra={"token_id": row.token_id, "transaction_hash": event.transaction_hash},
        )

    async def _on_cancelled(self, event: ItemCancelled) -> None:
        cancelled = await self._marketplace.cancel_listing_by_order(
            order_hash=event.order_hash,
            seller_address=event.maker,
        )
        if cancelled:
            logger.info("Listing cancelled for order %s", event.order_hash, extra={"order_hash": event.order_hash})
        else:
            logger.debug("No active listing for order %s", event.order_hash, extra={"order_hash": event.order_hash})

    async def _on_bid(self, event: ItemReceivedBid) -> None:
        row = await self._records.write(
            token_id=event.item.token_id,
            name_hint=event.item.name,
            touch_owner=False,
        )
        await self._marketplace.upsert_offer(
            record=OfferUpsert(
                ens_name_id=row.id,
                buyer_address=event.bidder,
                offer_amount_wei=event.price_wei,
                currency_address=event.currency,
                order_hash=event.order_hash,
                source=STREAM_SOURCE,
                expires_at=event.expires_at,
            )
        )
        logger.info(
            "Offer of %s wei on %s from %s",
            event.price_wei,
            row.name,
            event.bidder,
            extra={"order_hash": event.order_hash, "token_id": row.token_id},
        )

    def _on_collection_offer(self, event: CollectionOffer) -> None:
        if event.collection_slug != self._collection_slug:
            return
        logger.info(
            "Collection offer of %s wei from %s (quantity=%s)",
            event.price_wei,
            event.maker,
            event.quantity,
            extra={"order_hash": event.order_hash},
        )
