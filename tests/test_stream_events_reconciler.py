from datetime import datetime, timezone

import pytest

from ens_indexer.app.application.services.name_records import NameRecordService
from ens_indexer.app.application.services.stream_events_reconciler import StreamEventsReconciler
from ens_indexer.app.domain.events import (
    CollectionOffer,
    ItemCancelled,
    ItemListed,
    ItemMetadataUpdated,
    ItemReceivedBid,
    ItemSold,
    ItemTransferred,
    StreamItem,
    UnknownStreamMessage,
)
from ens_indexer.app.domain.jobs import CLUB_FLOOR_PRICE_UPDATE
from ens_indexer.app.domain.names import ZERO_ADDRESS

SELLER = "0x" + "a1" * 20
BUYER = "0x" + "b2" * 20
BIDDER = "0x" + "c3" * 20
SOLD_AT = datetime(2024, 1, 2, tzinfo=timezone.utc)


def item(token_id: str = "5", name: str | None = "alice.eth") -> StreamItem:
    return StreamItem(nft_id=f"ethereum/0xreg/{token_id}", token_id=token_id, name=name)


def listed(order_hash: str | None, *, seller: str = SELLER, price: int = 10**18) -> ItemListed:
    return ItemListed(
        item=item(),
        order_hash=order_hash,
        seller=seller,
        price_wei=price,
        currency=ZERO_ADDRESS,
        expires_at=None,
        listed_at=None,
    )


def sold(**overrides) -> ItemSold:
    fields = dict(
        item=item(),
        order_hash="0xorder",
        buyer=BUYER,
        seller=SELLER,
        price_wei=10**18,
        currency=ZERO_ADDRESS,
        transaction_hash="0xtx",
        block_number=19_000_000,
        protocol_fee_wei=25,
        creator_fee_wei=None,
        sold_at=SOLD_AT,
    )
    fields.update(overrides)
    return ItemSold(**fields)


@pytest.fixture
def reconciler(name_store, resolver, marketplace, jobs) -> StreamEventsReconciler:
    return StreamEventsReconciler(
        names=name_store,
        records=NameRecordService(names=name_store, resolver=resolver, jobs=jobs),
        marketplace=marketplace,
        jobs=jobs,
        collection_slug="ens",
    )


def active(marketplace) -> list[dict]:
    return [r for r in marketplace.listings.values() if r["status"] == "active"]


class TestListings:
    @pytest.mark.asyncio
    async def test_relisting_leaves_one_active_listing(self, reconciler, marketplace):
        await reconciler.handle(listed("0xfirst"))
        await reconciler.handle(listed("0xsecond", price=2 * 10**18))

        [current] = active(marketplace)
        assert current["order_hash"] == "0xsecond"
        assert len(marketplace.listings) == 2

    @pytest.mark.asyncio
    async def test_same_order_is_updated_in_place(self, reconciler, marketplace):
        await reconciler.handle(listed("0xfirst"))
        await reconciler.handle(listed("0xfirst", price=3))

        [current] = marketplace.listings.values()
        assert current["status"] == "active"
        assert current["price_wei"] == 3

    @pytest.mark.asyncio
    async def test_other_sellers_listings_survive(self, reconciler, marketplace):
        await reconciler.handle(listed("0xfirst"))
        await reconciler.handle(listed("0xother", seller=BIDDER))

        assert len(active(marketplace)) == 2

    @pytest.mark.asyncio
    async def test_listing_does_not_move_owner(self, reconciler, name_store):
        name_store.add(token_id="5", name="alice.eth", owner=BUYER)

        await reconciler.handle(listed("0xfirst"))

        assert name_store.row("5")["owner_address"] == BUYER

    @pytest.mark.asyncio
    async def test_listing_creates_missing_name_with_seller_as_owner(self, reconciler, name_store):
        await reconciler.handle(listed("0xfirst"))

        assert name_store.row("5")["owner_address"] == SELLER

    @pytest.mark.asyncio
    async def test_cancel_matches_order_and_maker(self, reconciler, marketplace):
        await reconciler.handle(listed("0xfirst"))

        await reconciler.handle(ItemCancelled(order_hash="0xfirst", maker=BIDDER))
        assert len(active(marketplace)) == 1

        await reconciler.handle(ItemCancelled(order_hash="0xfirst", maker=SELLER))
        assert active(marketplace) == []


class TestSales:
    @pytest.mark.asyncio
    async def test_sale_closes_listing_and_records_everything(self, reconciler, name_store, marketplace):
        await reconciler.handle(listed("0xorder"))

        await reconciler.handle(sold())

        assert active(marketplace) == []
        [sale] = marketplace.sales
        assert sale.source == "opensea"
        assert sale.listing_id is not None
        assert sale.platform_fee_wei == 25
        assert name_store.row("5")["owner_address"] == BUYER
        assert name_store.row("5")["last_transfer_date"] == SOLD_AT
        assert name_store.transactions["0xtx"].transaction_type == "sale"

    @pytest.mark.asyncio
    async def test_duplicate_sale_is_recorded_once(self, reconciler, marketplace):
        await reconciler.handle(sold())
        await reconciler.handle(sold())

        assert len(marketplace.sales) == 1

    @pytest.mark.asyncio
    async def test_sale_without_identifiers_is_skipped(self, reconciler, name_store, marketplace):
        await reconciler.handle(sold(order_hash=None, transaction_hash=None))

        assert marketplace.sales == []
        assert name_store.row("5")["owner_address"] == BUYER

    @pytest.mark.asyncio
    async def test_sale_without_seller_is_skipped(self, reconciler, marketplace):
        await reconciler.handle(sold(seller=None))

        assert marketplace.sales == []

    @pytest.mark.asyncio
    async def test_sale_by_tx_hash_only(self, reconciler, marketplace):
        await reconciler.handle(sold(order_hash=None))

        [sale] = marketplace.sales
        assert sale.transaction_hash == "0xtx"

    @pytest.mark.asyncio
    async def test_club_sale_publishes_floor_update(self, reconciler, name_store, jobs):
        name_store.add(token_id="5", name="123.eth", clubs=("999-club",))

        await reconciler.handle(sold())

        assert CLUB_FLOOR_PRICE_UPDATE in jobs.names()


class TestOtherEvents:
    @pytest.mark.asyncio
    async def test_bid_records_offer_without_owner_change(self, reconciler, name_store, marketplace):
        name_store.add(token_id="5", name="alice.eth", owner=SELLER)

        await reconciler.handle(
            ItemReceivedBid(
                item=item(),
                order_hash="0xbid",
                bidder=BIDDER,
                price_wei=5,
                currency=ZERO_ADDRESS,
                expires_at=None,
                created_at=None,
            )
        )

        [offer] = marketplace.offers.values()
        assert offer["buyer_address"] == BIDDER
        assert offer["status"] == "pending"
        assert name_store.row("5")["owner_address"] == SELLER

    @pytest.mark.asyncio
    async def test_transfer_moves_owner(self, reconciler, name_store):
        name_store.add(token_id="5", name="alice.eth", owner=SELLER)

        await reconciler.handle(
            ItemTransferred(
                item=item(),
                from_address=SELLER,
                to_address=BUYER,
                transaction_hash="0xtx",
                block_number=None,
                transferred_at=SOLD_AT,
            )
        )

        assert name_store.row("5")["owner_address"] == BUYER
        assert name_store.transactions["0xtx"].block_number == 0

    @pytest.mark.asyncio
    async def test_informational_events_write_nothing(self, reconciler, name_store, marketplace):
        await reconciler.handle(CollectionOffer(collection_slug="ens", order_hash=None, maker=BIDDER, price_wei=1))
        await reconciler.handle(ItemMetadataUpdated(item=item()))
        await reconciler.handle(UnknownStreamMessage(event_name="new_thing", payload={}))

        assert name_store.rows == {}
        assert marketplace.listings == {}
