import pytest

from ens_indexer.app.application.services.name_records import NameRecordService
from ens_indexer.app.domain.errors import NameConflictError
from ens_indexer.app.domain.jobs import NAME_RESYNC
from ens_indexer.app.domain.names import ZERO_ADDRESS, ResolvedName

ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20


@pytest.fixture
def service(name_store, resolver, jobs) -> NameRecordService:
    return NameRecordService(names=name_store, resolver=resolver, jobs=jobs)


class TestNameRecordService:
    @pytest.mark.asyncio
    async def test_unresolved_token_gets_placeholder_and_resync_job(self, service, name_store, jobs):
        row = await service.write(token_id="77", owner=ALICE, owner_position=(10, 0))

        assert row.name == "token-77"
        assert name_store.row("77")["owner_address"] == ALICE
        assert jobs.names() == [NAME_RESYNC]
        _, payload, options = jobs.published[0]
        assert payload == {"ensNameId": row.id, "tokenId": "77"}
        assert options.singleton_key == "name-resync:77"

    @pytest.mark.asyncio
    async def test_resolved_name_is_stored(self, service, resolver, jobs):
        resolver.names["5"] = ResolvedName(name="alice.eth", token_id="5")

        row = await service.write(token_id="5", owner=ALICE)

        assert row.name == "alice.eth"
        assert jobs.published == []

    @pytest.mark.asyncio
    async def test_existing_named_row_skips_resolver(self, service, name_store, resolver):
        name_store.add(token_id="5", name="alice.eth")

        row = await service.write(token_id="5", owner=BOB)

        assert row.name == "alice.eth"
        assert resolver.calls == []
        assert name_store.row("5")["owner_address"] == BOB

    @pytest.mark.asyncio
    async def test_placeholder_row_is_filled_in_place(self, service, name_store, resolver, jobs):
        name_store.add(token_id="9", name="token-9")
        resolver.names["9"] = ResolvedName(name="nine.eth", token_id="9")

        row = await service.write(token_id="9", owner=ALICE)

        assert row.name == "nine.eth"
        assert len(name_store.rows) == 1
        assert jobs.published == []

    @pytest.mark.asyncio
    async def test_canonical_hint_avoids_lookup(self, service, resolver):
        row = await service.write(token_id="4", name_hint="hint.eth", owner=ALICE)

        assert row.name == "hint.eth"
        assert resolver.calls == []

    @pytest.mark.asyncio
    async def test_non_canonical_hint_is_resolved(self, service, resolver):
        resolver.names["4"] = ResolvedName(name="real.eth", token_id="4")

        row = await service.write(token_id="4", name_hint="#1234", owner=ALICE)

        assert row.name == "real.eth"
        assert resolver.calls == ["4"]

    @pytest.mark.asyncio
    async def test_wrapped_name_is_stored_under_wrapper_id(self, service, name_store, resolver):
        resolver.names["1"] = ResolvedName(name="wrapped.eth", token_id="999")

        row = await service.write(token_id="1", owner=ALICE)

        assert row.token_id == "999"
        assert name_store.row("1") is None

    @pytest.mark.asyncio
    async def test_name_conflict_replays_onto_existing_row(self, service, name_store, resolver):
        existing = name_store.add(token_id="999", name="wrapped.eth", owner=ALICE)
        # expired wrap: the resolver now hands back the unwrapped id for the same name
        resolver.names["1"] = ResolvedName(name="wrapped.eth", token_id="1")

        row = await service.write(token_id="1", owner=BOB, owner_position=(20, 1))

        assert row.id == existing.id
        assert len(name_store.rows) == 1
        assert name_store.row("999")["owner_address"] == BOB

    @pytest.mark.asyncio
    async def test_listing_style_write_does_not_move_owner(self, service, name_store):
        name_store.add(token_id="5", name="alice.eth", owner=ALICE)

        await service.write(token_id="5", owner=BOB, touch_owner=False)

        assert name_store.row("5")["owner_address"] == ALICE

    @pytest.mark.asyncio
    async def test_listing_style_write_creates_row_with_initial_owner(self, service, name_store):
        await service.write(token_id="6", name_hint="six.eth", touch_owner=False)

        assert name_store.row("6")["owner_address"] == ZERO_ADDRESS

    @pytest.mark.asyncio
    async def test_older_owner_does_not_override_newer(self, service, name_store):
        name_store.add(token_id="5", name="alice.eth")

        await service.write(token_id="5", owner=BOB, owner_position=(200, 3))
        await service.write(token_id="5", owner=ALICE, owner_position=(100, 9))

        assert name_store.row("5")["owner_address"] == BOB

    @pytest.mark.asyncio
    async def test_conflict_from_concurrent_insert_is_recovered(self, service, name_store, resolver):
        resolver.names["1"] = ResolvedName(name="race.eth", token_id="1")
        upsert = name_store.upsert_name
        attempts = []

        async def upsert_losing_first_race(*, record):
            attempts.append(record.token_id)
            if len(attempts) == 1:
                # another writer commits the same name under the wrapper id first
                name_store.add(token_id="999", name="race.eth", owner=ALICE)
                raise NameConflictError(record.name, record.token_id)
            return await upsert(record=record)

        name_store.upsert_name = upsert_losing_first_race

        row = await service.write(token_id="1", owner=BOB, owner_position=(30, 2))

        assert attempts == ["1", "999"]
        assert row.token_id == "999"
        assert len(name_store.rows) == 1
        assert name_store.row("999")["owner_address"] == BOB
