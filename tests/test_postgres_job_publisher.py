import asyncio

import pytest

from ens_indexer.app.domain.ports.out import JobOptions
from ens_indexer.app.infrastructure.publishers.postgres_job_publisher import PostgresJobPublisher


class RecordingPublisher(PostgresJobPublisher):
    def __init__(self, *, fail: bool = False, delay: float = 0.0) -> None:
        super().__init__(engine_factory=lambda: None)
        self.inserted: list[tuple[str, dict, JobOptions]] = []
        self.fail = fail
        self.delay = delay

    async def _insert(self, name, payload, options):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ConnectionError("queue database unavailable")
        self.inserted.append((name, payload, options))


class TestPostgresJobPublisher:
    def test_requires_a_database(self):
        with pytest.raises(ValueError):
            PostgresJobPublisher()

    @pytest.mark.asyncio
    async def test_publish_is_fire_and_forget(self):
        publisher = RecordingPublisher()

        publisher.publish("name-resync", {"ensNameId": 1}, options=JobOptions(singleton_key="name-resync:1"))
        assert publisher.in_flight == 1

        await publisher.stop(timeout=1)

        [(name, payload, options)] = publisher.inserted
        assert name == "name-resync"
        assert payload == {"ensNameId": 1}
        assert options.singleton_key == "name-resync:1"
        assert publisher.in_flight == 0

    @pytest.mark.asyncio
    async def test_default_options(self):
        publisher = RecordingPublisher()

        publisher.publish("ownership-changed", {"ensNameId": 1})
        await publisher.stop(timeout=1)

        assert publisher.inserted[0][2] == JobOptions()

    @pytest.mark.asyncio
    async def test_failed_insert_never_reaches_caller(self):
        publisher = RecordingPublisher(fail=True)

        publisher.publish("ownership-changed", {"ensNameId": 1})
        await publisher.stop(timeout=1)

        assert publisher.inserted == []

    @pytest.mark.asyncio
    async def test_stop_drops_slow_jobs_after_timeout(self):
        publisher = RecordingPublisher(delay=10)

        publisher.publish("ownership-changed", {"ensNameId": 1})
        await publisher.stop(timeout=0.01)

        assert publisher.inserted == []
        assert publisher.in_flight == 0

    @pytest.mark.asyncio
    async def test_publish_after_stop_is_dropped(self):
        publisher = RecordingPublisher()
        await publisher.stop(timeout=1)

        publisher.publish("ownership-changed", {"ensNameId": 1})

        assert publisher.in_flight == 0
