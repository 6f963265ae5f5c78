import asyncio
import json

import pytest

from ens_indexer.app.domain.events import ItemListed, UnknownStreamMessage
from ens_indexer.app.infrastructure.streams.opensea_stream_client import OpenSeaStreamClient, StreamState

STREAM_URL = "wss://stream.test/socket/websocket"


class FakeWebSocket:
    def __init__(self, frames: list) -> None:
        self.frames = frames
        self.sent: list[dict] = []
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.closed = True
        return False

    async def send(self, message: str) -> None:
        self.sent.append(json.loads(message))

    async def close(self) -> None:
        self.closed = True

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for frame in self.frames:
            await asyncio.sleep(0)
            yield frame


class RecordingHandler:
    def __init__(self, stop: asyncio.Event | None = None, fail_on: str | None = None) -> None:
        self.events: list = []
        self.stop = stop
        self.fail_on = fail_on

    async def handle(self, event) -> None:
        self.events.append(event)
        if self.fail_on and getattr(event, "event_name", None) == self.fail_on:
            raise RuntimeError("handler blew up")


def _listing_frame() -> str:
    return json.dumps(
        {
            "topic": "collection:ens",
            "event": "item_listed",
            "payload": {
                "event_type": "item_listed",
                "payload": {
                    "item": {"nft_id": "ethereum/0xreg/5", "metadata": {"name": "alice.eth"}},
                    "maker": {"address": "0x" + "a1" * 20},
                    "base_price": "1000",
                    "order_hash": "0xorder",
                },
            },
        }
    )


def _client(connect, handler, **kwargs) -> OpenSeaStreamClient:
    return OpenSeaStreamClient(
        url=STREAM_URL,
        api_key="key",
        collection_slug="ens",
        handler=handler,
        connect=connect,
        reconnect_delay=0,
        heartbeat_interval=3600,
        **kwargs,
    )


class TestOpenSeaStreamClient:
    @pytest.mark.asyncio
    async def test_joins_dispatches_and_subscribes(self):
        stop = asyncio.Event()
        ws = FakeWebSocket(
            [
                json.dumps({"topic": "collection:ens", "event": "phx_reply", "payload": {"status": "ok"}, "ref": "1"}),
                "not json",
                json.dumps(["unexpected"]),
                _listing_frame(),
                json.dumps({"topic": "collection:ens", "event": "brand_new_event", "payload": {}}),
            ]
        )
        urls = []
        states = []

        def connect(url):
            urls.append(url)
            return ws

        handler = RecordingHandler()
        client = _client(connect, handler)
        original = client._on_control

        def spy(message):
            original(message)
            states.append(client.state)

        client._on_control = spy

        async def stop_when_drained():
            while len(handler.events) < 2:
                await asyncio.sleep(0)
            stop.set()

        await asyncio.gather(client.run(stop), stop_when_drained())

        assert urls[0] == f"{STREAM_URL}?token=key"
        assert ws.sent[0] == {"topic": "collection:ens", "event": "phx_join", "payload": {}, "ref": "1"}
        assert states == [StreamState.SUBSCRIBED]
        assert isinstance(handler.events[0], ItemListed)
        assert isinstance(handler.events[1], UnknownStreamMessage)
        assert client.state is StreamState.STOPPED

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        calls = []

        def connect(url):
            calls.append(url)
            raise OSError("connection refused")

        client = _client(connect, RecordingHandler(), max_reconnect_attempts=10)

        await asyncio.wait_for(client.run(asyncio.Event()), timeout=5)

        assert len(calls) == 11
        assert client.state is StreamState.FAILED

    @pytest.mark.asyncio
    async def test_successful_connect_resets_attempts(self):
        outcomes = ["fail", "fail", "ok", "fail", "fail", "fail"]
        calls = []

        def connect(url):
            outcome = outcomes[len(calls)] if len(calls) < len(outcomes) else "fail"
            calls.append(outcome)
            if outcome == "fail":
                raise OSError("connection refused")
            return FakeWebSocket([])

        client = _client(connect, RecordingHandler(), max_reconnect_attempts=3)

        await asyncio.wait_for(client.run(asyncio.Event()), timeout=5)

        # the closed session counts as attempt 1, then three failed retries exhaust the budget
        assert len(calls) == 6
        assert client.state is StreamState.FAILED

    @pytest.mark.asyncio
    async def test_handler_errors_do_not_drop_the_connection(self):
        stop = asyncio.Event()
        ws = FakeWebSocket([_listing_frame(), _listing_frame()])
        handler = RecordingHandler(fail_on="item_listed")
        client = _client(lambda url: ws, handler)

        async def stop_when_drained():
            while len(handler.events) < 2:
                await asyncio.sleep(0)
            stop.set()

        await asyncio.gather(client.run(stop), stop_when_drained())

        assert len(handler.events) == 2

    def test_url_with_query_string(self):
        client = OpenSeaStreamClient(
            url=f"{STREAM_URL}?vsn=2.0.0",
            api_key="key",
            collection_slug="ens-names",
            handler=RecordingHandler(),
        )

        assert client._url == f"{STREAM_URL}?vsn=2.0.0&token=key"
        assert client.topic == "collection:ens-names"
