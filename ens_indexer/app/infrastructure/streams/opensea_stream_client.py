from __future__ import annotations

import asyncio
import enum
import itertools
import json
import logging
from typing import Any, Callable

import websockets
from websockets.exceptions import WebSocketException

from ens_indexer.app.domain.ports.out import StreamEventHandler
from ens_indexer.app.infrastructure.decoders.opensea_stream_decoder import decode_stream_message

logger = logging.getLogger(__name__)

_CONTROL_EVENTS = frozenset({"phx_reply", "phx_error", "phx_close"})


class StreamState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    STOPPED = "stopped"
    FAILED = "failed"


class OpenSeaStreamClient:
    """
    Phoenix-channel client for the OpenSea stream API.

    Lifecycle:
    - connect, send phx_join for `collection:<slug>`, wait for an ok phx_reply,
    - heartbeat on the `phoenix` topic every `heartbeat_interval` seconds,
    - messages are decoded and handed to the handler one at a time, in order,
    - a dropped or failed connection is retried after `reconnect_delay`; the
      attempt counter resets on every successful open and exceeding
      `max_reconnect_attempts` leaves the client FAILED.

    Transport ping/pong frames are answered by `websockets` itself.
    """

    def __init__(
        self,
        *,
        url: str,
        api_key: str,
        collection_slug: str,
        handler: StreamEventHandler,
        connect: Callable[..., Any] = websockets.connect,
        max_reconnect_attempts: int = 10,
        reconnect_delay: float = 5.0,
        heartbeat_interval: float = 30.0,
    ) -> None:
        separator = "&" if "?" in url else "?"
        self._url = f"{url}{separator}token={api_key}"
        self._topic = f"collection:{collection_slug}"
        self._handler = handler
        self._connect = connect
        self._max_reconnect_attempts = max_reconnect_attempts
        self._reconnect_delay = reconnect_delay
        self._heartbeat_interval = heartbeat_interval

        self._refs = itertools.count(1)
        self._attempts = 0
        self._state = StreamState.DISCONNECTED

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def topic(self) -> str:
        return self._topic

    async def run(self, stop: asyncio.Event) -> None:
        while not stop.is_set():
            self._state = StreamState.CONNECTING
            try:
                await self._session(stop)
            except asyncio.CancelledError:
                raise
            except (WebSocketException, OSError, asyncio.TimeoutError) as exc:
                logger.warning("Stream connection error: %s", exc, extra={"topic": self._topic})

            if stop.is_set():
                break

            self._state = StreamState.DISCONNECTED
            self._attempts += 1
            if self._attempts > self._max_reconnect_attempts:
                self._state = StreamState.FAILED
                logger.error(
                    "Stream gave up after %d reconnect attempts",
                    self._max_reconnect_attempts,
                    extra={"topic": self._topic},
                )
                return

            logger.info(
                "Reconnecting stream in %.0fs (attempt %d/%d)",
                self._reconnect_delay,
                self._attempts,
                self._max_reconnect_attempts,
            )
            try:
                await asyncio.wait_for(stop.wait(), timeout=self._reconnect_delay)
            except asyncio.TimeoutError:
                pass

        self._state = StreamState.STOPPED
        logger.info("Stream stopped", extra={"topic": self._topic})

    async def _session(self, stop: asyncio.Event) -> None:
        async with self._connect(self._url) as ws:
            self._attempts = 0
            logger.info("Stream connected, joining %s", self._topic)
            await self._send(ws, self._topic, "phx_join")

            heartbeat = asyncio.create_task(self._heartbeat(ws))
            watcher = asyncio.create_task(self._close_on_stop(ws, stop))
            try:
                async for raw in ws:
                    await self._on_frame(raw)
            finally:
                heartbeat.cancel()
                watcher.cancel()
                await asyncio.gather(heartbeat, watcher, return_exceptions=True)

        logger.info("Stream connection closed", extra={"topic": self._topic})

    async def _send(self, ws: Any, topic: str, event: str) -> None:
        message = {"topic": topic, "event": event, "payload": {}, "ref": str(next(self._refs))}
        await ws.send(json.dumps(message))

    async def _heartbeat(self, ws: Any) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            await self._send(ws, "phoenix", "heartbeat")

    async def _close_on_stop(self, ws: Any, stop: asyncio.Event) -> None:
        await stop.wait()
        await ws.close()

    async def _on_frame(self, raw: Any) -> None:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Dropping malformed stream frame: %.200r", raw)
            return
        if not isinstance(message, dict):
            logger.warning("Dropping unexpected stream frame: %.200r", raw)
            return

        event_name = message.get("event")
        if event_name in _CONTROL_EVENTS:
            self._on_control(message)
            return

        event = decode_stream_message(message)
        try:
            await self._handler.handle(event)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(
                "Failed to handle stream event %s",
                event_name,
                extra={"topic": message.get("topic")},
            )

    def _on_control(self, message: dict[str, Any]) -> None:
        event_name = message.get("event")
        payload = message.get("payload") or {}
        if event_name == "phx_reply":
            status = payload.get("status") if isinstance(payload, dict) else None
            if status == "ok":
                if message.get("topic") == self._topic and self._state is not StreamState.SUBSCRIBED:
                    self._state = StreamState.SUBSCRIBED
                    logger.info("Subscribed to %s", self._topic)
            else:
                logger.warning("Stream reply with status %r: %s", status, payload)
        elif event_name == "phx_error":
            logger.error("Stream channel error on %s: %s", message.get("topic"), payload)
        else:
            logger.warning("Stream channel %s closed by server", message.get("topic"))
