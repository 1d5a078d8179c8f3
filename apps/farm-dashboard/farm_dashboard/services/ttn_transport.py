"""MQTT transport for The Things Network uplinks."""
from __future__ import annotations

import asyncio
import logging
import ssl
from typing import Awaitable, Callable, Optional

from aiomqtt import Client, MqttError

from farm_dashboard.config import TtnSettings

logger = logging.getLogger(__name__)

# Events reported to the owner of the transport.
EVENT_CONNECTING = "connecting"
EVENT_CONNECTED = "connected"
EVENT_ERROR = "error"
EVENT_CLOSED = "closed"

EventHandler = Callable[[str, Optional[str]], Awaitable[None]]
MessageHandler = Callable[[str, bytes], None]


class TtnTransport:
    """Keep an MQTT session open against the TTN broker.

    Reconnects on its own with a fixed delay; every attempt is bounded by the
    connect timeout. Lifecycle changes are reported through ``on_event`` and
    every inbound message through ``on_message``.
    """

    def __init__(
        self,
        settings: TtnSettings,
        on_event: EventHandler,
        on_message: MessageHandler,
        *,
        client_factory: Callable[..., Client] = Client,
    ):
        self.settings = settings
        self.on_event = on_event
        self.on_message = on_message
        self._client_factory = client_factory
        self._client: Client | None = None
        self._task: asyncio.Task | None = None
        self._stop = asyncio.Event()

    @property
    def running(self) -> bool:
        return bool(self._task and not self._task.done())

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._run(), name="ttn-transport")

    async def stop(self) -> None:
        self._stop.set()
        task, self._task = self._task, None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._client = None

    async def subscribe(self, topic: str) -> None:
        if self._client is None:
            raise MqttError("Not connected")
        await self._client.subscribe(topic)
        logger.info("Subscribed to %s", topic)

    def _build_client(self) -> Client:
        cfg = self.settings
        kwargs = {
            "port": cfg.broker_port,
            "username": cfg.username,
            "password": cfg.api_key.get_secret_value() if cfg.api_key else None,
            "keepalive": cfg.keepalive_seconds,
            "timeout": cfg.connect_timeout_seconds,
        }
        if cfg.uses_websockets:
            kwargs["transport"] = "websockets"
            kwargs["websocket_path"] = cfg.websocket_path
        if cfg.uses_tls:
            kwargs["tls_context"] = ssl.create_default_context()
        return self._client_factory(cfg.broker_host, **kwargs)

    async def _run(self) -> None:
        retry_delay = self.settings.reconnect_period_seconds
        while not self._stop.is_set():
            connected = False
            try:
                await self.on_event(EVENT_CONNECTING, None)
                logger.info("Connecting to TTN broker %s", self.settings.resolved_broker_url)
                async with self._build_client() as client:
                    self._client = client
                    connected = True
                    await self.on_event(EVENT_CONNECTED, None)
                    await self._listen(client)
                if not self._stop.is_set():
                    await self.on_event(EVENT_CLOSED, None)
            except asyncio.CancelledError:
                break
            except MqttError as exc:
                self._client = None
                if connected:
                    logger.warning("TTN connection closed: %s", exc)
                    await self.on_event(EVENT_CLOSED, str(exc))
                else:
                    logger.warning("TTN connect failed: %s", exc)
                    await self.on_event(EVENT_ERROR, str(exc))
            except Exception as exc:
                self._client = None
                logger.exception("Unhandled error in TTN transport")
                await self.on_event(EVENT_ERROR, str(exc))
            self._client = None
            if self._stop.is_set():
                break
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=retry_delay)
            except asyncio.TimeoutError:
                pass

    async def _listen(self, client: Client) -> None:
        async for message in client.messages:
            if self._stop.is_set():
                break
            topic = getattr(message.topic, "value", None)
            if topic is None:
                topic = str(message.topic)
            payload = message.payload
            if isinstance(payload, str):
                payload = payload.encode("utf-8")
            elif not isinstance(payload, (bytes, bytearray)):
                payload = b""
            try:
                self.on_message(topic, bytes(payload))
            except Exception:
                logger.exception("Failed to process message on %s", topic)
