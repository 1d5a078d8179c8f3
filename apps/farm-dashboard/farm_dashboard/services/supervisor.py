"""Connection lifecycle for the TTN uplink subscription."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional, Protocol

from aiomqtt import MqttError

from farm_dashboard.config import TtnSettings
from farm_dashboard.services.ttn_transport import (
    EVENT_CLOSED,
    EVENT_CONNECTED,
    EVENT_CONNECTING,
    EVENT_ERROR,
    EventHandler,
    MessageHandler,
    TtnTransport,
)

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    DISABLED = "disabled"
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


STATUS_TEXT = {
    ConnectionState.DISABLED: "Disabled",
    ConnectionState.DISCONNECTED: "Disconnected",
    ConnectionState.CONNECTING: "Connecting...",
    ConnectionState.CONNECTED: "Connected",
    ConnectionState.ERROR: "Error",
}

_EVENT_STATES = {
    EVENT_CONNECTING: ConnectionState.CONNECTING,
    EVENT_CONNECTED: ConnectionState.CONNECTED,
    EVENT_ERROR: ConnectionState.ERROR,
    EVENT_CLOSED: ConnectionState.DISCONNECTED,
}


class Transport(Protocol):
    def start(self) -> None: ...

    async def stop(self) -> None: ...

    async def subscribe(self, topic: str) -> None: ...


TransportFactory = Callable[[TtnSettings, EventHandler, MessageHandler], Transport]


def _default_transport(settings: TtnSettings, on_event: EventHandler, on_message: MessageHandler) -> Transport:
    return TtnTransport(settings, on_event, on_message)


class ConnectionSupervisor:
    """Mirror transport state and route uplinks to the ingest pipeline.

    Reconnects are left to the transport; the supervisor only records the
    transitions it reports.
    """

    def __init__(
        self,
        settings: TtnSettings,
        on_uplink: MessageHandler,
        *,
        transport_factory: TransportFactory = _default_transport,
    ):
        self.settings = settings
        self.on_uplink = on_uplink
        self._transport_factory = transport_factory
        self._transport: Transport | None = None
        self.state = (
            ConnectionState.DISCONNECTED if settings.credentials_configured else ConnectionState.DISABLED
        )
        self.last_error: Optional[str] = None
        self.changed_at = datetime.now(timezone.utc)
        self.messages_received = 0
        if self.state is ConnectionState.DISABLED:
            logger.info("TTN integration disabled")

    @property
    def topic(self) -> str:
        return self.settings.uplink_topic

    def status(self) -> dict:
        return {
            "state": self.state.value,
            "label": STATUS_TEXT[self.state],
            "topic": self.topic if self.state is not ConnectionState.DISABLED else None,
            "broker": self.settings.resolved_broker_url if self.state is not ConnectionState.DISABLED else None,
            "last_error": self.last_error,
            "changed_at": self.changed_at.isoformat(),
            "messages_received": self.messages_received,
        }

    async def connect(self) -> bool:
        if self.state not in (ConnectionState.DISCONNECTED, ConnectionState.ERROR):
            logger.debug("Ignoring connect while %s", self.state.value)
            return False
        if self._transport is not None:
            await self._transport.stop()
        self._set_state(ConnectionState.CONNECTING)
        self._transport = self._transport_factory(self.settings, self._handle_event, self._handle_message)
        self._transport.start()
        return True

    async def disconnect(self) -> bool:
        if self.state is ConnectionState.DISABLED:
            return False
        transport, self._transport = self._transport, None
        if transport is None and self.state is ConnectionState.DISCONNECTED:
            return False
        if transport is not None:
            await transport.stop()
        self._set_state(ConnectionState.DISCONNECTED)
        logger.info("Disconnected from TTN")
        return True

    async def _handle_event(self, event: str, detail: Optional[str]) -> None:
        if self._transport is None:
            return
        state = _EVENT_STATES.get(event)
        if state is None:
            logger.debug("Ignoring unknown transport event %s", event)
            return
        if state is ConnectionState.ERROR:
            self.last_error = detail
        self._set_state(state)
        if state is ConnectionState.CONNECTED:
            await self._subscribe()

    async def _subscribe(self) -> None:
        if self._transport is None:
            return
        try:
            await self._transport.subscribe(self.topic)
        except MqttError as exc:
            logger.error("Subscription to %s failed: %s", self.topic, exc)

    def _handle_message(self, topic: str, payload: bytes) -> None:
        if self.state is not ConnectionState.CONNECTED:
            logger.debug("Ignoring message on %s while %s", topic, self.state.value)
            return
        self.messages_received += 1
        try:
            self.on_uplink(topic, payload)
        except Exception:
            logger.exception("Failed to process sensor message on %s", topic)

    def _set_state(self, state: ConnectionState) -> None:
        if state is self.state:
            return
        logger.info("TTN connection %s -> %s", self.state.value, state.value)
        self.state = state
        self.changed_at = datetime.now(timezone.utc)
