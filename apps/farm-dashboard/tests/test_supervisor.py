from __future__ import annotations

import asyncio

from aiomqtt import MqttError

from farm_dashboard.config import TtnSettings
from farm_dashboard.services.supervisor import ConnectionState, ConnectionSupervisor
from farm_dashboard.services.ttn_transport import (
    EVENT_CLOSED,
    EVENT_CONNECTED,
    EVENT_CONNECTING,
    EVENT_ERROR,
    TtnTransport,
)


def _settings(**overrides) -> TtnSettings:
    values = {"enabled": True, "tenant": "nam1", "application_id": "farm-app", "api_key": "NNSXS.secret"}
    values.update(overrides)
    return TtnSettings(**values)


class FakeTransport:
    def __init__(self, settings, on_event, on_message, *, fail_subscribe=False):
        self.settings = settings
        self.on_event = on_event
        self.on_message = on_message
        self.fail_subscribe = fail_subscribe
        self.started = False
        self.stopped = False
        self.subscriptions = []

    def start(self):
        self.started = True

    async def stop(self):
        self.stopped = True

    async def subscribe(self, topic):
        if self.fail_subscribe:
            raise MqttError("not authorized")
        self.subscriptions.append(topic)


class Harness:
    def __init__(self, settings=None, **transport_kwargs):
        self.transports = []
        self.uplinks = []
        self.supervisor = ConnectionSupervisor(
            settings or _settings(),
            lambda topic, payload: self.uplinks.append((topic, payload)),
            transport_factory=self._factory,
        )
        self._transport_kwargs = transport_kwargs

    def _factory(self, settings, on_event, on_message):
        transport = FakeTransport(settings, on_event, on_message, **self._transport_kwargs)
        self.transports.append(transport)
        return transport

    @property
    def transport(self) -> FakeTransport:
        return self.transports[-1]


def test_topic_and_broker_defaults():
    settings = _settings()
    assert settings.username == "farm-app@nam1"
    assert settings.uplink_topic == "v3/farm-app@nam1/devices/+/up"
    assert settings.resolved_broker_url == "wss://nam1.cloud.thethings.network:8884/mqtt"
    assert settings.broker_port == 8884
    assert settings.websocket_path == "/mqtt"
    assert settings.uses_websockets and settings.uses_tls


def test_missing_credentials_disable_the_supervisor():
    async def runner():
        harness = Harness(_settings(api_key=None))
        sup = harness.supervisor
        assert sup.state is ConnectionState.DISABLED
        assert await sup.connect() is False
        assert await sup.disconnect() is False
        assert harness.transports == []
        assert sup.status()["topic"] is None

    asyncio.run(runner())


def test_connect_subscribes_once_connected():
    async def runner():
        harness = Harness()
        sup = harness.supervisor
        assert await sup.connect() is True
        assert sup.state is ConnectionState.CONNECTING
        assert harness.transport.started

        await harness.transport.on_event(EVENT_CONNECTED, None)
        assert sup.state is ConnectionState.CONNECTED
        assert harness.transport.subscriptions == ["v3/farm-app@nam1/devices/+/up"]
        assert sup.status()["label"] == "Connected"

    asyncio.run(runner())


def test_connect_is_ignored_while_connecting_or_connected():
    async def runner():
        harness = Harness()
        sup = harness.supervisor
        await sup.connect()
        assert await sup.connect() is False
        await harness.transport.on_event(EVENT_CONNECTED, None)
        assert await sup.connect() is False
        assert len(harness.transports) == 1

    asyncio.run(runner())


def test_transport_events_drive_state():
    async def runner():
        harness = Harness()
        sup = harness.supervisor
        await sup.connect()
        transport = harness.transport
        await transport.on_event(EVENT_ERROR, "connection refused")
        assert sup.state is ConnectionState.ERROR
        assert sup.last_error == "connection refused"
        await transport.on_event(EVENT_CONNECTING, None)
        assert sup.state is ConnectionState.CONNECTING
        await transport.on_event(EVENT_CONNECTED, None)
        await transport.on_event(EVENT_CLOSED, None)
        assert sup.state is ConnectionState.DISCONNECTED

    asyncio.run(runner())


def test_reconnect_from_error_replaces_transport():
    async def runner():
        harness = Harness()
        sup = harness.supervisor
        await sup.connect()
        first = harness.transport
        await first.on_event(EVENT_ERROR, "timeout")
        assert await sup.connect() is True
        assert first.stopped
        assert len(harness.transports) == 2

    asyncio.run(runner())


def test_disconnect_is_idempotent():
    async def runner():
        harness = Harness()
        sup = harness.supervisor
        await sup.connect()
        await harness.transport.on_event(EVENT_CONNECTED, None)
        assert await sup.disconnect() is True
        assert harness.transport.stopped
        assert sup.state is ConnectionState.DISCONNECTED
        assert await sup.disconnect() is False
        assert sup.state is ConnectionState.DISCONNECTED

    asyncio.run(runner())


def test_events_after_disconnect_are_ignored():
    async def runner():
        harness = Harness()
        sup = harness.supervisor
        await sup.connect()
        transport = harness.transport
        await sup.disconnect()
        await transport.on_event(EVENT_CONNECTED, None)
        assert sup.state is ConnectionState.DISCONNECTED

    asyncio.run(runner())


def test_messages_only_routed_while_connected():
    async def runner():
        harness = Harness()
        sup = harness.supervisor
        await sup.connect()
        transport = harness.transport
        transport.on_message("v3/farm-app@nam1/devices/a/up", b"early")
        await transport.on_event(EVENT_CONNECTED, None)
        transport.on_message("v3/farm-app@nam1/devices/a/up", b"{}")
        assert harness.uplinks == [("v3/farm-app@nam1/devices/a/up", b"{}")]
        assert sup.status()["messages_received"] == 1

    asyncio.run(runner())


def test_subscribe_failure_keeps_connection():
    async def runner():
        harness = Harness(fail_subscribe=True)
        sup = harness.supervisor
        await sup.connect()
        await harness.transport.on_event(EVENT_CONNECTED, None)
        assert sup.state is ConnectionState.CONNECTED

    asyncio.run(runner())


class _FakeMessages:
    def __init__(self, items):
        self._items = list(items)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._items:
            raise MqttError("connection lost")
        return self._items.pop(0)


class _FakeMessage:
    def __init__(self, topic, payload):
        self.topic = topic
        self.payload = payload


class _FakeClient:
    instances = []

    def __init__(self, hostname, **kwargs):
        self.hostname = hostname
        self.kwargs = kwargs
        self.messages = _FakeMessages([_FakeMessage("v3/farm-app@nam1/devices/a/up", b'{"x": 1}')])
        _FakeClient.instances.append(self)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def subscribe(self, topic):
        return None


def test_transport_reports_lifecycle_and_messages():
    async def runner():
        events = []
        messages = []

        async def on_event(event, detail):
            events.append(event)

        _FakeClient.instances.clear()
        transport = TtnTransport(
            _settings(reconnect_period_seconds=30),
            on_event,
            lambda topic, payload: messages.append((topic, payload)),
            client_factory=_FakeClient,
        )
        transport.start()
        for _ in range(20):
            await asyncio.sleep(0)
            if EVENT_CLOSED in events:
                break
        await transport.stop()
        return events, messages

    events, messages = asyncio.run(runner())
    assert events[:3] == [EVENT_CONNECTING, EVENT_CONNECTED, EVENT_CLOSED]
    assert messages == [("v3/farm-app@nam1/devices/a/up", b'{"x": 1}')]
    client = _FakeClient.instances[0]
    assert client.hostname == "nam1.cloud.thethings.network"
    assert client.kwargs["transport"] == "websockets"
    assert client.kwargs["websocket_path"] == "/mqtt"
    assert client.kwargs["username"] == "farm-app@nam1"
    assert client.kwargs["port"] == 8884
