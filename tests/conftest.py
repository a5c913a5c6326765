"""
Shared test fixtures.

Provides: an in-memory Socket.IO client double, a connected ConnectionManager,
an isolated event bus, a navigator and a static location provider
"""

import os

# Keep test runs from writing log files
os.environ.setdefault("ENABLE_FILE_LOGGING", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from collections import defaultdict
from typing import Any, Callable, Dict, List, Tuple

import pytest

from core.connection_manager import ConnectionManager
from core.navigation import Navigator, Route
from device.location import StaticLocationProvider
from events.event_bus import EventBus


class FakeSocketClient:
    """
    Stands in for socketio.AsyncClient.

    Records emits and lets tests push server events through the same "*"
    catch-all handler the real client would call.
    """

    def __init__(self, sid: str = "sid-self", fail_connect: bool = False):
        self.sid = sid
        self.fail_connect = fail_connect
        self.connected = False
        self.handlers: Dict[str, Callable] = {}
        self.emitted: List[Tuple[str, Any]] = []
        self.connect_calls = 0

    def on(self, event: str, handler: Callable, namespace: str = None) -> None:
        self.handlers[event] = handler

    async def connect(self, url, transports=None, namespaces=None, wait_timeout=None) -> None:
        from socketio.exceptions import ConnectionError as SocketConnectionError

        self.connect_calls += 1
        if self.fail_connect:
            raise SocketConnectionError("Connection refused")
        self.connected = True
        await self.handlers["connect"]()

    async def disconnect(self) -> None:
        self.connected = False

    async def emit(self, event: str, data: Any = None, namespace: str = None) -> None:
        self.emitted.append((event, data))

    def get_sid(self, namespace: str = None) -> str:
        return self.sid if self.connected else None

    async def server_push(self, event: str, data: Any = None) -> None:
        """Simulate a server-pushed event"""
        await self.handlers["*"](event, data)

    async def drop(self, reason: str = "transport close") -> None:
        """Simulate a transport-level disconnect"""
        self.connected = False
        await self.handlers["disconnect"](reason)

    async def restore(self) -> None:
        """Simulate a transport-level reconnect"""
        self.connected = True
        await self.handlers["connect"]()

    def emitted_events(self, event: str) -> List[Any]:
        return [data for name, data in self.emitted if name == event]


@pytest.fixture
def bus():
    """Isolated event bus so tests do not share history"""
    return EventBus()


@pytest.fixture
def socket_client():
    return FakeSocketClient()


@pytest.fixture
def connection(socket_client, bus):
    """ConnectionManager over the fake client, not yet connected"""
    return ConnectionManager(url="http://test.local:8000", client=socket_client, event_bus=bus)


@pytest.fixture
async def connected(connection):
    await connection.connect()
    return connection


@pytest.fixture
def navigator(bus):
    return Navigator(root=Route.NAME, event_bus=bus)


@pytest.fixture
def provider():
    return StaticLocationProvider(latitude=52.52, longitude=13.405)


@pytest.fixture
def recorded(bus):
    """Every event type emitted on the bus, in order"""
    events = defaultdict(list)
    bus.on_all(lambda event: events[event.type].append(event.data))
    return events
