"""
Connection manager owning the single Socket.IO channel to the matching server
"""

import asyncio
import inspect
import time
from collections import defaultdict
from enum import Enum
from typing import Optional, Callable, Dict, Any, List

import socketio
from socketio import exceptions as socketio_exceptions

from config import SERVER_CONFIG, CONNECTION_CONFIG
from core.exceptions import ConnectionLostError
from core.logging_config import get_logger
from core.protocol import ConnectionEvents
from events.event_bus import event_bus as default_event_bus, EventTypes


class ConnectionStatus(Enum):
    """Connection states"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ConnectionManager:
    """
    Owns the persistent duplex event channel.

    One instance is constructed by the top-level owner and passed by reference to
    every coordinator. Coordinators only attach/detach handlers and emit; only the
    owner calls connect() and disconnect(). Reconnection and backoff belong to the
    transport, this class only reports connection state.

    Handlers registered with on() receive the event payload. The connection
    notifications "connect", "disconnect" and "connect_error" are dispatched
    through the same registry with {"sid": ...}, {"reason": ...} and
    {"error": ...} payloads respectively.
    """

    def __init__(self,
                 url: Optional[str] = None,
                 client=None,
                 event_bus=None,
                 namespace: Optional[str] = None,
                 options: Optional[Dict[str, Any]] = None):
        """
        Initialize connection manager

        Args:
            url: Server URL (defaults to SERVER_CONFIG["url"])
            client: Socket.IO client instance, created from CONNECTION_CONFIG when omitted
            event_bus: Diagnostics bus for connection state events
            namespace: Socket.IO namespace
            options: Overrides for CONNECTION_CONFIG
        """
        self.logger = get_logger(__name__)
        self.url = url or SERVER_CONFIG["url"]
        self.namespace = namespace or SERVER_CONFIG.get("namespace", "/")
        self.options = {**CONNECTION_CONFIG, **(options or {})}
        self.event_bus = event_bus or default_event_bus

        self.client = client or socketio.AsyncClient(
            reconnection=self.options["reconnection"],
            reconnection_attempts=self.options["reconnection_attempts"],
            reconnection_delay=self.options["reconnection_delay"],
            reconnection_delay_max=self.options["reconnection_delay_max"],
        )

        self.status = ConnectionStatus.DISCONNECTED
        self._handlers: Dict[str, List[Callable]] = defaultdict(list)
        self._connect_task: Optional[asyncio.Task] = None

        # Stats
        self.connected_at: Optional[float] = None
        self.connect_count = 0
        self.messages_sent = 0
        self.messages_received = 0

        # Transport callbacks
        self.client.on(ConnectionEvents.CONNECT, self._handle_connect, namespace=self.namespace)
        self.client.on(ConnectionEvents.DISCONNECT, self._handle_disconnect, namespace=self.namespace)
        self.client.on(ConnectionEvents.CONNECT_ERROR, self._handle_connect_error, namespace=self.namespace)
        self.client.on("*", self._handle_event, namespace=self.namespace)

    @property
    def connected(self) -> bool:
        return self.status == ConnectionStatus.CONNECTED

    @property
    def sid(self) -> Optional[str]:
        """Server-assigned connection identifier, None while disconnected"""
        if not self.connected:
            return None
        return self.client.get_sid(self.namespace)

    async def connect(self) -> None:
        """
        Open the channel if it is not already open.

        Concurrent callers share a single connection attempt.

        Raises:
            ConnectionLostError: If the server cannot be reached
        """
        if self.status == ConnectionStatus.CONNECTED:
            return

        if self._connect_task is None or self._connect_task.done():
            self._connect_task = asyncio.ensure_future(self._open())

        await asyncio.shield(self._connect_task)

    async def _open(self) -> None:
        self._set_status(ConnectionStatus.CONNECTING)
        self.event_bus.emit(EventTypes.CONNECTION_CONNECTING, {"url": self.url}, source="ConnectionManager")
        self.logger.info("Connecting to matching server", extra={"extra_data": {"url": self.url}})

        try:
            await self.client.connect(
                self.url,
                transports=self.options["transports"],
                namespaces=[self.namespace],
                wait_timeout=self.options["wait_timeout"],
            )
        except socketio_exceptions.ConnectionError as e:
            self._set_status(ConnectionStatus.DISCONNECTED)
            self.event_bus.emit(EventTypes.CONNECTION_ERROR, {"error": str(e)}, source="ConnectionManager")
            self.logger.error(f"Connection failed: {e}")
            raise ConnectionLostError(f"Could not connect to {self.url}", {"error": str(e)}) from e

        # The connect handler normally runs before connect() returns
        if self.client.connected and self.status != ConnectionStatus.CONNECTED:
            self._mark_connected()

    async def disconnect(self) -> None:
        """Close the channel. Safe to call multiple times."""
        if self._connect_task is not None and not self._connect_task.done():
            self._connect_task.cancel()
        self._connect_task = None

        if self.status == ConnectionStatus.DISCONNECTED and not self.client.connected:
            return

        self.logger.info("Disconnecting from matching server")
        await self.client.disconnect()

        if self.status != ConnectionStatus.DISCONNECTED:
            await self._handle_disconnect("client disconnect")

    def on(self, event_name: str, handler: Callable[[Any], Any]) -> None:
        """Attach a handler for a named server-pushed event"""
        self._handlers[event_name].append(handler)

    def off(self, event_name: str, handler: Optional[Callable[[Any], Any]] = None) -> None:
        """Detach one handler, or every handler for the event when none is given"""
        if handler is None:
            self._handlers.pop(event_name, None)
            return

        handlers = self._handlers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            self._handlers.pop(event_name, None)

    def handler_count(self, event_name: str) -> int:
        return len(self._handlers.get(event_name, []))

    async def emit(self, event_name: str, payload: Dict[str, Any]) -> None:
        """
        Send an event, fire-and-forget.

        Raises:
            ConnectionLostError: If the channel is not connected
        """
        if not self.connected:
            raise ConnectionLostError(f"Cannot emit {event_name} while {self.status.value}",
                                      {"event": event_name})

        try:
            await self.client.emit(event_name, payload, namespace=self.namespace)
        except socketio_exceptions.BadNamespaceError as e:
            raise ConnectionLostError(f"Cannot emit {event_name}: {e}", {"event": event_name}) from e

        self.messages_sent += 1
        self.logger.debug(f"[EMIT] {event_name}", extra={"extra_data": {"payload": payload}})

    async def dispatch(self, event_name: str, payload: Any = None) -> None:
        """Deliver an event to its handlers in registration order"""
        handlers = list(self._handlers.get(event_name, []))
        if not handlers:
            self.logger.debug(f"No handler for {event_name}, event ignored")
            return

        for handler in handlers:
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self.logger.error(f"Error in handler for {event_name}: {e}", exc_info=True)

    async def _handle_event(self, event_name: str, *args) -> None:
        payload = args[0] if args else None
        self.messages_received += 1
        self.logger.debug(f"[EVENT] Received: {event_name}")
        await self.dispatch(event_name, payload)

    async def _handle_connect(self) -> None:
        self._mark_connected()
        await self.dispatch(ConnectionEvents.CONNECT, {"sid": self.sid})

    async def _handle_disconnect(self, *args) -> None:
        reason = str(args[0]) if args else "unknown"
        if self.status == ConnectionStatus.DISCONNECTED:
            return

        self._set_status(ConnectionStatus.DISCONNECTED)
        uptime = time.time() - self.connected_at if self.connected_at else 0.0
        self.connected_at = None

        self.logger.warning("Socket disconnected", extra={"extra_data": {"reason": reason, "uptime_s": round(uptime, 1)}})
        self.event_bus.emit(EventTypes.CONNECTION_DISCONNECTED, {"reason": reason}, source="ConnectionManager")
        await self.dispatch(ConnectionEvents.DISCONNECT, {"reason": reason})

    async def _handle_connect_error(self, *args) -> None:
        error = args[0] if args else None
        self.logger.warning(f"Connection error reported by transport: {error}")
        self.event_bus.emit(EventTypes.CONNECTION_ERROR, {"error": str(error)}, source="ConnectionManager")
        await self.dispatch(ConnectionEvents.CONNECT_ERROR, {"error": error})

    def _mark_connected(self) -> None:
        if self.status == ConnectionStatus.CONNECTED:
            return
        self._set_status(ConnectionStatus.CONNECTED)
        self.connected_at = time.time()
        self.connect_count += 1

        sid = self.sid
        self.logger.info("Socket connected", extra={"extra_data": {"sid": sid}})
        self.event_bus.emit(EventTypes.CONNECTION_CONNECTED, {"sid": sid}, source="ConnectionManager")

    def _set_status(self, status: ConnectionStatus) -> None:
        if status != self.status:
            self.logger.debug(f"Connection status: {self.status.value} → {status.value}")
            self.status = status

    def get_stats(self) -> Dict[str, Any]:
        """Get connection statistics"""
        return {
            "status": self.status.value,
            "sid": self.sid,
            "url": self.url,
            "connect_count": self.connect_count,
            "messages_sent": self.messages_sent,
            "messages_received": self.messages_received,
            "uptime": time.time() - self.connected_at if self.connected_at else 0.0,
            "handlers": {name: len(handlers) for name, handlers in self._handlers.items()},
        }
