"""
Tests for the connection manager over a fake Socket.IO client
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.connection_manager import ConnectionManager, ConnectionStatus
from core.exceptions import ConnectionLostError
from core.protocol import ConnectionEvents
from events.event_bus import EventTypes
from tests.conftest import FakeSocketClient


class TestConnect:

    @pytest.mark.asyncio
    async def test_connect_marks_connected_and_exposes_sid(self, connection, socket_client, recorded):
        await connection.connect()

        assert connection.connected is True
        assert connection.status == ConnectionStatus.CONNECTED
        assert connection.sid == "sid-self"
        assert recorded[EventTypes.CONNECTION_CONNECTED] == [{"sid": "sid-self"}]

    @pytest.mark.asyncio
    async def test_connect_is_idempotent(self, connection, socket_client):
        await connection.connect()
        await connection.connect()

        assert socket_client.connect_calls == 1
        assert connection.connect_count == 1

    @pytest.mark.asyncio
    async def test_concurrent_connects_share_one_attempt(self, connection, socket_client):
        await asyncio.gather(connection.connect(), connection.connect(), connection.connect())

        assert socket_client.connect_calls == 1

    @pytest.mark.asyncio
    async def test_connect_failure_raises_connection_lost(self, bus, recorded):
        client = FakeSocketClient(fail_connect=True)
        connection = ConnectionManager(url="http://test.local:8000", client=client, event_bus=bus)

        with pytest.raises(ConnectionLostError):
            await connection.connect()

        assert connection.status == ConnectionStatus.DISCONNECTED
        assert len(recorded[EventTypes.CONNECTION_ERROR]) == 1

    def test_sid_is_none_while_disconnected(self, connection):
        assert connection.sid is None


class TestDisconnect:

    @pytest.mark.asyncio
    async def test_disconnect_notifies_handlers_once(self, connected, recorded):
        handler = MagicMock()
        connected.on(ConnectionEvents.DISCONNECT, handler)

        await connected.disconnect()
        await connected.disconnect()

        handler.assert_called_once_with({"reason": "client disconnect"})
        assert connected.connected is False
        assert len(recorded[EventTypes.CONNECTION_DISCONNECTED]) == 1

    @pytest.mark.asyncio
    async def test_transport_drop_and_reconnect_are_dispatched(self, connected, socket_client):
        events = []
        connected.on(ConnectionEvents.DISCONNECT, lambda p: events.append(("down", p)))
        connected.on(ConnectionEvents.CONNECT, lambda p: events.append(("up", p)))

        await socket_client.drop("ping timeout")
        assert connected.sid is None

        await socket_client.restore()

        assert events == [("down", {"reason": "ping timeout"}), ("up", {"sid": "sid-self"})]
        assert connected.connect_count == 2


class TestHandlers:

    @pytest.mark.asyncio
    async def test_server_event_reaches_handlers_in_registration_order(self, connected, socket_client):
        calls = []
        connected.on("match-found", lambda p: calls.append(("first", p)))
        connected.on("match-found", lambda p: calls.append(("second", p)))

        await socket_client.server_push("match-found", {"chatId": "c1"})

        assert calls == [("first", {"chatId": "c1"}), ("second", {"chatId": "c1"})]

    @pytest.mark.asyncio
    async def test_async_handlers_are_awaited(self, connected, socket_client):
        handler = AsyncMock()
        connected.on("receive-message", handler)

        await socket_client.server_push("receive-message", {"text": "hi"})

        handler.assert_awaited_once_with({"text": "hi"})

    @pytest.mark.asyncio
    async def test_off_detaches_only_the_given_handler(self, connected, socket_client):
        kept, removed = MagicMock(), MagicMock()
        connected.on("match-timeout", kept)
        connected.on("match-timeout", removed)

        connected.off("match-timeout", removed)
        await socket_client.server_push("match-timeout", {"message": "none"})

        kept.assert_called_once()
        removed.assert_not_called()
        assert connected.handler_count("match-timeout") == 1

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_block_others(self, connected, socket_client):
        after = MagicMock()
        connected.on("match-found", MagicMock(side_effect=RuntimeError("boom")))
        connected.on("match-found", after)

        await socket_client.server_push("match-found", {"chatId": "c1"})

        after.assert_called_once()

    @pytest.mark.asyncio
    async def test_event_without_handler_is_ignored(self, connected, socket_client):
        await socket_client.server_push("unknown-event", {})

        assert connected.messages_received == 1


class TestEmit:

    @pytest.mark.asyncio
    async def test_emit_sends_payload(self, connected, socket_client):
        await connected.emit("join-chat", {"chatId": "c1"})

        assert socket_client.emitted == [("join-chat", {"chatId": "c1"})]
        assert connected.get_stats()["messages_sent"] == 1

    @pytest.mark.asyncio
    async def test_emit_while_disconnected_raises(self, connection, socket_client):
        with pytest.raises(ConnectionLostError):
            await connection.emit("join-chat", {"chatId": "c1"})

        assert socket_client.emitted == []

    @pytest.mark.asyncio
    async def test_bad_namespace_becomes_connection_lost(self, connected, socket_client):
        from socketio.exceptions import BadNamespaceError

        socket_client.emit = AsyncMock(side_effect=BadNamespaceError("/ is not a connected namespace."))

        with pytest.raises(ConnectionLostError):
            await connected.emit("send-message", {"chatId": "c1", "text": "hi"})
