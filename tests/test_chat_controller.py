"""
Tests for the chat session controller
"""

import time

import pytest

from chat.controller import ChatSessionController
from chat.models import Sender
from core.exceptions import ChatError, MessageTooLongError, ConnectionLostError
from events.event_bus import EventTypes


@pytest.fixture
async def chat(connected, bus):
    controller = ChatSessionController(connected, "c1", other_display_name="Sam", event_bus=bus)
    await controller.open()
    yield controller
    controller.close()


def transcript(controller):
    return [(m.sender, m.text) for m in controller.messages]


class TestOpenClose:

    @pytest.mark.asyncio
    async def test_open_joins_room_once(self, connected, bus, socket_client):
        controller = ChatSessionController(connected, "c1", event_bus=bus)

        await controller.open()
        await controller.open()

        assert socket_client.emitted_events("join-chat") == [{"chatId": "c1"}]
        assert connected.handler_count("receive-message") == 1

    @pytest.mark.asyncio
    async def test_close_detaches_without_leave_event(self, chat, connected, socket_client):
        chat.close()
        chat.close()

        assert connected.handler_count("receive-message") == 0
        assert [name for name, _ in socket_client.emitted] == ["join-chat"]

    @pytest.mark.asyncio
    async def test_reopen_attaches_fresh_handler(self, chat, connected, socket_client):
        chat.close()
        await chat.open()

        assert connected.handler_count("receive-message") == 1
        assert len(socket_client.emitted_events("join-chat")) == 2

    @pytest.mark.asyncio
    async def test_long_chat_id_is_joined_unchanged(self, connected, bus, socket_client):
        chat_id = "c" * 200 + "\x07"
        controller = ChatSessionController(connected, chat_id, event_bus=bus)

        await controller.open()
        await socket_client.server_push("receive-message", {"chatId": chat_id, "text": "hi"})

        assert socket_client.emitted_events("join-chat") == [{"chatId": chat_id}]
        assert [m.text for m in controller.messages] == ["hi"]

    def test_empty_chat_id_is_rejected(self, connection):
        with pytest.raises(ChatError):
            ChatSessionController(connection, "")

    @pytest.mark.asyncio
    async def test_open_while_disconnected_raises(self, connection, bus):
        controller = ChatSessionController(connection, "c1", event_bus=bus)

        with pytest.raises(ConnectionLostError):
            await controller.open()

        assert controller.is_open is False


class TestSend:

    @pytest.mark.asyncio
    async def test_send_echoes_locally_then_emits(self, chat, socket_client):
        message = await chat.send("hello")

        assert message.sender == Sender.SELF
        assert transcript(chat) == [(Sender.SELF, "hello")]
        assert socket_client.emitted_events("send-message") == [{"chatId": "c1", "text": "hello"}]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    async def test_blank_send_is_a_no_op(self, chat, socket_client, text):
        assert await chat.send(text) is None

        assert transcript(chat) == []
        assert socket_client.emitted_events("send-message") == []

    @pytest.mark.asyncio
    async def test_text_is_sent_unmodified(self, chat, socket_client):
        await chat.send("  spaced out  ")

        assert socket_client.emitted_events("send-message")[0]["text"] == "  spaced out  "

    @pytest.mark.asyncio
    async def test_overlong_message_is_rejected(self, chat, socket_client):
        with pytest.raises(MessageTooLongError) as exc_info:
            await chat.send("x" * 501)

        assert exc_info.value.user_message == "Messages are limited to 500 characters"
        assert transcript(chat) == []
        assert socket_client.emitted == [("join-chat", {"chatId": "c1"})]

    @pytest.mark.asyncio
    async def test_send_on_closed_chat_raises(self, chat):
        chat.close()

        with pytest.raises(ChatError):
            await chat.send("hello")

    @pytest.mark.asyncio
    async def test_send_after_drop_keeps_local_echo(self, chat, socket_client):
        await socket_client.drop()

        with pytest.raises(ConnectionLostError):
            await chat.send("are you there?")

        assert transcript(chat) == [(Sender.SELF, "are you there?")]


class TestIncoming:

    @pytest.mark.asyncio
    async def test_round_trip_shows_self_then_peer(self, chat, socket_client):
        await chat.send("hello")
        await socket_client.server_push("receive-message", {"chatId": "c1", "text": "hi", "sender": "sid-peer"})

        assert transcript(chat) == [(Sender.SELF, "hello"), (Sender.PEER, "hi")]

    @pytest.mark.asyncio
    async def test_messages_keep_arrival_order(self, chat, socket_client):
        for text, stamp in (("A", "2024-01-01T00:00:03Z"), ("B", "2024-01-01T00:00:01Z"), ("C", "2024-01-01T00:00:02Z")):
            await socket_client.server_push("receive-message", {"chatId": "c1", "text": text, "timestamp": stamp})

        assert [m.text for m in chat.messages] == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_other_chat_is_dropped(self, chat, socket_client, recorded):
        await socket_client.server_push("receive-message", {"chatId": "c2", "text": "wrong room"})

        assert transcript(chat) == []
        assert recorded[EventTypes.CHAT_MESSAGE_DROPPED] == [{"chat_id": "c1", "reason": "different chat"}]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [None, "hi", {"chatId": "c1"}, {"chatId": "c1", "text": 5}])
    async def test_malformed_payload_is_dropped(self, chat, socket_client, payload):
        await socket_client.server_push("receive-message", payload)

        assert transcript(chat) == []
        assert chat.get_stats()["messages_dropped"] == 1

    @pytest.mark.asyncio
    async def test_messages_after_close_are_ignored(self, chat, socket_client):
        handler = chat._handle_incoming
        chat.close()

        handler({"chatId": "c1", "text": "late"})

        assert transcript(chat) == []

    @pytest.mark.asyncio
    async def test_own_rebroadcast_is_deduplicated(self, chat, socket_client):
        await chat.send("hello")
        await socket_client.server_push("receive-message", {"chatId": "c1", "text": "hello", "sender": "sid-self"})

        assert transcript(chat) == [(Sender.SELF, "hello")]

    @pytest.mark.asyncio
    async def test_peer_repeating_our_text_is_not_deduplicated(self, chat, socket_client):
        await chat.send("hello")
        await socket_client.server_push("receive-message", {"chatId": "c1", "text": "hello", "sender": "sid-peer"})

        assert transcript(chat) == [(Sender.SELF, "hello"), (Sender.PEER, "hello")]

    @pytest.mark.asyncio
    async def test_rebroadcast_outside_echo_window_is_shown(self, connected, bus, socket_client):
        controller = ChatSessionController(connected, "c1", event_bus=bus, echo_window_seconds=5.0)
        await controller.open()
        await controller.send("hello")

        # Age the pending echo past the window
        controller._pending_echoes[0] = ("hello", time.monotonic() - 10)
        await socket_client.server_push("receive-message", {"chatId": "c1", "text": "hello", "sender": "sid-self"})

        assert transcript(controller) == [(Sender.SELF, "hello"), (Sender.SELF, "hello")]

    @pytest.mark.asyncio
    async def test_transcript_listener_sees_each_message(self, chat, socket_client):
        seen = []
        chat.transcript.listeners.append(seen.append)

        await chat.send("one")
        await socket_client.server_push("receive-message", {"chatId": "c1", "text": "two"})

        assert [m.text for m in seen] == ["one", "two"]
