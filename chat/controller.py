"""
Chat session controller: room join, optimistic send and incoming message merge
"""

import time
from collections import deque
from typing import Optional, Dict, Any, List, Deque, Tuple

from config import CHAT_CONFIG
from core.exceptions import ChatError, MessageTooLongError
from core.logging_config import get_logger
from core.protocol import ClientEvents, ServerEvents
from events.event_bus import event_bus as default_event_bus, EventTypes
from events.subscriptions import Subscription
from security import InputSanitizer
from .models import ChatMessage, Sender, Transcript, client_timestamp


class ChatSessionController:
    """
    Controls one chat room for the lifetime of the chat screen.

    Sent messages are echoed into the transcript immediately. The server is
    expected to rebroadcast only to the peer; if it also echoes to the sender,
    a message from our own sid that matches a pending local echo (same text,
    within echo_window_seconds) is dropped instead of being shown twice.

    Display order is strictly local append order. Payload timestamps, if any,
    are ignored.
    """

    def __init__(self,
                 connection,
                 chat_id: str,
                 other_display_name: str = "Anonymous",
                 event_bus=None,
                 echo_window_seconds: Optional[float] = None):
        if not chat_id:
            raise ChatError("chat_id is required")

        self.logger = get_logger(__name__)
        self.connection = connection
        # Server-assigned and opaque: never rewritten
        self.chat_id = str(chat_id)
        self.other_display_name = other_display_name
        self.event_bus = event_bus or default_event_bus
        self.echo_window_seconds = (CHAT_CONFIG["echo_window_seconds"]
                                    if echo_window_seconds is None else echo_window_seconds)
        self.max_message_length = CHAT_CONFIG["max_message_length"]

        self.transcript = Transcript(self.chat_id)
        self._subscription: Optional[Subscription] = None
        self._pending_echoes: Deque[Tuple[str, float]] = deque()

        # Stats
        self.messages_sent = 0
        self.messages_received = 0
        self.messages_dropped = 0

    @property
    def is_open(self) -> bool:
        return self._subscription is not None and self._subscription.active

    @property
    def messages(self) -> List[ChatMessage]:
        return self.transcript.messages

    async def open(self) -> None:
        """Join the room and start receiving messages. Re-opening after close() attaches a fresh handler."""
        if self.is_open:
            self.logger.debug(f"Chat {self.chat_id} already open")
            return

        await self.connection.emit(ClientEvents.JOIN_CHAT, {"chatId": self.chat_id})

        self._subscription = Subscription(self.connection, {
            ServerEvents.RECEIVE_MESSAGE: self._handle_incoming,
        }, owner=f"chat:{self.chat_id}").attach()

        self.logger.info("Joined chat", extra={"extra_data": {
            "chat_id": self.chat_id,
            "other": self.other_display_name,
        }})
        self.event_bus.emit(EventTypes.CHAT_OPENED, {"chat_id": self.chat_id}, source="ChatSessionController")

    def close(self) -> None:
        """Stop receiving messages. No leave event is sent to the server."""
        if self._subscription is None:
            return
        was_open = self.is_open
        self._subscription.release()
        self._subscription = None
        self._pending_echoes.clear()

        if was_open:
            self.logger.info(f"Left chat {self.chat_id}")
            self.event_bus.emit(EventTypes.CHAT_CLOSED, {
                "chat_id": self.chat_id,
                "messages": len(self.transcript)
            }, source="ChatSessionController")

    async def send(self, text: str) -> Optional[ChatMessage]:
        """
        Send a message with optimistic local echo.

        Args:
            text: Message text

        Returns:
            The appended message, or None when text is empty or whitespace-only

        Raises:
            ChatError: If the session is not open
            MessageTooLongError: If text exceeds the maximum message length
            ConnectionLostError: If the channel dropped; the local echo stays in the transcript
        """
        if text is None or not text.strip():
            return None
        if not self.is_open:
            raise ChatError(f"Chat {self.chat_id} is not open")
        if len(text) > self.max_message_length:
            raise MessageTooLongError(len(text), self.max_message_length)

        text = InputSanitizer.sanitize_text(text, 'message')
        if not text.strip():
            return None

        message = self.transcript.append(ChatMessage(self.chat_id, Sender.SELF, text, client_timestamp()))
        self._pending_echoes.append((text, time.monotonic()))

        await self.connection.emit(ClientEvents.SEND_MESSAGE, {"chatId": self.chat_id, "text": text})

        self.messages_sent += 1
        self.event_bus.emit(EventTypes.CHAT_MESSAGE_SENT, {
            "chat_id": self.chat_id,
            "length": len(text)
        }, source="ChatSessionController")
        return message

    def _handle_incoming(self, payload: Dict[str, Any]) -> None:
        if not isinstance(payload, dict):
            self._drop(payload, "malformed payload")
            return
        if payload.get("chatId") != self.chat_id:
            self._drop(payload, "different chat")
            return
        if not self.is_open:
            self._drop(payload, "session closed")
            return

        text = payload.get("text")
        if not isinstance(text, str):
            self._drop(payload, "missing text")
            return

        sender = Sender.PEER
        own_sid = self.connection.sid
        if own_sid is not None and payload.get("sender") == own_sid:
            if self._consume_pending_echo(text):
                self.logger.debug("Server echo of our own message deduplicated")
                return
            sender = Sender.SELF

        self.transcript.append(ChatMessage(self.chat_id, sender, text, client_timestamp()))
        self.messages_received += 1
        self.event_bus.emit(EventTypes.CHAT_MESSAGE_RECEIVED, {
            "chat_id": self.chat_id,
            "sender": sender.value
        }, source="ChatSessionController")

    def _consume_pending_echo(self, text: str) -> bool:
        cutoff = time.monotonic() - self.echo_window_seconds
        while self._pending_echoes and self._pending_echoes[0][1] < cutoff:
            self._pending_echoes.popleft()

        for entry in self._pending_echoes:
            if entry[0] == text:
                self._pending_echoes.remove(entry)
                return True
        return False

    def _drop(self, payload: Any, reason: str) -> None:
        self.messages_dropped += 1
        self.logger.debug(f"Incoming message dropped: {reason}")
        self.event_bus.emit(EventTypes.CHAT_MESSAGE_DROPPED, {
            "chat_id": self.chat_id,
            "reason": reason
        }, source="ChatSessionController")

    def get_stats(self) -> Dict[str, Any]:
        """Get chat session statistics"""
        return {
            "chat_id": self.chat_id,
            "open": self.is_open,
            "transcript_length": len(self.transcript),
            "messages_sent": self.messages_sent,
            "messages_received": self.messages_received,
            "messages_dropped": self.messages_dropped,
        }
