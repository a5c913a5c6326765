"""
Diagnostics event bus for tracking connection, search and chat lifecycle events
"""

import time
import uuid
from typing import Dict, Any, List, Callable, Optional
from collections import defaultdict
from datetime import datetime

from core.logging_config import get_logger

logger = get_logger(__name__)


class SystemEvent:
    """Represents a system event"""

    def __init__(self, event_type: str, data: Dict[str, Any], source: str = None):
        self.id = str(uuid.uuid4())
        self.type = event_type
        self.data = data
        self.source = source or "system"
        self.timestamp = time.time()
        self.datetime = datetime.now().isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary"""
        return {
            "id": self.id,
            "type": self.type,
            "data": self.data,
            "source": self.source,
            "timestamp": self.timestamp,
            "datetime": self.datetime
        }


class EventBus:
    """
    In-process event bus for lifecycle diagnostics.

    Dispatch is synchronous on the caller's event loop; listeners must not block.
    """

    def __init__(self, max_history: int = 1000):
        self.listeners: Dict[str, List[Callable]] = defaultdict(list)
        self.event_history: List[SystemEvent] = []
        self.max_history = max_history
        self.event_counts = defaultdict(int)

    def emit(self, event_type: str, data: Dict[str, Any], source: str = None) -> SystemEvent:
        """Emit an event to the bus"""
        event = SystemEvent(event_type, data, source)

        self.event_counts[event.type] += 1
        self.event_history.append(event)
        if len(self.event_history) > self.max_history:
            self.event_history.pop(0)

        for listener in list(self.listeners.get(event.type, [])) + list(self.listeners.get("*", [])):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Error in event listener for {event.type}: {e}", exc_info=True)

        return event

    def on(self, event_type: str, callback: Callable[[SystemEvent], None]):
        """Register a listener for specific event type"""
        self.listeners[event_type].append(callback)

    def on_all(self, callback: Callable[[SystemEvent], None]):
        """Register a listener for all events"""
        self.listeners["*"].append(callback)

    def off(self, event_type: str, callback: Callable[[SystemEvent], None]):
        """Remove a listener"""
        if callback in self.listeners[event_type]:
            self.listeners[event_type].remove(callback)

    def get_stats(self) -> Dict[str, Any]:
        """Get event bus statistics"""
        return {
            "total_events": sum(self.event_counts.values()),
            "event_counts": dict(self.event_counts),
            "history_size": len(self.event_history),
            "listener_counts": {
                event_type: len(listeners)
                for event_type, listeners in self.listeners.items()
            }
        }

    def get_recent_events(self, count: int = 50, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """Get recent events from history"""
        events = self.event_history[-count:]

        if event_type:
            events = [e for e in events if e.type == event_type]

        return [e.to_dict() for e in events]

    def clear(self):
        """Drop history and counters"""
        self.event_history.clear()
        self.event_counts.clear()


# Global event bus instance
event_bus = EventBus()


# Event type constants
class EventTypes:
    # Connection events
    CONNECTION_CONNECTING = "connection.connecting"
    CONNECTION_CONNECTED = "connection.connected"
    CONNECTION_DISCONNECTED = "connection.disconnected"
    CONNECTION_ERROR = "connection.error"

    # Search attempt events
    SEARCH_STATE_CHANGED = "search.state_changed"
    SEARCH_JOIN_SENT = "search.join_sent"
    SEARCH_MATCHED = "search.matched"
    SEARCH_TIMED_OUT = "search.timed_out"
    SEARCH_FAILED = "search.failed"
    SEARCH_ABANDONED = "search.abandoned"
    SEARCH_STALE_EVENT = "search.stale_event"

    # Chat events
    CHAT_OPENED = "chat.opened"
    CHAT_CLOSED = "chat.closed"
    CHAT_MESSAGE_SENT = "chat.message_sent"
    CHAT_MESSAGE_RECEIVED = "chat.message_received"
    CHAT_MESSAGE_DROPPED = "chat.message_dropped"

    # Navigation events
    NAVIGATION_CHANGED = "navigation.changed"

    # System events
    SYSTEM_START = "system.start"
    SYSTEM_STOP = "system.stop"
    SYSTEM_ERROR = "system.error"
