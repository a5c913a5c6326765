"""
Event tracking and subscription lifecycle for the chat client
"""

from .event_bus import event_bus, EventBus, EventTypes, SystemEvent
from .subscriptions import Subscription

__all__ = ['event_bus', 'EventBus', 'EventTypes', 'SystemEvent', 'Subscription']
