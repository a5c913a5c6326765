"""
Screen stack navigation for the client (name → setup → matching → chat, recent)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from core.logging_config import get_logger
from events.event_bus import event_bus as default_event_bus, EventTypes


class Route(Enum):
    """Screens of the client"""
    NAME = "name"
    SETUP = "setup"
    MATCHING = "matching"
    CHAT = "chat"
    RECENT = "recent"


@dataclass
class Screen:
    """One entry in the navigation stack"""
    route: Route
    params: Dict[str, Any] = field(default_factory=dict)


class Navigator:
    """
    Stack-based navigator.

    push() adds a screen, replace() swaps the top screen so that back() cannot
    return to it, back() pops. notify() surfaces a user-visible message.
    """

    def __init__(self, root: Route = Route.NAME, event_bus=None):
        self.logger = get_logger(__name__)
        self.event_bus = event_bus or default_event_bus
        self.stack: List[Screen] = [Screen(root)]
        self.notices: List[str] = []
        self.listeners: List[Callable[[Screen], None]] = []
        self.notice_listeners: List[Callable[[str], None]] = []

    @property
    def current(self) -> Screen:
        return self.stack[-1]

    def push(self, route: Route, **params) -> Screen:
        screen = Screen(route, params)
        self.stack.append(screen)
        self._changed("push")
        return screen

    def replace(self, route: Route, **params) -> Screen:
        screen = Screen(route, params)
        self.stack[-1] = screen
        self._changed("replace")
        return screen

    def back(self) -> Optional[Screen]:
        """Pop the current screen. The root screen is never popped."""
        if len(self.stack) == 1:
            return None
        self.stack.pop()
        self._changed("back")
        return self.current

    def notify(self, message: str) -> None:
        self.notices.append(message)
        self.logger.info(f"Notice: {message}")
        for listener in list(self.notice_listeners):
            listener(message)

    def add_listener(self, listener: Callable[[Screen], None]) -> None:
        self.listeners.append(listener)

    def add_notice_listener(self, listener: Callable[[str], None]) -> None:
        self.notice_listeners.append(listener)

    def routes(self) -> List[Route]:
        return [screen.route for screen in self.stack]

    def _changed(self, action: str) -> None:
        screen = self.current
        self.logger.debug(f"Navigation {action}: {' → '.join(r.value for r in self.routes())}")
        self.event_bus.emit(EventTypes.NAVIGATION_CHANGED, {
            "action": action,
            "route": screen.route.value,
            "depth": len(self.stack)
        }, source="Navigator")
        for listener in list(self.listeners):
            listener(screen)
