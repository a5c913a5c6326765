"""
Tests for the screen stack navigator
"""

from unittest.mock import MagicMock

from core.navigation import Navigator, Route
from events.event_bus import EventTypes


class TestNavigator:

    def test_push_and_back(self, navigator):
        navigator.push(Route.SETUP, display_name="Alex")
        navigator.push(Route.MATCHING)

        assert navigator.back().route == Route.SETUP
        assert navigator.current.params == {"display_name": "Alex"}

    def test_root_is_never_popped(self, navigator):
        assert navigator.back() is None
        assert navigator.routes() == [Route.NAME]

    def test_replace_removes_screen_from_history(self, navigator):
        navigator.push(Route.SETUP)
        navigator.push(Route.MATCHING)

        navigator.replace(Route.CHAT, chat_id="c1")
        navigator.back()

        assert navigator.routes() == [Route.NAME, Route.SETUP]

    def test_listeners_and_bus_see_changes(self, navigator, recorded):
        listener = MagicMock()
        navigator.add_listener(listener)

        navigator.push(Route.RECENT)

        assert listener.call_args[0][0].route == Route.RECENT
        assert recorded[EventTypes.NAVIGATION_CHANGED] == [{"action": "push", "route": "recent", "depth": 2}]

    def test_notify_records_and_forwards(self, bus):
        navigator = Navigator(event_bus=bus)
        seen = []
        navigator.add_notice_listener(seen.append)

        navigator.notify("Location permission required")

        assert navigator.notices == ["Location permission required"]
        assert seen == ["Location permission required"]
