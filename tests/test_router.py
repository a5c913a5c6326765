"""
Tests for routing search outcomes to navigation and chat sessions
"""

import pytest

from core.exceptions import PermissionDeniedError
from core.navigation import Route
from core.state_manager import SearchState
from matching.coordinator import PoolJoinCoordinator
from matching.models import Match, MatchTimeout, SearchOutcome, SearchPreferences
from matching.router import MatchResultRouter


@pytest.fixture
def preferences():
    return SearchPreferences.create(display_name="Alex", radius_km=5, duration_min=10)


@pytest.fixture
def on_matching(navigator):
    navigator.push(Route.SETUP, display_name="Alex")
    navigator.push(Route.MATCHING)
    return navigator


@pytest.fixture
def router(connected, on_matching, bus):
    return MatchResultRouter(connected, on_matching, event_bus=bus)


class TestRoute:

    @pytest.mark.asyncio
    async def test_match_replaces_matching_with_chat(self, router, on_matching, socket_client):
        outcome = SearchOutcome(SearchState.MATCHED, match=Match("c1", "Sam"))

        controller = await router.route(outcome)

        assert on_matching.routes() == [Route.NAME, Route.SETUP, Route.CHAT]
        assert on_matching.current.params == {"chat_id": "c1", "other_display_name": "Sam"}
        assert controller.is_open is True
        assert socket_client.emitted_events("join-chat") == [{"chatId": "c1"}]

    @pytest.mark.asyncio
    async def test_back_from_matched_chat_never_returns_to_waiting(self, router, on_matching):
        await router.route(SearchOutcome(SearchState.MATCHED, match=Match("c1", "Sam")))

        on_matching.back()

        assert on_matching.current.route == Route.SETUP

    @pytest.mark.asyncio
    async def test_timeout_returns_to_setup_with_server_message(self, router, on_matching, preferences):
        message = "Nobody is around right now, try again later"
        outcome = SearchOutcome(SearchState.TIMED_OUT, timeout=MatchTimeout(message))

        result = await router.route(outcome, preferences)

        assert result is None
        assert on_matching.routes() == [Route.NAME, Route.SETUP]
        assert on_matching.notices == [message]
        assert on_matching.current.params["radius_km"] == 5
        assert on_matching.current.params["duration_min"] == 10

    @pytest.mark.asyncio
    async def test_error_notifies_and_returns_to_setup(self, router, on_matching):
        outcome = SearchOutcome(SearchState.ERRORED, error=PermissionDeniedError())

        await router.route(outcome)

        assert on_matching.current.route == Route.SETUP
        assert on_matching.notices == ["Location permission required"]

    @pytest.mark.asyncio
    async def test_abandon_pops_matching_silently(self, router, on_matching):
        await router.route(SearchOutcome(SearchState.ABANDONED))

        assert on_matching.current.route == Route.SETUP
        assert on_matching.notices == []

    @pytest.mark.asyncio
    async def test_timeout_without_setup_below_replaces(self, connected, navigator, bus):
        navigator.push(Route.MATCHING)
        router = MatchResultRouter(connected, navigator, event_bus=bus)

        await router.route(SearchOutcome(SearchState.TIMED_OUT, timeout=MatchTimeout("none")))

        assert navigator.routes() == [Route.NAME, Route.SETUP]


class TestOpenChat:

    @pytest.mark.asyncio
    async def test_match_with_long_chat_id_opens_chat(self, router, on_matching, socket_client):
        chat_id = "c" * 200

        controller = await router.open_chat(chat_id, "Bob", replace=True)

        assert controller.chat_id == chat_id
        assert on_matching.current.route == Route.CHAT
        assert socket_client.emitted_events("join-chat") == [{"chatId": chat_id}]

    @pytest.mark.asyncio
    async def test_reopening_recent_chat_pushes(self, connected, navigator, bus, socket_client):
        navigator.push(Route.SETUP)
        navigator.push(Route.RECENT)
        router = MatchResultRouter(connected, navigator, event_bus=bus)

        controller = await router.open_chat("c9", "Robin")

        assert navigator.routes()[-2:] == [Route.RECENT, Route.CHAT]
        assert controller.chat_id == "c9"
        assert socket_client.emitted_events("join-chat") == [{"chatId": "c9"}]

    @pytest.mark.asyncio
    async def test_open_chat_while_disconnected_goes_back(self, connection, navigator, bus):
        navigator.push(Route.RECENT)
        router = MatchResultRouter(connection, navigator, event_bus=bus)

        controller = await router.open_chat("c9", "Robin")

        assert controller is None
        assert navigator.current.route == Route.RECENT
        assert navigator.notices == ["Connection to the server was lost"]


class TestSearchScenario:

    @pytest.mark.asyncio
    async def test_timeout_scenario_end_to_end(self, connected, on_matching, provider, bus, socket_client, preferences):
        """radius 5 / duration 10 with no peer: back on setup showing the server text"""
        coordinator = PoolJoinCoordinator(connected, provider, preferences, event_bus=bus)
        router = MatchResultRouter(connected, on_matching, event_bus=bus)

        await coordinator.start()
        join = socket_client.emitted_events("join-pool")[0]
        assert (join["radiusKm"], join["durationMin"]) == (5, 10)

        await socket_client.server_push("match-timeout", {"message": "No match found within 10 minutes"})
        await router.route(await coordinator.wait(), preferences)

        assert on_matching.current.route == Route.SETUP
        assert on_matching.notices == ["No match found within 10 minutes"]
        assert connected.handler_count("match-timeout") == 0

    @pytest.mark.asyncio
    async def test_match_scenario_end_to_end(self, connected, on_matching, provider, bus, socket_client, preferences):
        coordinator = PoolJoinCoordinator(connected, provider, preferences, event_bus=bus)
        router = MatchResultRouter(connected, on_matching, event_bus=bus)

        await coordinator.start()
        await socket_client.server_push("match-found", {"chatId": "c1", "otherUserName": "Sam"})
        controller = await router.route(await coordinator.wait(), preferences)

        assert controller.other_display_name == "Sam"
        assert on_matching.current.route == Route.CHAT
