"""
Match result router: turns a search outcome into navigation and a chat session
"""

from typing import Callable, Optional

from chat.controller import ChatSessionController
from core.exceptions import ConnectionLostError
from core.logging_config import get_logger
from core.navigation import Navigator, Route
from core.state_manager import SearchState
from events.event_bus import event_bus as default_event_bus
from .models import SearchOutcome, SearchPreferences


class MatchResultRouter:
    """Resolves MATCHED / TIMED_OUT / ERRORED / ABANDONED outcomes"""

    def __init__(self,
                 connection,
                 navigator: Navigator,
                 event_bus=None,
                 chat_factory: Optional[Callable[..., ChatSessionController]] = None):
        self.logger = get_logger(__name__)
        self.connection = connection
        self.navigator = navigator
        self.event_bus = event_bus or default_event_bus
        self.chat_factory = chat_factory or ChatSessionController

    async def route(self,
                    outcome: SearchOutcome,
                    preferences: Optional[SearchPreferences] = None) -> Optional[ChatSessionController]:
        """
        Navigate away from the matching screen according to the outcome.

        Returns:
            The opened chat controller for a match, otherwise None
        """
        if outcome.state == SearchState.MATCHED:
            return await self.open_chat(outcome.match.chat_id,
                                        outcome.match.other_display_name,
                                        replace=True,
                                        preferences=preferences)

        if outcome.state in (SearchState.TIMED_OUT, SearchState.ERRORED):
            # Server text is shown verbatim
            self.navigator.notify(outcome.user_message)
            self._return_to_setup(preferences)
            return None

        if outcome.state == SearchState.ABANDONED:
            if self.navigator.current.route == Route.MATCHING:
                self.navigator.back()
            return None

        self.logger.warning(f"Outcome in non-terminal state ignored: {outcome.state.value}")
        return None

    async def open_chat(self,
                        chat_id: str,
                        other_display_name: str,
                        replace: bool = False,
                        preferences: Optional[SearchPreferences] = None) -> Optional[ChatSessionController]:
        """
        Start a chat session and show the chat screen.

        With replace=True the current screen (matching) is swapped out so back
        never returns to a stale waiting state. Re-opening a recent chat pushes.
        """
        controller = self.chat_factory(
            self.connection,
            chat_id,
            other_display_name=other_display_name,
            event_bus=self.event_bus,
        )

        params = {"chat_id": chat_id, "other_display_name": other_display_name}
        if replace:
            self.navigator.replace(Route.CHAT, **params)
        else:
            self.navigator.push(Route.CHAT, **params)

        try:
            await controller.open()
        except ConnectionLostError as e:
            self.logger.warning(f"Could not join chat {chat_id}: {e}")
            self.navigator.notify(e.user_message)
            if replace:
                self._return_to_setup(preferences)
            else:
                self.navigator.back()
            return None

        return controller

    def _return_to_setup(self, preferences: Optional[SearchPreferences]) -> None:
        params = {}
        if preferences is not None:
            params = {
                "display_name": preferences.display_name,
                "radius_km": preferences.radius_km,
                "duration_min": preferences.duration_min,
            }

        stack = self.navigator.stack
        if len(stack) > 1 and stack[-2].route == Route.SETUP:
            self.navigator.back()
            self.navigator.current.params.update(params)
        else:
            self.navigator.replace(Route.SETUP, **params)
