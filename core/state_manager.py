"""
Search attempt state manager enforcing valid transitions and keeping history
"""

import time
from enum import Enum
from typing import Dict, Any, Callable, List
from datetime import datetime

from core.logging_config import get_logger
from events.event_bus import event_bus as default_event_bus, EventTypes


class SearchState(Enum):
    """States of one pool-matching attempt"""
    IDLE = "idle"
    REQUESTING_PERMISSION = "requesting_permission"
    ACQUIRING_LOCATION = "acquiring_location"
    JOINING = "joining"
    WAITING = "waiting"
    MATCHED = "matched"
    TIMED_OUT = "timed_out"
    ERRORED = "errored"
    ABANDONED = "abandoned"


TERMINAL_STATES = frozenset({
    SearchState.MATCHED,
    SearchState.TIMED_OUT,
    SearchState.ERRORED,
    SearchState.ABANDONED,
})


class StateTransition:
    """Represents a state transition"""
    def __init__(self, from_state: SearchState, to_state: SearchState, reason: str = ""):
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason
        self.timestamp = time.time()
        self.datetime = datetime.now()

    def __str__(self):
        return f"{self.from_state.value} → {self.to_state.value} ({self.reason})"


class StateManager:
    """Manages the state of one search attempt and rejects invalid transitions"""

    _PRE_WAIT_EXITS = [SearchState.ERRORED, SearchState.ABANDONED]

    VALID_TRANSITIONS = {
        SearchState.IDLE: [SearchState.REQUESTING_PERMISSION, SearchState.ABANDONED],
        SearchState.REQUESTING_PERMISSION: [SearchState.ACQUIRING_LOCATION] + _PRE_WAIT_EXITS,
        SearchState.ACQUIRING_LOCATION: [SearchState.JOINING] + _PRE_WAIT_EXITS,
        SearchState.JOINING: [SearchState.WAITING] + _PRE_WAIT_EXITS,
        SearchState.WAITING: [SearchState.MATCHED, SearchState.TIMED_OUT, SearchState.ERRORED, SearchState.ABANDONED],
        # Terminal states
        SearchState.MATCHED: [],
        SearchState.TIMED_OUT: [],
        SearchState.ERRORED: [],
        SearchState.ABANDONED: [],
    }

    def __init__(self, attempt_id: str = "", event_bus=None):
        self.logger = get_logger(__name__)
        self.attempt_id = attempt_id
        self.event_bus = event_bus or default_event_bus
        self.current_state = SearchState.IDLE

        self.transitions: List[StateTransition] = []
        self.state_listeners: List[Callable[[SearchState, SearchState], None]] = []
        self.last_error = None

    def get_state(self) -> SearchState:
        return self.current_state

    def is_terminal(self) -> bool:
        return self.current_state in TERMINAL_STATES

    def transition_to(self, new_state: SearchState, reason: str = "") -> bool:
        """
        Transition to a new state

        Args:
            new_state: Target state
            reason: Reason for transition

        Returns:
            True if transition successful, False if invalid
        """
        if not self._is_valid_transition(self.current_state, new_state):
            self.logger.debug(f"Invalid state transition ignored: {self.current_state.value} → {new_state.value}")
            return False

        transition = StateTransition(self.current_state, new_state, reason)
        self.transitions.append(transition)

        old_state = self.current_state
        self.current_state = new_state

        if new_state == SearchState.ERRORED:
            self.last_error = reason

        self.logger.info(f"Search state: {transition}", extra={"extra_data": {"attempt_id": self.attempt_id}})

        self.event_bus.emit(EventTypes.SEARCH_STATE_CHANGED, {
            "attempt_id": self.attempt_id,
            "from_state": old_state.value,
            "to_state": new_state.value,
            "reason": reason
        }, source="StateManager")

        self._notify_listeners(old_state, new_state)
        return True

    def add_listener(self, listener: Callable[[SearchState, SearchState], None]):
        """Add state change listener"""
        self.state_listeners.append(listener)

    def _is_valid_transition(self, from_state: SearchState, to_state: SearchState) -> bool:
        return to_state in self.VALID_TRANSITIONS.get(from_state, [])

    def _notify_listeners(self, old_state: SearchState, new_state: SearchState):
        for listener in list(self.state_listeners):
            try:
                listener(old_state, new_state)
            except Exception as e:
                self.logger.error(f"Error in state listener: {e}", exc_info=True)

    def get_transition_history(self) -> List[Dict[str, Any]]:
        """Get the transitions of this attempt"""
        return [
            {
                "from": t.from_state.value,
                "to": t.to_state.value,
                "reason": t.reason,
                "timestamp": t.timestamp,
                "datetime": t.datetime.isoformat()
            }
            for t in self.transitions
        ]
