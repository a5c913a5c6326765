"""
Pool-join coordinator driving one search attempt from permission to match or timeout
"""

import asyncio
import uuid
from typing import Optional, Callable, Dict, Any

from core.exceptions import (
    SessionError,
    PermissionDeniedError,
    LocationUnavailableError,
    ConnectionLostError,
)
from core.logging_config import get_logger, log_error_with_context
from core.protocol import ClientEvents, ServerEvents, ConnectionEvents
from core.state_manager import StateManager, SearchState, TERMINAL_STATES
from device.location import Coordinates, LocationProvider
from events.event_bus import event_bus as default_event_bus, EventTypes
from events.subscriptions import Subscription
from .models import SearchPreferences, SearchRequest, SearchOutcome, Match, MatchTimeout


STATUS_REQUESTING_PERMISSION = "Requesting location..."
STATUS_ACQUIRING_LOCATION = "Getting your location..."
STATUS_WAITING = "Finding nearby people..."
STATUS_CONNECTION_LOST = "Connection lost. Still waiting for a match..."


class PoolJoinCoordinator:
    """
    Drives one search attempt:

        IDLE → REQUESTING_PERMISSION → ACQUIRING_LOCATION → JOINING → WAITING
             → MATCHED | TIMED_OUT | ERRORED   (or ABANDONED by the user)

    Exactly one join-pool is emitted per attempt. The next match-found or
    match-timeout received while WAITING resolves the attempt; an event carrying
    a requestId other than ours is treated as stale. Handlers are released on
    every terminal state, and results of suspended steps that complete after
    teardown are ignored.
    """

    def __init__(self,
                 connection,
                 location_provider: LocationProvider,
                 preferences: SearchPreferences,
                 on_outcome: Optional[Callable[[SearchOutcome], None]] = None,
                 on_status: Optional[Callable[[str], None]] = None,
                 event_bus=None):
        """
        Initialize coordinator

        Args:
            connection: Shared ConnectionManager
            location_provider: Permission and location capability
            preferences: Validated setup values
            on_outcome: Called once with the terminal outcome
            on_status: Called with user-facing status text as the attempt progresses
            event_bus: Diagnostics bus
        """
        self.logger = get_logger(__name__)
        self.connection = connection
        self.location_provider = location_provider
        self.preferences = preferences
        self.on_outcome = on_outcome
        self.on_status = on_status
        self.event_bus = event_bus or default_event_bus

        self.attempt_id = uuid.uuid4().hex[:8]
        self.state_manager = StateManager(attempt_id=self.attempt_id, event_bus=self.event_bus)

        # Join guard: set before the join-pool emit, never reset mid-attempt
        self._joined = False
        self.request: Optional[SearchRequest] = None
        self.outcome: Optional[SearchOutcome] = None
        self.status_message = ""
        self.connection_lost = False

        self._run_task: Optional[asyncio.Task] = None
        self._outcome_future: Optional[asyncio.Future] = None
        self._match_subscription: Optional[Subscription] = None
        self._connection_watch: Optional[Subscription] = None

    @property
    def state(self) -> SearchState:
        return self.state_manager.get_state()

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    async def start(self) -> SearchState:
        """
        Run the attempt up to WAITING (or an early terminal state).

        Concurrent callers share the same run, so re-entering never produces a
        second join request.

        Returns:
            The state reached when the run settles
        """
        if self._run_task is None:
            if self.state != SearchState.IDLE:
                return self.state
            self._run_task = asyncio.ensure_future(self._run())
        await asyncio.shield(self._run_task)
        return self.state

    async def wait(self) -> SearchOutcome:
        """Wait for the terminal outcome of the attempt"""
        if self.outcome is not None:
            return self.outcome
        if self._outcome_future is None:
            self._outcome_future = asyncio.get_running_loop().create_future()
        return await asyncio.shield(self._outcome_future)

    def abandon(self) -> bool:
        """
        Stop reacting to this attempt. Nothing is sent to the server.

        Returns:
            True if the attempt was still live
        """
        if self.finished:
            return False
        self.logger.info("Search attempt abandoned", extra={"extra_data": {"attempt_id": self.attempt_id}})
        return self._finish(SearchOutcome(SearchState.ABANDONED), "Abandoned by user")

    async def _run(self) -> None:
        self._joined = False
        if not self.state_manager.transition_to(SearchState.REQUESTING_PERMISSION, "Attempt started"):
            return

        self._connection_watch = Subscription(self.connection, {
            ConnectionEvents.DISCONNECT: self._handle_disconnect,
            ConnectionEvents.CONNECT: self._handle_reconnect,
        }, owner=f"search-connection:{self.attempt_id}").attach()
        self._set_status(STATUS_REQUESTING_PERMISSION)

        try:
            granted = await self.location_provider.request_permission()
            if self.finished:
                self.logger.debug("Permission result arrived after teardown, ignored")
                return
            if not granted:
                self._fail(PermissionDeniedError("location"))
                return

            self.state_manager.transition_to(SearchState.ACQUIRING_LOCATION, "Permission granted")
            self._set_status(STATUS_ACQUIRING_LOCATION)

            coordinates = await self.location_provider.current_position()
            if self.finished:
                self.logger.debug("Location fix arrived after teardown, ignored")
                return
            if coordinates is None:
                raise LocationUnavailableError("Location provider returned no fix")

            self.state_manager.transition_to(SearchState.JOINING, "Location fix acquired")
            await self.join_pool(coordinates)

        except SessionError as e:
            self._fail(e)
        except Exception as e:
            log_error_with_context(self.logger, e, "search attempt", attempt_id=self.attempt_id)
            self._fail(SessionError(str(e), {"error_type": type(e).__name__}))

    async def join_pool(self, coordinates: Coordinates) -> bool:
        """
        Emit the single join-pool request for this attempt.

        Returns:
            True if this call emitted the request, False if the join guard was already set
        """
        if self._joined:
            self.logger.debug("Join already sent for this attempt, skipping duplicate")
            return False
        if self.state != SearchState.JOINING:
            self.logger.debug(f"Cannot join pool from state {self.state.value}")
            return False
        self._joined = True

        self.request = SearchRequest.from_preferences(
            self.preferences, coordinates.latitude, coordinates.longitude
        )

        # Attach no earlier than the request is sent
        self._match_subscription = Subscription(self.connection, {
            ServerEvents.MATCH_FOUND: self._handle_match_found,
            ServerEvents.MATCH_TIMEOUT: self._handle_match_timeout,
        }, owner=f"search:{self.attempt_id}").attach()

        payload = self.request.to_payload()
        self.logger.info("Joining pool", extra={"extra_data": {
            "attempt_id": self.attempt_id,
            "radius_km": self.request.radius_km,
            "duration_min": self.request.duration_min,
            "request_id": self.request.request_id,
        }})

        # WAITING before the emit resolves so an immediate match-found is accepted
        self.state_manager.transition_to(SearchState.WAITING, "Join request sent")
        self._set_status(STATUS_WAITING)

        await self.connection.emit(ClientEvents.JOIN_POOL, payload)
        self.event_bus.emit(EventTypes.SEARCH_JOIN_SENT, {
            "attempt_id": self.attempt_id,
            "request_id": self.request.request_id
        }, source="PoolJoinCoordinator")
        return True

    def _handle_match_found(self, payload: Dict[str, Any]) -> None:
        if not self._accepts_result(ServerEvents.MATCH_FOUND, payload):
            return
        try:
            match = Match.from_payload(payload)
        except ValueError as e:
            self.logger.warning(f"Malformed match-found ignored: {e}")
            return

        self.logger.info("Match found", extra={"extra_data": {
            "attempt_id": self.attempt_id,
            "chat_id": match.chat_id,
        }})
        self._finish(SearchOutcome(SearchState.MATCHED, match=match), "Match found")

    def _handle_match_timeout(self, payload: Dict[str, Any]) -> None:
        if not self._accepts_result(ServerEvents.MATCH_TIMEOUT, payload):
            return
        timeout = MatchTimeout.from_payload(payload)
        self.logger.info("Match timed out", extra={"extra_data": {
            "attempt_id": self.attempt_id,
            "server_message": timeout.message,
        }})
        self._finish(SearchOutcome(SearchState.TIMED_OUT, timeout=timeout), "Server timeout")

    def _accepts_result(self, event_name: str, payload: Any) -> bool:
        """A result belongs to this attempt only while WAITING and with a matching requestId"""
        reason = None
        if self.state != SearchState.WAITING:
            reason = f"not waiting (state={self.state.value})"
        elif isinstance(payload, dict) and payload.get("requestId") not in (None, self.request.request_id):
            reason = f"requestId {payload.get('requestId')} != {self.request.request_id}"

        if reason is None:
            return True

        self.logger.debug(f"Stale {event_name} dropped: {reason}")
        self.event_bus.emit(EventTypes.SEARCH_STALE_EVENT, {
            "attempt_id": self.attempt_id,
            "event": event_name,
            "reason": reason
        }, source="PoolJoinCoordinator")
        return False

    def _handle_disconnect(self, payload: Any = None) -> None:
        if self.finished:
            return
        if self.state == SearchState.WAITING:
            # Surfaced only; a late match/timeout or abandon() resolves the attempt
            self.connection_lost = True
            self.logger.warning("Connection lost while waiting for a match")
            self._set_status(STATUS_CONNECTION_LOST)
            return
        self._fail(ConnectionLostError("Connection lost before joining the pool"))

    def _handle_reconnect(self, payload: Any = None) -> None:
        if self.state == SearchState.WAITING and self.connection_lost:
            self.connection_lost = False
            self.logger.info("Connection restored while waiting for a match")
            self._set_status(STATUS_WAITING)

    def _fail(self, error: SessionError) -> None:
        self.logger.warning(f"Search attempt failed: {error}", extra={"extra_data": {
            "attempt_id": self.attempt_id,
            "error_type": type(error).__name__,
        }})
        self._finish(SearchOutcome(SearchState.ERRORED, error=error), str(error))

    def _finish(self, outcome: SearchOutcome, reason: str) -> bool:
        if not self.state_manager.transition_to(outcome.state, reason):
            return False

        self._release()
        self.outcome = outcome

        event_type = {
            SearchState.MATCHED: EventTypes.SEARCH_MATCHED,
            SearchState.TIMED_OUT: EventTypes.SEARCH_TIMED_OUT,
            SearchState.ERRORED: EventTypes.SEARCH_FAILED,
            SearchState.ABANDONED: EventTypes.SEARCH_ABANDONED,
        }[outcome.state]
        self.event_bus.emit(event_type, {"attempt_id": self.attempt_id, **outcome.to_dict()},
                            source="PoolJoinCoordinator")

        if self._outcome_future is not None and not self._outcome_future.done():
            self._outcome_future.set_result(outcome)

        if self.on_outcome:
            try:
                self.on_outcome(outcome)
            except Exception as e:
                self.logger.error(f"Error in outcome callback: {e}", exc_info=True)
        return True

    def _release(self) -> None:
        for subscription in (self._match_subscription, self._connection_watch):
            if subscription is not None:
                subscription.release()

    def _set_status(self, message: str) -> None:
        self.status_message = message
        if self.on_status:
            try:
                self.on_status(message)
            except Exception as e:
                self.logger.error(f"Error in status callback: {e}", exc_info=True)

    def get_stats(self) -> Dict[str, Any]:
        """Get attempt summary"""
        return {
            "attempt_id": self.attempt_id,
            "state": self.state.value,
            "joined": self._joined,
            "request_id": self.request.request_id if self.request else None,
            "connection_lost": self.connection_lost,
            "transitions": self.state_manager.get_transition_history(),
        }
