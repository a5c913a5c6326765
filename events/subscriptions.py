"""
Scoped subscriptions to server-pushed events.

A Subscription groups the handlers one screen or attempt needs. Handlers are
attached on attach() and are guaranteed to be detached on release(), including
when the owning block exits through an exception:

    with Subscription(connection, {"receive-message": handler}):
        ...

Subscriptions are single-use per attach: re-entering a screen builds a fresh
one rather than re-using handlers from a previous attempt.
"""

from typing import Callable, Dict, Optional

from core.logging_config import get_logger

logger = get_logger(__name__)


class Subscription:
    """Attach/detach a group of event handlers on a connection as one unit"""

    def __init__(self, connection, handlers: Dict[str, Callable], owner: Optional[str] = None):
        self.connection = connection
        self.handlers = dict(handlers)
        self.owner = owner or "anonymous"
        self._attached = False
        self._released = False

    @property
    def active(self) -> bool:
        return self._attached and not self._released

    def attach(self) -> "Subscription":
        """Attach every handler. Attaching twice is a no-op."""
        if self._released:
            raise RuntimeError(f"Subscription for {self.owner} was already released")
        if self._attached:
            return self

        for event_name, handler in self.handlers.items():
            self.connection.on(event_name, handler)
        self._attached = True

        logger.debug(f"Attached {len(self.handlers)} handler(s) for {self.owner}",
                     extra={"extra_data": {"events": sorted(self.handlers)}})
        return self

    def release(self) -> None:
        """Detach every handler. Safe to call repeatedly."""
        if self._released:
            return
        self._released = True

        if not self._attached:
            return

        for event_name, handler in self.handlers.items():
            self.connection.off(event_name, handler)

        logger.debug(f"Released handlers for {self.owner}")

    def __enter__(self) -> "Subscription":
        return self.attach()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
