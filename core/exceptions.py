"""
Custom exceptions for the session protocol
"""

from typing import Optional, Dict, Any


class SessionError(Exception):
    """Base exception for all session-related errors"""
    user_message = "Something went wrong"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class PermissionDeniedError(SessionError):
    """Raised when the user declines a required device capability"""
    user_message = "Location permission required"

    def __init__(self, capability: str = "location", details: Optional[Dict[str, Any]] = None):
        self.capability = capability
        super().__init__(f"Permission denied for {capability}", details)


class LocationUnavailableError(SessionError):
    """Raised when no location fix could be obtained"""
    user_message = "Could not determine your location"


class ConnectionLostError(SessionError):
    """Raised when the event channel is not connected"""
    user_message = "Connection to the server was lost"


class InvalidSearchRequestError(SessionError):
    """Raised when setup values fall outside the allowed ranges"""

    def __init__(self, field_name: str, value: Any, message: str):
        self.field_name = field_name
        self.value = value
        super().__init__(f"Invalid {field_name}={value!r}: {message}", {"field": field_name})

    @property
    def user_message(self) -> str:
        return str(self)


class ChatError(SessionError):
    """Base exception for chat session errors"""
    pass


class MessageTooLongError(ChatError):
    """Raised when an outgoing message exceeds the maximum length"""

    def __init__(self, length: int, limit: int):
        self.length = length
        self.limit = limit
        super().__init__(f"Message too long: {length} > {limit}")

    @property
    def user_message(self) -> str:
        return f"Messages are limited to {self.limit} characters"
