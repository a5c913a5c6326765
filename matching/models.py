"""
Data models for pool matching
"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from config import MATCHING_CONFIG
from core.exceptions import InvalidSearchRequestError, SessionError
from core.state_manager import SearchState
from security import InputSanitizer, InputValidationError

DEFAULT_TIMEOUT_MESSAGE = "No one nearby right now. Try a larger radius or a longer duration."


def _coerce_int(field_name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidSearchRequestError(field_name, value, "must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise InvalidSearchRequestError(field_name, value, "must be an integer")


def _check_range(field_name: str, value: int, limits: Dict[str, int]) -> int:
    if not limits["min"] <= value <= limits["max"]:
        raise InvalidSearchRequestError(field_name, value, f"must be between {limits['min']} and {limits['max']}")
    if (value - limits["min"]) % limits["step"] != 0:
        raise InvalidSearchRequestError(field_name, value, f"must be a multiple of {limits['step']}")
    return value


@dataclass(frozen=True)
class SearchPreferences:
    """The user's setup choices, validated before an attempt starts"""
    display_name: str
    radius_km: int
    duration_min: int

    @classmethod
    def create(cls,
               display_name: Optional[str] = None,
               radius_km: Any = None,
               duration_min: Any = None) -> "SearchPreferences":
        """
        Validate and normalize setup values.

        Raises:
            InvalidSearchRequestError: If a value is missing, non-integer or out of range
        """
        radius_limits = MATCHING_CONFIG["radius_km"]
        duration_limits = MATCHING_CONFIG["duration_min"]

        radius = radius_limits["default"] if radius_km is None else _coerce_int("radiusKm", radius_km)
        duration = duration_limits["default"] if duration_min is None else _coerce_int("durationMin", duration_min)

        try:
            name = InputSanitizer.sanitize_display_name(display_name, MATCHING_CONFIG["default_display_name"])
        except InputValidationError as e:
            raise InvalidSearchRequestError("displayName", display_name, str(e)) from e

        return cls(
            display_name=name,
            radius_km=_check_range("radiusKm", radius, radius_limits),
            duration_min=_check_range("durationMin", duration, duration_limits),
        )


@dataclass(frozen=True)
class SearchRequest:
    """A request to join the matching pool"""
    display_name: str
    latitude: float
    longitude: float
    radius_km: int
    duration_min: int
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def from_preferences(cls, preferences: SearchPreferences, latitude: float, longitude: float,
                         request_id: Optional[str] = None) -> "SearchRequest":
        kwargs = {"request_id": request_id} if request_id else {}
        return cls(
            display_name=preferences.display_name,
            latitude=float(latitude),
            longitude=float(longitude),
            radius_km=int(preferences.radius_km),
            duration_min=int(preferences.duration_min),
            **kwargs,
        )

    def to_payload(self) -> Dict[str, Any]:
        """Wire payload for join-pool; numeric fields stay numeric"""
        return {
            "displayName": self.display_name,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "radiusKm": self.radius_km,
            "durationMin": self.duration_min,
            "requestId": self.request_id,
        }


@dataclass(frozen=True)
class Match:
    """A resolved pairing"""
    chat_id: str
    other_display_name: str
    request_id: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "Match":
        """Parse match-found. Raises ValueError when chatId is missing."""
        if not isinstance(data, dict) or not data.get("chatId"):
            raise ValueError(f"match-found without chatId: {data!r}")
        other = data.get("otherDisplayName") or data.get("otherUserName") or MATCHING_CONFIG["default_display_name"]
        return cls(
            chat_id=str(data["chatId"]),
            other_display_name=str(other),
            request_id=data.get("requestId"),
        )


@dataclass(frozen=True)
class MatchTimeout:
    """A resolved non-pairing"""
    message: str
    request_id: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Any) -> "MatchTimeout":
        if not isinstance(data, dict):
            data = {}
        return cls(
            message=str(data.get("message") or DEFAULT_TIMEOUT_MESSAGE),
            request_id=data.get("requestId"),
        )


@dataclass
class SearchOutcome:
    """Terminal result of one search attempt"""
    state: SearchState
    match: Optional[Match] = None
    timeout: Optional[MatchTimeout] = None
    error: Optional[SessionError] = None

    @property
    def user_message(self) -> Optional[str]:
        if self.timeout is not None:
            return self.timeout.message
        if self.error is not None:
            return self.error.user_message
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "chat_id": self.match.chat_id if self.match else None,
            "other_display_name": self.match.other_display_name if self.match else None,
            "message": self.user_message,
        }
