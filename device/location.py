"""
Location capability used by the pool-join coordinator.

Permission and fix acquisition are opaque async operations; the coordinator only
needs a yes/no permission answer and a latitude/longitude pair.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from core.exceptions import LocationUnavailableError
from core.logging_config import get_logger


@dataclass(frozen=True)
class Coordinates:
    """A location fix in decimal degrees"""
    latitude: float
    longitude: float

    def __post_init__(self):
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"Latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"Longitude out of range: {self.longitude}")


class LocationProvider(ABC):
    """Base class for location capabilities"""

    @abstractmethod
    async def request_permission(self) -> bool:
        """Ask for foreground location permission. Returns True when granted."""
        pass

    @abstractmethod
    async def current_position(self) -> Coordinates:
        """
        Acquire a location fix.

        Raises:
            LocationUnavailableError: If no fix can be obtained
        """
        pass


class StaticLocationProvider(LocationProvider):
    """Location provider backed by fixed coordinates (console client, tests)"""

    def __init__(self,
                 latitude: Optional[float] = None,
                 longitude: Optional[float] = None,
                 permission_granted: bool = True):
        self.logger = get_logger(__name__)
        self.latitude = latitude
        self.longitude = longitude
        self.permission_granted = permission_granted

    @classmethod
    def from_config(cls, config: dict) -> "StaticLocationProvider":
        """Build from LOCATION_CONFIG-style settings with string coordinates"""
        def parse(value):
            if value is None or str(value).strip() == "":
                return None
            return float(value)

        return cls(
            latitude=parse(config.get("latitude")),
            longitude=parse(config.get("longitude")),
            permission_granted=config.get("permission_granted", True),
        )

    async def request_permission(self) -> bool:
        return self.permission_granted

    async def current_position(self) -> Coordinates:
        if self.latitude is None or self.longitude is None:
            raise LocationUnavailableError("No coordinates configured")
        try:
            return Coordinates(self.latitude, self.longitude)
        except ValueError as e:
            raise LocationUnavailableError(str(e)) from e
