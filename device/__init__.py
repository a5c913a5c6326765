"""
Device capabilities (location)
"""

from .location import Coordinates, LocationProvider, StaticLocationProvider

__all__ = ["Coordinates", "LocationProvider", "StaticLocationProvider"]
