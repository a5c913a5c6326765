"""
Pool matching: search attempts and their resolution
"""

from .coordinator import PoolJoinCoordinator
from .models import SearchPreferences, SearchRequest, Match, MatchTimeout, SearchOutcome
from .router import MatchResultRouter

__all__ = [
    "PoolJoinCoordinator",
    "MatchResultRouter",
    "SearchPreferences",
    "SearchRequest",
    "Match",
    "MatchTimeout",
    "SearchOutcome",
]
