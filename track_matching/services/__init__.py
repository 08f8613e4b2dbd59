"""Service layer package.

Exports the background matching service used by presentation layers.
"""

from .match_service import MatchRequest, MatchService

__all__ = ["MatchRequest", "MatchService"]
