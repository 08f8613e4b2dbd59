"""Utility entry points for supplementary track matching tooling."""

from .match_map import build_match_map

__all__ = ["build_match_map"]
