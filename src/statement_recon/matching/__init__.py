"""Duplicate matching engine."""

from .engine import DEFAULT_ACTIONS, MatchingEngine, default_action

__all__ = [
    "DEFAULT_ACTIONS",
    "MatchingEngine",
    "default_action",
]
