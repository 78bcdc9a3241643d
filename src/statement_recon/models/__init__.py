"""Data models for statement import."""

from .transaction import (
    ParsedTransaction,
    ParseResult,
    MatchType,
    MatchedRecord,
    ImportAction,
    ImportCandidate,
    ApplyOutcome,
    ApplyReport,
    ImportSummary,
)

__all__ = [
    "ParsedTransaction",
    "ParseResult",
    "MatchType",
    "MatchedRecord",
    "ImportAction",
    "ImportCandidate",
    "ApplyOutcome",
    "ApplyReport",
    "ImportSummary",
]
