"""
Statement parser interface, format detection and the parser registry.

Parsers are registered explicitly. When several claim the same format id the
highest priority wins and ties fall back to registration order.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union
import logging

from ..models.transaction import ParsedTransaction, ParseResult
from ..utils.exceptions import RegistryError
from .column_mapping import ParseRequest

logger = logging.getLogger(__name__)

# Band reserved for parsers shipped with this package. External parsers pick
# a priority above the band to override them or below it to act as fallback.
BUILTIN_PRIORITY_MIN = 10
BUILTIN_PRIORITY_MAX = 49
CSV_PARSER_PRIORITY = 10

FileInput = Union[str, Path]


class StatementParser(ABC):
    """Abstract base class for statement parsers."""

    #: Stable format identifier, e.g. "csv"
    format_id: str = ""
    #: Identifier and display name of the importer
    importer_id: str = ""
    importer_name: str = ""
    priority: int = BUILTIN_PRIORITY_MIN
    #: File extensions claimed, lower case with leading dot
    supported_file_types: tuple[str, ...] = ()
    requires_column_mapping: bool = True

    @property
    def supported_bank_formats(self) -> tuple[str, ...]:
        """Bank-format sub-identifiers this parser can pre-configure."""
        return ()

    def detect_format(self, file: Optional[FileInput]) -> Optional[str]:
        """
        Return this parser's format id if it claims the file's extension.

        Args:
            file: Path to the statement (may be None)

        Returns:
            Format id, or None when the file is missing or not claimed
        """
        suffix = file_suffix(file)
        if suffix and suffix in self.supported_file_types:
            return self.format_id
        return None

    @abstractmethod
    def parse(self, request: ParseRequest) -> ParseResult:
        """
        Parse a statement described by ``request``.

        Never raises for bad input; problems are reported in ``errors``.
        """
        pass

    @abstractmethod
    def preview(self, file: FileInput, max_rows: int = 10) -> list[ParsedTransaction]:
        """Return up to ``max_rows`` transactions from the head of the file."""
        pass


@dataclass
class ParserLookup:
    """Outcome of resolving a file to a parser."""

    format_id: Optional[str] = None
    parser: Optional[StatementParser] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.parser is not None


@dataclass
class _Registration:
    parser: StatementParser
    sequence: int


class ParserRegistry:
    """
    Registry mapping format ids to statement parser implementations.

    Instances are independent; tests build their own.
    """

    def __init__(self) -> None:
        self._registrations: list[_Registration] = []

    def register(self, parser: StatementParser) -> StatementParser:
        """
        Register a parser.

        Raises:
            RegistryError: If the parser has no format id or a non-integer priority
        """
        if not parser.format_id:
            raise RegistryError(f"{type(parser).__name__} has no format_id")
        if not isinstance(parser.priority, int) or isinstance(parser.priority, bool):
            raise RegistryError(
                f"{type(parser).__name__} priority must be an int, got {parser.priority!r}"
            )

        self._registrations.append(_Registration(parser, len(self._registrations)))
        logger.debug(
            f"Registered parser {parser.importer_id or type(parser).__name__} "
            f"for format '{parser.format_id}' (priority {parser.priority})"
        )
        return parser

    def unregister(self, parser: StatementParser) -> bool:
        """Remove a parser; returns False if it was not registered."""
        for registration in self._registrations:
            if registration.parser is parser:
                self._registrations.remove(registration)
                return True
        return False

    @property
    def parsers(self) -> list[StatementParser]:
        """All parsers in registration order."""
        return [r.parser for r in self._registrations]

    @property
    def format_ids(self) -> list[str]:
        seen: list[str] = []
        for registration in self._registrations:
            if registration.parser.format_id not in seen:
                seen.append(registration.parser.format_id)
        return seen

    def parsers_for(self, format_id: Optional[str]) -> list[StatementParser]:
        """Parsers claiming ``format_id``, highest priority first."""
        if not format_id:
            return []
        claimants = [r for r in self._registrations if r.parser.format_id == format_id]
        claimants.sort(key=lambda r: (-r.parser.priority, r.sequence))
        return [r.parser for r in claimants]

    def select_parser(self, format_id: Optional[str]) -> Optional[StatementParser]:
        """Highest-priority parser for ``format_id``, or None."""
        claimants = self.parsers_for(format_id)
        return claimants[0] if claimants else None

    def detect_format(self, file: Optional[FileInput]) -> Optional[str]:
        """
        Determine the format id implied by the file's extension.

        The extension is compared case-insensitively. A missing file yields None.
        """
        if file is None:
            return None

        for registration in sorted(
            self._registrations, key=lambda r: (-r.parser.priority, r.sequence)
        ):
            format_id = registration.parser.detect_format(file)
            if format_id:
                return format_id
        return None

    def lookup(self, file: Optional[FileInput]) -> ParserLookup:
        """
        Resolve a file to the parser that should read it.

        Never raises; a failed lookup carries a "no parser available" message.
        """
        format_id = self.detect_format(file)
        if format_id is None:
            logger.warning(f"No parser available: unrecognized file {file}")
            return ParserLookup(error=f"No parser available for file: {file}")

        parser = self.select_parser(format_id)
        if parser is None:
            logger.warning(f"No parser available for format '{format_id}'")
            return ParserLookup(
                format_id=format_id,
                error=f"No parser available for format: {format_id}",
            )

        return ParserLookup(format_id=format_id, parser=parser)

    def describe(self) -> list[dict[str, Any]]:
        """Summary of registered parsers, highest priority first."""
        ordered = sorted(self._registrations, key=lambda r: (-r.parser.priority, r.sequence))
        return [
            {
                "format_id": r.parser.format_id,
                "importer_id": r.parser.importer_id,
                "importer_name": r.parser.importer_name,
                "priority": r.parser.priority,
                "file_types": list(r.parser.supported_file_types),
                "bank_formats": list(r.parser.supported_bank_formats),
            }
            for r in ordered
        ]

    def __len__(self) -> int:
        return len(self._registrations)


def file_suffix(file: Optional[FileInput]) -> Optional[str]:
    """Lower-cased extension of ``file`` including the dot, or None."""
    name = getattr(file, "name", file)
    if not isinstance(name, (str, Path)):
        return None
    suffix = Path(name).suffix
    return suffix.lower() or None


def default_registry(**csv_options: Any) -> ParserRegistry:
    """Create a registry holding the built-in parsers."""
    from .csv_parser import CsvStatementParser

    registry = ParserRegistry()
    registry.register(CsvStatementParser(**csv_options))
    return registry
