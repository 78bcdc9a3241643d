"""Statement parsers, column mappings and the parser registry."""

from .column_mapping import (
    BANK_PRESETS,
    BankFormat,
    ColumnMapping,
    ParseRequest,
    detect_bank_format,
    resolve_preset,
    to_strptime,
)
from .registry import (
    BUILTIN_PRIORITY_MAX,
    BUILTIN_PRIORITY_MIN,
    ParserLookup,
    ParserRegistry,
    StatementParser,
    default_registry,
)
from .csv_parser import CsvStatementParser

__all__ = [
    "BANK_PRESETS",
    "BankFormat",
    "ColumnMapping",
    "ParseRequest",
    "detect_bank_format",
    "resolve_preset",
    "to_strptime",
    "BUILTIN_PRIORITY_MAX",
    "BUILTIN_PRIORITY_MIN",
    "ParserLookup",
    "ParserRegistry",
    "StatementParser",
    "default_registry",
    "CsvStatementParser",
]
