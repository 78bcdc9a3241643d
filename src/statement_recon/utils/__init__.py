"""Utility modules."""

from .exceptions import (
    StatementReconError,
    ConfigurationError,
    MappingError,
    RegistryError,
    ParseConfigurationError,
    NoParserAvailableError,
    LedgerError,
    ReportGenerationError,
)
from .logging_config import setup_logging

__all__ = [
    "StatementReconError",
    "ConfigurationError",
    "MappingError",
    "RegistryError",
    "ParseConfigurationError",
    "NoParserAvailableError",
    "LedgerError",
    "ReportGenerationError",
    "setup_logging",
]
