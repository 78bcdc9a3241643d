"""Custom exceptions for the statement import application."""

from typing import Optional


class StatementReconError(Exception):
    """Base exception for statement import errors."""

    pass


class ConfigurationError(StatementReconError):
    """Error in configuration."""

    pass


class MappingError(ConfigurationError):
    """Invalid or unknown column mapping."""

    pass


class RegistryError(StatementReconError):
    """Error registering a statement parser."""

    pass


class ParseConfigurationError(ConfigurationError):
    """A statement could not be parsed because the request was unusable."""

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        super().__init__(message)
        self.errors = list(errors or [message])


class NoParserAvailableError(StatementReconError):
    """No registered parser understands the statement file."""

    def __init__(self, message: str, format_id: Optional[str] = None):
        super().__init__(message)
        self.format_id = format_id


class LedgerError(StatementReconError):
    """The ledger rejected a create or update."""

    pass


class ReportGenerationError(StatementReconError):
    """Error generating Excel report."""

    pass
