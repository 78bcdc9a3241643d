"""Test fixtures and utilities."""

from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from statement_recon.models.transaction import MatchedRecord, ParsedTransaction
from statement_recon.parsers.column_mapping import ColumnMapping
from statement_recon.parsers.registry import ParserRegistry
from statement_recon.parsers.csv_parser import CsvStatementParser

SIGNED_STATEMENT = """Date,Description,Amount
15/06/2025,Client Payment,1500.00
16/06/2025,Office Supplies,-45.99
"""

SPLIT_STATEMENT = """Date,Description,Money out,Money in
15/06/2025,ACME Corp,,1500.00
"""


@pytest.fixture
def write_csv(tmp_path):
    """Write CSV text to a file under tmp_path and return its path."""

    def _write(content: str, name: str = "statement.csv", encoding: str = "utf-8") -> Path:
        path = tmp_path / name
        path.write_text(content, encoding=encoding)
        return path

    return _write


@pytest.fixture
def signed_mapping() -> ColumnMapping:
    """Mapping for a Date,Description,Amount statement."""
    return ColumnMapping(
        date_column="Date",
        description_column="Description",
        amount_column="Amount",
        date_format="dd/MM/yyyy",
    )


@pytest.fixture
def split_mapping() -> ColumnMapping:
    """Mapping for a statement with separate money in/out columns."""
    return ColumnMapping(
        date_column="Date",
        description_column="Description",
        income_column="Money in",
        expense_column="Money out",
        date_format="dd/MM/yyyy",
    )


@pytest.fixture
def csv_parser() -> CsvStatementParser:
    return CsvStatementParser()


@pytest.fixture
def registry(csv_parser) -> ParserRegistry:
    """Isolated registry holding only the CSV parser."""
    registry = ParserRegistry()
    registry.register(csv_parser)
    return registry


def make_txn(
    day: date = date(2025, 6, 15),
    description: str = "Client Payment",
    amount: str = "1500.00",
    category=None,
) -> ParsedTransaction:
    return ParsedTransaction(
        date=day, description=description, amount=Decimal(amount), category=category
    )


def make_record(
    record_id,
    day: date = date(2025, 6, 15),
    description: str = "Client Payment",
    amount: str = "1500.00",
    category=None,
) -> MatchedRecord:
    return MatchedRecord(
        id=record_id, date=day, description=description, amount=Decimal(amount), category=category
    )
