"""
CSV bank statement parser.
Reads statement exports with a configured column mapping and converts each
row into a signed ParsedTransaction.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Optional
import io
import logging
import re

import pandas as pd

from ..config import StatementReconConfig
from ..models.transaction import ParsedTransaction, ParseResult
from ..utils.exceptions import MappingError
from .column_mapping import (
    BankFormat,
    ColumnMapping,
    ParseRequest,
    OPT_DELIMITER,
    OPT_ENCODING,
    detect_bank_format,
    to_strptime,
)
from .registry import CSV_PARSER_PRIORITY, FileInput, StatementParser

logger = logging.getLogger(__name__)

# Stripped from amount cells before conversion
CURRENCY_SYMBOLS = ("GBP", "£")

# Optional sign, digits with optional comma grouping, optional fraction
AMOUNT_PATTERN = re.compile(r"^[+-]?(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?$|^[+-]?\.\d+$")


class CsvStatementParser(StatementParser):
    """
    Parser for CSV bank statement exports.

    Column positions are resolved from the header row by exact name, so one
    parser serves every bank; the bank-specific part lives in the mapping.
    Malformed rows are reported in ``ParseResult.errors`` and never abort
    the parse.
    """

    format_id = "csv"
    importer_id = "csv-generic"
    importer_name = "CSV Bank Statement"
    priority = CSV_PARSER_PRIORITY
    supported_file_types = (".csv",)
    requires_column_mapping = True

    def __init__(self, config: Optional[StatementReconConfig] = None):
        """
        Initialize the parser with configuration.

        Args:
            config: Application configuration object (defaults used if None)
        """
        self.config = config or StatementReconConfig()

    @property
    def supported_bank_formats(self) -> tuple[str, ...]:
        return tuple(bank.format_id for bank in BankFormat)

    def parse(self, request: ParseRequest) -> ParseResult:
        """
        Parse a CSV statement described by ``request``.

        Args:
            request: Parse request carrying the column mapping and file location

        Returns:
            ParseResult with transactions in file order and one error per
            dropped row. Configuration and structural failures produce a
            single error and no transactions.
        """
        file = request.file_location
        if file is None or (isinstance(file, str) and not file.strip()):
            return ParseResult.failure("No file location provided for CSV parsing", self.format_id)

        problems = request.validate()
        if problems:
            return ParseResult.failure(
                "Invalid column mapping: " + "; ".join(problems), self.format_id
            )

        try:
            date_format = to_strptime(request.date_format)
        except MappingError as e:
            return ParseResult.failure(str(e), self.format_id)

        logger.info(f"Parsing CSV statement: {_display_name(file)}")

        encoding = request.get_option(OPT_ENCODING) or self.config.input.encoding
        delimiter = request.get_option(OPT_DELIMITER) or self.config.input.delimiter

        # LookupError is an unknown encoding; decode and pandas errors are ValueErrors
        try:
            frame = self._read_frame(file, encoding, delimiter)
        except (OSError, LookupError, ValueError) as e:
            logger.error(f"Failed to read CSV file: {e}")
            return ParseResult.failure(f"Failed to read CSV file: {e}", self.format_id)

        if frame is None:
            return ParseResult.failure("CSV file is empty or has no header row", self.format_id)
        df, line_numbers, unterminated = frame

        missing = [c for c in request.referenced_columns() if c not in df.columns]
        if missing:
            return ParseResult.failure(
                "Column not found in CSV headers: " + ", ".join(missing), self.format_id
            )

        result = self._process_dataframe(df, request, date_format, line_numbers, unterminated)
        logger.info(
            f"Extracted {len(result.transactions)} transactions from CSV "
            f"({len(result.errors)} rows skipped)"
        )
        return result

    def parse_file(
        self, file_path: FileInput, mapping: ColumnMapping, **options: Any
    ) -> ParseResult:
        """Parse ``file_path`` with ``mapping``."""
        return self.parse(mapping.to_parse_request(file_location=file_path, **options))

    def preview(
        self,
        file: FileInput,
        max_rows: Optional[int] = None,
        mapping: Optional[ColumnMapping] = None,
    ) -> list[ParsedTransaction]:
        """
        Return up to ``max_rows`` transactions from the head of the file.

        Without a mapping the bank is guessed from the header row. Never raises:
        anything that would fail a full parse yields a partial or empty preview.
        """
        limit = self.config.input.preview_rows if max_rows is None else max_rows
        if limit <= 0 or file is None:
            return []

        try:
            if hasattr(file, "read"):
                file = io.StringIO(self._read_text(file, self.config.input.encoding))

            if mapping is None:
                headers = self.read_headers(file)
                if hasattr(file, "seek"):
                    file.seek(0)
                bank = detect_bank_format(headers)
                if bank is None:
                    logger.debug(f"Preview: no bank preset matches headers {headers}")
                    return []
                mapping = ColumnMapping.for_bank(bank)

            result = self.parse(mapping.to_parse_request(file_location=file))
            return result.transactions[:limit]
        except Exception as e:
            logger.debug(f"Preview failed for {_display_name(file)}: {e}")
            return []

    def read_headers(self, file: FileInput) -> list[str]:
        """Header names of a CSV file (trimmed), or an empty list."""
        text = self._read_text(file, self.config.input.encoding)
        if not text.strip():
            return []
        header = pd.read_csv(
            io.StringIO(text), sep=self.config.input.delimiter, nrows=0, dtype=str
        )
        return [str(c).strip() for c in header.columns]

    def _read_frame(
        self, file: Any, encoding: str, delimiter: str
    ) -> Optional[tuple[pd.DataFrame, list[int], list[int]]]:
        """
        Load the CSV into a DataFrame of strings.

        Each physical line is one record, and a line with an unclosed quote is
        set aside so it cannot swallow the lines after it. Rows with extra
        fields are truncated to the header width.

        Returns:
            Tuple of (DataFrame, line number of each DataFrame row, line
            numbers with an unclosed quote), or None if the file has no
            header row

        Raises:
            pd.errors.ParserError: If the header row is unterminated or pandas
                reads a different number of rows than were split out
        """
        text = self._read_text(file, encoding)
        records, unterminated = _split_records(text, delimiter)
        if not records:
            if unterminated:
                raise pd.errors.ParserError("Unterminated quoted field in header row")
            return None

        header_line, header_text = records[0]
        if unterminated and unterminated[0] < header_line:
            raise pd.errors.ParserError("Unterminated quoted field in header row")

        width = len(pd.read_csv(io.StringIO(header_text), sep=delimiter, nrows=0).columns)
        data = records[1:]

        df = pd.read_csv(
            io.StringIO("\n".join([header_text] + [record for _, record in data])),
            sep=delimiter,
            dtype=str,
            keep_default_na=False,
            index_col=False,
            skip_blank_lines=False,
            engine="python",
            on_bad_lines=lambda fields: fields[:width],
        )
        if len(df) != len(data):
            raise pd.errors.ParserError(
                f"Expected {len(data)} data rows but read {len(df)}"
            )

        df.columns = [str(c).strip() for c in df.columns]
        return df, [line for line, _ in data], unterminated

    def _read_text(self, file: Any, encoding: str) -> str:
        if hasattr(file, "read"):
            content = file.read()
            text = content.decode(encoding) if isinstance(content, bytes) else content
        else:
            with open(file, "r", encoding=encoding, newline="") as f:
                text = f.read()

        return text.lstrip("\ufeff")

    def _process_dataframe(
        self,
        df: pd.DataFrame,
        request: ParseRequest,
        date_format: str,
        line_numbers: list[int],
        unterminated: Optional[list[int]] = None,
    ) -> ParseResult:
        """Convert DataFrame rows to transactions, collecting per-row errors."""
        transactions: list[ParsedTransaction] = []
        failed: list[tuple[int, str]] = []

        for line_number in unterminated or []:
            failed.append((line_number, "Unterminated quoted field"))
            logger.debug(f"Skipped line {line_number}: unterminated quoted field")

        for line_number, (_, row) in zip(line_numbers, df.iterrows()):
            values = row.to_dict()

            if all(_cell(v) == "" for v in values.values()):
                continue

            try:
                transactions.append(self._normalize_row(values, request, date_format))
            except ValueError as e:
                failed.append((line_number, str(e)))
                logger.debug(f"Skipped line {line_number}: {e}")

        failed.sort(key=lambda item: item[0])
        return ParseResult(
            transactions=transactions,
            detected_format_id=self.format_id,
            errors=[f"Row {line}: {reason}" for line, reason in failed],
        )

    def _normalize_row(
        self, values: dict[str, Any], request: ParseRequest, date_format: str
    ) -> ParsedTransaction:
        """
        Convert one CSV row into a ParsedTransaction.

        Raises:
            ValueError: If the row is malformed
        """
        date_str = _required(values, request.date_column)
        if not date_str:
            raise ValueError("Empty date")
        txn_date = self._parse_date(date_str, date_format)

        description = _required(values, request.description_column)
        if not description:
            raise ValueError("Empty description")

        if request.separate_columns:
            amount = self._split_amount(
                _cell(values.get(request.income_column)),
                _cell(values.get(request.expense_column)),
            )
        else:
            raw = _required(values, request.amount_column)
            amount = self._parse_amount(raw)
            if amount is None:
                raise ValueError("Empty amount")

        category = _cell(values.get(request.category_column)) if request.category_column else ""
        reference = _cell(values.get(request.reference_column)) if request.reference_column else ""

        return ParsedTransaction(
            date=txn_date,
            description=description,
            amount=amount,
            category=category or None,
            reference=reference or None,
        )

    def _split_amount(self, income_str: str, expense_str: str) -> Decimal:
        """
        Signed amount from separate income/expense cells.

        Exactly one cell must hold a positive value. Blank and zero cells
        count as empty; a negative cell is a row error since its direction
        is ambiguous.
        """
        income = self._parse_amount(income_str)
        expense = self._parse_amount(expense_str)

        if income is not None and income < 0:
            raise ValueError(f"Negative value in income column: {income_str}")
        if expense is not None and expense < 0:
            raise ValueError(f"Negative value in expense column: {expense_str}")

        has_income = income is not None and income != 0
        has_expense = expense is not None and expense != 0

        if has_income and has_expense:
            raise ValueError("Both income and expense columns are populated")
        if has_income:
            return income
        if has_expense:
            return -expense
        raise ValueError("No amount in income or expense column")

    def _parse_date(self, date_str: str, date_format: str) -> date:
        try:
            return datetime.strptime(date_str, date_format).date()
        except ValueError:
            raise ValueError(f"Invalid date: {date_str}") from None

    def _parse_amount(self, amount_str: str) -> Optional[Decimal]:
        """
        Parse an amount cell, stripping currency symbols.

        Thousands separators are accepted only in groups of three, and
        exponents or embedded spaces are rejected.

        Returns:
            Decimal amount, or None for an empty cell

        Raises:
            ValueError: If the cell is not a plain decimal number
        """
        cleaned = amount_str
        for symbol in CURRENCY_SYMBOLS:
            cleaned = cleaned.replace(symbol, "")
        cleaned = cleaned.strip()

        if not cleaned:
            return None

        if not AMOUNT_PATTERN.match(cleaned):
            raise ValueError(f"Invalid amount: {amount_str}")

        try:
            return Decimal(cleaned.replace(",", ""))
        except InvalidOperation:
            raise ValueError(f"Invalid amount: {amount_str}") from None


def _cell(value: Any) -> str:
    """Trimmed cell text; missing cells read as empty."""
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    return str(value).strip()


def _required(values: dict[str, Any], column: Optional[str]) -> str:
    value = values.get(column)
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        raise ValueError(f"Missing value for column '{column}'")
    return str(value).strip()


def _display_name(file: Any) -> str:
    if isinstance(file, (str, Path)):
        return str(file)
    return str(getattr(file, "name", type(file).__name__))


def _split_records(text: str, delimiter: str) -> tuple[list[tuple[int, str]], list[int]]:
    """
    Split CSV text into one record per physical line.

    Quoted fields never span lines. A line that ends inside a quoted field
    is reported by its line number instead of absorbing the lines after it.

    Returns:
        Tuple of ((line number, text) for each non-blank line that closes its
        quotes, line numbers of lines left inside a quoted field)
    """
    if not delimiter:
        raise ValueError("CSV delimiter must not be empty")

    records: list[tuple[int, str]] = []
    unterminated: list[int] = []

    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    for line_number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        if _has_open_quote(line, delimiter):
            unterminated.append(line_number)
        else:
            records.append((line_number, line))

    return records, unterminated


def _has_open_quote(line: str, delimiter: str) -> bool:
    """Whether a quoted field is still open at the end of ``line``."""
    in_quotes = False
    field_start = True
    i = 0
    while i < len(line):
        if in_quotes:
            if line[i] == '"':
                if line.startswith('""', i):
                    i += 2
                    continue
                in_quotes = False
            i += 1
        elif line.startswith(delimiter, i):
            field_start = True
            i += len(delimiter)
        else:
            # a quote only opens a field at its first character
            if line[i] == '"' and field_start:
                in_quotes = True
            field_start = False
            i += 1
    return in_quotes
