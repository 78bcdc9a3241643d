"""Tests for the CSV statement parser."""

from datetime import date
from decimal import Decimal
import io

import pytest

from statement_recon.config import StatementReconConfig
from statement_recon.parsers.column_mapping import BankFormat, ColumnMapping, ParseRequest
from statement_recon.parsers.csv_parser import CsvStatementParser

from conftest import SIGNED_STATEMENT, SPLIT_STATEMENT


def parse(parser, mapping, path, **options):
    return parser.parse(mapping.to_parse_request(file_location=path, **options))


class TestSignedAmounts:
    """Tests for statements with a single signed amount column."""

    def test_end_to_end(self, csv_parser, signed_mapping, write_csv) -> None:
        """Two valid rows give two transactions with their literal signs."""
        result = parse(csv_parser, signed_mapping, write_csv(SIGNED_STATEMENT))

        assert result.errors == []
        assert result.detected_format_id == "csv"
        assert [t.amount for t in result.transactions] == [
            Decimal("1500.00"),
            Decimal("-45.99"),
        ]
        assert result.transactions[0].date == date(2025, 6, 15)
        assert result.transactions[0].description == "Client Payment"
        assert result.transactions[0].is_income
        assert result.transactions[1].is_expense

    def test_explicit_plus_sign_preserved(self, csv_parser, signed_mapping, write_csv) -> None:
        path = write_csv("Date,Description,Amount\n15/06/2025,Refund,+20.00\n")
        result = parse(csv_parser, signed_mapping, path)
        assert result.transactions[0].amount == Decimal("20.00")

    def test_currency_noise_stripped(self, csv_parser, signed_mapping, write_csv) -> None:
        path = write_csv('Date,Description,Amount\n15/06/2025,Invoice,"£1,234.56"\n')
        result = parse(csv_parser, signed_mapping, path)
        assert result.transactions[0].amount == Decimal("1234.56")

    def test_full_precision_kept(self, csv_parser, signed_mapping, write_csv) -> None:
        path = write_csv("Date,Description,Amount\n15/06/2025,FX,-0.005\n")
        result = parse(csv_parser, signed_mapping, path)
        assert result.transactions[0].amount == Decimal("-0.005")

    @pytest.mark.parametrize(
        "cell, expected",
        [
            ("GBP 12.50", Decimal("12.50")),
            ("-£1,500,000.00", Decimal("-1500000.00")),
            (".75", Decimal(".75")),
        ],
    )
    def test_accepted_amount_forms(
        self, csv_parser, signed_mapping, write_csv, cell, expected
    ) -> None:
        path = write_csv(f'Date,Description,Amount\n15/06/2025,Invoice,"{cell}"\n')
        result = parse(csv_parser, signed_mapping, path)
        assert result.errors == []
        assert result.transactions[0].amount == expected

    @pytest.mark.parametrize("cell", ["1,5,0", "- 1 500.00", "1e3", "12,34.00", "1.2.3", "NaN"])
    def test_malformed_amount_rejected(self, csv_parser, signed_mapping, write_csv, cell) -> None:
        """Loose separators, exponents and spaced signs are row errors, not numbers."""
        path = write_csv(f'Date,Description,Amount\n15/06/2025,Invoice,"{cell}"\n')
        result = parse(csv_parser, signed_mapping, path)
        assert result.transactions == []
        assert result.errors == [f"Row 2: Invalid amount: {cell}"]


class TestSplitColumns:
    """Tests for statements with separate money in/out columns."""

    def test_end_to_end_income(self, csv_parser, split_mapping, write_csv) -> None:
        result = parse(csv_parser, split_mapping, write_csv(SPLIT_STATEMENT))
        assert result.errors == []
        assert len(result.transactions) == 1
        assert result.transactions[0].amount == Decimal("1500.00")

    def test_expense_becomes_negative(self, csv_parser, split_mapping, write_csv) -> None:
        path = write_csv("Date,Description,Money out,Money in\n16/06/2025,Stationery,45.99,\n")
        result = parse(csv_parser, split_mapping, path)
        assert result.transactions[0].amount == Decimal("-45.99")

    def test_both_populated_is_row_error(self, csv_parser, split_mapping, write_csv) -> None:
        path = write_csv("Date,Description,Money out,Money in\n16/06/2025,Odd,10.00,20.00\n")
        result = parse(csv_parser, split_mapping, path)
        assert result.transactions == []
        assert result.errors == ["Row 2: Both income and expense columns are populated"]

    def test_neither_populated_is_row_error(self, csv_parser, split_mapping, write_csv) -> None:
        path = write_csv("Date,Description,Money out,Money in\n16/06/2025,Empty,,\n")
        result = parse(csv_parser, split_mapping, path)
        assert result.transactions == []
        assert result.errors == ["Row 2: No amount in income or expense column"]

    def test_zero_cell_counts_as_empty(self, csv_parser, split_mapping, write_csv) -> None:
        path = write_csv("Date,Description,Money out,Money in\n16/06/2025,Card,12.00,0.00\n")
        result = parse(csv_parser, split_mapping, path)
        assert result.transactions[0].amount == Decimal("-12.00")

    @pytest.mark.parametrize(
        "row, error",
        [
            ("16/06/2025,Refund,,-10.00", "Negative value in income column: -10.00"),
            ("16/06/2025,Reversal,-45.99,", "Negative value in expense column: -45.99"),
        ],
    )
    def test_negative_cell_is_row_error(
        self, csv_parser, split_mapping, write_csv, row, error
    ) -> None:
        """A signed value in a direction column is rejected rather than flipped."""
        path = write_csv(f"Date,Description,Money out,Money in\n{row}\n")
        result = parse(csv_parser, split_mapping, path)
        assert result.transactions == []
        assert result.errors == [f"Row 2: {error}"]


class TestRowErrors:
    """Tests for malformed rows being dropped without aborting the parse."""

    def test_non_numeric_amount(self, csv_parser, signed_mapping, write_csv) -> None:
        """One bad row yields one error naming it; siblings still parse."""
        path = write_csv(
            "Date,Description,Amount\n"
            "15/06/2025,Client Payment,1500.00\n"
            "16/06/2025,Broken,abc\n"
            "17/06/2025,Coffee,-3.20\n"
        )
        result = parse(csv_parser, signed_mapping, path)

        assert len(result.transactions) == 2
        assert result.errors == ["Row 3: Invalid amount: abc"]
        assert result.has_errors
        assert not result.fatal

    def test_unparsable_date(self, csv_parser, signed_mapping, write_csv) -> None:
        path = write_csv("Date,Description,Amount\n2025-06-15,Wrong format,1.00\n")
        result = parse(csv_parser, signed_mapping, path)
        assert result.errors == ["Row 2: Invalid date: 2025-06-15"]

    def test_empty_description(self, csv_parser, signed_mapping, write_csv) -> None:
        path = write_csv("Date,Description,Amount\n15/06/2025,,1.00\n")
        result = parse(csv_parser, signed_mapping, path)
        assert result.errors == ["Row 2: Empty description"]

    def test_empty_amount(self, csv_parser, signed_mapping, write_csv) -> None:
        path = write_csv("Date,Description,Amount\n15/06/2025,Nothing,\n")
        result = parse(csv_parser, signed_mapping, path)
        assert result.errors == ["Row 2: Empty amount"]

    def test_short_row(self, csv_parser, signed_mapping, write_csv) -> None:
        """A row missing trailing cells is dropped with the missing column named."""
        path = write_csv(
            "Date,Description,Amount\n"
            "15/06/2025,Client Payment,1500.00\n"
            "16/06/2025,Short\n"
        )
        result = parse(csv_parser, signed_mapping, path)
        assert len(result.transactions) == 1
        assert len(result.errors) == 1
        assert result.errors[0].startswith("Row 3:")
        assert "amount" in result.errors[0].lower()

    def test_extra_fields_ignored(self, csv_parser, signed_mapping, write_csv) -> None:
        path = write_csv(
            "Date,Description,Amount\n"
            "15/06/2025,Client Payment,1500.00\n"
            "16/06/2025,Extra,-2.00,surplus\n"
        )
        result = parse(csv_parser, signed_mapping, path)
        assert result.errors == []
        assert result.transactions[1].amount == Decimal("-2.00")

    def test_blank_lines_skipped(self, csv_parser, signed_mapping, write_csv) -> None:
        path = write_csv(
            "Date,Description,Amount\n"
            "15/06/2025,Client Payment,1500.00\n"
            "\n"
            "16/06/2025,Office Supplies,-45.99\n"
        )
        result = parse(csv_parser, signed_mapping, path)
        assert result.errors == []
        assert len(result.transactions) == 2

    def test_unclosed_quote_costs_only_its_own_row(
        self, csv_parser, signed_mapping, write_csv
    ) -> None:
        """A stray quote is reported once and the rows after it still parse."""
        path = write_csv(
            "Date,Description,Amount\n"
            "15/06/2025,Client Payment,1500.00\n"
            '16/06/2025,"Office Supplies,-45.99\n'
            "17/06/2025,Rent,-900.00\n"
        )
        result = parse(csv_parser, signed_mapping, path)

        assert [t.description for t in result.transactions] == ["Client Payment", "Rent"]
        assert result.errors == ["Row 3: Unterminated quoted field"]
        assert not result.fatal

    def test_quoted_newline_reported_per_line(
        self, csv_parser, signed_mapping, write_csv
    ) -> None:
        """A quoted field does not continue onto the next line; each line keeps its own number."""
        path = write_csv(
            "Date,Description,Amount\n"
            '15/06/2025,"Client\nPayment",1500.00\n'
            "16/06/2025,Broken,abc\n"
            "17/06/2025,Coffee,-3.20\n"
        )
        result = parse(csv_parser, signed_mapping, path)

        assert [t.description for t in result.transactions] == ["Coffee"]
        assert result.errors == [
            "Row 2: Unterminated quoted field",
            'Row 3: Invalid date: Payment"',
            "Row 4: Invalid amount: abc",
        ]

    def test_errors_ordered_by_line(self, csv_parser, signed_mapping, write_csv) -> None:
        path = write_csv(
            "Date,Description,Amount\n"
            '15/06/2025,"Open quote,1.00\n'
            "16/06/2025,Broken,abc\n"
        )
        result = parse(csv_parser, signed_mapping, path)
        assert result.errors == [
            "Row 2: Unterminated quoted field",
            "Row 3: Invalid amount: abc",
        ]

    @pytest.mark.parametrize(
        "content",
        [
            (
                "Date,Description,Amount\n"
                "15/06/2025,Client Payment,1500.00\n"
                '16/06/2025,"Unbalanced,-1.00\n'
                "\n"
                "17/06/2025,Short\n"
                "18/06/2025,Extra,-2.00,surplus\n"
                '19/06/2025,Stray " quote,-3.00\n'
                "20/06/2025,Coffee,-3.20\n"
            ),
            (
                "Date,Description,Amount\n"
                '"15/06/2025","Quoted ""name""",10.00\n'
                "bad-date,Something,1.00\n"
                '16/06/2025,"Trailing quote,\n'
                "17/06/2025,,5.00\n"
            ),
            (
                "Date,Description,Amount\n"
                '15/06/2025,"Client\nPayment",1500.00\n'
                "16/06/2025,Rent,-900.00\n"
            ),
        ],
    )
    def test_every_data_line_accounted_for(
        self, csv_parser, signed_mapping, write_csv, content
    ) -> None:
        """Each non-blank data line yields a transaction or an error, never neither."""
        result = parse(csv_parser, signed_mapping, write_csv(content))

        data_lines = [line for line in content.splitlines()[1:] if line.strip()]
        assert len(result.transactions) + len(result.errors) == len(data_lines)
        assert not result.fatal


class TestConfigurationFailures:
    """Tests for failures that abort the whole parse."""

    def test_missing_file_location(self, csv_parser, signed_mapping) -> None:
        result = csv_parser.parse(signed_mapping.to_parse_request())
        assert result.fatal
        assert result.transactions == []
        assert result.errors == ["No file location provided for CSV parsing"]

    def test_incomplete_request(self, csv_parser, write_csv) -> None:
        request = ParseRequest(
            date_format="dd/MM/yyyy",
            date_column="Date",
            description_column="Description",
            options={"file_location": write_csv(SIGNED_STATEMENT)},
        )
        result = csv_parser.parse(request)
        assert result.fatal
        assert len(result.errors) == 1
        assert result.errors[0].startswith("Invalid column mapping:")
        assert "No amount column configured" in result.errors[0]

    def test_column_missing_from_header(self, csv_parser, write_csv) -> None:
        mapping = ColumnMapping(
            date_column="Date",
            description_column="Description",
            amount_column="Value",
            date_format="dd/MM/yyyy",
        )
        result = parse(csv_parser, mapping, write_csv(SIGNED_STATEMENT))
        assert result.fatal
        assert result.transactions == []
        assert result.errors == ["Column not found in CSV headers: Value"]

    def test_header_match_is_case_sensitive(self, csv_parser, write_csv) -> None:
        mapping = ColumnMapping(
            date_column="date",
            description_column="Description",
            amount_column="Amount",
            date_format="dd/MM/yyyy",
        )
        result = parse(csv_parser, mapping, write_csv(SIGNED_STATEMENT))
        assert result.errors == ["Column not found in CSV headers: date"]

    def test_empty_file(self, csv_parser, signed_mapping, write_csv) -> None:
        result = parse(csv_parser, signed_mapping, write_csv(""))
        assert result.errors == ["CSV file is empty or has no header row"]

    def test_nonexistent_file(self, csv_parser, signed_mapping, tmp_path) -> None:
        result = parse(csv_parser, signed_mapping, tmp_path / "missing.csv")
        assert result.fatal
        assert result.errors[0].startswith("Failed to read CSV file:")

    def test_unknown_encoding(self, csv_parser, signed_mapping, write_csv) -> None:
        """An encoding name Python does not know fails the parse instead of raising."""
        result = csv_parser.parse_file(
            write_csv(SIGNED_STATEMENT), signed_mapping, encoding="no-such-codec"
        )
        assert result.fatal
        assert result.transactions == []
        assert result.errors[0].startswith("Failed to read CSV file:")

    def test_undecodable_bytes(self, csv_parser, signed_mapping, tmp_path) -> None:
        path = tmp_path / "statement.csv"
        path.write_bytes(b"Date,Description,Amount\n15/06/2025,Caf\xe9,1.00\n")
        result = csv_parser.parse_file(path, signed_mapping, encoding="utf-8")
        assert result.fatal
        assert result.errors[0].startswith("Failed to read CSV file:")

    def test_unterminated_header(self, csv_parser, signed_mapping, write_csv) -> None:
        path = write_csv('"Date,Description,Amount\n15/06/2025,Rent,-900.00\n')
        result = parse(csv_parser, signed_mapping, path)
        assert result.fatal
        assert "Unterminated quoted field in header row" in result.errors[0]

    def test_unsupported_date_pattern(self, csv_parser, write_csv) -> None:
        mapping = ColumnMapping(
            date_column="Date",
            description_column="Description",
            amount_column="Amount",
            date_format="EEE dd/MM/yyyy",
        )
        result = parse(csv_parser, mapping, write_csv(SIGNED_STATEMENT))
        assert result.fatal
        assert "Unsupported date pattern" in result.errors[0]


class TestInputs:
    """Tests for encodings, handles, delimiters and bank layouts."""

    def test_byte_order_mark_stripped(self, csv_parser, signed_mapping, write_csv) -> None:
        path = write_csv(SIGNED_STATEMENT, encoding="utf-8-sig")
        result = parse(csv_parser, signed_mapping, path)
        assert result.errors == []
        assert len(result.transactions) == 2

    def test_text_handle(self, csv_parser, signed_mapping) -> None:
        result = parse(csv_parser, signed_mapping, io.StringIO(SIGNED_STATEMENT))
        assert len(result.transactions) == 2

    def test_binary_handle(self, csv_parser, signed_mapping) -> None:
        result = parse(csv_parser, signed_mapping, io.BytesIO(SIGNED_STATEMENT.encode("utf-8")))
        assert len(result.transactions) == 2

    def test_delimiter_option(self, csv_parser, signed_mapping, write_csv) -> None:
        path = write_csv("Date;Description;Amount\n15/06/2025;Rent;-900.00\n")
        result = parse(csv_parser, signed_mapping, path, delimiter=";")
        assert result.transactions[0].amount == Decimal("-900.00")

    def test_delimiter_from_config(self, signed_mapping, write_csv) -> None:
        config = StatementReconConfig()
        config.input.delimiter = "|"
        parser = CsvStatementParser(config)
        path = write_csv("Date|Description|Amount\n15/06/2025|Rent|-900.00\n")
        assert len(parse(parser, signed_mapping, path).transactions) == 1

    def test_revolut_datetime_keeps_calendar_date(self, csv_parser, write_csv) -> None:
        path = write_csv(
            "Type,Product,Started Date,Completed Date,Description,Amount,Fee,Currency\n"
            "CARD_PAYMENT,Current,2025-06-14 22:01:00,2025-06-15 09:12:45,Tesco,-12.40,0.00,GBP\n"
        )
        mapping = ColumnMapping.for_bank(BankFormat.REVOLUT)
        result = parse(csv_parser, mapping, path)
        assert result.errors == []
        assert result.transactions[0].date == date(2025, 6, 15)

    def test_nationwide_month_names(self, csv_parser, write_csv) -> None:
        path = write_csv(
            "Date,Transaction type,Description,Paid out,Paid in,Balance\n"
            '15 Jun 2025,Card,Coffee Shop,£3.20,,"£1,020.00"\n'
        )
        mapping = ColumnMapping.for_bank(BankFormat.NATIONWIDE)
        result = parse(csv_parser, mapping, path)
        assert result.errors == []
        assert result.transactions[0].date == date(2025, 6, 15)
        assert result.transactions[0].amount == Decimal("-3.20")

    def test_category_carried_through(self, csv_parser, write_csv) -> None:
        path = write_csv(
            "Transaction ID,Date,Time,Type,Name,Category,Amount\n"
            "tx_1,15/06/2025,10:00:00,Card payment,Pret,Eating out,-4.50\n"
        )
        result = parse(csv_parser, ColumnMapping.for_bank(BankFormat.MONZO), path)
        assert result.transactions[0].category == "Eating out"
        assert result.transactions[0].description == "Pret"

    def test_parse_file_wrapper(self, csv_parser, signed_mapping, write_csv) -> None:
        result = csv_parser.parse_file(write_csv(SIGNED_STATEMENT), signed_mapping)
        assert len(result.transactions) == 2


class TestPreview:
    """Tests for the lightweight preview."""

    def test_limits_rows(self, csv_parser, signed_mapping, write_csv) -> None:
        preview = csv_parser.preview(write_csv(SIGNED_STATEMENT), max_rows=1, mapping=signed_mapping)
        assert len(preview) == 1
        assert preview[0].description == "Client Payment"

    def test_detects_preset_without_mapping(self, csv_parser, write_csv) -> None:
        """Date,Description,Amount matches a built-in preset."""
        preview = csv_parser.preview(write_csv(SIGNED_STATEMENT))
        assert [t.amount for t in preview] == [Decimal("1500.00"), Decimal("-45.99")]

    def test_handle_without_mapping(self, csv_parser) -> None:
        preview = csv_parser.preview(io.StringIO(SIGNED_STATEMENT), max_rows=5)
        assert len(preview) == 2

    def test_unknown_layout_is_empty(self, csv_parser, write_csv) -> None:
        path = write_csv("When,What,How much\n15/06/2025,Thing,1.00\n")
        assert csv_parser.preview(path) == []

    def test_partial_preview_skips_bad_rows(self, csv_parser, signed_mapping, write_csv) -> None:
        path = write_csv(
            "Date,Description,Amount\n"
            "bad-date,Broken,1.00\n"
            "16/06/2025,Office Supplies,-45.99\n"
        )
        preview = csv_parser.preview(path, mapping=signed_mapping)
        assert len(preview) == 1

    @pytest.mark.parametrize("content", ["", "\x00\x01garbage", "Date,Description,Amount\n"])
    def test_never_raises(self, csv_parser, write_csv, content) -> None:
        assert csv_parser.preview(write_csv(content)) == []

    def test_missing_file(self, csv_parser, tmp_path) -> None:
        assert csv_parser.preview(tmp_path / "missing.csv") == []

    def test_zero_rows(self, csv_parser, write_csv) -> None:
        assert csv_parser.preview(write_csv(SIGNED_STATEMENT), max_rows=0) == []
