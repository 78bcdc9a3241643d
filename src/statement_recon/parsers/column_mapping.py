"""
Column mappings for bank statement CSV exports.

A mapping names the columns holding the date, description and amount (either
one signed column or separate income/expense columns) plus the date pattern.
Bank presets are plain data; adding a bank never touches parser code.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterable, Mapping, Optional
import logging
import re

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from ..utils.exceptions import MappingError

logger = logging.getLogger(__name__)

OPT_FILE_LOCATION = "file_location"
OPT_ENCODING = "encoding"
OPT_DELIMITER = "delimiter"

# Java-style pattern letters understood in date formats
_PATTERN_TOKEN = re.compile(r"'[^']*'|([A-Za-z])\1*|.", re.DOTALL)
_PATTERN_LETTERS = {
    "yyyy": "%Y",
    "yy": "%y",
    "MMMM": "%B",
    "MMM": "%b",
    "MM": "%m",
    "M": "%m",
    "dd": "%d",
    "d": "%d",
    "HH": "%H",
    "H": "%H",
    "hh": "%I",
    "h": "%I",
    "mm": "%M",
    "ss": "%S",
    "a": "%p",
}


class BankFormat(Enum):
    """Banks with a built-in column mapping preset."""

    BARCLAYS = "barclays"
    HSBC = "hsbc"
    LLOYDS = "lloyds"
    NATIONWIDE = "nationwide"
    STARLING = "starling"
    MONZO = "monzo"
    REVOLUT = "revolut"
    SANTANDER = "santander"
    METRO_BANK = "metro_bank"

    @property
    def format_id(self) -> str:
        """Stable sub-identifier, e.g. ``csv-metro-bank``."""
        return "csv-" + self.name.lower().replace("_", "-")

    @classmethod
    def from_identifier(cls, value: str) -> Optional["BankFormat"]:
        """Look up a bank by enum name, value or format id (case-insensitive)."""
        key = value.strip().lower()
        for bank in cls:
            if key in (bank.name.lower(), bank.value, bank.format_id):
                return bank
        return None


@dataclass(frozen=True)
class ParseRequest:
    """Canonical parse request consumed by every statement parser."""

    date_format: Optional[str] = None
    date_column: Optional[str] = None
    description_column: Optional[str] = None
    amount_column: Optional[str] = None
    income_column: Optional[str] = None
    expense_column: Optional[str] = None
    category_column: Optional[str] = None
    reference_column: Optional[str] = None
    options: dict[str, Any] = field(default_factory=dict)

    @property
    def separate_columns(self) -> bool:
        return bool(self.income_column or self.expense_column)

    @property
    def file_location(self) -> Any:
        return self.options.get(OPT_FILE_LOCATION)

    def get_option(self, key: str, default: Any = None) -> Any:
        return self.options.get(key, default)

    def with_options(self, **options: Any) -> "ParseRequest":
        """Return a copy with ``options`` merged over the current ones."""
        merged = dict(self.options)
        merged.update(options)
        return replace(self, options=merged)

    def validate(self) -> list[str]:
        """
        Check the request carries everything a parser needs.

        Returns:
            List of configuration problems (empty when the request is usable)
        """
        problems: list[str] = []
        if _is_blank(self.date_column):
            problems.append("No date column configured")
        if _is_blank(self.description_column):
            problems.append("No description column configured")
        if _is_blank(self.date_format):
            problems.append("No date format configured")

        has_single = not _is_blank(self.amount_column)
        has_income = not _is_blank(self.income_column)
        has_expense = not _is_blank(self.expense_column)

        if has_single and (has_income or has_expense):
            problems.append(
                "Both a single amount column and income/expense columns are configured"
            )
        elif not has_single and not (has_income and has_expense):
            if has_income or has_expense:
                problems.append("Separate amount columns need both an income and an expense column")
            else:
                problems.append("No amount column configured")
        return problems

    def referenced_columns(self) -> list[str]:
        """Header names the request reads from, in a stable order."""
        columns = [
            self.date_column,
            self.description_column,
            self.amount_column,
            self.income_column,
            self.expense_column,
            self.category_column,
            self.reference_column,
        ]
        return [c for c in columns if not _is_blank(c)]

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> "ParseRequest":
        """
        Build a request from loose configuration options.

        Accepts snake_case or camelCase keys (``dateFormat``, ``dateColumn``,
        ``descriptionColumn``, ``amountColumn``, ``incomeColumn``,
        ``expenseColumn``, ``fileLocation``). Unknown keys are kept as options.
        """
        known = {
            "date_format",
            "date_column",
            "description_column",
            "amount_column",
            "income_column",
            "expense_column",
            "category_column",
            "reference_column",
        }
        kwargs: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in options.items():
            name = _to_snake(key)
            if name in known:
                kwargs[name] = value
            else:
                extra[name] = value
        return cls(options=extra, **kwargs)


class ColumnMapping(BaseModel):
    """
    Declarative description of a statement's column layout.

    Exactly one amount layout is configured: a single signed ``amount_column``
    or both ``income_column`` and ``expense_column``.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    date_column: str
    description_column: str
    date_format: str
    amount_column: Optional[str] = None
    income_column: Optional[str] = None
    expense_column: Optional[str] = None
    category_column: Optional[str] = None
    reference_column: Optional[str] = None
    preset: Optional[str] = None

    @model_validator(mode="after")
    def _check_columns(self) -> "ColumnMapping":
        for name in ("date_column", "description_column", "date_format"):
            if _is_blank(getattr(self, name)):
                raise ValueError(f"{name} must not be blank")

        has_single = not _is_blank(self.amount_column)
        has_income = not _is_blank(self.income_column)
        has_expense = not _is_blank(self.expense_column)

        if has_single and (has_income or has_expense):
            raise ValueError("configure either amount_column or income/expense columns, not both")
        if not has_single and not (has_income and has_expense):
            raise ValueError("configure amount_column or both income_column and expense_column")
        return self

    @property
    def separate_columns(self) -> bool:
        return self.amount_column is None or self.amount_column.strip() == ""

    def to_parse_request(self, **options: Any) -> ParseRequest:
        """Convert the mapping into the request shape every parser consumes."""
        return ParseRequest(
            date_format=self.date_format,
            date_column=self.date_column,
            description_column=self.description_column,
            amount_column=None if self.separate_columns else self.amount_column,
            income_column=self.income_column if self.separate_columns else None,
            expense_column=self.expense_column if self.separate_columns else None,
            category_column=self.category_column,
            reference_column=self.reference_column,
            options=dict(options),
        )

    @classmethod
    def for_bank(cls, bank: BankFormat) -> "ColumnMapping":
        """Return the built-in preset for ``bank``."""
        return cls(preset=bank.format_id, **BANK_PRESETS[bank])

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ColumnMapping":
        """Validate loose mapping data, raising MappingError on bad input."""
        try:
            return cls.model_validate(dict(data))
        except ValidationError as e:
            raise MappingError(f"Invalid column mapping: {e}") from e


BANK_PRESETS: dict[BankFormat, dict[str, str]] = {
    BankFormat.BARCLAYS: {
        "date_column": "Date",
        "description_column": "Description",
        "income_column": "Money in",
        "expense_column": "Money out",
        "date_format": "dd/MM/yyyy",
    },
    BankFormat.HSBC: {
        "date_column": "Date",
        "description_column": "Type",
        "income_column": "Paid in",
        "expense_column": "Paid out",
        "date_format": "dd/MM/yyyy",
    },
    BankFormat.LLOYDS: {
        "date_column": "Transaction Date",
        "description_column": "Transaction Description",
        "income_column": "Credit Amount",
        "expense_column": "Debit Amount",
        "date_format": "dd/MM/yyyy",
    },
    BankFormat.NATIONWIDE: {
        "date_column": "Date",
        "description_column": "Description",
        "income_column": "Paid in",
        "expense_column": "Paid out",
        "date_format": "dd MMM yyyy",
    },
    BankFormat.STARLING: {
        "date_column": "Date",
        "description_column": "Counter Party",
        "amount_column": "Amount (GBP)",
        "date_format": "dd/MM/yyyy",
    },
    BankFormat.MONZO: {
        "date_column": "Date",
        "description_column": "Name",
        "amount_column": "Amount",
        "category_column": "Category",
        "date_format": "dd/MM/yyyy",
    },
    BankFormat.REVOLUT: {
        "date_column": "Completed Date",
        "description_column": "Description",
        "amount_column": "Amount",
        "date_format": "yyyy-MM-dd HH:mm:ss",
    },
    BankFormat.SANTANDER: {
        "date_column": "Date",
        "description_column": "Description",
        "amount_column": "Amount",
        "date_format": "dd/MM/yyyy",
    },
    BankFormat.METRO_BANK: {
        "date_column": "Date",
        "description_column": "Description",
        "income_column": "Money in",
        "expense_column": "Money out",
        "date_format": "dd/MM/yyyy",
    },
}


def resolve_preset(
    name: str,
    custom_presets: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> ColumnMapping:
    """
    Resolve a preset name to a column mapping.

    Custom presets (configuration data) take precedence over built-in banks
    so a user can correct a bank's layout without a code change.

    Args:
        name: Preset key, bank enum name or bank format id
        custom_presets: Extra presets keyed by name, as column-mapping data

    Returns:
        The resolved ColumnMapping

    Raises:
        MappingError: If the name is unknown or the preset data is invalid
    """
    if custom_presets and name in custom_presets:
        data = dict(custom_presets[name])
        data.setdefault("preset", name)
        return ColumnMapping.from_dict(data)

    bank = BankFormat.from_identifier(name)
    if bank is None:
        raise MappingError(f"Unknown bank preset: {name}")
    return ColumnMapping.for_bank(bank)


def detect_bank_format(headers: Iterable[str]) -> Optional[BankFormat]:
    """
    Pick the built-in preset whose columns all appear in a header row.

    Header names are compared case-sensitively after trimming whitespace.
    When several presets fit, the one reading the most columns wins; ties go
    to the earlier bank in enum order.
    """
    available = {h.strip() for h in headers if isinstance(h, str)}
    if not available:
        return None

    best: Optional[BankFormat] = None
    best_width = 0
    for bank in BankFormat:
        columns = ColumnMapping.for_bank(bank).to_parse_request().referenced_columns()
        if all(c in available for c in columns) and len(columns) > best_width:
            best = bank
            best_width = len(columns)

    if best:
        logger.debug(f"Detected bank format {best.format_id} from headers")
    return best


def to_strptime(pattern: str) -> str:
    """
    Translate a Java-style date pattern into a ``strptime`` format.

    ``dd/MM/yyyy`` becomes ``%d/%m/%Y``. Patterns that already contain ``%``
    directives are returned unchanged.

    Raises:
        MappingError: If the pattern uses a letter with no strptime equivalent
    """
    if "%" in pattern:
        return pattern

    parts: list[str] = []
    for match in _PATTERN_TOKEN.finditer(pattern.strip()):
        token = match.group(0)
        if token.startswith("'"):
            parts.append(token[1:-1] or "'")
        elif token[0].isalpha():
            directive = _PATTERN_LETTERS.get(token)
            if directive is None:
                raise MappingError(f"Unsupported date pattern element '{token}' in {pattern!r}")
            parts.append(directive)
        else:
            parts.append(token)
    return "".join(parts)


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def _to_snake(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()
