"""Data models for statement transactions, match results and import candidates."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


class MatchType(Enum):
    """How confidently a candidate duplicates an existing ledger record."""

    EXACT = "exact"  # date, amount, description and category all identical
    LIKELY = "likely"  # date and amount identical, description or category differs
    NEW = "new"  # no existing record shares date and amount


class ImportAction(Enum):
    """Resolution applied to a candidate when the import is confirmed."""

    IMPORT = "import"
    SKIP = "skip"
    UPDATE = "update"

    @property
    def display_text(self) -> str:
        return self.value.capitalize()


@dataclass(frozen=True)
class ParsedTransaction:
    """
    Canonical transaction produced by every statement parser.

    The amount is signed: positive for income, negative for expense.
    """

    date: date
    description: str
    amount: Decimal
    category: Optional[str] = None
    reference: Optional[str] = None

    @property
    def is_income(self) -> bool:
        return self.amount > 0

    @property
    def is_expense(self) -> bool:
        return self.amount < 0


@dataclass
class ParseResult:
    """Transactions parsed from a statement plus one error string per dropped row."""

    transactions: list[ParsedTransaction] = field(default_factory=list)
    detected_format_id: Optional[str] = None
    errors: list[str] = field(default_factory=list)
    # Set when the whole parse failed (configuration or structural problem)
    fatal: bool = False

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @classmethod
    def failure(cls, message: str, format_id: Optional[str] = None) -> "ParseResult":
        """A failed parse: one error, no transactions."""
        return cls(transactions=[], detected_format_id=format_id, errors=[message], fatal=True)


@dataclass(frozen=True)
class MatchedRecord:
    """Read-only projection of an existing ledger entry, used for comparison."""

    id: Any
    date: date
    description: str
    amount: Decimal
    category: Optional[str] = None


@dataclass
class ImportCandidate:
    """
    A parsed transaction paired with its classification against the ledger.

    The action starts at the default for the match type and only changes
    through ``set_action`` before the coordinator applies it.
    """

    transaction: ParsedTransaction
    match_type: MatchType
    action: ImportAction
    matched_record: Optional[MatchedRecord] = None

    @property
    def has_match(self) -> bool:
        return self.matched_record is not None

    @property
    def will_be_imported(self) -> bool:
        return self.action in (ImportAction.IMPORT, ImportAction.UPDATE)

    def set_action(self, action: ImportAction) -> None:
        self.action = action


@dataclass
class ApplyOutcome:
    """Result of applying a single candidate's action to the ledger."""

    candidate: ImportCandidate
    action: ImportAction
    success: bool
    record_id: Any = None
    error: Optional[str] = None


@dataclass
class ApplyReport:
    """Per-candidate outcomes of ``apply_resolved``, in candidate order."""

    outcomes: list[ApplyOutcome] = field(default_factory=list)
    applied_at: datetime = field(default_factory=datetime.now)

    @property
    def created_count(self) -> int:
        return sum(1 for o in self.outcomes if o.success and o.action == ImportAction.IMPORT)

    @property
    def updated_count(self) -> int:
        return sum(1 for o in self.outcomes if o.success and o.action == ImportAction.UPDATE)

    @property
    def skipped_count(self) -> int:
        return sum(1 for o in self.outcomes if o.action == ImportAction.SKIP)

    @property
    def failures(self) -> list[ApplyOutcome]:
        return [o for o in self.outcomes if not o.success]


@dataclass
class ImportSummary:
    """Counts and totals over a list of candidates awaiting review."""

    total_count: int
    new_count: int
    exact_count: int
    likely_count: int
    import_count: int
    total_income_to_import: Decimal
    total_expenses_to_import: Decimal

    @property
    def has_duplicates(self) -> bool:
        return self.exact_count > 0 or self.likely_count > 0
