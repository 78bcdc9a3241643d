"""
Reconciliation coordinator.

Runs detection, parsing and classification for one statement, then applies
the reviewed actions to the ledger one candidate at a time.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterator, Optional, Sequence, Union
import logging

from ..config import StatementReconConfig
from ..matching.engine import MatchingEngine
from ..models.transaction import (
    ApplyOutcome,
    ApplyReport,
    ImportAction,
    ImportCandidate,
    ImportSummary,
    MatchedRecord,
    MatchType,
    ParsedTransaction,
)
from ..parsers.column_mapping import ColumnMapping, OPT_FILE_LOCATION, ParseRequest
from ..parsers.registry import ParserRegistry
from ..utils.exceptions import (
    ConfigurationError,
    NoParserAvailableError,
    ParseConfigurationError,
)
from .ledger import Ledger

logger = logging.getLogger(__name__)


@dataclass
class ImportSession:
    """
    Classified candidates for one statement, in statement row order.

    Iterating the session yields its candidates. Rows the parser dropped are
    listed in ``row_errors``.
    """

    candidates: list[ImportCandidate] = field(default_factory=list)
    format_id: Optional[str] = None
    importer_id: Optional[str] = None
    row_errors: list[str] = field(default_factory=list)
    source: Optional[str] = None

    @property
    def is_partial(self) -> bool:
        return bool(self.row_errors)

    def __iter__(self) -> Iterator[ImportCandidate]:
        return iter(self.candidates)

    def __len__(self) -> int:
        return len(self.candidates)

    def __getitem__(self, index: int) -> ImportCandidate:
        return self.candidates[index]


class ReconciliationCoordinator:
    """
    Orchestrates a statement import for a single session.

    The registry and ledger are passed in explicitly; nothing is looked up
    from global state.
    """

    def __init__(
        self,
        registry: ParserRegistry,
        ledger: Optional[Ledger] = None,
        engine: Optional[MatchingEngine] = None,
        config: Optional[StatementReconConfig] = None,
    ):
        """
        Initialize the coordinator.

        Args:
            registry: Parser registry used to pick a parser per file
            ledger: Ledger collaborator (required for ``apply_resolved``)
            engine: Matching engine (a default one is created if omitted)
            config: Application configuration
        """
        self.registry = registry
        self.ledger = ledger
        self.engine = engine or MatchingEngine()
        self.config = config or StatementReconConfig()

    def run_import(
        self,
        file: Union[str, Path, Any],
        mapping: Union[ColumnMapping, ParseRequest],
        existing_records: Optional[Sequence[MatchedRecord]] = None,
    ) -> ImportSession:
        """
        Detect, parse and classify a statement.

        Args:
            file: Statement file path or open handle
            mapping: Column mapping (or an already built parse request)
            existing_records: Ledger snapshot; when None the ledger is queried
                for the statement's date range

        Returns:
            ImportSession with candidates in statement row order

        Raises:
            NoParserAvailableError: If no registered parser handles the file
            ParseConfigurationError: If the statement could not be parsed at all
        """
        lookup = self.registry.lookup(file)
        if not lookup.ok:
            raise NoParserAvailableError(lookup.error or "No parser available", lookup.format_id)

        parser = lookup.parser
        logger.info(
            f"Importing {_describe(file)} with {parser.importer_name or parser.importer_id} "
            f"(format '{lookup.format_id}')"
        )

        if isinstance(mapping, ColumnMapping):
            request = mapping.to_parse_request(**{OPT_FILE_LOCATION: file})
        else:
            request = mapping.with_options(**{OPT_FILE_LOCATION: file})

        result = parser.parse(request)
        if result.fatal:
            raise ParseConfigurationError(
                f"Statement could not be parsed: {'; '.join(result.errors)}", result.errors
            )

        for error in result.errors:
            logger.warning(f"Dropped row: {error}")

        records = (
            list(existing_records)
            if existing_records is not None
            else self._load_existing_records(result.transactions)
        )
        candidates = self.engine.build_candidates(result.transactions, records)

        return ImportSession(
            candidates=candidates,
            format_id=result.detected_format_id or lookup.format_id,
            importer_id=parser.importer_id,
            row_errors=list(result.errors),
            source=_describe(file),
        )

    def apply_resolved(self, candidates: Sequence[ImportCandidate]) -> ApplyReport:
        """
        Apply each candidate's current action to the ledger, in order.

        A failure on one candidate is recorded in its outcome and does not
        stop the remaining candidates.

        Raises:
            ConfigurationError: If the coordinator has no ledger
        """
        if self.ledger is None:
            raise ConfigurationError("No ledger configured for applying import actions")

        report = ApplyReport()
        for candidate in candidates:
            report.outcomes.append(self._apply_one(candidate))

        logger.info(
            f"Applied import: {report.created_count} created, {report.updated_count} updated, "
            f"{report.skipped_count} skipped, {len(report.failures)} failed"
        )
        return report

    def _apply_one(self, candidate: ImportCandidate) -> ApplyOutcome:
        action = candidate.action
        txn = candidate.transaction

        if action == ImportAction.SKIP:
            return ApplyOutcome(candidate=candidate, action=action, success=True)

        try:
            if action == ImportAction.IMPORT:
                record_id = self.ledger.create(txn)
                return ApplyOutcome(candidate, action, success=True, record_id=record_id)

            if candidate.matched_record is None:
                return ApplyOutcome(
                    candidate, action, success=False, error="No matched record to update"
                )

            record_id = candidate.matched_record.id
            self.ledger.update(record_id, update_fields(txn))
            return ApplyOutcome(candidate, action, success=True, record_id=record_id)
        except Exception as e:
            logger.error(
                f"Failed to {action.value} '{txn.description}' ({txn.date}, {txn.amount}): {e}"
            )
            return ApplyOutcome(candidate, action, success=False, error=str(e))

    def _load_existing_records(
        self, transactions: Sequence[ParsedTransaction]
    ) -> list[MatchedRecord]:
        if not transactions:
            return []
        if self.ledger is None:
            logger.warning("No ledger configured; every transaction will classify as new")
            return []

        start = min(t.date for t in transactions)
        end = max(t.date for t in transactions)
        records = self.ledger.find_records_overlapping(start, end)
        logger.debug(f"Loaded {len(records)} ledger records between {start} and {end}")
        return records


def update_fields(transaction: ParsedTransaction) -> dict[str, Any]:
    """Ledger fields an UPDATE overwrites; a missing category keeps the existing one."""
    fields: dict[str, Any] = {
        "date": transaction.date,
        "description": transaction.description,
        "amount": transaction.amount,
    }
    if transaction.category:
        fields["category"] = transaction.category
    return fields


def import_all_new(candidates: Sequence[ImportCandidate]) -> int:
    """Set every NEW candidate to IMPORT; returns how many changed."""
    return _set_action_where(candidates, MatchType.NEW, ImportAction.IMPORT)


def skip_all_duplicates(candidates: Sequence[ImportCandidate]) -> int:
    """Set every EXACT candidate to SKIP; returns how many changed."""
    return _set_action_where(candidates, MatchType.EXACT, ImportAction.SKIP)


def summarize(candidates: Sequence[ImportCandidate]) -> ImportSummary:
    """Counts per match type and totals of what will be imported."""
    to_import = [c for c in candidates if c.will_be_imported]
    return ImportSummary(
        total_count=len(candidates),
        new_count=sum(1 for c in candidates if c.match_type == MatchType.NEW),
        exact_count=sum(1 for c in candidates if c.match_type == MatchType.EXACT),
        likely_count=sum(1 for c in candidates if c.match_type == MatchType.LIKELY),
        import_count=len(to_import),
        total_income_to_import=sum(
            (c.transaction.amount for c in to_import if c.transaction.is_income), Decimal("0")
        ),
        total_expenses_to_import=sum(
            (-c.transaction.amount for c in to_import if c.transaction.is_expense),
            Decimal("0"),
        ),
    )


def _set_action_where(
    candidates: Sequence[ImportCandidate], match_type: MatchType, action: ImportAction
) -> int:
    changed = 0
    for candidate in candidates:
        if candidate.match_type == match_type and candidate.action != action:
            candidate.set_action(action)
            changed += 1
    return changed


def _describe(file: Any) -> str:
    if isinstance(file, (str, Path)):
        return str(file)
    return str(getattr(file, "name", type(file).__name__))
