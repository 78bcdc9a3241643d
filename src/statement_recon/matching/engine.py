"""
Duplicate matching engine for statement import.
Classifies each parsed transaction against existing ledger records and
assigns the default resolution action.
"""

from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence
import logging

from ..models.transaction import (
    ImportAction,
    ImportCandidate,
    MatchedRecord,
    MatchType,
    ParsedTransaction,
)

logger = logging.getLogger(__name__)

# LIKELY defaults to IMPORT: a probable duplicate is created unless the
# reviewer overrides it. Only confirmed duplicates are skipped.
DEFAULT_ACTIONS: dict[MatchType, ImportAction] = {
    MatchType.NEW: ImportAction.IMPORT,
    MatchType.LIKELY: ImportAction.IMPORT,
    MatchType.EXACT: ImportAction.SKIP,
}

_MatchKey = tuple[date, Decimal]


def default_action(match_type: MatchType) -> ImportAction:
    """Return the default action for a match type."""
    return DEFAULT_ACTIONS[match_type]


class MatchingEngine:
    """
    Classifies import candidates against a read-only ledger snapshot.

    A candidate shares a "match key" with a record when both the calendar
    date and the amount (full decimal precision) are equal. Among records
    sharing the key, the one with the fewest differing fields is attached;
    equal divergence is settled by the smallest record id.
    """

    def classify(
        self,
        candidate: ParsedTransaction,
        existing_records: Iterable[MatchedRecord],
    ) -> tuple[MatchType, Optional[MatchedRecord]]:
        """
        Classify one transaction against existing ledger records.

        Args:
            candidate: Parsed transaction from the statement
            existing_records: Ledger records for the relevant period

        Returns:
            Tuple of (match type, attached record or None)
        """
        key = _match_key(candidate.date, candidate.amount)
        same_key = [r for r in existing_records if _match_key(r.date, r.amount) == key]
        return self._classify_among(candidate, same_key)

    def create_candidate(
        self,
        transaction: ParsedTransaction,
        existing_records: Iterable[MatchedRecord],
    ) -> ImportCandidate:
        """Classify a transaction and wrap it with its default action."""
        match_type, record = self.classify(transaction, existing_records)
        return ImportCandidate(
            transaction=transaction,
            match_type=match_type,
            action=default_action(match_type),
            matched_record=record,
        )

    def build_candidates(
        self,
        transactions: Sequence[ParsedTransaction],
        existing_records: Iterable[MatchedRecord],
    ) -> list[ImportCandidate]:
        """
        Classify every transaction, preserving statement order.

        Args:
            transactions: Parsed transactions in file order
            existing_records: Ledger records for the statement period

        Returns:
            One ImportCandidate per transaction, in the same order
        """
        records_by_key: dict[_MatchKey, list[MatchedRecord]] = defaultdict(list)
        record_count = 0
        for record in existing_records:
            records_by_key[_match_key(record.date, record.amount)].append(record)
            record_count += 1

        logger.info(
            f"Analyzing {len(transactions)} transactions against "
            f"{record_count} existing records"
        )

        candidates: list[ImportCandidate] = []
        for txn in transactions:
            same_key = records_by_key.get(_match_key(txn.date, txn.amount), [])
            match_type, record = self._classify_among(txn, same_key)
            candidates.append(
                ImportCandidate(
                    transaction=txn,
                    match_type=match_type,
                    action=default_action(match_type),
                    matched_record=record,
                )
            )
            logger.debug(
                f"{txn.date} {txn.amount} '{txn.description}': {match_type.value}"
                + (f" (record {record.id})" if record else "")
            )

        counts = {t: sum(1 for c in candidates if c.match_type == t) for t in MatchType}
        logger.info(
            f"Classification complete: {counts[MatchType.NEW]} new, "
            f"{counts[MatchType.LIKELY]} likely, {counts[MatchType.EXACT]} exact"
        )
        return candidates

    @staticmethod
    def divergence(candidate: ParsedTransaction, record: MatchedRecord) -> int:
        """Number of comparable fields (description, category) that differ."""
        diff = 0
        if candidate.description != record.description:
            diff += 1
        if (candidate.category or "") != (record.category or ""):
            diff += 1
        return diff

    def _classify_among(
        self,
        candidate: ParsedTransaction,
        same_key: Sequence[MatchedRecord],
    ) -> tuple[MatchType, Optional[MatchedRecord]]:
        if not same_key:
            return MatchType.NEW, None

        best = min(
            same_key,
            key=lambda r: (self.divergence(candidate, r), _id_sort_key(r.id)),
        )
        if self.divergence(candidate, best) == 0:
            return MatchType.EXACT, best
        return MatchType.LIKELY, best


def _calendar_date(value: date) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def _match_key(value: date, amount: Decimal) -> _MatchKey:
    return _calendar_date(value), Decimal(amount)


def _id_sort_key(record_id: Any) -> tuple[int, Any]:
    """Order ids numerically when they are ints, otherwise by their text."""
    if isinstance(record_id, int) and not isinstance(record_id, bool):
        return (0, record_id)
    return (1, str(record_id))
