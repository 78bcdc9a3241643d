"""
Ledger collaborator interface and an in-memory implementation.

The import core only reads ledger records through ``find_records_overlapping``
and writes through ``create`` / ``update``; storage is the ledger's concern.
"""

from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Iterable, Optional
import logging

import pandas as pd

from ..models.transaction import MatchedRecord, ParsedTransaction
from ..utils.exceptions import LedgerError

logger = logging.getLogger(__name__)

LEDGER_COLUMNS = ["id", "date", "description", "amount", "category"]
UPDATABLE_FIELDS = ("date", "description", "amount", "category")


class Ledger(ABC):
    """Abstract base class for the ledger an import reconciles against."""

    @abstractmethod
    def find_records_overlapping(self, start: date, end: date) -> list[MatchedRecord]:
        """
        Return records dated within ``start``..``end`` (inclusive).

        Args:
            start: First calendar date of the range
            end: Last calendar date of the range

        Returns:
            Read-only projections of the matching ledger entries
        """
        pass

    @abstractmethod
    def create(self, transaction: ParsedTransaction) -> Any:
        """Create a ledger entry from ``transaction`` and return its id."""
        pass

    @abstractmethod
    def update(self, record_id: Any, fields: dict[str, Any]) -> None:
        """Overwrite mutable fields of an existing entry."""
        pass


class InMemoryLedger(Ledger):
    """Dict-backed ledger with integer ids, loadable from and savable to CSV."""

    def __init__(self, records: Optional[Iterable[MatchedRecord]] = None):
        self._records: dict[Any, MatchedRecord] = {}
        for record in records or []:
            self._records[record.id] = record

    @property
    def records(self) -> list[MatchedRecord]:
        return list(self._records.values())

    def get(self, record_id: Any) -> Optional[MatchedRecord]:
        return self._records.get(record_id)

    def find_records_overlapping(self, start: date, end: date) -> list[MatchedRecord]:
        return [r for r in self._records.values() if start <= _as_date(r.date) <= end]

    def create(self, transaction: ParsedTransaction) -> Any:
        if not transaction.description:
            raise LedgerError("Cannot create a ledger entry without a description")

        record_id = self._next_id()
        self._records[record_id] = MatchedRecord(
            id=record_id,
            date=transaction.date,
            description=transaction.description,
            amount=transaction.amount,
            category=transaction.category,
        )
        logger.debug(f"Created ledger record {record_id}")
        return record_id

    def update(self, record_id: Any, fields: dict[str, Any]) -> None:
        existing = self._records.get(record_id)
        if existing is None:
            raise LedgerError(f"Ledger record not found: {record_id}")

        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise LedgerError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        self._records[record_id] = replace(existing, **fields)
        logger.debug(f"Updated ledger record {record_id}: {sorted(fields)}")

    def _next_id(self) -> int:
        numeric = [k for k in self._records if isinstance(k, int)]
        return max(numeric, default=0) + 1

    @classmethod
    def load_csv(cls, file_path: Path, date_format: str = "%Y-%m-%d") -> "InMemoryLedger":
        """
        Load a ledger file with columns ``id,date,description,amount,category``.

        A missing file yields an empty ledger.

        Raises:
            LedgerError: If the file lacks a required column or holds bad values
        """
        if not Path(file_path).exists():
            logger.info(f"Ledger file not found, starting empty: {file_path}")
            return cls()

        df = pd.read_csv(file_path, dtype=str, keep_default_na=False)
        missing = [c for c in LEDGER_COLUMNS if c not in df.columns and c != "category"]
        if missing:
            raise LedgerError(f"Ledger file {file_path} is missing columns: {', '.join(missing)}")

        records: list[MatchedRecord] = []
        for idx, row in df.iterrows():
            try:
                records.append(
                    MatchedRecord(
                        id=_parse_id(row["id"]),
                        date=datetime.strptime(row["date"].strip(), date_format).date(),
                        description=row["description"],
                        amount=Decimal(row["amount"].strip()),
                        category=row.get("category") or None,
                    )
                )
            except (ValueError, InvalidOperation) as e:
                raise LedgerError(f"Invalid ledger row {int(idx) + 2}: {e}") from e

        logger.info(f"Loaded {len(records)} ledger records from {file_path}")
        return cls(records)

    def save_csv(self, file_path: Path, date_format: str = "%Y-%m-%d") -> Path:
        """Write all records to ``file_path`` in id order."""
        rows = [
            {
                "id": r.id,
                "date": _as_date(r.date).strftime(date_format),
                "description": r.description,
                "amount": str(r.amount),
                "category": r.category or "",
            }
            for r in sorted(self._records.values(), key=lambda r: str(r.id).zfill(12))
        ]
        df = pd.DataFrame(rows, columns=LEDGER_COLUMNS)

        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(file_path, index=False)
        logger.info(f"Saved {len(rows)} ledger records to {file_path}")
        return file_path


def _as_date(value: date) -> date:
    return value.date() if isinstance(value, datetime) else value


def _parse_id(value: str) -> Any:
    value = value.strip()
    return int(value) if value.isdigit() else value
