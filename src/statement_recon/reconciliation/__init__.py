"""Import coordination and the ledger collaborator."""

from .coordinator import (
    ImportSession,
    ReconciliationCoordinator,
    import_all_new,
    skip_all_duplicates,
    summarize,
    update_fields,
)
from .ledger import InMemoryLedger, Ledger

__all__ = [
    "ImportSession",
    "ReconciliationCoordinator",
    "import_all_new",
    "skip_all_duplicates",
    "summarize",
    "update_fields",
    "InMemoryLedger",
    "Ledger",
]
