"""Services package."""

from household_ledger.services.storage import (
    AuditAppendError,
    AuditStorageInterface,
    InMemoryLedgerStore,
    InMemoryUnitOfWork,
    LedgerReader,
    LedgerStorageInterface,
    LedgerUnitOfWork,
    StorageError,
    TransactionConflictError,
)

__all__ = [
    # Storage services
    "AuditAppendError",
    "AuditStorageInterface",
    "InMemoryLedgerStore",
    "InMemoryUnitOfWork",
    "LedgerReader",
    "LedgerStorageInterface",
    "LedgerUnitOfWork",
    "StorageError",
    "TransactionConflictError",
]
