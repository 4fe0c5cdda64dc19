"""
Storage Services Package

Provides abstract interfaces and concrete implementations for ledger storage.
Currently implements an in-memory backend, but designed to be swappable.
"""

from household_ledger.services.storage.interface import (
    AuditAppendError,
    AuditStorageInterface,
    LedgerReader,
    LedgerStorageInterface,
    LedgerUnitOfWork,
    StorageError,
    TransactionConflictError,
)
from household_ledger.services.storage.memory import (
    InMemoryLedgerStore,
    InMemoryUnitOfWork,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerReader",
    "LedgerStorageInterface",
    "LedgerUnitOfWork",
    # Exceptions
    "AuditAppendError",
    "StorageError",
    "TransactionConflictError",
    # In-memory implementation
    "InMemoryLedgerStore",
    "InMemoryUnitOfWork",
]
