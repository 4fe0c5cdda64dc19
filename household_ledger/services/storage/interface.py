"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap the in-memory store for a relational database
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

Every mutation goes through a unit of work. A unit of work is isolated
(no two run at once against the same ledger), sees its own staged writes,
and commits all of them or none of them.

The interface is intentionally small - we're not building a full ORM.
Just the operations the attribution engine needs.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Optional
from uuid import UUID

from household_ledger.models.audit import AuditEvent
from household_ledger.models.ledger import (
    Attribution,
    BudgetCategory,
    IncomeEvent,
    IncomeStatus,
    LiveAttribution,
    Payment,
)


class LedgerReader(ABC):
    """
    Read access to the ledger, always scoped to one family.

    Lookups return None when the entity is missing OR belongs to
    another family; callers can't tell the two apart.
    """

    @abstractmethod
    async def get_payment(
        self,
        family_id: UUID,
        payment_id: UUID,
    ) -> Optional[Payment]:
        pass

    @abstractmethod
    async def get_income_event(
        self,
        family_id: UUID,
        income_event_id: UUID,
    ) -> Optional[IncomeEvent]:
        pass

    @abstractmethod
    async def get_attribution(
        self,
        family_id: UUID,
        attribution_id: UUID,
    ) -> Optional[Attribution]:
        """
        Retrieve an attribution, live or tombstoned.

        Returns:
            LiveAttribution, DeletedAttribution, or None if it never existed
        """
        pass

    @abstractmethod
    async def list_live_attributions_for_payment(
        self,
        payment_id: UUID,
    ) -> list[LiveAttribution]:
        pass

    @abstractmethod
    async def list_live_attributions_for_income(
        self,
        income_event_id: UUID,
    ) -> list[LiveAttribution]:
        pass

    @abstractmethod
    async def list_attributions(
        self,
        family_id: UUID,
    ) -> list[LiveAttribution]:
        """All live attributions of a family, oldest first."""
        pass

    @abstractmethod
    async def list_income_events(
        self,
        family_id: UUID,
        status: Optional[IncomeStatus] = None,
    ) -> list[IncomeEvent]:
        """
        List a family's income events.

        Returns:
            Income events ordered by (scheduled_date, id)
        """
        pass


class LedgerUnitOfWork(LedgerReader):
    """
    One atomic, isolated read-validate-write sequence.

    Writes are staged and only become visible to other readers when the
    owning context manager exits without an exception.
    """

    @abstractmethod
    async def save_income_event(self, income_event: IncomeEvent) -> None:
        pass

    @abstractmethod
    async def save_attribution(self, attribution: Attribution) -> None:
        pass

    @abstractmethod
    async def append_audit(self, event: AuditEvent) -> None:
        """
        Stage an audit record.

        Raises:
            StorageError: If the record can't be written
        """
        pass


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage.

    Any storage implementation (in-memory, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    def unit_of_work(self) -> AbstractAsyncContextManager[LedgerUnitOfWork]:
        """
        Open an isolated unit of work.

        Usage:
            async with store.unit_of_work() as uow:
                ...

        Raises:
            TransactionConflictError: If isolation can't be obtained in time
        """
        pass

    @abstractmethod
    def reader(self) -> LedgerReader:
        """
        Best-effort read access outside any unit of work.

        Reads may be stale relative to a concurrently committing unit of work.
        """
        pass

    # Lifecycle seeding. Creating payments, income events and categories is
    # owned by other services; these exist so they can hand records over.

    @abstractmethod
    async def put_payment(self, payment: Payment) -> None:
        pass

    @abstractmethod
    async def put_income_event(self, income_event: IncomeEvent) -> None:
        pass

    @abstractmethod
    async def put_budget_category(self, category: BudgetCategory) -> None:
        pass

    @abstractmethod
    async def list_budget_categories(
        self,
        family_id: UUID,
        include_inactive: bool = False,
    ) -> list[BudgetCategory]:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for reading the audit log.

    Audit logs are append-only - we never delete or modify them.
    Appending happens through a LedgerUnitOfWork so it commits with the
    mutation it describes.
    """

    @abstractmethod
    async def get_events_by_entity(
        self,
        family_id: UUID,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_for_family(
        self,
        family_id: UUID,
    ) -> list[AuditEvent]:
        """All events of a family in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        family_id: UUID,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class TransactionConflictError(StorageError):
    """The unit of work couldn't be isolated from a concurrent one."""
    pass


class AuditAppendError(StorageError):
    """An audit record couldn't be written; the mutation must not commit."""
    pass
