"""
In-Memory Storage Implementation

DESIGN DECISION: The in-memory store is the reference implementation of
the storage interface and the one the tests run against.

Isolation: a single asyncio.Lock serializes units of work, so every
read-validate-write sequence sees the totals left by the previous one.
Atomicity: writes are staged on the unit of work and merged into the
store only when the `async with` block exits normally.

TRADEOFFS:
- One lock for the whole ledger (fine for a household, not for a bank)
- Nothing survives a restart
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Mapping, Optional
from uuid import UUID

import structlog

from household_ledger.config import StorageSettings, get_settings
from household_ledger.models.audit import AuditEvent
from household_ledger.models.ledger import (
    Attribution,
    BudgetCategory,
    IncomeEvent,
    IncomeStatus,
    LiveAttribution,
    Payment,
)
from household_ledger.services.storage.interface import (
    AuditStorageInterface,
    LedgerReader,
    LedgerStorageInterface,
    LedgerUnitOfWork,
    TransactionConflictError,
)


logger = structlog.get_logger(__name__)


class _InMemoryView(LedgerReader):
    """Read operations over whatever income events/attributions a view exposes."""

    def __init__(self, store: "InMemoryLedgerStore"):
        self._store = store

    def _income_events(self) -> Mapping[UUID, IncomeEvent]:
        return self._store._income_events

    def _attributions(self) -> Mapping[UUID, Attribution]:
        return self._store._attributions

    async def get_payment(
        self,
        family_id: UUID,
        payment_id: UUID,
    ) -> Optional[Payment]:
        payment = self._store._payments.get(payment_id)
        if payment is None or payment.family_id != family_id:
            return None
        return payment

    async def get_income_event(
        self,
        family_id: UUID,
        income_event_id: UUID,
    ) -> Optional[IncomeEvent]:
        income_event = self._income_events().get(income_event_id)
        if income_event is None or income_event.family_id != family_id:
            return None
        return income_event

    async def get_attribution(
        self,
        family_id: UUID,
        attribution_id: UUID,
    ) -> Optional[Attribution]:
        attribution = self._attributions().get(attribution_id)
        if attribution is None or attribution.family_id != family_id:
            return None
        return attribution

    def _live(self) -> list[LiveAttribution]:
        return [
            attribution
            for attribution in self._attributions().values()
            if isinstance(attribution, LiveAttribution)
        ]

    async def list_live_attributions_for_payment(
        self,
        payment_id: UUID,
    ) -> list[LiveAttribution]:
        return [a for a in self._live() if a.payment_id == payment_id]

    async def list_live_attributions_for_income(
        self,
        income_event_id: UUID,
    ) -> list[LiveAttribution]:
        return [a for a in self._live() if a.income_event_id == income_event_id]

    async def list_attributions(
        self,
        family_id: UUID,
    ) -> list[LiveAttribution]:
        attributions = [a for a in self._live() if a.family_id == family_id]
        # Stable sort keeps insertion order for equal timestamps
        return sorted(attributions, key=lambda a: a.created_at)

    async def list_income_events(
        self,
        family_id: UUID,
        status: Optional[IncomeStatus] = None,
    ) -> list[IncomeEvent]:
        events = [
            event
            for event in self._income_events().values()
            if event.family_id == family_id
            and (status is None or event.status == status)
        ]
        return sorted(events, key=lambda e: (e.scheduled_date, e.id))


class InMemoryUnitOfWork(_InMemoryView, LedgerUnitOfWork):
    """
    Staged writes over the committed store.

    Reads see the staged version of an entity when there is one.
    """

    def __init__(self, store: "InMemoryLedgerStore"):
        super().__init__(store)
        self._staged_income_events: dict[UUID, IncomeEvent] = {}
        self._staged_attributions: dict[UUID, Attribution] = {}
        self._staged_audit: list[AuditEvent] = []

    def _income_events(self) -> Mapping[UUID, IncomeEvent]:
        return {**self._store._income_events, **self._staged_income_events}

    def _attributions(self) -> Mapping[UUID, Attribution]:
        return {**self._store._attributions, **self._staged_attributions}

    async def save_income_event(self, income_event: IncomeEvent) -> None:
        self._staged_income_events[income_event.id] = income_event

    async def save_attribution(self, attribution: Attribution) -> None:
        self._staged_attributions[attribution.id] = attribution

    async def append_audit(self, event: AuditEvent) -> None:
        self._staged_audit.append(event)

    def _commit(self) -> None:
        self._store._income_events.update(self._staged_income_events)
        self._store._attributions.update(self._staged_attributions)
        self._store._audit_events.extend(self._staged_audit)
        logger.debug(
            "unit_of_work_committed",
            income_events=len(self._staged_income_events),
            attributions=len(self._staged_attributions),
            audit_events=len(self._staged_audit),
        )


class InMemoryLedgerStore(LedgerStorageInterface, AuditStorageInterface):
    """
    Ledger and audit storage held in process memory.
    """

    def __init__(self, settings: Optional[StorageSettings] = None):
        self._settings = settings or get_settings().storage
        self._lock = asyncio.Lock()

        self._payments: dict[UUID, Payment] = {}
        self._income_events: dict[UUID, IncomeEvent] = {}
        self._attributions: dict[UUID, Attribution] = {}
        self._budget_categories: dict[UUID, BudgetCategory] = {}
        self._audit_events: list[AuditEvent] = []

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[InMemoryUnitOfWork]:
        timeout = self._settings.lock_timeout_seconds
        try:
            async with asyncio.timeout(timeout):
                await self._lock.acquire()
        except TimeoutError:
            raise TransactionConflictError(
                f"Could not isolate unit of work within {timeout}s"
            )

        try:
            uow = InMemoryUnitOfWork(self)
            yield uow
            # Only reached when the block raised nothing
            uow._commit()
        finally:
            self._lock.release()

    def reader(self) -> LedgerReader:
        return _InMemoryView(self)

    async def put_payment(self, payment: Payment) -> None:
        self._payments[payment.id] = payment

    async def put_income_event(self, income_event: IncomeEvent) -> None:
        self._income_events[income_event.id] = income_event

    async def put_budget_category(self, category: BudgetCategory) -> None:
        self._budget_categories[category.id] = category

    async def list_budget_categories(
        self,
        family_id: UUID,
        include_inactive: bool = False,
    ) -> list[BudgetCategory]:
        categories = [
            category
            for category in self._budget_categories.values()
            if category.family_id == family_id
            and (include_inactive or category.is_active)
        ]
        return sorted(categories, key=lambda c: c.sort_order)

    # Audit log queries

    async def get_events_by_entity(
        self,
        family_id: UUID,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        return [
            event
            for event in self._audit_events
            if event.family_id == family_id and event.entity_id == entity_id
        ]

    async def get_events_for_family(
        self,
        family_id: UUID,
    ) -> list[AuditEvent]:
        return [e for e in self._audit_events if e.family_id == family_id]

    async def get_recent_events(
        self,
        family_id: UUID,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = await self.get_events_for_family(family_id)
        return list(reversed(events))[:limit]
