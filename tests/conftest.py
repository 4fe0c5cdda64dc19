"""
Shared fixtures for the household ledger tests.

Every test gets a fresh in-memory store; nothing is shared between tests.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from household_ledger.attribution import AttributionAdvisor, AttributionEngine
from household_ledger.config import EngineSettings, StorageSettings
from household_ledger.models.ledger import (
    BudgetCategory,
    IncomeEvent,
    IncomeStatus,
    Payment,
    PaymentStatus,
)
from household_ledger.services.storage import InMemoryLedgerStore


class LedgerSeeder:
    """Puts payments, income events and categories straight into a store."""

    def __init__(self, store: InMemoryLedgerStore, family_id):
        self.store = store
        self.family_id = family_id

    async def payment(
        self,
        amount,
        due_date=date(2025, 1, 15),
        status=PaymentStatus.SCHEDULED,
        payee="Landlord",
        family_id=None,
    ) -> Payment:
        payment = Payment(
            family_id=family_id or self.family_id,
            payee=payee,
            amount=Decimal(str(amount)),
            due_date=due_date,
            status=status,
        )
        await self.store.put_payment(payment)
        return payment

    async def income(
        self,
        amount,
        scheduled_date=date(2025, 1, 10),
        status=IncomeStatus.SCHEDULED,
        name="Paycheck",
        allocated=Decimal("0.00"),
        family_id=None,
        income_id=None,
    ) -> IncomeEvent:
        fields = dict(
            family_id=family_id or self.family_id,
            name=name,
            amount=Decimal(str(amount)),
            allocated_amount=Decimal(str(allocated)),
            scheduled_date=scheduled_date,
            status=status,
        )
        if income_id is not None:
            fields["id"] = income_id
        income_event = IncomeEvent(**fields)
        await self.store.put_income_event(income_event)
        return income_event

    async def category(self, name, target_percentage, is_active=True, sort_order=0) -> BudgetCategory:
        category = BudgetCategory(
            family_id=self.family_id,
            name=name,
            target_percentage=Decimal(str(target_percentage)),
            is_active=is_active,
            sort_order=sort_order,
        )
        await self.store.put_budget_category(category)
        return category

    async def reload_income(self, income_event_id) -> IncomeEvent:
        return await self.store.reader().get_income_event(self.family_id, income_event_id)


@pytest.fixture
def family_id():
    return uuid4()


@pytest.fixture
def actor_id():
    return uuid4()


@pytest.fixture
def storage_settings():
    return StorageSettings(
        lock_timeout_seconds=1.0,
        max_transaction_attempts=3,
        retry_wait_seconds=0.01,
        retry_wait_max_seconds=0.05,
    )


@pytest.fixture
def engine_settings():
    return EngineSettings(max_batch_size=5, attribution_history_limit=50)


@pytest.fixture
def store(storage_settings):
    return InMemoryLedgerStore(storage_settings)


@pytest.fixture
def engine(store, engine_settings, storage_settings):
    return AttributionEngine(
        store,
        engine_settings=engine_settings,
        storage_settings=storage_settings,
    )


@pytest.fixture
def advisor(store, engine, engine_settings):
    return AttributionAdvisor(store, engine, engine_settings=engine_settings)


@pytest.fixture
def seed(store, family_id):
    return LedgerSeeder(store, family_id)
