"""
Core Data Models for the Household Ledger

These models define the strict schemas for the entities the attribution
engine reads and writes, and for the plain results it hands back.
They are designed to:
1. Keep every money field a 2-decimal Decimal
2. Provide clear validation error messages
3. Be serializable for storage and audit snapshots

DESIGN DECISION: Entities are treated as values. The engine never mutates
a stored instance in place; it builds an updated copy and saves that copy
inside a unit of work.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from household_ledger.models.primitives import (
    CURRENCY_EPSILON,
    Money,
    NonNegativeMoney,
    Number,
    Percentage,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class IncomeStatus(str, Enum):
    """Income event lifecycle status."""
    SCHEDULED = "scheduled"
    RECEIVED = "received"


class PaymentStatus(str, Enum):
    """Payment lifecycle status."""
    SCHEDULED = "scheduled"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class AttributionType(str, Enum):
    """How an attribution came to exist."""
    MANUAL = "manual"
    AUTOMATIC = "automatic"


class ConfidenceTier(str, Enum):
    """
    Coarse ranking of how well an income event covers a payment.

    Ordered: HIGH sorts before MEDIUM before LOW.
    """
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _CONFIDENCE_RANK[self]


_CONFIDENCE_RANK = {
    ConfidenceTier.HIGH: 0,
    ConfidenceTier.MEDIUM: 1,
    ConfidenceTier.LOW: 2,
}


# =============================================================================
# CORE ENTITIES
# =============================================================================

class IncomeEvent(BaseModel):
    """
    A scheduled or received inflow (a paycheck, a transfer, ...).

    CRITICAL: allocated_amount + remaining_amount == amount at all times.
    Only the attribution engine moves money between the two allocation
    fields; amount and status belong to the income lifecycle.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    family_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    amount: NonNegativeMoney
    allocated_amount: NonNegativeMoney = Decimal("0.00")
    remaining_amount: Optional[NonNegativeMoney] = None
    scheduled_date: date
    status: IncomeStatus = IncomeStatus.SCHEDULED

    @model_validator(mode='after')
    def validate_conservation(self) -> 'IncomeEvent':
        """Default remaining to the unallocated part and check the totals."""
        if self.remaining_amount is None:
            self.remaining_amount = self.amount - self.allocated_amount
            if self.remaining_amount < 0:
                raise ValueError("Allocated amount cannot exceed income amount")
        if abs(self.allocated_amount + self.remaining_amount - self.amount) > CURRENCY_EPSILON:
            raise ValueError("Allocated plus remaining must equal income amount")
        return self

    def with_allocation_delta(self, delta: Decimal) -> 'IncomeEvent':
        """Copy with `delta` moved from remaining to allocated (negative releases)."""
        return self.model_copy(update={
            "allocated_amount": self.allocated_amount + delta,
            "remaining_amount": self.remaining_amount - delta,
        })


class Payment(BaseModel):
    """A scheduled or paid obligation to a payee."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    family_id: UUID
    payee: str = Field(..., min_length=1, max_length=200)
    amount: NonNegativeMoney
    due_date: date
    status: PaymentStatus = PaymentStatus.SCHEDULED


class LiveAttribution(BaseModel):
    """
    A live link from a slice of one income event to one payment.

    Lifecycle: created -> amount updated (any number of times) -> deleted.
    """

    state: Literal["live"] = "live"
    id: UUID = Field(default_factory=uuid4)
    family_id: UUID
    payment_id: UUID
    income_event_id: UUID
    amount: Money = Field(..., gt=0)
    attribution_type: AttributionType = AttributionType.MANUAL
    created_by: UUID
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def snapshot(self) -> dict:
        """JSON-safe copy of every field, used for audit old values."""
        return self.model_dump(mode="json", exclude={"state"})


class DeletedAttribution(BaseModel):
    """
    Tombstone of a deleted attribution.

    Kept for audit. It no longer counts toward any total and cannot be
    mutated again.
    """

    state: Literal["deleted"] = "deleted"
    id: UUID
    family_id: UUID
    original: LiveAttribution
    deleted_by: UUID
    deleted_at: datetime = Field(default_factory=utcnow)

    @property
    def payment_id(self) -> UUID:
        return self.original.payment_id

    @property
    def income_event_id(self) -> UUID:
        return self.original.income_event_id


Attribution = Annotated[
    Union[LiveAttribution, DeletedAttribution],
    Field(discriminator="state"),
]


class BudgetCategory(BaseModel):
    """A savings/spending category with its target share of each income."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    family_id: UUID
    name: str = Field(..., min_length=1, max_length=100)
    target_percentage: Percentage
    is_active: bool = True
    sort_order: int = 0


class BudgetAllocation(BaseModel):
    """The slice of one income event assigned to one budget category."""

    id: UUID = Field(default_factory=uuid4)
    income_event_id: UUID
    budget_category_id: UUID
    amount: Money
    percentage: Percentage


# =============================================================================
# REQUEST MODELS
# =============================================================================

class SplitEntry(BaseModel):
    """One slice of a payment split: which income event pays how much."""

    income_event_id: UUID
    amount: Money


class ProposedAttribution(BaseModel):
    """
    An attribution a caller is considering.

    Amount is only checked for being numeric; the capacity report lists
    non-positive amounts instead of rejecting them here.
    """

    income_event_id: UUID
    amount: Number


class CategoryPercentageInput(BaseModel):
    """A category id with the target percentage a caller proposes for it."""

    id: UUID
    target_percentage: Number


class AllocationInput(BaseModel):
    """A proposed budget allocation line for one income event."""

    budget_category_id: UUID
    amount: Number
    percentage: Number


# =============================================================================
# RESULT MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single problem found by an accumulating validator."""

    field: str = Field(
        ...,
        description="Field or entity with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'non_positive', 'not_found', 'exceeds_capacity')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )


class DeletionResult(BaseModel):
    """Outcome of deleting an attribution."""

    attribution_id: UUID
    income_event_id: UUID
    payment_id: UUID
    released_amount: Money
    warnings: list[str] = Field(
        default_factory=list,
        description="Advisory notes, e.g. adjusting an already-paid payment"
    )


class AttributionSuggestion(BaseModel):
    """A ranked candidate income event for paying a payment."""

    income_event_id: UUID
    income_event_name: str
    scheduled_date: date
    available_amount: Money
    suggested_amount: Money
    confidence: ConfidenceTier


class CapacityReport(BaseModel):
    """Every problem with a set of proposed attributions, collected at once."""

    payment_id: UUID
    is_valid: bool
    errors: list[ValidationIssue] = Field(default_factory=list)
    total_proposed: Decimal
    existing_attributed: Money
    payment_amount: Money


class CategorySuggestion(BaseModel):
    """A rescaled percentage proposed for one category."""

    category_id: UUID
    current_percentage: Decimal
    suggested_percentage: Decimal


class PercentageReport(BaseModel):
    """Result of checking that category percentages sum to 100."""

    is_valid: bool
    total_percentage: Decimal
    difference: Decimal
    suggestions: list[CategorySuggestion] = Field(default_factory=list)


class AllocationReport(BaseModel):
    """Result of checking a set of budget allocations against one income."""

    income_event_id: UUID
    is_valid: bool
    errors: list[ValidationIssue] = Field(default_factory=list)
    total_percentage: Decimal
    total_amount: Decimal
    income_amount: Money


class PaymentAttributionLine(BaseModel):
    attribution_id: UUID
    income_event_id: UUID
    income_event_name: str
    income_event_date: date
    amount: Money
    percentage: Decimal


class PaymentAttributionSummary(BaseModel):
    """How much of a payment is covered, and by which income events."""

    payment_id: UUID
    payment_amount: Money
    total_attributed: Money
    remaining_amount: Money
    attributions: list[PaymentAttributionLine] = Field(default_factory=list)


class IncomeAttributionLine(BaseModel):
    attribution_id: UUID
    payment_id: UUID
    payee: str
    due_date: date
    amount: Money
    percentage: Decimal


class IncomeAttributionSummary(BaseModel):
    """Which payments an income event is paying for."""

    income_event_id: UUID
    income_amount: Money
    allocated_amount: Money
    remaining_amount: Money
    attributions: list[IncomeAttributionLine] = Field(default_factory=list)


class AttributionHistoryEntry(BaseModel):
    attribution_id: UUID
    payment_id: UUID
    payee: str
    income_event_id: UUID
    income_event_name: str
    amount: Money
    attribution_type: AttributionType
    created_by: UUID
    created_at: datetime
