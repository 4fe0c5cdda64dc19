"""
Data Models Package

This package contains all Pydantic models used by the household ledger.
All data flowing through the engine must conform to these schemas.
"""

from household_ledger.models.primitives import (
    CURRENCY_EPSILON,
    PERCENTAGE_EPSILON,
    Money,
    Percentage,
    to_money,
    to_percentage,
    within_epsilon,
)
from household_ledger.models.ledger import (
    AllocationInput,
    AllocationReport,
    Attribution,
    AttributionHistoryEntry,
    AttributionSuggestion,
    AttributionType,
    BudgetAllocation,
    BudgetCategory,
    CapacityReport,
    CategoryPercentageInput,
    CategorySuggestion,
    ConfidenceTier,
    DeletedAttribution,
    DeletionResult,
    IncomeAttributionSummary,
    IncomeEvent,
    IncomeStatus,
    LiveAttribution,
    Payment,
    PaymentAttributionSummary,
    PaymentStatus,
    PercentageReport,
    ProposedAttribution,
    SplitEntry,
    ValidationIssue,
)
from household_ledger.models.audit import (
    AuditAction,
    AuditEntityType,
    AuditEvent,
    AuditEventBuilder,
    AuditSeverity,
)

__all__ = [
    # Primitives
    "CURRENCY_EPSILON",
    "PERCENTAGE_EPSILON",
    "Money",
    "Percentage",
    "to_money",
    "to_percentage",
    "within_epsilon",
    # Ledger models
    "AllocationInput",
    "AllocationReport",
    "Attribution",
    "AttributionHistoryEntry",
    "AttributionSuggestion",
    "AttributionType",
    "BudgetAllocation",
    "BudgetCategory",
    "CapacityReport",
    "CategoryPercentageInput",
    "CategorySuggestion",
    "ConfidenceTier",
    "DeletedAttribution",
    "DeletionResult",
    "IncomeAttributionSummary",
    "IncomeEvent",
    "IncomeStatus",
    "LiveAttribution",
    "Payment",
    "PaymentAttributionSummary",
    "PaymentStatus",
    "PercentageReport",
    "ProposedAttribution",
    "SplitEntry",
    "ValidationIssue",
    # Audit models
    "AuditAction",
    "AuditEntityType",
    "AuditEvent",
    "AuditEventBuilder",
    "AuditSeverity",
]
