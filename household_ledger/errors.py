"""
Ledger Error Taxonomy

Every failure the engine reports to a caller is one of these kinds.
The boundary layer maps them to transport responses; this package never
produces a status code itself.

DESIGN DECISION: Validation happens before any mutation.
When one of these is raised from inside a unit of work, the unit of work
is discarded and nothing is persisted.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Optional


class CapacityScope(str, Enum):
    """Which conservation invariant a request would break."""
    PAYMENT = "payment"
    INCOME = "income"


class LedgerError(Exception):
    """Base exception for all ledger errors."""

    code = "ledger_error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(LedgerError):
    """Entity is absent or belongs to another family."""

    code = "not_found"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            f"{entity.replace('_', ' ').capitalize()} not found: {entity_id}",
            {"entity": entity, "entity_id": str(entity_id)},
        )
        self.entity = entity
        self.entity_id = entity_id


class CapacityExceededError(LedgerError):
    """Request would push a payment or an income event past its amount."""

    code = "capacity_exceeded"

    def __init__(
        self,
        scope: CapacityScope,
        requested: Decimal,
        available: Decimal,
    ):
        if scope == CapacityScope.PAYMENT:
            message = "Attribution amount exceeds payment amount"
        else:
            message = "Attribution amount exceeds available income"
        super().__init__(
            message,
            {
                "scope": scope.value,
                "requested": str(requested),
                "available": str(available),
            },
        )
        self.scope = scope
        self.requested = requested
        self.available = available


class AmountMismatchError(LedgerError):
    """Split totals don't equal the payment amount."""

    code = "amount_mismatch"

    def __init__(self, expected: Decimal, actual: Decimal):
        super().__init__(
            f"Total attribution amounts ({actual}) must equal payment amount ({expected})",
            {"expected": str(expected), "actual": str(actual)},
        )
        self.expected = expected
        self.actual = actual


class ConflictError(LedgerError):
    """Request conflicts with the current state of an entity."""

    code = "conflict"

    def __init__(self, reason: str, details: Optional[dict[str, Any]] = None):
        super().__init__(reason, details)
        self.reason = reason


class InvalidArgumentError(LedgerError):
    """Request input is malformed."""

    code = "invalid_argument"

    def __init__(self, field: str, reason: str):
        super().__init__(
            f"Invalid {field}: {reason}",
            {"field": field, "reason": reason},
        )
        self.field = field
        self.reason = reason

