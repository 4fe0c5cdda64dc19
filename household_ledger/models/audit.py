"""
Audit Models for the Household Ledger

Every mutation of an attribution is recorded for audit purposes.
This provides:
1. Complete traceability of who moved which money where
2. The old and new values needed to reconstruct history
3. Accountability per family member

DESIGN DECISION: Audit records are append-only. We never delete or modify them.
An attribution mutation without its audit record must not be persisted.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from household_ledger.models.ledger import (
    AttributionType,
    LiveAttribution,
    SplitEntry,
    utcnow,
)


class AuditAction(str, Enum):
    """Kinds of mutation we audit."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    INFO = "info"
    WARNING = "warning"


class AuditEntityType(str, Enum):
    ATTRIBUTION = "payment_attribution"
    PAYMENT_SPLIT = "payment_split"


class AuditEvent(BaseModel):
    """
    A single audit record.

    This is the core unit of our audit trail.
    Every create/update/delete of an attribution creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the mutation happened (UTC)"
    )

    # Who
    family_id: UUID = Field(
        ...,
        description="Family the mutated entity belongs to"
    )
    actor_id: UUID = Field(
        ...,
        description="Family member who performed the mutation"
    )

    # What
    action: AuditAction
    severity: AuditSeverity = AuditSeverity.INFO
    entity_type: AuditEntityType
    entity_id: UUID

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    old_values: dict[str, Any] = Field(default_factory=dict)
    new_values: dict[str, Any] = Field(default_factory=dict)

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "recorded_at": self.timestamp.isoformat(),
            "family_id": str(self.family_id),
            "actor_id": str(self.actor_id),
            "action": self.action.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type.value,
            "entity_id": str(self.entity_id),
            "description": self.description,
            "old_values": self.old_values,
            "new_values": self.new_values,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events for each attribution mutation.

    Usage:
        event = AuditEventBuilder.attribution_created(attribution, actor_id)
        event = AuditEventBuilder.attribution_deleted(attribution, actor_id, warnings)
    """

    @staticmethod
    def attribution_created(
        attribution: LiveAttribution,
        actor_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            family_id=attribution.family_id,
            actor_id=actor_id,
            action=AuditAction.CREATE,
            entity_type=AuditEntityType.ATTRIBUTION,
            entity_id=attribution.id,
            description=f"Attributed {attribution.amount} to payment {attribution.payment_id}",
            new_values={
                "payment_id": str(attribution.payment_id),
                "income_event_id": str(attribution.income_event_id),
                "amount": str(attribution.amount),
                "attribution_type": attribution.attribution_type.value,
            },
        )

    @staticmethod
    def attribution_updated(
        attribution: LiveAttribution,
        old_amount: Decimal,
        actor_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            family_id=attribution.family_id,
            actor_id=actor_id,
            action=AuditAction.UPDATE,
            entity_type=AuditEntityType.ATTRIBUTION,
            entity_id=attribution.id,
            description=f"Attribution amount changed from {old_amount} to {attribution.amount}",
            old_values={"amount": str(old_amount)},
            new_values={"amount": str(attribution.amount)},
        )

    @staticmethod
    def attribution_deleted(
        attribution: LiveAttribution,
        actor_id: UUID,
        warnings: Optional[list[str]] = None,
    ) -> AuditEvent:
        return AuditEvent(
            family_id=attribution.family_id,
            actor_id=actor_id,
            action=AuditAction.DELETE,
            severity=AuditSeverity.WARNING if warnings else AuditSeverity.INFO,
            entity_type=AuditEntityType.ATTRIBUTION,
            entity_id=attribution.id,
            description=f"Attribution of {attribution.amount} removed from payment {attribution.payment_id}",
            old_values=attribution.snapshot(),
        )

    @staticmethod
    def payment_split(
        family_id: UUID,
        payment_id: UUID,
        entries: list[SplitEntry],
        total_amount: Decimal,
        attribution_type: AttributionType,
        actor_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            family_id=family_id,
            actor_id=actor_id,
            action=AuditAction.CREATE,
            entity_type=AuditEntityType.PAYMENT_SPLIT,
            entity_id=payment_id,
            description=f"Payment split across {len(entries)} income events",
            new_values={
                "payment_id": str(payment_id),
                "split_count": len(entries),
                "total_amount": str(total_amount),
                "attribution_type": attribution_type.value,
                "attributions": [
                    {
                        "income_event_id": str(entry.income_event_id),
                        "amount": str(entry.amount),
                    }
                    for entry in entries
                ],
            },
        )
