"""
Auto-Attribution & Suggestion Advisor

Picks or ranks income events that could pay a payment.

DESIGN DECISION: The advisor only reads, and its reads are best-effort.
A suggestion can be stale by the time a caller acts on it; the engine
re-validates every capacity check inside its own unit of work, so the
engine stays the single source of truth.

The candidate sets are deliberately asymmetric:
- auto-attribution is strict (scheduled, fully covers, on time) because
  it commits money without a human looking
- suggestions are lenient (any scheduled income) because a human picks
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Optional, Union
from uuid import UUID

import structlog
from pydantic import ValidationError

from household_ledger.attribution.engine import (
    AttributionEngine,
    require_payment,
)
from household_ledger.config import EngineSettings, get_settings
from household_ledger.errors import ConflictError, InvalidArgumentError
from household_ledger.models.ledger import (
    AttributionSuggestion,
    AttributionType,
    CapacityReport,
    ConfidenceTier,
    IncomeEvent,
    IncomeStatus,
    LiveAttribution,
    Payment,
    ProposedAttribution,
    ValidationIssue,
)
from household_ledger.models.primitives import sum_money
from household_ledger.services.storage import LedgerStorageInterface


logger = structlog.get_logger(__name__)

MEDIUM_COVERAGE_RATIO = Decimal("0.5")


def confidence_for(income_event: IncomeEvent, payment: Payment) -> ConfidenceTier:
    """
    Rank how well an income event covers a payment.

    HIGH: arrives on or before the due date and covers it fully
    MEDIUM: otherwise covers at least half
    LOW: anything else
    """
    covers = income_event.remaining_amount >= payment.amount
    if income_event.scheduled_date <= payment.due_date and covers:
        return ConfidenceTier.HIGH
    if income_event.remaining_amount >= payment.amount * MEDIUM_COVERAGE_RATIO:
        return ConfidenceTier.MEDIUM
    return ConfidenceTier.LOW


class AttributionAdvisor:
    """
    Read-mostly helpers around the attribution engine.

    Only `auto_attribute_payment` writes, and it does so through the engine.
    """

    def __init__(
        self,
        store: LedgerStorageInterface,
        engine: AttributionEngine,
        engine_settings: Optional[EngineSettings] = None,
    ):
        self._store = store
        self._engine = engine
        self._settings = engine_settings or get_settings().engine

    async def auto_attribute_payment(
        self,
        family_id: UUID,
        payment_id: UUID,
        actor_id: UUID,
    ) -> Optional[LiveAttribution]:
        """
        Attribute a whole payment to the earliest income event that can cover it.

        Candidates: scheduled income events of the family with enough
        remaining to cover the full payment, scheduled on or before its
        due date. Ties on date go to the lowest id.

        Returns:
            The automatic attribution, or None when no income qualifies
            (callers fall back to manual attribution)

        Raises:
            NotFoundError: payment not in this family
            ConflictError: payment already has live attributions
        """
        reader = self._store.reader()
        payment = await require_payment(reader, family_id, payment_id)

        if await reader.list_live_attributions_for_payment(payment.id):
            raise ConflictError(
                "Payment already has attributions",
                {"payment_id": str(payment.id)},
            )

        if payment.amount <= 0:
            logger.info(
                "auto_attribution_skipped",
                payment_id=str(payment.id),
                reason="nothing to attribute",
            )
            return None

        scheduled = await reader.list_income_events(family_id, IncomeStatus.SCHEDULED)
        candidates = [
            income_event
            for income_event in scheduled
            if income_event.remaining_amount >= payment.amount
            and income_event.scheduled_date <= payment.due_date
        ]

        if not candidates:
            logger.info(
                "auto_attribution_skipped",
                payment_id=str(payment.id),
                reason="no qualifying income event",
            )
            return None

        selected = min(candidates, key=lambda e: (e.scheduled_date, e.id))

        # exclusive=True re-checks "no live attributions" inside the
        # engine's unit of work, closing the gap since the read above.
        return await self._engine.create_attribution(
            family_id,
            payment.id,
            selected.id,
            payment.amount,
            AttributionType.AUTOMATIC,
            actor_id,
            exclusive=True,
        )

    async def suggest_attributions(
        self,
        family_id: UUID,
        payment_id: UUID,
    ) -> list[AttributionSuggestion]:
        """
        Rank every scheduled income event of the family for a payment.

        Ordered high, then medium, then low confidence. Within a tier the
        store's enumeration order (scheduled date, then id) is kept.
        """
        reader = self._store.reader()
        payment = await require_payment(reader, family_id, payment_id)
        candidates = await reader.list_income_events(family_id, IncomeStatus.SCHEDULED)

        suggestions = [
            AttributionSuggestion(
                income_event_id=income_event.id,
                income_event_name=income_event.name,
                scheduled_date=income_event.scheduled_date,
                available_amount=income_event.remaining_amount,
                suggested_amount=min(income_event.remaining_amount, payment.amount),
                confidence=confidence_for(income_event, payment),
            )
            for income_event in candidates
        ]

        # sorted() is stable, so enumeration order survives within a tier
        return sorted(suggestions, key=lambda s: s.confidence.rank)

    async def validate_attribution_capacity(
        self,
        family_id: UUID,
        payment_id: UUID,
        proposed: Iterable[Union[ProposedAttribution, dict]],
    ) -> CapacityReport:
        """
        Check a set of proposed attributions and report every problem at once.

        Unlike the engine's mutations this never stops at the first issue.

        Raises:
            NotFoundError: payment not in this family
            InvalidArgumentError: malformed entries or too many of them
        """
        entries = self._proposed_entries(proposed)

        reader = self._store.reader()
        payment = await require_payment(reader, family_id, payment_id)
        existing = await reader.list_live_attributions_for_payment(payment.id)
        existing_attributed = sum_money(a.amount for a in existing)
        total_proposed = sum(
            (entry.amount for entry in entries), Decimal("0")
        )

        errors = []
        proposed_per_income: dict[UUID, Decimal] = defaultdict(Decimal)
        known_income: dict[UUID, IncomeEvent] = {}

        for index, entry in enumerate(entries):
            if entry.amount <= 0:
                errors.append(ValidationIssue(
                    field=f"proposed[{index}].amount",
                    issue_type="non_positive",
                    message="Attribution amounts must be positive",
                ))

            income_event = await reader.get_income_event(family_id, entry.income_event_id)
            if income_event is None:
                errors.append(ValidationIssue(
                    field=f"proposed[{index}].income_event_id",
                    issue_type="not_found",
                    message=f"Income event not found: {entry.income_event_id}",
                ))
                continue

            known_income[income_event.id] = income_event
            proposed_per_income[income_event.id] += entry.amount

        for income_event_id, amount in proposed_per_income.items():
            income_event = known_income[income_event_id]
            if amount > income_event.remaining_amount:
                errors.append(ValidationIssue(
                    field=f"income_event:{income_event_id}",
                    issue_type="exceeds_income",
                    message=(
                        f"Amount {amount} exceeds available income "
                        f"{income_event.remaining_amount} for {income_event.name}"
                    ),
                ))

        if existing_attributed + total_proposed > payment.amount:
            errors.append(ValidationIssue(
                field="payment",
                issue_type="exceeds_payment",
                message=(
                    f"Total attributions ({existing_attributed + total_proposed}) "
                    f"exceed payment amount ({payment.amount})"
                ),
            ))

        return CapacityReport(
            payment_id=payment.id,
            is_valid=not errors,
            errors=errors,
            total_proposed=total_proposed,
            existing_attributed=existing_attributed,
            payment_amount=payment.amount,
        )

    def _proposed_entries(
        self,
        proposed: Iterable[Union[ProposedAttribution, dict]],
    ) -> list[ProposedAttribution]:
        entries = []
        for index, item in enumerate(proposed):
            if isinstance(item, ProposedAttribution):
                entries.append(item)
                continue
            try:
                entries.append(ProposedAttribution.model_validate(item))
            except ValidationError as e:
                raise InvalidArgumentError(f"proposed[{index}]", e.errors()[0]["msg"])

        limit = self._settings.max_batch_size
        if len(entries) > limit:
            raise InvalidArgumentError("proposed", f"at most {limit} entries are allowed")
        return entries
