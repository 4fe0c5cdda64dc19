"""
Attribution Engine

Links money received (income events) to money owed (payments).

GUARANTEES:
- A payment's live attributions never sum past the payment amount
- An income event's allocated + remaining always equals its amount,
  and remaining never goes negative
- Every mutation writes exactly one audit record in the same unit of work
- All validation happens before the first write; any failure discards
  the whole unit of work

Each public mutation is one read-validate-write sequence inside
`LedgerStorageInterface.unit_of_work()`. A unit of work that can't be
isolated in time is retried with backoff.
"""

from decimal import Decimal
from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar, Union
from uuid import UUID

import structlog
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from household_ledger.audit import AuditRecorder
from household_ledger.config import EngineSettings, StorageSettings, get_settings
from household_ledger.errors import (
    AmountMismatchError,
    CapacityExceededError,
    CapacityScope,
    ConflictError,
    InvalidArgumentError,
    NotFoundError,
)
from household_ledger.models.audit import AuditEventBuilder
from household_ledger.models.ledger import (
    AttributionHistoryEntry,
    AttributionType,
    DeletedAttribution,
    DeletionResult,
    IncomeAttributionLine,
    IncomeAttributionSummary,
    IncomeEvent,
    IncomeStatus,
    LiveAttribution,
    Payment,
    PaymentAttributionLine,
    PaymentAttributionSummary,
    PaymentStatus,
    SplitEntry,
    utcnow,
)
from household_ledger.models.primitives import (
    percentage_of,
    sum_money,
    to_money,
    within_epsilon,
)
from household_ledger.services.storage import (
    LedgerReader,
    LedgerStorageInterface,
    LedgerUnitOfWork,
    TransactionConflictError,
)


T = TypeVar("T")

logger = structlog.get_logger(__name__)


def _positive_amount(value: Any, field: str = "amount") -> Decimal:
    amount = to_money(value, field)
    if amount <= 0:
        raise InvalidArgumentError(field, "must be greater than zero")
    return amount


def _attribution_type(value: Union[AttributionType, str]) -> AttributionType:
    try:
        return AttributionType(value)
    except ValueError:
        raise InvalidArgumentError(
            "attribution_type", "must be either manual or automatic"
        )


async def require_payment(
    reader: LedgerReader,
    family_id: UUID,
    payment_id: UUID,
) -> Payment:
    payment = await reader.get_payment(family_id, payment_id)
    if payment is None:
        raise NotFoundError("payment", payment_id)
    return payment


async def _require_income_event(
    reader: LedgerReader,
    family_id: UUID,
    income_event_id: UUID,
) -> IncomeEvent:
    income_event = await reader.get_income_event(family_id, income_event_id)
    if income_event is None:
        raise NotFoundError("income_event", income_event_id)
    return income_event


async def _require_live_attribution(
    reader: LedgerReader,
    family_id: UUID,
    attribution_id: UUID,
) -> LiveAttribution:
    attribution = await reader.get_attribution(family_id, attribution_id)
    if attribution is None:
        raise NotFoundError("attribution", attribution_id)
    if isinstance(attribution, DeletedAttribution):
        raise ConflictError(
            "Attribution has already been deleted",
            {"attribution_id": str(attribution_id)},
        )
    return attribution


class AttributionEngine:
    """
    Creates, updates, deletes and splits attributions.

    The engine is the only writer of an income event's allocation fields.
    It never touches an income event's amount or status, nor a payment.
    """

    def __init__(
        self,
        store: LedgerStorageInterface,
        recorder: Optional[AuditRecorder] = None,
        engine_settings: Optional[EngineSettings] = None,
        storage_settings: Optional[StorageSettings] = None,
    ):
        self._store = store
        self._recorder = recorder or AuditRecorder()
        self._engine_settings = engine_settings or get_settings().engine
        self._storage_settings = storage_settings or get_settings().storage

    # =========================================================================
    # UNIT OF WORK
    # =========================================================================

    async def _in_transaction(
        self,
        operation: str,
        work: Callable[[LedgerUnitOfWork], Awaitable[T]],
    ) -> T:
        """
        Run `work` in a fresh unit of work, retrying isolation conflicts.

        Domain errors are never retried; they propagate on the first attempt.
        """
        settings = self._storage_settings

        def log_retry(retry_state: RetryCallState) -> None:
            logger.warning(
                "transaction_retry",
                operation=operation,
                attempt=retry_state.attempt_number,
                error=str(retry_state.outcome.exception()),
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(settings.max_transaction_attempts),
            wait=wait_exponential(
                multiplier=settings.retry_wait_seconds,
                max=settings.retry_wait_max_seconds,
            ),
            retry=retry_if_exception_type(TransactionConflictError),
            before_sleep=log_retry,
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                async with self._store.unit_of_work() as uow:
                    return await work(uow)

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    async def create_attribution(
        self,
        family_id: UUID,
        payment_id: UUID,
        income_event_id: UUID,
        amount: Any,
        attribution_type: Union[AttributionType, str],
        actor_id: UUID,
        *,
        exclusive: bool = False,
    ) -> LiveAttribution:
        """
        Attribute `amount` of an income event to a payment.

        Args:
            exclusive: Fail with ConflictError when the payment already has
                       live attributions (used by auto-attribution).

        Raises:
            InvalidArgumentError: amount is not positive
            NotFoundError: payment or income event not in this family
            ConflictError: exclusive and the payment is already attributed
            CapacityExceededError: payment total or income remaining exceeded
        """
        amount = _positive_amount(amount)
        attribution_type = _attribution_type(attribution_type)

        async def work(uow: LedgerUnitOfWork) -> LiveAttribution:
            payment = await require_payment(uow, family_id, payment_id)
            income_event = await _require_income_event(uow, family_id, income_event_id)

            existing = await uow.list_live_attributions_for_payment(payment.id)
            if exclusive and existing:
                raise ConflictError(
                    "Payment already has attributions",
                    {"payment_id": str(payment.id)},
                )

            attributed = sum_money(a.amount for a in existing)
            if attributed + amount > payment.amount:
                raise CapacityExceededError(
                    CapacityScope.PAYMENT,
                    requested=amount,
                    available=payment.amount - attributed,
                )
            if amount > income_event.remaining_amount:
                raise CapacityExceededError(
                    CapacityScope.INCOME,
                    requested=amount,
                    available=income_event.remaining_amount,
                )

            attribution = LiveAttribution(
                family_id=family_id,
                payment_id=payment.id,
                income_event_id=income_event.id,
                amount=amount,
                attribution_type=attribution_type,
                created_by=actor_id,
            )
            await uow.save_attribution(attribution)
            await uow.save_income_event(income_event.with_allocation_delta(amount))
            await self._recorder.record(
                uow, AuditEventBuilder.attribution_created(attribution, actor_id)
            )
            return attribution

        attribution = await self._in_transaction("create_attribution", work)
        logger.info(
            "attribution_created",
            attribution_id=str(attribution.id),
            payment_id=str(payment_id),
            income_event_id=str(income_event_id),
            amount=str(amount),
            attribution_type=attribution_type.value,
        )
        return attribution

    async def update_attribution(
        self,
        family_id: UUID,
        attribution_id: UUID,
        new_amount: Any,
        actor_id: UUID,
    ) -> LiveAttribution:
        """
        Change the amount of a live attribution.

        The income event absorbs only the difference. An unchanged amount
        leaves the income event untouched but is still audited.
        """
        new_amount = _positive_amount(new_amount)

        async def work(uow: LedgerUnitOfWork) -> LiveAttribution:
            attribution = await _require_live_attribution(uow, family_id, attribution_id)
            payment = await require_payment(uow, family_id, attribution.payment_id)
            income_event = await _require_income_event(
                uow, family_id, attribution.income_event_id
            )

            siblings = await uow.list_live_attributions_for_payment(payment.id)
            other_attributed = sum_money(
                a.amount for a in siblings if a.id != attribution.id
            )
            if other_attributed + new_amount > payment.amount:
                raise CapacityExceededError(
                    CapacityScope.PAYMENT,
                    requested=new_amount,
                    available=payment.amount - other_attributed,
                )

            available_income = income_event.remaining_amount + attribution.amount
            if new_amount > available_income:
                raise CapacityExceededError(
                    CapacityScope.INCOME,
                    requested=new_amount,
                    available=available_income,
                )

            old_amount = attribution.amount
            delta = new_amount - old_amount
            if delta != 0:
                await uow.save_income_event(income_event.with_allocation_delta(delta))

            updated = attribution.model_copy(update={
                "amount": new_amount,
                "updated_at": utcnow(),
            })
            await uow.save_attribution(updated)
            await self._recorder.record(
                uow, AuditEventBuilder.attribution_updated(updated, old_amount, actor_id)
            )
            return updated

        updated = await self._in_transaction("update_attribution", work)
        logger.info(
            "attribution_updated",
            attribution_id=str(attribution_id),
            amount=str(new_amount),
        )
        return updated

    async def delete_attribution(
        self,
        family_id: UUID,
        attribution_id: UUID,
        actor_id: UUID,
    ) -> DeletionResult:
        """
        Tombstone an attribution and give its amount back to the income event.

        Deleting against a paid payment or a received income still succeeds;
        the result then carries a warning that a historical record changed.

        Raises:
            NotFoundError: attribution never existed in this family
            ConflictError: attribution was already deleted
        """

        async def work(uow: LedgerUnitOfWork) -> DeletionResult:
            attribution = await _require_live_attribution(uow, family_id, attribution_id)
            payment = await require_payment(uow, family_id, attribution.payment_id)
            income_event = await _require_income_event(
                uow, family_id, attribution.income_event_id
            )

            warnings = []
            if payment.status == PaymentStatus.PAID:
                warnings.append(
                    f"Payment to {payment.payee} is already paid; "
                    "this adjusts a historical record"
                )
            if income_event.status == IncomeStatus.RECEIVED:
                warnings.append(
                    f"Income '{income_event.name}' was already received; "
                    "this adjusts a historical record"
                )

            await uow.save_income_event(
                income_event.with_allocation_delta(-attribution.amount)
            )
            await uow.save_attribution(DeletedAttribution(
                id=attribution.id,
                family_id=attribution.family_id,
                original=attribution,
                deleted_by=actor_id,
            ))
            await self._recorder.record(
                uow, AuditEventBuilder.attribution_deleted(attribution, actor_id, warnings)
            )

            return DeletionResult(
                attribution_id=attribution.id,
                income_event_id=attribution.income_event_id,
                payment_id=attribution.payment_id,
                released_amount=attribution.amount,
                warnings=warnings,
            )

        result = await self._in_transaction("delete_attribution", work)
        logger.info(
            "attribution_deleted",
            attribution_id=str(attribution_id),
            released_amount=str(result.released_amount),
            warnings=result.warnings,
        )
        return result

    async def split_payment_across_income(
        self,
        family_id: UUID,
        payment_id: UUID,
        attributions: Iterable[Union[SplitEntry, dict]],
        attribution_type: Union[AttributionType, str],
        actor_id: UUID,
    ) -> list[LiveAttribution]:
        """
        Cover a whole payment from several income events at once.

        All-or-nothing: either every attribution is created and every
        income event updated, or nothing changes. One consolidated audit
        record describes the split.

        Raises:
            InvalidArgumentError: empty, oversized, or non-positive entries
            NotFoundError: payment or any income event not in this family
            ConflictError: payment already has live attributions
            AmountMismatchError: entries don't sum to the payment amount
            CapacityExceededError: an income event can't cover its entry
        """
        entries = self._split_entries(attributions)
        attribution_type = _attribution_type(attribution_type)

        async def work(uow: LedgerUnitOfWork) -> list[LiveAttribution]:
            payment = await require_payment(uow, family_id, payment_id)

            if await uow.list_live_attributions_for_payment(payment.id):
                raise ConflictError(
                    "Payment already has attributions. Delete existing attributions first.",
                    {"payment_id": str(payment.id)},
                )

            total = sum_money(entry.amount for entry in entries)
            if not within_epsilon(total, payment.amount):
                raise AmountMismatchError(expected=payment.amount, actual=total)

            created = []
            for entry in entries:
                # Re-read each time: an income event listed twice must see
                # the first entry's staged deduction.
                income_event = await _require_income_event(
                    uow, family_id, entry.income_event_id
                )
                if entry.amount > income_event.remaining_amount:
                    raise CapacityExceededError(
                        CapacityScope.INCOME,
                        requested=entry.amount,
                        available=income_event.remaining_amount,
                    )

                attribution = LiveAttribution(
                    family_id=family_id,
                    payment_id=payment.id,
                    income_event_id=income_event.id,
                    amount=entry.amount,
                    attribution_type=attribution_type,
                    created_by=actor_id,
                )
                await uow.save_attribution(attribution)
                await uow.save_income_event(
                    income_event.with_allocation_delta(entry.amount)
                )
                created.append(attribution)

            await self._recorder.record(
                uow,
                AuditEventBuilder.payment_split(
                    family_id=family_id,
                    payment_id=payment.id,
                    entries=entries,
                    total_amount=total,
                    attribution_type=attribution_type,
                    actor_id=actor_id,
                ),
            )
            return created

        created = await self._in_transaction("split_payment_across_income", work)
        logger.info(
            "payment_split",
            payment_id=str(payment_id),
            split_count=len(created),
        )
        return created

    def _split_entries(
        self,
        attributions: Iterable[Union[SplitEntry, dict]],
    ) -> list[SplitEntry]:
        entries = []
        for index, item in enumerate(attributions):
            if isinstance(item, SplitEntry):
                entry = item
            else:
                try:
                    entry = SplitEntry.model_validate(item)
                except ValidationError as e:
                    raise InvalidArgumentError(
                        f"attributions[{index}]", e.errors()[0]["msg"]
                    )
            if entry.amount <= 0:
                raise InvalidArgumentError(
                    f"attributions[{index}].amount", "must be greater than zero"
                )
            entries.append(entry)

        if not entries:
            raise InvalidArgumentError("attributions", "at least one entry is required")
        limit = self._engine_settings.max_batch_size
        if len(entries) > limit:
            raise InvalidArgumentError(
                "attributions", f"at most {limit} entries are allowed"
            )
        return entries

    # =========================================================================
    # READ MODELS
    # =========================================================================

    async def get_payment_attributions(
        self,
        family_id: UUID,
        payment_id: UUID,
    ) -> PaymentAttributionSummary:
        """How much of a payment is covered, and by which income events."""
        reader = self._store.reader()
        payment = await require_payment(reader, family_id, payment_id)
        attributions = await reader.list_live_attributions_for_payment(payment.id)

        lines = []
        for attribution in attributions:
            income_event = await _require_income_event(
                reader, family_id, attribution.income_event_id
            )
            lines.append(PaymentAttributionLine(
                attribution_id=attribution.id,
                income_event_id=income_event.id,
                income_event_name=income_event.name,
                income_event_date=income_event.scheduled_date,
                amount=attribution.amount,
                percentage=percentage_of(attribution.amount, payment.amount),
            ))

        total = sum_money(a.amount for a in attributions)
        return PaymentAttributionSummary(
            payment_id=payment.id,
            payment_amount=payment.amount,
            total_attributed=total,
            remaining_amount=payment.amount - total,
            attributions=lines,
        )

    async def get_income_attributions(
        self,
        family_id: UUID,
        income_event_id: UUID,
    ) -> IncomeAttributionSummary:
        """Which payments an income event is paying for."""
        reader = self._store.reader()
        income_event = await _require_income_event(reader, family_id, income_event_id)
        attributions = await reader.list_live_attributions_for_income(income_event.id)

        lines = []
        for attribution in attributions:
            payment = await require_payment(reader, family_id, attribution.payment_id)
            lines.append(IncomeAttributionLine(
                attribution_id=attribution.id,
                payment_id=payment.id,
                payee=payment.payee,
                due_date=payment.due_date,
                amount=attribution.amount,
                percentage=percentage_of(attribution.amount, income_event.amount),
            ))

        return IncomeAttributionSummary(
            income_event_id=income_event.id,
            income_amount=income_event.amount,
            allocated_amount=income_event.allocated_amount,
            remaining_amount=income_event.remaining_amount,
            attributions=lines,
        )

    async def get_attribution_history(
        self,
        family_id: UUID,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[AttributionHistoryEntry]:
        """Live attributions of a family, newest first."""
        if limit is None:
            limit = self._engine_settings.attribution_history_limit
        if limit < 1:
            raise InvalidArgumentError("limit", "must be at least 1")
        if offset < 0:
            raise InvalidArgumentError("offset", "must not be negative")

        reader = self._store.reader()
        attributions = list(reversed(await reader.list_attributions(family_id)))

        history = []
        for attribution in attributions[offset:offset + limit]:
            payment = await require_payment(reader, family_id, attribution.payment_id)
            income_event = await _require_income_event(
                reader, family_id, attribution.income_event_id
            )
            history.append(AttributionHistoryEntry(
                attribution_id=attribution.id,
                payment_id=payment.id,
                payee=payment.payee,
                income_event_id=income_event.id,
                income_event_name=income_event.name,
                amount=attribution.amount,
                attribution_type=attribution.attribution_type,
                created_by=attribution.created_by,
                created_at=attribution.created_at,
            ))
        return history
