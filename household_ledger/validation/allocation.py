"""
Budget Allocation Validation

DESIGN DECISION: Budget checks come in two flavours:

REQUEST VALIDATION (fail fast):
- Empty category list
- Duplicate category ids
- Non-numeric or out-of-range percentages
- These raise InvalidArgumentError; the request itself is malformed

BUSINESS VALIDATION (accumulate):
- Percentages that don't sum to 100
- Allocation amounts that don't add up to the income
- Amounts inconsistent with their percentage
- These are reported in full so a caller can show every issue at once

The validator is stateless: everything it needs comes in as arguments.

IMPORTANT: Validation NEVER silently fixes the input. Repairs are
returned as suggestions (rescaled percentages) or as freshly generated
allocations, never written back over what the caller sent.
"""

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping, Optional, Union
from uuid import UUID

import structlog
from pydantic import ValidationError

from household_ledger.errors import InvalidArgumentError
from household_ledger.models.ledger import (
    AllocationInput,
    AllocationReport,
    BudgetAllocation,
    BudgetCategory,
    CategoryPercentageInput,
    CategorySuggestion,
    PercentageReport,
    ValidationIssue,
)
from household_ledger.models.primitives import (
    CENT,
    CURRENCY_EPSILON,
    HUNDRED,
    PERCENTAGE_EPSILON,
    ZERO,
    clamp_percentage,
    to_money,
    to_percentage,
    within_epsilon,
)


logger = structlog.get_logger(__name__)

CategoryLike = Union[CategoryPercentageInput, BudgetCategory, Mapping[str, Any]]
AllocationLike = Union[AllocationInput, BudgetAllocation, Mapping[str, Any]]


def _first_error(e: ValidationError) -> tuple[str, str]:
    error = e.errors()[0]
    field = ".".join(str(part) for part in error["loc"]) or "value"
    return field, error["msg"]


class BudgetAllocationValidator:
    """
    Validates and repairs how one income is divided across budget categories.
    """

    # =========================================================================
    # CATEGORY PERCENTAGES
    # =========================================================================

    def _coerce_categories(
        self,
        categories: Iterable[CategoryLike],
    ) -> list[CategoryPercentageInput]:
        """
        Request validation for a category percentage list.

        Raises:
            InvalidArgumentError: on the first malformed entry
        """
        coerced = []
        seen: set[UUID] = set()

        for index, item in enumerate(categories):
            if isinstance(item, CategoryPercentageInput):
                category = item
            elif isinstance(item, BudgetCategory):
                category = CategoryPercentageInput(
                    id=item.id,
                    target_percentage=item.target_percentage,
                )
            else:
                try:
                    category = CategoryPercentageInput.model_validate(item)
                except ValidationError as e:
                    field, reason = _first_error(e)
                    raise InvalidArgumentError(f"categories[{index}].{field}", reason)

            if category.id in seen:
                raise InvalidArgumentError(
                    f"categories[{index}].id",
                    f"duplicate category id {category.id}",
                )
            seen.add(category.id)

            if category.target_percentage < 0 or category.target_percentage > HUNDRED:
                raise InvalidArgumentError(
                    f"categories[{index}].target_percentage",
                    "must be between 0 and 100",
                )
            coerced.append(category)

        if not coerced:
            raise InvalidArgumentError(
                "categories", "at least one category must be provided"
            )
        return coerced

    def validate_percentages(
        self,
        categories: Iterable[CategoryLike],
    ) -> PercentageReport:
        """
        Check that category target percentages sum to 100.

        When they don't, every category gets a suggested percentage:
        proportionally rescaled so the set sums to 100, or an even split
        when everything is zero. Suggestions are rounded to 2 decimals
        and the rounding drift is settled on the largest suggestion, so
        applying them sums to exactly 100.
        """
        coerced = self._coerce_categories(categories)

        total = sum((c.target_percentage for c in coerced), ZERO)
        difference = total - HUNDRED
        is_valid = within_epsilon(total, HUNDRED, PERCENTAGE_EPSILON)

        suggestions = []
        if not is_valid:
            suggestions = self._rescale(coerced, total)

        return PercentageReport(
            is_valid=is_valid,
            total_percentage=total,
            difference=difference,
            suggestions=suggestions,
        )

    def _rescale(
        self,
        categories: list[CategoryPercentageInput],
        total: Decimal,
    ) -> list[CategorySuggestion]:
        if total > 0:
            suggested = [
                clamp_percentage(
                    (c.target_percentage * HUNDRED / total).quantize(CENT, rounding=ROUND_HALF_UP)
                )
                for c in categories
            ]
        else:
            even = (HUNDRED / len(categories)).quantize(CENT, rounding=ROUND_HALF_UP)
            suggested = [even for _ in categories]

        drift = HUNDRED - sum(suggested, ZERO)
        if drift != 0:
            largest = max(range(len(suggested)), key=lambda i: suggested[i])
            suggested[largest] = clamp_percentage(suggested[largest] + drift)

        return [
            CategorySuggestion(
                category_id=category.id,
                current_percentage=category.target_percentage,
                suggested_percentage=percentage,
            )
            for category, percentage in zip(categories, suggested)
        ]

    # =========================================================================
    # BUDGET ALLOCATIONS
    # =========================================================================

    def validate_budget_allocations(
        self,
        income_event_id: UUID,
        income_amount: Any,
        allocations: Iterable[AllocationLike],
    ) -> AllocationReport:
        """
        Check a set of allocations against one income event's amount.

        Collects every failure:
        - percentages must sum to 100 (within 0.01)
        - amounts must sum to the income amount (within 0.01)
        - each percentage within [0, 100], each amount non-negative
        - each amount within 0.01 of its percentage of the income
        """
        income_amount = to_money(income_amount, "income_amount")
        entries = self._coerce_allocations(allocations)

        errors = []
        total_percentage = sum((e.percentage for e in entries), ZERO)
        total_amount = sum((e.amount for e in entries), ZERO)

        if not within_epsilon(total_percentage, HUNDRED, PERCENTAGE_EPSILON):
            errors.append(ValidationIssue(
                field="percentage",
                issue_type="total_mismatch",
                message=(
                    f"Budget percentages must sum to 100%. "
                    f"Current total: {total_percentage}%"
                ),
            ))

        if not within_epsilon(total_amount, income_amount, CURRENCY_EPSILON):
            errors.append(ValidationIssue(
                field="amount",
                issue_type="total_mismatch",
                message=(
                    f"Budget allocation amounts ({total_amount}) must equal "
                    f"income amount ({income_amount})"
                ),
            ))

        for index, entry in enumerate(entries):
            label = f"allocations[{index}]"
            if entry.percentage < 0 or entry.percentage > HUNDRED:
                errors.append(ValidationIssue(
                    field=f"{label}.percentage",
                    issue_type="out_of_range",
                    message=f"Budget category {index + 1}: percentage must be between 0 and 100",
                ))
            if entry.amount < 0:
                errors.append(ValidationIssue(
                    field=f"{label}.amount",
                    issue_type="negative",
                    message=f"Budget category {index + 1}: amount cannot be negative",
                ))

            expected = entry.percentage / HUNDRED * income_amount
            if abs(entry.amount - expected) > CURRENCY_EPSILON:
                errors.append(ValidationIssue(
                    field=f"{label}.amount",
                    issue_type="inconsistent",
                    message=(
                        f"Budget category {index + 1}: amount ({entry.amount}) doesn't "
                        f"match percentage ({entry.percentage}% of {income_amount})"
                    ),
                ))

        return AllocationReport(
            income_event_id=income_event_id,
            is_valid=not errors,
            errors=errors,
            total_percentage=total_percentage,
            total_amount=total_amount,
            income_amount=income_amount,
        )

    def _coerce_allocations(
        self,
        allocations: Iterable[AllocationLike],
    ) -> list[AllocationInput]:
        coerced = []
        for index, item in enumerate(allocations):
            if isinstance(item, AllocationInput):
                coerced.append(item)
            elif isinstance(item, BudgetAllocation):
                coerced.append(AllocationInput(
                    budget_category_id=item.budget_category_id,
                    amount=item.amount,
                    percentage=item.percentage,
                ))
            else:
                try:
                    coerced.append(AllocationInput.model_validate(item))
                except ValidationError as e:
                    field, reason = _first_error(e)
                    raise InvalidArgumentError(f"allocations[{index}].{field}", reason)
        return coerced

    def generate_allocations(
        self,
        income_event_id: UUID,
        income_amount: Any,
        categories: Iterable[BudgetCategory],
        overrides: Optional[Mapping[UUID, Any]] = None,
    ) -> list[BudgetAllocation]:
        """
        Divide an income across the active categories.

        An override percentage wins over the category's target. Amounts are
        rounded to cents with the largest-remainder method: when the
        percentages sum to 100, the amounts sum exactly to the income and
        each one stays within a cent of its percentage.

        Raises:
            InvalidArgumentError: no active category, or a bad override
        """
        income_amount = to_money(income_amount, "income_amount")
        overrides = overrides or {}
        active = [c for c in categories if c.is_active]
        if not active:
            raise InvalidArgumentError("categories", "no active budget categories found")

        percentages = [
            to_percentage(overrides[c.id], f"overrides[{c.id}]")
            if c.id in overrides
            else c.target_percentage
            for c in active
        ]

        exact = [income_amount * p / HUNDRED for p in percentages]
        amounts = [e.quantize(CENT, rounding=ROUND_DOWN) for e in exact]

        target = to_money(sum(exact, ZERO))
        leftover_cents = int((target - sum(amounts, ZERO)) / CENT)
        by_remainder = sorted(
            range(len(exact)),
            key=lambda i: exact[i] - amounts[i],
            reverse=True,
        )
        for i in by_remainder[:leftover_cents]:
            amounts[i] += CENT

        total_percentage = sum(percentages, ZERO)
        if not within_epsilon(total_percentage, HUNDRED, PERCENTAGE_EPSILON):
            logger.warning(
                "allocation_percentages_incomplete",
                income_event_id=str(income_event_id),
                total_percentage=str(total_percentage),
            )

        return [
            BudgetAllocation(
                income_event_id=income_event_id,
                budget_category_id=category.id,
                amount=amount,
                percentage=percentage,
            )
            for category, amount, percentage in zip(active, amounts, percentages)
        ]
