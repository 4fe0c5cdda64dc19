"""
Ledger Primitives

Fixed-point currency and percentage values shared by every component.

DESIGN DECISION: Money is a Decimal with exactly 2 fractional digits.
Binary floating point never enters a sum or a comparison. Floats handed
in from outside are converted through their string form first.

Capacity checks compare exact 2-digit decimals. CURRENCY_EPSILON is only
used where two independently computed totals must "match" (split totals,
percentage sums, the income conservation invariant).
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated, Any, Iterable

from pydantic import AfterValidator, BeforeValidator

from household_ledger.errors import InvalidArgumentError


CENT = Decimal("0.01")
CURRENCY_EPSILON = Decimal("0.01")
PERCENTAGE_EPSILON = Decimal("0.01")

ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def _to_decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, bool):
        raise InvalidArgumentError(field, "must be a number")
    if isinstance(value, float):
        value = str(value)
    try:
        result = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidArgumentError(field, "must be a number")
    if not result.is_finite():
        raise InvalidArgumentError(field, "must be a finite number")
    return result


def to_money(value: Any, field: str = "amount") -> Decimal:
    """Normalise a value to a 2-decimal currency amount."""
    return _to_decimal(value, field).quantize(CENT, rounding=ROUND_HALF_UP)


def to_percentage(value: Any, field: str = "percentage") -> Decimal:
    """Normalise a value to a 2-decimal percentage in [0, 100]."""
    result = _to_decimal(value, field).quantize(CENT, rounding=ROUND_HALF_UP)
    if result < 0 or result > HUNDRED:
        raise InvalidArgumentError(field, "must be between 0 and 100")
    return result


def clamp_percentage(value: Decimal) -> Decimal:
    return min(max(value, ZERO), HUNDRED)


def within_epsilon(
    a: Decimal,
    b: Decimal,
    epsilon: Decimal = CURRENCY_EPSILON,
) -> bool:
    return abs(a - b) <= epsilon


def sum_money(values: Iterable[Decimal]) -> Decimal:
    return sum(values, ZERO)


def percentage_of(amount: Decimal, whole: Decimal) -> Decimal:
    """Share of `whole` that `amount` represents, in percent."""
    if whole == 0:
        return ZERO
    return (amount / whole * HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)


# Field-level adapters: pydantic reports ValueError as a validation error
# on the field being parsed.

def _decimal_field(value: Any) -> Decimal:
    try:
        return _to_decimal(value, "value")
    except InvalidArgumentError as e:
        raise ValueError(e.reason)


def _money_field(value: Any) -> Decimal:
    try:
        return to_money(value)
    except InvalidArgumentError as e:
        raise ValueError(e.reason)


def _percentage_field(value: Any) -> Decimal:
    try:
        return to_percentage(value)
    except InvalidArgumentError as e:
        raise ValueError(e.reason)


def _non_negative(value: Decimal) -> Decimal:
    if value < 0:
        raise ValueError("must not be negative")
    return value


Money = Annotated[Decimal, BeforeValidator(_money_field)]
NonNegativeMoney = Annotated[Decimal, BeforeValidator(_money_field), AfterValidator(_non_negative)]
Percentage = Annotated[Decimal, BeforeValidator(_percentage_field)]

# Raw request numbers: must be numeric, range checks are left to the
# validators that report them.
Number = Annotated[Decimal, BeforeValidator(_decimal_field)]
