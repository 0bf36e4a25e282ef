# Overview: Decimal money arithmetic for sale lines and refunds.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from ..errors import InvalidRequest


CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")

# One cent of slack when comparing a caller total with the computed one
TOTAL_TOLERANCE = CENT


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value, field: str) -> Decimal:
    """
    Coerce JSON/user input to Decimal.

    Floats go through str() so 10.1 stays 10.1 rather than its binary
    expansion. Booleans are rejected even though they are ints.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidRequest(f"{field} must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise InvalidRequest(f"{field} must be a number")
    else:
        raise InvalidRequest(f"{field} must be a number")
    if not result.is_finite():
        raise InvalidRequest(f"{field} must be a finite number")
    return result


def to_money(value, field: str) -> Decimal:
    """Like to_decimal, but rejects amounts finer than one cent."""
    result = to_decimal(value, field)
    try:
        cents = result.quantize(CENT)
    except InvalidOperation:
        raise InvalidRequest(f"{field} is out of range")
    if result != cents:
        raise InvalidRequest(
            f"{field} cannot have more than two decimal places",
            details={field: str(result)},
        )
    return result


@dataclass(frozen=True)
class LineFigures:
    line_subtotal: Decimal
    line_discount: Decimal
    line_total: Decimal


def compute_line(unit_price: Decimal, quantity: int, discount_percent: Decimal) -> LineFigures:
    line_subtotal = quantize(unit_price * quantity)
    line_discount = quantize(line_subtotal * discount_percent / HUNDRED)
    return LineFigures(
        line_subtotal=line_subtotal,
        line_discount=line_discount,
        line_total=line_subtotal - line_discount,
    )


def compute_totals(figures: list[LineFigures]) -> tuple[Decimal, Decimal]:
    """Aggregate (subtotal, discount) across lines."""
    subtotal = sum((f.line_subtotal for f in figures), ZERO)
    discount = sum((f.line_discount for f in figures), ZERO)
    return subtotal, discount


def line_refund(unit_price: Decimal, quantity: int) -> Decimal:
    """Refund for returned units, priced at the stored sale unit price."""
    return quantize(unit_price * quantity)
