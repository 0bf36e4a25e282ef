"""
Sales Service - atomic sale processing

A cart arrives complete from the register: every line already carries its
quantity, price snapshot and discount. Processing allocates a folio,
computes the line and aggregate figures and writes the header plus lines in
one transaction. Nothing is written when any step fails.

DESIGN:
- Line figures: line_subtotal = unit_price * quantity,
  line_discount = line_subtotal * discount_percent / 100,
  line_total = line_subtotal - line_discount (each rounded to cents)
- Sale.subtotal / Sale.discount are sums of the line figures
- Sale.total is the amount the register charged and is stored as given;
  STRICT_SALE_TOTALS rejects totals that disagree with the lines
- Stock is not debited here
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import FolioCollision, InvalidRequest, NotFound
from ..extensions import db
from ..models import Product, Sale, SaleLine
from ..models.sales import PAYMENT_METHODS, SALE_STATUS_COMPLETED
from ..validation import coerce_choice, coerce_int
from poscore.time_utils import utcnow
from .concurrency import run_atomic, storage_guard
from .folio_service import KIND_SALE, next_folio
from .pricing import (
    HUNDRED,
    TOTAL_TOLERANCE,
    ZERO,
    LineFigures,
    compute_line,
    compute_totals,
    quantize,
    to_decimal,
    to_money,
)


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    unit_price: Decimal
    discount_percent: Decimal = ZERO


@dataclass(frozen=True)
class SaleResult:
    sale_id: int
    folio: str

    def to_dict(self) -> dict:
        return {"sale_id": self.sale_id, "folio": self.folio}


def _get(line, key: str, default=None):
    if isinstance(line, dict):
        return line.get(key, default)
    return getattr(line, key, default)


def _normalize_cart(lines) -> list[CartLine]:
    """Validate cart input and resolve missing prices from the catalog."""
    if not lines:
        raise InvalidRequest("Cannot process a sale with no lines")
    if not isinstance(lines, (list, tuple)):
        raise InvalidRequest("lines must be a list of cart lines")

    raw: list[tuple[int, int, object, object]] = []
    for index, line in enumerate(lines, start=1):
        product_id = coerce_int(_get(line, "product_id"), f"lines[{index}].product_id", minimum=1)
        quantity = coerce_int(_get(line, "quantity"), f"lines[{index}].quantity", minimum=1)
        raw.append((product_id, quantity, _get(line, "unit_price"), _get(line, "discount_percent")))

    product_ids = {product_id for product_id, _, _, _ in raw}
    with storage_guard("load cart products"):
        products = {
            p.id: p for p in db.session.query(Product).filter(Product.id.in_(product_ids)).all()
        }
    missing = sorted(product_ids - products.keys())
    if missing:
        raise InvalidRequest("Unknown product reference", details={"product_ids": missing})

    cart: list[CartLine] = []
    for index, (product_id, quantity, unit_price, discount_percent) in enumerate(raw, start=1):
        if unit_price is None:
            price = Decimal(products[product_id].price)
        else:
            price = to_money(unit_price, f"lines[{index}].unit_price")
        if price < 0:
            raise InvalidRequest(f"lines[{index}].unit_price cannot be negative")

        if discount_percent is None:
            discount = ZERO
        else:
            discount = to_decimal(discount_percent, f"lines[{index}].discount_percent")
        if discount < 0 or discount > HUNDRED:
            raise InvalidRequest(
                f"lines[{index}].discount_percent must be between 0 and 100",
                details={"discount_percent": str(discount)},
            )

        cart.append(CartLine(
            product_id=product_id,
            quantity=quantity,
            unit_price=quantize(price),
            discount_percent=discount,
        ))
    return cart


def _resolve_total(total, subtotal: Decimal, discount: Decimal) -> Decimal:
    computed = subtotal - discount
    if total is None:
        return computed

    given = quantize(to_decimal(total, "total"))
    if given < 0:
        raise InvalidRequest("total cannot be negative")

    if abs(given - computed) > TOTAL_TOLERANCE:
        details = {"total": str(given), "computed_total": str(computed)}
        if current_app.config.get("STRICT_SALE_TOTALS"):
            raise InvalidRequest("total does not match the sale lines", details=details)
        current_app.logger.warning("Sale total %s differs from computed %s", given, computed)
    return given


def _resolve_cash(payment_method: str, total: Decimal, amount_received, change):
    """Return (amount_received, change) as stored on the sale."""
    if payment_method != "CASH":
        return None, None

    if amount_received is None:
        raise InvalidRequest("amount_received is required for CASH payments")
    received = quantize(to_decimal(amount_received, "amount_received"))
    if received < total:
        raise InvalidRequest(
            "amount_received does not cover the total",
            details={"amount_received": str(received), "total": str(total)},
        )

    if change is None:
        return received, received - total
    given_change = quantize(to_decimal(change, "change"))
    if given_change < 0:
        raise InvalidRequest("change cannot be negative")
    return received, given_change


def process_sale(
    lines,
    payment_method: str,
    cashier_id: int,
    *,
    total=None,
    amount_received=None,
    change=None,
    now: datetime | None = None,
) -> SaleResult:
    """
    Persist a sale and its lines atomically.

    Args:
        lines: cart lines (dicts or CartLine) with product_id, quantity,
            unit_price (defaults to the catalog price), discount_percent
        payment_method: CASH, CARD or TRANSFER
        cashier_id: user ringing the sale (not verified here)
        total: amount charged; defaults to subtotal - discount
        amount_received / change: cash tender details, CASH only
        now: clock override for the folio day and timestamps

    Returns:
        SaleResult with the new sale id and folio

    Raises:
        InvalidRequest: malformed cart or payment, before any write
        PersistenceFailure: a write failed; nothing was kept
        ConnectionFailure: storage unavailable
    """
    method = coerce_choice(payment_method, "payment_method", PAYMENT_METHODS)
    cashier = coerce_int(cashier_id, "cashier_id", minimum=1)
    cart = _normalize_cart(lines)

    figures: list[LineFigures] = [
        compute_line(line.unit_price, line.quantity, line.discount_percent) for line in cart
    ]
    subtotal, discount = compute_totals(figures)
    sale_total = _resolve_total(total, subtotal, discount)
    received, change_due = _resolve_cash(method, sale_total, amount_received, change)
    created_at = now or utcnow()

    def _op() -> SaleResult:
        folio = next_folio(KIND_SALE, now)

        sale = Sale(
            folio=folio,
            subtotal=subtotal,
            discount=discount,
            total=sale_total,
            payment_method=method,
            amount_received=received,
            change_due=change_due,
            cashier_id=cashier,
            status=SALE_STATUS_COMPLETED,
            created_at=created_at,
        )
        db.session.add(sale)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise FolioCollision("Sale folio already in use", details={"folio": folio}) from exc

        for line, fig in zip(cart, figures):
            db.session.add(SaleLine(
                sale_id=sale.id,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
                discount_percent=line.discount_percent,
                line_subtotal=fig.line_subtotal,
                line_discount=fig.line_discount,
                line_total=fig.line_total,
                created_at=created_at,
            ))
        db.session.flush()

        return SaleResult(sale_id=sale.id, folio=folio)

    result = run_atomic(_op, action="process sale")
    current_app.logger.info(
        "Sale %s recorded: %d lines, total %s, cashier %s",
        result.folio, len(cart), sale_total, cashier,
    )
    return result


# =============================================================================
# QUERIES
# =============================================================================

def get_sale_by_folio(folio: str) -> Sale:
    with storage_guard("look up sale"):
        sale = db.session.query(Sale).filter_by(folio=(folio or "").strip()).first()
    if not sale:
        raise NotFound(f"Sale {folio} not found")
    return sale


def get_sale_detail(folio: str) -> dict:
    """Sale header plus its lines."""
    sale = get_sale_by_folio(folio)
    with storage_guard("load sale lines"):
        lines = db.session.query(SaleLine).filter_by(sale_id=sale.id).order_by(SaleLine.id).all()
    return {
        "sale": sale.to_dict(),
        "lines": [line.to_dict() for line in lines],
    }
