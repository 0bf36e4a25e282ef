"""
Return Processing Service

A return reverses part or all of a completed sale. Customers may come back
several times for the same ticket, so every request is validated against
the running total of what was already returned, not just the current call.

DESIGN PRINCIPLES:
- Returns reference the original Sale by folio; only COMPLETED sales qualify
- Refunds use the unit price stored on the original SaleLine, never the
  current catalog price and never discount-adjusted
- A requested quantity is allocated across the product's sale lines in
  line order, so each ReturnLine points at the SaleLine it reverses
- Stock is restored with an atomic increment and an InventoryMovement
  row records the before/after snapshot with the return folio
- All of it commits together or not at all
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import FolioCollision, InvalidRequest, NotFound, PolicyViolation
from ..extensions import db
from ..models import InventoryMovement, Product, Return, ReturnLine, Sale, SaleLine
from ..models.documents import REFUND_METHODS, RETURN_CONDITIONS, RETURN_STATUS_PROCESSED
from ..models.sales import SALE_STATUS_COMPLETED
from ..validation import coerce_choice, coerce_int
from poscore.time_utils import utcnow
from .concurrency import lock_for_update, run_atomic, storage_guard
from .folio_service import KIND_RETURN, next_folio
from .pricing import ZERO, line_refund


MOVEMENT_TYPE_RETURN = "RETURN"


@dataclass(frozen=True)
class ReturnRequestLine:
    product_id: int
    quantity: int
    condition: str = "RESALE"


@dataclass(frozen=True)
class ReturnResult:
    return_id: int
    folio: str
    refund_amount: Decimal

    def to_dict(self) -> dict:
        return {
            "return_id": self.return_id,
            "folio": self.folio,
            "refund_amount": str(self.refund_amount),
        }


@dataclass(frozen=True)
class _Allocation:
    sale_line: SaleLine
    quantity: int
    condition: str
    subtotal: Decimal


# =============================================================================
# INPUT VALIDATION
# =============================================================================

def _get(line, key: str, default=None):
    if isinstance(line, dict):
        return line.get(key, default)
    return getattr(line, key, default)


def _normalize_request(lines) -> list[ReturnRequestLine]:
    if not lines:
        raise InvalidRequest("At least one product is required for a return")
    if not isinstance(lines, (list, tuple)):
        raise InvalidRequest("lines must be a list of return lines")

    requests = []
    for index, line in enumerate(lines, start=1):
        requests.append(ReturnRequestLine(
            product_id=coerce_int(_get(line, "product_id"), f"lines[{index}].product_id", minimum=1),
            quantity=coerce_int(_get(line, "quantity"), f"lines[{index}].quantity", minimum=1),
            condition=coerce_choice(
                _get(line, "condition"), f"lines[{index}].condition", RETURN_CONDITIONS, default="RESALE"
            ),
        ))
    return requests


# =============================================================================
# LOOKUPS
# =============================================================================

def _clean_folio(sale_folio) -> str:
    if sale_folio is None:
        raise InvalidRequest("sale_folio is required")
    if not isinstance(sale_folio, str):
        raise InvalidRequest("sale_folio must be a string")
    folio = sale_folio.strip()
    if not folio:
        raise InvalidRequest("sale_folio is required")
    return folio


def _get_returnable_sale(sale_folio: str, *, lock: bool = False) -> Sale:
    folio = _clean_folio(sale_folio)

    query = db.session.query(Sale).filter_by(folio=folio)
    if lock:
        query = lock_for_update(query)
    sale = query.first()
    if not sale:
        raise NotFound(f"Sale {folio} not found", details={"sale_folio": folio})
    if sale.status != SALE_STATUS_COMPLETED:
        raise NotFound(
            f"Sale {folio} is not returnable (status: {sale.status})",
            details={"sale_folio": folio, "status": sale.status},
        )
    return sale


def _returned_by_sale_line(sale_id: int) -> dict[int, int]:
    """Quantities already returned per SaleLine across PROCESSED returns."""
    rows = (
        db.session.query(ReturnLine.sale_line_id, func.sum(ReturnLine.quantity_returned))
        .join(Return, Return.id == ReturnLine.return_id)
        .filter(Return.sale_id == sale_id, Return.status == RETURN_STATUS_PROCESSED)
        .group_by(ReturnLine.sale_line_id)
        .all()
    )
    return {sale_line_id: int(total or 0) for sale_line_id, total in rows}


def _sale_lines_by_product(sale_id: int) -> dict[int, list[SaleLine]]:
    grouped: dict[int, list[SaleLine]] = defaultdict(list)
    lines = db.session.query(SaleLine).filter_by(sale_id=sale_id).order_by(SaleLine.id).all()
    for line in lines:
        grouped[line.product_id].append(line)
    return grouped


def lookup_sale_for_return(sale_folio: str) -> dict:
    """
    Sale header plus each line's remaining returnable quantity.

    Raises:
        NotFound: no COMPLETED sale with this folio
        ConnectionFailure: storage unavailable
    """
    with storage_guard("look up sale for return"):
        sale = _get_returnable_sale(sale_folio)
        returned = _returned_by_sale_line(sale.id)

        rows = (
            db.session.query(SaleLine, Product.name, Product.code)
            .join(Product, Product.id == SaleLine.product_id)
            .filter(SaleLine.sale_id == sale.id)
            .order_by(SaleLine.id)
            .all()
        )

    lines = []
    for sale_line, product_name, product_code in rows:
        already = returned.get(sale_line.id, 0)
        lines.append({
            "sale_line_id": sale_line.id,
            "product_id": sale_line.product_id,
            "product_name": product_name,
            "product_code": product_code,
            "quantity": sale_line.quantity,
            "unit_price": str(sale_line.unit_price),
            "line_total": str(sale_line.line_total),
            "already_returned": already,
            "returnable": sale_line.quantity - already,
        })

    return {"sale": sale.to_dict(), "lines": lines}


# =============================================================================
# RETURN PROCESSING
# =============================================================================

def _allocate(
    sale: Sale,
    requests: list[ReturnRequestLine],
) -> tuple[list[_Allocation], Decimal]:
    """
    Validate requested quantities and split them across sale lines.

    `returned` starts from the persisted returns and is bumped as each
    request is accepted, so duplicates inside one call are counted too.
    """
    lines_by_product = _sale_lines_by_product(sale.id)
    returned = _returned_by_sale_line(sale.id)

    allocations: list[_Allocation] = []
    refund = ZERO

    for req in requests:
        product_lines = lines_by_product.get(req.product_id)
        if not product_lines:
            raise InvalidRequest(
                "Product not part of this sale",
                details={"product_id": req.product_id, "sale_folio": sale.folio},
            )

        purchased = sum(line.quantity for line in product_lines)
        already_returned = sum(returned.get(line.id, 0) for line in product_lines)
        available = purchased - already_returned

        if already_returned + req.quantity > purchased:
            raise PolicyViolation(
                f"Cannot return {req.quantity} units. Purchased: {purchased}, "
                f"already returned: {already_returned}, available: {available}",
                details={
                    "product_id": req.product_id,
                    "purchased": purchased,
                    "already_returned": already_returned,
                    "requested": req.quantity,
                    "available": available,
                },
            )

        remaining = req.quantity
        for line in product_lines:
            free = line.quantity - returned.get(line.id, 0)
            if free <= 0:
                continue
            take = min(free, remaining)
            subtotal = line_refund(line.unit_price, take)
            allocations.append(_Allocation(
                sale_line=line, quantity=take, condition=req.condition, subtotal=subtotal,
            ))
            returned[line.id] = returned.get(line.id, 0) + take
            refund += subtotal
            remaining -= take
            if remaining == 0:
                break

    return allocations, refund


def _restock(
    product_id: int,
    quantity: int,
    *,
    reference: str,
    performed_by: int,
    occurred_at: datetime,
) -> InventoryMovement:
    """
    Increment stock and append the audit movement.

    The increment is computed by the database (stock = stock + q) on a
    locked row; the product's version_id guards against a lost update.
    """
    product = lock_for_update(
        db.session.query(Product).filter_by(id=product_id).populate_existing()
    ).first()
    if not product:
        raise InvalidRequest("Unknown product reference", details={"product_id": product_id})

    product.stock = Product.stock + quantity
    db.session.flush()

    stock_after = product.stock
    movement = InventoryMovement(
        product_id=product_id,
        movement_type=MOVEMENT_TYPE_RETURN,
        quantity=quantity,
        stock_before=stock_after - quantity,
        stock_after=stock_after,
        reference=reference,
        performed_by=performed_by,
        occurred_at=occurred_at,
    )
    db.session.add(movement)
    return movement


def process_return(
    sale_folio: str,
    lines,
    reason: str | None,
    processor_id: int,
    *,
    refund_method: str = "CASH",
    now: datetime | None = None,
) -> ReturnResult:
    """
    Validate and record a (possibly partial) return against a sale.

    Args:
        sale_folio: folio of the original sale (e.g. "V-20260101-0001")
        lines: [{"product_id": ..., "quantity": ..., "condition": ...}]
        reason: customer's reason, free text
        processor_id: user processing the return (not verified here)
        refund_method: how the refund is paid out (default CASH)
        now: clock override for the folio day and timestamps

    Returns:
        ReturnResult with the return id, return folio and refund amount

    Raises:
        InvalidRequest: empty/malformed lines or product not on the sale
        NotFound: sale missing or not COMPLETED
        PolicyViolation: quantity exceeds purchased minus already returned
        PersistenceFailure: a write failed; nothing was kept
    """
    folio_ref = _clean_folio(sale_folio)
    requests = _normalize_request(lines)
    processor = coerce_int(processor_id, "processor_id", minimum=1)
    method = coerce_choice(refund_method, "refund_method", REFUND_METHODS, default="CASH")
    reason_text = reason.strip() if isinstance(reason, str) else reason
    occurred_at = now or utcnow()

    def _op() -> ReturnResult:
        sale = _get_returnable_sale(folio_ref, lock=True)
        folio = next_folio(KIND_RETURN, now)

        allocations, refund = _allocate(sale, requests)

        return_doc = Return(
            folio_return=folio,
            sale_id=sale.id,
            refund_amount=refund,
            refund_method=method,
            reason=reason_text,
            processed_by=processor,
            status=RETURN_STATUS_PROCESSED,
            created_at=occurred_at,
        )
        db.session.add(return_doc)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise FolioCollision("Return folio already in use", details={"folio": folio}) from exc

        for alloc in allocations:
            db.session.add(ReturnLine(
                return_id=return_doc.id,
                sale_id=sale.id,
                sale_line_id=alloc.sale_line.id,
                product_id=alloc.sale_line.product_id,
                quantity_returned=alloc.quantity,
                unit_price=alloc.sale_line.unit_price,
                subtotal=alloc.subtotal,
                condition=alloc.condition,
                created_at=occurred_at,
            ))
            _restock(
                alloc.sale_line.product_id,
                alloc.quantity,
                reference=folio,
                performed_by=processor,
                occurred_at=occurred_at,
            )
        db.session.flush()

        return ReturnResult(return_id=return_doc.id, folio=folio, refund_amount=refund)

    result = run_atomic(_op, action="process return")
    current_app.logger.info(
        "Return %s recorded against sale %s: refund %s, processor %s",
        result.folio, folio_ref, result.refund_amount, processor,
    )
    return result


# =============================================================================
# QUERIES
# =============================================================================

def get_return(return_id: int) -> Return | None:
    """Get return by ID."""
    return db.session.get(Return, return_id)


def get_sale_returns(sale_id: int) -> list[Return]:
    """Get all returns for a sale, newest first."""
    with storage_guard("list sale returns"):
        return db.session.query(Return).filter_by(
            sale_id=sale_id
        ).order_by(Return.created_at.desc(), Return.id.desc()).all()


def get_return_summary(return_id: int) -> dict:
    """
    Get comprehensive return summary.

    Returns:
        - return: Return details
        - lines: Return line details
        - original_sale: Original sale info
        - movements: Inventory movements written by this return
    """
    with storage_guard("load return summary"):
        return_doc = get_return(return_id)
        if not return_doc:
            raise NotFound(f"Return {return_id} not found")

        movements = db.session.query(InventoryMovement).filter_by(
            reference=return_doc.folio_return
        ).order_by(InventoryMovement.id).all()

        return {
            "return": return_doc.to_dict(),
            "lines": [line.to_dict() for line in return_doc.lines],
            "original_sale": return_doc.sale.to_dict() if return_doc.sale else None,
            "movements": [m.to_dict() for m in movements],
            "refund_amount": str(return_doc.refund_amount),
        }
