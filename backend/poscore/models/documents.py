from __future__ import annotations

from ..extensions import db
from poscore.time_utils import to_utc_z
from .inventory import _money


RETURN_STATUS_PROCESSED = "PROCESSED"

REFUND_METHODS = ("CASH", "CARD", "TRANSFER")

# Condition of returned goods; stock is restored either way
RETURN_CONDITIONS = ("RESALE", "DAMAGED")


class Return(db.Model):
    """
    Customer return against a completed sale.

    Created atomically with its lines, the matching stock increments and
    inventory movements. refund_amount is the sum of the line subtotals,
    priced from the original sale lines.
    """
    __tablename__ = "returns"
    __table_args__ = (
        db.UniqueConstraint("folio_return", name="uq_returns_folio"),
        db.Index("ix_returns_sale_status", "sale_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable document number (e.g., "DEV-20260101-0001")
    folio_return = db.Column(db.String(64), nullable=False)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    refund_amount = db.Column(db.Numeric(12, 2), nullable=False)
    refund_method = db.Column(db.String(16), nullable=False, default="CASH")

    reason = db.Column(db.Text, nullable=True)
    processed_by = db.Column(db.Integer, nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=RETURN_STATUS_PROCESSED, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    sale = db.relationship("Sale", backref=db.backref("returns", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "folio_return": self.folio_return,
            "sale_id": self.sale_id,
            "refund_amount": _money(self.refund_amount),
            "refund_method": self.refund_method,
            "reason": self.reason,
            "processed_by": self.processed_by,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


class ReturnLine(db.Model):
    """
    Individual line items on a return.

    unit_price is copied from the original SaleLine (never re-priced).
    """
    __tablename__ = "return_lines"
    __table_args__ = (
        db.CheckConstraint("quantity_returned > 0", name="ck_return_lines_quantity_positive"),
        db.Index("ix_return_lines_sale_product", "sale_id", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=False, index=True)

    # Denormalized from the sale line so cumulative checks stay a single query
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False)
    sale_line_id = db.Column(db.Integer, db.ForeignKey("sale_lines.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity_returned = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    subtotal = db.Column(db.Numeric(12, 2), nullable=False)

    condition = db.Column(db.String(16), nullable=False, default="RESALE")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    return_doc = db.relationship("Return", backref=db.backref("lines", lazy=True, order_by="ReturnLine.id"))
    sale_line = db.relationship("SaleLine", backref=db.backref("return_lines", lazy=True))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "sale_id": self.sale_id,
            "sale_line_id": self.sale_line_id,
            "product_id": self.product_id,
            "quantity_returned": self.quantity_returned,
            "unit_price": _money(self.unit_price),
            "subtotal": _money(self.subtotal),
            "condition": self.condition,
            "created_at": to_utc_z(self.created_at),
        }


class FolioSequence(db.Model):
    """
    Atomic per-kind, per-day folio counters.

    Serializes folio allocation so two concurrent units never compute the
    same suffix. The counter row is written inside the caller's transaction.
    """
    __tablename__ = "folio_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_kind", "day_key", name="uq_folio_sequences_kind_day"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_kind = db.Column(db.String(16), nullable=False)  # SALE, RETURN
    day_key = db.Column(db.String(8), nullable=False)  # YYYYMMDD
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_kind": self.document_kind,
            "day_key": self.day_key,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
