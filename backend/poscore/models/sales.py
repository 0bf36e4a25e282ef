from __future__ import annotations

from ..extensions import db
from poscore.time_utils import to_utc_z
from .inventory import _money


PAYMENT_METHODS = ("CASH", "CARD", "TRANSFER")

SALE_STATUS_COMPLETED = "COMPLETED"


class Sale(db.Model):
    """
    Sale header, written once together with its lines.

    Immutable after creation; later corrections happen through Returns.
    `total` is the figure the register charged and is stored as given.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("folio", name="uq_sales_folio"),
        db.Index("ix_sales_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable document number (e.g., "V-20260101-0001")
    folio = db.Column(db.String(64), nullable=False)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False)

    payment_method = db.Column(db.String(16), nullable=False, index=True)  # CASH, CARD, TRANSFER
    amount_received = db.Column(db.Numeric(12, 2), nullable=True)  # cash only
    change_due = db.Column(db.Numeric(12, 2), nullable=True)  # cash only

    cashier_id = db.Column(db.Integer, nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_COMPLETED, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "folio": self.folio,
            "subtotal": _money(self.subtotal),
            "discount": _money(self.discount),
            "total": _money(self.total),
            "payment_method": self.payment_method,
            "amount_received": _money(self.amount_received),
            "change": _money(self.change_due),
            "cashier_id": self.cashier_id,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


class SaleLine(db.Model):
    """Individual line items on a sale; unit_price is a snapshot, not a live reference."""
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_lines_quantity_positive"),
        db.Index("ix_sale_lines_sale_product", "sale_id", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)

    line_subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    line_discount = db.Column(db.Numeric(12, 2), nullable=False)
    line_total = db.Column(db.Numeric(12, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("lines", lazy=True, order_by="SaleLine.id"))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": _money(self.unit_price),
            "discount_percent": _money(self.discount_percent),
            "line_subtotal": _money(self.line_subtotal),
            "line_discount": _money(self.line_discount),
            "line_total": _money(self.line_total),
            "created_at": to_utc_z(self.created_at),
        }
