"""Sale processing: figures, payment handling, validation and atomicity."""

import random
from decimal import Decimal

import pytest

from poscore.errors import InvalidRequest, PersistenceFailure
from poscore.extensions import db
from poscore.models import FolioSequence, Sale, SaleLine
from poscore.services import sales_service
from poscore.services.pricing import compute_line
from poscore.services.sales_service import CartLine, process_sale

from conftest import DAY_KEY, FIXED_NOW, current_stock


def test_scenario_cash_sale_with_discount(db_session, product_a):
    result = process_sale(
        [{"product_id": product_a.id, "quantity": 2, "unit_price": "10.00", "discount_percent": 10}],
        "CASH",
        cashier_id=7,
        amount_received="20.00",
        now=FIXED_NOW,
    )

    assert result.folio == f"V-{DAY_KEY}-0001"

    sale = db.session.get(Sale, result.sale_id)
    assert sale.subtotal == Decimal("20.00")
    assert sale.discount == Decimal("2.00")
    assert sale.total == Decimal("18.00")
    assert sale.amount_received == Decimal("20.00")
    assert sale.change_due == Decimal("2.00")
    assert sale.payment_method == "CASH"
    assert sale.status == "COMPLETED"
    assert sale.cashier_id == 7

    [line] = sale.lines
    assert line.quantity == 2
    assert line.unit_price == Decimal("10.00")
    assert line.line_subtotal == Decimal("20.00")
    assert line.line_discount == Decimal("2.00")
    assert line.line_total == Decimal("18.00")


def test_sale_does_not_touch_stock(db_session, product_a):
    process_sale(
        [{"product_id": product_a.id, "quantity": 3}], "CARD", 1, now=FIXED_NOW,
    )

    assert current_stock(product_a.id) == 5


def test_second_sale_gets_next_folio(db_session, product_a):
    first = process_sale([{"product_id": product_a.id, "quantity": 1}], "CARD", 1, now=FIXED_NOW)
    second = process_sale([{"product_id": product_a.id, "quantity": 1}], "TRANSFER", 1, now=FIXED_NOW)

    assert first.folio == f"V-{DAY_KEY}-0001"
    assert second.folio == f"V-{DAY_KEY}-0002"


def test_unit_price_defaults_to_catalog_price(db_session, product_b):
    result = process_sale([{"product_id": product_b.id, "quantity": 1}], "CARD", 1, now=FIXED_NOW)

    [line] = db.session.get(Sale, result.sale_id).lines
    assert line.unit_price == Decimal("450.00")
    # Discount is only what the cart says, not the catalog's
    assert line.discount_percent == Decimal("0")


def test_accepts_cart_line_objects(db_session, product_a, product_b):
    result = process_sale(
        [
            CartLine(product_id=product_a.id, quantity=1, unit_price=Decimal("10.00")),
            CartLine(product_id=product_b.id, quantity=2, unit_price=Decimal("450.00"),
                     discount_percent=Decimal("10")),
        ],
        "CARD",
        1,
        now=FIXED_NOW,
    )

    sale = db.session.get(Sale, result.sale_id)
    assert sale.subtotal == Decimal("910.00")
    assert sale.discount == Decimal("90.00")
    assert sale.total == Decimal("820.00")
    assert [line.product_id for line in sale.lines] == [product_a.id, product_b.id]


def test_non_cash_payments_store_no_tender(db_session, product_a):
    result = process_sale(
        [{"product_id": product_a.id, "quantity": 1}],
        "card",
        1,
        amount_received="50.00",
        change="40.00",
        now=FIXED_NOW,
    )

    sale = db.session.get(Sale, result.sale_id)
    assert sale.payment_method == "CARD"
    assert sale.amount_received is None
    assert sale.change_due is None


def test_caller_total_is_stored_as_given(db_session, product_a):
    result = process_sale(
        [{"product_id": product_a.id, "quantity": 2}],
        "CARD",
        1,
        total="19.00",
        now=FIXED_NOW,
    )

    sale = db.session.get(Sale, result.sale_id)
    assert sale.subtotal == Decimal("20.00")
    assert sale.total == Decimal("19.00")


def test_strict_totals_reject_mismatch(db_session, product_a, strict_totals):
    with pytest.raises(InvalidRequest) as exc_info:
        process_sale(
            [{"product_id": product_a.id, "quantity": 2}], "CARD", 1, total="19.00", now=FIXED_NOW,
        )

    assert exc_info.value.details["computed_total"] == "20.00"
    assert db.session.query(Sale).count() == 0


@pytest.mark.parametrize(
    "lines, message",
    [
        ([], "no lines"),
        (None, "no lines"),
        ([{"product_id": None, "quantity": 1}], "product_id"),
        ([{"product_id": 1, "quantity": 0}], "positive"),
        ([{"product_id": 1, "quantity": -2}], "positive"),
        ([{"product_id": 1, "quantity": 1.5}], "integer"),
        ([{"product_id": 1, "quantity": 1, "discount_percent": 150}], "between 0 and 100"),
        ([{"product_id": 1, "quantity": 1, "unit_price": "-1"}], "negative"),
        ([{"product_id": 1, "quantity": 1, "unit_price": "abc"}], "number"),
        ([{"product_id": 1, "quantity": 1, "unit_price": "10.005"}], "two decimal places"),
        ([{"product_id": 1, "quantity": 1, "unit_price": 9.999}], "two decimal places"),
        (5, "must be a list"),
        ("V-20260115-0001", "must be a list"),
        ({"product_id": 1, "quantity": 1}, "must be a list"),
    ],
)
def test_invalid_carts_are_rejected(db_session, lines, message):
    from poscore.models import Product

    db_session.add(Product(id=1, code="P1", name="P1", price=Decimal("1.00"), stock=1))
    db_session.commit()

    with pytest.raises(InvalidRequest) as exc_info:
        process_sale(lines, "CARD", 1, now=FIXED_NOW)

    assert message in str(exc_info.value)
    assert db.session.query(Sale).count() == 0


def test_unknown_product_is_rejected(db_session, product_a):
    with pytest.raises(InvalidRequest) as exc_info:
        process_sale(
            [{"product_id": product_a.id, "quantity": 1}, {"product_id": 999, "quantity": 1}],
            "CARD",
            1,
            now=FIXED_NOW,
        )

    assert exc_info.value.details == {"product_ids": [999]}


@pytest.mark.parametrize(
    "payment_method, kwargs, message",
    [
        ("BITCOIN", {}, "payment_method"),
        (None, {}, "payment_method"),
        ("CASH", {}, "amount_received is required"),
        ("CASH", {"amount_received": "5.00"}, "does not cover"),
    ],
)
def test_invalid_payments_are_rejected(db_session, product_a, payment_method, kwargs, message):
    with pytest.raises(InvalidRequest) as exc_info:
        process_sale(
            [{"product_id": product_a.id, "quantity": 1}], payment_method, 1, now=FIXED_NOW, **kwargs,
        )

    assert message in str(exc_info.value)


def test_failed_last_line_rolls_back_everything(db_session, product_a, product_b, monkeypatch):
    calls = []

    def failing_sale_line(**kwargs):
        calls.append(kwargs)
        if len(calls) == 2:
            kwargs["line_total"] = None  # NOT NULL violation at flush
        return SaleLine(**kwargs)

    monkeypatch.setattr(sales_service, "SaleLine", failing_sale_line)

    with pytest.raises(PersistenceFailure) as exc_info:
        process_sale(
            [{"product_id": product_a.id, "quantity": 1}, {"product_id": product_b.id, "quantity": 1}],
            "CARD",
            1,
            now=FIXED_NOW,
        )

    assert exc_info.value.__cause__ is not None
    assert db.session.query(Sale).count() == 0
    assert db.session.query(SaleLine).count() == 0
    assert db.session.query(FolioSequence).count() == 0

    monkeypatch.undo()
    result = process_sale([{"product_id": product_a.id, "quantity": 1}], "CARD", 1, now=FIXED_NOW)
    assert result.folio == f"V-{DAY_KEY}-0001"


def test_folio_collision_retries_whole_unit(db_session, product_a, monkeypatch):
    taken = process_sale([{"product_id": product_a.id, "quantity": 1}], "CARD", 1, now=FIXED_NOW)
    folios = iter([taken.folio, f"V-{DAY_KEY}-0002"])
    monkeypatch.setattr(sales_service, "next_folio", lambda kind, now=None: next(folios))

    result = process_sale([{"product_id": product_a.id, "quantity": 1}], "CARD", 1, now=FIXED_NOW)

    assert result.folio == f"V-{DAY_KEY}-0002"
    assert db.session.query(Sale).count() == 2
    assert db.session.query(SaleLine).count() == 2


def test_folio_collision_gives_up_after_retries(db_session, product_a, monkeypatch):
    taken = process_sale([{"product_id": product_a.id, "quantity": 1}], "CARD", 1, now=FIXED_NOW)
    monkeypatch.setattr(sales_service, "next_folio", lambda kind, now=None: taken.folio)

    with pytest.raises(PersistenceFailure) as exc_info:
        process_sale([{"product_id": product_a.id, "quantity": 1}], "CARD", 1, now=FIXED_NOW)

    assert "unique folio" in str(exc_info.value)
    assert db.session.query(Sale).count() == 1


@pytest.mark.parametrize("seed", range(8))
def test_random_carts_lines_add_up(db_session, seed):
    """Line totals always sum to subtotal - discount, and match the line formula."""
    from poscore.models import Product

    rng = random.Random(seed)
    products = []
    for i in range(4):
        product = Product(code=f"R{seed}-{i}", name=f"Random {i}", price=Decimal("1.00"), stock=0)
        db_session.add(product)
        products.append(product)
    db_session.commit()

    cart = []
    for _ in range(rng.randint(1, 6)):
        cart.append({
            "product_id": rng.choice(products).id,
            "quantity": rng.randint(1, 12),
            "unit_price": f"{rng.randint(0, 99999) / 100:.2f}",
            "discount_percent": rng.choice([0, 5, 10, 12.5, 33, 100]),
        })

    result = process_sale(cart, "CARD", 1, now=FIXED_NOW)

    sale = db.session.get(Sale, result.sale_id)
    lines = sale.lines
    assert len(lines) == len(cart)
    assert sum(line.line_total for line in lines) == sale.subtotal - sale.discount
    assert sale.total == sale.subtotal - sale.discount
    for line, item in zip(lines, cart):
        expected = compute_line(Decimal(item["unit_price"]), item["quantity"],
                                Decimal(str(item["discount_percent"])))
        assert line.line_subtotal == expected.line_subtotal
        assert line.line_discount == expected.line_discount
        assert line.line_total == expected.line_total
