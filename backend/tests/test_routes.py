"""HTTP command layer: sale and return endpoints, error mapping, health and CLI."""

from decimal import Decimal

import pytest

from poscore.cli import pos_group
from poscore.extensions import db
from poscore.models import Product, Return, Sale
from poscore.services import return_service, sales_service


def _sell(client, product_id, quantity=2, **extra):
    payload = {
        "lines": [{"product_id": product_id, "quantity": quantity, "unit_price": "10.00", "discount_percent": 10}],
        "payment_method": "CASH",
        "amount_received": "20.00",
        "cashier_id": 1,
    }
    payload.update(extra)
    return client.post("/api/sales/", json=payload)


def test_health(client, db_session):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json["status"] == "healthy"


def test_process_sale_route(client, db_session, product_a):
    response = _sell(client, product_a.id)

    assert response.status_code == 201
    folio = response.json["folio"]
    assert folio.startswith("V-")
    assert folio.endswith("-0001")

    detail = client.get(f"/api/sales/{folio}")
    assert detail.status_code == 200
    assert detail.json["sale"]["total"] == "18.00"
    assert detail.json["sale"]["change"] == "2.00"
    assert detail.json["lines"][0]["line_discount"] == "2.00"


def test_process_sale_route_rejects_empty_cart(client, db_session):
    response = client.post("/api/sales/", json={"lines": [], "payment_method": "CARD", "cashier_id": 1})

    assert response.status_code == 400
    assert response.json["code"] == "INVALID_REQUEST"


def test_unknown_sale_is_404(client, db_session):
    response = client.get("/api/sales/V-20260115-0404")

    assert response.status_code == 404
    assert response.json["code"] == "NOT_FOUND"


def test_return_flow_over_http(client, db_session, product_a):
    folio = _sell(client, product_a.id).json["folio"]

    lookup = client.get(f"/api/returns/lookup/{folio}")
    assert lookup.status_code == 200
    assert lookup.json["lines"][0]["returnable"] == 2

    response = client.post("/api/returns/", json={
        "sale_folio": folio,
        "lines": [{"product_id": product_a.id, "quantity": 1}],
        "reason": "defect",
        "processor_id": 3,
    })
    assert response.status_code == 201
    assert response.json["refund_amount"] == "10.00"
    assert response.json["folio"].startswith("DEV-")

    summary = client.get(f"/api/returns/{response.json['return_id']}")
    assert summary.status_code == 200
    assert summary.json["movements"][0]["stock_before"] == 5

    history = client.get(f"/api/sales/{folio}/returns")
    assert [r["folio_return"] for r in history.json["returns"]] == [response.json["folio"]]


def test_return_over_limit_is_409_with_counters(client, db_session, product_a):
    folio = _sell(client, product_a.id).json["folio"]

    response = client.post("/api/returns/", json={
        "sale_folio": folio,
        "lines": [{"product_id": product_a.id, "quantity": 3}],
        "reason": "too many",
        "processor_id": 3,
    })

    assert response.status_code == 409
    assert response.json["code"] == "POLICY_VIOLATION"
    assert response.json["details"]["purchased"] == 2
    assert response.json["details"]["available"] == 2
    assert db.session.query(Return).count() == 0


def test_return_against_missing_sale_is_404(client, db_session, product_a):
    response = client.post("/api/returns/", json={
        "sale_folio": "V-20260115-0404",
        "lines": [{"product_id": product_a.id, "quantity": 1}],
        "reason": "x",
        "processor_id": 3,
    })

    assert response.status_code == 404
    assert client.get("/api/returns/lookup/V-20260115-0404").status_code == 404
    assert client.get("/api/returns/12345").status_code == 404


def test_cli_seed_and_add_product(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(pos_group, ["seed-demo"])
    assert result.exit_code == 0
    assert "Seeded" in result.output
    seeded = db.session.query(Product).count()
    assert seeded > 0

    result = runner.invoke(pos_group, ["seed-demo"])
    assert "SKIP" in result.output

    result = runner.invoke(pos_group, [
        "add-product", "--code", "X-1", "--name", "Sticker", "--price", "2.5", "--stock", "4",
    ])
    assert result.exit_code == 0
    product = db.session.query(Product).filter_by(code="X-1").one()
    assert product.price == Decimal("2.50")
    assert product.stock == 4

    result = runner.invoke(pos_group, ["add-product", "--code", "X-1", "--name", "Dup", "--price", "1"])
    assert result.exit_code != 0
    assert "already exists" in result.output


@pytest.mark.parametrize("url", ["/api/sales/", "/api/returns/"])
def test_non_object_json_body_is_400(client, db_session, url):
    response = client.post(url, json=[1, 2])

    assert response.status_code == 400
    assert response.json["code"] == "INVALID_REQUEST"
    assert "JSON object" in response.json["error"]


def test_malformed_sale_lines_are_400(client, db_session, product_a):
    response = client.post("/api/sales/", json={"lines": 5, "payment_method": "CARD", "cashier_id": 1})

    assert response.status_code == 400
    assert response.json["code"] == "INVALID_REQUEST"
    assert db.session.query(Sale).count() == 0


def test_sub_cent_unit_price_is_400(client, db_session, product_a):
    response = client.post("/api/sales/", json={
        "lines": [{"product_id": product_a.id, "quantity": 1, "unit_price": "10.005"}],
        "payment_method": "CARD",
        "cashier_id": 1,
    })

    assert response.status_code == 400
    assert "two decimal places" in response.json["error"]
    assert db.session.query(Sale).count() == 0


@pytest.mark.parametrize(
    "payload",
    [
        {"sale_folio": 123, "lines": [{"product_id": 1, "quantity": 1}]},
        {"sale_folio": "V-20260115-0001", "lines": 7},
    ],
)
def test_malformed_return_payload_is_400(client, db_session, payload):
    payload.update({"reason": "x", "processor_id": 3})

    response = client.post("/api/returns/", json=payload)

    assert response.status_code == 400
    assert response.json["code"] == "INVALID_REQUEST"


@pytest.mark.parametrize(
    "module, name, url",
    [
        (sales_service, "get_sale_detail", "/api/sales/V-20260115-0001"),
        (sales_service, "get_sale_by_folio", "/api/sales/V-20260115-0001/returns"),
        (return_service, "get_return_summary", "/api/returns/1"),
    ],
)
def test_read_routes_log_unexpected_errors_as_500(client, db_session, monkeypatch, module, name, url):
    def boom(*args, **kwargs):
        raise RuntimeError("unexpected")

    monkeypatch.setattr(module, name, boom)

    response = client.get(url)

    assert response.status_code == 500
    assert response.json == {"error": "Internal server error"}
