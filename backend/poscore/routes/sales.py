# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/poscore/routes/sales.py
"""Sales API routes"""

from flask import Blueprint, jsonify, current_app

from ..errors import PosError
from ..services import sales_service, return_service
from . import error_response, json_body


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("/")
def process_sale_route():
    """
    Record a completed sale.

    Request body:
    {
        "lines": [
            {"product_id": 1, "quantity": 2, "unit_price": "10.00", "discount_percent": 10}
        ],
        "payment_method": "CASH",
        "total": "18.00",  (optional, defaults to subtotal - discount)
        "amount_received": "20.00",  (CASH only)
        "change": "2.00",  (CASH only, optional)
        "cashier_id": 1
    }

    Returns:
        201: {"sale_id": ..., "folio": "V-YYYYMMDD-NNNN"}
        400: Invalid input
    """
    try:
        data = json_body()

        result = sales_service.process_sale(
            data.get("lines"),
            data.get("payment_method"),
            data.get("cashier_id"),
            total=data.get("total"),
            amount_received=data.get("amount_received"),
            change=data.get("change"),
        )

        return jsonify(result.to_dict()), 201

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<folio>")
def get_sale_route(folio: str):
    """Get sale with lines."""
    try:
        return jsonify(sales_service.get_sale_detail(folio)), 200
    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load sale %s", folio)
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<folio>/returns")
def get_sale_returns_route(folio: str):
    """List returns recorded against a sale."""
    try:
        sale = sales_service.get_sale_by_folio(folio)
        returns = return_service.get_sale_returns(sale.id)
        return jsonify({
            "sale": sale.to_dict(),
            "returns": [r.to_dict() for r in returns],
        }), 200
    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list returns for sale %s", folio)
        return jsonify({"error": "Internal server error"}), 500
