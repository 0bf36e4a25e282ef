# Overview: Flask API routes for returns operations; parses input and returns JSON responses.

# backend/poscore/routes/returns.py
"""
Return Processing API Routes

DESIGN:
- Look up a sale by folio with the remaining returnable quantity per line
- Process a return in one call: validation, refund, restock and audit
- Fetch a processed return with its lines and inventory movements
"""

from flask import Blueprint, jsonify, current_app

from ..errors import PosError
from ..services import return_service
from . import error_response, json_body


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.get("/lookup/<folio>")
def lookup_sale_route(folio: str):
    """
    Find a sale for a return.

    Returns:
        200: sale fields and lines with already_returned / returnable
        404: Sale not found or not returnable
    """
    try:
        return jsonify(return_service.lookup_sale_for_return(folio)), 200
    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to look up sale for return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.post("/")
def process_return_route():
    """
    Process a return against a sale.

    Request body:
    {
        "sale_folio": "V-20260101-0001",
        "lines": [{"product_id": 1, "quantity": 1, "condition": "RESALE"}],
        "reason": "defect",
        "processor_id": 1,
        "refund_method": "CASH"  (optional)
    }

    Returns:
        201: {"return_id": ..., "folio": "DEV-YYYYMMDD-NNNN", "refund_amount": "..."}
        400: Invalid input or product not on the sale
        404: Sale not found
        409: Quantity exceeds what is still returnable
    """
    try:
        data = json_body()

        result = return_service.process_return(
            data.get("sale_folio"),
            data.get("lines"),
            data.get("reason"),
            data.get("processor_id"),
            refund_method=data.get("refund_method") or "CASH",
        )

        return jsonify(result.to_dict()), 201

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/<int:return_id>")
def get_return_route(return_id: int):
    """Get return with lines and inventory movements."""
    try:
        return jsonify(return_service.get_return_summary(return_id)), 200
    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load return %s", return_id)
        return jsonify({"error": "Internal server error"}), 500
