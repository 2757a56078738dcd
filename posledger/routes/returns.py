# Overview: Flask API routes for sale returns.

from flask import Blueprint, current_app, g, jsonify

from ..decorators import require_tenant
from ..services import return_service
from ..services.errors import LedgerError
from ..validation import as_int, items_payload, json_body, query_int

returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("/")
@require_tenant
def create_return_route():
    """
    Return goods from a completed sale.

    Request body:
    {
        "transaction_id": 12,
        "items": [{"sale_item_id": 30, "quantity": 2}, ...],
        "notes": "damaged",              (optional)
        "refund_method": "CASH"          (optional)
    }

    Items may give product_id instead of sale_item_id when the product
    appears on a single line of the sale.
    """
    try:
        data = json_body()
        transaction_id = as_int(data.get("transaction_id"), "transaction_id", required=True)
        ret = return_service.create_return(
            g.tenant_id,
            g.user_id,
            transaction_id,
            items_payload(data),
            notes=data.get("notes"),
            refund_method=data.get("refund_method") or "CASH",
        )
        return jsonify({"return": ret.to_dict()}), 201
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/returnable")
@require_tenant
def returnable_route():
    """Sales still inside the return window, with per-line returnable quantities."""
    transactions = return_service.get_returnable_transactions(
        g.tenant_id, cashier_id=query_int("cashier_id")
    )
    return jsonify({"items": transactions, "count": len(transactions)}), 200


@returns_bp.get("/")
@require_tenant
def list_returns_route():
    try:
        result = return_service.list_returns(
            g.tenant_id,
            transaction_id=query_int("transaction_id"),
            cashier_id=query_int("cashier_id"),
            page=query_int("page", 1),
            per_page=query_int("per_page", 20),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@returns_bp.get("/<int:return_id>")
@require_tenant
def get_return_route(return_id: int):
    try:
        ret = return_service.get_return(return_id, g.tenant_id)
        return jsonify({"return": ret.to_dict()}), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
