# Overview: Flask API routes for sale transactions; draft, completion, deletion and dashboard.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_tenant
from ..services import sales_service
from ..services.errors import LedgerError
from ..validation import items_payload, json_body, query_date, query_int

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("/")
@require_tenant
def create_sale_route():
    """
    Create a DRAFT sale.

    Request body:
    {
        "items": [{"product_id": 1, "quantity": 3}, ...]
    }

    Stock is checked but not moved until completion.
    """
    try:
        data = json_body()
        sale = sales_service.create_sale(g.tenant_id, g.user_id, items_payload(data))
        return jsonify({"transaction": sale.to_dict()}), 201
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:transaction_id>/complete")
@require_tenant
def complete_sale_route(transaction_id: int):
    """
    Take payment and post the sale.

    Request body:
    {
        "payment_amount": "300.00",
        "payment_method": "CASH"      (CASH | QRIS | DEBIT, default CASH)
    }
    """
    try:
        data = json_body()
        sale = sales_service.complete_sale(
            transaction_id,
            data.get("payment_amount"),
            data.get("payment_method") or "CASH",
            actor_id=g.user_id,
            tenant_id=g.tenant_id,
        )
        return jsonify({"transaction": sale.to_dict()}), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to complete sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.delete("/<int:transaction_id>")
@require_tenant
def delete_sale_route(transaction_id: int):
    try:
        sale = sales_service.delete_sale(transaction_id, g.user_id, tenant_id=g.tenant_id)
        return jsonify({"transaction": sale.to_dict()}), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/")
@require_tenant
def list_sales_route():
    try:
        result = sales_service.list_sales(
            g.tenant_id,
            status=request.args.get("status"),
            cashier_id=query_int("cashier_id"),
            start_date=query_date("start_date"),
            end_date=query_date("end_date"),
            page=query_int("page", 1),
            per_page=query_int("per_page", 20),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/dashboard")
@require_tenant
def dashboard_route():
    try:
        stats = sales_service.get_dashboard_stats(
            g.tenant_id,
            cashier_id=query_int("cashier_id"),
            day=query_date("date"),
        )
        return jsonify(stats), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@sales_bp.get("/<int:transaction_id>")
@require_tenant
def get_sale_route(transaction_id: int):
    try:
        sale = sales_service.get_sale(transaction_id, g.tenant_id)
        return jsonify({"transaction": sale.to_dict()}), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
