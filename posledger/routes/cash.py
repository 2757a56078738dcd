# Overview: Flask API routes for the cash ledger; entries, verification, balances and summaries.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_tenant
from ..services import cash_service
from ..services.errors import LedgerError
from ..validation import as_datetime, as_int, json_body, query_bool, query_date, query_int

cash_bp = Blueprint("cash", __name__, url_prefix="/api/cash-transactions")


def _parse_patch(data: dict) -> dict:
    patch = dict(data)
    if "category_id" in patch:
        patch["category_id"] = as_int(patch["category_id"], "category_id")
    if "transaction_date" in patch:
        patch["transaction_date"] = as_datetime(patch["transaction_date"], "transaction_date")
    return patch


@cash_bp.post("/")
@require_tenant
def create_cash_transaction_route():
    """
    Record a manual INCOME or EXPENSE entry.

    Request body:
    {
        "transaction_type": "EXPENSE",
        "amount": "50000.00",
        "payment_method": "CASH",              (optional)
        "category_id": 3,                      (optional)
        "description": "Electricity",          (optional)
        "notes": "...",                        (optional)
        "receipt_image_url": "...",            (optional)
        "transaction_date": "2024-05-01"       (optional, defaults to now)
    }
    """
    try:
        data = json_body()
        entry = cash_service.create_cash_transaction(
            tenant_id=g.tenant_id,
            transaction_type=data.get("transaction_type"),
            amount=data.get("amount"),
            payment_method=data.get("payment_method") or "CASH",
            category_id=as_int(data.get("category_id"), "category_id"),
            category_type=data.get("category_type"),
            description=data.get("description"),
            notes=data.get("notes"),
            receipt_image_url=data.get("receipt_image_url"),
            transaction_date=as_datetime(data.get("transaction_date"), "transaction_date"),
            created_by=g.user_id,
        )
        return jsonify({"cash_transaction": entry.to_dict()}), 201
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create cash transaction")
        return jsonify({"error": "Internal server error"}), 500


@cash_bp.get("/")
@require_tenant
def list_cash_transactions_route():
    try:
        result = cash_service.list_cash_transactions(
            g.tenant_id,
            transaction_type=request.args.get("transaction_type"),
            payment_method=request.args.get("payment_method"),
            category_id=query_int("category_id"),
            is_verified=query_bool("is_verified"),
            start_date=query_date("start_date"),
            end_date=query_date("end_date"),
            page=query_int("page", 1),
            per_page=query_int("per_page", 20),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list cash transactions")
        return jsonify({"error": "Internal server error"}), 500


@cash_bp.get("/balance")
@require_tenant
def balance_route():
    try:
        return jsonify(cash_service.get_balance(g.tenant_id, request.args.get("payment_method"))), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@cash_bp.get("/summary")
@require_tenant
def summary_route():
    try:
        summary = cash_service.get_cash_flow_summary(
            g.tenant_id, start_date=query_date("start_date"), end_date=query_date("end_date")
        )
        return jsonify(summary), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@cash_bp.get("/expense-by-category")
@require_tenant
def expense_by_category_route():
    try:
        report = cash_service.get_expense_by_category(
            g.tenant_id, start_date=query_date("start_date"), end_date=query_date("end_date")
        )
        return jsonify(report), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@cash_bp.post("/sync-sale/<int:sale_id>")
@require_tenant
def sync_sale_route(sale_id: int):
    """Backfill the INCOME entry of a completed sale that has none."""
    try:
        entry = cash_service.sync_from_sale(sale_id, g.tenant_id, created_by=g.user_id)
        return jsonify({"cash_transaction": entry.to_dict()}), 201
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to sync sale to cash ledger")
        return jsonify({"error": "Internal server error"}), 500


@cash_bp.get("/<int:cash_transaction_id>")
@require_tenant
def get_cash_transaction_route(cash_transaction_id: int):
    try:
        entry = cash_service.get_cash_transaction(cash_transaction_id, g.tenant_id)
        return jsonify({"cash_transaction": entry.to_dict()}), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@cash_bp.put("/<int:cash_transaction_id>")
@require_tenant
def update_cash_transaction_route(cash_transaction_id: int):
    try:
        entry = cash_service.update_cash_transaction(
            cash_transaction_id, g.tenant_id, _parse_patch(json_body()), updated_by=g.user_id
        )
        return jsonify({"cash_transaction": entry.to_dict()}), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update cash transaction")
        return jsonify({"error": "Internal server error"}), 500


@cash_bp.delete("/<int:cash_transaction_id>")
@require_tenant
def delete_cash_transaction_route(cash_transaction_id: int):
    try:
        cash_service.delete_cash_transaction(cash_transaction_id, g.tenant_id, deleted_by=g.user_id)
        return jsonify({"deleted": True}), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete cash transaction")
        return jsonify({"error": "Internal server error"}), 500


@cash_bp.post("/<int:cash_transaction_id>/verify")
@require_tenant
def verify_cash_transaction_route(cash_transaction_id: int):
    try:
        entry = cash_service.verify_cash_transaction(cash_transaction_id, g.tenant_id, verified_by=g.user_id)
        return jsonify({"cash_transaction": entry.to_dict()}), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to verify cash transaction")
        return jsonify({"error": "Internal server error"}), 500
