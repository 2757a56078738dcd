# Overview: Flask API routes for purchase orders and manual purchases.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_tenant
from ..services import purchase_service
from ..services.errors import LedgerError
from ..validation import as_date, as_datetime, as_int, items_payload, json_body, query_date, query_int

purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.post("/orders")
@require_tenant
def create_purchase_order_route():
    """
    Create a PENDING purchase order.

    Request body:
    {
        "supplier_name": "PT Sumber",
        "po_date": "2024-05-01",                                   (optional)
        "notes": "...",                                            (optional)
        "items": [{"product_id": 1, "quantity": 10, "cost_per_unit": "20.00"}, ...]
    }
    """
    try:
        data = json_body()
        po = purchase_service.create_purchase_order(
            g.tenant_id,
            supplier_name=data.get("supplier_name"),
            items=items_payload(data),
            po_date=as_date(data.get("po_date"), "po_date"),
            notes=data.get("notes"),
            created_by=g.user_id,
        )
        return jsonify({"purchase_order": po.to_dict()}), 201
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/orders")
@require_tenant
def list_purchase_orders_route():
    try:
        result = purchase_service.list_purchase_orders(
            g.tenant_id,
            status=request.args.get("status"),
            start_date=query_date("start_date"),
            end_date=query_date("end_date"),
            page=query_int("page", 1),
            per_page=query_int("per_page", 20),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@purchases_bp.get("/orders/<int:po_id>")
@require_tenant
def get_purchase_order_route(po_id: int):
    try:
        po = purchase_service.get_purchase_order(po_id, g.tenant_id)
        return jsonify({"purchase_order": po.to_dict()}), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@purchases_bp.put("/orders/<int:po_id>")
@require_tenant
def update_purchase_order_route(po_id: int):
    try:
        patch = json_body()
        if "po_date" in patch:
            patch["po_date"] = as_date(patch["po_date"], "po_date")
        po = purchase_service.update_purchase_order(po_id, g.tenant_id, patch, updated_by=g.user_id)
        return jsonify({"purchase_order": po.to_dict()}), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.post("/orders/<int:po_id>/cancel")
@require_tenant
def cancel_purchase_order_route(po_id: int):
    try:
        po = purchase_service.cancel_purchase_order(po_id, g.user_id, tenant_id=g.tenant_id)
        return jsonify({"purchase_order": po.to_dict()}), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.post("/orders/<int:po_id>/receive")
@require_tenant
def receive_purchase_order_route(po_id: int):
    """Post every line into stock at its cost; no cash entry is booked."""
    try:
        po = purchase_service.receive_purchase_order(po_id, g.user_id, tenant_id=g.tenant_id)
        return jsonify({"purchase_order": po.to_dict()}), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to receive purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.post("/manual")
@require_tenant
def manual_purchase_route():
    """
    Request body:
    {
        "product_id": 1,
        "quantity": 3,
        "total_price": "140.00",
        "payment_method": "CASH",      (optional)
        "purchase_date": "2024-05-01", (optional)
        "notes": "..."                 (optional)
    }
    """
    try:
        data = json_body()
        result = purchase_service.record_manual_purchase(
            as_int(data.get("product_id"), "product_id", required=True),
            as_int(data.get("quantity"), "quantity", required=True),
            data.get("total_price"),
            g.tenant_id,
            g.user_id,
            notes=data.get("notes"),
            purchase_date=as_datetime(data.get("purchase_date"), "purchase_date"),
            payment_method=data.get("payment_method") or "CASH",
        )
        return jsonify({
            "stock_movement": result["stock_movement"].to_dict(),
            "cash_transaction": result["cash_transaction"].to_dict(),
            "product": result["product"],
        }), 201
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record manual purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/manual")
@require_tenant
def manual_purchase_history_route():
    try:
        result = purchase_service.get_manual_purchase_history(
            g.tenant_id,
            product_id=query_int("product_id"),
            start_date=query_date("start_date"),
            end_date=query_date("end_date"),
            page=query_int("page", 1),
            per_page=query_int("per_page", 20),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@purchases_bp.get("/summary")
@require_tenant
def purchase_summary_route():
    try:
        summary = purchase_service.get_purchase_summary(
            g.tenant_id, start_date=query_date("start_date"), end_date=query_date("end_date")
        )
        return jsonify(summary), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
