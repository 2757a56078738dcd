# Overview: Flask API routes for stock opname (physical count) records.

from flask import Blueprint, current_app, g, jsonify

from ..decorators import require_tenant
from ..services import opname_service
from ..services.errors import LedgerError
from ..validation import as_int, items_payload, json_body, query_bool, query_date, query_int

opnames_bp = Blueprint("opnames", __name__, url_prefix="/api/opnames")


@opnames_bp.post("/")
@require_tenant
def create_opname_route():
    """
    Record a count. The system quantity is captured now; stock does not
    change until the opname is processed.

    Request body:
    {
        "product_id": 1,
        "actual_qty": 18,
        "notes": "shelf A"     (optional)
    }
    """
    try:
        data = json_body()
        opname = opname_service.create_stock_opname(
            g.tenant_id,
            as_int(data.get("product_id"), "product_id", required=True),
            as_int(data.get("actual_qty"), "actual_qty", required=True),
            notes=data.get("notes"),
            created_by=g.user_id,
        )
        return jsonify({"stock_opname": opname.to_dict()}), 201
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create stock opname")
        return jsonify({"error": "Internal server error"}), 500


@opnames_bp.post("/bulk")
@require_tenant
def bulk_create_opnames_route():
    try:
        data = json_body()
        opnames = opname_service.bulk_create_stock_opnames(
            g.tenant_id, items_payload(data, key="entries"), created_by=g.user_id
        )
        return jsonify({"items": [o.to_dict() for o in opnames], "count": len(opnames)}), 201
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create stock opnames")
        return jsonify({"error": "Internal server error"}), 500


@opnames_bp.get("/")
@require_tenant
def list_opnames_route():
    try:
        result = opname_service.list_stock_opnames(
            g.tenant_id,
            product_id=query_int("product_id"),
            processed=query_bool("processed"),
            start_date=query_date("start_date"),
            end_date=query_date("end_date"),
            page=query_int("page", 1),
            per_page=query_int("per_page", 20),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@opnames_bp.get("/<int:opname_id>")
@require_tenant
def get_opname_route(opname_id: int):
    try:
        opname = opname_service.get_stock_opname(opname_id, g.tenant_id)
        return jsonify({"stock_opname": opname.to_dict()}), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@opnames_bp.post("/<int:opname_id>/process")
@require_tenant
def process_opname_route(opname_id: int):
    try:
        result = opname_service.process_stock_opname(opname_id, g.user_id, tenant_id=g.tenant_id)
        return jsonify({
            "stock_opname": result["opname"].to_dict(),
            "stock_movement": result["stock_movement"].to_dict() if result["stock_movement"] else None,
            "message": result["message"],
        }), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to process stock opname")
        return jsonify({"error": "Internal server error"}), 500
