# Overview: Flask API routes for stock ledger reads; movements, valuation, low and dead stock.

# posledger/routes/stock.py
"""
Stock API Routes

Read side of the stock ledger. Quantity and cost are never written through
this blueprint: movements are produced by sales, returns, purchases and
opname processing.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_tenant
from ..services import stock_service
from ..services.errors import LedgerError
from ..validation import query_date, query_int

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("/movements")
@require_tenant
def list_movements_route():
    """
    Paginated movement listing.

    Query params: product_id, movement_type, reference_type, start_date,
    end_date (YYYY-MM-DD), sort_order (asc|desc), page, per_page
    """
    try:
        result = stock_service.list_movements(
            g.tenant_id,
            product_id=query_int("product_id"),
            movement_type=request.args.get("movement_type"),
            reference_type=request.args.get("reference_type"),
            start_date=query_date("start_date"),
            end_date=query_date("end_date"),
            sort_order=request.args.get("sort_order", "desc"),
            page=query_int("page", 1),
            per_page=query_int("per_page", 20),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/products/<int:product_id>/movements")
@require_tenant
def product_movements_route(product_id: int):
    try:
        movements = stock_service.get_product_movements(
            product_id, g.tenant_id, limit=min(query_int("limit", 50), 500)
        )
        return jsonify({"items": [m.to_dict() for m in movements], "count": len(movements)}), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@stock_bp.get("/statistics")
@require_tenant
def movement_statistics_route():
    try:
        stats = stock_service.get_movement_statistics(
            g.tenant_id,
            start_date=query_date("start_date"),
            end_date=query_date("end_date"),
        )
        return jsonify(stats), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@stock_bp.get("/valuation")
@require_tenant
def valuation_route():
    try:
        return jsonify(stock_service.get_inventory_valuation(g.tenant_id)), 200
    except Exception:
        current_app.logger.exception("Failed to compute inventory valuation")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/low-stock")
@require_tenant
def low_stock_route():
    products = stock_service.get_low_stock_products(g.tenant_id)
    return jsonify({"items": products, "count": len(products)}), 200


@stock_bp.get("/dead-stock")
@require_tenant
def dead_stock_route():
    try:
        products = stock_service.get_dead_stock_products(g.tenant_id, days=query_int("days"))
        return jsonify({"items": products, "count": len(products)}), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
