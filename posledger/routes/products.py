# Overview: Flask API routes for product catalogue operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_tenant
from ..services import products_service
from ..services.errors import LedgerError
from ..validation import as_int, json_body, query_bool, query_int

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("/")
@require_tenant
def list_products_route():
    try:
        result = products_service.list_products(
            g.tenant_id,
            search=request.args.get("search"),
            is_active=query_bool("is_active"),
            page=query_int("page"),
            per_page=query_int("per_page"),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/")
@require_tenant
def create_product_route():
    """
    Create a product.

    Request body:
    {
        "name": "Teh Botol",
        "price": "5000.00",
        "sku": "TB-001",           (optional)
        "cost": "3500.00",         (optional, cost of the opening stock)
        "initial_quantity": 24,    (optional, recorded as an INITIAL movement)
        "min_stock": 5,            (optional)
        "is_track_stock": true     (optional)
    }
    """
    try:
        data = json_body()
        product = products_service.create_product(
            g.tenant_id,
            name=data.get("name"),
            price=data.get("price"),
            sku=data.get("sku"),
            cost=data.get("cost", 0),
            initial_quantity=as_int(data.get("initial_quantity", 0), "initial_quantity"),
            min_stock=as_int(data.get("min_stock", 0), "min_stock"),
            is_track_stock=bool(data.get("is_track_stock", True)),
            created_by=g.user_id,
        )
        return jsonify({"product": product.to_dict()}), 201
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@require_tenant
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id, g.tenant_id)
        return jsonify({"product": product.to_dict()}), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@products_bp.put("/<int:product_id>")
@require_tenant
def update_product_route(product_id: int):
    """Catalogue fields only; quantity and cost belong to the stock ledger."""
    try:
        patch = json_body()
        if "min_stock" in patch:
            patch["min_stock"] = as_int(patch["min_stock"], "min_stock", required=True)
        product = products_service.update_product(product_id, g.tenant_id, patch)
        return jsonify({"product": product.to_dict()}), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_tenant
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(product_id, g.tenant_id)
        return jsonify({"deleted": True}), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500
