# Overview: Flask API routes for expense categories.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_tenant
from ..services import category_service
from ..services.errors import LedgerError
from ..validation import as_bool, json_body, query_bool

categories_bp = Blueprint("categories", __name__, url_prefix="/api/expense-categories")


@categories_bp.get("/")
@require_tenant
def list_categories_route():
    """Tenant categories plus the shared global ones."""
    try:
        categories = category_service.list_categories(
            g.tenant_id,
            is_active=query_bool("is_active"),
            search=request.args.get("search"),
        )
        return jsonify({"items": [c.to_dict() for c in categories], "count": len(categories)}), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@categories_bp.post("/")
@require_tenant
def create_category_route():
    try:
        data = json_body()
        is_active = as_bool(data.get("is_active"), "is_active")
        category = category_service.create_category(
            g.tenant_id,
            code=data.get("code"),
            name=data.get("name"),
            description=data.get("description"),
            is_active=True if is_active is None else is_active,
            created_by=g.user_id,
        )
        return jsonify({"category": category.to_dict()}), 201
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create expense category")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.post("/seed")
@require_tenant
def seed_categories_route():
    try:
        result = category_service.seed_default_categories(g.tenant_id, created_by=g.user_id)
        return jsonify(result), 200
    except Exception:
        current_app.logger.exception("Failed to seed expense categories")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.get("/<int:category_id>")
@require_tenant
def get_category_route(category_id: int):
    try:
        category = category_service.get_category(category_id, g.tenant_id)
        return jsonify({"category": category.to_dict()}), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@categories_bp.put("/<int:category_id>")
@require_tenant
def update_category_route(category_id: int):
    try:
        patch = json_body()
        if "is_active" in patch:
            patch["is_active"] = as_bool(patch["is_active"], "is_active")
        category = category_service.update_category(category_id, g.tenant_id, patch)
        return jsonify({"category": category.to_dict()}), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update expense category")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.delete("/<int:category_id>")
@require_tenant
def delete_category_route(category_id: int):
    try:
        category_service.delete_category(category_id, g.tenant_id)
        return jsonify({"deleted": True}), 200
    except LedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete expense category")
        return jsonify({"error": "Internal server error"}), 500
