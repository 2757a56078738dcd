# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services.tenant_service import get_active_tenant, TenantAccessError


def _header_int(name: str):
    raw = (request.headers.get(name) or "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def require_tenant(f):
    """
    Establish tenant context from the gateway headers.

    Authentication happens in front of the engine. The gateway forwards:
    - X-Tenant-ID: tenant the caller acts for (required)
    - X-User-ID: acting user, recorded as cashier/actor (optional)

    Sets g.tenant_id, g.user_id and g.tenant.

    Returns 401 without a usable tenant header, 403 for unknown or
    deactivated tenants.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        tenant_id = _header_int("X-Tenant-ID")
        if tenant_id is None:
            return jsonify({"error": "Tenant context required"}), 401

        try:
            tenant = get_active_tenant(tenant_id)
        except TenantAccessError as e:
            return jsonify({"error": str(e)}), 403

        g.tenant = tenant
        g.tenant_id = tenant.id
        g.user_id = _header_int("X-User-ID")

        return f(*args, **kwargs)

    return decorated_function
