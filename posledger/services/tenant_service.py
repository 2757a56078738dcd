"""
Tenant Service: Tenant Lookup and Scoping Helpers

Every ledger row belongs to exactly one tenant. Onboarding and approval are
handled outside the engine; here a tenant is only created and checked for
is_active before any request is allowed to touch its data.

USAGE:
    from posledger.services.tenant_service import get_active_tenant

    tenant = get_active_tenant(g.tenant_id)
"""
from __future__ import annotations

from ..extensions import db
from ..models import Tenant
from .concurrency import run_in_transaction
from .errors import NotFoundError, ValidationError


class TenantAccessError(Exception):
    """Raised when a request targets an unknown or inactive tenant."""
    pass


def create_tenant(name: str, code: str | None = None, is_active: bool = True) -> Tenant:
    if not (name or "").strip():
        raise ValidationError("tenant name is required")

    def _op() -> Tenant:
        tenant = Tenant(name=name.strip(), code=code, is_active=is_active)
        db.session.add(tenant)
        return tenant

    return run_in_transaction(_op)


def get_tenant(tenant_id: int) -> Tenant:
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant not found", details={"tenant_id": tenant_id})
    return tenant


def get_active_tenant(tenant_id: int) -> Tenant:
    """
    Resolve the tenant of the current request.

    Raises:
        TenantAccessError if the tenant does not exist or is deactivated
    """
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None or not tenant.is_active:
        raise TenantAccessError("Tenant is not active")
    return tenant
