# posledger/services/products_service.py
"""
Products Service

All product operations are tenant-scoped. Catalogue fields are edited here;
quantity and cost are owned by the stock ledger and are never writable
through a product patch. Opening stock goes through the ledger as an IN
movement (reference INITIAL) so the movement replay matches from day one.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import Product, ReferenceType
from ..money import quantize_money, to_decimal
from posledger.time_utils import utcnow
from .concurrency import run_in_transaction
from .errors import NotFoundError, ValidationError
from .pagination import paginate
from .stock_service import receive_stock

PRODUCT_MUTABLE_FIELDS = {"sku", "name", "price", "min_stock", "is_active", "is_track_stock"}


def _non_negative_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{field} must be a non-negative integer", details={field: value})
    return value


def _non_negative_money(value, field: str):
    amount = quantize_money(to_decimal(value, field=field))
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative", details={field: str(amount)})
    return amount


def _ensure_unique_sku(tenant_id: int, sku: str | None, exclude_id: int | None = None) -> None:
    if not sku:
        return
    q = db.session.query(Product.id).filter(Product.tenant_id == tenant_id, Product.sku == sku)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first() is not None:
        raise ValidationError("SKU already exists for this tenant", details={"sku": sku})


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        if k == "price":
            v = _non_negative_money(v, "price")
        elif k == "min_stock":
            v = _non_negative_int(v, "min_stock")
        elif k == "name" and not (v or "").strip():
            raise ValidationError("name is required")
        setattr(p, k, v)


def create_product(
    tenant_id: int,
    *,
    name: str,
    price,
    sku: str | None = None,
    cost=0,
    initial_quantity: int = 0,
    min_stock: int = 0,
    is_track_stock: bool = True,
    created_by: int | None = None,
) -> Product:
    """
    Create a product, optionally with opening stock at `cost`.

    Opening stock is received like a purchase (WAC then IN movement), so a new
    product with initial_quantity=N shows one INITIAL movement 0 -> N.
    """
    if not (name or "").strip():
        raise ValidationError("name is required")
    price_value = _non_negative_money(price, "price")
    cost_value = _non_negative_money(cost, "cost")
    initial_quantity = _non_negative_int(initial_quantity, "initial_quantity")
    min_stock = _non_negative_int(min_stock, "min_stock")

    def _op() -> Product:
        _ensure_unique_sku(tenant_id, sku)

        p = Product(
            tenant_id=tenant_id,
            sku=sku,
            name=name.strip(),
            price=price_value,
            cost=cost_value if initial_quantity == 0 else 0,
            quantity=0,
            min_stock=min_stock,
            is_active=True,
            is_track_stock=is_track_stock,
        )
        db.session.add(p)
        db.session.flush()

        if initial_quantity > 0:
            receive_stock(
                product_id=p.id,
                quantity=initial_quantity,
                cost_per_unit=cost_value,
                reference_type=ReferenceType.INITIAL,
                tenant_id=tenant_id,
                notes="Opening stock",
                actor_id=created_by,
                commit=False,
            )
        return p

    product = run_in_transaction(_op)
    current_app.logger.info(
        "Product created: id=%s tenant_id=%s sku=%s initial_quantity=%s",
        product.id, tenant_id, product.sku, initial_quantity,
    )
    return product


def get_product(product_id: int, tenant_id: int, *, include_deleted: bool = False) -> Product:
    q = db.session.query(Product).filter(Product.id == product_id, Product.tenant_id == tenant_id)
    if not include_deleted:
        q = q.filter(Product.deleted_at.is_(None))
    product = q.first()
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def list_products(
    tenant_id: int,
    *,
    search: str | None = None,
    is_active: bool | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    q = db.session.query(Product).filter(Product.tenant_id == tenant_id, Product.deleted_at.is_(None))
    if is_active is not None:
        q = q.filter(Product.is_active.is_(is_active))
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Product.name.ilike(like), Product.sku.ilike(like)))
    q = q.order_by(Product.name.asc(), Product.id.asc())
    return paginate(q, page, per_page)


def update_product(product_id: int, tenant_id: int, patch: dict) -> Product:
    """Patch catalogue fields. quantity/cost keys are ignored."""
    def _op() -> Product:
        p = get_product(product_id, tenant_id)
        if "sku" in patch:
            _ensure_unique_sku(tenant_id, patch["sku"], exclude_id=p.id)
        apply_product_patch(p, patch)
        return p

    return run_in_transaction(_op)


def delete_product(product_id: int, tenant_id: int) -> Product:
    """Soft delete: keeps the row for movement and sale history."""
    def _op() -> Product:
        p = get_product(product_id, tenant_id)
        p.is_active = False
        p.deleted_at = utcnow()
        return p

    return run_in_transaction(_op)
