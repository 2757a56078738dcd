# Overview: Best-effort low-stock hand-off to the external notification service.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Product


def notify_low_stock(tenant_id: int, product_ids) -> list[dict]:
    """
    Hand products of `product_ids` that sit at or below their minimum to the
    configured LOW_STOCK_NOTIFIER.

    Called after a ledger operation has committed. Failures are logged and
    never raised: the committed operation stands regardless.
    """
    notifier = current_app.config.get("LOW_STOCK_NOTIFIER")
    if notifier is None or not product_ids:
        return []

    try:
        products = (
            db.session.query(Product)
            .filter(
                Product.tenant_id == tenant_id,
                Product.id.in_(list(product_ids)),
                Product.is_active.is_(True),
                Product.deleted_at.is_(None),
                Product.is_track_stock.is_(True),
                Product.quantity <= Product.min_stock,
            )
            .order_by(Product.id.asc())
            .all()
        )
        payload = [
            {
                "product_id": p.id,
                "product_name": p.name,
                "sku": p.sku,
                "quantity": p.quantity,
                "min_stock": p.min_stock,
            }
            for p in products
        ]
        if payload:
            notifier(tenant_id, payload)
        return payload
    except Exception:
        current_app.logger.exception("Low-stock notification failed for tenant_id=%s", tenant_id)
        return []
