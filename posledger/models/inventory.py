from __future__ import annotations

from decimal import Decimal

from sqlalchemy import event

from ..extensions import db
from posledger.money import money_str
from posledger.time_utils import utcnow, to_utc_z


class Product(db.Model):
    """
    Product master data with its running stock state.

    quantity and cost are owned by the stock ledger: they change only through
    stock_service (record_movement / update_cost_wac) so that, at any time,
    quantity equals the replay of every StockMovement for the product.

    cost is the weighted average cost (WAC) of the units on hand.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),
        db.Index("ix_products_tenant_name", "tenant_id", "name"),
        db.Index("ix_products_tenant_active", "tenant_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)

    price = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0"))
    cost = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0"))

    quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_track_stock = db.Column(db.Boolean, nullable=False, default=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    tenant = db.relationship("Tenant", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "sku": self.sku,
            "name": self.name,
            "price": money_str(self.price),
            "cost": money_str(self.cost),
            "quantity": self.quantity,
            "min_stock": self.min_stock,
            "is_active": self.is_active,
            "is_track_stock": self.is_track_stock,
            "deleted_at": to_utc_z(self.deleted_at),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only record of one quantity-affecting event.

    before_qty/after_qty snapshot the product quantity around the event, so the
    signed delta of a movement is after_qty - before_qty regardless of its type
    (ADJUSTMENT stores the new absolute quantity in `quantity`).

    IMMUTABLE: rows are never updated or deleted (enforced by mapper events).
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_tenant_created", "tenant_id", "created_at"),
        db.Index("ix_stock_movements_product_type_created", "product_id", "movement_type", "created_at"),
        db.Index("ix_stock_movements_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    cost_per_unit = db.Column(db.Numeric(15, 2), nullable=True)

    reference_type = db.Column(db.String(32), nullable=False)
    reference_id = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    before_qty = db.Column(db.Integer, nullable=False)
    after_qty = db.Column(db.Integer, nullable=False)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product")

    @property
    def delta(self) -> int:
        return self.after_qty - self.before_qty

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "cost_per_unit": money_str(self.cost_per_unit),
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "before_qty": self.before_qty,
            "after_qty": self.after_qty,
            "delta": self.delta,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(StockMovement, "before_update")
def _reject_movement_update(mapper, connection, target):
    raise ValueError("stock movements are append-only")


@event.listens_for(StockMovement, "before_delete")
def _reject_movement_delete(mapper, connection, target):
    raise ValueError("stock movements are append-only")


class StockOpname(db.Model):
    """
    Physical stock count for one product.

    LIFECYCLE: created with processed=False; processing is one-shot and writes
    at most one ADJUSTMENT movement. Processed opnames are immutable.
    """
    __tablename__ = "stock_opnames"
    __table_args__ = (
        db.Index("ix_stock_opnames_tenant_processed", "tenant_id", "processed"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    system_qty = db.Column(db.Integer, nullable=False)
    actual_qty = db.Column(db.Integer, nullable=False)
    difference = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.String(255), nullable=True)

    processed = db.Column(db.Boolean, nullable=False, default=False)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    processed_by = db.Column(db.Integer, nullable=True)
    stock_movement_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product")
    stock_movement = db.relationship("StockMovement")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "system_qty": self.system_qty,
            "actual_qty": self.actual_qty,
            "difference": self.difference,
            "notes": self.notes,
            "processed": self.processed,
            "processed_at": to_utc_z(self.processed_at),
            "processed_by": self.processed_by,
            "stock_movement_id": self.stock_movement_id,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


# =============================================================================
# PURCHASE ORDERS
# =============================================================================

class PurchaseOrder(db.Model):
    """
    Purchase order from a supplier.

    LIFECYCLE:
    1. PENDING: created, header editable
    2. RECEIVED: stock received (WAC update + IN movement per line). Terminal.
    3. CANCELLED: cancelled before receipt. Terminal.

    Document number format: PO-YYYYMM-NNNN, sequential per tenant per month.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "po_number", name="uq_purchase_orders_tenant_number"),
        db.Index("ix_purchase_orders_tenant_status", "tenant_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    po_number = db.Column(db.String(32), nullable=False)
    supplier_name = db.Column(db.String(255), nullable=False)
    po_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    total_amount = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0"))
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    updated_by = db.Column(db.Integer, nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "PurchaseOrderItem",
        backref="purchase_order",
        lazy=True,
        order_by="PurchaseOrderItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} po_number={self.po_number!r} status={self.status}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "po_number": self.po_number,
            "supplier_name": self.supplier_name,
            "po_date": self.po_date.isoformat() if self.po_date else None,
            "status": self.status,
            "total_amount": money_str(self.total_amount),
            "notes": self.notes,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "received_at": to_utc_z(self.received_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PurchaseOrderItem(db.Model):
    __tablename__ = "purchase_order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    cost_per_unit = db.Column(db.Numeric(15, 2), nullable=False)
    subtotal = db.Column(db.Numeric(15, 2), nullable=False)

    stock_movement_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "cost_per_unit": money_str(self.cost_per_unit),
            "subtotal": money_str(self.subtotal),
            "stock_movement_id": self.stock_movement_id,
        }
