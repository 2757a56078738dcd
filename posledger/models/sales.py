from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from posledger.money import money_str
from posledger.time_utils import utcnow, to_utc_z


class SaleTransaction(db.Model):
    """
    POS sale header.

    LIFECYCLE:
    1. DRAFT: lines priced from the live product price, no stock effect yet
    2. COMPLETED: stock decremented (one OUT movement per line), payment and
       change recorded, INCOME cash entry booked
    3. LOCKED: nightly sweep of COMPLETED sales; immutable to sales operations
    4. DELETED: soft-deleted; a COMPLETED sale gets compensating RETURN movements

    Transaction number format: TRX-YYYYMMDD-NNNN, sequential per tenant per day.
    """
    __tablename__ = "sale_transactions"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "transaction_number", name="uq_sale_transactions_tenant_number"),
        db.Index("ix_sale_transactions_tenant_status_completed", "tenant_id", "status", "completed_at"),
        db.Index("ix_sale_transactions_tenant_cashier", "tenant_id", "cashier_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    transaction_number = db.Column(db.String(32), nullable=False)
    cashier_id = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)

    total = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0"))
    payment_amount = db.Column(db.Numeric(15, 2), nullable=True)
    payment_method = db.Column(db.String(16), nullable=True)
    change_amount = db.Column(db.Numeric(15, 2), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    locked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deleted_by = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "SaleTransactionItem",
        backref="sale_transaction",
        lazy=True,
        order_by="SaleTransactionItem.line_number",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<SaleTransaction id={self.id} number={self.transaction_number!r} status={self.status}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "transaction_number": self.transaction_number,
            "cashier_id": self.cashier_id,
            "status": self.status,
            "total": money_str(self.total),
            "payment_amount": money_str(self.payment_amount),
            "payment_method": self.payment_method,
            "change_amount": money_str(self.change_amount),
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
            "locked_at": to_utc_z(self.locked_at),
            "deleted_at": to_utc_z(self.deleted_at),
            "deleted_by": self.deleted_by,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleTransactionItem(db.Model):
    """
    Sale line. unit_price is captured when the draft is created and never
    re-read from the product afterwards.
    """
    __tablename__ = "sale_transaction_items"
    __table_args__ = (
        db.UniqueConstraint("sale_transaction_id", "line_number", name="uq_sale_items_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_transaction_id = db.Column(db.Integer, db.ForeignKey("sale_transactions.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(15, 2), nullable=False)
    subtotal = db.Column(db.Numeric(15, 2), nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_transaction_id": self.sale_transaction_id,
            "line_number": self.line_number,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "subtotal": money_str(self.subtotal),
        }
