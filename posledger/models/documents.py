from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from posledger.money import money_str
from posledger.time_utils import utcnow, to_utc_z


class Return(db.Model):
    """
    Customer return against one original sale.

    Each ReturnItem references an original sale line; across all returns of a
    sale, the returned quantity of a line never exceeds the sold quantity.

    A return is created complete: stock restored (RETURN movements), refund
    booked as an EXPENSE cash entry under RETURN_REFUND. There is no approval
    step and no update path.

    return_number is sequential per tenant per day (sequence_date).
    """
    __tablename__ = "returns"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sequence_date", "return_number", name="uq_returns_tenant_day_number"),
        db.Index("ix_returns_tenant_created", "tenant_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    return_number = db.Column(db.Integer, nullable=False)
    sequence_date = db.Column(db.Date, nullable=False)

    sale_transaction_id = db.Column(
        db.Integer, db.ForeignKey("sale_transactions.id"), nullable=False, index=True
    )
    cashier_id = db.Column(db.Integer, nullable=True)

    return_total = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0"))
    refund_amount = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0"))
    refund_method = db.Column(db.String(16), nullable=False, default="CASH")
    notes = db.Column(db.Text, nullable=True)

    cash_transaction_id = db.Column(db.Integer, db.ForeignKey("cash_transactions.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    sale_transaction = db.relationship("SaleTransaction", backref=db.backref("returns", lazy=True))
    cash_transaction = db.relationship("CashTransaction")
    items = db.relationship("ReturnItem", backref="return_document", lazy=True, order_by="ReturnItem.id")

    def __repr__(self) -> str:
        return f"<Return id={self.id} number={self.return_number} sale_id={self.sale_transaction_id}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "return_number": self.return_number,
            "sequence_date": self.sequence_date.isoformat() if self.sequence_date else None,
            "sale_transaction_id": self.sale_transaction_id,
            "transaction_number": (
                self.sale_transaction.transaction_number if self.sale_transaction else None
            ),
            "cashier_id": self.cashier_id,
            "return_total": money_str(self.return_total),
            "refund_amount": money_str(self.refund_amount),
            "refund_method": self.refund_method,
            "notes": self.notes,
            "cash_transaction_id": self.cash_transaction_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class ReturnItem(db.Model):
    __tablename__ = "return_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=False, index=True)
    sale_item_id = db.Column(
        db.Integer, db.ForeignKey("sale_transaction_items.id"), nullable=False, index=True
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(15, 2), nullable=False)
    subtotal = db.Column(db.Numeric(15, 2), nullable=False)

    product = db.relationship("Product")
    sale_item = db.relationship("SaleTransactionItem")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "sale_item_id": self.sale_item_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "subtotal": money_str(self.subtotal),
        }


class DocumentSequence(db.Model):
    """
    Per-tenant, per-day, per-kind counter behind every human-readable number
    (TRX-, CSH-, PO- and return numbers).

    Incremented with a single-row upsert (INSERT ... ON CONFLICT DO UPDATE), so
    two concurrent writers in the same tenant-day never read the same value.
    Monthly sequences (purchase orders) are keyed on the first day of the month.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint(
            "tenant_id", "sequence_kind", "sequence_date", name="uq_document_sequences_tenant_kind_date"
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    sequence_kind = db.Column(db.String(32), nullable=False)
    sequence_date = db.Column(db.Date, nullable=False)
    current_value = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "sequence_kind": self.sequence_kind,
            "sequence_date": self.sequence_date.isoformat() if self.sequence_date else None,
            "current_value": self.current_value,
        }
