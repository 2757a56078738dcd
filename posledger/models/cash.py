from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from posledger.money import money_str
from posledger.time_utils import utcnow, to_utc_z


class ExpenseCategory(db.Model):
    """
    Cash ledger category.

    tenant_id NULL marks a global system category. System categories created
    on demand for a tenant (RETURN_REFUND, PURCHASE_INVENTORY) carry the
    tenant_id and is_system=True; the (tenant_id, code) constraint makes
    "ensure exists" race-free.
    """
    __tablename__ = "expense_categories"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "code", name="uq_expense_categories_tenant_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=True, index=True)

    code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    is_system = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<ExpenseCategory id={self.id} code={self.code!r} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "is_system": self.is_system,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CashTransaction(db.Model):
    """
    Cash ledger entry (INCOME or EXPENSE).

    Sales proceeds, refunds, manual purchases and operational expenses all land
    here. An entry may reference the sale it mirrors (at most one INCOME per
    sale). Once is_verified is set the entry is immutable.

    Transaction number format: CSH-YYYYMMDD-NNNN, sequential per tenant per day.
    """
    __tablename__ = "cash_transactions"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "transaction_number", name="uq_cash_transactions_tenant_number"),
        db.Index("ix_cash_transactions_tenant_date", "tenant_id", "transaction_date"),
        db.Index("ix_cash_transactions_tenant_type", "tenant_id", "transaction_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    transaction_number = db.Column(db.String(32), nullable=False)
    transaction_type = db.Column(db.String(16), nullable=False)
    amount = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0"))
    payment_method = db.Column(db.String(16), nullable=False, default="CASH")

    category_id = db.Column(db.Integer, db.ForeignKey("expense_categories.id"), nullable=True, index=True)
    category_type = db.Column(db.String(16), nullable=True)
    sale_transaction_id = db.Column(
        db.Integer, db.ForeignKey("sale_transactions.id"), nullable=True, index=True
    )

    description = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    receipt_image_url = db.Column(db.String(512), nullable=True)
    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    verified_by = db.Column(db.Integer, nullable=True)
    verified_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    updated_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    category = db.relationship("ExpenseCategory")
    sale_transaction = db.relationship("SaleTransaction")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<CashTransaction id={self.id} number={self.transaction_number!r} "
            f"type={self.transaction_type} amount={self.amount}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "transaction_number": self.transaction_number,
            "transaction_type": self.transaction_type,
            "amount": money_str(self.amount),
            "payment_method": self.payment_method,
            "category_id": self.category_id,
            "category_code": self.category.code if self.category else None,
            "category_name": self.category.name if self.category else None,
            "category_type": self.category_type,
            "sale_transaction_id": self.sale_transaction_id,
            "description": self.description,
            "notes": self.notes,
            "receipt_image_url": self.receipt_image_url,
            "transaction_date": to_utc_z(self.transaction_date),
            "is_verified": self.is_verified,
            "verified_by": self.verified_by,
            "verified_at": to_utc_z(self.verified_at),
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }
