# Overview: Cash/expense ledger; income and expense entries, verification and aggregations.

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal

from ..extensions import db
from ..models import (
    CashTransaction,
    CashTransactionType,
    CashCategoryType,
    ExpenseCategory,
    PaymentMethod,
    SaleTransaction,
    SaleStatus,
)
from ..money import ZERO, quantize_money, to_decimal
from posledger.time_utils import business_date, start_of_day, utcnow
from .category_service import get_category
from .concurrency import lock_for_update, run_in_transaction
from .document_service import next_cash_number
from .errors import AlreadySyncedError, AlreadyVerifiedError, NotFoundError, ValidationError
from .pagination import paginate
"""
Cash Ledger Invariants (authoritative)

- Every cash-impacting engine event (sale completion, return refund, manual
  purchase) writes exactly one entry in the same unit of work as the event.
- transaction_number is CSH-YYYYMMDD-NNNN from the atomic per-tenant-day
  sequence (creation day, not transaction_date).
- Verified entries are immutable: no update, no delete, no re-verify.
- Deletes are soft (deleted_at); deleted entries drop out of every read.
- At most one live entry references a given sale.
"""

CASH_MUTABLE_FIELDS = {
    "amount",
    "payment_method",
    "category_id",
    "description",
    "notes",
    "receipt_image_url",
    "transaction_date",
}


def coerce_payment_method(value) -> PaymentMethod:
    try:
        return PaymentMethod(value)
    except ValueError:
        raise ValidationError(
            f"invalid payment method {value!r}",
            details={"payment_method": value, "allowed": [m.value for m in PaymentMethod]},
        )


def _coerce_transaction_type(value) -> CashTransactionType:
    try:
        return CashTransactionType(value)
    except ValueError:
        raise ValidationError(
            f"invalid transaction type {value!r}",
            details={"transaction_type": value, "allowed": [t.value for t in CashTransactionType]},
        )


def _coerce_category_type(value) -> CashCategoryType:
    try:
        return CashCategoryType(value)
    except ValueError:
        raise ValidationError(
            f"invalid category type {value!r}",
            details={"category_type": value, "allowed": [c.value for c in CashCategoryType]},
        )


def _positive_amount(value) -> Decimal:
    amount = quantize_money(to_decimal(value, field="amount"))
    if amount <= 0:
        raise ValidationError("amount must be greater than zero", details={"amount": str(amount)})
    return amount


def _as_datetime(value) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return start_of_day(value)
    raise ValidationError("invalid transaction_date", details={"transaction_date": str(value)})


def _live_query(tenant_id: int):
    return db.session.query(CashTransaction).filter(
        CashTransaction.tenant_id == tenant_id,
        CashTransaction.deleted_at.is_(None),
    )


def create_cash_transaction(
    *,
    tenant_id: int,
    transaction_type: CashTransactionType | str,
    amount,
    payment_method: PaymentMethod | str = PaymentMethod.CASH,
    category_id: int | None = None,
    category_type: CashCategoryType | str | None = None,
    sale_transaction_id: int | None = None,
    description: str | None = None,
    notes: str | None = None,
    receipt_image_url: str | None = None,
    transaction_date: datetime | date | None = None,
    created_by: int | None = None,
    commit: bool = True,
) -> CashTransaction:
    """
    Book one income or expense entry.

    commit=False joins the caller's unit of work (sale completion, returns,
    manual purchases); the entry then commits or rolls back with the event.
    """
    ttype = _coerce_transaction_type(transaction_type)
    method = coerce_payment_method(payment_method)
    value = _positive_amount(amount)
    ctype = _coerce_category_type(category_type).value if category_type else None
    occurred = _as_datetime(transaction_date)

    def _op() -> CashTransaction:
        if category_id is not None:
            get_category(category_id, tenant_id)

        now = utcnow()
        entry = CashTransaction(
            tenant_id=tenant_id,
            transaction_number=next_cash_number(tenant_id, business_date(now)),
            transaction_type=ttype.value,
            amount=value,
            payment_method=method.value,
            category_id=category_id,
            category_type=ctype,
            sale_transaction_id=sale_transaction_id,
            description=description,
            notes=notes,
            receipt_image_url=receipt_image_url,
            transaction_date=occurred or now,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        db.session.add(entry)
        return entry

    return run_in_transaction(_op, commit=commit)


def list_cash_transactions(
    tenant_id: int,
    *,
    transaction_type: str | None = None,
    payment_method: str | None = None,
    category_id: int | None = None,
    is_verified: bool | None = None,
    start_date: date | datetime | None = None,
    end_date: date | datetime | None = None,
    page: int | None = 1,
    per_page: int | None = 20,
) -> dict:
    q = _live_query(tenant_id)
    if transaction_type:
        q = q.filter(CashTransaction.transaction_type == _coerce_transaction_type(transaction_type).value)
    if payment_method:
        q = q.filter(CashTransaction.payment_method == coerce_payment_method(payment_method).value)
    if category_id is not None:
        q = q.filter(CashTransaction.category_id == category_id)
    if is_verified is not None:
        q = q.filter(CashTransaction.is_verified.is_(is_verified))
    q = _filter_period(q, start_date, end_date)
    q = q.order_by(CashTransaction.transaction_date.desc(), CashTransaction.id.desc())
    return paginate(q, page, per_page)


def _filter_period(q, start_date, end_date):
    if start_date is not None:
        start = start_date if isinstance(start_date, datetime) else start_of_day(start_date)
        q = q.filter(CashTransaction.transaction_date >= start)
    if end_date is not None:
        if isinstance(end_date, datetime):
            q = q.filter(CashTransaction.transaction_date <= end_date)
        else:
            q = q.filter(CashTransaction.transaction_date < start_of_day(end_date + timedelta(days=1)))
    return q


def get_cash_transaction(cash_transaction_id: int, tenant_id: int, *, lock: bool = False) -> CashTransaction:
    q = _live_query(tenant_id).filter(CashTransaction.id == cash_transaction_id)
    if lock:
        q = lock_for_update(q)
    entry = q.first()
    if entry is None:
        raise NotFoundError("Cash transaction not found", details={"cash_transaction_id": cash_transaction_id})
    return entry


def update_cash_transaction(cash_transaction_id: int, tenant_id: int, patch: dict, updated_by: int | None = None) -> CashTransaction:
    """Apply a patch of CASH_MUTABLE_FIELDS; verified entries are rejected."""
    def _op() -> CashTransaction:
        entry = get_cash_transaction(cash_transaction_id, tenant_id, lock=True)
        if entry.is_verified:
            raise AlreadyVerifiedError(
                "Cannot update verified transaction",
                details={"cash_transaction_id": entry.id, "transaction_number": entry.transaction_number},
            )

        for key, value in patch.items():
            if key not in CASH_MUTABLE_FIELDS:
                continue
            if key == "amount":
                value = _positive_amount(value)
            elif key == "payment_method":
                value = coerce_payment_method(value).value
            elif key == "category_id" and value is not None:
                get_category(value, tenant_id)
            elif key == "transaction_date":
                value = _as_datetime(value)
                if value is None:
                    continue
            setattr(entry, key, value)

        entry.updated_by = updated_by
        return entry

    return run_in_transaction(_op)


def _soft_delete_inner(entry: CashTransaction, deleted_by: int | None) -> CashTransaction:
    if entry.is_verified:
        raise AlreadyVerifiedError(
            "Cannot delete verified transaction",
            details={"cash_transaction_id": entry.id, "transaction_number": entry.transaction_number},
        )
    entry.deleted_at = utcnow()
    entry.updated_by = deleted_by
    return entry


def delete_cash_transaction(cash_transaction_id: int, tenant_id: int, deleted_by: int | None = None) -> CashTransaction:
    def _op() -> CashTransaction:
        entry = get_cash_transaction(cash_transaction_id, tenant_id, lock=True)
        return _soft_delete_inner(entry, deleted_by)

    return run_in_transaction(_op)


def void_sale_income(sale_id: int, tenant_id: int, deleted_by: int | None = None) -> CashTransaction | None:
    """
    Soft-delete the live INCOME entry mirroring a sale, inside the caller's
    unit of work. AlreadyVerifiedError when that entry is verified.
    """
    entry = lock_for_update(
        _live_query(tenant_id).filter(CashTransaction.sale_transaction_id == sale_id)
    ).first()
    if entry is None:
        return None
    return _soft_delete_inner(entry, deleted_by)


def verify_cash_transaction(cash_transaction_id: int, tenant_id: int, verified_by: int | None) -> CashTransaction:
    """One-way transition to verified."""
    def _op() -> CashTransaction:
        entry = get_cash_transaction(cash_transaction_id, tenant_id, lock=True)
        if entry.is_verified:
            raise AlreadyVerifiedError(
                "Transaction already verified",
                details={"cash_transaction_id": entry.id, "verified_at": str(entry.verified_at)},
            )
        entry.is_verified = True
        entry.verified_by = verified_by
        entry.verified_at = utcnow()
        return entry

    return run_in_transaction(_op)


def _empty_by_method() -> dict:
    return {m.value: ZERO for m in PaymentMethod}


def get_balance(tenant_id: int, payment_method: str | None = None) -> dict:
    """Balance = sum(INCOME) - sum(EXPENSE), per payment method and overall."""
    q = _live_query(tenant_id)
    if payment_method:
        q = q.filter(CashTransaction.payment_method == coerce_payment_method(payment_method).value)

    by_method = _empty_by_method()
    for entry in q.all():
        amount = Decimal(entry.amount)
        if entry.transaction_type == CashTransactionType.INCOME.value:
            by_method[entry.payment_method] += amount
        else:
            by_method[entry.payment_method] -= amount

    by_method = {k: quantize_money(v) for k, v in by_method.items()}
    return {
        "balance_by_method": by_method,
        "total_balance": quantize_money(sum(by_method.values(), ZERO)),
    }


def get_cash_flow_summary(tenant_id: int, start_date=None, end_date=None) -> dict:
    entries = _filter_period(_live_query(tenant_id), start_date, end_date).all()

    income_by_method = _empty_by_method()
    expense_by_method = _empty_by_method()
    for entry in entries:
        amount = Decimal(entry.amount)
        if entry.transaction_type == CashTransactionType.INCOME.value:
            income_by_method[entry.payment_method] += amount
        else:
            expense_by_method[entry.payment_method] += amount

    total_income = quantize_money(sum(income_by_method.values(), ZERO))
    total_expense = quantize_money(sum(expense_by_method.values(), ZERO))
    return {
        "total_income": total_income,
        "total_expense": total_expense,
        "net_cash_flow": total_income - total_expense,
        "income_by_method": {k: quantize_money(v) for k, v in income_by_method.items()},
        "expense_by_method": {k: quantize_money(v) for k, v in expense_by_method.items()},
        "transaction_count": len(entries),
    }


def get_expense_by_category(tenant_id: int, start_date=None, end_date=None) -> dict:
    q = (
        _filter_period(_live_query(tenant_id), start_date, end_date)
        .filter(CashTransaction.transaction_type == CashTransactionType.EXPENSE.value)
        .outerjoin(ExpenseCategory, CashTransaction.category_id == ExpenseCategory.id)
        .add_columns(ExpenseCategory.code, ExpenseCategory.name)
    )

    buckets: dict[str, dict] = {}
    for entry, code, name in q.all():
        key = code or "UNCATEGORIZED"
        bucket = buckets.setdefault(key, {
            "category_code": key,
            "category_name": name or "Uncategorized",
            "total_amount": ZERO,
            "transaction_count": 0,
        })
        bucket["total_amount"] += Decimal(entry.amount)
        bucket["transaction_count"] += 1

    categories = sorted(buckets.values(), key=lambda b: (-b["total_amount"], b["category_code"]))
    for b in categories:
        b["total_amount"] = quantize_money(b["total_amount"])
    return {
        "total_expense": quantize_money(sum((b["total_amount"] for b in categories), ZERO)),
        "categories": categories,
    }


def sync_from_sale(sale_id: int, tenant_id: int, created_by: int | None = None, commit: bool = True) -> CashTransaction:
    """
    Mirror a completed sale as exactly one INCOME entry.

    Raises:
        AlreadySyncedError: a live entry already references the sale
        NotFoundError: sale missing, deleted or not completed
    """
    def _op() -> CashTransaction:
        already = _live_query(tenant_id).filter(CashTransaction.sale_transaction_id == sale_id).first()
        if already is not None:
            raise AlreadySyncedError(
                "Transaction already synced",
                details={"sale_transaction_id": sale_id, "cash_transaction_id": already.id},
            )

        sale = (
            db.session.query(SaleTransaction)
            .filter(
                SaleTransaction.id == sale_id,
                SaleTransaction.tenant_id == tenant_id,
                SaleTransaction.status.in_([SaleStatus.COMPLETED.value, SaleStatus.LOCKED.value]),
            )
            .first()
        )
        if sale is None:
            raise NotFoundError("Sale transaction not found or not completed", details={"sale_transaction_id": sale_id})

        return create_cash_transaction(
            tenant_id=tenant_id,
            transaction_type=CashTransactionType.INCOME,
            amount=sale.total,
            payment_method=sale.payment_method or PaymentMethod.CASH,
            category_type=CashCategoryType.SALES,
            sale_transaction_id=sale.id,
            description=f"Sale #{sale.transaction_number}",
            transaction_date=sale.completed_at,
            created_by=created_by,
            commit=False,
        )

    return run_in_transaction(_op, commit=commit)
