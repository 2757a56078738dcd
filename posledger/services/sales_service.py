# Overview: Sale transaction lifecycle; draft, completion against the stock ledger, deletion.

from __future__ import annotations

from collections import OrderedDict
from datetime import date, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import func, update

from ..extensions import db
from ..models import (
    MovementType,
    PaymentMethod,
    Product,
    ReferenceType,
    SaleStatus,
    SaleTransaction,
    SaleTransactionItem,
)
from ..money import ZERO, quantize_money, to_decimal
from posledger.time_utils import business_date, start_of_day, utcnow
from .cash_service import coerce_payment_method, sync_from_sale, void_sale_income
from .concurrency import lock_for_update, run_in_transaction
from .document_service import next_sale_number
from .errors import (
    InsufficientPaymentError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from .notification_service import notify_low_stock
from .pagination import paginate
from .return_service import returned_quantities
from .stock_service import get_product_for_update, record_movement
"""
Sale Lifecycle (authoritative)

    DRAFT --complete--> COMPLETED --sweep--> LOCKED
    DRAFT --delete--> DELETED
    COMPLETED --delete--> DELETED   (compensating RETURN movements, same unit of work)

- A draft prices its lines from the live product price; completion never
  re-reads prices.
- Completion is all-or-nothing: one OUT movement per line, payment fields,
  status and the mirroring INCOME cash entry commit together.
- Stock is checked (aggregated per product) at creation and again at
  completion. The ledger's OUT clamp is never relied upon here.
- LOCKED and DELETED sales are immutable to this module.
"""


def _normalize_items(items) -> list[dict]:
    if not items or not isinstance(items, (list, tuple)):
        raise ValidationError("items are required")

    normalized = []
    for idx, item in enumerate(items, start=1):
        product_id = item.get("product_id") if isinstance(item, dict) else None
        quantity = item.get("quantity") if isinstance(item, dict) else None
        if isinstance(product_id, bool) or not isinstance(product_id, int):
            raise ValidationError("product_id is required", details={"line": idx})
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(
                "quantity must be a positive integer",
                details={"line": idx, "product_id": product_id, "quantity": quantity},
            )
        normalized.append({"product_id": product_id, "quantity": quantity})
    return normalized


def _requested_by_product(lines) -> "OrderedDict[int, int]":
    requested: OrderedDict[int, int] = OrderedDict()
    for line in sorted(lines, key=lambda l: l["product_id"]):
        requested[line["product_id"]] = requested.get(line["product_id"], 0) + line["quantity"]
    return requested


def _validate_on_hand(tenant_id: int, requested) -> dict[int, Product]:
    """
    Lock every product of the sale (ascending id) and check stock covers the
    aggregated request. Returns the locked products by id.
    """
    products = {}
    for product_id, qty in requested.items():
        product = get_product_for_update(product_id, tenant_id)
        if product.deleted_at is not None or not product.is_active:
            raise ValidationError(
                f"Product {product.name} is not active",
                details={"product_id": product.id, "product_name": product.name},
            )
        available = int(product.quantity or 0)
        if available < qty:
            raise InsufficientStockError(
                f"Insufficient stock for {product.name}",
                details={
                    "product_id": product.id,
                    "product_name": product.name,
                    "requested": qty,
                    "available": available,
                },
            )
        products[product_id] = product
    return products


def _get_sale_for_update(transaction_id: int, tenant_id: int | None) -> SaleTransaction:
    q = db.session.query(SaleTransaction).filter(SaleTransaction.id == transaction_id)
    if tenant_id is not None:
        q = q.filter(SaleTransaction.tenant_id == tenant_id)
    sale = lock_for_update(q).first()
    if sale is None:
        raise NotFoundError("Sale transaction not found", details={"transaction_id": transaction_id})
    return sale


def create_sale(tenant_id: int, cashier_id: int | None, items) -> SaleTransaction:
    """
    Create a DRAFT sale.

    Args:
        items: [{"product_id": int, "quantity": int}, ...] in line order

    Raises:
        InsufficientStockError: a product's on-hand quantity is below the
            total requested for it (details name the product)
        NotFoundError / ValidationError: unknown, inactive or bad lines
    """
    lines = _normalize_items(items)

    def _op() -> SaleTransaction:
        products = _validate_on_hand(tenant_id, _requested_by_product(lines))

        now = utcnow()
        sale = SaleTransaction(
            tenant_id=tenant_id,
            transaction_number=next_sale_number(tenant_id, business_date(now)),
            cashier_id=cashier_id,
            status=SaleStatus.DRAFT.value,
            created_at=now,
        )
        db.session.add(sale)
        db.session.flush()

        total = ZERO
        for line_number, line in enumerate(lines, start=1):
            product = products[line["product_id"]]
            unit_price = quantize_money(product.price or 0)
            subtotal = quantize_money(unit_price * line["quantity"])
            total += subtotal
            db.session.add(SaleTransactionItem(
                sale_transaction_id=sale.id,
                line_number=line_number,
                product_id=product.id,
                quantity=line["quantity"],
                unit_price=unit_price,
                subtotal=subtotal,
            ))

        sale.total = quantize_money(total)
        return sale

    sale = run_in_transaction(_op)
    current_app.logger.info(
        "Sale drafted: id=%s number=%s tenant_id=%s total=%s",
        sale.id, sale.transaction_number, tenant_id, sale.total,
    )
    return sale


def complete_sale(
    transaction_id: int,
    payment_amount,
    payment_method: PaymentMethod | str = PaymentMethod.CASH,
    *,
    actor_id: int | None = None,
    tenant_id: int | None = None,
) -> SaleTransaction:
    """
    DRAFT -> COMPLETED.

    Raises:
        InvalidStateError: sale is not DRAFT
        InsufficientPaymentError: payment below total
        InsufficientStockError: stock consumed since the draft was created
    """
    payment = quantize_money(to_decimal(payment_amount, field="payment_amount"))
    method = coerce_payment_method(payment_method)

    def _op() -> SaleTransaction:
        sale = _get_sale_for_update(transaction_id, tenant_id)
        if sale.status != SaleStatus.DRAFT.value:
            raise InvalidStateError(
                f"Cannot complete sale in status {sale.status}",
                details={"transaction_id": sale.id, "status": sale.status},
            )

        total = Decimal(sale.total or 0)
        if payment < total:
            raise InsufficientPaymentError(
                "Payment amount is less than the total",
                details={"total": str(total), "payment_amount": str(payment)},
            )

        requested = _requested_by_product(
            [{"product_id": i.product_id, "quantity": i.quantity} for i in sale.items]
        )
        products = _validate_on_hand(sale.tenant_id, requested)

        for item in sale.items:
            record_movement(
                product_id=item.product_id,
                movement_type=MovementType.OUT,
                quantity=item.quantity,
                cost_per_unit=products[item.product_id].cost,
                reference_type=ReferenceType.SALE,
                reference_id=sale.id,
                notes=f"Sale {sale.transaction_number}",
                tenant_id=sale.tenant_id,
                actor_id=actor_id,
                commit=False,
            )

        sale.payment_amount = payment
        sale.payment_method = method.value
        sale.change_amount = quantize_money(payment - total)
        sale.status = SaleStatus.COMPLETED.value
        sale.completed_at = utcnow()

        if total > 0:
            sync_from_sale(sale.id, sale.tenant_id, created_by=actor_id, commit=False)
        return sale

    sale = run_in_transaction(_op)
    current_app.logger.info(
        "Sale completed: id=%s number=%s tenant_id=%s total=%s method=%s",
        sale.id, sale.transaction_number, sale.tenant_id, sale.total, sale.payment_method,
    )

    notify_low_stock(sale.tenant_id, {item.product_id for item in sale.items})
    return sale


def delete_sale(transaction_id: int, actor_id: int | None = None, *, tenant_id: int | None = None) -> SaleTransaction:
    """
    Soft-delete a DRAFT or COMPLETED sale.

    For a COMPLETED sale, in the same unit of work: one compensating RETURN
    movement (reference SALE_DELETE) per line for the quantity not already
    returned, and the mirroring INCOME entry is soft-deleted. A verified
    INCOME entry blocks the delete (AlreadyVerifiedError).
    """
    def _op() -> tuple[SaleTransaction, str]:
        sale = _get_sale_for_update(transaction_id, tenant_id)
        previous = sale.status
        if previous not in (SaleStatus.DRAFT.value, SaleStatus.COMPLETED.value):
            raise InvalidStateError(
                f"Cannot delete sale in status {previous}",
                details={"transaction_id": sale.id, "status": previous},
            )

        if previous == SaleStatus.COMPLETED.value:
            void_sale_income(sale.id, sale.tenant_id, deleted_by=actor_id)

            returned = returned_quantities(sale.id)
            for item in sale.items:
                outstanding = item.quantity - returned.get(item.id, 0)
                if outstanding <= 0:
                    continue
                product = get_product_for_update(item.product_id, sale.tenant_id)
                record_movement(
                    product_id=item.product_id,
                    movement_type=MovementType.RETURN,
                    quantity=outstanding,
                    cost_per_unit=product.cost,
                    reference_type=ReferenceType.SALE_DELETE,
                    reference_id=sale.id,
                    notes=f"Deleted sale {sale.transaction_number}",
                    tenant_id=sale.tenant_id,
                    actor_id=actor_id,
                    commit=False,
                )

        sale.status = SaleStatus.DELETED.value
        sale.deleted_at = utcnow()
        sale.deleted_by = actor_id
        return sale, previous

    sale, previous = run_in_transaction(_op)
    current_app.logger.info(
        "Sale deleted: id=%s number=%s tenant_id=%s previous_status=%s",
        sale.id, sale.transaction_number, sale.tenant_id, previous,
    )
    return sale


def get_sale(transaction_id: int, tenant_id: int) -> SaleTransaction:
    sale = (
        db.session.query(SaleTransaction)
        .filter(SaleTransaction.id == transaction_id, SaleTransaction.tenant_id == tenant_id)
        .first()
    )
    if sale is None:
        raise NotFoundError("Sale transaction not found", details={"transaction_id": transaction_id})
    return sale


def list_sales(
    tenant_id: int,
    *,
    status: str | None = None,
    cashier_id: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    page: int | None = 1,
    per_page: int | None = 20,
) -> dict:
    """Deleted sales are listed only when asked for by status."""
    q = db.session.query(SaleTransaction).filter(SaleTransaction.tenant_id == tenant_id)
    if status:
        try:
            q = q.filter(SaleTransaction.status == SaleStatus(status).value)
        except ValueError:
            raise ValidationError(f"invalid status {status!r}", details={"status": status})
    else:
        q = q.filter(SaleTransaction.status != SaleStatus.DELETED.value)
    if cashier_id is not None:
        q = q.filter(SaleTransaction.cashier_id == cashier_id)
    if start_date is not None:
        q = q.filter(SaleTransaction.created_at >= start_of_day(start_date))
    if end_date is not None:
        q = q.filter(SaleTransaction.created_at < start_of_day(end_date + timedelta(days=1)))

    q = q.order_by(SaleTransaction.created_at.desc(), SaleTransaction.id.desc())
    return paginate(q, page, per_page, serialize=lambda s: s.to_dict(include_items=False))


def get_dashboard_stats(tenant_id: int, cashier_id: int | None = None, day: date | None = None) -> dict:
    """Same-day completed (and already locked) sales: totals, average, per-method breakdown."""
    day = day or business_date()
    start = start_of_day(day)
    end = start_of_day(day + timedelta(days=1))

    q = db.session.query(SaleTransaction).filter(
        SaleTransaction.tenant_id == tenant_id,
        SaleTransaction.status.in_([SaleStatus.COMPLETED.value, SaleStatus.LOCKED.value]),
        SaleTransaction.completed_at >= start,
        SaleTransaction.completed_at < end,
    )
    if cashier_id is not None:
        q = q.filter(SaleTransaction.cashier_id == cashier_id)
    sales = q.all()

    sale_ids = [s.id for s in sales]
    items_sold = 0
    if sale_ids:
        items_sold = int(
            db.session.query(func.coalesce(func.sum(SaleTransactionItem.quantity), 0))
            .filter(SaleTransactionItem.sale_transaction_id.in_(sale_ids))
            .scalar()
            or 0
        )

    by_method = {m.value: {"count": 0, "total": ZERO} for m in PaymentMethod}
    revenue = ZERO
    for s in sales:
        total = Decimal(s.total or 0)
        revenue += total
        bucket = by_method.setdefault(s.payment_method or PaymentMethod.CASH.value, {"count": 0, "total": ZERO})
        bucket["count"] += 1
        bucket["total"] += total

    count = len(sales)
    return {
        "date": day.isoformat(),
        "total_transactions": count,
        "total_revenue": quantize_money(revenue),
        "average_transaction": quantize_money(revenue / count) if count else ZERO,
        "total_items_sold": items_sold,
        "by_payment_method": {
            k: {"count": v["count"], "total": quantize_money(v["total"])} for k, v in by_method.items()
        },
    }


def lock_completed_sales(before: date | None = None) -> int:
    """
    Scheduler sweep: COMPLETED -> LOCKED for every sale completed before
    midnight of `before` (default today), across tenants.
    """
    cutoff = start_of_day(before or business_date())

    def _op() -> int:
        result = db.session.execute(
            update(SaleTransaction)
            .where(
                SaleTransaction.status == SaleStatus.COMPLETED.value,
                SaleTransaction.completed_at < cutoff,
            )
            .values(
                status=SaleStatus.LOCKED.value,
                locked_at=utcnow(),
                version_id=SaleTransaction.version_id + 1,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    locked = run_in_transaction(_op)
    current_app.logger.info("Locked %s completed sales before %s", locked, cutoff.date().isoformat())
    return locked
