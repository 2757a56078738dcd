# Overview: Customer returns against completed sales; stock restoration and refund booking.

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import (
    CashCategoryType,
    CashTransactionType,
    MovementType,
    PaymentMethod,
    ReferenceType,
    Return,
    ReturnItem,
    SaleStatus,
    SaleTransaction,
)
from ..money import ZERO, quantize_money
from posledger.time_utils import business_date, days_ago_midnight, utcnow
from .cash_service import coerce_payment_method, create_cash_transaction
from .category_service import RETURN_REFUND, ensure_system_category
from .concurrency import lock_for_update, run_in_transaction
from .document_service import next_return_number
from .errors import IneligibleError, NotFoundError, OverReturnError, ValidationError
from .pagination import paginate
from .stock_service import get_product_for_update, record_movement
"""
Return Invariants (authoritative)

- Only COMPLETED or LOCKED sales are returnable, and only while
  completed_at >= midnight of (today - RETURN_WINDOW_DAYS). The nightly lock
  does not shorten the window.
- For every sale line: sum of quantities over all returns <= line quantity.
  Checked under the sale's row lock, so concurrent returns of one sale
  serialize on it.
- A return is atomic: RETURN movements, the return record, its lines and the
  EXPENSE refund entry (system category RETURN_REFUND) commit together.
- Refund lines are priced at the original sale line's unit price.
"""

ELIGIBLE_STATUSES = (SaleStatus.COMPLETED.value, SaleStatus.LOCKED.value)


def return_window_start(now: datetime | None = None) -> datetime:
    return days_ago_midnight(current_app.config.get("RETURN_WINDOW_DAYS", 3), now)


def returned_quantities(sale_id: int) -> dict[int, int]:
    """Quantity already returned per sale line id, across all returns of the sale."""
    rows = (
        db.session.query(ReturnItem.sale_item_id, func.coalesce(func.sum(ReturnItem.quantity), 0))
        .join(Return, Return.id == ReturnItem.return_id)
        .filter(Return.sale_transaction_id == sale_id)
        .group_by(ReturnItem.sale_item_id)
        .all()
    )
    return {sale_item_id: int(qty) for sale_item_id, qty in rows}


def _resolve_lines(sale: SaleTransaction, items) -> "OrderedDict[int, int]":
    """
    Map requested items to sale lines. Items name a `sale_item_id`, or a
    `product_id` that appears on exactly one line. Repeated lines add up.
    """
    if not items or not isinstance(items, (list, tuple)):
        raise ValidationError("items are required")

    lines_by_id = {i.id: i for i in sale.items}
    requested: OrderedDict[int, int] = OrderedDict()

    for idx, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise ValidationError("invalid return item", details={"line": idx})
        quantity = item.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(
                "quantity must be a positive integer",
                details={"line": idx, "quantity": quantity},
            )

        sale_item_id = item.get("sale_item_id")
        if sale_item_id is None:
            product_id = item.get("product_id")
            matches = [i for i in sale.items if i.product_id == product_id]
            if not matches:
                raise ValidationError(
                    f"Product {product_id} not found in transaction",
                    details={"line": idx, "product_id": product_id},
                )
            if len(matches) > 1:
                raise ValidationError(
                    "Product appears on several sale lines; give sale_item_id",
                    details={"line": idx, "product_id": product_id, "sale_item_ids": [m.id for m in matches]},
                )
            sale_item_id = matches[0].id
        elif sale_item_id not in lines_by_id:
            raise ValidationError(
                "Sale line not found in transaction",
                details={"line": idx, "sale_item_id": sale_item_id},
            )

        requested[sale_item_id] = requested.get(sale_item_id, 0) + quantity

    return requested


def create_return(
    tenant_id: int,
    cashier_id: int | None,
    transaction_id: int,
    items,
    notes: str | None = None,
    refund_method: PaymentMethod | str = PaymentMethod.CASH,
) -> Return:
    """
    Return items of a completed sale.

    Raises:
        NotFoundError: sale missing or in another tenant
        IneligibleError: sale not completed/locked, or outside the return window
        OverReturnError: a line would exceed its sold quantity (details carry
            product, requested, already_returned and max_returnable)
    """
    method = coerce_payment_method(refund_method)

    def _op() -> Return:
        sale = lock_for_update(
            db.session.query(SaleTransaction).filter(
                SaleTransaction.id == transaction_id,
                SaleTransaction.tenant_id == tenant_id,
            )
        ).first()
        if sale is None:
            raise NotFoundError("Transaction not found", details={"transaction_id": transaction_id})
        if sale.status not in ELIGIBLE_STATUSES or sale.completed_at is None:
            raise IneligibleError(
                "Transaction is not eligible for return",
                details={"transaction_id": sale.id, "status": sale.status},
            )

        now = utcnow()
        window_start = return_window_start(now)
        if sale.completed_at < window_start:
            raise IneligibleError(
                "Transaction is outside the return window",
                details={
                    "transaction_id": sale.id,
                    "completed_at": sale.completed_at.isoformat(),
                    "window_start": window_start.isoformat(),
                },
            )

        requested = _resolve_lines(sale, items)
        already = returned_quantities(sale.id)
        lines_by_id = {i.id: i for i in sale.items}

        for sale_item_id, qty in requested.items():
            line = lines_by_id[sale_item_id]
            returned = already.get(sale_item_id, 0)
            max_returnable = line.quantity - returned
            if qty > max_returnable:
                product_name = line.product.name if line.product else None
                raise OverReturnError(
                    f"Cannot return {qty} of {product_name}. Maximum returnable: {max_returnable}",
                    details={
                        "sale_item_id": sale_item_id,
                        "product_id": line.product_id,
                        "product_name": product_name,
                        "requested": qty,
                        "sold": line.quantity,
                        "already_returned": returned,
                        "max_returnable": max_returnable,
                    },
                )

        day = business_date(now)
        ret = Return(
            tenant_id=tenant_id,
            return_number=next_return_number(tenant_id, day),
            sequence_date=day,
            sale_transaction_id=sale.id,
            cashier_id=cashier_id,
            refund_method=method.value,
            notes=notes,
            created_at=now,
        )
        db.session.add(ret)
        db.session.flush()

        total = ZERO
        for sale_item_id, qty in requested.items():
            line = lines_by_id[sale_item_id]
            unit_price = quantize_money(line.unit_price)
            subtotal = quantize_money(unit_price * qty)
            total += subtotal
            db.session.add(ReturnItem(
                return_id=ret.id,
                sale_item_id=sale_item_id,
                product_id=line.product_id,
                quantity=qty,
                unit_price=unit_price,
                subtotal=subtotal,
            ))

            product = get_product_for_update(line.product_id, tenant_id)
            record_movement(
                product_id=line.product_id,
                movement_type=MovementType.RETURN,
                quantity=qty,
                cost_per_unit=product.cost,
                reference_type=ReferenceType.RETURN,
                reference_id=ret.id,
                notes=f"Return - transaction {sale.transaction_number}",
                tenant_id=tenant_id,
                actor_id=cashier_id,
                commit=False,
            )

        ret.return_total = quantize_money(total)
        ret.refund_amount = quantize_money(total)

        if total > 0:
            category = ensure_system_category(tenant_id, RETURN_REFUND, created_by=cashier_id)
            entry = create_cash_transaction(
                tenant_id=tenant_id,
                transaction_type=CashTransactionType.EXPENSE,
                amount=total,
                payment_method=method,
                category_id=category.id,
                category_type=CashCategoryType.RETURN,
                description=f"Refund for transaction {sale.transaction_number}",
                notes=notes,
                transaction_date=now,
                created_by=cashier_id,
                commit=False,
            )
            ret.cash_transaction_id = entry.id
        return ret

    ret = run_in_transaction(_op)
    current_app.logger.info(
        "Return created: id=%s number=%s tenant_id=%s sale_id=%s refund=%s",
        ret.id, ret.return_number, tenant_id, ret.sale_transaction_id, ret.refund_amount,
    )
    return ret


def get_returnable_transactions(tenant_id: int, cashier_id: int | None = None) -> list[dict]:
    """
    Sales still inside the return window, newest first, each line annotated
    with returned_quantity and returnable_quantity.
    """
    q = db.session.query(SaleTransaction).filter(
        SaleTransaction.tenant_id == tenant_id,
        SaleTransaction.status.in_(ELIGIBLE_STATUSES),
        SaleTransaction.completed_at >= return_window_start(),
    )
    if cashier_id is not None:
        q = q.filter(SaleTransaction.cashier_id == cashier_id)
    sales = q.order_by(SaleTransaction.completed_at.desc(), SaleTransaction.id.desc()).all()

    result = []
    for sale in sales:
        already = returned_quantities(sale.id)
        data = sale.to_dict()
        for line in data["items"]:
            returned = already.get(line["id"], 0)
            line["returned_quantity"] = returned
            line["returnable_quantity"] = line["quantity"] - returned
        data["fully_returned"] = all(l["returnable_quantity"] <= 0 for l in data["items"])
        result.append(data)
    return result


def list_returns(
    tenant_id: int,
    *,
    transaction_id: int | None = None,
    cashier_id: int | None = None,
    page: int | None = 1,
    per_page: int | None = 20,
) -> dict:
    q = db.session.query(Return).filter(Return.tenant_id == tenant_id)
    if transaction_id is not None:
        q = q.filter(Return.sale_transaction_id == transaction_id)
    if cashier_id is not None:
        q = q.filter(Return.cashier_id == cashier_id)
    q = q.order_by(Return.created_at.desc(), Return.id.desc())
    return paginate(q, page, per_page)


def get_return(return_id: int, tenant_id: int) -> Return:
    ret = (
        db.session.query(Return)
        .filter(Return.id == return_id, Return.tenant_id == tenant_id)
        .first()
    )
    if ret is None:
        raise NotFoundError("Return not found", details={"return_id": return_id})
    return ret
