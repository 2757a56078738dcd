# Overview: Purchase orders and manual purchases; stock receipt through WAC + IN movements.

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import (
    CashCategoryType,
    CashTransaction,
    CashTransactionType,
    MovementType,
    PaymentMethod,
    Product,
    PurchaseOrder,
    PurchaseOrderItem,
    PurchaseOrderStatus,
    ReferenceType,
    StockMovement,
)
from ..money import ZERO, quantize_money, to_decimal
from posledger.time_utils import business_date, start_of_day, utcnow
from .cash_service import coerce_payment_method, create_cash_transaction
from .category_service import PURCHASE_INVENTORY, ensure_system_category
from .concurrency import lock_for_update, run_in_transaction
from .document_service import next_purchase_order_number
from .errors import InvalidStateError, NotFoundError, ValidationError
from .pagination import paginate
from .stock_service import get_product_for_update, receive_stock, record_movement, update_cost_wac
"""
Purchase Invariants (authoritative)

- PENDING -> RECEIVED | CANCELLED; both targets are terminal.
- Receiving a PO: for each line, update_cost_wac then an IN movement
  (reference PURCHASE, reference_id = PO id). No cash entry is booked; the
  supplier invoice is paid outside the engine.
- Manual purchase: cost_per_unit = total_price / quantity; WAC update, IN
  movement (reference PURCHASE, no reference_id) and an EXPENSE entry under
  PURCHASE_INVENTORY in one unit of work.
"""

PO_MUTABLE_FIELDS = {"supplier_name", "po_date", "notes"}


def _normalize_po_items(items) -> list[dict]:
    if not items or not isinstance(items, (list, tuple)):
        raise ValidationError("items are required")

    normalized = []
    for idx, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise ValidationError("invalid purchase order item", details={"line": idx})
        product_id = item.get("product_id")
        quantity = item.get("quantity")
        if isinstance(product_id, bool) or not isinstance(product_id, int):
            raise ValidationError("product_id is required", details={"line": idx})
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError("quantity must be a positive integer", details={"line": idx, "quantity": quantity})
        cost = quantize_money(to_decimal(item.get("cost_per_unit"), field="cost_per_unit"))
        if cost < 0:
            raise ValidationError("cost_per_unit cannot be negative", details={"line": idx})
        normalized.append({"product_id": product_id, "quantity": quantity, "cost_per_unit": cost})
    return normalized


def _get_po(po_id: int, tenant_id: int | None, *, lock: bool = False) -> PurchaseOrder:
    q = db.session.query(PurchaseOrder).filter(PurchaseOrder.id == po_id)
    if tenant_id is not None:
        q = q.filter(PurchaseOrder.tenant_id == tenant_id)
    if lock:
        q = lock_for_update(q)
    po = q.first()
    if po is None:
        raise NotFoundError("Purchase order not found", details={"po_id": po_id})
    return po


def _require_pending(po: PurchaseOrder, action: str) -> None:
    if po.status == PurchaseOrderStatus.PENDING.value:
        return
    if po.status == PurchaseOrderStatus.RECEIVED.value:
        message = f"Cannot {action} received purchase order"
    else:
        message = f"Cannot {action} cancelled purchase order"
    raise InvalidStateError(message, details={"po_id": po.id, "status": po.status})


def create_purchase_order(
    tenant_id: int,
    *,
    supplier_name: str,
    items,
    po_date: date | None = None,
    notes: str | None = None,
    created_by: int | None = None,
) -> PurchaseOrder:
    if not (supplier_name or "").strip():
        raise ValidationError("supplier_name is required")
    lines = _normalize_po_items(items)

    def _op() -> PurchaseOrder:
        for line in lines:
            exists = (
                db.session.query(Product.id)
                .filter(Product.id == line["product_id"], Product.tenant_id == tenant_id)
                .first()
            )
            if exists is None:
                raise NotFoundError("Product not found", details={"product_id": line["product_id"]})

        today = business_date()
        po = PurchaseOrder(
            tenant_id=tenant_id,
            po_number=next_purchase_order_number(tenant_id, today),
            supplier_name=supplier_name.strip(),
            po_date=po_date or today,
            status=PurchaseOrderStatus.PENDING.value,
            notes=notes,
            created_by=created_by,
        )
        db.session.add(po)
        db.session.flush()

        total = ZERO
        for line in lines:
            subtotal = quantize_money(line["cost_per_unit"] * line["quantity"])
            total += subtotal
            db.session.add(PurchaseOrderItem(
                purchase_order_id=po.id,
                product_id=line["product_id"],
                quantity=line["quantity"],
                cost_per_unit=line["cost_per_unit"],
                subtotal=subtotal,
            ))
        po.total_amount = quantize_money(total)
        return po

    po = run_in_transaction(_op)
    current_app.logger.info("Purchase order created: id=%s number=%s tenant_id=%s", po.id, po.po_number, tenant_id)
    return po


def list_purchase_orders(
    tenant_id: int,
    *,
    status: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    page: int | None = 1,
    per_page: int | None = 20,
) -> dict:
    q = db.session.query(PurchaseOrder).filter(PurchaseOrder.tenant_id == tenant_id)
    if status:
        try:
            q = q.filter(PurchaseOrder.status == PurchaseOrderStatus(status).value)
        except ValueError:
            raise ValidationError(f"invalid status {status!r}", details={"status": status})
    if start_date is not None:
        q = q.filter(PurchaseOrder.po_date >= start_date)
    if end_date is not None:
        q = q.filter(PurchaseOrder.po_date <= end_date)
    q = q.order_by(PurchaseOrder.po_date.desc(), PurchaseOrder.id.desc())
    return paginate(q, page, per_page, serialize=lambda po: po.to_dict(include_items=False))


def get_purchase_order(po_id: int, tenant_id: int) -> PurchaseOrder:
    return _get_po(po_id, tenant_id)


def update_purchase_order(po_id: int, tenant_id: int, patch: dict, updated_by: int | None = None) -> PurchaseOrder:
    """Header edits while PENDING. Lines are fixed once the order exists."""
    def _op() -> PurchaseOrder:
        po = _get_po(po_id, tenant_id, lock=True)
        _require_pending(po, "update")
        for key, value in patch.items():
            if key not in PO_MUTABLE_FIELDS:
                continue
            if key == "supplier_name" and not (value or "").strip():
                raise ValidationError("supplier_name is required")
            if key == "po_date" and not isinstance(value, date):
                raise ValidationError("po_date must be a date", details={"po_date": str(value)})
            setattr(po, key, value)
        po.updated_by = updated_by
        return po

    return run_in_transaction(_op)


def cancel_purchase_order(po_id: int, cancelled_by: int | None = None, *, tenant_id: int | None = None) -> PurchaseOrder:
    def _op() -> PurchaseOrder:
        po = _get_po(po_id, tenant_id, lock=True)
        _require_pending(po, "cancel")
        po.status = PurchaseOrderStatus.CANCELLED.value
        po.cancelled_at = utcnow()
        po.updated_by = cancelled_by
        return po

    po = run_in_transaction(_op)
    current_app.logger.info("Purchase order cancelled: id=%s number=%s", po.id, po.po_number)
    return po


def receive_purchase_order(po_id: int, actor_id: int | None = None, *, tenant_id: int | None = None) -> PurchaseOrder:
    """
    PENDING -> RECEIVED: per line, WAC update then IN movement, atomically.

    Raises:
        InvalidStateError: already received or cancelled
    """
    def _op() -> PurchaseOrder:
        po = _get_po(po_id, tenant_id, lock=True)
        _require_pending(po, "receive")

        for item in po.items:
            _, movement = receive_stock(
                product_id=item.product_id,
                quantity=item.quantity,
                cost_per_unit=item.cost_per_unit,
                reference_type=ReferenceType.PURCHASE,
                reference_id=po.id,
                notes=f"Purchase order {po.po_number}",
                tenant_id=po.tenant_id,
                actor_id=actor_id,
                commit=False,
            )
            item.stock_movement_id = movement.id

        po.status = PurchaseOrderStatus.RECEIVED.value
        po.received_at = utcnow()
        po.updated_by = actor_id
        return po

    po = run_in_transaction(_op)
    current_app.logger.info(
        "Purchase order received: id=%s number=%s tenant_id=%s lines=%s",
        po.id, po.po_number, po.tenant_id, len(po.items),
    )
    return po


def record_manual_purchase(
    product_id: int,
    quantity: int,
    total_price,
    tenant_id: int,
    actor_id: int | None = None,
    *,
    notes: str | None = None,
    purchase_date: datetime | date | None = None,
    payment_method: PaymentMethod | str = PaymentMethod.CASH,
) -> dict:
    """
    Ad-hoc single-line purchase paid from the till.

    Returns:
        {"stock_movement", "cash_transaction", "product": {old/new qty and cost}}
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer", details={"quantity": quantity})
    total = quantize_money(to_decimal(total_price, field="total_price"))
    if total <= 0:
        raise ValidationError("total_price must be greater than zero", details={"total_price": str(total)})
    method = coerce_payment_method(payment_method)
    unit_cost = total / quantity

    def _op() -> dict:
        product = get_product_for_update(product_id, tenant_id)
        if product.deleted_at is not None:
            raise NotFoundError("Product not found", details={"product_id": product_id})

        wac = update_cost_wac(product.id, unit_cost, quantity, tenant_id=tenant_id, commit=False)
        movement = record_movement(
            product_id=product.id,
            movement_type=MovementType.IN,
            quantity=quantity,
            cost_per_unit=quantize_money(unit_cost),
            reference_type=ReferenceType.PURCHASE,
            notes=notes or f"Manual purchase - {product.name}",
            tenant_id=tenant_id,
            actor_id=actor_id,
            commit=False,
        )

        category = ensure_system_category(tenant_id, PURCHASE_INVENTORY, created_by=actor_id)
        entry = create_cash_transaction(
            tenant_id=tenant_id,
            transaction_type=CashTransactionType.EXPENSE,
            amount=total,
            payment_method=method,
            category_id=category.id,
            category_type=CashCategoryType.PURCHASE,
            description=f"Purchase {product.name} ({quantity} unit @ {quantize_money(unit_cost)})",
            notes=notes,
            transaction_date=purchase_date,
            created_by=actor_id,
            commit=False,
        )

        return {
            "stock_movement": movement,
            "cash_transaction": entry,
            "product": {
                "product_id": product.id,
                "product_name": product.name,
                "old_qty": wac["old_qty"],
                "new_qty": movement.after_qty,
                "old_cost": wac["old_cost"],
                "new_cost": wac["new_cost"],
                "total_amount": total,
            },
        }

    result = run_in_transaction(_op)
    current_app.logger.info(
        "Manual purchase recorded: product_id=%s tenant_id=%s quantity=%s total=%s",
        product_id, tenant_id, quantity, total,
    )
    return result


def get_manual_purchase_history(
    tenant_id: int,
    *,
    product_id: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    page: int | None = 1,
    per_page: int | None = 20,
) -> dict:
    """IN movements referencing PURCHASE without a purchase order."""
    q = db.session.query(StockMovement).filter(
        StockMovement.tenant_id == tenant_id,
        StockMovement.movement_type == MovementType.IN.value,
        StockMovement.reference_type == ReferenceType.PURCHASE.value,
        StockMovement.reference_id.is_(None),
    )
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if start_date is not None:
        q = q.filter(StockMovement.created_at >= start_of_day(start_date))
    if end_date is not None:
        q = q.filter(StockMovement.created_at < start_of_day(end_date + timedelta(days=1)))
    q = q.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())

    def _row(m: StockMovement) -> dict:
        data = m.to_dict()
        cost = Decimal(m.cost_per_unit or 0)
        data["total_cost"] = quantize_money(cost * m.quantity)
        return data

    return paginate(q, page, per_page, serialize=_row)


def get_purchase_summary(tenant_id: int, start_date=None, end_date=None) -> dict:
    """Totals of PURCHASE-type expense entries, per payment method."""
    q = db.session.query(CashTransaction).filter(
        CashTransaction.tenant_id == tenant_id,
        CashTransaction.deleted_at.is_(None),
        CashTransaction.transaction_type == CashTransactionType.EXPENSE.value,
        CashTransaction.category_type == CashCategoryType.PURCHASE.value,
    )
    if start_date is not None:
        q = q.filter(CashTransaction.transaction_date >= start_of_day(start_date))
    if end_date is not None:
        q = q.filter(CashTransaction.transaction_date < start_of_day(end_date + timedelta(days=1)))

    by_method = {m.value: ZERO for m in PaymentMethod}
    entries = q.all()
    for entry in entries:
        by_method[entry.payment_method] += Decimal(entry.amount)

    return {
        "total_purchase": quantize_money(sum(by_method.values(), ZERO)),
        "transaction_count": len(entries),
        "by_payment_method": {k: quantize_money(v) for k, v in by_method.items()},
    }
