# Overview: Physical stock counts (opname) and their one-shot reconciliation.

from __future__ import annotations

from datetime import date, timedelta

from flask import current_app

from ..extensions import db
from ..models import MovementType, ReferenceType, StockOpname
from posledger.time_utils import start_of_day, utcnow
from .concurrency import lock_for_update, run_in_transaction
from .errors import AlreadyProcessedError, NotFoundError, ValidationError
from .pagination import paginate
from .stock_service import get_product_for_update, record_movement
"""
Stock Opname Invariants (authoritative)

- system_qty is the product quantity when the count is recorded;
  difference = actual_qty - system_qty.
- Processing is one-shot. difference 0: marked processed, no movement.
  Otherwise exactly one ADJUSTMENT movement whose quantity is actual_qty,
  the new absolute on-hand value (not system_qty + difference).
- A processed opname is immutable; a second process call fails with
  AlreadyProcessedError and writes nothing.
"""


def _actual_qty(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError("actual_qty must be a non-negative integer", details={"actual_qty": value})
    return value


def _create_inner(tenant_id: int, product_id: int, actual_qty: int, notes: str | None, created_by: int | None) -> StockOpname:
    product = get_product_for_update(product_id, tenant_id)
    if product.deleted_at is not None:
        raise NotFoundError("Product not found", details={"product_id": product_id})

    system_qty = int(product.quantity or 0)
    opname = StockOpname(
        tenant_id=tenant_id,
        product_id=product.id,
        system_qty=system_qty,
        actual_qty=actual_qty,
        difference=actual_qty - system_qty,
        notes=notes,
        processed=False,
        created_by=created_by,
        created_at=utcnow(),
    )
    db.session.add(opname)
    return opname


def create_stock_opname(
    tenant_id: int,
    product_id: int,
    actual_qty: int,
    notes: str | None = None,
    created_by: int | None = None,
) -> StockOpname:
    actual_qty = _actual_qty(actual_qty)
    return run_in_transaction(lambda: _create_inner(tenant_id, product_id, actual_qty, notes, created_by))


def bulk_create_stock_opnames(tenant_id: int, entries, created_by: int | None = None) -> list[StockOpname]:
    """Record several counts at once; all or none are stored."""
    if not entries or not isinstance(entries, (list, tuple)):
        raise ValidationError("entries are required")
    for idx, entry in enumerate(entries, start=1):
        if not isinstance(entry, dict) or isinstance(entry.get("product_id"), bool) or not isinstance(entry.get("product_id"), int):
            raise ValidationError("product_id is required", details={"line": idx})
        _actual_qty(entry.get("actual_qty"))

    def _op() -> list[StockOpname]:
        return [
            _create_inner(tenant_id, e["product_id"], e["actual_qty"], e.get("notes"), created_by)
            for e in entries
        ]

    return run_in_transaction(_op)


def list_stock_opnames(
    tenant_id: int,
    *,
    product_id: int | None = None,
    processed: bool | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    page: int | None = 1,
    per_page: int | None = 20,
) -> dict:
    q = db.session.query(StockOpname).filter(StockOpname.tenant_id == tenant_id)
    if product_id is not None:
        q = q.filter(StockOpname.product_id == product_id)
    if processed is not None:
        q = q.filter(StockOpname.processed.is_(processed))
    if start_date is not None:
        q = q.filter(StockOpname.created_at >= start_of_day(start_date))
    if end_date is not None:
        q = q.filter(StockOpname.created_at < start_of_day(end_date + timedelta(days=1)))
    q = q.order_by(StockOpname.created_at.desc(), StockOpname.id.desc())
    return paginate(q, page, per_page)


def get_stock_opname(opname_id: int, tenant_id: int) -> StockOpname:
    opname = (
        db.session.query(StockOpname)
        .filter(StockOpname.id == opname_id, StockOpname.tenant_id == tenant_id)
        .first()
    )
    if opname is None:
        raise NotFoundError("Stock opname not found", details={"opname_id": opname_id})
    return opname


def process_stock_opname(opname_id: int, actor_id: int | None = None, *, tenant_id: int | None = None) -> dict:
    """
    Reconcile a count with the ledger.

    Returns:
        {"opname": StockOpname, "stock_movement": StockMovement | None, "message": str}
    """
    def _op() -> dict:
        q = db.session.query(StockOpname).filter(StockOpname.id == opname_id)
        if tenant_id is not None:
            q = q.filter(StockOpname.tenant_id == tenant_id)
        opname = lock_for_update(q).first()
        if opname is None:
            raise NotFoundError("Stock opname not found", details={"opname_id": opname_id})
        if opname.processed:
            raise AlreadyProcessedError(
                "Stock opname already processed",
                details={"opname_id": opname.id, "processed_at": str(opname.processed_at)},
            )

        movement = None
        if opname.difference != 0:
            product = get_product_for_update(opname.product_id, opname.tenant_id)
            sign = "+" if opname.difference > 0 else ""
            note = f"Stock opname adjustment: {sign}{opname.difference} units."
            if opname.notes:
                note = f"{note} {opname.notes}"
            movement = record_movement(
                product_id=opname.product_id,
                movement_type=MovementType.ADJUSTMENT,
                quantity=opname.actual_qty,
                cost_per_unit=product.cost,
                reference_type=ReferenceType.OPNAME,
                reference_id=opname.id,
                notes=note[:255],
                tenant_id=opname.tenant_id,
                actor_id=actor_id,
                commit=False,
            )
            opname.stock_movement_id = movement.id

        opname.processed = True
        opname.processed_at = utcnow()
        opname.processed_by = actor_id

        return {
            "opname": opname,
            "stock_movement": movement,
            "message": (
                "Stock adjustment processed successfully"
                if movement is not None
                else "No adjustment needed, quantities match"
            ),
        }

    result = run_in_transaction(_op)
    current_app.logger.info(
        "Stock opname processed: id=%s difference=%s movement_id=%s",
        opname_id, result["opname"].difference,
        result["stock_movement"].id if result["stock_movement"] is not None else None,
    )
    return result
