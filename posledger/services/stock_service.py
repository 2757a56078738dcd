# Overview: Stock ledger; owns product quantity/cost state, movements and WAC.

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Product, StockMovement, MovementType, ReferenceType
from ..money import ZERO, quantize_money, to_decimal
from posledger.time_utils import utcnow, start_of_day, to_utc_z
from .concurrency import lock_for_update, run_in_transaction
from .errors import NotFoundError, ValidationError
from .pagination import paginate
"""
Stock Ledger Invariants (authoritative)

- Product.quantity and Product.cost change only through this module.
- Every quantity change writes exactly one StockMovement in the same unit of
  work; movements are append-only.
- Replaying a product's movements in id order reproduces its quantity:
  after_qty of one movement is before_qty of the next.
- Transition per movement type:
    IN, RETURN  -> after = before + quantity
    OUT         -> after = max(0, before - quantity)  (clamped, logged)
    ADJUSTMENT  -> after = quantity                   (absolute new value)
- OUT clamping is a last-resort policy. The sales path validates stock before
  issuing OUT movements and fails with InsufficientStockError instead.
- WAC = (cost * qty + incoming_cost * incoming_qty) / (qty + incoming_qty),
  rounded to the cent (half-up), 0 when the resulting quantity is 0.
  Purchase-driven IN movements call update_cost_wac first, so the movement's
  cost_per_unit is the purchase cost and the product already carries the new WAC.
"""


def _coerce_movement_type(value) -> MovementType:
    try:
        return MovementType(value)
    except ValueError:
        raise ValidationError(
            f"invalid movement type {value!r}",
            details={"movement_type": value, "allowed": [m.value for m in MovementType]},
        )


def _coerce_reference_type(value) -> ReferenceType:
    try:
        return ReferenceType(value)
    except ValueError:
        raise ValidationError(
            f"invalid reference type {value!r}",
            details={"reference_type": value, "allowed": [r.value for r in ReferenceType]},
        )


def get_product_for_update(product_id: int, tenant_id: int | None = None) -> Product:
    """Load a product with a row lock; NotFoundError if absent or in another tenant."""
    query = db.session.query(Product).filter(Product.id == product_id)
    if tenant_id is not None:
        query = query.filter(Product.tenant_id == tenant_id)
    product = lock_for_update(query).first()
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def next_quantity(movement_type: MovementType, before_qty: int, quantity: int) -> int:
    """The quantity a product holds after a movement of `movement_type`."""
    if movement_type is MovementType.IN or movement_type is MovementType.RETURN:
        return before_qty + quantity
    elif movement_type is MovementType.OUT:
        return max(0, before_qty - quantity)
    elif movement_type is MovementType.ADJUSTMENT:
        return quantity
    raise ValidationError(f"unhandled movement type {movement_type!r}")


def _record_movement_inner(
    *,
    product_id: int,
    movement_type: MovementType,
    quantity: int,
    cost_per_unit: Decimal | None,
    reference_type: ReferenceType,
    reference_id: int | None,
    notes: str | None,
    tenant_id: int,
    actor_id: int | None,
    defer_product_update: bool,
) -> StockMovement:
    product = get_product_for_update(product_id, tenant_id)

    before_qty = int(product.quantity or 0)
    after_qty = next_quantity(movement_type, before_qty, quantity)

    if movement_type is MovementType.OUT and before_qty - quantity < 0:
        current_app.logger.warning(
            "OUT movement clamped at zero: product_id=%s requested=%s on_hand=%s reference=%s:%s",
            product.id,
            quantity,
            before_qty,
            reference_type.value,
            reference_id,
        )

    movement = StockMovement(
        tenant_id=tenant_id,
        product_id=product.id,
        movement_type=movement_type.value,
        quantity=quantity,
        cost_per_unit=quantize_money(cost_per_unit) if cost_per_unit is not None else None,
        reference_type=reference_type.value,
        reference_id=reference_id,
        notes=notes,
        before_qty=before_qty,
        after_qty=after_qty,
        created_by=actor_id,
        created_at=utcnow(),
    )
    db.session.add(movement)

    if not defer_product_update:
        product.quantity = after_qty

    return movement


def record_movement(
    *,
    product_id: int,
    movement_type: MovementType | str,
    quantity: int,
    reference_type: ReferenceType | str,
    tenant_id: int,
    cost_per_unit=None,
    reference_id: int | None = None,
    notes: str | None = None,
    actor_id: int | None = None,
    defer_product_update: bool = False,
    commit: bool = True,
) -> StockMovement:
    """
    Record one stock movement and apply it to the product's running quantity.

    Args:
        movement_type: IN, OUT, RETURN or ADJUSTMENT (see transition table above)
        quantity: units moved; for ADJUSTMENT the new absolute quantity
        cost_per_unit: cost snapshot for the movement (None when no cost basis)
        defer_product_update: write the movement only; the caller sets
            Product.quantity itself (batched movements of one product)
        commit: False joins the caller's unit of work

    Raises:
        NotFoundError: product missing or owned by another tenant
        ValidationError: bad type, reference or quantity
    """
    mtype = _coerce_movement_type(movement_type)
    rtype = _coerce_reference_type(reference_type)

    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer", details={"quantity": quantity})
    if mtype is MovementType.ADJUSTMENT:
        if quantity < 0:
            raise ValidationError("adjusted quantity cannot be negative", details={"quantity": quantity})
    elif quantity <= 0:
        raise ValidationError("quantity must be positive", details={"quantity": quantity})

    cost = to_decimal(cost_per_unit, field="cost_per_unit") if cost_per_unit is not None else None
    if cost is not None and cost < 0:
        raise ValidationError("cost_per_unit cannot be negative", details={"cost_per_unit": str(cost)})

    def _op():
        return _record_movement_inner(
            product_id=product_id,
            movement_type=mtype,
            quantity=quantity,
            cost_per_unit=cost,
            reference_type=rtype,
            reference_id=reference_id,
            notes=notes,
            tenant_id=tenant_id,
            actor_id=actor_id,
            defer_product_update=defer_product_update,
        )

    return run_in_transaction(_op, commit=commit)


def weighted_average_cost(existing_cost: Decimal, existing_qty: int, incoming_cost: Decimal, incoming_qty: int) -> Decimal:
    total_qty = existing_qty + incoming_qty
    if total_qty <= 0:
        return ZERO
    total_cost = existing_cost * existing_qty + incoming_cost * incoming_qty
    return quantize_money(total_cost / total_qty)


def update_cost_wac(
    product_id: int,
    incoming_cost,
    incoming_qty: int,
    *,
    tenant_id: int | None = None,
    commit: bool = True,
) -> dict:
    """
    Fold an incoming lot into the product's weighted average cost.

    Must run before the IN movement of the same lot: old_qty is the on-hand
    quantity the lot is blended with. Quantity is not changed here.

    Returns:
        {product_id, old_cost, new_cost, old_qty, new_qty}
    """
    cost = to_decimal(incoming_cost, field="incoming_cost")
    if cost < 0:
        raise ValidationError("incoming_cost cannot be negative", details={"incoming_cost": str(cost)})
    if isinstance(incoming_qty, bool) or not isinstance(incoming_qty, int) or incoming_qty <= 0:
        raise ValidationError("incoming_qty must be a positive integer", details={"incoming_qty": incoming_qty})

    def _op() -> dict:
        product = get_product_for_update(product_id, tenant_id)

        old_cost = Decimal(product.cost or 0)
        old_qty = int(product.quantity or 0)
        new_cost = weighted_average_cost(old_cost, old_qty, cost, incoming_qty)

        product.cost = new_cost

        return {
            "product_id": product.id,
            "old_cost": quantize_money(old_cost),
            "new_cost": new_cost,
            "old_qty": old_qty,
            "new_qty": old_qty + incoming_qty,
        }

    return run_in_transaction(_op, commit=commit)


def receive_stock(
    *,
    product_id: int,
    quantity: int,
    cost_per_unit,
    reference_type: ReferenceType | str,
    tenant_id: int,
    reference_id: int | None = None,
    notes: str | None = None,
    actor_id: int | None = None,
    commit: bool = True,
) -> tuple[dict, StockMovement]:
    """WAC update followed by the IN movement of the same lot, as one unit of work."""
    def _op():
        wac = update_cost_wac(product_id, cost_per_unit, quantity, tenant_id=tenant_id, commit=False)
        movement = record_movement(
            product_id=product_id,
            movement_type=MovementType.IN,
            quantity=quantity,
            cost_per_unit=cost_per_unit,
            reference_type=reference_type,
            reference_id=reference_id,
            notes=notes,
            tenant_id=tenant_id,
            actor_id=actor_id,
            commit=False,
        )
        return wac, movement

    return run_in_transaction(_op, commit=commit)


# =============================================================================
# READ MODELS
# =============================================================================

def _live_products(tenant_id: int):
    return db.session.query(Product).filter(
        Product.tenant_id == tenant_id,
        Product.is_active.is_(True),
        Product.deleted_at.is_(None),
    )


def get_inventory_valuation(tenant_id: int) -> dict:
    """
    Cost and selling value of on-hand stock for active products.

    Out-of-stock products (qty 0) are counted separately from low-stock ones
    (0 < qty <= min_stock).
    """
    products = _live_products(tenant_id).order_by(Product.name.asc(), Product.id.asc()).all()

    total_cost = ZERO
    total_selling = ZERO
    low_stock_count = 0
    out_of_stock_count = 0
    rows = []

    for p in products:
        qty = int(p.quantity or 0)
        cost = Decimal(p.cost or 0)
        price = Decimal(p.price or 0)

        cost_value = quantize_money(cost * qty)
        selling_value = quantize_money(price * qty)
        profit = selling_value - cost_value
        margin = quantize_money(profit / cost_value * 100) if cost_value > 0 else ZERO

        total_cost += cost_value
        total_selling += selling_value

        if qty == 0:
            out_of_stock_count += 1
        elif qty <= (p.min_stock or 0):
            low_stock_count += 1

        rows.append({
            "product_id": p.id,
            "product_name": p.name,
            "sku": p.sku,
            "quantity": qty,
            "cost_per_unit": quantize_money(cost),
            "price_per_unit": quantize_money(price),
            "cost_value": cost_value,
            "selling_value": selling_value,
            "potential_profit": profit,
            "profit_margin": margin,
        })

    total_profit = total_selling - total_cost
    return {
        "summary": {
            "total_products": len(products),
            "total_cost_value": total_cost,
            "total_selling_value": total_selling,
            "total_potential_profit": total_profit,
            "average_profit_margin": (
                quantize_money(total_profit / total_cost * 100) if total_cost > 0 else ZERO
            ),
            "low_stock_count": low_stock_count,
            "out_of_stock_count": out_of_stock_count,
        },
        "products": rows,
    }


def get_low_stock_products(tenant_id: int) -> list[dict]:
    """Tracked, active products at or below their minimum, largest shortage first."""
    shortage = (Product.min_stock - Product.quantity).label("shortage")
    rows = (
        db.session.query(Product, shortage)
        .filter(
            Product.tenant_id == tenant_id,
            Product.is_active.is_(True),
            Product.deleted_at.is_(None),
            Product.is_track_stock.is_(True),
            Product.quantity <= Product.min_stock,
        )
        .order_by(shortage.desc(), Product.id.asc())
        .all()
    )
    return [
        {
            "product_id": p.id,
            "product_name": p.name,
            "sku": p.sku,
            "quantity": p.quantity,
            "min_stock": p.min_stock,
            "price": quantize_money(p.price or 0),
            "cost": quantize_money(p.cost or 0),
            "shortage": int(short),
        }
        for p, short in rows
    ]


def get_dead_stock_products(tenant_id: int, days: int | None = None, now: datetime | None = None) -> list[dict]:
    """
    Products holding stock with no OUT movement in the trailing `days`
    (or never sold), largest tied-up capital first.
    """
    if days is None:
        days = current_app.config.get("DEAD_STOCK_DAYS", 90)
    if days < 0:
        raise ValidationError("days cannot be negative", details={"days": days})
    now = now or utcnow()
    cutoff = now - timedelta(days=days)

    last_out = (
        db.session.query(
            StockMovement.product_id.label("product_id"),
            func.max(StockMovement.created_at).label("last_out_at"),
        )
        .filter(
            StockMovement.tenant_id == tenant_id,
            StockMovement.movement_type == MovementType.OUT.value,
        )
        .group_by(StockMovement.product_id)
        .subquery()
    )

    rows = (
        _live_products(tenant_id)
        .filter(Product.quantity > 0)
        .outerjoin(last_out, last_out.c.product_id == Product.id)
        .add_columns(last_out.c.last_out_at)
        .all()
    )

    result = []
    for p, last_out_at in rows:
        if last_out_at is not None and last_out_at >= cutoff:
            continue
        tied_capital = quantize_money(Decimal(p.cost or 0) * p.quantity)
        result.append({
            "product_id": p.id,
            "product_name": p.name,
            "sku": p.sku,
            "quantity": p.quantity,
            "price": quantize_money(p.price or 0),
            "cost": quantize_money(p.cost or 0),
            "tied_capital": tied_capital,
            "last_movement_date": to_utc_z(last_out_at),
            "days_no_movement": (now - last_out_at).days if last_out_at is not None else None,
        })

    result.sort(key=lambda r: (-r["tied_capital"], r["product_id"]))
    return result


def _movement_query(tenant_id: int, start: datetime | None = None, end: datetime | None = None):
    q = db.session.query(StockMovement).filter(StockMovement.tenant_id == tenant_id)
    if start is not None:
        q = q.filter(StockMovement.created_at >= start)
    if end is not None:
        q = q.filter(StockMovement.created_at <= end)
    return q


def _date_bounds(start_date: date | datetime | None, end_date: date | datetime | None):
    """Dates are whole days: [start 00:00, end+1 00:00)."""
    start = end = None
    if start_date is not None:
        start = start_date if isinstance(start_date, datetime) else start_of_day(start_date)
    if end_date is not None:
        if isinstance(end_date, datetime):
            end = end_date
        else:
            end = start_of_day(end_date + timedelta(days=1)) - timedelta(microseconds=1)
    return start, end


def list_movements(
    tenant_id: int,
    *,
    product_id: int | None = None,
    movement_type: str | None = None,
    reference_type: str | None = None,
    start_date: date | datetime | None = None,
    end_date: date | datetime | None = None,
    sort_order: str = "desc",
    page: int | None = 1,
    per_page: int | None = 20,
) -> dict:
    start, end = _date_bounds(start_date, end_date)
    q = _movement_query(tenant_id, start, end)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if movement_type:
        q = q.filter(StockMovement.movement_type == _coerce_movement_type(movement_type).value)
    if reference_type:
        q = q.filter(StockMovement.reference_type == _coerce_reference_type(reference_type).value)

    if sort_order == "asc":
        q = q.order_by(StockMovement.created_at.asc(), StockMovement.id.asc())
    else:
        q = q.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())

    return paginate(q, page, per_page)


def get_product_movements(product_id: int, tenant_id: int, limit: int = 50) -> list[StockMovement]:
    """Most recent movements of one product, newest first."""
    product = (
        db.session.query(Product)
        .filter(Product.id == product_id, Product.tenant_id == tenant_id)
        .first()
    )
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return (
        db.session.query(StockMovement)
        .filter(StockMovement.product_id == product_id, StockMovement.tenant_id == tenant_id)
        .order_by(StockMovement.id.desc())
        .limit(limit)
        .all()
    )


def get_movement_statistics(
    tenant_id: int,
    start_date: date | datetime | None = None,
    end_date: date | datetime | None = None,
) -> dict:
    """
    Unit totals for a period.

    outgoing_nontransaction_total counts OUT movements not caused by a sale
    plus every downward ADJUSTMENT (opname shrinkage).
    """
    start, end = _date_bounds(start_date, end_date)

    def _sum(*criteria) -> int:
        q = _movement_query(tenant_id, start, end).with_entities(
            func.coalesce(func.sum(StockMovement.quantity), 0)
        )
        return int(q.filter(*criteria).scalar() or 0)

    incoming = _sum(StockMovement.movement_type == MovementType.IN.value)
    returned = _sum(StockMovement.movement_type == MovementType.RETURN.value)
    sold = _sum(
        StockMovement.movement_type == MovementType.OUT.value,
        StockMovement.reference_type == ReferenceType.SALE.value,
    )
    other_out = _sum(
        StockMovement.movement_type == MovementType.OUT.value,
        StockMovement.reference_type != ReferenceType.SALE.value,
    )

    shrink = (
        _movement_query(tenant_id, start, end)
        .with_entities(func.coalesce(func.sum(StockMovement.before_qty - StockMovement.after_qty), 0))
        .filter(
            StockMovement.movement_type == MovementType.ADJUSTMENT.value,
            StockMovement.after_qty < StockMovement.before_qty,
        )
        .scalar()
    )

    return {
        "incoming_total": incoming,
        "return_total": returned,
        "outgoing_transaction_total": sold,
        "outgoing_nontransaction_total": other_out + int(shrink or 0),
    }


def replay_quantity(product_id: int, initial_qty: int = 0) -> int:
    """
    Rebuild a product's quantity from its movements (audit helper).

    Equal to Product.quantity whenever no movement was written with
    defer_product_update and left unapplied.
    """
    qty = initial_qty
    movements = (
        db.session.query(StockMovement)
        .filter(StockMovement.product_id == product_id)
        .order_by(StockMovement.id.asc())
        .all()
    )
    for m in movements:
        qty = next_quantity(MovementType(m.movement_type), qty, m.quantity)
    return qty
