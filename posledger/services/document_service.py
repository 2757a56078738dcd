# Overview: Atomic per-tenant document sequences and document number formatting.

from __future__ import annotations

from datetime import date

from ..extensions import db
from ..models import DocumentSequence, SequenceKind
from .concurrency import dialect_insert
from .errors import ValidationError


def next_sequence(tenant_id: int, day: date, kind: SequenceKind | str) -> int:
    """
    Atomically allocate the next value of the (tenant, day, kind) counter.

    Single-row upsert-and-increment: the first caller of the day inserts 1,
    later callers bump the existing row. The row stays write-locked until the
    caller's unit of work ends, so concurrent allocations serialize instead of
    colliding. Runs inside the caller's transaction (no commit here).
    """
    if not tenant_id:
        raise ValidationError("tenant_id is required")
    if day is None:
        raise ValidationError("sequence date is required")
    kind_value = SequenceKind(kind).value

    stmt, dialect = dialect_insert(DocumentSequence)
    stmt = stmt.values(
        tenant_id=tenant_id,
        sequence_kind=kind_value,
        sequence_date=day,
        current_value=1,
    )
    if dialect == "mysql" or dialect == "mariadb":
        stmt = stmt.on_duplicate_key_update(current_value=DocumentSequence.current_value + 1)
    else:
        stmt = stmt.on_conflict_do_update(
            index_elements=["tenant_id", "sequence_kind", "sequence_date"],
            set_={"current_value": DocumentSequence.current_value + 1},
        )
    db.session.execute(stmt)

    return (
        db.session.query(DocumentSequence.current_value)
        .filter_by(tenant_id=tenant_id, sequence_kind=kind_value, sequence_date=day)
        .scalar()
    )


def format_daily_number(prefix: str, day: date, value: int, pad: int = 4) -> str:
    """TRX-20250101-0001 style numbers."""
    return f"{prefix}-{day:%Y%m%d}-{value:0{pad}d}"


def format_monthly_number(prefix: str, day: date, value: int, pad: int = 4) -> str:
    """PO-202501-0001 style numbers."""
    return f"{prefix}-{day:%Y%m}-{value:0{pad}d}"


def next_sale_number(tenant_id: int, day: date) -> str:
    return format_daily_number("TRX", day, next_sequence(tenant_id, day, SequenceKind.SALE))


def next_cash_number(tenant_id: int, day: date) -> str:
    return format_daily_number("CSH", day, next_sequence(tenant_id, day, SequenceKind.CASH))


def next_return_number(tenant_id: int, day: date) -> int:
    return next_sequence(tenant_id, day, SequenceKind.RETURN)


def next_purchase_order_number(tenant_id: int, day: date) -> str:
    month_start = day.replace(day=1)
    value = next_sequence(tenant_id, month_start, SequenceKind.PURCHASE_ORDER)
    return format_monthly_number("PO", month_start, value)
