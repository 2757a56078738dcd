# Overview: Expense categories for the cash ledger, including on-demand system categories.

from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import ExpenseCategory, CashTransaction
from .concurrency import dialect_insert, run_in_transaction
from .errors import InvalidStateError, NotFoundError, SystemCategoryError, ValidationError

RETURN_REFUND = "RETURN_REFUND"
PURCHASE_INVENTORY = "PURCHASE_INVENTORY"

DEFAULT_CATEGORIES = [
    {"code": "PURCHASE_INVENTORY", "name": "Inventory Purchase", "description": "Merchandise and stock purchases"},
    {"code": "SALARY", "name": "Salaries", "description": "Monthly salaries or daily wages"},
    {"code": "RENT", "name": "Store Rent", "description": "Rent for the business premises"},
    {"code": "UTILITIES", "name": "Utilities", "description": "Electricity, water and internet bills"},
    {"code": "SUPPLIES", "name": "Supplies", "description": "Store and operational supplies"},
    {"code": "MAINTENANCE", "name": "Maintenance", "description": "Maintenance and repairs"},
    {"code": "MARKETING", "name": "Marketing", "description": "Promotion and marketing costs"},
    {"code": "TRANSPORT", "name": "Transport", "description": "Transport and delivery costs"},
    {"code": "OTHER", "name": "Other", "description": "Other expenses"},
]

SYSTEM_CATEGORY_NAMES = {
    RETURN_REFUND: ("Return Refund", "Refunds paid out for customer returns"),
    PURCHASE_INVENTORY: ("Inventory Purchase", "Merchandise and stock purchases"),
}

CATEGORY_MUTABLE_FIELDS = {"code", "name", "description", "is_active"}


def _reject_reserved_code(code: str) -> None:
    if code in SYSTEM_CATEGORY_NAMES:
        raise SystemCategoryError(
            f"Category code {code} is reserved for the system",
            details={"code": code, "reserved": sorted(SYSTEM_CATEGORY_NAMES)},
        )


def _normalize_code(code: str | None) -> str:
    code = (code or "").strip().upper()
    if not code:
        raise ValidationError("category code is required")
    return code


def _visible_to(tenant_id: int | None):
    """Tenant's own categories plus global system ones."""
    if tenant_id is None:
        return ExpenseCategory.tenant_id.is_(None)
    return or_(
        ExpenseCategory.tenant_id == tenant_id,
        (ExpenseCategory.tenant_id.is_(None)) & (ExpenseCategory.is_system.is_(True)),
    )


def ensure_system_category(tenant_id: int, code: str, created_by: int | None = None) -> ExpenseCategory:
    """
    Return the system category `code` for a tenant, creating it on first use.

    A global system category with the same code is reused. Otherwise the row is
    inserted with ON CONFLICT DO NOTHING on (tenant_id, code), so concurrent
    first uses end up sharing one row. Joins the caller's unit of work.
    """
    code = _normalize_code(code)

    existing = (
        db.session.query(ExpenseCategory)
        .filter(ExpenseCategory.code == code, _visible_to(tenant_id), ExpenseCategory.is_system.is_(True))
        .order_by(ExpenseCategory.tenant_id.is_(None).asc())
        .first()
    )
    if existing is not None:
        return existing

    name, description = SYSTEM_CATEGORY_NAMES.get(code, (code.replace("_", " ").title(), None))
    stmt, dialect = dialect_insert(ExpenseCategory)
    stmt = stmt.values(
        tenant_id=tenant_id,
        code=code,
        name=name,
        description=description,
        is_system=True,
        is_active=True,
        created_by=created_by,
    )
    if dialect == "mysql" or dialect == "mariadb":
        stmt = stmt.prefix_with("IGNORE")
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=["tenant_id", "code"])
    db.session.execute(stmt)

    return (
        db.session.query(ExpenseCategory)
        .filter(ExpenseCategory.tenant_id == tenant_id, ExpenseCategory.code == code)
        .one()
    )


def seed_default_categories(tenant_id: int | None = None, created_by: int | None = None) -> dict:
    """Create the default system categories for a tenant (or globally). Idempotent."""
    def _op() -> dict:
        q = db.session.query(ExpenseCategory).filter(ExpenseCategory.is_system.is_(True))
        if tenant_id is None:
            q = q.filter(ExpenseCategory.tenant_id.is_(None))
        else:
            q = q.filter(ExpenseCategory.tenant_id == tenant_id)
        existing_codes = {c.code for c in q.all()}

        created = []
        for cat in DEFAULT_CATEGORIES:
            if cat["code"] in existing_codes:
                continue
            row = ExpenseCategory(
                tenant_id=tenant_id,
                code=cat["code"],
                name=cat["name"],
                description=cat["description"],
                is_system=True,
                is_active=True,
                created_by=created_by,
            )
            db.session.add(row)
            created.append(row)

        return {"created": len(created), "existing": len(existing_codes)}

    return run_in_transaction(_op)


def create_category(
    tenant_id: int,
    *,
    code: str,
    name: str,
    description: str | None = None,
    is_active: bool = True,
    created_by: int | None = None,
) -> ExpenseCategory:
    code = _normalize_code(code)
    _reject_reserved_code(code)
    if not (name or "").strip():
        raise ValidationError("category name is required")

    def _op() -> ExpenseCategory:
        clash = (
            db.session.query(ExpenseCategory.id)
            .filter(ExpenseCategory.code == code, _visible_to(tenant_id))
            .first()
        )
        if clash is not None:
            raise ValidationError("category code already exists", details={"code": code})

        category = ExpenseCategory(
            tenant_id=tenant_id,
            code=code,
            name=name.strip(),
            description=description,
            is_system=False,
            is_active=is_active,
            created_by=created_by,
        )
        db.session.add(category)
        return category

    return run_in_transaction(_op)


def list_categories(tenant_id: int, *, is_active: bool | None = None, search: str | None = None) -> list[ExpenseCategory]:
    q = db.session.query(ExpenseCategory).filter(_visible_to(tenant_id))
    if is_active is not None:
        q = q.filter(ExpenseCategory.is_active.is_(is_active))
    if search:
        like = f"%{search}%"
        q = q.filter(
            or_(
                ExpenseCategory.name.ilike(like),
                ExpenseCategory.code.ilike(like),
                ExpenseCategory.description.ilike(like),
            )
        )
    return q.order_by(ExpenseCategory.is_system.desc(), ExpenseCategory.code.asc()).all()


def get_category(category_id: int, tenant_id: int) -> ExpenseCategory:
    category = (
        db.session.query(ExpenseCategory)
        .filter(ExpenseCategory.id == category_id, _visible_to(tenant_id))
        .first()
    )
    if category is None:
        raise NotFoundError("Category not found", details={"category_id": category_id})
    return category


def get_category_by_code(code: str, tenant_id: int) -> ExpenseCategory | None:
    return (
        db.session.query(ExpenseCategory)
        .filter(ExpenseCategory.code == _normalize_code(code), _visible_to(tenant_id))
        .order_by(ExpenseCategory.tenant_id.is_(None).asc())
        .first()
    )


def update_category(category_id: int, tenant_id: int, patch: dict) -> ExpenseCategory:
    def _op() -> ExpenseCategory:
        category = get_category(category_id, tenant_id)
        if category.is_system:
            raise SystemCategoryError("Cannot update system category", details={"category_id": category_id})

        for key, value in patch.items():
            if key not in CATEGORY_MUTABLE_FIELDS:
                continue
            if key == "code":
                value = _normalize_code(value)
                _reject_reserved_code(value)
                clash = (
                    db.session.query(ExpenseCategory.id)
                    .filter(
                        ExpenseCategory.code == value,
                        ExpenseCategory.id != category.id,
                        _visible_to(tenant_id),
                    )
                    .first()
                )
                if clash is not None:
                    raise ValidationError("category code already exists", details={"code": value})
            elif key == "name" and not (value or "").strip():
                raise ValidationError("category name is required")
            setattr(category, key, value)
        return category

    return run_in_transaction(_op)


def delete_category(category_id: int, tenant_id: int) -> None:
    def _op() -> None:
        category = get_category(category_id, tenant_id)
        if category.is_system:
            raise SystemCategoryError("Cannot delete system category", details={"category_id": category_id})

        in_use = (
            db.session.query(CashTransaction.id)
            .filter(CashTransaction.category_id == category.id)
            .count()
        )
        if in_use:
            raise InvalidStateError(
                "Cannot delete category that has associated transactions",
                details={"category_id": category_id, "transaction_count": in_use},
            )
        db.session.delete(category)

    run_in_transaction(_op)
