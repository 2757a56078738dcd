"""Closed tag sets stored as strings in the ledger tables."""
from __future__ import annotations

from enum import Enum


class MovementType(str, Enum):
    IN = "IN"
    OUT = "OUT"
    RETURN = "RETURN"
    ADJUSTMENT = "ADJUSTMENT"


class ReferenceType(str, Enum):
    INITIAL = "INITIAL"
    PURCHASE = "PURCHASE"
    SALE = "SALE"
    SALE_DELETE = "SALE_DELETE"
    RETURN = "RETURN"
    OPNAME = "OPNAME"


class SaleStatus(str, Enum):
    DRAFT = "DRAFT"
    COMPLETED = "COMPLETED"
    LOCKED = "LOCKED"
    DELETED = "DELETED"


class PurchaseOrderStatus(str, Enum):
    PENDING = "PENDING"
    RECEIVED = "RECEIVED"
    CANCELLED = "CANCELLED"


class CashTransactionType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    QRIS = "QRIS"
    DEBIT = "DEBIT"


class CashCategoryType(str, Enum):
    SALES = "SALES"
    PURCHASE = "PURCHASE"
    RETURN = "RETURN"
    OPERATIONAL = "OPERATIONAL"


class SequenceKind(str, Enum):
    SALE = "SALE"
    RETURN = "RETURN"
    CASH = "CASH"
    PURCHASE_ORDER = "PURCHASE_ORDER"
