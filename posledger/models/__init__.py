from .tenancy import Tenant
from .inventory import Product, StockMovement, StockOpname, PurchaseOrder, PurchaseOrderItem
from .sales import SaleTransaction, SaleTransactionItem
from .documents import Return, ReturnItem, DocumentSequence
from .cash import ExpenseCategory, CashTransaction
from .enums import (
    MovementType,
    ReferenceType,
    SaleStatus,
    PurchaseOrderStatus,
    CashTransactionType,
    PaymentMethod,
    CashCategoryType,
    SequenceKind,
)

__all__ = [
    'Tenant',
    'Product', 'StockMovement', 'StockOpname', 'PurchaseOrder', 'PurchaseOrderItem',
    'SaleTransaction', 'SaleTransactionItem',
    'Return', 'ReturnItem', 'DocumentSequence',
    'ExpenseCategory', 'CashTransaction',
    'MovementType', 'ReferenceType', 'SaleStatus', 'PurchaseOrderStatus',
    'CashTransactionType', 'PaymentMethod', 'CashCategoryType', 'SequenceKind',
]
