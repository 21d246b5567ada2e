from .catalog import Product, VariationCombination, Category
from .customers import Customer
from .sales import Sale, SaleLine, SalePayment, ReturnedItem
from .expenses import Expense, ExpenseCategory
from .settings import StoreSettings
from .sequences import SequenceCounter
from .purchasing import PurchaseOrder, PurchaseOrderLine

__all__ = [
    'Product', 'VariationCombination', 'Category',
    'Customer',
    'Sale', 'SaleLine', 'SalePayment', 'ReturnedItem',
    'Expense', 'ExpenseCategory',
    'StoreSettings',
    'SequenceCounter',
    'PurchaseOrder', 'PurchaseOrderLine',
]
