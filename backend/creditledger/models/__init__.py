from .inventory import Item, ItemStock
from .credit import Buyer, BuyerPayment
from .sales import Transaction, SaleLine
from .suppliers import Supplier, SupplierLedgerEntry
from .instruments import Cheque, Expense
from .audit import AuditLog, WhatsAppLog

__all__ = [
    'Item', 'ItemStock',
    'Buyer', 'BuyerPayment',
    'Transaction', 'SaleLine',
    'Supplier', 'SupplierLedgerEntry',
    'Cheque', 'Expense',
    'AuditLog', 'WhatsAppLog',
]
