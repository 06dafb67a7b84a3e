from .inventory import Stock, StockAdjustment
from .sales import Transaction, TransactionItem, PriceDiscrepancy
from .documents import StockTransfer, Return, ReturnItem, Refund, DocumentSequence

__all__ = [
    'Stock', 'StockAdjustment',
    'Transaction', 'TransactionItem', 'PriceDiscrepancy',
    'StockTransfer', 'Return', 'ReturnItem', 'Refund', 'DocumentSequence',
]
