from .inventory import Product, StockMovement, MOVEMENT_TYPES
from .sales import Sale, PAYMENT_STATUSES, PAYMENT_METHODS
from .audit import SaleAudit, CHANGE_TYPES, APPROVAL_STATUSES

__all__ = [
    'Product', 'StockMovement', 'MOVEMENT_TYPES',
    'Sale', 'PAYMENT_STATUSES', 'PAYMENT_METHODS',
    'SaleAudit', 'CHANGE_TYPES', 'APPROVAL_STATUSES',
]
