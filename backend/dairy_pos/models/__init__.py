from .inventory import (
    Product,
    LedgerEntry,
    PRODUCT_CATEGORIES,
    PRODUCT_UNITS,
    ENTRY_TYPES,
    LOSS_TYPES,
    signed_effect,
)
from .sales import Sale, SaleLine, PAYMENT_METHODS, PAYMENT_STATUSES

__all__ = [
    'Product', 'LedgerEntry', 'Sale', 'SaleLine',
    'PRODUCT_CATEGORIES', 'PRODUCT_UNITS', 'ENTRY_TYPES', 'LOSS_TYPES',
    'PAYMENT_METHODS', 'PAYMENT_STATUSES', 'signed_effect',
]
