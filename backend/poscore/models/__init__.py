from .inventory import Product, InventoryMovement
from .sales import Sale, SaleLine
from .documents import Return, ReturnLine, FolioSequence

__all__ = [
    'Product', 'InventoryMovement',
    'Sale', 'SaleLine',
    'Return', 'ReturnLine', 'FolioSequence',
]
