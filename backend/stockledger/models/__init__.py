from .tenancy import Organization, Store
from .inventory import Unit, Product, StockLot, StockRecord, StockMovement

__all__ = [
    'Organization', 'Store',
    'Unit', 'Product', 'StockLot', 'StockRecord', 'StockMovement',
]
