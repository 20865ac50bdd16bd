from .catalog import Product, Partner, ProductImage
from .consignments import ConsignmentOrder
from .sales import SaleRecord
from .logs import InventoryLogEntry

__all__ = [
    'Product', 'Partner', 'ProductImage',
    'ConsignmentOrder',
    'SaleRecord',
    'InventoryLogEntry',
]
