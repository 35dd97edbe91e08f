from .tenancy import Organization, Branch
from .catalog import Product, Supplier, Customer
from .inventory import StockLevel
from .orders import Order, OrderLine
from .purchasing import PurchaseOrder, PurchaseOrderLine
from .transfers import StockTransfer, StockTransferLine
from .audit import AuditEvent

__all__ = [
    'Organization', 'Branch',
    'Product', 'Supplier', 'Customer',
    'StockLevel',
    'Order', 'OrderLine',
    'PurchaseOrder', 'PurchaseOrderLine',
    'StockTransfer', 'StockTransferLine',
    'AuditEvent',
]
