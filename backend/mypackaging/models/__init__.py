from .inventory import Product, StockMovement
from .sales import Sale, SaleItem, SalePayment, Payment, SaleStatus, PaymentMethod, AdjustmentType, WALK_IN_CUSTOMER
from .purchasing import Purchase, PurchaseItem, SupplierReturn, SupplierReturnItem, PurchaseStatus, DiscountType
from .shop import ShopUse, ShopUseItem, StockTransfer, StockAudit
from .audit import AuditLog
from .auth import User, SessionToken, Role

__all__ = [
    'Product', 'StockMovement',
    'Sale', 'SaleItem', 'SalePayment', 'Payment',
    'SaleStatus', 'PaymentMethod', 'AdjustmentType', 'WALK_IN_CUSTOMER',
    'Purchase', 'PurchaseItem', 'SupplierReturn', 'SupplierReturnItem',
    'PurchaseStatus', 'DiscountType',
    'ShopUse', 'ShopUseItem', 'StockTransfer', 'StockAudit',
    'AuditLog',
    'User', 'SessionToken', 'Role',
]
