from .users import User
from .catalog import Category, Product, ProductAlternative
from .inventory import Inventory, StockMovement, InventoryAlert, InventoryBatch
from .cart import Cart, CartItem, AppliedCoupon
from .orders import Order, OrderItem, DocumentSequence
from .analytics import AnalyticsEvent

__all__ = [
    'User',
    'Category', 'Product', 'ProductAlternative',
    'Inventory', 'StockMovement', 'InventoryAlert', 'InventoryBatch',
    'Cart', 'CartItem', 'AppliedCoupon',
    'Order', 'OrderItem', 'DocumentSequence',
    'AnalyticsEvent',
]
