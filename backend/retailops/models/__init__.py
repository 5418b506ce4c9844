from .parties import Shop, Retailer, RetailerShop
from .auth import User, SessionToken
from .inventory import Product, InventoryBucket, InventoryLot, StockMovement, StockReceipt
from .distribution import ShopDistribution, RetailerTransaction
from .billing import Invoice, InvoiceTransaction, GiftCard

__all__ = [
    'Shop', 'Retailer', 'RetailerShop',
    'User', 'SessionToken',
    'Product', 'InventoryBucket', 'InventoryLot', 'StockMovement', 'StockReceipt',
    'ShopDistribution', 'RetailerTransaction',
    'Invoice', 'InvoiceTransaction', 'GiftCard',
]
