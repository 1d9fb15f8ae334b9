"""Models package - exports all SQLAlchemy models."""
from salesdesk.models.product import Product
from salesdesk.models.product_category import ProductCategory
from salesdesk.models.sale import Sale, SaleStatus, PaymentMethod, PaymentStatus

__all__ = [
    'Product', 'ProductCategory',
    'Sale', 'SaleStatus', 'PaymentMethod', 'PaymentStatus',
]
