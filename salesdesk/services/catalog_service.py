"""Product catalog access: read and guarded persistence of products."""
import logging
from decimal import Decimal
from typing import Optional

from flask import current_app

from salesdesk.models import Product, ProductCategory
from salesdesk.exceptions import InvalidStockOperationError, NotFoundError
from salesdesk.services.cache_service import get_cache
from salesdesk.utils.serializers import product_to_dict

logger = logging.getLogger(__name__)


def get_by_id(session, product_id) -> Optional[Product]:
    """Return the product with the given id, or None."""
    if product_id is None:
        return None
    try:
        product_id = int(product_id)
    except (TypeError, ValueError):
        return None
    return session.get(Product, product_id)


def get_or_404(session, product_id) -> Product:
    """Return the product with the given id or raise NotFoundError."""
    product = get_by_id(session, product_id)
    if product is None:
        raise NotFoundError(f'Product {product_id} not found', {'productId': product_id})
    return product


def _check_quantities(product: Product) -> None:
    if product.stock is None or product.stock < 0:
        raise InvalidStockOperationError(
            f'Refusing to persist product "{product.name}" with negative stock ({product.stock})',
            {'productId': product.id, 'stock': product.stock}
        )
    for category in product.categories:
        if category.quantity is None or category.quantity < 0:
            raise InvalidStockOperationError(
                f'Refusing to persist category "{category.name}" of product "{product.name}" '
                f'with negative quantity ({category.quantity})',
                {'productId': product.id, 'categoryId': category.id, 'quantity': category.quantity}
            )


def save(session, product: Product) -> Product:
    """
    Persist a product.

    Last line of defense for the stock invariant: negative stock or category
    quantities are rejected even when the stock ledger was bypassed.

    Raises:
        InvalidStockOperationError: If any quantity is negative. The session
            is rolled back.
    """
    try:
        _check_quantities(product)
    except InvalidStockOperationError:
        session.rollback()
        raise

    session.add(product)
    session.commit()
    logger.info(f"[CATALOG] Saved product {product.id} ('{product.name}', stock={product.stock})")
    return product


def create_product(session, name: str, price, stock: int = 0, categories=None,
                   product_code: str = None, description: str = None, image: str = None,
                   is_active: bool = True, actor_id=None) -> Product:
    """
    Create a product with optional sub-categories.

    Args:
        categories: Iterable of dicts with {'name', 'quantity', 'price'}
    """
    product = Product(
        name=name,
        product_code=product_code,
        description=description,
        price=Decimal(str(price)),
        stock=int(stock),
        image=image,
        is_active=is_active,
        created_by_id=actor_id,
    )
    for position, category_data in enumerate(categories or []):
        product.categories.append(ProductCategory(
            position=position,
            name=category_data['name'],
            quantity=int(category_data.get('quantity', 0)),
            price=Decimal(str(category_data.get('price', price))),
        ))
    return save(session, product)


def get_product_view(session, product_id) -> dict:
    """Serialized product for read endpoints (cache-aside)."""
    def _load():
        return product_to_dict(get_or_404(session, product_id))

    ttl = current_app.config.get('CACHE_PRODUCTS_TTL', 60)
    return get_cache().memoize('products', str(product_id), _load, ttl)
