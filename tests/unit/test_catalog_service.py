"""
Unit tests for catalog persistence and the product cache.
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from salesdesk.exceptions import InvalidStockOperationError, NotFoundError
from salesdesk.services import cache_service, catalog_service
from salesdesk.services.cache_service import CacheService, dumps, invalidate_product, loads
from tests.helpers import fresh_product


class TestCatalogService:
    """Tests for product persistence guards."""

    def test_create_product_with_categories(self, session):
        product = catalog_service.create_product(
            session, name='Mug', price='6.00', stock=2,
            categories=[{'name': 'Blue', 'quantity': 3}]
        )

        assert product.id is not None
        assert product.categories[0].position == 0
        assert product.categories[0].price == Decimal('6.00')

    def test_save_rejects_negative_stock(self, session, product):
        """Negative stock never reaches the database, even bypassing the ledger."""
        product_id = product.id
        product.stock = -1

        with pytest.raises(InvalidStockOperationError):
            catalog_service.save(session, product)

        assert fresh_product(session, product_id).stock == 10

    def test_save_rejects_negative_category_quantity(self, session, sized_product):
        product_id = sized_product.id
        sized_product.categories[1].quantity = -2

        with pytest.raises(InvalidStockOperationError) as exc_info:
            catalog_service.save(session, sized_product)

        assert exc_info.value.payload['quantity'] == -2
        assert fresh_product(session, product_id).categories[1].quantity == 4

    def test_get_by_id_tolerates_bad_ids(self, session):
        assert catalog_service.get_by_id(session, None) is None
        assert catalog_service.get_by_id(session, 'abc') is None

    def test_get_or_404(self, session):
        with pytest.raises(NotFoundError):
            catalog_service.get_or_404(session, 123456)

    def test_product_view(self, session, sized_product):
        view = catalog_service.get_product_view(session, sized_product.id)

        assert view['name'] == 'T-Shirt'
        assert view['productCode'] == 'TS-001'
        assert [c['quantity'] for c in view['category']] == [2, 4]


class TestCacheService:
    """Tests for cache-aside behaviour and graceful degradation."""

    def test_disabled_cache_calls_loader(self, app):
        cache = CacheService(app)
        loader = MagicMock(return_value={'id': 1})

        assert cache.is_available() is False
        assert cache.memoize('products', '1', loader) == {'id': 1}
        assert cache.get('products', '1') is None
        assert cache.set('products', '1', {'id': 1}) is False
        loader.assert_called_once()

    def test_decimals_survive_serialization(self):
        payload = {'price': Decimal('19.90'), 'stock': 3}
        assert loads(dumps(payload)) == payload

    def test_redis_outage_degrades(self, app):
        cache = CacheService(app)
        cache.client = MagicMock()
        cache.client.ping.side_effect = RedisConnectionError('down')

        assert cache.is_available() is False
        assert cache.delete('products', '1') is False

    def test_hit_skips_loader(self, app):
        cache = CacheService(app)
        cache.client = MagicMock()
        cache.client.get.return_value = dumps({'stock': 7})
        loader = MagicMock()

        assert cache.memoize('products', '1', loader) == {'stock': 7}
        loader.assert_not_called()
        cache.client.get.assert_called_once_with('salesdesk:products:1')

    def test_invalidate_product_deletes_key(self, app, monkeypatch):
        cache = CacheService(app)
        cache.client = MagicMock()
        monkeypatch.setattr(cache_service, '_cache_service', cache)

        invalidate_product(42)

        cache.client.delete.assert_called_once_with('salesdesk:products:42')
