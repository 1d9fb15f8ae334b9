"""
Unit tests for the stock ledger.
"""

import threading
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, delete, update
from sqlalchemy.orm import sessionmaker

from salesdesk.exceptions import (
    CategoryNotFoundError, InsufficientStockError, InvalidStockOperationError, NotFoundError
)
from salesdesk.database import Base
from salesdesk.models import Product, ProductCategory
from salesdesk.services.stock_ledger import StockLedger, StockTarget
from tests.conftest import ACTOR_ID
from tests.helpers import category_id, fresh_product


@pytest.fixture
def ledger(session):
    return StockLedger(session)


class TestDebitCredit:
    """Tests for guarded debits and unbounded credits."""

    def test_debit_overall_stock(self, session, ledger, product):
        change = ledger.debit(StockTarget(product.id), 4, ACTOR_ID)

        assert (change.previous, change.new, change.delta) == (10, 6, -4)
        assert change.label == '"Widget"'
        stored = fresh_product(session, product.id)
        assert stored.stock == 6
        assert stored.updated_by_id == ACTOR_ID

    def test_debit_exact_stock_reaches_zero(self, session, ledger, product):
        ledger.debit(StockTarget(product.id), 10)
        assert fresh_product(session, product.id).stock == 0

    def test_debit_beyond_stock_writes_nothing(self, session, ledger, product):
        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.debit(StockTarget(product.id), 11)

        assert exc_info.value.available == 10
        assert exc_info.value.requested == 11
        assert fresh_product(session, product.id).stock == 10

    def test_debit_category_only(self, session, ledger, sized_product):
        large = category_id(sized_product, 'Large')

        change = ledger.debit(StockTarget(sized_product.id, large), 2)

        product = fresh_product(session, sized_product.id)
        assert product.find_category(large).quantity == 0
        assert product.stock == 5
        assert change.label == '"T-Shirt" (Large)'
        assert change.to_dict()['type'] == 'category'

    def test_credit_has_no_upper_bound(self, session, ledger, product):
        ledger.credit(StockTarget(product.id), 500)
        assert fresh_product(session, product.id).stock == 510

    @pytest.mark.parametrize('amount', [0, -1, 2.5, True])
    def test_amount_must_be_positive_integer(self, ledger, product, amount):
        with pytest.raises(InvalidStockOperationError):
            ledger.debit(StockTarget(product.id), amount)
        with pytest.raises(InvalidStockOperationError):
            ledger.credit(StockTarget(product.id), amount)

    def test_unknown_targets(self, ledger, product):
        with pytest.raises(NotFoundError):
            ledger.debit(StockTarget(424242), 1)
        with pytest.raises(CategoryNotFoundError):
            ledger.credit(StockTarget(product.id, 424242), 1)

    def test_debit_sees_concurrent_write(self, session, ledger, product):
        """The guard is evaluated against the stored value, not a stale read."""
        target = StockTarget(product.id)
        assert ledger.available(target) == 10

        # Another request sells 8 units after our availability check
        session.execute(update(Product.__table__).where(Product.__table__.c.id == product.id).values(stock=2))
        session.commit()

        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.debit(target, 5)

        assert exc_info.value.available == 2
        assert fresh_product(session, product.id).stock == 2


class TestAdjust:
    """Tests for signed adjustments."""

    def test_positive_and_negative(self, session, ledger, product):
        target = StockTarget(product.id)

        ledger.adjust(target, -3)
        ledger.adjust(target, 1)

        assert fresh_product(session, product.id).stock == 8

    def test_zero_is_noop(self, session, ledger, product):
        change = ledger.adjust(StockTarget(product.id), 0)

        assert change.previous == change.new == 10

    def test_negative_result_rejected(self, session, ledger, sized_product):
        small = category_id(sized_product, 'Small')

        with pytest.raises(InvalidStockOperationError) as exc_info:
            ledger.adjust(StockTarget(sized_product.id, small), -5)

        assert exc_info.value.payload == {'available': 4, 'delta': -5}
        assert fresh_product(session, sized_product.id).find_category(small).quantity == 4


class TestRemovedTargets:
    """Rows that disappear between resolution and the write."""

    def test_category_removed_before_write(self, session, ledger, sized_product, monkeypatch):
        large = category_id(sized_product, 'Large')
        build_label = ledger.label

        def label_then_remove(target):
            label = build_label(target)
            session.execute(delete(ProductCategory.__table__).where(ProductCategory.__table__.c.id == large))
            session.commit()
            return label

        monkeypatch.setattr(ledger, 'label', label_then_remove)

        with pytest.raises(CategoryNotFoundError):
            ledger.credit(StockTarget(sized_product.id, large), 1)

    def test_product_removed_before_write(self, session, ledger, product, monkeypatch):
        product_id = product.id
        build_label = ledger.label

        def label_then_remove(target):
            label = build_label(target)
            session.execute(delete(Product.__table__).where(Product.__table__.c.id == product_id))
            session.commit()
            return label

        monkeypatch.setattr(ledger, 'label', label_then_remove)

        with pytest.raises(NotFoundError):
            ledger.debit(StockTarget(product_id), 1)


class TestParallelDebits:
    """Two requests debiting the same target at the same time."""

    @pytest.fixture
    def file_db(self, tmp_path):
        db_engine = create_engine(f"sqlite:///{tmp_path / 'stock.db'}", connect_args={'timeout': 15})
        Base.metadata.create_all(bind=db_engine)
        yield sessionmaker(bind=db_engine)
        db_engine.dispose()

    def _debit_in_thread(self, factory, target, amount, barrier, outcomes):
        db = factory()
        try:
            barrier.wait()
            StockLedger(db).debit(target, amount)
            outcomes.append('ok')
        except InsufficientStockError as e:
            outcomes.append(e.available)
        finally:
            db.close()

    def test_only_one_of_two_debits_succeeds(self, app, file_db):
        """Stock 5, two parallel debits of 3: one wins, the other sees 2 left."""
        setup = file_db()
        widget = Product(name='Widget', price=Decimal('10.00'), stock=5)
        setup.add(widget)
        setup.commit()
        target = StockTarget(widget.id)
        setup.close()

        for _ in range(5):
            db = file_db()
            db.execute(update(Product.__table__).where(Product.__table__.c.id == target.product_id).values(stock=5))
            db.commit()
            db.close()

            barrier = threading.Barrier(2)
            outcomes = []
            threads = [
                threading.Thread(target=self._debit_in_thread, args=(file_db, target, 3, barrier, outcomes))
                for _ in range(2)
            ]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

            assert sorted(outcomes, key=str) == [2, 'ok']
            db = file_db()
            assert db.get(Product, target.product_id).stock == 2
            db.close()
