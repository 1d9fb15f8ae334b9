"""
Stock Ledger - owner of the non-negative stock invariant.

A target is a product's overall stock, or one of its sub-category
quantities. Every mutation is a single conditional UPDATE so the availability
check and the write cannot be split by a concurrent request:

    UPDATE product SET stock = stock - :n WHERE id = :id AND stock >= :n

Zero affected rows means the guard failed and nothing was written.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from sqlalchemy import select, update

from salesdesk.models import Product, ProductCategory
from salesdesk.exceptions import (
    CategoryNotFoundError, InsufficientStockError, InvalidStockOperationError, NotFoundError
)
from salesdesk.services.cache_service import invalidate_product
from salesdesk.utils.metrics import stock_movements_total

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockTarget:
    """A (product, optional sub-category) pair whose quantity is tracked."""
    product_id: int
    category_id: Optional[int] = None

    @property
    def is_category(self) -> bool:
        return self.category_id is not None

    def __str__(self):
        if self.is_category:
            return f"product {self.product_id} / category {self.category_id}"
        return f"product {self.product_id}"


@dataclass(frozen=True)
class StockChange:
    """Outcome of one applied ledger operation."""
    target: StockTarget
    label: str
    previous: int
    new: int

    @property
    def delta(self) -> int:
        return self.new - self.previous

    def to_dict(self) -> dict:
        return {
            'productId': self.target.product_id,
            'categoryId': self.target.category_id,
            'type': 'category' if self.target.is_category else 'stock',
            'name': self.label,
            'previousQuantity': self.previous,
            'newQuantity': self.new,
            'delta': self.delta,
        }


class StockLedger:
    """Debit, credit and adjust quantities of stock targets."""

    def __init__(self, session):
        self.session = session

    def resolve(self, target: StockTarget) -> Tuple[Product, Optional[ProductCategory]]:
        """
        Load the product (and category) a target points to.

        Raises:
            NotFoundError: If the product does not exist
            CategoryNotFoundError: If the category is not part of the product
        """
        product = self.session.get(Product, target.product_id)
        if product is None:
            raise NotFoundError(
                f'Product {target.product_id} not found',
                {'productId': target.product_id}
            )
        if not target.is_category:
            return product, None

        category = product.find_category(target.category_id)
        if category is None:
            raise CategoryNotFoundError(target.product_id, target.category_id)
        return product, category

    def label(self, target: StockTarget) -> str:
        product, category = self.resolve(target)
        if category is not None:
            return f'"{product.name}" ({category.name})'
        return f'"{product.name}"'

    def available(self, target: StockTarget) -> int:
        """Current quantity at the target, read from the database."""
        self.resolve(target)
        return self._read_quantity(target)

    def debit(self, target: StockTarget, amount: int, actor_id=None) -> StockChange:
        """
        Decrease the target by ``amount``.

        Raises:
            InsufficientStockError: If fewer than ``amount`` units are available
        """
        self._require_positive(amount, 'debit')
        return self._apply(target, -amount, actor_id, direction='debit')

    def credit(self, target: StockTarget, amount: int, actor_id=None) -> StockChange:
        """Increase the target by ``amount``. There is no upper bound."""
        self._require_positive(amount, 'credit')
        return self._apply(target, amount, actor_id, direction='credit')

    def adjust(self, target: StockTarget, delta: int, actor_id=None) -> StockChange:
        """
        Apply a signed delta.

        Raises:
            InvalidStockOperationError: If the result would be negative
        """
        if delta == 0:
            product, category = self.resolve(target)
            current = category.quantity if category is not None else product.stock
            return StockChange(target, self.label(target), current, current)
        try:
            return self._apply(target, delta, actor_id, direction='adjust')
        except InsufficientStockError as e:
            raise InvalidStockOperationError(
                f'Invalid operation would result in negative quantity for {self.label(target)}. '
                f'Available: {e.available}, adjustment: {delta}',
                {'available': e.available, 'delta': delta}
            ) from e

    def _require_positive(self, amount, operation):
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidStockOperationError(
                f'{operation} amount must be a positive integer, got {amount!r}',
                {'amount': amount}
            )

    def _column(self, target: StockTarget):
        if target.is_category:
            table = ProductCategory.__table__
            return table, table.c.quantity, target.category_id
        table = Product.__table__
        return table, table.c.stock, target.product_id

    def _read_quantity(self, target: StockTarget) -> int:
        table, column, row_id = self._column(target)
        return self.session.execute(
            select(column).where(table.c.id == row_id)
        ).scalar_one()

    def _apply(self, target: StockTarget, delta: int, actor_id, direction: str) -> StockChange:
        label = self.label(target)
        table, column, row_id = self._column(target)

        stmt = update(table).where(table.c.id == row_id)
        if target.is_category:
            stmt = stmt.where(table.c.product_id == target.product_id)
        if delta < 0:
            stmt = stmt.where(column >= -delta)
        stmt = stmt.values({column.name: column + delta})

        try:
            result = self.session.execute(stmt)
            if result.rowcount != 1:
                self.session.rollback()
                # The row may have been removed since the label was built
                self.resolve(target)
                available = self._read_quantity(target)
                logger.info(
                    f"[STOCK] Rejected {direction} of {abs(delta)} on {target}: available {available}"
                )
                raise InsufficientStockError(label, -delta, available)

            if actor_id is not None:
                product_table = Product.__table__
                self.session.execute(
                    update(product_table)
                    .where(product_table.c.id == target.product_id)
                    .values(updated_by_id=actor_id)
                )

            # Row is write-locked by this transaction, so the read sees our value
            new_quantity = self._read_quantity(target)
            self.session.commit()
        except (InsufficientStockError, NotFoundError):
            raise
        except Exception:
            self.session.rollback()
            raise

        # Identity-map copies are stale after a Core UPDATE
        self.session.expire_all()
        invalidate_product(target.product_id)
        stock_movements_total.labels(direction='out' if delta < 0 else 'in').inc(abs(delta))

        change = StockChange(target, label, new_quantity - delta, new_quantity)
        logger.info(f"[STOCK] {direction} {target}: {change.previous} -> {change.new}")
        return change
