"""
Sales transaction engine.

Couples the lifecycle of a Sale record to the stock ledger:

    [none] --create--> active --edit--> active
    active --cancel/return--> cancelled | returned   (terminal)
    active --hard delete--> [none]                    (terminal)

An active sale always corresponds to exactly one applied debit on its
(product, category) target. Every operation validates before writing, then
issues two dependent writes (sale row and stock). When the second write
fails, the first is undone through a CompensationLog.
"""
import logging
from decimal import Decimal
from functools import wraps
from typing import Optional

from flask import current_app
from sqlalchemy.orm.exc import StaleDataError

from salesdesk.models import Sale, SaleStatus, PaymentMethod, PaymentStatus
from salesdesk.exceptions import (
    SalesDeskError, AlreadyFinalizedError, ConcurrentModificationError, InactiveProductError,
    InsufficientStockError, InvalidInputError, NotFoundError
)
from salesdesk.services import catalog_service
from salesdesk.services.compensation import CompensationLog
from salesdesk.services.stock_ledger import StockLedger, StockTarget
from salesdesk.utils.metrics import sales_operations_total
from salesdesk.utils.serializers import sale_to_dict
from salesdesk.validation import (
    clean_text, normalize_customer, parse_choice, parse_discount, parse_id,
    parse_quantity, parse_sale_date
)

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')


def _instrumented(operation):
    """Count engine calls by outcome (ok or error kind)."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                result = fn(*args, **kwargs)
            except SalesDeskError as e:
                sales_operations_total.labels(operation=operation, outcome=e.kind).inc()
                raise
            except Exception:
                sales_operations_total.labels(operation=operation, outcome='error').inc()
                raise
            sales_operations_total.labels(operation=operation, outcome='ok').inc()
            return result
        return wrapper
    return decorator


def _price_str(value) -> str:
    return str(Decimal(value).quantize(CENT))


class SalesTransactionEngine:
    """Create, edit, cancel and delete sales together with their stock effect."""

    def __init__(self, session, compensation_timeout: float = 5.0, compensation_attempts: int = 3):
        self.session = session
        self.ledger = StockLedger(session)
        self.compensation_timeout = compensation_timeout
        self.compensation_attempts = compensation_attempts

    # ------------------------------------------------------------------
    # Loading & validation helpers
    # ------------------------------------------------------------------

    def _compensation_log(self, operation: str) -> CompensationLog:
        return CompensationLog(
            self.session, operation,
            timeout=self.compensation_timeout,
            attempts=self.compensation_attempts,
        )

    def _load_sale(self, sale_id) -> Sale:
        parsed_id = parse_id(sale_id, 'id')
        sale = self.session.get(Sale, parsed_id, populate_existing=True) if parsed_id else None
        if sale is None:
            raise NotFoundError(f'Sales record {sale_id} not found', {'saleId': sale_id})
        return sale

    def _sellable_product(self, product_id):
        product = catalog_service.get_or_404(self.session, product_id)
        if not product.is_active:
            raise InactiveProductError(product.name, product.id)
        return product

    def _ensure_available(self, target: StockTarget, requested: int) -> None:
        available = self.ledger.available(target)
        if available < requested:
            raise InsufficientStockError(self.ledger.label(target), requested, available)

    @staticmethod
    def _snapshot(product, category) -> dict:
        """Immutable copy of the product data the sale was priced from."""
        unit_price = category.price if category is not None else product.price
        return {
            'name': product.name,
            'product_code': product.product_code or str(product.id),
            'price': _price_str(unit_price),
            'image': product.image,
            'category': {
                'id': category.id,
                'name': category.name,
                'quantity': category.quantity,
                'price': _price_str(category.price),
            } if category is not None else None,
        }

    @staticmethod
    def _amounts(unit_price, quantity: int, discount: Decimal):
        total = (Decimal(unit_price) * quantity).quantize(CENT)
        if discount > total:
            raise InvalidInputError(
                f"Discount ({discount}) cannot exceed the total amount ({total})", 'discount'
            )
        return total, (total - discount).quantize(CENT)

    def _fail(self, compensation: CompensationLog, error: Exception) -> Exception:
        """Roll back, compensate and return the error the caller should raise."""
        self.session.rollback()
        if isinstance(error, StaleDataError):
            error = ConcurrentModificationError()
        compensation.compensate(error)
        return error

    def _check_unchanged(self, sale: Sale, expected_version: int) -> None:
        if not sale.is_active:
            raise AlreadyFinalizedError(sale.id, sale.status.value)
        if sale.version_id != expected_version:
            raise ConcurrentModificationError(
                f'Sales record {sale.id} was modified by another request. Please retry.',
                {'saleId': sale.id}
            )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, sale_id) -> dict:
        sale = self._load_sale(sale_id)
        product = catalog_service.get_by_id(self.session, sale.product_id)
        return sale_to_dict(sale, product)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    @_instrumented('create')
    def create(self, data: dict, actor_id) -> dict:
        """
        Record a sale and debit its stock target.

        The sale row is committed first, then the debit is applied. If the
        debit fails the row is deleted again so that no sale exists without
        the stock that backs it.
        """
        product_id = parse_id(data.get('productId'), 'productId')
        if product_id is None:
            raise InvalidInputError("Product ID is required", 'productId')
        quantity = parse_quantity(data.get('quantity'))
        customer = normalize_customer(data.get('customer'))
        category_id = parse_id(data.get('categoryId'), 'categoryId')
        sale_date = parse_sale_date(data.get('saleDate'))
        notes = clean_text(data.get('notes'))

        product = self._sellable_product(product_id)
        target = StockTarget(product.id, category_id)
        _, category = self.ledger.resolve(target)
        self._ensure_available(target, quantity)

        unit_price = category.price if category is not None else product.price
        total, final = self._amounts(unit_price, quantity, Decimal('0.00'))

        sale = Sale(
            product_id=product.id,
            category_id=category.id if category is not None else None,
            product_snapshot=self._snapshot(product, category),
            quantity=quantity,
            unit_price=unit_price,
            total_amount=total,
            discount=Decimal('0.00'),
            final_amount=final,
            customer_name=customer['name'],
            customer_email=customer['email'],
            customer_phone=customer['phone'],
            customer_address=customer['address'],
            status=SaleStatus.ACTIVE,
            payment_method=PaymentMethod.CASH,
            payment_status=PaymentStatus.COMPLETED,
            notes=notes,
            sale_date=sale_date,
            sales_person_id=actor_id,
            created_by_id=actor_id,
        )
        self.session.add(sale)
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        sale_id = sale.id

        compensation = self._compensation_log('create')
        compensation.record(f"delete sale {sale_id}", lambda: self._delete_row(sale_id))
        try:
            change = self.ledger.debit(target, quantity, actor_id)
        except Exception as e:
            raise self._fail(compensation, e)

        sale = self._load_sale(sale_id)
        product = catalog_service.get_or_404(self.session, product.id)
        logger.info(
            f"[SALES] Created sale {sale_id}: {quantity} x {target} "
            f"({change.previous} -> {change.new}) by actor {actor_id}"
        )
        return {
            'sale': sale_to_dict(sale, product),
            'productStockAfterSale': product.stock,
            'categoryInfo': {
                'categoryId': category_id,
                'categoryName': change.label,
                'categoryQuantityAfterSale': change.new,
            } if target.is_category else None,
        }

    def _delete_row(self, sale_id) -> None:
        sale = self.session.get(Sale, sale_id)
        if sale is not None:
            self.session.delete(sale)
            self.session.commit()

    # ------------------------------------------------------------------
    # Edit
    # ------------------------------------------------------------------

    def _plan_edit(self, old_target: StockTarget, old_quantity: int,
                   new_target: StockTarget, new_quantity: int):
        """
        Ledger operations for moving a sale from one (target, qty) to another.

        Every debit is validated against current availability here, before
        anything is written.
        """
        if old_target == new_target:
            delta = new_quantity - old_quantity
            if delta == 0:
                return []
            if delta > 0:
                self._ensure_available(new_target, delta)
            return [('adjust', old_target, -delta)]

        # Reverting must be possible even though no check is needed for a credit
        self.ledger.resolve(old_target)
        self._ensure_available(new_target, new_quantity)
        return [('credit', old_target, old_quantity), ('debit', new_target, new_quantity)]

    def _reverse(self, op: str, target: StockTarget, amount: int):
        if op == 'credit':
            return self.ledger.debit(target, amount)
        if op == 'debit':
            return self.ledger.credit(target, amount)
        return self.ledger.adjust(target, -amount)

    @_instrumented('edit')
    def edit(self, sale_id, data: dict, actor_id) -> dict:
        """
        Change product, category, quantity, customer or payment data of an
        active sale, reconciling stock across the change.

        Stock writes are applied first; if updating the sale then fails they
        are reversed.
        """
        sale = self._load_sale(sale_id)
        if not sale.is_active:
            raise AlreadyFinalizedError(sale.id, sale.status.value)

        product_id = parse_id(data.get('productId'), 'productId')
        if product_id is None:
            raise InvalidInputError("Product ID is required", 'productId')
        quantity = parse_quantity(data.get('quantity'))
        customer = normalize_customer(data.get('customer'))
        category_id = parse_id(data.get('categoryId'), 'categoryId')
        discount = parse_discount(data.get('discount'))
        payment_method = parse_choice(PaymentMethod, data.get('paymentMethod'), 'paymentMethod',
                                      sale.payment_method)
        payment_status = parse_choice(PaymentStatus, data.get('paymentStatus'), 'paymentStatus',
                                      sale.payment_status)
        sale_date = parse_sale_date(data.get('saleDate'), default=sale.sale_date)
        notes = clean_text(data['notes']) if 'notes' in data else sale.notes
        transaction_id = clean_text(data['transactionId']) if 'transactionId' in data else sale.transaction_id

        old_target = StockTarget(sale.product_id, sale.category_id)
        old_quantity = sale.quantity
        expected_version = sale.version_id

        product_changed = product_id != sale.product_id
        if product_changed:
            new_product = self._sellable_product(product_id)
        else:
            new_product = catalog_service.get_or_404(self.session, product_id)
        new_target = StockTarget(new_product.id, category_id)
        _, new_category = self.ledger.resolve(new_target)

        # Price and snapshot come from the live product, never the old snapshot
        unit_price = new_category.price if new_category is not None else new_product.price
        total, final = self._amounts(unit_price, quantity, discount)
        snapshot = self._snapshot(new_product, new_category)

        plan = self._plan_edit(old_target, old_quantity, new_target, quantity)

        compensation = self._compensation_log('edit')
        movements = []
        try:
            for op, target, amount in plan:
                movements.append(getattr(self.ledger, op)(target, amount, actor_id))
                compensation.record(
                    f"reverse {op} of {amount} on {target}",
                    lambda op=op, target=target, amount=amount: self._reverse(op, target, amount)
                )

            sale = self._load_sale(sale_id)
            self._check_unchanged(sale, expected_version)

            sale.product_id = new_target.product_id
            sale.category_id = new_target.category_id
            sale.product_snapshot = snapshot
            sale.quantity = quantity
            sale.unit_price = unit_price
            sale.total_amount = total
            sale.discount = discount
            sale.final_amount = final
            sale.customer_name = customer['name']
            sale.customer_email = customer['email']
            sale.customer_phone = customer['phone']
            sale.customer_address = customer['address']
            sale.payment_method = payment_method
            sale.payment_status = payment_status
            sale.transaction_id = transaction_id
            sale.notes = notes
            sale.sale_date = sale_date
            sale.updated_by_id = actor_id
            self.session.commit()
        except Exception as e:
            raise self._fail(compensation, e)

        sale = self._load_sale(sale_id)
        new_product = catalog_service.get_or_404(self.session, new_target.product_id)
        original_product = (
            catalog_service.get_by_id(self.session, old_target.product_id) if product_changed else None
        )
        new_category = new_product.find_category(new_target.category_id)

        logger.info(
            f"[SALES] Edited sale {sale.id}: {old_quantity} x {old_target} -> {quantity} x {new_target}"
        )
        return {
            'sale': sale_to_dict(sale, new_product),
            'stockChanges': {
                'originalProduct': {
                    'id': original_product.id,
                    'newStock': original_product.stock,
                } if original_product is not None else None,
                'newProduct': {
                    'id': new_product.id,
                    'newStock': new_product.stock,
                    'categoryId': new_target.category_id,
                    'newCategoryQuantity': new_category.quantity if new_category is not None else None,
                },
                'movements': [m.to_dict() for m in movements],
            },
        }

    @_instrumented('update_details')
    def update_details(self, sale_id, data: dict, actor_id) -> dict:
        """Update customer data and notes only. Never touches stock."""
        sale = self._load_sale(sale_id)

        if data.get('customer') is not None:
            customer = normalize_customer(data['customer'], required=False)
            sale.customer_name = customer['name'] or sale.customer_name
            sale.customer_email = customer['email'] or sale.customer_email
            sale.customer_phone = customer['phone'] or sale.customer_phone
            sale.customer_address = customer['address'] or sale.customer_address

        if 'notes' in data:
            sale.notes = clean_text(data['notes'])

        sale.updated_by_id = actor_id
        try:
            self.session.commit()
        except StaleDataError as e:
            self.session.rollback()
            raise ConcurrentModificationError() from e
        except Exception:
            self.session.rollback()
            raise

        product = catalog_service.get_by_id(self.session, sale.product_id)
        return sale_to_dict(sale, product)

    # ------------------------------------------------------------------
    # Cancel / return / delete
    # ------------------------------------------------------------------

    def _begin_reversal(self, sale_id, operation: str, actor_id):
        """Validate a reversal and credit the stored target. Returns (version, change, compensation)."""
        sale = self._load_sale(sale_id)
        if not sale.is_active:
            raise AlreadyFinalizedError(sale.id, sale.status.value)

        # Stored references, not the live product's current shape
        target = StockTarget(sale.product_id, sale.category_id)
        self.ledger.resolve(target)
        quantity = sale.quantity
        expected_version = sale.version_id

        compensation = self._compensation_log(operation)
        change = self.ledger.credit(target, quantity, actor_id)
        compensation.record(
            f"re-debit {quantity} on {target}",
            lambda: self.ledger.debit(target, quantity)
        )
        return expected_version, change, compensation

    @_instrumented('cancel')
    def cancel(self, sale_id, reason: Optional[str] = None, status=SaleStatus.CANCELLED, actor_id=None) -> dict:
        """
        Credit the sale's stock back and mark it cancelled or returned.

        Stock is credited first; if the status cannot be stored afterwards the
        credit is undone, since a credited but still active sale would be
        credited again on retry.
        """
        status = parse_choice(SaleStatus, status, 'status', SaleStatus.CANCELLED)
        if status == SaleStatus.ACTIVE:
            raise InvalidInputError("Status must be 'cancelled' or 'returned'", 'status')

        expected_version, change, compensation = self._begin_reversal(sale_id, status.value, actor_id)
        try:
            sale = self._load_sale(sale_id)
            self._check_unchanged(sale, expected_version)

            note = f"{status.value.upper()}: {clean_text(reason) or 'No reason provided'}"
            sale.status = status
            sale.notes = f"{sale.notes}\n\n{note}" if sale.notes else note
            sale.updated_by_id = actor_id
            self.session.commit()
        except Exception as e:
            raise self._fail(compensation, e)

        sale = self._load_sale(sale_id)
        product = catalog_service.get_by_id(self.session, sale.product_id)
        logger.info(f"[SALES] Sale {sale.id} {status.value}: {change.delta} unit(s) restored to {change.target}")
        return {
            'sale': sale_to_dict(sale, product),
            'stockReverted': change.to_dict(),
        }

    @_instrumented('delete')
    def delete(self, sale_id, actor_id=None) -> dict:
        """Credit the sale's stock back and remove the record."""
        expected_version, change, compensation = self._begin_reversal(sale_id, 'delete', actor_id)
        try:
            sale = self._load_sale(sale_id)
            self._check_unchanged(sale, expected_version)
            details = {
                'id': sale.id,
                'productName': (sale.product_snapshot or {}).get('name'),
                'quantity': sale.quantity,
                'finalAmount': sale.final_amount,
                'customer': sale.customer_name,
                'categoryId': sale.category_id,
            }
            self.session.delete(sale)
            self.session.commit()
        except Exception as e:
            raise self._fail(compensation, e)

        product = catalog_service.get_or_404(self.session, change.target.product_id)
        reversion = {
            'productId': product.id,
            'productName': product.name,
            'quantityReverted': change.delta,
            'type': 'category' if change.target.is_category else 'stock',
        }
        if change.target.is_category:
            category = product.find_category(change.target.category_id)
            reversion.update({
                'categoryId': change.target.category_id,
                'categoryName': category.name if category is not None else None,
                'previousCategoryQuantity': change.previous,
                'newCategoryQuantity': change.new,
            })
        else:
            reversion.update({'previousStock': change.previous, 'newStock': change.new})

        logger.info(f"[SALES] Deleted sale {details['id']} (actor {actor_id}); {change.delta} unit(s) restored")
        return {'deletedSale': details, 'reversionDetails': reversion}


def get_engine(session) -> SalesTransactionEngine:
    """Engine configured from the current Flask app."""
    config = current_app.config
    return SalesTransactionEngine(
        session,
        compensation_timeout=config.get('SALES_COMPENSATION_TIMEOUT', 5.0),
        compensation_attempts=config.get('SALES_COMPENSATION_ATTEMPTS', 3),
    )
