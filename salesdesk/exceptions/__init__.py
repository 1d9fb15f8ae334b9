"""Custom exceptions for the SalesDesk application."""


class SalesDeskError(Exception):
    """Base exception for all application errors."""
    kind = 'InternalError'

    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['kind'] = self.kind
        rv['status'] = 'error'
        return rv


class BusinessLogicError(SalesDeskError):
    """Exception raised for business logic violations."""
    kind = 'BusinessLogic'

    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class InvalidInputError(BusinessLogicError):
    """Raised when request data fails validation."""
    kind = 'InvalidInput'

    def __init__(self, message, field=None):
        super().__init__(message, 400, {'field': field} if field else None)
        self.field = field


class NotFoundError(SalesDeskError):
    """Exception raised when a resource is not found."""
    kind = 'NotFound'

    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class CategoryNotFoundError(NotFoundError):
    """Raised when a category reference does not resolve on its product."""
    kind = 'CategoryNotFound'

    def __init__(self, product_id, category_id):
        super().__init__(
            f"Category {category_id} not found for product {product_id}",
            {'productId': product_id, 'categoryId': category_id}
        )
        self.product_id = product_id
        self.category_id = category_id


class InactiveProductError(BusinessLogicError):
    """Raised when selling a product that is not active."""
    kind = 'InactiveProduct'

    def __init__(self, product_name, product_id=None):
        super().__init__(
            f'Product "{product_name}" is not available for sale',
            payload={'productId': product_id}
        )


def _format_qty(value):
    return f"{int(value)}" if value % 1 == 0 else f"{value:.2f}".rstrip('0').rstrip('.')


class InsufficientStockError(BusinessLogicError):
    """Raised when an operation fails due to lack of stock."""
    kind = 'InsufficientStock'

    def __init__(self, target_label, requested, available):
        message = (
            f"Insufficient stock for {target_label}. "
            f"Available: {_format_qty(available)}, Requested: {_format_qty(requested)}"
        )
        super().__init__(message, status_code=409, payload={
            'available': available,
            'requested': requested,
        })
        self.available = available
        self.requested = requested


class InvalidStockOperationError(BusinessLogicError):
    """Raised when a stock adjustment would leave a negative quantity."""
    kind = 'InvalidStockOperation'

    def __init__(self, message, payload=None):
        super().__init__(message, status_code=409, payload=payload)


class AlreadyFinalizedError(BusinessLogicError):
    """Raised when mutating a sale that is no longer active."""
    kind = 'AlreadyFinalized'

    def __init__(self, sale_id, current_status):
        super().__init__(
            f"Sale {sale_id} is already {current_status}",
            status_code=409,
            payload={'saleId': sale_id, 'currentStatus': current_status}
        )
        self.current_status = current_status


class ConcurrentModificationError(SalesDeskError):
    """Raised when the store detects a conflicting concurrent write."""
    kind = 'ConcurrentModification'

    def __init__(self, message="The record was modified by another request. Please retry.", payload=None):
        super().__init__(message, 409, payload)


class CompensationFailedError(SalesDeskError):
    """Raised when a compensating write could not undo a partial operation.

    Carries the error that triggered the compensation and every error the
    compensation itself hit. Requires manual reconciliation.
    """
    kind = 'CompensationFailed'

    def __init__(self, operation, original_error, compensation_errors):
        self.operation = operation
        self.original_error = original_error
        self.compensation_errors = list(compensation_errors)
        message = (
            f"Operation '{operation}' failed and could not be rolled back: "
            f"{original_error}. Manual stock reconciliation required."
        )
        super().__init__(message, 500, {
            'operation': operation,
            'originalError': str(original_error),
            'compensationErrors': [str(e) for e in self.compensation_errors],
        })


class UnauthorizedError(SalesDeskError):
    """Raised when the request carries no authenticated actor."""
    kind = 'Unauthorized'

    def __init__(self, message="Authentication required"):
        super().__init__(message, 401)
