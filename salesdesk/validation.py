"""Input coercion for sales requests."""
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from salesdesk.exceptions import InvalidInputError

CUSTOMER_NAME_MIN_LENGTH = 2


def parse_quantity(value, field='quantity') -> int:
    """Strict positive integer: rejects floats, decimals and booleans."""
    if value is None or value == '':
        raise InvalidInputError(f"{field} is required", field)
    if isinstance(value, bool):
        raise InvalidInputError(f"{field} must be an integer", field)
    if isinstance(value, int):
        quantity = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise InvalidInputError(f"{field} must be an integer, not a decimal", field)
        quantity = int(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped.lstrip('-').isdigit():
            raise InvalidInputError(f"{field} must be an integer", field)
        quantity = int(stripped)
    else:
        raise InvalidInputError(f"{field} must be an integer", field)

    if quantity <= 0:
        raise InvalidInputError(f"{field.capitalize()} must be greater than 0", field)
    return quantity


def parse_id(value, field):
    """Optional integer identifier. Empty values mean 'not provided'."""
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise InvalidInputError(f"{field} must be an integer id", field)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidInputError(f"{field} must be an integer id", field)


def parse_discount(value) -> Decimal:
    if value is None or value == '':
        return Decimal('0.00')
    try:
        discount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidInputError("discount must be a number", 'discount')
    if not discount.is_finite() or discount < 0:
        raise InvalidInputError("discount cannot be negative", 'discount')
    return discount.quantize(Decimal('0.01'))


def parse_sale_date(value, default=None) -> datetime:
    """ISO-8601 date or datetime; naive values are taken as UTC."""
    if value is None or value == '':
        return default if default is not None else datetime.now(timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        raise InvalidInputError("saleDate must be an ISO-8601 date", 'saleDate')
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_choice(enum_cls, value, field, default=None):
    if value is None or value == '':
        return default
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(getattr(value, 'value', value)).lower())
    except ValueError:
        allowed = ', '.join(member.value for member in enum_cls)
        raise InvalidInputError(f"{field} must be one of: {allowed}", field)


def _clean(value):
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def normalize_customer(customer, required=True) -> dict:
    """
    Trim customer fields and lower-case the email.

    Raises:
        InvalidInputError: If the name is missing or shorter than two characters
    """
    if not isinstance(customer, dict):
        if required:
            raise InvalidInputError("Customer name is required", 'customer.name')
        customer = {}

    name = _clean(customer.get('name'))
    if name is None:
        if required:
            raise InvalidInputError("Customer name is required", 'customer.name')
    elif len(name) < CUSTOMER_NAME_MIN_LENGTH:
        raise InvalidInputError(
            f"Customer name must be at least {CUSTOMER_NAME_MIN_LENGTH} characters long",
            'customer.name'
        )

    email = _clean(customer.get('email'))
    return {
        'name': name,
        'email': email.lower() if email else None,
        'phone': _clean(customer.get('phone')),
        'address': _clean(customer.get('address')),
    }


def clean_text(value):
    return _clean(value)
