"""Shared helpers for the test suite."""
from salesdesk.models import Product, Sale


def category_id(product, name):
    """Id of the named sub-category."""
    return next(c.id for c in product.categories if c.name == name)


def fresh_product(session, product_id):
    session.expire_all()
    return session.get(Product, product_id)


def fresh_sale(session, sale_id):
    session.expire_all()
    return session.get(Sale, sale_id)


def sale_payload(product_id, quantity, **extra):
    payload = {
        'productId': product_id,
        'quantity': quantity,
        'customer': {'name': 'Jane Doe', 'email': ' Jane@Example.COM ', 'phone': ' 555-0100 '},
    }
    payload.update(extra)
    return payload
