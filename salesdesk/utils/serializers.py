"""Dict representations of models for JSON responses."""


def _iso(value):
    return value.isoformat() if value is not None else None


def category_to_dict(category):
    return {
        'id': category.id,
        'name': category.name,
        'quantity': category.quantity,
        'price': category.price,
    }


def product_to_dict(product):
    return {
        'id': product.id,
        'productCode': product.product_code,
        'name': product.name,
        'description': product.description,
        'price': product.price,
        'stock': product.stock,
        'image': product.image,
        'isActive': product.is_active,
        'category': [category_to_dict(c) for c in product.categories],
        'updatedAt': _iso(product.updated_at),
    }


def product_ref_to_dict(product):
    """Short product reference embedded in sale responses."""
    if product is None:
        return None
    return {
        'id': product.id,
        'name': product.name,
        'productCode': product.product_code,
        'price': product.price,
        'stock': product.stock,
        'image': product.image,
    }


def sale_to_dict(sale, product=None):
    """
    Serialize a sale.

    ``product`` is the live product reference to embed; the snapshot is
    always returned as stored.
    """
    return {
        'id': sale.id,
        'product': product_ref_to_dict(product) if product is not None else {'id': sale.product_id},
        'categoryId': sale.category_id,
        'productSnapshot': sale.product_snapshot,
        'quantity': sale.quantity,
        'unitPrice': sale.unit_price,
        'totalAmount': sale.total_amount,
        'discount': sale.discount,
        'finalAmount': sale.final_amount,
        'customer': {
            'name': sale.customer_name,
            'email': sale.customer_email,
            'phone': sale.customer_phone,
            'address': sale.customer_address,
        },
        'status': sale.status.value,
        'paymentMethod': sale.payment_method.value,
        'paymentStatus': sale.payment_status.value,
        'transactionId': sale.transaction_id,
        'notes': sale.notes,
        'saleDate': _iso(sale.sale_date),
        'salesPerson': sale.sales_person_id,
        'createdBy': sale.created_by_id,
        'updatedBy': sale.updated_by_id,
        'createdAt': _iso(sale.created_at),
        'updatedAt': _iso(sale.updated_at),
    }
