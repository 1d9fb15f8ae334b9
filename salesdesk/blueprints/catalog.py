"""Catalog blueprint - read access to products and their stock."""
from flask import Blueprint, jsonify

from salesdesk.database import get_session
from salesdesk.middleware import require_actor
from salesdesk.services import catalog_service

catalog_bp = Blueprint('catalog', __name__, url_prefix='/products')


@catalog_bp.route('/<int:product_id>', methods=['GET'])
@require_actor
def product_detail(product_id: int):
    """Product with overall stock and category quantities."""
    product = catalog_service.get_product_view(get_session(), product_id)
    return jsonify({'status': 'ok', 'data': product})
