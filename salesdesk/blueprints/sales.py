"""Sales blueprint - JSON endpoints for the stock-mutating sales engine."""
from flask import Blueprint, request, jsonify, current_app, g, Response
from typing import Tuple, Union

from salesdesk.database import get_session
from salesdesk.exceptions import InvalidInputError
from salesdesk.middleware import require_actor
from salesdesk.services.sales_service import get_engine

sales_bp = Blueprint('sales', __name__, url_prefix='/sales')


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidInputError("Request body must be a JSON object")
    return data


def _ok(message: str, data, status: int = 200) -> Tuple[Response, int]:
    return jsonify({'status': 'ok', 'message': message, 'data': data}), status


@sales_bp.route('/', methods=['POST'])
@require_actor
def create_sale() -> Union[Response, Tuple[Response, int]]:
    """Record a sale and debit stock."""
    engine = get_engine(get_session())
    result = engine.create(_json_body(), g.actor_id)
    current_app.logger.info(f"Sale {result['sale']['id']} created by actor {g.actor_id}")
    return _ok('Sales record created successfully', result, 201)


@sales_bp.route('/<int:sale_id>', methods=['GET'])
@require_actor
def detail_sale(sale_id: int) -> Union[Response, Tuple[Response, int]]:
    engine = get_engine(get_session())
    return _ok('Sales record fetched', engine.get(sale_id))


@sales_bp.route('/<int:sale_id>', methods=['PUT', 'PATCH'])
@require_actor
def update_sale(sale_id: int) -> Union[Response, Tuple[Response, int]]:
    """Update customer data and notes (no stock effect)."""
    engine = get_engine(get_session())
    sale = engine.update_details(sale_id, _json_body(), g.actor_id)
    return _ok('Sales record updated successfully', sale)


@sales_bp.route('/<int:sale_id>/history', methods=['PUT'])
@require_actor
def edit_sale_history(sale_id: int) -> Union[Response, Tuple[Response, int]]:
    """Edit product, category or quantity of a sale, reconciling stock."""
    engine = get_engine(get_session())
    result = engine.edit(sale_id, _json_body(), g.actor_id)
    return _ok('Sales history updated successfully', result)


@sales_bp.route('/<int:sale_id>/cancel', methods=['POST'])
@require_actor
def cancel_sale(sale_id: int) -> Union[Response, Tuple[Response, int]]:
    """Cancel or return a sale, restoring its stock."""
    body = _json_body()
    engine = get_engine(get_session())
    result = engine.cancel(
        sale_id,
        reason=body.get('reason'),
        status=body.get('status') or 'cancelled',
        actor_id=g.actor_id,
    )
    return _ok(f"Sale {result['sale']['status']} successfully", result)


@sales_bp.route('/<int:sale_id>', methods=['DELETE'])
@require_actor
def delete_sale(sale_id: int) -> Union[Response, Tuple[Response, int]]:
    """
    Delete a sale and restore its stock.

    With SALES_DELETE_POLICY='soft' (default) the record is kept with status
    cancelled; with 'hard' it is removed.
    """
    body = _json_body()
    engine = get_engine(get_session())

    if current_app.config.get('SALES_DELETE_POLICY', 'soft') == 'hard':
        result = engine.delete(sale_id, actor_id=g.actor_id)
        return _ok('Sales history deleted successfully', result)

    result = engine.cancel(sale_id, reason=body.get('reason'), actor_id=g.actor_id)
    return _ok('Sale cancelled successfully', result)
