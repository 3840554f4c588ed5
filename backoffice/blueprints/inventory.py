"""Inventory blueprint - JSON API over the multi-warehouse stock ledger."""
from flask import Blueprint, request, jsonify, current_app, g
from backoffice.database import get_session
from backoffice.exceptions import ValidationError
from backoffice.middleware import require_auth, require_role
from backoffice.services import inventory_service

inventory_bp = Blueprint('inventory', __name__, url_prefix='/api/inventory')

ADMIN_ROLES = ('admin', 'staff')
ORDER_ROLES = ('admin', 'service')


def _payload() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('JSON object body is required')
    return data


def _items(data: dict) -> list:
    items = data.get('items')
    if not isinstance(items, list) or not items:
        raise ValidationError('items must be a non-empty list')
    return items


def _locking():
    return current_app.config.get('INVENTORY_LOCKING', inventory_service.LOCKING_ROW)


@inventory_bp.route('/', methods=['GET'])
@require_auth
def list_inventory():
    return jsonify(inventory_service.get_all_inventory(get_session()))


@inventory_bp.route('/product/<int:product_id>', methods=['GET'])
@require_auth
def product_inventory(product_id):
    return jsonify(inventory_service.get_product_inventory(product_id, get_session()))


@inventory_bp.route('/product/<int:product_id>/variants/summary', methods=['GET'])
@require_auth
def variant_summary(product_id):
    return jsonify(inventory_service.get_variant_stock_summary(product_id, get_session()))


@inventory_bp.route('/product/<int:product_id>/history', methods=['GET'])
@require_auth
def product_history(product_id):
    limit = request.args.get('limit', 100, type=int)
    return jsonify(inventory_service.get_inventory_history(product_id, get_session(), limit=min(max(limit, 1), 500)))


@inventory_bp.route('/low-stock', methods=['GET'])
@require_auth
def low_stock():
    return jsonify(inventory_service.get_low_stock_items(get_session()))


@inventory_bp.route('/', methods=['POST'])
@require_auth
@require_role(*ADMIN_ROLES)
def add_inventory():
    row = inventory_service.add_inventory(_payload(), get_session(), actor_id=g.actor_id)
    return jsonify(row.to_dict()), 201


@inventory_bp.route('/by-variant', methods=['PUT'])
@require_auth
@require_role(*ADMIN_ROLES)
def update_by_variant():
    data = _payload()
    row = inventory_service.set_variant_inventory(
        get_session(),
        product_id=data.get('product_id'),
        variant_id=data.get('variant_id'),
        quantity=data.get('quantity'),
        warehouse_id=data.get('warehouse_id'),
        actor_id=g.actor_id
    )
    return jsonify(row.to_dict())


@inventory_bp.route('/by-combo', methods=['PUT'])
@require_auth
@require_role(*ADMIN_ROLES)
def update_by_combo():
    data = _payload()
    row = inventory_service.set_inventory_by_combo(
        get_session(),
        product_id=data.get('product_id'),
        quantity=data.get('quantity'),
        variant_id=data.get('variant_id'),
        size=data.get('size'),
        color=data.get('color'),
        actor_id=g.actor_id
    )
    return jsonify(row.to_dict())


@inventory_bp.route('/<int:inventory_id>', methods=['PUT'])
@require_auth
@require_role(*ADMIN_ROLES)
def update_inventory(inventory_id):
    data = _payload()
    row = inventory_service.update_inventory(
        inventory_id, data.get('quantity'), get_session(), actor_id=g.actor_id, locking=_locking()
    )
    return jsonify(row.to_dict())


@inventory_bp.route('/bulk', methods=['POST'])
@require_auth
@require_role(*ADMIN_ROLES)
def bulk_update():
    updated = inventory_service.bulk_update_inventory(_items(_payload()), get_session(), actor_id=g.actor_id)
    return jsonify({'status': 'success', 'updated': updated})


@inventory_bp.route('/move', methods=['POST'])
@require_auth
@require_role(*ADMIN_ROLES)
def move_stock():
    data = _payload()
    source, destination = inventory_service.move_stock_between_warehouses(
        get_session(),
        product_id=data.get('product_id'),
        quantity=data.get('quantity'),
        from_warehouse_id=data.get('from_warehouse_id'),
        to_warehouse_id=data.get('to_warehouse_id'),
        actor_id=g.actor_id,
        reason=data.get('reason'),
        variant_id=data.get('variant_id'),
        size=data.get('size'),
        color=data.get('color'),
        locking=_locking()
    )
    return jsonify({'status': 'success', 'source': source.to_dict(), 'destination': destination.to_dict()})


@inventory_bp.route('/reserve', methods=['POST'])
@require_auth
@require_role(*ORDER_ROLES)
def reserve():
    results = inventory_service.reserve_items(
        _items(_payload()),
        get_session(),
        actor_id=g.actor_id,
        allow_negative_stock=current_app.config.get('INVENTORY_ALLOW_NEGATIVE_STOCK', False),
        locking=_locking()
    )
    return jsonify({'status': 'success', 'results': results})


@inventory_bp.route('/increment', methods=['POST'])
@require_auth
@require_role(*ORDER_ROLES)
def increment():
    data = _payload()
    results = inventory_service.increment_items(
        _items(data),
        get_session(),
        actor_id=g.actor_id,
        reason=data.get('reason') or inventory_service.REASON_MANUAL_INCREASE,
        locking=_locking()
    )
    return jsonify({'status': 'success', 'results': results})


@inventory_bp.route('/product/<int:product_id>/recompute', methods=['POST'])
@require_auth
@require_role(*ADMIN_ROLES)
def recompute(product_id):
    stock = inventory_service.recompute_product_stock(product_id, get_session())
    if stock is None:
        return jsonify({'status': 'error', 'message': 'Product not found'}), 404
    return jsonify({'status': 'success', 'product_id': product_id, 'stock': stock})
