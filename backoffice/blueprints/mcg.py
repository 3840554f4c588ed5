"""MCG blueprint - reconciliation control endpoints."""
from functools import wraps
from flask import Blueprint, request, jsonify, current_app, g
from backoffice.database import get_session
from backoffice.exceptions import NotFoundError, ValidationError
from backoffice.middleware import require_auth, require_role
from backoffice.models import Product
from backoffice.services.mcg_client import get_mcg_client
from backoffice.services.mcg_sync_service import sync_product_from_mcg
from backoffice.services.mcg_block_service import (
    collect_mcg_identifiers, block_product_identifiers, propagate_mcg_deletion, REASON_MANUAL_DELETE
)

mcg_bp = Blueprint('mcg', __name__, url_prefix='/api/mcg')


def require_mcg_enabled(f):
    """Decorator: 412 when the MCG integration is switched off."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_app.config.get('MCG_ENABLED'):
            return jsonify({'status': 'error', 'message': 'MCG integration is disabled'}), 412
        return f(*args, **kwargs)
    return decorated_function


def _scheduler():
    return current_app.extensions['mcg_scheduler']


@mcg_bp.route('/auto-sync/status', methods=['GET'])
@require_auth
def auto_sync_status():
    return jsonify(_scheduler().status())


@mcg_bp.route('/auto-sync/run-now', methods=['POST'])
@require_auth
@require_role('admin')
@require_mcg_enabled
def auto_sync_run_now():
    result = _scheduler().run_once(force=True, actor_id=g.actor_id)
    if result is None:
        return jsonify({'status': 'busy', 'message': 'A sync run is already in progress'}), 409
    return jsonify({'status': 'success', 'result': result})


@mcg_bp.route('/sync-product/<int:product_id>', methods=['POST'])
@require_auth
@require_role('admin', 'staff')
@require_mcg_enabled
def sync_product(product_id):
    data = request.get_json(silent=True) or {}
    result = sync_product_from_mcg(
        get_session(),
        get_mcg_client(),
        product_id,
        mcg_item_id=data.get('mcg_item_id'),
        mcg_barcode=data.get('mcg_barcode'),
        actor_id=g.actor_id
    )
    return jsonify({'status': 'success', 'result': result})


@mcg_bp.route('/blocks', methods=['POST'])
@require_auth
@require_role('admin')
def create_blocks():
    """
    Block MCG identifiers so the sync never pulls them back.

    Body: {product_id?, identifiers?: [barcode | {item_id, barcode}], reason?,
    notes?, propagate?: bool}
    """
    data = request.get_json(silent=True) or {}
    session = get_session()

    product = None
    if data.get('product_id'):
        product = session.get(Product, data['product_id'])
        if product is None:
            raise NotFoundError('Product not found')

    identifiers = collect_mcg_identifiers(product, additional=data.get('identifiers'))
    if not identifiers['mcg_ids'] and not identifiers['barcodes']:
        raise ValidationError('No MCG identifiers to block')

    blocked = block_product_identifiers(
        session,
        product,
        actor_id=g.actor_id,
        reason=data.get('reason') or REASON_MANUAL_DELETE,
        identifiers=identifiers,
        notes=data.get('notes')
    )

    propagation = None
    if data.get('propagate'):
        propagation = propagate_mcg_deletion(
            get_mcg_client(),
            product,
            identifiers=identifiers,
            mcg_enabled=bool(current_app.config.get('MCG_ENABLED')),
            group=current_app.config.get('MCG_GROUP')
        )

    return jsonify({'status': 'success', 'blocked': blocked, 'identifiers': identifiers,
                    'propagation': propagation}), 201
