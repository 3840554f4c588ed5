"""
Inventory service - multi-warehouse stock ledger.

Handles order reservations and releases across warehouse rows, direct admin
updates, warehouse transfers and the product stock rollup.

Every operation takes the SQLAlchemy session explicitly. Multi-item calls are
processed item by item: each item's row changes and its history record commit
together, and a failure on a later item never rolls back an earlier one.
"""
import logging
from collections import defaultdict
from typing import List, Dict, Optional, Any, Iterable

from flask import current_app, has_app_context
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from backoffice.models import (
    Product, ProductVariant, InventoryRow, InventoryHistory, InventoryChangeType,
    WarehouseMovement
)
from backoffice.exceptions import (
    BackofficeError, ValidationError, NotFoundError, ConflictError,
    InsufficientStockError, NoInventoryRowError, InternalError
)
from backoffice.services.cache_service import get_cache
from backoffice.services.inventory_alert_service import check_low_stock
from backoffice.services.warehouse_service import get_warehouse_or_404, resolve_default_warehouse

logger = logging.getLogger(__name__)

LOCKING_ROW = 'row'
LOCKING_NONE = 'none'
LOCKING_MODES = (LOCKING_ROW, LOCKING_NONE)

REASON_ORDER_RESERVATION = 'Order reservation'
REASON_MANUAL_INCREASE = 'Manual increase'
REASON_MANUAL_UPDATE = 'Manual update'
REASON_INITIAL_STOCK = 'Initial stock'
REASON_BULK_UPDATE = 'Bulk update'
REASON_VARIANT_UPDATE = 'Variant stock update'

CACHE_MODULE = 'inventory'


# =====================================================
# INPUT NORMALIZATION
# =====================================================

def _parse_int(value, field: str, minimum: Optional[int] = None) -> int:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f'{field} must be an integer')
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an integer')
    if isinstance(value, float) and value != parsed:
        raise ValidationError(f'{field} must be an integer')
    if minimum is not None and parsed < minimum:
        raise ValidationError(f'{field} must be >= {minimum}')
    return parsed


def _parse_id(value, field: str) -> int:
    if value in (None, ''):
        raise ValidationError(f'{field} is required')
    return _parse_int(value, field, minimum=1)


def normalize_item(raw: Dict[str, Any], label: str = 'reservation') -> Dict[str, Any]:
    """
    Validate one `{product_id, quantity, variant_id | size+color}` request.

    Accepts the camelCase keys used by the storefront (`product`, `variantId`).
    """
    if not isinstance(raw, dict):
        raise ValidationError(f'Invalid {label} item')

    product_id = raw.get('product_id', raw.get('product'))
    if not product_id:
        raise ValidationError(f'Invalid {label} item: product is required')
    quantity = raw.get('quantity')
    if not quantity or isinstance(quantity, bool):
        raise ValidationError(f'Invalid {label} item: quantity must be > 0')
    quantity = _parse_int(quantity, 'quantity', minimum=1)

    variant_id = raw.get('variant_id', raw.get('variantId'))
    if variant_id:
        return {
            'product_id': _parse_id(product_id, 'product_id'),
            'variant_id': _parse_id(variant_id, 'variant_id'),
            'size': None,
            'color': None,
            'quantity': quantity,
        }

    size = raw.get('size')
    color = raw.get('color')
    if not size or not color:
        raise ValidationError(f'Invalid {label} item: either variant_id or both size and color are required')
    return {
        'product_id': _parse_id(product_id, 'product_id'),
        'variant_id': None,
        'size': str(size),
        'color': str(color),
        'quantity': quantity,
    }


def _describe_key(item: Dict[str, Any]) -> str:
    if item.get('variant_id') is not None:
        return f"product {item['product_id']} variant {item['variant_id']}"
    return f"product {item['product_id']} ({item['size']}, {item['color']})"


def _key_filters(product_id, variant_id=None, size=None, color=None) -> list:
    if variant_id is not None:
        return [InventoryRow.product_id == product_id, InventoryRow.variant_id == variant_id]
    return [
        InventoryRow.product_id == product_id,
        InventoryRow.variant_id.is_(None),
        InventoryRow.size == size,
        InventoryRow.color == color,
    ]


def _check_locking(locking: str) -> str:
    if locking not in LOCKING_MODES:
        raise ValidationError(f'Unknown locking mode: {locking}')
    return locking


def _load_key_rows(session, item: Dict[str, Any], locking: str, warehouse_ids=None) -> List[InventoryRow]:
    """
    Load the ledger rows for a product key, optionally locked FOR UPDATE.

    Locked rows are refreshed from the database even when the session already
    holds them.
    """
    query = session.query(InventoryRow).filter(
        *_key_filters(item['product_id'], item.get('variant_id'), item.get('size'), item.get('color'))
    )
    if warehouse_ids is not None:
        query = query.filter(InventoryRow.warehouse_id.in_(list(warehouse_ids)))
    # Rows are always locked in primary-key order
    query = query.order_by(InventoryRow.id)
    if locking == LOCKING_ROW:
        query = query.with_for_update().execution_options(populate_existing=True)
    return query.all()


def _append_history(session, product_id, change_type: InventoryChangeType, delta: int,
                    resulting_quantity: Optional[int], reason: str, actor_id=None,
                    variant_id=None, inventory_id=None) -> InventoryHistory:
    record = InventoryHistory(
        product_id=product_id,
        variant_id=variant_id,
        inventory_id=inventory_id,
        type=change_type,
        delta=delta,
        resulting_quantity=resulting_quantity,
        reason=reason,
        user_id=str(actor_id) if actor_id is not None else None,
    )
    session.add(record)
    return record


def _ordered_unique(values: Iterable) -> list:
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


# =====================================================
# RESERVATION / RELEASE
# =====================================================

def reserve_items(
    items: List[Dict[str, Any]],
    session,
    actor_id=None,
    allow_negative_stock: bool = False,
    locking: str = LOCKING_ROW
) -> List[Dict[str, Any]]:
    """
    Reserve stock for order items across all warehouses.

    Per item: rows for the key are consumed largest-first until the requested
    quantity is covered. Without the negative-stock policy the item fails with
    InsufficientStockError and its rows are left untouched; with the policy
    the deficit lands on the largest row, which requires at least one row.

    Args:
        items: List of dicts {product_id, quantity, variant_id | size+color}
        session: SQLAlchemy session
        actor_id: Acting user (None for system flows)
        allow_negative_stock: Negative-stock policy flag
        locking: 'row' (SELECT ... FOR UPDATE per item) or 'none'

    Returns:
        One summary dict per item with the rows touched and quantities taken.

    Raises:
        ValidationError, InsufficientStockError, NoInventoryRowError, InternalError
    """
    if not items:
        return []
    _check_locking(locking)
    normalized = [normalize_item(it, 'reservation') for it in items]

    affected_products = []
    results = []
    try:
        for item in normalized:
            results.append(_reserve_one(session, item, actor_id, allow_negative_stock, locking))
            if item['product_id'] not in affected_products:
                affected_products.append(item['product_id'])
    except Exception:
        # Earlier items are already committed; keep their rollups in sync
        _recompute_quietly(session, affected_products, locking)
        raise

    for product_id in affected_products:
        recompute_product_stock(product_id, session, locking=locking)
    return results


def _reserve_one(session, item, actor_id, allow_negative_stock, locking) -> Dict[str, Any]:
    requested = item['quantity']
    try:
        rows = _load_key_rows(session, item, locking)
        rows.sort(key=lambda r: (-(r.quantity or 0), r.id))
        total_available = sum((r.quantity or 0) for r in rows)

        if not allow_negative_stock and total_available < requested:
            raise InsufficientStockError(_describe_key(item), requested, total_available)
        if allow_negative_stock and not rows:
            raise NoInventoryRowError(_describe_key(item))

        taken = []
        remaining = requested
        for row in rows:
            if remaining <= 0:
                break
            take = remaining if allow_negative_stock else max(0, min(remaining, row.quantity or 0))
            if take == 0:
                continue
            row.quantity = (row.quantity or 0) - take
            remaining -= take
            taken.append({'inventory_id': row.id, 'warehouse_id': row.warehouse_id, 'taken': take})

        if remaining > 0:
            # Deficit lands on the largest row (negative-stock policy only)
            rows[0].quantity -= remaining
            taken.append({'inventory_id': rows[0].id, 'warehouse_id': rows[0].warehouse_id, 'taken': remaining})
            remaining = 0

        _append_history(
            session,
            product_id=item['product_id'],
            variant_id=item.get('variant_id'),
            change_type=InventoryChangeType.DECREASE,
            delta=-requested,
            resulting_quantity=sum((r.quantity or 0) for r in rows),
            reason=REASON_ORDER_RESERVATION,
            actor_id=actor_id,
        )
        session.commit()
        logger.info(f"[INVENTORY] Reserved {requested} of {_describe_key(item)} from {len(taken)} row(s)")
        return {
            'product_id': item['product_id'],
            'variant_id': item.get('variant_id'),
            'requested': requested,
            'available_before': total_available,
            'rows': taken,
        }
    except BackofficeError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.exception(f"[INVENTORY] Reservation failed for {_describe_key(item)}")
        raise InternalError(f'Error reserving stock: {e}') from e


def increment_items(
    items: List[Dict[str, Any]],
    session,
    actor_id=None,
    reason: str = REASON_MANUAL_INCREASE,
    locking: str = LOCKING_ROW
) -> List[Dict[str, Any]]:
    """
    Return stock to the ledger (order cancellation, returns).

    The whole quantity goes to the row of the key with the smallest quantity.
    When the key has no rows the ledger is left unchanged (rows are only
    created through add_inventory) but the history record is still written.
    """
    if not items:
        return []
    _check_locking(locking)
    normalized = [normalize_item(it, 'increment') for it in items]

    affected_products = []
    results = []
    try:
        for item in normalized:
            results.append(_increment_one(session, item, actor_id, reason, locking))
            if item['product_id'] not in affected_products:
                affected_products.append(item['product_id'])
    except Exception:
        _recompute_quietly(session, affected_products, locking)
        raise

    for product_id in affected_products:
        recompute_product_stock(product_id, session, locking=locking)
    return results


def _increment_one(session, item, actor_id, reason, locking) -> Dict[str, Any]:
    quantity = item['quantity']
    try:
        rows = _load_key_rows(session, item, locking)
        rows.sort(key=lambda r: ((r.quantity or 0), r.id))

        target = rows[0] if rows else None
        if target is not None:
            target.quantity = (target.quantity or 0) + quantity
        else:
            logger.warning(
                f"[INVENTORY] No inventory rows for {_describe_key(item)}; "
                f"increment of {quantity} recorded in history only"
            )

        _append_history(
            session,
            product_id=item['product_id'],
            variant_id=item.get('variant_id'),
            inventory_id=target.id if target is not None else None,
            change_type=InventoryChangeType.INCREASE,
            delta=quantity,
            resulting_quantity=sum((r.quantity or 0) for r in rows),
            reason=reason,
            actor_id=actor_id,
        )
        session.commit()
        return {
            'product_id': item['product_id'],
            'variant_id': item.get('variant_id'),
            'quantity': quantity,
            'inventory_id': target.id if target is not None else None,
            'applied': target is not None,
        }
    except BackofficeError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.exception(f"[INVENTORY] Increment failed for {_describe_key(item)}")
        raise InternalError(f'Error increasing stock: {e}') from e


# =====================================================
# DIRECT UPDATES
# =====================================================

def update_inventory(inventory_id, quantity, session, actor_id=None, locking: str = LOCKING_ROW) -> InventoryRow:
    """Set a row's quantity directly (admin override)."""
    inventory_id = _parse_id(inventory_id, 'inventory_id')
    quantity = _parse_int(quantity, 'quantity', minimum=0)
    _check_locking(locking)

    try:
        query = session.query(InventoryRow).filter(InventoryRow.id == inventory_id)
        if locking == LOCKING_ROW:
            query = query.with_for_update().execution_options(populate_existing=True)
        row = query.first()
        if row is None:
            raise NotFoundError('Inventory record not found')

        previous = row.quantity or 0
        row.quantity = quantity
        change_type = InventoryChangeType.INCREASE if quantity > previous else InventoryChangeType.DECREASE
        _append_history(
            session,
            product_id=row.product_id,
            variant_id=row.variant_id,
            inventory_id=row.id,
            change_type=change_type,
            delta=quantity - previous,
            resulting_quantity=quantity,
            reason=REASON_MANUAL_UPDATE,
            actor_id=actor_id,
        )
        session.commit()
    except BackofficeError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        raise InternalError(f'Error updating inventory: {e}') from e

    recompute_product_stock(row.product_id, session, locking=locking)
    check_low_stock(row)
    return row


def add_inventory(data: Dict[str, Any], session, actor_id=None) -> InventoryRow:
    """
    Create a new ledger row.

    Fails with ConflictError when a row already exists for the same
    (product, variant-or-size/color, warehouse); use update_inventory instead.
    """
    if not isinstance(data, dict):
        raise ValidationError('Invalid inventory payload')
    if not data.get('product_id', data.get('product')):
        raise ValidationError('Product is required')
    product_id = _parse_id(data.get('product_id', data.get('product')), 'product_id')

    variant_id = data.get('variant_id', data.get('variantId'))
    using_variant = bool(variant_id)
    size = data.get('size')
    color = data.get('color')
    if using_variant:
        variant_id = _parse_id(variant_id, 'variant_id')
        size = color = None
    else:
        if not size:
            raise ValidationError('Size is required')
        if not color:
            raise ValidationError('Color is required')
        variant_id = None
        size, color = str(size), str(color)

    warehouse_id = data.get('warehouse_id', data.get('warehouse'))
    if not warehouse_id:
        raise ValidationError('Warehouse is required')
    warehouse_id = _parse_id(warehouse_id, 'warehouse_id')

    if data.get('quantity') is None:
        raise ValidationError('Valid quantity is required')
    quantity = _parse_int(data.get('quantity'), 'quantity', minimum=0)

    low_stock_threshold = data.get('low_stock_threshold', data.get('lowStockThreshold'))
    if low_stock_threshold is None:
        low_stock_threshold = (
            current_app.config.get('INVENTORY_DEFAULT_LOW_STOCK_THRESHOLD', 5) if has_app_context() else 5
        )
    low_stock_threshold = _parse_int(low_stock_threshold, 'low_stock_threshold', minimum=0)

    product = session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f'Product {product_id} not found')
    warehouse = get_warehouse_or_404(session, warehouse_id)

    attributes_snapshot = None
    if using_variant:
        variant = session.get(ProductVariant, variant_id)
        if variant is None or variant.product_id != product.id:
            raise ValidationError('Variant does not belong to the specified product')
        if isinstance(variant.attributes, (list, dict)):
            attributes_snapshot = variant.attributes

    existing = session.query(InventoryRow).filter(
        *_key_filters(product_id, variant_id, size, color),
        InventoryRow.warehouse_id == warehouse_id
    ).first()
    if existing:
        if using_variant:
            message = ('Inventory already exists for this product variant in this warehouse. '
                       'Please update the existing inventory instead.')
        else:
            message = (f'Inventory already exists for this product, size ({size}), and color ({color}) '
                       'combination in this warehouse. Please update the existing inventory instead.')
        raise ConflictError(message, {'inventory_id': existing.id})

    try:
        row = InventoryRow(
            product_id=product_id,
            variant_id=variant_id,
            size=size,
            color=color,
            warehouse_id=warehouse_id,
            quantity=quantity,
            low_stock_threshold=low_stock_threshold,
            location=data.get('location') or warehouse.name,
            attributes_snapshot=attributes_snapshot,
        )
        session.add(row)
        session.flush()
        _append_history(
            session,
            product_id=product_id,
            variant_id=variant_id,
            inventory_id=row.id,
            change_type=InventoryChangeType.INCREASE,
            delta=quantity,
            resulting_quantity=quantity,
            reason=REASON_INITIAL_STOCK,
            actor_id=actor_id,
        )
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ConflictError('Inventory already exists for this product key in this warehouse. '
                            'Please update the existing inventory instead.')
    except Exception as e:
        session.rollback()
        logger.exception('[INVENTORY] Error adding inventory')
        raise InternalError('Internal server error while adding inventory') from e

    recompute_product_stock(product_id, session)
    return row


def bulk_update_inventory(items: List[Dict[str, Any]], session, actor_id=None) -> int:
    """
    Set quantities for several rows ({id, quantity} each).

    Unknown ids are skipped. Returns the number of rows updated.
    """
    if not isinstance(items, list):
        raise ValidationError('items must be a list')
    parsed = []
    for raw in items:
        if not isinstance(raw, dict):
            raise ValidationError('Invalid bulk update item')
        parsed.append((
            _parse_id(raw.get('id', raw.get('_id')), 'id'),
            _parse_int(raw.get('quantity'), 'quantity', minimum=0),
        ))

    updated_rows = []
    for inventory_id, quantity in parsed:
        try:
            row = session.get(InventoryRow, inventory_id)
            if row is None:
                logger.warning(f"[INVENTORY] Bulk update skipped unknown inventory {inventory_id}")
                continue
            previous = row.quantity or 0
            row.quantity = quantity
            _append_history(
                session,
                product_id=row.product_id,
                variant_id=row.variant_id,
                inventory_id=row.id,
                change_type=InventoryChangeType.UPDATE,
                delta=quantity - previous,
                resulting_quantity=quantity,
                reason=REASON_BULK_UPDATE,
                actor_id=actor_id,
            )
            session.commit()
            updated_rows.append(row)
        except Exception as e:
            session.rollback()
            raise InternalError(f'Error performing bulk update: {e}') from e

    for product_id in _ordered_unique(r.product_id for r in updated_rows):
        recompute_product_stock(product_id, session)
    for row in updated_rows:
        check_low_stock(row)
    return len(updated_rows)


def upsert_inventory_quantity(
    session,
    product_id,
    warehouse_id,
    quantity: int,
    variant_id=None,
    size=None,
    color=None,
    actor_id=None,
    reason: str = REASON_VARIANT_UPDATE,
    create_missing: bool = True,
    locking: str = LOCKING_ROW
):
    """
    Set the absolute quantity of one (product, key, warehouse) row.

    Finds or creates the row, writes an `update` history record and recomputes
    the product rollup. Returns (row, created); row is None when the row does
    not exist and create_missing is False.
    """
    item = {'product_id': product_id, 'variant_id': variant_id, 'size': size, 'color': color}
    for attempt in range(2):
        try:
            rows = _load_key_rows(session, item, locking, warehouse_ids=[warehouse_id])
            row = rows[0] if rows else None
            created = False
            if row is None:
                if not create_missing:
                    return None, False
                row = InventoryRow(
                    product_id=product_id,
                    variant_id=variant_id,
                    size=None if variant_id is not None else size,
                    color=None if variant_id is not None else color,
                    warehouse_id=warehouse_id,
                    quantity=0,
                )
                session.add(row)
                session.flush()
                created = True

            previous = row.quantity or 0
            row.quantity = quantity
            _append_history(
                session,
                product_id=product_id,
                variant_id=variant_id,
                inventory_id=row.id,
                change_type=InventoryChangeType.UPDATE,
                delta=quantity - previous,
                resulting_quantity=quantity,
                reason=reason,
                actor_id=actor_id,
            )
            session.commit()
            break
        except IntegrityError:
            # Row inserted concurrently: retry against the existing row
            session.rollback()
            if attempt:
                raise ConflictError(f'Could not upsert inventory for {_describe_key(item)}')
        except BackofficeError:
            session.rollback()
            raise
        except Exception as e:
            session.rollback()
            raise InternalError(f'Error upserting inventory: {e}') from e

    recompute_product_stock(product_id, session, locking=locking)
    return row, created


def set_variant_inventory(session, product_id, variant_id, quantity, warehouse_id=None, actor_id=None) -> InventoryRow:
    """
    Set the quantity of a variant in one warehouse (default warehouse when omitted).

    The row is created only when quantity > 0; setting 0 requires an existing row.
    """
    product_id = _parse_id(product_id, 'product_id')
    variant_id = _parse_id(variant_id, 'variant_id')
    quantity = _parse_int(quantity, 'quantity', minimum=0)

    product = session.get(Product, product_id)
    if product is None:
        raise NotFoundError('Product not found')
    if not any(v.id == variant_id for v in product.variants):
        raise ValidationError('Variant does not belong to the specified product')

    if warehouse_id:
        warehouse = get_warehouse_or_404(session, _parse_id(warehouse_id, 'warehouse_id'))
    else:
        warehouse = resolve_default_warehouse(session)

    row, _created = upsert_inventory_quantity(
        session,
        product_id=product_id,
        warehouse_id=warehouse.id,
        quantity=quantity,
        variant_id=variant_id,
        actor_id=actor_id,
        reason=REASON_VARIANT_UPDATE,
        create_missing=quantity > 0,
    )
    if row is None:
        raise NotFoundError('Inventory record not found for variant in this warehouse')
    check_low_stock(row)
    return row


def set_inventory_by_combo(session, product_id, quantity, variant_id=None, size=None, color=None,
                           actor_id=None) -> InventoryRow:
    """Set the quantity of the first row matching a product key in any warehouse."""
    product_id = _parse_id(product_id, 'product_id')
    quantity = _parse_int(quantity, 'quantity', minimum=0)
    if not variant_id and (not size or not color):
        raise ValidationError('Provide either variant_id or both color and size')

    row = session.query(InventoryRow).filter(
        *_key_filters(product_id, _parse_id(variant_id, 'variant_id') if variant_id else None, size, color)
    ).order_by(InventoryRow.id).first()
    if row is None:
        raise NotFoundError('Inventory record not found')
    return update_inventory(row.id, quantity, session, actor_id=actor_id)


# =====================================================
# WAREHOUSE TRANSFER
# =====================================================

def move_stock_between_warehouses(
    session,
    product_id,
    quantity,
    from_warehouse_id,
    to_warehouse_id,
    actor_id,
    reason: Optional[str] = None,
    variant_id=None,
    size=None,
    color=None,
    locking: str = LOCKING_ROW
):
    """
    Move quantity from one warehouse row to another for the same product key.

    Transfers never create negative balances, whatever the negative-stock
    policy. The destination row is created at 0 when missing.

    Returns:
        (source_row, destination_row)
    """
    if not product_id or not from_warehouse_id or not to_warehouse_id or not actor_id or not quantity:
        raise ValidationError('All fields are required and quantity must be > 0')
    product_id = _parse_id(product_id, 'product_id')
    quantity = _parse_int(quantity, 'quantity', minimum=1)
    from_warehouse_id = _parse_id(from_warehouse_id, 'from_warehouse_id')
    to_warehouse_id = _parse_id(to_warehouse_id, 'to_warehouse_id')
    if from_warehouse_id == to_warehouse_id:
        raise ValidationError('Source and destination warehouses must differ')
    if not variant_id and (not size or not color):
        raise ValidationError('Either variant_id or both size and color are required')
    _check_locking(locking)

    item = {
        'product_id': product_id,
        'variant_id': _parse_id(variant_id, 'variant_id') if variant_id else None,
        'size': None if variant_id else str(size),
        'color': None if variant_id else str(color),
    }

    try:
        destination_warehouse = get_warehouse_or_404(session, to_warehouse_id)

        # Both sides in one query so the locks follow primary-key order
        rows = _load_key_rows(session, item, locking, warehouse_ids=(from_warehouse_id, to_warehouse_id))
        source = next((r for r in rows if r.warehouse_id == from_warehouse_id), None)
        destination = next((r for r in rows if r.warehouse_id == to_warehouse_id), None)
        if source is None or (source.quantity or 0) < quantity:
            raise InsufficientStockError(
                f'{_describe_key(item)} in source warehouse',
                quantity,
                source.quantity if source is not None else 0
            )

        if destination is None:
            destination = InventoryRow(
                product_id=product_id,
                variant_id=item['variant_id'],
                size=item['size'],
                color=item['color'],
                warehouse_id=to_warehouse_id,
                quantity=0,
                location=destination_warehouse.name,
                attributes_snapshot=source.attributes_snapshot,
            )
            session.add(destination)

        source.quantity -= quantity
        destination.quantity = (destination.quantity or 0) + quantity

        session.add(WarehouseMovement(
            product_id=product_id,
            variant_id=item['variant_id'],
            size=item['size'],
            color=item['color'],
            quantity=quantity,
            from_warehouse_id=from_warehouse_id,
            to_warehouse_id=to_warehouse_id,
            user_id=str(actor_id),
            reason=reason,
        ))
        session.commit()
    except BackofficeError:
        session.rollback()
        raise
    except IntegrityError:
        session.rollback()
        raise ConflictError('Destination inventory row was created concurrently; retry the transfer')
    except Exception as e:
        session.rollback()
        raise InternalError(f'Error moving stock: {e}') from e

    logger.info(
        f"[INVENTORY] Moved {quantity} of {_describe_key(item)} "
        f"from warehouse {from_warehouse_id} to {to_warehouse_id}"
    )
    recompute_product_stock(product_id, session, locking=locking)
    return source, destination


# =====================================================
# ROLLUP
# =====================================================

def recompute_product_stock(product_id, session, commit: bool = True, locking: str = LOCKING_ROW) -> Optional[int]:
    """
    Recompute Product.stock (and every variant's stock) from the ledger.

    Always a full recompute: with variants, each variant gets the sum of its
    rows and the product gets the sum of its variants; without variants the
    product gets the sum of all its rows. In row mode the product row is
    locked before the ledger is summed, so concurrent recomputes serialize.
    """
    _check_locking(locking)
    try:
        query = session.query(Product).filter(Product.id == product_id)
        if locking == LOCKING_ROW:
            query = query.with_for_update().execution_options(populate_existing=True)
        product = query.first()
        if product is None:
            logger.warning(f"[INVENTORY] Rollup skipped: product {product_id} not found")
            return None

        rows = session.query(InventoryRow.variant_id, InventoryRow.quantity).filter(
            InventoryRow.product_id == product_id
        ).all()

        if product.variants:
            per_variant = defaultdict(int)
            for variant_id, quantity in rows:
                if variant_id is not None:
                    per_variant[variant_id] += quantity or 0
            for variant in product.variants:
                variant.stock = per_variant.get(variant.id, 0)
            product.stock = sum((v.stock or 0) for v in product.variants)
        else:
            product.stock = sum((quantity or 0) for _variant_id, quantity in rows)

        total = product.stock
        if commit:
            session.commit()
    except Exception as e:
        session.rollback()
        logger.exception(f"[INVENTORY] Error updating product stock for {product_id}")
        raise InternalError('Error updating product stock') from e

    _invalidate_inventory_cache()
    return total


def _recompute_quietly(session, product_ids, locking: str = LOCKING_ROW):
    for product_id in product_ids:
        try:
            recompute_product_stock(product_id, session, locking=locking)
        except Exception as e:
            logger.error(f"[INVENTORY] Rollup recompute failed for product {product_id}: {e}")


# =====================================================
# READS
# =====================================================

def get_all_inventory(session) -> List[Dict[str, Any]]:
    """All ledger rows ordered by product name, size, color."""
    def loader():
        rows = session.query(InventoryRow).join(Product).order_by(
            Product.name, InventoryRow.size, InventoryRow.color, InventoryRow.id
        ).all()
        return [r.to_dict() for r in rows]
    return _cached('all', loader)


def get_product_inventory(product_id, session) -> List[Dict[str, Any]]:
    product_id = _parse_id(product_id, 'product_id')
    rows = session.query(InventoryRow).filter(
        InventoryRow.product_id == product_id
    ).order_by(InventoryRow.size, InventoryRow.color, InventoryRow.id).all()
    return [r.to_dict() for r in rows]


def get_low_stock_items(session) -> List[Dict[str, Any]]:
    """Rows at or below their own low-stock threshold, lowest first."""
    def loader():
        rows = session.query(InventoryRow).filter(
            InventoryRow.quantity <= InventoryRow.low_stock_threshold
        ).order_by(InventoryRow.quantity, InventoryRow.id).all()
        return [r.to_dict() for r in rows]
    return _cached('low_stock', loader)


def get_variant_stock_summary(product_id, session) -> List[Dict[str, Any]]:
    """Summed quantity per variant across warehouses."""
    product_id = _parse_id(product_id, 'product_id')
    results = session.query(
        InventoryRow.variant_id,
        func.coalesce(func.sum(InventoryRow.quantity), 0).label('quantity')
    ).filter(
        InventoryRow.product_id == product_id
    ).group_by(InventoryRow.variant_id).order_by(InventoryRow.variant_id).all()
    return [{'variant_id': variant_id, 'quantity': int(quantity)} for variant_id, quantity in results]


def get_inventory_history(product_id, session, limit: int = 100) -> List[Dict[str, Any]]:
    product_id = _parse_id(product_id, 'product_id')
    records = session.query(InventoryHistory).filter(
        InventoryHistory.product_id == product_id
    ).order_by(InventoryHistory.created_at.desc(), InventoryHistory.id.desc()).limit(limit).all()
    return [r.to_dict() for r in records]


# =====================================================
# PRIVATE HELPERS
# =====================================================

def _cached(key: str, loader):
    if not has_app_context():
        return loader()
    try:
        cache = get_cache()
    except RuntimeError:
        return loader()
    return cache.memoize(CACHE_MODULE, key, loader, current_app.config.get('CACHE_INVENTORY_TTL', 30))


def _invalidate_inventory_cache():
    """Drop the inventory read caches after a ledger mutation."""
    try:
        get_cache().invalidate_module(CACHE_MODULE)
    except RuntimeError:
        # Cache not initialized (CLI scripts, bare sessions)
        return
