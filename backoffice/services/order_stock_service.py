"""
Order stock service - bridge between order finalization and the ledger.

Reservation failures propagate: an order whose stock cannot be reserved must
not be created.
"""
import logging
from typing import List, Dict, Any

from flask import current_app

from backoffice.services.inventory_service import reserve_items, increment_items

logger = logging.getLogger(__name__)

REASON_ORDER_CANCELLED = 'Order cancelled'


def _ledger_policy():
    cfg = current_app.config
    return (
        bool(cfg.get('INVENTORY_ALLOW_NEGATIVE_STOCK', False)),
        cfg.get('INVENTORY_LOCKING', 'row'),
    )


def build_stock_items(order_lines: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Map order lines to ledger items ({product_id, quantity, variant_id | size+color})."""
    items = []
    for line in order_lines or []:
        item = {
            'product_id': line.get('product_id', line.get('product')),
            'quantity': line.get('quantity'),
        }
        variant_id = line.get('variant_id', line.get('variantId'))
        if variant_id:
            item['variant_id'] = variant_id
        else:
            item['size'] = line.get('size')
            item['color'] = line.get('color')
        items.append(item)
    return items


def reserve_for_order(order_lines: List[Dict[str, Any]], session, actor_id=None, order_ref=None):
    """Reserve stock for every line of an order."""
    allow_negative, locking = _ledger_policy()
    items = build_stock_items(order_lines)
    logger.info(f"[INVENTORY] Reserving {len(items)} line(s) for order {order_ref}")
    return reserve_items(
        items,
        session,
        actor_id=actor_id,
        allow_negative_stock=allow_negative,
        locking=locking
    )


def release_for_order(order_lines: List[Dict[str, Any]], session, actor_id=None,
                      reason: str = REASON_ORDER_CANCELLED, order_ref=None):
    """Return an order's stock to the ledger (cancellation, refund)."""
    _allow_negative, locking = _ledger_policy()
    items = build_stock_items(order_lines)
    logger.info(f"[INVENTORY] Releasing {len(items)} line(s) for order {order_ref}: {reason}")
    return increment_items(items, session, actor_id=actor_id, reason=reason, locking=locking)
