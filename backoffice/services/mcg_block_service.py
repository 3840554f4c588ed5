"""
MCG blocklist service.

When a product is deleted locally its MCG identifiers are blocked so the
reconciliation never pulls the item back, and the deletion can optionally be
propagated upstream.
"""
import logging
from typing import Dict, Any, Iterable, Optional

from sqlalchemy.exc import IntegrityError

from backoffice.models import McgItemBlock
from backoffice.exceptions import ValidationError

logger = logging.getLogger(__name__)

REASON_HARD_DELETE = 'hard_delete'
REASON_SOFT_DELETE = 'soft_delete'
REASON_MANUAL_DELETE = 'manual_delete'

DEFAULT_NOTES = {
    REASON_SOFT_DELETE: 'Auto-blocked because product was soft deleted',
    REASON_MANUAL_DELETE: 'Manually blocked via MCG delete action',
    REASON_HARD_DELETE: 'Auto-blocked because product was hard deleted',
}


def _clean(value) -> str:
    if value is None:
        return ''
    return str(value).strip()


def collect_mcg_identifiers(product=None, include_variants: bool = True,
                            additional: Optional[Iterable] = None) -> Dict[str, list]:
    """
    Gather the MCG item ids and barcodes that identify a product.

    `additional` may hold plain barcode strings or dicts with id/barcode keys.
    Returns {'mcg_ids': [...], 'barcodes': [...]} without duplicates.
    """
    mcg_ids, barcodes = [], []

    def push(target, raw):
        value = _clean(raw)
        if value and value not in target:
            target.append(value)

    if product is not None:
        push(mcg_ids, product.mcg_item_id)
        push(barcodes, product.mcg_barcode)
        if include_variants:
            for variant in product.variants:
                push(barcodes, variant.barcode)
                push(mcg_ids, variant.mcg_item_id)

    if additional is not None and not isinstance(additional, (list, tuple, set)):
        additional = [additional]
    for extra in additional or []:
        if not extra:
            continue
        if isinstance(extra, str):
            push(barcodes, extra)
        elif isinstance(extra, dict):
            push(mcg_ids, extra.get('mcg_item_id') or extra.get('item_id') or extra.get('itemId') or extra.get('id'))
            push(barcodes, extra.get('mcg_barcode') or extra.get('barcode') or extra.get('item_code') or extra.get('code'))

    return {'mcg_ids': mcg_ids, 'barcodes': barcodes}


def block_product_identifiers(session, product=None, actor_id=None, reason: str = REASON_HARD_DELETE,
                              identifiers: Optional[Dict[str, list]] = None, notes: Optional[str] = None) -> int:
    """
    Upsert blocklist rows for every identifier of a product.

    Returns the number of identifiers blocked.
    """
    if identifiers is None:
        identifiers = collect_mcg_identifiers(product)
    mcg_ids = identifiers.get('mcg_ids') or []
    barcodes = identifiers.get('barcodes') or []
    if not mcg_ids and not barcodes:
        return 0

    note = (notes or '').strip() or DEFAULT_NOTES.get(reason, DEFAULT_NOTES[REASON_HARD_DELETE])
    actor = str(actor_id) if actor_id is not None else None
    last_product_id = product.id if product is not None else None
    last_product_name = product.name if product is not None else ''

    entries = [('mcg_item_id', v) for v in mcg_ids] + [('barcode', v) for v in barcodes]
    try:
        for column, value in entries:
            block = session.query(McgItemBlock).filter(getattr(McgItemBlock, column) == value).first()
            if block is None:
                block = McgItemBlock(created_by=actor, **{column: value})
                session.add(block)
            else:
                block.updated_by = actor
            block.reason = reason
            block.notes = note
            block.last_product_id = last_product_id
            block.last_product_name = last_product_name or ''
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ValidationError('Blocklist entry was modified concurrently, retry')
    except Exception:
        session.rollback()
        raise

    logger.info(f"[MCG] Blocked {len(entries)} identifier(s) for product {last_product_id} ({reason})")
    return len(entries)


def load_blocked_identifiers(session) -> Dict[str, set]:
    """Snapshot of the blocklist, loaded once per sync run."""
    mcg_ids, barcodes = set(), set()
    for mcg_item_id, barcode in session.query(McgItemBlock.mcg_item_id, McgItemBlock.barcode).all():
        if mcg_item_id:
            mcg_ids.add(mcg_item_id)
        if barcode:
            barcodes.add(barcode)
    return {'mcg_ids': mcg_ids, 'barcodes': barcodes}


def propagate_mcg_deletion(client, product=None, identifiers: Optional[Dict[str, list]] = None,
                           mcg_enabled: bool = True, group=None) -> Dict[str, Any]:
    """Delete a product's items upstream. Skipped when MCG is disabled or nothing identifies it."""
    if identifiers is None:
        identifiers = collect_mcg_identifiers(product)
    payload = [{'item_id': v} for v in identifiers.get('mcg_ids') or []]
    payload += [{'item_code': v} for v in identifiers.get('barcodes') or []]
    if not payload:
        return {'skipped': True, 'reason': 'no_identifiers'}
    if not mcg_enabled:
        return {'skipped': True, 'reason': 'mcg_disabled'}

    result = client.delete_items(payload, group=group)
    logger.info(f"[MCG] Propagated deletion of product {getattr(product, 'id', None)} ({len(payload)} identifiers)")
    return {'skipped': False, 'result': result}
