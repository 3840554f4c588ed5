"""Field extraction for MCG item payloads.

Upstream providers name the same field differently (ItemID vs item_id,
Barcode vs ItemCode, ...). Candidates are tried in order, first non-empty
value wins.
"""
import math
import re

MCG_FIELD_CANDIDATES = {
    'mcg_id': ('ItemID', 'ItemId', 'itemID', 'id', 'itemId', 'item_id'),
    'barcode': ('Barcode', 'BarCode', 'ItemCode', 'barcode', 'item_code', 'code'),
    'quantity': ('StockQuantity', 'stock', 'item_inventory'),
}

ATTRIBUTE_FIELD_KEYS = (
    'item_attribute',
    'itemAttribute',
    'ItemAttribute',
    'item_attributes',
    'ItemAttributes',
    'attributes',
    'Attributes',
)

ARCHIVE_ATTRIBUTE_TOKENS = frozenset({'archived', 'archive', 'archived_product', '1'})
RESTORE_ATTRIBUTE_TOKENS = frozenset({'2', 'active', 'restored', 'unarchived'})

ATTRIBUTE_SPLIT_PATTERN = re.compile(r'[,;|]')


def extract_mcg_field(item, name: str) -> str:
    """
    Return the canonical field `name` from a remote item as a stripped string.

    Returns '' when none of the candidate keys holds a value.
    """
    if not isinstance(item, dict):
        return ''
    for key in MCG_FIELD_CANDIDATES[name]:
        value = item.get(key)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return ''


def extract_quantity(item) -> int:
    """Remote stock as a non-negative int; missing or non-numeric counts as 0."""
    raw = None
    if isinstance(item, dict):
        for key in MCG_FIELD_CANDIDATES['quantity']:
            if item.get(key) is not None:
                raw = item.get(key)
                break
    try:
        value = float(raw) if raw is not None else 0.0
    except (TypeError, ValueError):
        value = 0.0
    if not math.isfinite(value):
        value = 0.0
    return max(0, int(value))


def _pick_attribute_source(source):
    if isinstance(source, dict):
        for key in ATTRIBUTE_FIELD_KEYS:
            if source.get(key) is not None:
                return source[key]
    return source


def _collect_tags(value, tags: list):
    if value is None:
        return
    if isinstance(value, (list, tuple, set)):
        for entry in value:
            _collect_tags(entry, tags)
        return
    if isinstance(value, dict):
        for entry in value.values():
            _collect_tags(entry, tags)
        return
    text = str(value).strip()
    if not text:
        return
    segments = [s.strip() for s in ATTRIBUTE_SPLIT_PATTERN.split(text) if s.strip()]
    if len(segments) > 1:
        for segment in segments:
            _collect_tags(segment, tags)
        return
    tag = text.lower()
    if tag not in tags:
        tags.append(tag)


def extract_attribute_tags(source) -> list:
    """Flatten an item's attribute field (string, list or mapping) into lower-case tags."""
    tags = []
    _collect_tags(_pick_attribute_source(source), tags)
    return tags


def has_archived_attribute(source) -> bool:
    """True when the item carries an archive tag and no restore tag."""
    tags = extract_attribute_tags(source)
    if not tags:
        return False
    if any(tag in RESTORE_ATTRIBUTE_TOKENS for tag in tags):
        return False
    return any(tag in ARCHIVE_ATTRIBUTE_TOKENS for tag in tags)
