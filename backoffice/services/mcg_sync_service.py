"""
MCG reconciliation service.

Pulls the item list from MCG and overwrites the local ledger with the remote
quantities (MCG is authoritative). Quantities land on the Main Warehouse row
of the matched product key.

The background scheduler is a single-flight periodic job: a non-blocking lock
guards against overlapping runs and a last-run timestamp gates the cadence.
"""
import logging
import threading
import time
from contextlib import nullcontext
from datetime import datetime, timezone
from typing import Dict, Any, Optional, List

from flask import has_app_context

from backoffice.database import get_session
from backoffice.exceptions import NotFoundError, ValidationError, RemoteSyncItemError
from backoffice.models import Product, ProductVariant
from backoffice.blueprints.metrics import (
    mcg_sync_items_total, mcg_sync_runs_total, mcg_sync_skipped_ticks_total
)
from backoffice.services.inventory_service import upsert_inventory_quantity, LOCKING_ROW
from backoffice.services.mcg_block_service import load_blocked_identifiers
from backoffice.services.mcg_client import get_mcg_client
from backoffice.services.warehouse_service import ensure_main_warehouse
from backoffice.utils.mcg_fields import extract_mcg_field, extract_quantity, has_archived_attribute

logger = logging.getLogger(__name__)

REASON_MCG_SYNC = 'MCG sync'
DEFAULT_SIZE = 'Default'
DEFAULT_COLOR = 'Default'
MAX_PAGES = 10000

OUTCOME_UPDATED = 'updated'
OUTCOME_CREATED = 'created'
OUTCOME_NO_MATCH = 'skipped_no_match'
OUTCOME_ARCHIVED = 'skipped_archived'
OUTCOME_INACTIVE = 'skipped_inactive'
OUTCOME_BLOCKED = 'skipped_blocked'
OUTCOME_ERROR = 'errors'

COUNTER_KEYS = (
    'processed', OUTCOME_UPDATED, OUTCOME_CREATED, OUTCOME_NO_MATCH,
    OUTCOME_ARCHIVED, OUTCOME_INACTIVE, OUTCOME_BLOCKED, OUTCOME_ERROR,
)


def sync_settings_from_config(config) -> Dict[str, Any]:
    """Cadence and paging settings injected into the sync run and scheduler."""
    try:
        pull_every = int(config.get('MCG_PULL_EVERY_MINUTES', 15))
    except (TypeError, ValueError):
        pull_every = 15
    return {
        'enabled': bool(config.get('MCG_ENABLED', False)),
        'auto_pull_enabled': bool(config.get('MCG_AUTO_PULL_ENABLED', False)),
        'pull_every_minutes': max(1, pull_every),
        'page_size': int(config.get('MCG_PAGE_SIZE', 200) or 200),
        'locking': config.get('INVENTORY_LOCKING', LOCKING_ROW),
    }


def extract_items(data) -> List[Dict[str, Any]]:
    """Item list from an upstream payload ({Items}, {items}, {data} or a bare list)."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in ('Items', 'items', 'data'):
            value = data.get(key)
            if isinstance(value, list):
                return value
    return []


def match_product(session, mcg_id: str, barcode: str):
    """
    Find the local product for a remote item.

    Priority: variant barcode, then product barcode, then product MCG item id.
    Returns (product, variant) where variant is set only on a variant barcode hit.
    """
    if barcode:
        variant = session.query(ProductVariant).filter(
            ProductVariant.barcode == barcode
        ).order_by(ProductVariant.id).first()
        if variant is not None:
            return variant.product, variant

        product = session.query(Product).filter(
            Product.mcg_barcode == barcode
        ).order_by(Product.id).first()
        if product is not None:
            return product, None

    if mcg_id:
        product = session.query(Product).filter(
            Product.mcg_item_id == mcg_id
        ).order_by(Product.id).first()
        if product is not None:
            return product, None

    return None, None


def _target_key(product, variant, barcode: str = '') -> Dict[str, Any]:
    """Ledger key the remote quantity is written to."""
    if variant is None and barcode:
        variant = next((v for v in product.variants if (v.barcode or '').strip() == barcode), None)
    if variant is None and len(product.variants) == 1:
        variant = product.variants[0]
    if variant is not None:
        return {'variant_id': variant.id, 'size': None, 'color': None}
    return {'variant_id': None, 'size': DEFAULT_SIZE, 'color': DEFAULT_COLOR}


def process_item(session, item, warehouse, blocked: Dict[str, set], actor_id=None,
                 locking: str = LOCKING_ROW) -> str:
    """
    Reconcile one remote item and return its outcome.

    Raises:
        RemoteSyncItemError: The item payload is unusable
    """
    if not isinstance(item, dict):
        raise RemoteSyncItemError('MCG item is not an object', item)

    mcg_id = extract_mcg_field(item, 'mcg_id')
    barcode = extract_mcg_field(item, 'barcode')
    quantity = extract_quantity(item)

    if has_archived_attribute(item):
        return OUTCOME_ARCHIVED
    if (mcg_id and mcg_id in blocked['mcg_ids']) or (barcode and barcode in blocked['barcodes']):
        return OUTCOME_BLOCKED

    product, variant = match_product(session, mcg_id, barcode)
    if product is None:
        return OUTCOME_NO_MATCH
    if not product.active:
        return OUTCOME_INACTIVE

    key = _target_key(product, variant)
    _row, created = upsert_inventory_quantity(
        session,
        product_id=product.id,
        warehouse_id=warehouse.id,
        quantity=quantity,
        actor_id=actor_id,
        reason=REASON_MCG_SYNC,
        locking=locking,
        **key
    )
    return OUTCOME_CREATED if created else OUTCOME_UPDATED


def run_mcg_sync(session, client, settings: Dict[str, Any], actor_id=None) -> Dict[str, Any]:
    """
    Run one full reconciliation pass.

    Per-item failures are counted under `errors` and never abort the run.
    Failures to fetch a page propagate (McgApiError).

    Returns:
        Counters: processed, updated, created, skipped_no_match,
        skipped_archived, skipped_inactive, skipped_blocked, errors, pages
    """
    counters = {key: 0 for key in COUNTER_KEYS}
    counters['pages'] = 0
    started = time.monotonic()

    warehouse = ensure_main_warehouse(session)
    blocked = load_blocked_identifiers(session)
    locking = settings.get('locking', LOCKING_ROW)

    def process_page(items):
        for item in items:
            counters['processed'] += 1
            try:
                outcome = process_item(session, item, warehouse, blocked, actor_id=actor_id, locking=locking)
            except Exception as e:
                session.rollback()
                outcome = OUTCOME_ERROR
                logger.warning(f"[MCG] Sync item failed: {e}")
            counters[outcome] += 1
            mcg_sync_items_total.labels(outcome=outcome).inc()

    try:
        if client.uplicali:
            items = extract_items(client.get_items_list())
            counters['pages'] = 1
            process_page(items)
        else:
            page_size = settings.get('page_size') or 200
            for page_number in range(1, MAX_PAGES + 1):
                items = extract_items(client.get_items_list(page_number, page_size))
                if not items:
                    break
                counters['pages'] += 1
                process_page(items)
                if len(items) < page_size:
                    break
    except Exception:
        mcg_sync_runs_total.labels(result='failed').inc()
        logger.exception(f"[MCG] Sync run failed after {counters['processed']} item(s)")
        raise

    mcg_sync_runs_total.labels(result='success').inc()
    counters['duration_seconds'] = round(time.monotonic() - started, 3)
    logger.info(
        f"[MCG] Sync finished: processed={counters['processed']} updated={counters['updated']} "
        f"created={counters['created']} no_match={counters['skipped_no_match']} "
        f"archived={counters['skipped_archived']} inactive={counters['skipped_inactive']} "
        f"blocked={counters['skipped_blocked']} errors={counters['errors']}"
    )
    return counters


def sync_product_from_mcg(session, client, product_id, mcg_item_id: Optional[str] = None,
                          mcg_barcode: Optional[str] = None, actor_id=None) -> Dict[str, Any]:
    """Pull a single product's quantity from MCG and link its identifiers."""
    product = session.get(Product, product_id)
    if product is None:
        raise NotFoundError('Product not found')

    mcg_item_id = (mcg_item_id or product.mcg_item_id or '').strip()
    mcg_barcode = (mcg_barcode or product.mcg_barcode or '').strip()
    if not mcg_item_id and not mcg_barcode:
        raise ValidationError('mcg_item_id or mcg_barcode is required')

    filter = {'ItemID': mcg_item_id} if mcg_item_id else {'Barcode': mcg_barcode}
    items = extract_items(client.get_items_list(1, 50, filter))
    match = None
    for item in items:
        if not isinstance(item, dict):
            continue
        if mcg_item_id and extract_mcg_field(item, 'mcg_id') == mcg_item_id:
            match = item
            break
        if mcg_barcode and extract_mcg_field(item, 'barcode') == mcg_barcode:
            match = item
            break
    if match is None:
        raise NotFoundError('Item not found in MCG')

    remote_id = extract_mcg_field(match, 'mcg_id') or mcg_item_id
    remote_barcode = extract_mcg_field(match, 'barcode') or mcg_barcode
    quantity = extract_quantity(match)

    try:
        product.mcg_item_id = remote_id or None
        product.mcg_barcode = remote_barcode or None
        session.commit()
    except Exception:
        session.rollback()
        raise

    warehouse = ensure_main_warehouse(session)
    key = _target_key(product, None, remote_barcode)
    row, created = upsert_inventory_quantity(
        session,
        product_id=product.id,
        warehouse_id=warehouse.id,
        quantity=quantity,
        actor_id=actor_id,
        reason=REASON_MCG_SYNC,
        **key
    )
    logger.info(f"[MCG] Synced product {product.id} from item {remote_id or remote_barcode}: qty={quantity}")
    return {
        'product_id': product.id,
        'inventory_id': row.id,
        'variant_id': key['variant_id'],
        'quantity': quantity,
        'created': created,
        'mcg_item_id': remote_id,
        'mcg_barcode': remote_barcode,
    }


class McgSyncScheduler:
    """
    Periodic MCG pull running on a daemon thread.

    Each tick checks the enabled flags and the cadence gate, then tries to run.
    A tick that finds a run in flight is skipped, never queued.
    """

    def __init__(self, app, client_factory=None, clock=time.monotonic):
        self.app = app
        self._client_factory = client_factory or get_mcg_client
        self._clock = clock
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread = None

        self._last_run_at = None
        self.last_finished_at = None
        self.last_result = None
        self.last_error = None

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def settings(self) -> Dict[str, Any]:
        return sync_settings_from_config(self.app.config)

    def is_due(self) -> bool:
        settings = self.settings()
        if not settings['enabled'] or not settings['auto_pull_enabled']:
            return False
        if self._last_run_at is None:
            return True
        interval = settings['pull_every_minutes'] * 60
        return self._clock() - self._last_run_at >= interval

    def run_once(self, force: bool = False, actor_id=None) -> Optional[Dict[str, Any]]:
        """
        Run a sync pass unless one is already in flight.

        Returns the run counters, or None when skipped (in flight, or disabled
        and not forced). Errors from the run propagate.
        """
        if not self._lock.acquire(blocking=False):
            mcg_sync_skipped_ticks_total.inc()
            logger.info("[MCG] Sync already in flight, skipping")
            return None

        try:
            context = nullcontext() if has_app_context() else self.app.app_context()
            with context:
                settings = self.settings()
                if not force and not (settings['enabled'] and settings['auto_pull_enabled']):
                    return None
                try:
                    result = run_mcg_sync(get_session(), self._client_factory(), settings, actor_id=actor_id)
                except Exception as e:
                    self.last_error = str(e)
                    raise
                self._last_run_at = self._clock()
                self.last_finished_at = datetime.now(timezone.utc)
                self.last_result = result
                self.last_error = None
                return result
        finally:
            self._lock.release()

    def tick(self):
        """Scheduler callback. Never raises."""
        try:
            if self.is_due():
                self.run_once()
        except Exception as e:
            logger.error(f"[MCG] Scheduled sync failed: {e}")

    def _loop(self, interval: int):
        while not self._stop_event.wait(interval):
            self.tick()

    def start(self):
        if self.running:
            return
        interval = int(self.app.config.get('MCG_SCHEDULER_TICK_SECONDS', 60))
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, args=(interval,), name='mcg-sync-scheduler', daemon=True)
        self._thread.start()
        logger.info(f"[MCG] Sync scheduler started (tick every {interval}s)")

    def stop(self, timeout: Optional[float] = None):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def status(self) -> Dict[str, Any]:
        settings = self.settings()
        return {
            'enabled': settings['enabled'],
            'auto_pull_enabled': settings['auto_pull_enabled'],
            'pull_every_minutes': settings['pull_every_minutes'],
            'scheduler_running': self.running,
            'in_flight': self.in_flight,
            'last_run_at': self.last_finished_at.isoformat() if self.last_finished_at else None,
            'last_result': self.last_result,
            'last_error': self.last_error,
        }


def init_mcg_scheduler(app) -> McgSyncScheduler:
    """Attach the scheduler to the app without starting its thread."""
    scheduler = McgSyncScheduler(app)
    app.extensions['mcg_scheduler'] = scheduler
    return scheduler


def start_mcg_scheduler(app) -> Optional[McgSyncScheduler]:
    """
    Start the background pull for a serving process.

    Called from the WSGI entry point only, so CLI commands and tests never
    spawn the thread.
    """
    scheduler = app.extensions.get('mcg_scheduler') or init_mcg_scheduler(app)
    if not app.config.get('MCG_SCHEDULER_ENABLED') or app.config.get('TESTING'):
        return None
    scheduler.start()
    return scheduler
