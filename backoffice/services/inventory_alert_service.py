"""
Low-stock alerting.

Evaluated after direct quantity updates (admin override, bulk update, variant
stock update). MCG sync runs and greedy multi-row reservations skip it to
avoid alert storms. Alerts are published on a Redis channel; emission failures
never reach the caller.
"""
import logging
from typing import Optional, Dict, Any
from flask import current_app, has_app_context

logger = logging.getLogger(__name__)

SEVERITY_CRITICAL = 'critical'
SEVERITY_HIGH = 'high'
SEVERITY_MEDIUM = 'medium'

DEFAULT_CRITICAL_THRESHOLD = 5
DEFAULT_LOW_THRESHOLD = 10


def _thresholds():
    if has_app_context():
        cfg = current_app.config
        return (
            cfg.get('INVENTORY_ALERT_CRITICAL_THRESHOLD', DEFAULT_CRITICAL_THRESHOLD),
            cfg.get('INVENTORY_ALERT_LOW_THRESHOLD', DEFAULT_LOW_THRESHOLD),
        )
    return DEFAULT_CRITICAL_THRESHOLD, DEFAULT_LOW_THRESHOLD


def classify_stock_level(quantity: int, critical_threshold: int = DEFAULT_CRITICAL_THRESHOLD,
                         low_threshold: int = DEFAULT_LOW_THRESHOLD) -> Optional[str]:
    """Return the alert severity for a quantity, or None when stock is healthy."""
    if quantity <= 0:
        return SEVERITY_CRITICAL
    if quantity <= critical_threshold:
        return SEVERITY_HIGH
    if quantity <= low_threshold:
        return SEVERITY_MEDIUM
    return None


def build_alert(row) -> Optional[Dict[str, Any]]:
    """Build the alert payload for an inventory row, or None if no alert applies."""
    critical_threshold, low_threshold = _thresholds()
    quantity = row.quantity or 0
    severity = classify_stock_level(quantity, critical_threshold, low_threshold)
    if severity is None:
        return None

    product_name = row.product.name if row.product else f'product {row.product_id}'
    label = f"{product_name} ({row.key_label})"
    if severity == SEVERITY_CRITICAL:
        message = f"Out of stock: {label}"
    elif severity == SEVERITY_HIGH:
        message = f"Critical low stock: {label} - Only {quantity} remaining"
    else:
        message = f"Low stock alert: {label} running low - {quantity} remaining"

    return {
        'type': 'inventory_alert',
        'product_id': row.product_id,
        'inventory_id': row.id,
        'warehouse_id': row.warehouse_id,
        'message': message,
        'severity': severity,
        'current_stock': quantity,
    }


def emit_inventory_alert(alert: Dict[str, Any]) -> bool:
    """Publish an alert on the real-time channel."""
    from backoffice.services.cache_service import get_cache
    from backoffice.blueprints.metrics import inventory_alerts_total

    inventory_alerts_total.labels(severity=alert['severity']).inc()
    logger.info(f"[ALERT] {alert['severity']}: {alert['message']}")

    channel = 'inventory:alerts'
    if has_app_context():
        channel = current_app.config.get('INVENTORY_ALERT_CHANNEL', channel)
    return get_cache().publish(channel, alert)


def check_low_stock(row) -> Optional[Dict[str, Any]]:
    """Evaluate thresholds for a row and emit an alert. Never raises."""
    try:
        alert = build_alert(row)
    except Exception as e:
        logger.error(f"[ALERT] Error checking low stock alert for inventory {getattr(row, 'id', None)}: {e}")
        return None

    if alert:
        try:
            emit_inventory_alert(alert)
        except Exception as e:
            logger.error(f"[ALERT] Failed to emit inventory alert: {e}")
    return alert
