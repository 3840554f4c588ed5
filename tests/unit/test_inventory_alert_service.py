"""
Unit tests for low-stock alerting.
"""

import pytest
from unittest.mock import patch
from backoffice.services.inventory_alert_service import (
    classify_stock_level, build_alert, check_low_stock,
    SEVERITY_CRITICAL, SEVERITY_HIGH, SEVERITY_MEDIUM
)


@pytest.mark.parametrize('quantity, expected', [
    (-2, SEVERITY_CRITICAL),
    (0, SEVERITY_CRITICAL),
    (1, SEVERITY_HIGH),
    (5, SEVERITY_HIGH),
    (6, SEVERITY_MEDIUM),
    (10, SEVERITY_MEDIUM),
    (11, None),
])
def test_classify_stock_level(quantity, expected):
    assert classify_stock_level(quantity) == expected


class TestBuildAlert:
    """Tests for alert payloads."""

    def test_out_of_stock_message(self, session, make_product, make_warehouse, make_row):
        row = make_row(make_product('Shirt'), make_warehouse(), 0, size='M', color='Red')

        alert = build_alert(row)

        assert alert['severity'] == SEVERITY_CRITICAL
        assert alert['message'] == 'Out of stock: Shirt (M, Red)'
        assert alert['current_stock'] == 0
        assert alert['inventory_id'] == row.id

    def test_low_stock_message(self, session, make_product, make_warehouse, make_row):
        row = make_row(make_product('Shirt'), make_warehouse(), 3, size='M', color='Red')

        alert = build_alert(row)

        assert alert['severity'] == SEVERITY_HIGH
        assert 'Only 3 remaining' in alert['message']

    def test_healthy_stock_has_no_alert(self, session, make_product, make_warehouse, make_row):
        row = make_row(make_product(), make_warehouse(), 50)
        assert build_alert(row) is None

    def test_thresholds_follow_config(self, app, session, make_product, make_warehouse, make_row):
        app.config['INVENTORY_ALERT_LOW_THRESHOLD'] = 100
        row = make_row(make_product(), make_warehouse(), 50)
        assert build_alert(row)['severity'] == SEVERITY_MEDIUM


class TestCheckLowStock:
    """Tests for alert emission."""

    def test_publishes_on_alert_channel(self, app, session, make_product, make_warehouse, make_row):
        row = make_row(make_product(), make_warehouse(), 2)

        with patch('backoffice.services.cache_service.CacheService.publish', return_value=True) as publish:
            alert = check_low_stock(row)

        publish.assert_called_once_with(app.config['INVENTORY_ALERT_CHANNEL'], alert)

    def test_emission_failure_is_swallowed(self, session, make_product, make_warehouse, make_row):
        row = make_row(make_product(), make_warehouse(), 0)

        with patch('backoffice.services.cache_service.CacheService.publish', side_effect=RuntimeError('redis down')):
            alert = check_low_stock(row)

        assert alert['severity'] == SEVERITY_CRITICAL
