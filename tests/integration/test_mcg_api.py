"""
Integration tests for the MCG control endpoints.
"""

import pytest
from unittest.mock import patch
from backoffice.models import McgItemBlock, InventoryRow


@pytest.fixture
def fake_client(app, mcg_client):
    """Install a fake MCG client for routes and the scheduler."""
    app.extensions['mcg_client'] = mcg_client
    app.extensions['mcg_scheduler']._client_factory = lambda: mcg_client
    return mcg_client


class TestAutoSync:
    """Test scheduler status and manual runs."""

    def test_status(self, client, session, auth_headers):
        response = client.get('/api/mcg/auto-sync/status', headers=auth_headers())

        body = response.get_json()
        assert response.status_code == 200
        assert body['enabled'] is True
        assert body['in_flight'] is False
        assert body['last_run_at'] is None

    def test_run_now(self, client, session, auth_headers, fake_client, make_product):
        make_product(mcg_item_id='A-1')
        fake_client.get_items_list.side_effect = [{'Items': [{'ItemID': 'A-1', 'StockQuantity': 9}]}]

        response = client.post('/api/mcg/auto-sync/run-now', headers=auth_headers())

        body = response.get_json()
        assert response.status_code == 200
        assert body['result']['created'] == 1
        assert session.query(InventoryRow).one().quantity == 9

        status = client.get('/api/mcg/auto-sync/status', headers=auth_headers()).get_json()
        assert status['last_result']['created'] == 1
        assert status['last_run_at'] is not None

    def test_run_now_busy(self, app, client, session, auth_headers, fake_client):
        scheduler = app.extensions['mcg_scheduler']
        scheduler._lock.acquire()
        try:
            response = client.post('/api/mcg/auto-sync/run-now', headers=auth_headers())
        finally:
            scheduler._lock.release()

        assert response.status_code == 409

    def test_disabled_integration(self, app, client, session, auth_headers):
        app.config['MCG_ENABLED'] = False
        response = client.post('/api/mcg/auto-sync/run-now', headers=auth_headers())
        assert response.status_code == 412

    def test_upstream_failure_is_502(self, client, session, auth_headers, fake_client):
        from backoffice.exceptions import McgApiError
        fake_client.get_items_list.side_effect = McgApiError('MCG get_items_list failed (503)', upstream_status=503)

        response = client.post('/api/mcg/auto-sync/run-now', headers=auth_headers())

        assert response.status_code == 502
        assert response.get_json()['upstream_status'] == 503


class TestSyncProduct:
    """Test single product pull."""

    def test_sync_product(self, client, session, auth_headers, fake_client, make_product):
        product = make_product(mcg_barcode='729')
        fake_client.get_items_list.return_value = {'Items': [{'Barcode': '729', 'ItemID': 'Z', 'StockQuantity': 2}]}

        response = client.post(f'/api/mcg/sync-product/{product.id}', json={}, headers=auth_headers(role='staff'))

        body = response.get_json()
        assert response.status_code == 200
        assert body['result']['quantity'] == 2
        assert body['result']['mcg_item_id'] == 'Z'

    def test_sync_product_without_identifiers(self, client, session, auth_headers, fake_client, make_product):
        product = make_product()
        response = client.post(f'/api/mcg/sync-product/{product.id}', json={}, headers=auth_headers())
        assert response.status_code == 400


class TestBlocks:
    """Test blocklist endpoint."""

    def test_block_product_and_propagate(self, client, session, auth_headers, fake_client, make_product):
        product = make_product(mcg_item_id='A-1', mcg_barcode='729')
        fake_client.delete_items.return_value = {'ok': True}

        response = client.post('/api/mcg/blocks', json={'product_id': product.id, 'propagate': True},
                               headers=auth_headers())

        assert response.status_code == 201
        assert response.get_json()['blocked'] == 2
        assert session.query(McgItemBlock).count() == 2
        fake_client.delete_items.assert_called_once_with(
            [{'item_id': 'A-1'}, {'item_code': '729'}], group=None
        )

    def test_block_is_upsert(self, client, session, auth_headers, make_product):
        product = make_product(mcg_barcode='729')
        client.post('/api/mcg/blocks', json={'product_id': product.id}, headers=auth_headers())
        client.post('/api/mcg/blocks', json={'identifiers': ['729'], 'reason': 'hard_delete'}, headers=auth_headers())

        block = session.query(McgItemBlock).one()
        assert block.reason == 'hard_delete'
        assert block.updated_by == 'user-1'

    def test_block_without_identifiers(self, client, session, auth_headers):
        response = client.post('/api/mcg/blocks', json={}, headers=auth_headers())
        assert response.status_code == 400
