"""
Integration tests for the inventory JSON API.
"""

import pytest
from backoffice.models import InventoryRow, WarehouseMovement


class TestAuth:
    """Test bearer-token protection."""

    def test_requires_token(self, client, session):
        response = client.get('/api/inventory/')
        assert response.status_code == 401

    def test_invalid_token_rejected(self, client, session):
        response = client.get('/api/inventory/', headers={'Authorization': 'Bearer not-a-jwt'})
        assert response.status_code == 401

    def test_role_required_for_writes(self, client, session, auth_headers):
        response = client.post('/api/inventory/bulk', json={'items': []}, headers=auth_headers(role='viewer'))
        assert response.status_code == 403


class TestInventoryRoutes:
    """Test ledger routes end to end."""

    def test_add_then_conflict(self, client, session, auth_headers, make_product, make_warehouse):
        product = make_product()
        warehouse = make_warehouse()
        body = {'product_id': product.id, 'size': 'M', 'color': 'Black', 'warehouse_id': warehouse.id, 'quantity': 4}

        created = client.post('/api/inventory/', json=body, headers=auth_headers())
        duplicate = client.post('/api/inventory/', json=body, headers=auth_headers())

        assert created.status_code == 201
        assert created.get_json()['quantity'] == 4
        assert duplicate.status_code == 409
        assert duplicate.get_json()['status'] == 'error'
        assert session.query(InventoryRow).count() == 1

    def test_list_and_low_stock(self, client, session, auth_headers, make_product, make_warehouse, make_row):
        product = make_product('Boots')
        make_row(product, make_warehouse('A'), 2)
        make_row(product, make_warehouse('B'), 40)

        listing = client.get('/api/inventory/', headers=auth_headers(role='viewer'))
        low = client.get('/api/inventory/low-stock', headers=auth_headers(role='viewer'))

        assert listing.status_code == 200
        assert len(listing.get_json()) == 2
        assert [r['quantity'] for r in low.get_json()] == [2]
        assert low.get_json()[0]['status'] == 'low_stock'

    def test_update_row(self, client, session, auth_headers, make_product, make_warehouse, make_row):
        row = make_row(make_product(), make_warehouse(), 2)

        response = client.put(f'/api/inventory/{row.id}', json={'quantity': 30}, headers=auth_headers())

        assert response.status_code == 200
        assert response.get_json()['quantity'] == 30

    def test_update_row_validation_error(self, client, session, auth_headers, make_product, make_warehouse, make_row):
        row = make_row(make_product(), make_warehouse(), 2)

        response = client.put(f'/api/inventory/{row.id}', json={'quantity': -1}, headers=auth_headers())

        assert response.status_code == 400

    def test_reserve_insufficient_returns_409(self, client, session, auth_headers, make_product, make_warehouse,
                                              make_row):
        product = make_product()
        row = make_row(product, make_warehouse(), 1)

        response = client.post('/api/inventory/reserve', json={'items': [
            {'product_id': product.id, 'size': 'M', 'color': 'Black', 'quantity': 2}
        ]}, headers=auth_headers(role='service'))

        body = response.get_json()
        assert response.status_code == 409
        assert body['available'] == 1
        assert body['requested'] == 2
        assert row.quantity == 1

    def test_reserve_and_increment(self, client, session, auth_headers, make_product, make_warehouse, make_row):
        product = make_product()
        row = make_row(product, make_warehouse(), 5)
        item = {'product_id': product.id, 'size': 'M', 'color': 'Black', 'quantity': 3}

        reserved = client.post('/api/inventory/reserve', json={'items': [item]}, headers=auth_headers(role='service'))
        released = client.post('/api/inventory/increment', json={'items': [item], 'reason': 'Order cancelled'},
                               headers=auth_headers(role='service'))

        assert reserved.status_code == 200
        assert released.status_code == 200
        assert row.quantity == 5

    def test_move(self, client, session, auth_headers, make_product, make_warehouse, make_row):
        product = make_product()
        source_wh, dest_wh = make_warehouse('A'), make_warehouse('B')
        make_row(product, source_wh, 20)

        response = client.post('/api/inventory/move', json={
            'product_id': product.id, 'quantity': 5, 'size': 'M', 'color': 'Black',
            'from_warehouse_id': source_wh.id, 'to_warehouse_id': dest_wh.id
        }, headers=auth_headers())

        body = response.get_json()
        assert response.status_code == 200
        assert body['source']['quantity'] == 15
        assert body['destination']['quantity'] == 5
        assert session.query(WarehouseMovement).count() == 1

    def test_variant_summary_and_recompute(self, client, session, auth_headers, make_product, make_warehouse,
                                           make_row):
        product = make_product(variant_barcodes=['111'])
        variant = product.variants[0]
        make_row(product, make_warehouse('A'), 3, variant=variant)
        make_row(product, make_warehouse('B'), 4, variant=variant)

        summary = client.get(f'/api/inventory/product/{product.id}/variants/summary', headers=auth_headers())
        recompute = client.post(f'/api/inventory/product/{product.id}/recompute', headers=auth_headers())

        assert summary.get_json() == [{'variant_id': variant.id, 'quantity': 7}]
        assert recompute.get_json()['stock'] == 7

    def test_set_by_variant_creates_row(self, client, session, auth_headers, make_product, make_warehouse):
        product = make_product(variant_barcodes=['111'])
        warehouse = make_warehouse('A')

        response = client.put('/api/inventory/by-variant', json={
            'product_id': product.id, 'variant_id': product.variants[0].id,
            'warehouse_id': warehouse.id, 'quantity': 6
        }, headers=auth_headers())

        assert response.status_code == 200
        assert response.get_json()['quantity'] == 6
        assert session.query(InventoryRow).one().warehouse_id == warehouse.id

    def test_set_by_combo_and_history(self, client, session, auth_headers, make_product, make_warehouse, make_row):
        product = make_product()
        make_row(product, make_warehouse(), 2)

        response = client.put('/api/inventory/by-combo', json={
            'product_id': product.id, 'size': 'M', 'color': 'Black', 'quantity': 8
        }, headers=auth_headers())
        history = client.get(f'/api/inventory/product/{product.id}/history', headers=auth_headers(role='viewer'))

        assert response.status_code == 200
        assert response.get_json()['quantity'] == 8
        records = history.get_json()
        assert len(records) == 1
        assert records[0]['type'] == 'increase'
        assert records[0]['resulting_quantity'] == 8

    def test_set_by_combo_requires_key(self, client, session, auth_headers, make_product):
        product = make_product()
        response = client.put('/api/inventory/by-combo', json={'product_id': product.id, 'quantity': 1},
                              headers=auth_headers())
        assert response.status_code == 400

    def test_recompute_unknown_product(self, client, session, auth_headers):
        response = client.post('/api/inventory/product/999/recompute', headers=auth_headers())
        assert response.status_code == 404

    def test_bulk_requires_items(self, client, session, auth_headers):
        response = client.post('/api/inventory/bulk', json={}, headers=auth_headers())
        assert response.status_code == 400


class TestHealth:
    """Test health endpoints."""

    def test_health(self, client, session):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.get_json()['database'] == 'connected'

    def test_metrics_exposed(self, client, session):
        response = client.get('/metrics')
        assert response.status_code == 200
        assert b'mcg_sync_runs_total' in response.data
