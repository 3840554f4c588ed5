import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import jwt

from backoffice import create_app
from backoffice.database import get_session, create_schema, drop_schema
from backoffice.models import Product, ProductVariant, Warehouse, InventoryRow


@pytest.fixture(scope='function')
def app():
    """Create application instance for testing (in-memory SQLite, no Redis)."""
    app = create_app('config.TestConfig')
    with app.app_context():
        yield app


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Create database session with a fresh schema."""
    create_schema()
    session = get_session()
    yield session
    session.rollback()
    session.remove()
    drop_schema()


@pytest.fixture(scope='function')
def make_warehouse(session):
    """Factory: create a warehouse."""
    def _make(name='Warehouse A', location=None):
        warehouse = Warehouse(name=name, location=location)
        session.add(warehouse)
        session.commit()
        return warehouse
    return _make


@pytest.fixture(scope='function')
def make_product(session):
    """Factory: create a product, optionally with variants (list of barcodes)."""
    def _make(name='Test Product', variant_barcodes=None, active=True, mcg_item_id=None, mcg_barcode=None):
        product = Product(name=name, active=active, mcg_item_id=mcg_item_id, mcg_barcode=mcg_barcode)
        for index, barcode in enumerate(variant_barcodes or []):
            product.variants.append(ProductVariant(
                sku=f'{name[:3].upper()}-{index}',
                barcode=barcode,
                attributes=[{'name': 'size', 'value': f'S{index}'}]
            ))
        session.add(product)
        session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def make_row(session):
    """Factory: create an inventory row (variant or size/color addressed)."""
    def _make(product, warehouse, quantity, variant=None, size=None, color=None, low_stock_threshold=5):
        if variant is None and size is None:
            size, color = 'M', 'Black'
        row = InventoryRow(
            product_id=product.id,
            variant_id=variant.id if variant is not None else None,
            size=None if variant is not None else size,
            color=None if variant is not None else color,
            warehouse_id=warehouse.id,
            quantity=quantity,
            low_stock_threshold=low_stock_threshold,
        )
        session.add(row)
        session.commit()
        return row
    return _make


@pytest.fixture(scope='function')
def auth_headers(app):
    """Factory: Authorization headers for a signed bearer token."""
    def _headers(role='admin', sub='user-1'):
        payload = {
            'sub': sub,
            'role': role,
            'exp': datetime.now(timezone.utc) + timedelta(minutes=5)
        }
        token = jwt.encode(payload, app.config['SECRET_KEY'], algorithm='HS256')
        return {'Authorization': f'Bearer {token}'}
    return _headers


@pytest.fixture(scope='function')
def mcg_client():
    """Fake MCG client (legacy paginated flavor)."""
    client = MagicMock()
    client.uplicali = False
    return client
