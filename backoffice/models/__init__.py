"""Models package - exports all SQLAlchemy models."""
# Catalog (fields owned by the inventory subsystem)
from backoffice.models.product import Product, ProductVariant

# Inventory ledger
from backoffice.models.warehouse import Warehouse, MAIN_WAREHOUSE_NAME
from backoffice.models.inventory import InventoryRow
from backoffice.models.inventory_history import InventoryHistory, InventoryChangeType
from backoffice.models.warehouse_movement import WarehouseMovement

# MCG integration
from backoffice.models.mcg_item_block import McgItemBlock

__all__ = [
    'Product', 'ProductVariant',
    'Warehouse', 'MAIN_WAREHOUSE_NAME', 'InventoryRow',
    'InventoryHistory', 'InventoryChangeType', 'WarehouseMovement',
    'McgItemBlock',
]
