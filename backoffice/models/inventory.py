"""Inventory ledger row model."""
from sqlalchemy import (
    Column, String, Integer, DateTime, ForeignKey, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backoffice.database import Base, IdType, JSONType


class InventoryRow(Base):
    """
    One stock count for a product (or one of its variants) in one warehouse.

    A row is addressed either by variant_id or by the (size, color) pair,
    never both. The warehouse is always part of the key.
    """

    __tablename__ = 'inventory'
    __table_args__ = (
        UniqueConstraint('product_id', 'variant_id', 'warehouse_id', name='uq_inventory_variant_warehouse'),
        UniqueConstraint('product_id', 'size', 'color', 'warehouse_id', name='uq_inventory_combo_warehouse'),
        CheckConstraint(
            '(variant_id IS NOT NULL AND size IS NULL AND color IS NULL) OR '
            '(variant_id IS NULL AND size IS NOT NULL AND color IS NOT NULL)',
            name='ck_inventory_addressing'
        ),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    product_id = Column(IdType, ForeignKey('product.id', ondelete='CASCADE'), nullable=False, index=True)
    variant_id = Column(IdType, ForeignKey('product_variant.id', ondelete='CASCADE'), nullable=True, index=True)
    size = Column(String(64), nullable=True)
    color = Column(String(64), nullable=True)
    warehouse_id = Column(IdType, ForeignKey('warehouse.id'), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=0)
    low_stock_threshold = Column(Integer, nullable=False, default=5, server_default='5')
    location = Column(String(255), nullable=True)
    attributes_snapshot = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    product = relationship('Product')
    variant = relationship('ProductVariant')
    warehouse = relationship('Warehouse')

    def __repr__(self):
        return (
            f"<InventoryRow(id={self.id}, product_id={self.product_id}, "
            f"key={self.key_label}, warehouse_id={self.warehouse_id}, quantity={self.quantity})>"
        )

    @property
    def key_label(self):
        """Human readable variant-or-size/color part of the key."""
        if self.variant_id is not None:
            return f"variant {self.variant_id}"
        return f"{self.size}, {self.color}"

    @property
    def status(self):
        qty = self.quantity or 0
        if qty <= 0:
            return 'out_of_stock'
        if qty <= (self.low_stock_threshold or 0):
            return 'low_stock'
        return 'in_stock'

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'product_name': self.product.name if self.product else None,
            'variant_id': self.variant_id,
            'size': self.size,
            'color': self.color,
            'warehouse_id': self.warehouse_id,
            'warehouse_name': self.warehouse.name if self.warehouse else None,
            'quantity': self.quantity,
            'low_stock_threshold': self.low_stock_threshold,
            'location': self.location,
            'attributes_snapshot': self.attributes_snapshot,
            'status': self.status,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
