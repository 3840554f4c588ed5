"""Product and ProductVariant models.

Only the fields the inventory subsystem reads or owns are mapped here; the
catalog itself (pricing, images, categories) lives elsewhere.
"""
from sqlalchemy import Column, String, Boolean, Integer, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backoffice.database import Base, IdType, JSONType


class Product(Base):
    """Product model."""

    __tablename__ = 'product'

    id = Column(IdType, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    mcg_item_id = Column(String(64), nullable=True, index=True)
    mcg_barcode = Column(String(64), nullable=True, index=True)
    # Rollup of the inventory ledger; derived, never authoritative
    stock = Column(Integer, nullable=False, default=0, server_default='0')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    variants = relationship(
        'ProductVariant',
        back_populates='product',
        cascade='all, delete-orphan',
        order_by='ProductVariant.id'
    )

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', stock={self.stock})>"

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'active': self.active,
            'mcg_item_id': self.mcg_item_id,
            'mcg_barcode': self.mcg_barcode,
            'stock': self.stock,
            'variants': [v.to_dict() for v in self.variants],
        }


class ProductVariant(Base):
    """Sellable variant of a product (size/color/attribute combination)."""

    __tablename__ = 'product_variant'

    id = Column(IdType, primary_key=True, autoincrement=True)
    product_id = Column(IdType, ForeignKey('product.id', ondelete='CASCADE'), nullable=False, index=True)
    sku = Column(String(64), nullable=True)
    barcode = Column(String(64), nullable=True, index=True)
    mcg_item_id = Column(String(64), nullable=True)
    attributes = Column(JSONType, nullable=True)
    stock = Column(Integer, nullable=False, default=0, server_default='0')

    product = relationship('Product', back_populates='variants')

    def __repr__(self):
        return f"<ProductVariant(id={self.id}, product_id={self.product_id}, stock={self.stock})>"

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'sku': self.sku,
            'barcode': self.barcode,
            'attributes': self.attributes,
            'stock': self.stock,
        }
