"""Warehouse movement model (append-only record of transfers)."""
from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey
from sqlalchemy.sql import func
from backoffice.database import Base, IdType


class WarehouseMovement(Base):
    """Quantity moved from one warehouse row to another for the same product key."""

    __tablename__ = 'warehouse_movement'

    id = Column(IdType, primary_key=True, autoincrement=True)
    product_id = Column(IdType, ForeignKey('product.id', ondelete='CASCADE'), nullable=False, index=True)
    variant_id = Column(IdType, nullable=True)
    size = Column(String(64), nullable=True)
    color = Column(String(64), nullable=True)
    quantity = Column(Integer, nullable=False)
    from_warehouse_id = Column(IdType, ForeignKey('warehouse.id'), nullable=False)
    to_warehouse_id = Column(IdType, ForeignKey('warehouse.id'), nullable=False)
    user_id = Column(String(64), nullable=True)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return (
            f"<WarehouseMovement(product_id={self.product_id}, quantity={self.quantity}, "
            f"{self.from_warehouse_id}->{self.to_warehouse_id})>"
        )

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'variant_id': self.variant_id,
            'size': self.size,
            'color': self.color,
            'quantity': self.quantity,
            'from_warehouse_id': self.from_warehouse_id,
            'to_warehouse_id': self.to_warehouse_id,
            'user_id': self.user_id,
            'reason': self.reason,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
