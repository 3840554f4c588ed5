"""Inventory history (append-only audit trail of quantity changes)."""
from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from backoffice.database import Base, IdType
import enum


class InventoryChangeType(enum.Enum):
    """Direction of a recorded quantity change."""
    INCREASE = "increase"
    DECREASE = "decrease"
    UPDATE = "update"


class InventoryHistory(Base):
    """
    One record per quantity change.

    `delta` is the signed change applied; `resulting_quantity` is the absolute
    quantity of the addressed row (or the sum of the addressed key's rows for
    multi-row reservations) after the change. Rows are never updated or deleted.
    """

    __tablename__ = 'inventory_history'

    id = Column(IdType, primary_key=True, autoincrement=True)
    product_id = Column(IdType, ForeignKey('product.id', ondelete='CASCADE'), nullable=False, index=True)
    variant_id = Column(IdType, nullable=True)
    inventory_id = Column(IdType, nullable=True)
    type = Column(Enum(InventoryChangeType, name='inventory_change_type'), nullable=False)
    delta = Column(Integer, nullable=False)
    resulting_quantity = Column(Integer, nullable=True)
    reason = Column(Text, nullable=True)
    user_id = Column(String(64), nullable=True)  # null for system jobs
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)

    def __repr__(self):
        return f"<InventoryHistory(product_id={self.product_id}, type={self.type.value}, delta={self.delta})>"

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'variant_id': self.variant_id,
            'inventory_id': self.inventory_id,
            'type': self.type.value,
            'delta': self.delta,
            'resulting_quantity': self.resulting_quantity,
            'reason': self.reason,
            'user_id': self.user_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
