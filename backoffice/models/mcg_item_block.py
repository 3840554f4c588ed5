"""MCG item blocklist model.

Items listed here are never pulled back into the ledger by the MCG sync
(typically products that were deleted locally).
"""
from sqlalchemy import Column, String, Text, DateTime, CheckConstraint
from sqlalchemy.sql import func
from backoffice.database import Base, IdType


class McgItemBlock(Base):
    """Blocked MCG identifier (barcode and/or item id)."""

    __tablename__ = 'mcg_item_block'
    __table_args__ = (
        CheckConstraint('barcode IS NOT NULL OR mcg_item_id IS NOT NULL', name='ck_mcg_item_block_identifier'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    barcode = Column(String(64), nullable=True, unique=True)
    mcg_item_id = Column(String(64), nullable=True, unique=True)
    reason = Column(String(50), nullable=False, default='hard_delete')
    notes = Column(Text, nullable=False, default='')
    last_product_id = Column(IdType, nullable=True)
    last_product_name = Column(String, nullable=False, default='')
    created_by = Column(String(64), nullable=True)
    updated_by = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<McgItemBlock(barcode={self.barcode!r}, mcg_item_id={self.mcg_item_id!r}, reason='{self.reason}')>"

    def to_dict(self):
        return {
            'id': self.id,
            'barcode': self.barcode,
            'mcg_item_id': self.mcg_item_id,
            'reason': self.reason,
            'notes': self.notes,
            'last_product_id': self.last_product_id,
            'last_product_name': self.last_product_name,
        }
