"""Warehouse model."""
from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from backoffice.database import Base, IdType

MAIN_WAREHOUSE_NAME = 'Main Warehouse'


class Warehouse(Base):
    """Named stock location."""

    __tablename__ = 'warehouse'

    id = Column(IdType, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False, unique=True)
    location = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<Warehouse(id={self.id}, name='{self.name}')>"

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'location': self.location,
        }
