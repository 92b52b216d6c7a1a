"""
Catalog Models
Items and locations referenced by the ledger (read-only from the engine's side)
"""
from sqlalchemy import Column, String, Integer, Boolean, DateTime, CheckConstraint

from stockledger.core.database import Base
from stockledger.core.timeutils import utcnow


class ItemRec(Base):
    """Item Record - Catalog entry tracked for quantity"""
    __tablename__ = "items"
    __table_args__ = (
        CheckConstraint("min_stock_level >= 0", name="min_stock_level_non_negative"),
    )

    # Primary Key
    id = Column(Integer, primary_key=True, autoincrement=True, doc="Item ID")
    code = Column(String(30), unique=True, nullable=False, doc="Item code / SKU")

    # Item Information
    name = Column(String(100), nullable=False, doc="Item name")
    unit_of_measure = Column(String(10), nullable=False, default="units", doc="Unit of measure")

    # Replenishment Levels
    min_stock_level = Column(Integer, nullable=False, default=0, doc="Minimum stock level")
    max_stock_level = Column(Integer, doc="Maximum stock level (unset means 2 x minimum)")

    # Status
    is_active = Column(Boolean, nullable=False, default=True, doc="Active item flag")

    created_at = Column(DateTime, default=utcnow)

    def __repr__(self):
        return f"<ItemRec {self.code} min={self.min_stock_level} max={self.max_stock_level}>"


class LocationRec(Base):
    """Location Record - Physical or logical storage point"""
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, autoincrement=True, doc="Location ID")
    code = Column(String(10), unique=True, nullable=False, doc="Location code")
    name = Column(String(100), nullable=False, doc="Location name")
    is_active = Column(Boolean, nullable=False, default=True, doc="Active location flag")

    created_at = Column(DateTime, default=utcnow)

    def __repr__(self):
        return f"<LocationRec {self.code}>"
