"""
Stock Models
SQLAlchemy model for per-(item, location) quantity state
"""
from sqlalchemy import (
    Column, String, Integer, DateTime, ForeignKey, CheckConstraint, UniqueConstraint
)
from sqlalchemy.orm import relationship

from stockledger.core.database import Base
from stockledger.core.timeutils import utcnow


class StockRec(Base):
    """
    Stock Record - Quantity state for one (item, location) pair

    Created lazily by the ledger's upsert and never deleted. quantity is
    deliberately left unconstrained: a completion racing past the
    availability pre-check can drive it below zero.
    """
    __tablename__ = "stock_records"
    __table_args__ = (
        UniqueConstraint("item_id", "location_id", name="uq_stock_records_item_location"),
        CheckConstraint("reserved_quantity >= 0", name="reserved_non_negative"),
    )

    # Primary Key
    id = Column(Integer, primary_key=True, autoincrement=True, doc="Stock record ID")

    # Key
    item_id = Column(Integer, ForeignKey("items.id", ondelete="RESTRICT"), nullable=False, index=True, doc="Item ID")
    location_id = Column(Integer, ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False, index=True, doc="Location ID")

    # Quantities
    quantity = Column(Integer, nullable=False, default=0, doc="On-hand quantity")
    reserved_quantity = Column(Integer, nullable=False, default=0, doc="Soft-held quantity")

    # Physical placement within the location
    bin_location = Column(String(50), doc="Shelf / bin note")

    # Audit Trail
    last_updated = Column(DateTime, default=utcnow, onupdate=utcnow)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    item = relationship("ItemRec", lazy="joined")
    location = relationship("LocationRec", lazy="joined")

    @property
    def available_quantity(self) -> int:
        """On-hand minus reserved; may read negative when reservations exceed stock"""
        return (self.quantity or 0) - (self.reserved_quantity or 0)

    def __repr__(self):
        return (
            f"<StockRec item={self.item_id} location={self.location_id} "
            f"qty={self.quantity} reserved={self.reserved_quantity}>"
        )
