"""
Transaction Models
SQLAlchemy models for stock movement transactions and their lines
"""
from enum import Enum

from sqlalchemy import (
    Column, String, Integer, Numeric, DateTime, Text, ForeignKey, CheckConstraint, Index
)
from sqlalchemy.orm import relationship

from stockledger.core.database import Base
from stockledger.core.timeutils import utcnow


class TransactionType(str, Enum):
    RECEIPT = "receipt"
    DELIVERY = "delivery"
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"


class TransactionStatus(str, Enum):
    DRAFT = "draft"
    WAITING = "waiting"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({TransactionStatus.COMPLETED, TransactionStatus.CANCELLED})

ALLOWED_TRANSITIONS = {
    TransactionStatus.DRAFT: {TransactionStatus.WAITING, TransactionStatus.COMPLETED, TransactionStatus.CANCELLED},
    TransactionStatus.WAITING: {TransactionStatus.READY, TransactionStatus.COMPLETED, TransactionStatus.CANCELLED},
    TransactionStatus.READY: {TransactionStatus.COMPLETED, TransactionStatus.CANCELLED},
    TransactionStatus.COMPLETED: set(),
    TransactionStatus.CANCELLED: set(),
}


class TransactionRec(Base):
    """Transaction Record - Intended or realized stock movement"""
    __tablename__ = "stock_transactions"
    __table_args__ = (
        Index("ix_stock_transactions_type_status", "type", "status"),
        Index("ix_stock_transactions_completed_at", "completed_at"),
    )

    # Primary Key
    id = Column(Integer, primary_key=True, autoincrement=True, doc="Transaction ID")
    reference = Column(String(40), unique=True, nullable=False, doc="Generated reference")

    # Movement Details
    type = Column(String(20), nullable=False, doc="receipt, delivery, transfer, adjustment")
    status = Column(String(20), nullable=False, default=TransactionStatus.DRAFT.value, doc="Lifecycle status")
    from_location_id = Column(Integer, ForeignKey("locations.id", ondelete="RESTRICT"), doc="Source location")
    to_location_id = Column(Integer, ForeignKey("locations.id", ondelete="RESTRICT"), doc="Destination location")

    # Additional Information
    counterparty_name = Column(String(100), doc="Supplier or customer")
    notes = Column(Text, doc="Transaction notes")

    # Audit Trail
    created_by = Column(String(64), nullable=False, doc="Actor that created the transaction")
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    completed_at = Column(DateTime, doc="Set only on completion")
    cancelled_at = Column(DateTime, doc="Set only on cancellation")

    # Relationships
    lines = relationship(
        "TransactionLineRec",
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="TransactionLineRec.line_no",
        lazy="selectin",
    )
    from_location = relationship("LocationRec", foreign_keys=[from_location_id])
    to_location = relationship("LocationRec", foreign_keys=[to_location_id])

    @property
    def is_terminal(self) -> bool:
        return TransactionStatus(self.status) in TERMINAL_STATUSES

    @property
    def affected_location_ids(self):
        """Locations whose stock changes when this transaction completes"""
        if self.type == TransactionType.RECEIPT.value:
            locations = [self.to_location_id]
        elif self.type == TransactionType.TRANSFER.value:
            locations = [self.from_location_id, self.to_location_id]
        else:
            locations = [self.from_location_id]
        return [loc for loc in locations if loc is not None]

    def __repr__(self):
        return f"<TransactionRec {self.reference} {self.type} {self.status}>"


class TransactionLineRec(Base):
    """Transaction Line Record - One item movement within a transaction"""
    __tablename__ = "stock_transaction_lines"
    __table_args__ = (
        CheckConstraint("quantity <> 0", name="quantity_non_zero"),
        CheckConstraint("unit_price >= 0", name="unit_price_non_negative"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True, doc="Line ID")
    transaction_id = Column(
        Integer, ForeignKey("stock_transactions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    line_no = Column(Integer, nullable=False, doc="1-based line number")

    item_id = Column(Integer, ForeignKey("items.id", ondelete="RESTRICT"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, doc="Movement quantity (signed for adjustments)")
    unit_price = Column(Numeric(15, 4), default=0, doc="Unit price")
    location_note = Column(String(50), doc="Shelf / bin note")

    transaction = relationship("TransactionRec", back_populates="lines")
    item = relationship("ItemRec")
