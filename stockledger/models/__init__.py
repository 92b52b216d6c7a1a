"""
Stock Ledger SQLAlchemy Models
Database models for the stock ledger
"""

# Import all models to ensure they are registered with SQLAlchemy
from .catalog import ItemRec, LocationRec
from .stock import StockRec
from .transaction import TransactionRec, TransactionLineRec, TransactionType, TransactionStatus
from .audit import AuditLog

__all__ = [
    "ItemRec",
    "LocationRec",
    "StockRec",
    "TransactionRec",
    "TransactionLineRec",
    "TransactionType",
    "TransactionStatus",
    "AuditLog",
]
