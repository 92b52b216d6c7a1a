"""
Ledger Exceptions
Error kinds raised by the stock ledger engine
"""
from typing import List, Optional


class LedgerException(Exception):
    """Base exception for the stock ledger"""
    kind = "ledger_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


class ValidationError(LedgerException):
    """Raised when input data is malformed or incomplete"""
    kind = "validation_error"


class NotFoundError(LedgerException):
    """Raised when a referenced transaction, item or location is absent"""
    kind = "not_found"


class InvalidStateError(LedgerException):
    """Raised on an illegal transaction lifecycle transition"""
    kind = "invalid_state"


class InsufficientStockError(LedgerException):
    """Raised when the availability pre-check fails"""
    kind = "insufficient_stock"

    def __init__(self, message: str, item_id: Optional[int] = None,
                 location_id: Optional[int] = None,
                 available: int = 0, requested: int = 0):
        super().__init__(message)
        self.item_id = item_id
        self.location_id = location_id
        self.available = available
        self.requested = requested


class PersistenceError(LedgerException):
    """
    Raised when a backing-store write fails

    During completion the ledger may be partially applied; applied_lines
    lists the line numbers whose stock effect was already committed.
    """
    kind = "persistence_error"

    def __init__(self, message: str, transaction_id: Optional[int] = None,
                 applied_lines: Optional[List[int]] = None):
        super().__init__(message)
        self.transaction_id = transaction_id
        self.applied_lines = list(applied_lines or [])
