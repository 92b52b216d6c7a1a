"""
Stock Ledger Pydantic Schemas
Request/Response models for the stock ledger API
"""

from .common import ErrorResponse, SuccessResponse, PaginatedResponse
from .stock import StockRecord, LowStockAlert, BinLocationUpdate
from .transaction import (
    TransactionLineCreate, TransactionLine, TransactionCreate, StatusChange, Transaction
)
from .forecast import DemandForecast, ForecastListResponse

__all__ = [
    "ErrorResponse",
    "SuccessResponse",
    "PaginatedResponse",
    "StockRecord",
    "LowStockAlert",
    "BinLocationUpdate",
    "TransactionLineCreate",
    "TransactionLine",
    "TransactionCreate",
    "StatusChange",
    "Transaction",
    "DemandForecast",
    "ForecastListResponse",
]
