"""Stock Ledger API endpoints"""

from . import transactions, levels, forecasts

__all__ = ["transactions", "levels", "forecasts"]
