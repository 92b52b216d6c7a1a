"""Stock Ledger Engine services"""

from .stock_ledger import StockLedgerService
from .transactions import TransactionService
from .demand_forecasting import DemandForecastingService, DemandForecast, get_estimator
from .regression import linear_regression

__all__ = [
    "StockLedgerService",
    "TransactionService",
    "DemandForecastingService",
    "DemandForecast",
    "get_estimator",
    "linear_regression",
]
