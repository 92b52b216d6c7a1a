"""
Main API Router - Consolidates all module routes
"""

from fastapi import APIRouter
from stockledger.api.v1.stock import transactions, levels, forecasts

api_router = APIRouter()

# Stock ledger routes
api_router.include_router(transactions.router, prefix="/transactions", tags=["transactions"])
api_router.include_router(levels.router, prefix="/stock", tags=["stock"])
api_router.include_router(forecasts.router, prefix="/forecasts", tags=["forecasts"])
