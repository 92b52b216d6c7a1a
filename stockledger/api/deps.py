"""
API Dependencies
Common dependencies for API endpoints
"""

from typing import Generator, Optional
from fastapi import Depends, Header, Query
from sqlalchemy.orm import Session

from stockledger.core.database import SessionLocal
from stockledger.services.stock import (
    DemandForecastingService, StockLedgerService, TransactionService
)


def get_db() -> Generator:
    """
    Database dependency - creates a new database session for each request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_actor(x_actor_id: Optional[str] = Header(None, max_length=64)) -> str:
    """
    Opaque actor id recorded as created_by and in the audit trail.

    Authentication happens upstream; requests without the header are
    attributed to SYSTEM.
    """
    return x_actor_id or "SYSTEM"


def get_pagination_params(
    page: int = Query(1, ge=1, description="Page number (1-based)"),
    page_size: int = Query(25, ge=1, le=200, description="Items per page"),
) -> dict:
    return {"page": page, "page_size": page_size, "skip": (page - 1) * page_size}


def get_transaction_service(db: Session = Depends(get_db)) -> TransactionService:
    return TransactionService(db)


def get_ledger_service(db: Session = Depends(get_db)) -> StockLedgerService:
    return StockLedgerService(db)


def get_forecasting_service(db: Session = Depends(get_db)) -> DemandForecastingService:
    return DemandForecastingService(db)
