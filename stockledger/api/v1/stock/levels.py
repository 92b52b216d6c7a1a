"""Stock Level API endpoints"""

from fastapi import APIRouter, Depends, Query
from typing import List, Optional

from stockledger.api import deps
from stockledger.schemas.common import ErrorResponse
from stockledger.schemas.stock import BinLocationUpdate, LowStockAlert, StockRecord
from stockledger.services.stock import StockLedgerService

router = APIRouter()


@router.get("", response_model=List[StockRecord])
def get_stock(
    item_id: Optional[int] = Query(None, description="Filter by item"),
    location_id: Optional[int] = Query(None, description="Filter by location"),
    ledger: StockLedgerService = Depends(deps.get_ledger_service),
):
    """
    Current stock records.

    Read-only; repeated calls return the same result while no transaction completes.
    """
    return [StockRecord.from_record(stock) for stock in ledger.get_stock(item_id, location_id)]


@router.get("/alerts", response_model=List[LowStockAlert])
def get_low_stock_alerts(
    location_id: Optional[int] = Query(None, description="Filter by location"),
    ledger: StockLedgerService = Depends(deps.get_ledger_service),
):
    """Active items at or below their minimum stock level."""
    return [LowStockAlert.from_record(stock) for stock in ledger.get_low_stock_alerts(location_id)]


@router.put("/{stock_id}/bin", response_model=StockRecord, responses={404: {"model": ErrorResponse}})
def update_bin_location(
    stock_id: int,
    update: BinLocationUpdate,
    actor: str = Depends(deps.get_actor),
    ledger: StockLedgerService = Depends(deps.get_ledger_service),
):
    """Set the shelf / bin note of a stock record."""
    return StockRecord.from_record(ledger.update_bin_location(stock_id, update.bin_location, actor=actor))
