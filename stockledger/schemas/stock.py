"""Stock Level Schemas"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime


class StockRecord(BaseModel):
    """Quantity state of one (item, location) pair"""
    id: int
    item_id: int
    location_id: int
    item_code: Optional[str] = None
    item_name: Optional[str] = None
    location_code: Optional[str] = None
    quantity: int
    reserved_quantity: int
    available_quantity: int
    bin_location: Optional[str] = None
    last_updated: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_record(cls, stock) -> "StockRecord":
        return cls(
            id=stock.id,
            item_id=stock.item_id,
            location_id=stock.location_id,
            item_code=stock.item.code if stock.item else None,
            item_name=stock.item.name if stock.item else None,
            location_code=stock.location.code if stock.location else None,
            quantity=stock.quantity,
            reserved_quantity=stock.reserved_quantity,
            available_quantity=stock.available_quantity,
            bin_location=stock.bin_location,
            last_updated=stock.last_updated,
        )


class LowStockAlert(StockRecord):
    min_stock_level: int
    unit_of_measure: str = "units"

    @classmethod
    def from_record(cls, stock) -> "LowStockAlert":
        base = StockRecord.from_record(stock).model_dump()
        return cls(
            **base,
            min_stock_level=stock.item.min_stock_level or 0,
            unit_of_measure=stock.item.unit_of_measure or "units",
        )


class BinLocationUpdate(BaseModel):
    bin_location: Optional[str] = Field(None, max_length=50)
