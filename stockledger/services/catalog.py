"""
Catalog Lookup Service
Read-only item and location lookups consumed by the ledger engine
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from stockledger.models.catalog import ItemRec, LocationRec


@dataclass(frozen=True)
class ItemInfo:
    """Item as seen by the ledger"""
    id: int
    code: str
    name: str
    unit_of_measure: str
    min_stock_level: int
    max_stock_level: Optional[int]
    is_active: bool


@dataclass(frozen=True)
class LocationInfo:
    id: int
    code: str
    name: str
    is_active: bool


class CatalogLookup:
    """Item and location lookup by id"""

    def __init__(self, db: Session):
        self.db = db

    def get_item(self, item_id: int) -> Optional[ItemInfo]:
        item = self.db.get(ItemRec, item_id)
        if item is None:
            return None
        return ItemInfo(
            id=item.id,
            code=item.code,
            name=item.name,
            unit_of_measure=item.unit_of_measure,
            min_stock_level=item.min_stock_level or 0,
            max_stock_level=item.max_stock_level,
            is_active=bool(item.is_active),
        )

    def get_location(self, location_id: int) -> Optional[LocationInfo]:
        location = self.db.get(LocationRec, location_id)
        if location is None:
            return None
        return LocationInfo(
            id=location.id,
            code=location.code,
            name=location.name,
            is_active=bool(location.is_active),
        )
