"""
Stock Ledger Services
Business logic for the ledger engine and its collaborators
"""

from .catalog import CatalogLookup, ItemInfo, LocationInfo
from .notifications import NotificationSink, StockChangedEvent, stock_events

__all__ = [
    "CatalogLookup",
    "ItemInfo",
    "LocationInfo",
    "NotificationSink",
    "StockChangedEvent",
    "stock_events",
]
