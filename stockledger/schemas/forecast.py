"""Demand Forecast Schemas"""

from pydantic import BaseModel, ConfigDict
from typing import List

from stockledger.services.stock.demand_forecasting import Confidence, ForecastSignal


class DemandForecast(BaseModel):
    """Forecast for one (item, location) pair"""
    signal: ForecastSignal
    item_id: int
    item_code: str
    item_name: str
    unit_of_measure: str
    location_id: int
    location_code: str
    location_name: str
    current_quantity: int
    min_stock_level: int
    daily_demand: float
    will_run_out: bool
    days_until_shortage: int
    days_until_min_level: int
    suggested_reorder_quantity: int
    confidence: Confidence
    reason: str
    estimator: str

    model_config = ConfigDict(from_attributes=True)


class ForecastListResponse(BaseModel):
    forecasts: List[DemandForecast]
    count: int
    estimator: str
