"""Demand Forecast API endpoints"""

from fastapi import APIRouter, Depends, Query
from typing import Optional

from stockledger.api import deps
from stockledger.schemas.forecast import DemandForecast, ForecastListResponse
from stockledger.services.stock import DemandForecastingService

router = APIRouter()


@router.get("", response_model=ForecastListResponse)
def get_forecasts(
    location_id: Optional[int] = Query(None, description="Filter by location"),
    service: DemandForecastingService = Depends(deps.get_forecasting_service),
):
    """
    Shortage forecasts and reorder suggestions, most urgent first.
    """
    forecasts = service.get_forecasts(location_id=location_id)
    return ForecastListResponse(
        forecasts=[DemandForecast.model_validate(f) for f in forecasts],
        count=len(forecasts),
        estimator=service.estimator.name,
    )
