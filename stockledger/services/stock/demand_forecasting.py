"""
Demand Forecasting Service
Days-until-shortage and reorder suggestions per (item, location), derived
from completed deliveries
"""
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional
import math

import pandas as pd
from sqlalchemy import desc
from sqlalchemy.orm import Session

from stockledger.core.config import settings
from stockledger.core.logging import get_logger
from stockledger.core.timeutils import utcnow
from stockledger.models.catalog import ItemRec
from stockledger.models.stock import StockRec
from stockledger.models.transaction import TransactionRec, TransactionStatus, TransactionType
from stockledger.services.stock.regression import linear_regression

logger = get_logger("business")


class ForecastSignal(str, Enum):
    NO_SIGNAL = "no_signal"    # stock judged safe; not reported
    MONITORING = "monitoring"
    SHORTAGE = "shortage"


class Confidence(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class DemandObservation:
    """One qualifying delivery: when it completed and how much of the item left"""
    completed_at: datetime
    quantity: int


@dataclass(frozen=True)
class DemandEstimate:
    daily_demand: float
    observation_count: int
    r_squared: Optional[float] = None


@dataclass(frozen=True)
class DemandForecast:
    """Forecast for one (item, location) pair, tagged by signal"""
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

    @property
    def is_reported(self) -> bool:
        return self.signal != ForecastSignal.NO_SIGNAL

    def to_dict(self) -> dict:
        data = asdict(self)
        data["signal"] = self.signal.value
        data["confidence"] = self.confidence.value
        return data


# ----------------------------------------------------------------------
# Estimators
# ----------------------------------------------------------------------
class DemandEstimator:
    """Turns qualifying observations into a daily demand rate"""
    name = "base"

    def estimate(self, observations: List[DemandObservation], now: datetime) -> DemandEstimate:
        raise NotImplementedError


class MeanDailyRateEstimator(DemandEstimator):
    """
    Total quantity over whole days since the oldest observation

    The divisor is never less than one day.
    """
    name = "mean_rate"

    def estimate(self, observations: List[DemandObservation], now: datetime) -> DemandEstimate:
        if not observations:
            return DemandEstimate(0.0, 0)
        total = sum(obs.quantity for obs in observations)
        oldest = min(obs.completed_at for obs in observations)
        days = max(1, (now - oldest).days)
        return DemandEstimate(total / days, len(observations))


class LinearTrendEstimator(DemandEstimator):
    """
    Least-squares trend over daily totals, evaluated at today

    Days without deliveries count as zero demand. Less than two days of
    history falls back to the mean daily rate.
    """
    name = "linear_trend"

    def __init__(self):
        self._fallback = MeanDailyRateEstimator()

    def estimate(self, observations: List[DemandObservation], now: datetime) -> DemandEstimate:
        if not observations:
            return DemandEstimate(0.0, 0)

        daily = pd.Series(
            [obs.quantity for obs in observations],
            index=pd.DatetimeIndex([obs.completed_at for obs in observations]).normalize(),
        ).groupby(level=0).sum()
        days = pd.date_range(daily.index.min(), pd.Timestamp(now).normalize(), freq="D")
        if len(days) < 2:
            return self._fallback.estimate(observations, now)

        daily = daily.reindex(days, fill_value=0)
        fit = linear_regression(list(enumerate(daily.tolist())))
        today = len(days) - 1
        return DemandEstimate(max(0.0, fit.predict(today)), len(observations), fit.r_squared)


ESTIMATORS: Dict[str, Callable[[], DemandEstimator]] = {
    MeanDailyRateEstimator.name: MeanDailyRateEstimator,
    LinearTrendEstimator.name: LinearTrendEstimator,
}


def get_estimator(name: Optional[str] = None) -> DemandEstimator:
    """Estimator registered under name (defaults to the configured one)"""
    name = name or settings.FORECAST_ESTIMATOR
    try:
        return ESTIMATORS[name]()
    except KeyError:
        raise ValueError(f"Unknown demand estimator: {name}")


# ----------------------------------------------------------------------
# Service
# ----------------------------------------------------------------------
class DemandForecastingService:
    """
    Demand Forecasting functionality

    Reads stock records of active items and, per location, the most recent
    completed deliveries out of it. Only the forecasted item's own line
    quantities count towards its demand.
    """

    def __init__(self, db: Session, estimator: Optional[DemandEstimator] = None,
                 now: Optional[datetime] = None):
        self.db = db
        self.estimator = estimator or get_estimator()
        self.now = now

    def get_forecasts(self, location_id: Optional[int] = None) -> List[DemandForecast]:
        """
        Reported forecasts, most urgent first

        Ordered by days until shortage, then by current quantity.
        """
        now = self.now or utcnow()
        query = (
            self.db.query(StockRec)
            .join(ItemRec, ItemRec.id == StockRec.item_id)
            .filter(ItemRec.is_active.is_(True))
        )
        if location_id is not None:
            query = query.filter(StockRec.location_id == location_id)

        history: Dict[int, List[TransactionRec]] = {}
        forecasts = []
        for stock in query.all():
            if stock.location_id not in history:
                history[stock.location_id] = self.recent_deliveries(stock.location_id)
            forecast = self.forecast_for_stock(stock, history[stock.location_id], now)
            if forecast.is_reported:
                forecasts.append(forecast)

        forecasts.sort(key=lambda f: (f.days_until_shortage, f.current_quantity))
        logger.info(f"Demand forecast ({self.estimator.name}): {len(forecasts)} reported")
        return forecasts

    def recent_deliveries(self, location_id: int) -> List[TransactionRec]:
        """Most recent completed deliveries out of a location, newest first"""
        return (
            self.db.query(TransactionRec)
            .filter(
                TransactionRec.type == TransactionType.DELIVERY.value,
                TransactionRec.status == TransactionStatus.COMPLETED.value,
                TransactionRec.from_location_id == location_id,
                TransactionRec.completed_at.isnot(None),
            )
            .order_by(desc(TransactionRec.completed_at), desc(TransactionRec.id))
            .limit(settings.FORECAST_HISTORY_LIMIT)
            .all()
        )

    def forecast_for_stock(self, stock: StockRec, deliveries: Optional[List[TransactionRec]] = None,
                           now: Optional[datetime] = None) -> DemandForecast:
        now = now or self.now or utcnow()
        if deliveries is None:
            deliveries = self.recent_deliveries(stock.location_id)

        # Deliveries in the window that carried this item at all
        containing = []
        for txn in deliveries:
            quantities = [line.quantity for line in txn.lines if line.item_id == stock.item_id]
            if quantities:
                containing.append(DemandObservation(txn.completed_at, sum(quantities)))

        cutoff = now - timedelta(days=settings.FORECAST_LOOKBACK_DAYS)
        qualifying = [obs for obs in containing if obs.completed_at >= cutoff]

        if qualifying:
            estimate = self.estimator.estimate(qualifying, now)
        else:
            estimate = DemandEstimate(0.0, 0)

        if estimate.daily_demand <= 0:
            return self._forecast_without_demand(stock, history_seen=bool(containing))
        return self._forecast_with_demand(stock, estimate)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _base(self, stock: StockRec) -> dict:
        item = stock.item
        location = stock.location
        return dict(
            item_id=stock.item_id,
            item_code=item.code,
            item_name=item.name,
            unit_of_measure=item.unit_of_measure or "units",
            location_id=stock.location_id,
            location_code=location.code if location else "",
            location_name=location.name if location else "Unknown",
            current_quantity=stock.quantity,
            min_stock_level=item.min_stock_level or 0,
            estimator=self.estimator.name,
        )

    def _forecast_without_demand(self, stock: StockRec, history_seen: bool) -> DemandForecast:
        base = self._base(stock)
        quantity = stock.quantity
        min_level = base["min_stock_level"]
        max_level = stock.item.max_stock_level or min_level * 2

        if quantity <= min_level:
            reorder = max_level - quantity
            if reorder <= 0:
                reorder = min_level * 2
            return DemandForecast(
                signal=ForecastSignal.SHORTAGE,
                daily_demand=0.0,
                will_run_out=True,
                days_until_shortage=0,
                days_until_min_level=0,
                suggested_reorder_quantity=reorder,
                confidence=Confidence.LOW,
                reason="No recent demand detected" if history_seen else "No historical data available",
                **base,
            )

        factor = settings.FORECAST_STALE_MONITOR_FACTOR if history_seen else settings.FORECAST_MONITOR_FACTOR
        no_shortage = settings.FORECAST_NO_SHORTAGE_DAYS
        if quantity <= factor * min_level:
            signal = ForecastSignal.MONITORING
            reason = (
                "No recent demand - stock monitoring" if history_seen
                else "No historical data - monitoring stock levels"
            )
        else:
            signal = ForecastSignal.NO_SIGNAL
            reason = "Stock level safe"

        return DemandForecast(
            signal=signal,
            daily_demand=0.0,
            will_run_out=False,
            days_until_shortage=no_shortage,
            days_until_min_level=no_shortage,
            suggested_reorder_quantity=min_level * 2,
            confidence=Confidence.LOW,
            reason=reason,
            **base,
        )

    def _forecast_with_demand(self, stock: StockRec, estimate: DemandEstimate) -> DemandForecast:
        base = self._base(stock)
        quantity = stock.quantity
        min_level = base["min_stock_level"]
        demand = estimate.daily_demand

        days_until_shortage = max(0, math.ceil(quantity / demand))
        days_until_min_level = max(0, math.ceil((quantity - min_level) / demand))

        if (days_until_shortage > settings.FORECAST_SAFE_SHORTAGE_DAYS
                and days_until_min_level > settings.FORECAST_SAFE_MIN_LEVEL_DAYS):
            signal = ForecastSignal.NO_SIGNAL
        else:
            signal = ForecastSignal.SHORTAGE

        reorder = math.ceil(demand * settings.FORECAST_COVERAGE_DAYS + min_level - quantity)
        count = estimate.observation_count

        return DemandForecast(
            signal=signal,
            daily_demand=round(demand, 2),
            will_run_out=days_until_shortage <= settings.FORECAST_RUN_OUT_DAYS,
            days_until_shortage=days_until_shortage,
            days_until_min_level=days_until_min_level,
            suggested_reorder_quantity=max(reorder, min_level),
            confidence=self._confidence(count),
            reason=f"Based on {count} historical transactions",
            **base,
        )

    @staticmethod
    def _confidence(qualifying_count: int) -> Confidence:
        if qualifying_count >= settings.FORECAST_HIGH_CONFIDENCE_MIN:
            return Confidence.HIGH
        if qualifying_count < settings.FORECAST_LOW_CONFIDENCE_BELOW:
            return Confidence.LOW
        return Confidence.MEDIUM
