"""
Tests for the Demand Forecasting Service
Shortage projection, reorder suggestions and estimator strategies
"""

import pytest
from datetime import datetime, timedelta
from sqlalchemy.orm import Session

from stockledger.services.stock.demand_forecasting import (
    Confidence, DemandForecastingService, DemandObservation, ForecastSignal,
    LinearTrendEstimator, MeanDailyRateEstimator, get_estimator
)
from stockledger.services.stock.regression import linear_regression

NOW = datetime(2026, 6, 1, 12, 0, 0)


@pytest.fixture
def forecaster(db_session: Session) -> DemandForecastingService:
    return DemandForecastingService(db_session, estimator=MeanDailyRateEstimator(), now=NOW)


def _forecast(forecaster, ledger, item, location):
    return forecaster.forecast_for_stock(ledger.get_stock_record(item.id, location.id))


class TestWithoutDemandHistory:
    """Items that never left the location recently"""

    def test_at_or_below_minimum_is_immediate_shortage(self, forecaster, stock_at, ledger, rod, warehouse_a):
        stock_at(rod, warehouse_a, 15)      # min 20, max 200

        forecast = _forecast(forecaster, ledger, rod, warehouse_a)

        assert forecast.signal == ForecastSignal.SHORTAGE
        assert forecast.days_until_shortage == 0
        assert forecast.will_run_out is True
        assert forecast.suggested_reorder_quantity == 185
        assert forecast.confidence == Confidence.LOW
        assert forecast.daily_demand == 0
        assert forecast.reason == "No historical data available"

    def test_unset_maximum_defaults_to_twice_minimum(self, forecaster, stock_at, ledger, reel, warehouse_a):
        stock_at(reel, warehouse_a, 4)      # min 10, no max

        forecast = _forecast(forecaster, ledger, reel, warehouse_a)

        assert forecast.suggested_reorder_quantity == 16

    def test_non_positive_reorder_falls_back_to_twice_minimum(self, db_session: Session, forecaster,
                                                              stock_at, ledger, rod, warehouse_a):
        rod.max_stock_level = 10
        db_session.commit()
        stock_at(rod, warehouse_a, 20)

        forecast = _forecast(forecaster, ledger, rod, warehouse_a)

        assert forecast.signal == ForecastSignal.SHORTAGE
        assert forecast.suggested_reorder_quantity == 40

    def test_within_twice_minimum_is_monitored(self, forecaster, stock_at, ledger, rod, warehouse_a):
        stock_at(rod, warehouse_a, 40)

        forecast = _forecast(forecaster, ledger, rod, warehouse_a)

        assert forecast.signal == ForecastSignal.MONITORING
        assert forecast.days_until_shortage == 999
        assert forecast.will_run_out is False
        assert forecast.suggested_reorder_quantity == 40
        assert forecast.confidence == Confidence.LOW

    def test_comfortable_stock_is_suppressed(self, forecaster, stock_at, ledger, rod, warehouse_a):
        stock_at(rod, warehouse_a, 41)

        assert _forecast(forecaster, ledger, rod, warehouse_a).signal == ForecastSignal.NO_SIGNAL
        assert forecaster.get_forecasts() == []

    def test_stale_history_uses_narrower_band(self, forecaster, stock_at, completed_delivery, ledger,
                                              rod, warehouse_a):
        """Deliveries older than the lookback window monitor up to 1.5 x minimum"""
        stock_at(rod, warehouse_a, 30)
        completed_delivery(warehouse_a, NOW - timedelta(days=90), (rod, 12))

        forecast = _forecast(forecaster, ledger, rod, warehouse_a)
        assert forecast.signal == ForecastSignal.MONITORING
        assert forecast.reason == "No recent demand - stock monitoring"

        stock_at(rod, warehouse_a, 1)
        assert _forecast(forecaster, ledger, rod, warehouse_a).signal == ForecastSignal.NO_SIGNAL

    def test_stale_history_below_minimum(self, forecaster, stock_at, completed_delivery, ledger,
                                         rod, warehouse_a):
        stock_at(rod, warehouse_a, 5)
        completed_delivery(warehouse_a, NOW - timedelta(days=61), (rod, 12))

        forecast = _forecast(forecaster, ledger, rod, warehouse_a)
        assert forecast.signal == ForecastSignal.SHORTAGE
        assert forecast.reason == "No recent demand detected"


class TestWithDemandHistory:
    """Mean daily rate over the last 60 days"""

    def _ship_evenly(self, completed_delivery, location, item, count, quantity, span_days):
        """count deliveries of quantity each, the oldest span_days before NOW"""
        step = timedelta(days=span_days) / count
        for n in range(count):
            completed_delivery(location, NOW - timedelta(days=span_days) + step * n, (item, quantity))

    def test_twenty_five_deliveries(self, forecaster, stock_at, completed_delivery, ledger, rod, warehouse_a):
        """300 units over 30 days is 10 a day with high confidence"""
        stock_at(rod, warehouse_a, 100)
        self._ship_evenly(completed_delivery, warehouse_a, rod, 25, 12, 30)

        forecast = _forecast(forecaster, ledger, rod, warehouse_a)

        assert forecast.signal == ForecastSignal.SHORTAGE
        assert forecast.daily_demand == pytest.approx(10.0)
        assert forecast.confidence == Confidence.HIGH
        assert forecast.days_until_shortage == 10
        assert forecast.days_until_min_level == 8
        assert forecast.will_run_out is True
        assert forecast.suggested_reorder_quantity == 220
        assert forecast.reason == "Based on 25 historical transactions"

    @pytest.mark.parametrize("count,confidence", [
        (4, Confidence.LOW),
        (5, Confidence.MEDIUM),
        (19, Confidence.MEDIUM),
        (20, Confidence.HIGH),
    ])
    def test_confidence_bands(self, forecaster, stock_at, completed_delivery, ledger, rod, warehouse_a,
                              count, confidence):
        stock_at(rod, warehouse_a, 30)
        self._ship_evenly(completed_delivery, warehouse_a, rod, count, 3, 20)

        assert _forecast(forecaster, ledger, rod, warehouse_a).confidence == confidence

    def test_only_this_items_quantities_count(self, forecaster, stock_at, completed_delivery, ledger,
                                              rod, reel, warehouse_a):
        stock_at(rod, warehouse_a, 25)
        completed_delivery(warehouse_a, NOW - timedelta(days=10), (rod, 10), (reel, 90))

        forecast = _forecast(forecaster, ledger, rod, warehouse_a)

        assert forecast.daily_demand == pytest.approx(1.0)
        assert forecast.days_until_shortage == 25

    def test_other_locations_are_ignored(self, forecaster, stock_at, completed_delivery, ledger,
                                         rod, warehouse_a, warehouse_b):
        stock_at(rod, warehouse_a, 30)
        completed_delivery(warehouse_b, NOW - timedelta(days=5), (rod, 50))

        forecast = _forecast(forecaster, ledger, rod, warehouse_a)
        assert forecast.daily_demand == 0
        assert forecast.signal == ForecastSignal.MONITORING

    def test_same_day_history_uses_one_day_divisor(self, forecaster, stock_at, completed_delivery, ledger,
                                                   rod, warehouse_a):
        stock_at(rod, warehouse_a, 30)
        completed_delivery(warehouse_a, NOW - timedelta(hours=3), (rod, 6))

        forecast = _forecast(forecaster, ledger, rod, warehouse_a)
        assert forecast.daily_demand == pytest.approx(6.0)
        assert forecast.days_until_shortage == 5

    def test_safe_stock_is_suppressed(self, forecaster, stock_at, completed_delivery, ledger, rod, warehouse_a):
        """More than 60 days to shortage and 21 to minimum"""
        stock_at(rod, warehouse_a, 100)
        completed_delivery(warehouse_a, NOW - timedelta(days=10), (rod, 10))

        assert _forecast(forecaster, ledger, rod, warehouse_a).signal == ForecastSignal.NO_SIGNAL

    def test_near_minimum_is_reported_even_when_shortage_is_far(self, db_session: Session, forecaster,
                                                                 stock_at, completed_delivery, ledger,
                                                                 rod, warehouse_a):
        rod.min_stock_level = 60
        db_session.commit()
        stock_at(rod, warehouse_a, 70)      # 70 days to zero, 10 to minimum
        completed_delivery(warehouse_a, NOW - timedelta(days=10), (rod, 10))

        forecast = _forecast(forecaster, ledger, rod, warehouse_a)
        assert forecast.signal == ForecastSignal.SHORTAGE
        assert forecast.days_until_shortage == 70
        assert forecast.days_until_min_level == 10
        assert forecast.will_run_out is False
        assert forecast.suggested_reorder_quantity == 60

    def test_negative_stock_floors_days_at_zero(self, forecaster, stock_at, completed_delivery, ledger,
                                                rod, warehouse_a):
        stock_at(rod, warehouse_a, -4)
        completed_delivery(warehouse_a, NOW - timedelta(days=2), (rod, 4))

        forecast = _forecast(forecaster, ledger, rod, warehouse_a)
        assert forecast.days_until_shortage == 0
        assert forecast.days_until_min_level == 0
        assert forecast.suggested_reorder_quantity == 84

    def test_history_window_keeps_most_recent(self, monkeypatch, forecaster, stock_at, completed_delivery,
                                              ledger, rod, warehouse_a):
        from stockledger.core.config import settings
        monkeypatch.setattr(settings, "FORECAST_HISTORY_LIMIT", 3)
        stock_at(rod, warehouse_a, 30)
        for days_ago in (40, 30, 9, 6, 3):
            completed_delivery(warehouse_a, NOW - timedelta(days=days_ago), (rod, 3))

        recent = forecaster.recent_deliveries(warehouse_a.id)
        assert [NOW - txn.completed_at for txn in recent] == [
            timedelta(days=3), timedelta(days=6), timedelta(days=9),
        ]
        # 9 units since the oldest kept delivery, 9 days ago
        assert _forecast(forecaster, ledger, rod, warehouse_a).daily_demand == pytest.approx(1.0)


class TestGetForecasts:

    def test_sorted_by_urgency_then_quantity(self, db_session: Session, forecaster, stock_at,
                                             completed_delivery, rod, reel, warehouse_a, warehouse_b):
        stock_at(rod, warehouse_a, 30)      # 15 days at 2/day
        stock_at(rod, warehouse_b, 10)      # no history, below minimum
        stock_at(reel, warehouse_a, 12)     # 6 days at 2/day
        stock_at(reel, warehouse_b, 3)      # no history, below minimum
        completed_delivery(warehouse_a, NOW - timedelta(days=10), (rod, 20), (reel, 20))

        forecasts = forecaster.get_forecasts()

        assert [(f.item_code, f.location_code, f.days_until_shortage) for f in forecasts] == [
            ("REEL-01", "WH-B", 0),
            ("ROD-001", "WH-B", 0),
            ("REEL-01", "WH-A", 6),
            ("ROD-001", "WH-A", 15),
        ]

    def test_inactive_items_are_skipped(self, forecaster, stock_at, discontinued_item, warehouse_a):
        stock_at(discontinued_item, warehouse_a, 0)
        assert forecaster.get_forecasts() == []

    def test_location_filter(self, forecaster, stock_at, rod, warehouse_a, warehouse_b):
        stock_at(rod, warehouse_a, 1)
        stock_at(rod, warehouse_b, 2)

        forecasts = forecaster.get_forecasts(location_id=warehouse_b.id)
        assert [f.location_id for f in forecasts] == [warehouse_b.id]

    def test_uses_completed_transactions_from_service(self, db_session: Session, transaction_service,
                                                      rod, warehouse_a):
        """Deliveries completed through the ledger feed the forecast"""
        receipt = transaction_service.create_transaction(
            "receipt", [{"item_id": rod.id, "quantity": 30}], to_location_id=warehouse_a.id
        )
        transaction_service.complete_transaction(receipt.id)
        delivery = transaction_service.create_transaction(
            "delivery", [{"item_id": rod.id, "quantity": 6}], from_location_id=warehouse_a.id
        )
        transaction_service.complete_transaction(delivery.id)

        forecasts = DemandForecastingService(db_session, estimator=MeanDailyRateEstimator()).get_forecasts()

        assert len(forecasts) == 1
        assert forecasts[0].current_quantity == 24
        assert forecasts[0].daily_demand == pytest.approx(6.0)
        assert forecasts[0].days_until_shortage == 4

    def test_to_dict(self, forecaster, stock_at, rod, warehouse_a):
        stock_at(rod, warehouse_a, 1)
        data = forecaster.get_forecasts()[0].to_dict()
        assert data["signal"] == "shortage"
        assert data["confidence"] == "low"
        assert data["estimator"] == "mean_rate"


class TestEstimators:

    def _rising(self):
        """1, 2, ... 10 units on ten consecutive days ending today"""
        start = NOW.replace(hour=10) - timedelta(days=9)
        return [DemandObservation(start + timedelta(days=n), n + 1) for n in range(10)]

    def test_mean_daily_rate(self):
        estimate = MeanDailyRateEstimator().estimate(self._rising(), NOW)
        assert estimate.daily_demand == pytest.approx(55 / 9)
        assert estimate.observation_count == 10

    def test_linear_trend_projects_to_today(self):
        estimate = LinearTrendEstimator().estimate(self._rising(), NOW)
        assert estimate.daily_demand == pytest.approx(10.0)
        assert estimate.r_squared == pytest.approx(1.0)

    def test_linear_trend_counts_quiet_days_as_zero(self):
        observations = [
            DemandObservation(NOW - timedelta(days=4), 10),
            DemandObservation(NOW - timedelta(days=2), 10),
        ]
        estimate = LinearTrendEstimator().estimate(observations, NOW)
        # daily totals 10, 0, 10, 0, 0 for days 0..4
        fit = linear_regression([(0, 10), (1, 0), (2, 10), (3, 0), (4, 0)])
        assert estimate.daily_demand == pytest.approx(max(0.0, fit.predict(4)))

    def test_linear_trend_falling_demand_floors_at_zero(self):
        start = NOW - timedelta(days=5)
        observations = [DemandObservation(start + timedelta(days=n), 50 - 10 * n) for n in range(5)]
        estimate = LinearTrendEstimator().estimate(observations, NOW)
        assert estimate.daily_demand == pytest.approx(0.0, abs=1e-9)

    def test_linear_trend_single_day_falls_back(self):
        observations = [DemandObservation(NOW - timedelta(hours=2), 8)]
        assert LinearTrendEstimator().estimate(observations, NOW).daily_demand == pytest.approx(8.0)

    def test_no_observations(self):
        assert MeanDailyRateEstimator().estimate([], NOW).daily_demand == 0
        assert LinearTrendEstimator().estimate([], NOW).daily_demand == 0

    def test_service_with_linear_trend(self, db_session: Session, stock_at, completed_delivery, ledger,
                                       rod, warehouse_a):
        stock_at(rod, warehouse_a, 35)
        for n in range(10):
            completed_delivery(warehouse_a, NOW.replace(hour=10) - timedelta(days=9 - n), (rod, n + 1))

        service = DemandForecastingService(db_session, estimator=LinearTrendEstimator(), now=NOW)
        forecast = service.forecast_for_stock(ledger.get_stock_record(rod.id, warehouse_a.id))

        assert forecast.estimator == "linear_trend"
        assert forecast.daily_demand == pytest.approx(10.0)
        assert forecast.days_until_shortage == 4

    def test_get_estimator(self):
        assert isinstance(get_estimator("mean_rate"), MeanDailyRateEstimator)
        assert isinstance(get_estimator("linear_trend"), LinearTrendEstimator)
        assert isinstance(get_estimator(), MeanDailyRateEstimator)
        with pytest.raises(ValueError):
            get_estimator("holt_winters")


class TestLinearRegression:

    def test_perfect_fit(self):
        result = linear_regression([(0, 1), (1, 3), (2, 5), (3, 7)])
        assert result.slope == pytest.approx(2.0)
        assert result.intercept == pytest.approx(1.0)
        assert result.r_squared == pytest.approx(1.0)

    def test_noisy_fit(self):
        result = linear_regression([(1, 2), (2, 4), (3, 5), (4, 4), (5, 5)])
        assert result.slope == pytest.approx(0.6)
        assert result.intercept == pytest.approx(2.2)
        assert result.r_squared == pytest.approx(0.6)

    def test_fewer_than_two_points(self):
        assert linear_regression([]) == (0.0, 0.0, 0.0)
        assert linear_regression([(3, 9)]) == (0.0, 0.0, 0.0)

    def test_flat_y_has_zero_r_squared(self):
        result = linear_regression([(0, 4), (1, 4), (2, 4)])
        assert result.slope == pytest.approx(0.0)
        assert result.intercept == pytest.approx(4.0)
        assert result.r_squared == 0.0

    def test_vertical_points(self):
        result = linear_regression([(2, 1), (2, 5)])
        assert result == (0.0, 3.0, 0.0)
