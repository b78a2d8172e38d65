"""
Integration Tests for the Forecast Evaluation Pipeline

Deterministic stub adapters stand in for the statistical libraries so the
orchestration itself is tested: stage order, failure recording, the
combination and the best-model conclusion.
"""

import numpy as np
import pandas as pd
import pytest

from btc_forecast.combiner import COMBINATION_ID
from btc_forecast.config_loader import get_default_config
from btc_forecast.exceptions import InsufficientDataError, InvalidInputError
from btc_forecast.models import ForecastAdapter, build_adapters
from btc_forecast.pipeline import run_forecast_report
from btc_forecast.timeseries import TimeSeries


# ============================================================================
# FIXTURES
# ============================================================================

class ConstantAdapter(ForecastAdapter):
    """Forecasts a fixed value; optionally fails or over-produces points."""

    min_train_size = 2

    def __init__(self, model_id, value, fail=False, extra_points=0, fail_predict=False):
        super().__init__({})
        self.model_id = model_id
        self.value = value
        self.fail = fail
        self.fail_predict = fail_predict
        self.extra_points = extra_points

    def _fit(self, train):
        if self.fail:
            raise RuntimeError("optimizer diverged")
        return self.value, np.full(len(train), self.value), {'value': self.value}

    def _predict(self, handle, horizon, index):
        if self.fail_predict:
            raise RuntimeError("prediction matrix is singular")
        return np.full(horizon + self.extra_points, handle.model), None, None


def _stub_adapters(**overrides):
    values = {"ARIMA": 0.0005, "ETS": 0.0004, "Holt-Winters": -0.0010, "NNAR": 0.0020, "Prophet": 0.0001}
    return [
        ConstantAdapter(model_id, value, **overrides.get(model_id, {}))
        for model_id, value in values.items()
    ]


@pytest.fixture
def prices() -> TimeSeries:
    """Geometric random walk of 151 daily prices (150 returns)."""
    np.random.seed(42)
    log_prices = np.log(20000.0) + np.cumsum(np.random.normal(0.0005, 0.03, 151))
    return TimeSeries(
        index=pd.date_range("2021-01-01", periods=151, freq="D"),
        values=np.exp(log_prices),
        name="BTC-USD",
    )


@pytest.fixture
def config():
    return get_default_config()


# ============================================================================
# TEST 1: SUCCESSFUL RUN
# ============================================================================

class TestSuccessfulRun:

    def test_split_sizes(self, prices, config):
        result = run_forecast_report(prices, config, adapters=_stub_adapters())
        assert result['train_size'] == 120
        assert result['test_size'] == 30
        assert len(result['returns']) == 150

    def test_six_forecasts_on_test_timestamps(self, prices, config):
        result = run_forecast_report(prices, config, adapters=_stub_adapters())
        test = result['split'].test

        assert list(result['forecasts']) == ["ARIMA", "ETS", "Holt-Winters", "NNAR", "Prophet", COMBINATION_ID]
        for model_id, forecast in result['forecasts'].items():
            assert forecast.index.equals(test.index), f"{model_id} timestamps differ from test"

    def test_combination_is_mean(self, prices, config):
        result = run_forecast_report(prices, config, adapters=_stub_adapters())
        combined = result['forecasts'][COMBINATION_ID]
        expected = np.mean([0.0005, 0.0004, -0.0010, 0.0020, 0.0001])
        np.testing.assert_allclose(combined.values, expected)

    def test_reports_for_every_forecast(self, prices, config):
        result = run_forecast_report(prices, config, adapters=_stub_adapters())

        assert set(result['accuracy']) == set(result['forecasts'])
        assert set(result['diagnostics']) == set(result['forecasts'])
        assert set(result['in_sample']) == {"ARIMA", "ETS", "Holt-Winters", "NNAR", "Prophet"}
        assert result['failures'] == {}

    def test_best_model_has_lowest_mape(self, prices, config):
        result = run_forecast_report(prices, config, adapters=_stub_adapters())
        mapes = {model_id: report["MAPE"] for model_id, report in result['accuracy'].items()}

        assert result['selection_metric'] == "MAPE"
        assert result['best_model'] == min(mapes, key=mapes.get)
        assert result['best_score'] == pytest.approx(min(mapes.values()))

    def test_stationarity_reported(self, prices, config):
        result = run_forecast_report(prices, config, adapters=_stub_adapters())
        assert result['stationarity'] is not None
        assert result['stationarity'].is_stationary

    def test_last_train_price(self, prices, config):
        result = run_forecast_report(prices, config, adapters=_stub_adapters())
        # returns start at the second price, so train covers prices[0..120]
        assert result['last_train_price'] == pytest.approx(prices.values[120])

    def test_input_not_modified(self, prices, config):
        before = prices.values.copy()
        run_forecast_report(prices, config, adapters=_stub_adapters())
        np.testing.assert_array_equal(prices.values, before)


# ============================================================================
# TEST 2: FAILURES
# ============================================================================

class TestFailures:

    def test_failed_adapter_recorded_and_combination_fails(self, prices, config):
        result = run_forecast_report(prices, config, adapters=_stub_adapters(NNAR={'fail': True}))

        assert set(result['failures']) == {"NNAR", COMBINATION_ID}
        assert result['failures']["NNAR"]['kind'] == "ConvergenceError"
        assert result['failures']["NNAR"]['stage'] == "NNAR.fit"
        assert result['failures'][COMBINATION_ID]['kind'] == "AlignmentError"
        assert result['failures'][COMBINATION_ID]['stage'] == "combiner"

    def test_surviving_models_still_evaluated(self, prices, config):
        result = run_forecast_report(prices, config, adapters=_stub_adapters(NNAR={'fail': True}))

        assert set(result['accuracy']) == {"ARIMA", "ETS", "Holt-Winters", "Prophet"}
        assert result['best_model'] in result['accuracy']

    def test_library_error_at_forecast_time_recorded(self, prices, config):
        result = run_forecast_report(prices, config, adapters=_stub_adapters(ETS={'fail_predict': True}))

        assert result['failures']["ETS"]['kind'] == "ConvergenceError"
        assert result['failures']["ETS"]['stage'] == "ETS.predict"
        assert result['failures'][COMBINATION_ID]['kind'] == "AlignmentError"
        assert "ETS" not in result['forecasts']
        assert set(result['accuracy']) == {"ARIMA", "Holt-Winters", "NNAR", "Prophet"}

    def test_excess_points_rejected(self, prices, config):
        result = run_forecast_report(prices, config, adapters=_stub_adapters(Prophet={'extra_points': 5}))

        assert result['failures']["Prophet"]['kind'] == "AlignmentError"
        assert "Prophet" not in result['forecasts']
        assert COMBINATION_ID in result['failures']

    def test_non_positive_prices_halt(self, config):
        bad = TimeSeries(index=pd.date_range("2024-01-01", periods=5, freq="D"),
                         values=[100.0, 101.0, 0.0, 102.0, 103.0])
        with pytest.raises(InvalidInputError) as exc_info:
            run_forecast_report(bad, config, adapters=_stub_adapters())
        assert exc_info.value.stage == "returns"

    def test_too_few_points_halt_at_split(self, config):
        # one return: nothing left to train on
        short = TimeSeries(index=pd.date_range("2024-01-01", periods=2, freq="D"), values=[100.0, 101.0])
        with pytest.raises(InsufficientDataError) as exc_info:
            run_forecast_report(short, config, adapters=_stub_adapters())
        assert exc_info.value.stage == "splitter"

    def test_short_series_skips_stationarity(self, config):
        np.random.seed(0)
        short = TimeSeries(index=pd.date_range("2024-01-01", periods=8, freq="D"),
                           values=100.0 * np.exp(np.cumsum(np.random.normal(0.0, 0.02, 8))))
        result = run_forecast_report(short, config, adapters=_stub_adapters())

        assert result['stationarity'] is None
        assert result['test_size'] == 2
        assert result['failures'] == {}


# ============================================================================
# TEST 3: END-TO-END WITH THE LIBRARY MODELS
# ============================================================================

class TestLibraryAdapters:

    def test_all_six_forecasts_evaluated(self, prices, config):
        config['arima'].update({'max_p': 1, 'max_q': 1})
        config['nnar'].update({'max_lags': 3, 'repeats': 1, 'epochs': 3, 'early_stopping_patience': 1})
        config['prophet']['yearly_seasonality'] = False

        result = run_forecast_report(prices, config, adapters=build_adapters(config))

        assert result['failures'] == {}
        assert list(result['forecasts']) == ["ARIMA", "ETS", "Holt-Winters", "NNAR", "Prophet", COMBINATION_ID]
        for model_id, forecast in result['forecasts'].items():
            assert len(forecast) == result['test_size'], f"{model_id} horizon differs from test"
            assert np.all(np.isfinite(forecast.values))
        assert set(result['accuracy']) == set(result['forecasts'])
        assert result['best_model'] in result['accuracy']
