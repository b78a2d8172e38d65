"""
Unit Tests for the Evaluation Module

Test Coverage:
- Metric formulas on a hand-checked scenario
- MPE/MAPE undefined when an actual value is zero
- Theil's U against the no-change forecast
- Forecast/test alignment checks
- Training-set accuracy from fitted values
- Residual diagnostics and best-model selection
"""

import numpy as np
import pandas as pd
import pytest

from btc_forecast.evaluation import (
    METRIC_NAMES,
    TRAINING_SET,
    AccuracyReport,
    calculate_acf1,
    calculate_mae,
    calculate_mape,
    calculate_me,
    calculate_mpe,
    calculate_rmse,
    calculate_theils_u,
    compute_accuracy,
    evaluate_forecast,
    evaluate_in_sample,
    residual_diagnostics,
    select_best_model,
)
from btc_forecast.exceptions import AlignmentError
from btc_forecast.models.base import ModelHandle
from btc_forecast.timeseries import ForecastResult, TimeSeries


# ============================================================================
# FIXTURES
# ============================================================================

def _daily(values, start="2024-01-01") -> TimeSeries:
    return TimeSeries(index=pd.date_range(start, periods=len(values), freq="D"), values=values)


@pytest.fixture
def scenario_test() -> TimeSeries:
    """Actual returns [0.01, -0.02, 0.015]."""
    return _daily([0.01, -0.02, 0.015])


@pytest.fixture
def zero_forecast(scenario_test) -> ForecastResult:
    return ForecastResult(
        model_id="Zero",
        series=TimeSeries(index=scenario_test.index, values=np.zeros(3)),
    )


# ============================================================================
# TEST 1: METRIC FORMULAS
# ============================================================================

class TestMetricScenario:
    """Actual [0.01, -0.02, 0.015] against an all-zero forecast."""

    actual = [0.01, -0.02, 0.015]
    predicted = [0.0, 0.0, 0.0]

    def test_me(self):
        assert calculate_me(self.actual, self.predicted) == pytest.approx(0.0016667, abs=1e-6)

    def test_rmse(self):
        assert calculate_rmse(self.actual, self.predicted) == pytest.approx(0.015546, abs=1e-6)

    def test_mae(self):
        assert calculate_mae(self.actual, self.predicted) == pytest.approx(0.015, abs=1e-12)

    def test_mape_is_one_hundred(self):
        assert calculate_mape(self.actual, self.predicted) == pytest.approx(100.0)

    def test_mpe_is_one_hundred(self):
        assert calculate_mpe(self.actual, self.predicted) == pytest.approx(100.0)

    def test_acf1(self):
        residuals = np.array(self.actual) - np.array(self.predicted)
        assert calculate_acf1(residuals) == pytest.approx(-0.655039, abs=1e-5)

    def test_theils_u(self):
        # model errors [2, 0.75], naive errors [-3, -1.75]
        expected = np.sqrt((4.0 + 0.5625) / (9.0 + 3.0625))
        assert calculate_theils_u(self.actual, self.predicted) == pytest.approx(expected)


class TestMetricEdgeCases:

    def test_perfect_forecast(self):
        actual = [0.01, -0.03, 0.02, 0.005]
        scores = compute_accuracy(actual, actual)
        for name in ("ME", "RMSE", "MAE", "MPE", "MAPE", "Theil's U"):
            assert scores[name] == pytest.approx(0.0), f"{name} should be 0 for a perfect forecast"

    def test_mape_undefined_with_zero_actual(self):
        assert np.isnan(calculate_mape([0.01, 0.0, -0.02], [0.0, 0.0, 0.0]))

    def test_mpe_undefined_with_zero_actual(self):
        assert np.isnan(calculate_mpe([0.0, 0.01], [0.005, 0.005]))

    def test_other_metrics_defined_with_zero_actual(self):
        scores = compute_accuracy([0.01, 0.0, -0.02], [0.0, 0.0, 0.0])
        assert np.isnan(scores["MAPE"])
        assert np.isfinite(scores["RMSE"])
        assert np.isfinite(scores["MAE"])

    def test_theils_u_needs_two_points(self):
        assert np.isnan(calculate_theils_u([0.01], [0.0]))

    def test_theils_u_undefined_for_constant_actuals(self):
        assert np.isnan(calculate_theils_u([0.01, 0.01, 0.01], [0.0, 0.0, 0.0]))

    def test_theils_u_naive_forecast_scores_one(self):
        actual = np.array([0.01, -0.02, 0.015, 0.03, -0.01])
        naive = np.concatenate([[actual[0]], actual[:-1]])
        assert calculate_theils_u(actual, naive) == pytest.approx(1.0)

    def test_acf1_constant_residuals(self):
        assert np.isnan(calculate_acf1([0.5, 0.5, 0.5]))

    def test_length_mismatch_raises(self):
        with pytest.raises(AlignmentError):
            calculate_rmse([1.0, 2.0], [1.0])

    def test_empty_input_raises(self):
        with pytest.raises(ValueError):
            calculate_mae([], [])


# ============================================================================
# TEST 2: ACCURACY REPORTS
# ============================================================================

class TestEvaluateForecast:

    def test_report_order_and_values(self, zero_forecast, scenario_test):
        report = evaluate_forecast(zero_forecast, scenario_test)

        assert isinstance(report, AccuracyReport)
        assert list(report) == list(METRIC_NAMES)
        assert report.model_id == "Zero"
        assert report["RMSE"] == pytest.approx(0.015546, abs=1e-6)
        assert report["MAPE"] == pytest.approx(100.0)
        assert report.as_dict()["ME"] == pytest.approx(0.0016667, abs=1e-6)

    def test_length_mismatch_raises(self, scenario_test):
        short = ForecastResult(model_id="Short", series=_daily([0.0, 0.0]))
        with pytest.raises(AlignmentError):
            evaluate_forecast(short, scenario_test)

    def test_timestamp_mismatch_raises(self, scenario_test):
        shifted = ForecastResult(model_id="Shifted", series=_daily([0.0, 0.0, 0.0], start="2024-01-02"))
        with pytest.raises(AlignmentError):
            evaluate_forecast(shifted, scenario_test)

    def test_flat_forecast_is_valid(self, scenario_test):
        flat = ForecastResult(model_id="Flat", series=TimeSeries(index=scenario_test.index,
                                                                values=np.full(3, 0.0005)))
        report = evaluate_forecast(flat, scenario_test)
        assert all(np.isfinite(report[name]) for name in ("ME", "RMSE", "MAE", "MAPE"))


class TestEvaluateInSample:

    def test_skips_missing_fitted_values(self):
        train = _daily([0.01, -0.02, 0.015, 0.005, -0.01])
        fitted = np.array([np.nan, np.nan, 0.0, 0.0, 0.0])
        handle = ModelHandle(model_id="NNAR", model=None, train_index=train.index,
                             freq=None, fitted_values=fitted)

        report = evaluate_in_sample(handle, train)

        assert report.sample == TRAINING_SET
        assert report["MAE"] == pytest.approx((0.015 + 0.005 + 0.01) / 3)
        assert np.isnan(report["Theil's U"])

    def test_fitted_length_mismatch_raises(self):
        train = _daily([0.01, -0.02, 0.015])
        handle = ModelHandle(model_id="ARIMA", model=None, train_index=train.index[:2],
                             freq=None, fitted_values=np.zeros(2))
        with pytest.raises(AlignmentError):
            evaluate_in_sample(handle, train)


# ============================================================================
# TEST 3: RESIDUAL DIAGNOSTICS
# ============================================================================

class TestResidualDiagnostics:

    def test_white_noise_passes_ljung_box(self):
        np.random.seed(42)
        diagnostics = residual_diagnostics(np.random.randn(500), lags=10)

        assert diagnostics['ljung_box_pvalue'] > 0.05
        assert diagnostics['is_white_noise']
        assert diagnostics['distribution']['n'] == 500

    def test_autocorrelated_residuals_fail(self):
        np.random.seed(42)
        shocks = np.random.randn(500)
        residuals = np.empty(500)
        residuals[0] = shocks[0]
        for t in range(1, 500):
            residuals[t] = 0.8 * residuals[t - 1] + shocks[t]

        diagnostics = residual_diagnostics(residuals, lags=10)

        assert diagnostics['ljung_box_pvalue'] < 0.05
        assert diagnostics['is_white_noise'] is False

    def test_short_residuals_skip_test(self):
        diagnostics = residual_diagnostics([0.1, -0.2, 0.05], lags=10)
        assert diagnostics['ljung_box_pvalue'] is None
        assert diagnostics['distribution']['n'] == 3

    def test_nan_residuals_dropped(self):
        np.random.seed(42)
        residuals = np.concatenate([[np.nan, np.nan], np.random.randn(100)])
        diagnostics = residual_diagnostics(residuals, lags=5)
        assert diagnostics['distribution']['n'] == 100


# ============================================================================
# TEST 4: BEST MODEL
# ============================================================================

class TestSelectBestModel:

    @staticmethod
    def _report(model_id, mape, me=0.0):
        return AccuracyReport(model_id, {"MAPE": mape, "ME": me})

    def test_lowest_mape_wins(self):
        reports = {
            "ARIMA": self._report("ARIMA", 105.0),
            "ETS": self._report("ETS", 99.5),
            "Combination": self._report("Combination", 101.0),
        }
        assert select_best_model(reports) == ("ETS", 99.5)

    def test_nan_scores_ignored(self):
        reports = {
            "ARIMA": self._report("ARIMA", float("nan")),
            "Prophet": self._report("Prophet", 120.0),
        }
        assert select_best_model(reports)[0] == "Prophet"

    def test_signed_metric_closest_to_zero(self):
        reports = {
            "ARIMA": self._report("ARIMA", 100.0, me=-0.001),
            "ETS": self._report("ETS", 100.0, me=0.002),
        }
        assert select_best_model(reports, metric="ME") == ("ARIMA", -0.001)

    def test_no_finite_scores(self):
        model_id, score = select_best_model({"ARIMA": self._report("ARIMA", float("nan"))})
        assert model_id is None
        assert np.isnan(score)

    def test_unknown_metric_raises(self):
        with pytest.raises(ValueError):
            select_best_model({}, metric="R2")
