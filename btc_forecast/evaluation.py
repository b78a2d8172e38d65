"""
Evaluation Module

Accuracy metrics and residual diagnostics for every forecast, computed
against the held-out test series, plus in-sample diagnostics on the
training fit.

Metrics (errors e_t = actual_t - forecast_t):
    ME        mean(e)
    RMSE      sqrt(mean(e^2))
    MAE       mean(|e|)
    MPE       mean(100 * e / actual)
    MAPE      mean(100 * |e| / |actual|)
    ACF1      lag-1 autocorrelation of e
    Theil's U forecast error relative to the no-change forecast; U < 1
              means the model beats the naive baseline

MPE and MAPE divide by the actual values. Returns sit close to zero, so
both are large and unstable on this data; that is expected. When any actual
is exactly zero they are undefined and reported as NaN.

Functions:
    - calculate_me / calculate_rmse / calculate_mae / calculate_mpe /
      calculate_mape / calculate_acf1 / calculate_theils_u
    - compute_accuracy: All metrics for two aligned arrays
    - evaluate_forecast: Test-set AccuracyReport for one ForecastResult
    - evaluate_in_sample: Training-set AccuracyReport for a fitted model
    - residual_diagnostics: Ljung-Box test and distribution summary
    - select_best_model: Model with the best score on one metric
"""

from collections.abc import Mapping
from typing import Any, Dict, Optional, Tuple

import numpy as np
from statsmodels.stats.diagnostic import acorr_ljungbox
from statsmodels.stats.stattools import jarque_bera

from btc_forecast.exceptions import AlignmentError
from btc_forecast.logger_config import get_logger
from btc_forecast.models.base import ModelHandle
from btc_forecast.timeseries import ForecastResult, TimeSeries


logger = get_logger(__name__)

STAGE = "evaluator"

METRIC_NAMES = ("ME", "RMSE", "MAE", "MPE", "MAPE", "ACF1", "Theil's U")

# Metrics whose ideal value is zero rather than as small as possible
SIGNED_METRICS = ("ME", "MPE", "ACF1")

TEST_SET = "Test set"
TRAINING_SET = "Training set"


class AccuracyReport(Mapping):
    """
    Read-only mapping of metric name to score, in METRIC_NAMES order.

    Examples:
        >>> report["MAPE"]
        100.0
        >>> list(report)
        ['ME', 'RMSE', 'MAE', 'MPE', 'MAPE', 'ACF1', "Theil's U"]
    """

    def __init__(self, model_id: str, scores: Dict[str, float], sample: str = TEST_SET):
        self.model_id = model_id
        self.sample = sample
        self._scores = {name: float(scores.get(name, np.nan)) for name in METRIC_NAMES}

    def __getitem__(self, metric: str) -> float:
        return self._scores[metric]

    def __iter__(self):
        return iter(self._scores)

    def __len__(self) -> int:
        return len(self._scores)

    def as_dict(self) -> Dict[str, float]:
        return dict(self._scores)

    def __repr__(self):
        scores = ", ".join(f"{name}={value:.6g}" for name, value in self._scores.items())
        return f"AccuracyReport({self.model_id!r}, {self.sample}: {scores})"


def _as_pair(actual, predicted) -> Tuple[np.ndarray, np.ndarray]:
    actual = np.asarray(actual, dtype=np.float64).reshape(-1)
    predicted = np.asarray(predicted, dtype=np.float64).reshape(-1)

    if actual.size == 0 or predicted.size == 0:
        error_msg = "Input arrays cannot be empty"
        logger.error(error_msg)
        raise ValueError(error_msg)

    if actual.shape != predicted.shape:
        error_msg = (
            f"Mismatched array lengths: actual ({actual.shape}) vs predicted ({predicted.shape})"
        )
        logger.error(error_msg)
        raise AlignmentError(error_msg, stage=STAGE, expected=actual.shape, actual=predicted.shape)

    if np.any(np.isnan(actual)) or np.any(np.isnan(predicted)):
        error_msg = "Input arrays contain NaN values"
        logger.error(error_msg)
        raise ValueError(error_msg)

    return actual, predicted


def calculate_me(actual, predicted) -> float:
    actual, predicted = _as_pair(actual, predicted)
    return float(np.mean(actual - predicted))


def calculate_rmse(actual, predicted) -> float:
    """
    Root Mean Squared Error, sqrt(mean((actual - predicted)^2)).

    Examples:
        >>> calculate_rmse([0.01, -0.02, 0.015], [0.0, 0.0, 0.0])
        0.01554...
    """
    actual, predicted = _as_pair(actual, predicted)
    return float(np.sqrt(np.mean((actual - predicted) ** 2)))


def calculate_mae(actual, predicted) -> float:
    actual, predicted = _as_pair(actual, predicted)
    return float(np.mean(np.abs(actual - predicted)))


def _has_zero_actuals(actual: np.ndarray, metric: str) -> bool:
    zeros = int(np.sum(actual == 0))
    if zeros:
        logger.warning(f"{metric} undefined: {zeros} actual value(s) are exactly zero")
    return zeros > 0


def calculate_mpe(actual, predicted) -> float:
    """Mean Percentage Error; NaN when any actual is zero."""
    actual, predicted = _as_pair(actual, predicted)
    if _has_zero_actuals(actual, "MPE"):
        return float("nan")
    return float(np.mean(100.0 * (actual - predicted) / actual))


def calculate_mape(actual, predicted) -> float:
    """
    Mean Absolute Percentage Error; NaN when any actual is zero.

    Examples:
        >>> calculate_mape([0.01, -0.02, 0.015], [0.0, 0.0, 0.0])
        100.0
    """
    actual, predicted = _as_pair(actual, predicted)
    if _has_zero_actuals(actual, "MAPE"):
        return float("nan")
    return float(np.mean(100.0 * np.abs(actual - predicted) / np.abs(actual)))


def calculate_acf1(residuals) -> float:
    """
    Lag-1 autocorrelation of a residual series.

    r1 = sum((e_t - mean)(e_{t+1} - mean)) / sum((e_t - mean)^2); NaN for
    fewer than 2 residuals or a constant series.
    """
    residuals = np.asarray(residuals, dtype=np.float64).reshape(-1)
    if residuals.size < 2:
        return float("nan")
    centered = residuals - residuals.mean()
    denominator = np.sum(centered ** 2)
    if denominator == 0:
        return float("nan")
    return float(np.sum(centered[:-1] * centered[1:]) / denominator)


def calculate_theils_u(actual, predicted) -> float:
    """
    Theil's U statistic against the no-change forecast.

    Relative one-step errors of the model are compared with those of the
    naive forecast that repeats the previous actual value:

        U = sqrt( sum(((f_{t+1} - y_{t+1}) / y_t)^2) / sum(((y_{t+1} - y_t) / y_t)^2) )

    NaN when fewer than 2 points are available, any y_t used as a
    denominator is zero, or the actual series never changes.

    This is the relative-change (U2) form, not the plain ratio
    RMSE(model) / RMSE(no-change). Dividing by y_t makes it undefined for a
    test period holding an exact zero return, which rounded price feeds can
    produce.
    """
    actual, predicted = _as_pair(actual, predicted)
    if actual.size < 2:
        return float("nan")

    base = actual[:-1]
    if np.any(base == 0):
        logger.warning("Theil's U undefined: actual series contains zeros")
        return float("nan")

    model_error = (predicted[1:] - actual[1:]) / base
    naive_error = (actual[1:] - base) / base
    denominator = np.sum(naive_error ** 2)
    if denominator == 0:
        return float("nan")
    return float(np.sqrt(np.sum(model_error ** 2) / denominator))


def compute_accuracy(actual, predicted, include_theil: bool = True) -> Dict[str, float]:
    """
    All metrics for two aligned arrays, in report order.

    Args:
        actual: Observed values
        predicted: Forecast or fitted values, same length
        include_theil (bool): Theil's U is only meaningful out of sample

    Returns:
        Dict[str, float]: Metric name -> score
    """
    actual, predicted = _as_pair(actual, predicted)
    residuals = actual - predicted
    return {
        "ME": calculate_me(actual, predicted),
        "RMSE": calculate_rmse(actual, predicted),
        "MAE": calculate_mae(actual, predicted),
        "MPE": calculate_mpe(actual, predicted),
        "MAPE": calculate_mape(actual, predicted),
        "ACF1": calculate_acf1(residuals),
        "Theil's U": calculate_theils_u(actual, predicted) if include_theil else float("nan"),
    }


def forecast_residuals(forecast: ForecastResult, test: TimeSeries) -> np.ndarray:
    """
    actual - forecast over the test period.

    Raises:
        AlignmentError: If lengths or timestamps differ
    """
    if len(forecast) != len(test):
        error_msg = (
            f"Forecast '{forecast.model_id}' has {len(forecast)} points, "
            f"test series has {len(test)}"
        )
        logger.error(error_msg)
        raise AlignmentError(error_msg, stage=STAGE, expected=len(test), actual=len(forecast))

    if not forecast.index.equals(test.index):
        error_msg = f"Forecast '{forecast.model_id}' timestamps do not match the test series"
        logger.error(error_msg)
        raise AlignmentError(error_msg, stage=STAGE)

    return test.values - forecast.values


def evaluate_forecast(forecast: ForecastResult, test: TimeSeries) -> AccuracyReport:
    """
    Test-set accuracy of one forecast.

    Raises:
        AlignmentError: If forecast and test differ in length or timestamps
    """
    forecast_residuals(forecast, test)
    scores = compute_accuracy(test.values, forecast.values, include_theil=True)
    report = AccuracyReport(forecast.model_id, scores, sample=TEST_SET)
    theils_u = report["Theil's U"]
    logger.info(
        f"{forecast.model_id} test accuracy: RMSE={report['RMSE']:.6f}, "
        f"MAE={report['MAE']:.6f}, MAPE={report['MAPE']:.4f}, Theil's U={theils_u:.4f}"
    )
    return report


def evaluate_in_sample(handle: ModelHandle, train: TimeSeries) -> AccuracyReport:
    """
    Training-set accuracy of a fitted model from its in-sample fitted values.

    Points without a fitted value (e.g. the first lags of NNAR) are skipped.
    Theil's U is not reported in sample.
    """
    if len(handle.fitted_values) != len(train):
        error_msg = (
            f"{handle.model_id} has {len(handle.fitted_values)} fitted values "
            f"for {len(train)} training points"
        )
        logger.error(error_msg)
        raise AlignmentError(error_msg, stage=STAGE, expected=len(train),
                             actual=len(handle.fitted_values))

    mask = np.isfinite(handle.fitted_values)
    scores = compute_accuracy(train.values[mask], handle.fitted_values[mask], include_theil=False)
    return AccuracyReport(handle.model_id, scores, sample=TRAINING_SET)


def residual_diagnostics(residuals, lags: int = 10, model_df: int = 0) -> Dict[str, Any]:
    """
    Residual checks for one model.

    Ljung-Box tests whether the residuals are white noise (H0: no
    autocorrelation up to `lags`); the distribution summary reports moments
    and the Jarque-Bera normality p-value.

    Args:
        residuals: Residual values, NaN entries are dropped
        lags (int): Ljung-Box lag
        model_df (int): Degrees of freedom used by the model, subtracted
            from the Ljung-Box degrees of freedom

    Returns:
        Dict[str, Any]: ljung_box_stat, ljung_box_pvalue, lags_tested,
            is_white_noise, conclusion, and distribution (n, mean, std,
            skewness, kurtosis, jarque_bera_pvalue, min, max)
    """
    residuals = np.asarray(residuals, dtype=np.float64).reshape(-1)
    residuals = residuals[np.isfinite(residuals)]
    n = residuals.size

    diagnostics: Dict[str, Any] = {
        'ljung_box_stat': None,
        'ljung_box_pvalue': None,
        'lags_tested': lags,
        'is_white_noise': None,
        'conclusion': 'Not enough data for Ljung-Box test',
        'distribution': None,
    }
    if n == 0:
        return diagnostics

    jb_stat, jb_pvalue, skewness, kurtosis = jarque_bera(residuals)
    diagnostics['distribution'] = {
        'n': int(n),
        'mean': float(residuals.mean()),
        'std': float(residuals.std(ddof=1)) if n > 1 else 0.0,
        'skewness': float(skewness),
        'kurtosis': float(kurtosis),
        'jarque_bera_pvalue': float(jb_pvalue),
        'min': float(residuals.min()),
        'max': float(residuals.max()),
    }

    if n <= lags or np.all(residuals == residuals[0]):
        return diagnostics

    model_df = min(model_df, lags - 1)
    lb = acorr_ljungbox(residuals, lags=[lags], model_df=model_df, return_df=True)
    stat = float(lb['lb_stat'].iloc[-1])
    p_value = float(lb['lb_pvalue'].iloc[-1])
    is_white_noise = p_value > 0.05

    diagnostics.update({
        'ljung_box_stat': stat,
        'ljung_box_pvalue': p_value,
        'is_white_noise': is_white_noise,
        'conclusion': (
            f"Residuals are white noise (p={p_value:.4f} > 0.05)"
            if is_white_noise else
            f"Residuals show autocorrelation (p={p_value:.4f} <= 0.05)"
        ),
    })
    return diagnostics


def select_best_model(
    reports: Dict[str, AccuracyReport],
    metric: str = "MAPE",
) -> Tuple[Optional[str], float]:
    """
    Model with the best finite score on `metric`.

    Lower is better; for ME, MPE and ACF1 the score closest to zero wins.

    Returns:
        Tuple[Optional[str], float]: (model id, score), or (None, nan) when
        no model has a finite score
    """
    if metric not in METRIC_NAMES:
        raise ValueError(f"Unknown metric '{metric}'. Must be one of: {', '.join(METRIC_NAMES)}")

    best_id, best_score, best_key = None, float("nan"), float("inf")
    for model_id, report in reports.items():
        score = report[metric]
        if not np.isfinite(score):
            continue
        key = abs(score) if metric in SIGNED_METRICS else score
        if key < best_key:
            best_id, best_score, best_key = model_id, score, key

    if best_id is None:
        logger.warning(f"No model has a finite {metric}; best model undetermined")
    else:
        logger.info(f"Best model by {metric}: {best_id} ({best_score:.6f})")
    return best_id, best_score
