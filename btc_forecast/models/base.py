"""
Model Adapter Contract

Every forecasting technique is wrapped behind the same two operations so the
evaluator can compare them on equal footing:

    fit(train) -> ModelHandle
    predict(handle, horizon, index=None) -> ForecastResult

fit sees the training series only. predict returns exactly `horizon` points
timestamped either with the supplied index or by continuing the training
frequency. Library failures during fitting surface as ConvergenceError.
"""

import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import numpy as np
import pandas as pd
from pandas.tseries.frequencies import to_offset
from statsmodels.tools.sm_exceptions import ConvergenceWarning

from btc_forecast.exceptions import (
    AlignmentError,
    ConvergenceError,
    ForecastPipelineError,
    InsufficientDataError,
    InvalidHorizonError,
)
from btc_forecast.logger_config import get_logger
from btc_forecast.timeseries import ForecastResult, TimeSeries


logger = get_logger(__name__)


@dataclass(frozen=True, eq=False)
class ModelHandle:
    """
    Fitted state of one adapter.

    model holds the library's fitted object (or whatever the adapter needs
    to forecast); fitted_values are the in-sample one-step predictions
    aligned with train_index, NaN where the model has none.
    """

    model_id: str
    model: Any
    train_index: pd.DatetimeIndex
    freq: Optional[pd.DateOffset]
    fitted_values: np.ndarray
    params: Dict[str, Any] = field(default_factory=dict)

    @property
    def n_train(self) -> int:
        return len(self.train_index)

    @property
    def last_timestamp(self) -> pd.Timestamp:
        return self.train_index[-1]


def infer_frequency(index: pd.DatetimeIndex) -> Optional[pd.DateOffset]:
    """
    Frequency of a DatetimeIndex.

    Uses pandas' inference when the spacing is regular and falls back to the
    median spacing when the source skipped days.
    """
    if len(index) < 2:
        return None
    if len(index) >= 3:
        freq = pd.infer_freq(index)
        if freq is not None:
            return to_offset(freq)
    median_step = index.to_series().diff().median()
    return to_offset(median_step)


def optimizer_converged(results) -> bool:
    """Read the convergence flag statsmodels stores on fitted results."""
    retvals = getattr(results, 'mle_retvals', None)
    if retvals is None:
        return True
    if isinstance(retvals, dict):
        return bool(retvals.get('converged', retvals.get('success', True)))
    return bool(getattr(retvals, 'success', True))


def fit_quietly(fit_fn) -> Tuple[Any, bool]:
    """
    Run a statsmodels fit with its warnings captured.

    Returns:
        Tuple[results, converged]: converged is False when the optimizer
        flagged non-convergence or a ConvergenceWarning was emitted.
    """
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        results = fit_fn()
    warned = any(issubclass(w.category, ConvergenceWarning) for w in caught)
    return results, (not warned) and optimizer_converged(results)


class ForecastAdapter(ABC):
    """
    Base class of the five forecasting variants.

    Subclasses implement _fit and _predict; validation, logging, error
    translation and index construction live here.
    """

    model_id = "base"
    min_train_size = 2

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = dict(config or {})

    def __repr__(self):
        return f"{type(self).__name__}(model_id={self.model_id!r})"

    # ------------------------------------------------------------------ fit

    def fit(self, train: TimeSeries) -> ModelHandle:
        """
        Estimate the model on the training series.

        Raises:
            InsufficientDataError: If train is shorter than min_train_size
            ConvergenceError: If estimation fails or does not converge
        """
        stage = f"{self.model_id}.fit"
        if len(train) < self.min_train_size:
            error_msg = (
                f"{self.model_id} needs at least {self.min_train_size} training points, "
                f"got {len(train)}"
            )
            logger.error(error_msg)
            raise InsufficientDataError(error_msg, stage=stage,
                                        n_observations=len(train), required=self.min_train_size)

        logger.info(f"Fitting {self.model_id} on {len(train)} training points")
        try:
            model, fitted_values, params = self._fit(train)
        except ForecastPipelineError as e:
            e.stage = e.stage or stage
            raise
        except Exception as e:
            error_msg = f"{self.model_id} estimation failed: {str(e)}"
            logger.error(error_msg)
            raise ConvergenceError(error_msg, stage=stage, model_type=self.model_id) from e

        fitted_values = np.asarray(fitted_values, dtype=np.float64).reshape(-1)
        if len(fitted_values) != len(train):
            error_msg = (
                f"{self.model_id} produced {len(fitted_values)} fitted values "
                f"for {len(train)} training points"
            )
            logger.error(error_msg)
            raise AlignmentError(error_msg, stage=stage, expected=len(train), actual=len(fitted_values))

        handle = ModelHandle(
            model_id=self.model_id,
            model=model,
            train_index=train.index,
            freq=infer_frequency(train.index),
            fitted_values=fitted_values,
            params=dict(params),
        )
        logger.info(f"{self.model_id} fitted: {handle.params}")
        return handle

    @abstractmethod
    def _fit(self, train: TimeSeries) -> Tuple[Any, np.ndarray, Dict[str, Any]]:
        """Return (fitted model, in-sample fitted values, selected parameters)."""

    # -------------------------------------------------------------- predict

    def forecast_index(self, handle: ModelHandle, horizon: int,
                       index: Optional[pd.DatetimeIndex] = None) -> pd.DatetimeIndex:
        """
        Timestamps of the forecast.

        A supplied index is used as-is after checking it has `horizon`
        entries that all follow the training data; otherwise the training
        frequency is continued from the last training timestamp.
        """
        stage = f"{self.model_id}.predict"
        if index is not None:
            index = pd.DatetimeIndex(index)
            if len(index) != horizon:
                error_msg = f"Forecast index has {len(index)} timestamps, horizon is {horizon}"
                logger.error(error_msg)
                raise AlignmentError(error_msg, stage=stage, expected=horizon, actual=len(index))
            if index[0] <= handle.last_timestamp:
                error_msg = (
                    f"Forecast index starts at {index[0]}, not after the last "
                    f"training timestamp {handle.last_timestamp}"
                )
                logger.error(error_msg)
                raise AlignmentError(error_msg, stage=stage)
            return index

        freq = handle.freq if handle.freq is not None else to_offset('D')
        return pd.date_range(start=handle.last_timestamp + freq, periods=horizon, freq=freq)

    def predict(self, handle: ModelHandle, horizon: int,
                index: Optional[pd.DatetimeIndex] = None) -> ForecastResult:
        """
        Forecast `horizon` steps past the end of the training series.

        Raises:
            InvalidHorizonError: If horizon <= 0
            AlignmentError: If the variant returns a different number of points
                or the supplied index does not fit the horizon
            ConvergenceError: If the library fails to forecast or the forecast
                contains non-finite values
        """
        stage = f"{self.model_id}.predict"
        if isinstance(horizon, bool) or not isinstance(horizon, (int, np.integer)) or horizon <= 0:
            error_msg = f"Forecast horizon must be a positive integer, got {horizon}"
            logger.error(error_msg)
            raise InvalidHorizonError(error_msg, stage=stage, horizon=horizon)
        horizon = int(horizon)

        if handle.model_id != self.model_id:
            raise ValueError(f"{self.model_id} adapter cannot use a {handle.model_id} handle")

        forecast_index = self.forecast_index(handle, horizon, index)
        try:
            values, lower, upper = self._predict(handle, horizon, forecast_index)
        except ForecastPipelineError as e:
            e.stage = e.stage or stage
            raise
        except Exception as e:
            error_msg = f"{self.model_id} forecasting failed: {str(e)}"
            logger.error(error_msg)
            raise ConvergenceError(error_msg, stage=stage, model_type=self.model_id,
                                   parameters=handle.params) from e

        values = np.asarray(values, dtype=np.float64).reshape(-1)
        if len(values) != horizon:
            error_msg = f"{self.model_id} returned {len(values)} points, expected {horizon}"
            logger.error(error_msg)
            raise AlignmentError(error_msg, stage=stage, expected=horizon, actual=len(values))

        if not np.all(np.isfinite(values)):
            error_msg = f"{self.model_id} produced non-finite forecasts"
            logger.error(error_msg)
            raise ConvergenceError(error_msg, stage=stage, model_type=self.model_id,
                                   parameters=handle.params)

        result = ForecastResult(
            model_id=self.model_id,
            series=TimeSeries(index=forecast_index, values=values, name=self.model_id),
            lower=lower,
            upper=upper,
        )
        logger.info(
            f"{self.model_id} forecast: {horizon} points, mean={values.mean():.6f}, "
            f"std={values.std():.6f}"
        )
        return result

    @abstractmethod
    def _predict(self, handle: ModelHandle, horizon: int,
                 index: pd.DatetimeIndex) -> Tuple[np.ndarray, Optional[np.ndarray], Optional[np.ndarray]]:
        """Return (point forecasts, lower bounds or None, upper bounds or None)."""
