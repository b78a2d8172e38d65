"""
Holt-Winters Adapter

Classical Holt-Winters exponential smoothing: level, additive trend and an
additive seasonal cycle (weekly by default, since the market trades every
day). Smoothing constants are estimated on the training data. Seasonality
is dropped when fewer than two full cycles are available.
"""

from typing import Any, Dict, Tuple

import numpy as np
import pandas as pd
from statsmodels.tsa.holtwinters import ExponentialSmoothing

from btc_forecast.exceptions import ConvergenceError
from btc_forecast.logger_config import get_logger
from btc_forecast.models.base import ForecastAdapter, ModelHandle, fit_quietly
from btc_forecast.timeseries import TimeSeries


logger = get_logger(__name__)


class HoltWintersAdapter(ForecastAdapter):
    """Holt-Winters with estimated smoothing constants."""

    model_id = "Holt-Winters"
    min_train_size = 4

    def _fit(self, train: TimeSeries) -> Tuple[Any, np.ndarray, Dict[str, Any]]:
        trend = self.config.get('trend', 'add')
        damped_trend = bool(self.config.get('damped_trend', False)) and trend is not None
        seasonal = self.config.get('seasonal', 'add')
        seasonal_periods = self.config.get('seasonal_periods', 7)

        if seasonal is not None and len(train) < 2 * seasonal_periods:
            logger.warning(
                f"Only {len(train)} training points for seasonal period {seasonal_periods}; "
                f"fitting without seasonality"
            )
            seasonal = None
        if seasonal is None:
            seasonal_periods = None

        model = ExponentialSmoothing(
            train.values,
            trend=trend,
            damped_trend=damped_trend,
            seasonal=seasonal,
            seasonal_periods=seasonal_periods,
            initialization_method='estimated',
        )
        results, converged = fit_quietly(lambda: model.fit(optimized=True))
        if not converged:
            error_msg = "Holt-Winters smoothing parameter optimization did not converge"
            logger.error(error_msg)
            raise ConvergenceError(error_msg, model_type=self.model_id,
                                   parameters={'trend': trend, 'seasonal': seasonal,
                                               'seasonal_periods': seasonal_periods})

        smoothing = {
            key: float(results.params[key])
            for key in ('smoothing_level', 'smoothing_trend', 'smoothing_seasonal', 'damping_trend')
            if results.params.get(key) is not None and np.isfinite(results.params[key])
        }
        params = {
            'trend': trend,
            'damped_trend': damped_trend,
            'seasonal': seasonal,
            'seasonal_periods': seasonal_periods,
            'smoothing': smoothing,
            'sse': float(results.sse),
        }
        return results, results.fittedvalues, params

    def _predict(self, handle: ModelHandle, horizon: int, index: pd.DatetimeIndex):
        return np.asarray(handle.model.forecast(horizon)), None, None
