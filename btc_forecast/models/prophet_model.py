"""
Prophet Adapter

Prophet decomposes the series into a piecewise-linear trend plus weekly and
yearly seasonality. Forecasts are evaluated on exactly the requested
timestamps, one row per horizon step.
"""

from typing import Any, Dict, Tuple

import numpy as np
import pandas as pd
from prophet import Prophet

from btc_forecast.logger_config import get_logger, silence_noisy_loggers
from btc_forecast.models.base import ForecastAdapter, ModelHandle
from btc_forecast.timeseries import TimeSeries


logger = get_logger(__name__)


def to_prophet_frame(index: pd.DatetimeIndex, values=None) -> pd.DataFrame:
    """Prophet expects tz-naive 'ds' and, for training, 'y' columns."""
    ds = pd.DatetimeIndex(index)
    if ds.tz is not None:
        ds = ds.tz_localize(None)
    frame = pd.DataFrame({'ds': ds})
    if values is not None:
        frame['y'] = np.asarray(values, dtype=np.float64)
    return frame


class ProphetAdapter(ForecastAdapter):
    """Prophet trend/seasonality model."""

    model_id = "Prophet"
    min_train_size = 3

    def _fit(self, train: TimeSeries) -> Tuple[Any, np.ndarray, Dict[str, Any]]:
        silence_noisy_loggers()

        settings = {
            'changepoint_prior_scale': self.config.get('changepoint_prior_scale', 0.05),
            'seasonality_prior_scale': self.config.get('seasonality_prior_scale', 10.0),
            'weekly_seasonality': self.config.get('weekly_seasonality', True),
            'yearly_seasonality': self.config.get('yearly_seasonality', True),
        }
        model = Prophet(daily_seasonality=False, **settings)

        frame = to_prophet_frame(train.index, train.values)
        model.fit(frame)

        fitted = model.predict(frame[['ds']])['yhat'].to_numpy()
        return model, fitted, settings

    def _predict(self, handle: ModelHandle, horizon: int, index: pd.DatetimeIndex):
        forecast = handle.model.predict(to_prophet_frame(index))
        return (
            forecast['yhat'].to_numpy(),
            forecast['yhat_lower'].to_numpy(),
            forecast['yhat_upper'].to_numpy(),
        )
