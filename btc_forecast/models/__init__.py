"""
Model Adapters

Five forecasting variants behind one fit/predict contract, plus the factory
that builds them from configuration in canonical report order.
"""

from typing import Any, Dict, List

from btc_forecast.models.base import ForecastAdapter, ModelHandle, infer_frequency
from btc_forecast.models.arima import ArimaAdapter
from btc_forecast.models.ets import EtsAdapter
from btc_forecast.models.holt_winters import HoltWintersAdapter
from btc_forecast.models.nnar import NnarAdapter
from btc_forecast.models.prophet_model import ProphetAdapter


ADAPTER_SECTIONS = [
    (ArimaAdapter, 'arima'),
    (EtsAdapter, 'ets'),
    (HoltWintersAdapter, 'holt_winters'),
    (NnarAdapter, 'nnar'),
    (ProphetAdapter, 'prophet'),
]


def build_adapters(config: Dict[str, Any]) -> List[ForecastAdapter]:
    """Instantiate ARIMA, ETS, Holt-Winters, NNAR and Prophet from config sections."""
    return [adapter_cls(config.get(section, {})) for adapter_cls, section in ADAPTER_SECTIONS]


__all__ = [
    "ForecastAdapter",
    "ModelHandle",
    "infer_frequency",
    "ArimaAdapter",
    "EtsAdapter",
    "HoltWintersAdapter",
    "NnarAdapter",
    "ProphetAdapter",
    "build_adapters",
]
