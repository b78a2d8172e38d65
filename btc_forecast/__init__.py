"""
Bitcoin Log-Return Forecasting Report - Core Modules

Compares ARIMA, ETS, Holt-Winters, a neural network autoregression, Prophet
and their equal-weight combination on daily Bitcoin log returns.

Modules:
    - timeseries: Immutable TimeSeries, Split and ForecastResult values
    - data_loader: Price loading from files or the market-data provider
    - preprocessing: Log returns and train/test split
    - stationarity: Augmented Dickey-Fuller check
    - models: The five forecasting adapters
    - combiner: Equal-weight forecast combination
    - evaluation: Accuracy metrics and residual diagnostics
    - pipeline: End-to-end report
    - output_manager: Report export and summary
"""

from btc_forecast.timeseries import TimeSeries, Split, ForecastResult
from btc_forecast.data_loader import load_data, load_price_series, extract_price_series
from btc_forecast.preprocessing import calculate_log_returns, reconstruct_prices, split_series
from btc_forecast.stationarity import check_stationarity
from btc_forecast.combiner import combine_forecasts
from btc_forecast.evaluation import evaluate_forecast, evaluate_in_sample, residual_diagnostics
from btc_forecast.pipeline import run_forecast_report

__version__ = "1.0.0"
__all__ = [
    "TimeSeries",
    "Split",
    "ForecastResult",
    "load_data",
    "load_price_series",
    "extract_price_series",
    "calculate_log_returns",
    "reconstruct_prices",
    "split_series",
    "check_stationarity",
    "combine_forecasts",
    "evaluate_forecast",
    "evaluate_in_sample",
    "residual_diagnostics",
    "run_forecast_report",
]
