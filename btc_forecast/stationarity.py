"""
Stationarity Checker

Runs the Augmented Dickey-Fuller unit-root test on a return series. The
verdict is informational: the report proceeds whatever it says.
"""

from dataclasses import dataclass, field
from typing import Dict

from statsmodels.tsa.stattools import adfuller

from btc_forecast.exceptions import InsufficientDataError
from btc_forecast.logger_config import get_logger
from btc_forecast.timeseries import TimeSeries


logger = get_logger(__name__)


@dataclass(frozen=True)
class StationarityResult:
    statistic: float
    p_value: float
    is_stationary: bool
    used_lag: int = 0
    n_observations: int = 0
    critical_values: Dict[str, float] = field(default_factory=dict)


def check_stationarity(series: TimeSeries, significance: float = 0.05) -> StationarityResult:
    """
    Perform the Augmented Dickey-Fuller (ADF) test on a series.

    H0: the series has a unit root (non-stationary). When the p-value is
    below the significance level H0 is rejected and the series is reported
    stationary. Lag length is chosen by AIC.

    Args:
        series (TimeSeries): Series to test, typically log returns
        significance (float): Rejection threshold (default 0.05)

    Returns:
        StationarityResult: statistic, p_value, is_stationary and test details

    Raises:
        InsufficientDataError: If the series is too short for the test

    Examples:
        >>> result = check_stationarity(returns)
        >>> print(f"Stationary: {result.is_stationary}, p-value: {result.p_value:.4f}")
    """
    if len(series) < 10:
        error_msg = f"ADF test needs at least 10 observations, got {len(series)}"
        logger.error(error_msg)
        raise InsufficientDataError(error_msg, stage="stationarity",
                                    n_observations=len(series), required=10)

    logger.info(f"Performing ADF test on series of length {len(series)}")
    try:
        statistic, p_value, used_lag, n_obs, critical_values, _ = adfuller(series.values, autolag="AIC")
    except ValueError as e:
        error_msg = f"ADF test failed on {len(series)} observations: {e}"
        logger.error(error_msg)
        raise InsufficientDataError(error_msg, stage="stationarity",
                                    n_observations=len(series)) from e

    result = StationarityResult(
        statistic=float(statistic),
        p_value=float(p_value),
        is_stationary=bool(p_value < significance),
        used_lag=int(used_lag),
        n_observations=int(n_obs),
        critical_values={key: float(value) for key, value in critical_values.items()},
    )

    logger.info(
        f"ADF Test Results - Test Statistic: {result.statistic:.6f}, "
        f"p-value: {result.p_value:.6f}, Stationary: {result.is_stationary}"
    )
    return result
