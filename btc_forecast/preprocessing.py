"""
Data Preprocessing Module

Turns a clean price series into the return series every model is fitted on
and partitions it into training and testing sets.

Functions:
    - calculate_log_returns: r_t = ln(P_t) - ln(P_{t-1}), first point dropped
    - reconstruct_prices: Invert log returns back to price levels
    - split_series: Contiguous train/test split at a fixed ratio
"""

import math

import numpy as np

from btc_forecast.exceptions import InvalidInputError, InsufficientDataError
from btc_forecast.logger_config import get_logger
from btc_forecast.timeseries import Split, TimeSeries


logger = get_logger(__name__)


def calculate_log_returns(prices: TimeSeries) -> TimeSeries:
    """
    Calculate log returns from a price series.

    Computes r_t = ln(P_t) - ln(P_{t-1}). The first observation has no
    predecessor and is discarded, so the result has len(prices) - 1 points
    indexed by prices.index[1:].

    Args:
        prices (TimeSeries): Price levels, at least 2 points, all positive

    Returns:
        TimeSeries: Log-return series

    Raises:
        InvalidInputError: If fewer than 2 points or any price is <= 0

    Examples:
        >>> returns = calculate_log_returns(prices)   # prices [100, 105, 103, 110]
        >>> np.round(returns.values, 5).tolist()
        [0.04879, -0.01923, 0.0658]
    """
    if len(prices) < 2:
        error_msg = f"At least 2 prices are needed to compute returns, got {len(prices)}"
        logger.error(error_msg)
        raise InvalidInputError(error_msg, stage="returns", data_shape=(len(prices),))

    non_positive = int(np.sum(prices.values <= 0))
    if non_positive:
        error_msg = f"Price series contains {non_positive} zero or negative values"
        logger.error(error_msg)
        raise InvalidInputError(error_msg, stage="returns")

    log_returns = np.diff(np.log(prices.values))
    returns = TimeSeries(index=prices.index[1:], values=log_returns, name=prices.name)

    logger.info(
        f"Log returns calculated: n={len(returns)}, mean={log_returns.mean():.6f}, "
        f"std={log_returns.std(ddof=1) if len(log_returns) > 1 else 0.0:.6f}"
    )
    return returns


def reconstruct_prices(base_price: float, returns: np.ndarray) -> np.ndarray:
    """
    Convert log returns back to price levels.

    P_{t+i} = P_t * exp(r_{t+1} + ... + r_{t+i})

    Args:
        base_price (float): Last observed price before the returns start
        returns (np.ndarray): Consecutive log returns

    Returns:
        np.ndarray: Price path with one price per return

    Raises:
        InvalidInputError: If base_price is not positive and finite
    """
    if not np.isfinite(base_price) or base_price <= 0:
        error_msg = f"Base price must be positive and finite, got {base_price}"
        logger.error(error_msg)
        raise InvalidInputError(error_msg, stage="returns")

    returns = np.asarray(returns, dtype=np.float64)
    return base_price * np.exp(np.cumsum(returns))


def split_series(series: TimeSeries, ratio: float = 0.8) -> Split:
    """
    Partition a series into a training prefix and a testing suffix.

    len(train) = floor(ratio * n), len(test) = n - len(train); the test
    length is the forecast horizon every model is evaluated on.

    Args:
        series (TimeSeries): Return series to split
        ratio (float): Training fraction, strictly between 0 and 1

    Returns:
        Split: train and test, train.concat(test) equals the input

    Raises:
        InvalidInputError: If ratio is outside (0, 1)
        InsufficientDataError: If either partition would be empty

    Examples:
        >>> split = split_series(returns_of_length_5, ratio=0.8)
        >>> len(split.train), len(split.test)
        (4, 1)
    """
    if not (0 < ratio < 1):
        error_msg = f"Split ratio must be strictly between 0 and 1, got {ratio}"
        logger.error(error_msg)
        raise InvalidInputError(error_msg, stage="splitter")

    n_total = len(series)
    n_train = math.floor(ratio * n_total)
    n_test = n_total - n_train

    if n_test <= 0 or n_train <= 0:
        error_msg = (
            f"Split ratio {ratio} on {n_total} observations leaves "
            f"train={n_train}, test={n_test}"
        )
        logger.error(error_msg)
        raise InsufficientDataError(error_msg, stage="splitter",
                                    n_observations=n_total, required=2)

    split = Split(train=series.slice(0, n_train), test=series.slice(n_train, None))
    logger.info(
        f"Series split at ratio {ratio}: train={n_train} "
        f"({split.train.first_timestamp.date()} to {split.train.last_timestamp.date()}), "
        f"test={n_test} ({split.test.first_timestamp.date()} to {split.test.last_timestamp.date()})"
    )
    return split
