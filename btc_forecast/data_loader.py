"""
Series Loader Module

Obtains a raw price series, either from a local CSV/JSON export or from the
market-data provider (Yahoo Finance through yfinance), and turns it into a
chronologically ordered, gap-free TimeSeries.

Functions:
    - load_data: Load CSV/JSON price data
    - fetch_prices: Download daily prices for a ticker
    - impute_missing: Forward fill missing values (t with t-1)
    - extract_price_series: Select the price column and build a TimeSeries
    - load_price_series: Resolve the configured source and return prices
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd
import yfinance as yf

from btc_forecast.exceptions import InvalidInputError
from btc_forecast.logger_config import get_logger
from btc_forecast.timeseries import TimeSeries


logger = get_logger(__name__)

STAGE = "loader"

FALLBACK_PRICE_COLUMNS = ['close', 'adj close', 'adj_close', 'price']


def load_data(file_path: str) -> pd.DataFrame:
    """
    Load price data from a CSV or JSON file.

    The format is chosen from the file extension.

    Args:
        file_path (str): Path to the input file (CSV or JSON)

    Returns:
        pd.DataFrame: Raw file contents

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file format is not CSV or JSON

    Examples:
        >>> data = load_data('data/btc_prices.csv')
    """
    file_path = Path(file_path)

    if not file_path.exists():
        error_msg = f"File not found: {file_path}"
        logger.error(error_msg)
        raise FileNotFoundError(error_msg)

    file_ext = file_path.suffix.lower()

    if file_ext == ".csv":
        logger.info(f"Loading CSV data from {file_path}")
        data = pd.read_csv(file_path)
    elif file_ext == ".json":
        logger.info(f"Loading JSON data from {file_path}")
        with open(file_path, "r", encoding="utf-8") as f:
            data = pd.DataFrame(json.load(f))
    else:
        error_msg = f"Unsupported file format: {file_ext}. Only CSV and JSON are supported."
        logger.error(error_msg)
        raise ValueError(error_msg)

    logger.info(f"Data shape: {data.shape}")
    return data


def fetch_prices(ticker: str, start: Optional[str] = None, end: Optional[str] = None) -> pd.DataFrame:
    """
    Download daily OHLCV prices from Yahoo Finance.

    Args:
        ticker (str): Symbol, e.g. "BTC-USD"
        start (str, optional): First date (inclusive), YYYY-MM-DD
        end (str, optional): Last date (exclusive), YYYY-MM-DD

    Returns:
        pd.DataFrame: Prices indexed by date, single-level columns

    Raises:
        InvalidInputError: If the provider returns no rows
    """
    logger.info(f"Downloading {ticker} prices from {start or 'inception'} to {end or 'today'}")
    data = yf.download(ticker, start=start, end=end, interval="1d",
                       progress=False, auto_adjust=False)

    if data is None or data.empty:
        error_msg = f"No price data returned for {ticker}. Verify the ticker and date range."
        logger.error(error_msg)
        raise InvalidInputError(error_msg, stage=STAGE)

    # Recent yfinance releases return (field, ticker) columns even for one symbol
    if isinstance(data.columns, pd.MultiIndex):
        data.columns = data.columns.get_level_values(0)

    logger.info(f"Downloaded {len(data)} rows for {ticker}")
    return data.sort_index()


def impute_missing(data: pd.Series) -> pd.Series:
    """
    Forward fill missing values in a time series.

    Replaces NaN with the previous available value (t-1); leading gaps are
    back-filled. The input is not modified.

    Examples:
        >>> prices = pd.Series([100, np.nan, np.nan, 102, 103])
        >>> impute_missing(prices).tolist()
        [100.0, 100.0, 100.0, 102.0, 103.0]
    """
    missing_before = int(data.isna().sum())
    if missing_before == 0:
        return data.copy()

    logger.info(f"Imputing missing values. Missing count before: {missing_before}")
    imputed = data.ffill().bfill()

    missing_after = int(imputed.isna().sum())
    if missing_after > 0:
        logger.warning(f"Still {missing_after} missing values after forward and backward fill")
    return imputed


def _find_price_column(frame: pd.DataFrame, price_column: str) -> str:
    if price_column in frame.columns:
        return price_column

    lowered = {str(col).lower(): col for col in frame.columns}
    for candidate in [price_column.lower()] + FALLBACK_PRICE_COLUMNS:
        if candidate in lowered:
            return lowered[candidate]

    error_msg = (
        f"Price column '{price_column}' not found. Available columns: {list(frame.columns)}"
    )
    logger.error(error_msg)
    raise InvalidInputError(error_msg, stage=STAGE)


def extract_price_series(
    frame: pd.DataFrame,
    price_column: str = 'Close',
    date_column: Optional[str] = 'Date',
    name: Optional[str] = None,
) -> TimeSeries:
    """
    Build a clean price TimeSeries from a raw frame.

    Steps:
    1. Pick the price column (exact name, then case-insensitive, then the
       usual close-price names)
    2. Index by date_column when present, otherwise by the frame's index
    3. Sort chronologically and keep the last row of duplicated timestamps
    4. Fill gaps (impute_missing); calendar holes are left alone, the series
       is simply whatever points the source returned

    Raises:
        InvalidInputError: If no price column exists, the dates cannot be
            parsed, or values remain missing after imputation
    """
    column = _find_price_column(frame, price_column)
    prices = pd.to_numeric(frame[column], errors='coerce')

    date_key = None
    if date_column is not None:
        lowered = {str(col).lower(): col for col in frame.columns}
        date_key = date_column if date_column in frame.columns else lowered.get(date_column.lower())

    try:
        if date_key is not None:
            index = pd.to_datetime(frame[date_key])
        else:
            index = pd.to_datetime(frame.index)
    except (TypeError, ValueError) as e:
        error_msg = f"Could not parse price timestamps: {e}"
        logger.error(error_msg)
        raise InvalidInputError(error_msg, stage=STAGE) from e

    prices = pd.Series(prices.to_numpy(), index=pd.DatetimeIndex(index), name=name or str(column))
    if prices.index.tz is not None:
        prices.index = prices.index.tz_localize(None)
    prices = prices[prices.index.notna()].sort_index(kind='stable')

    duplicated = prices.index.duplicated(keep='last')
    if duplicated.any():
        logger.warning(f"Dropping {int(duplicated.sum())} duplicated timestamps (keeping last)")
        prices = prices[~duplicated]

    prices = impute_missing(prices.replace([np.inf, -np.inf], np.nan))
    if prices.isna().any() or prices.empty:
        error_msg = "Price series has no usable values after cleaning"
        logger.error(error_msg)
        raise InvalidInputError(error_msg, stage=STAGE, data_shape=prices.shape)

    logger.info(
        f"Price series ready: {len(prices)} points, "
        f"{prices.index[0].date()} to {prices.index[-1].date()}"
    )
    return TimeSeries.from_series(prices)


def load_price_series(data_config: Dict[str, Any]) -> TimeSeries:
    """
    Load prices from the configured source.

    data_config['input_file'] takes precedence; otherwise prices for
    data_config['ticker'] are downloaded between 'start' and 'end'.
    """
    input_file = data_config.get('input_file')
    if input_file:
        frame = load_data(input_file)
        name = Path(input_file).stem
    else:
        frame = fetch_prices(data_config['ticker'], data_config.get('start'), data_config.get('end'))
        # yfinance puts dates on the index
        frame = frame.reset_index()
        name = data_config['ticker']

    return extract_price_series(
        frame,
        price_column=data_config.get('price_column', 'Close'),
        date_column=data_config.get('date_column', 'Date'),
        name=name,
    )
