"""
Unit Tests for the Series Loader (btc_forecast/data_loader.py)

Covers file loading, price extraction and cleaning, and the market-data
download path with the provider patched out.
"""

import json

import numpy as np
import pandas as pd
import pytest

from btc_forecast import data_loader
from btc_forecast.data_loader import (
    extract_price_series,
    fetch_prices,
    impute_missing,
    load_data,
    load_price_series,
)
from btc_forecast.exceptions import InvalidInputError


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def price_frame() -> pd.DataFrame:
    """Unsorted OHLC rows with one gap and one duplicated date."""
    return pd.DataFrame({
        'Date': ['2024-01-03', '2024-01-01', '2024-01-02', '2024-01-04', '2024-01-04'],
        'Open': [1.0, 1.0, 1.0, 1.0, 1.0],
        'Close': [102.0, 100.0, np.nan, 103.0, 104.0],
    })


@pytest.fixture
def csv_file(tmp_path, price_frame):
    path = tmp_path / "btc.csv"
    price_frame.to_csv(path, index=False)
    return path


# ============================================================================
# TEST 1: FILE LOADING
# ============================================================================

class TestLoadData:

    def test_load_csv(self, csv_file):
        data = load_data(str(csv_file))
        assert list(data.columns) == ['Date', 'Open', 'Close']
        assert len(data) == 5

    def test_load_json(self, tmp_path):
        path = tmp_path / "btc.json"
        path.write_text(json.dumps([
            {'Date': '2024-01-01', 'Close': 100.0},
            {'Date': '2024-01-02', 'Close': 101.0},
        ]))
        data = load_data(str(path))
        assert data['Close'].tolist() == [100.0, 101.0]

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_data(str(tmp_path / "missing.csv"))

    def test_unsupported_format_raises(self, tmp_path):
        path = tmp_path / "prices.txt"
        path.write_text("Close\n1\n")
        with pytest.raises(ValueError):
            load_data(str(path))


# ============================================================================
# TEST 2: PRICE EXTRACTION AND CLEANING
# ============================================================================

class TestExtractPriceSeries:

    def test_sorted_deduplicated_and_imputed(self, price_frame):
        series = extract_price_series(price_frame)

        assert list(series.index.strftime('%Y-%m-%d')) == [
            '2024-01-01', '2024-01-02', '2024-01-03', '2024-01-04'
        ]
        # gap forward-filled from 2024-01-01, duplicate keeps the last row
        assert series.values.tolist() == [100.0, 100.0, 102.0, 104.0]

    def test_case_insensitive_columns(self):
        frame = pd.DataFrame({'date': ['2024-01-01', '2024-01-02'], 'close': [1.0, 2.0]})
        series = extract_price_series(frame)
        assert series.values.tolist() == [1.0, 2.0]

    def test_falls_back_to_adjusted_close(self):
        frame = pd.DataFrame({'Date': ['2024-01-01', '2024-01-02'], 'Adj Close': [5.0, 6.0]})
        series = extract_price_series(frame, price_column='Close')
        assert series.values.tolist() == [5.0, 6.0]

    def test_uses_frame_index_without_date_column(self):
        frame = pd.DataFrame({'Close': [1.0, 2.0, 3.0]},
                             index=pd.date_range("2024-01-01", periods=3, freq="D"))
        series = extract_price_series(frame, date_column=None)
        assert series.first_timestamp == pd.Timestamp("2024-01-01")
        assert len(series) == 3

    def test_timezone_is_dropped(self):
        frame = pd.DataFrame({'Close': [1.0, 2.0]},
                             index=pd.date_range("2024-01-01", periods=2, freq="D", tz="UTC"))
        series = extract_price_series(frame, date_column=None)
        assert series.index.tz is None

    def test_missing_price_column_raises(self):
        frame = pd.DataFrame({'Date': ['2024-01-01'], 'Volume': [10]})
        with pytest.raises(InvalidInputError) as exc_info:
            extract_price_series(frame)
        assert exc_info.value.stage == "loader"

    def test_all_missing_prices_raise(self):
        frame = pd.DataFrame({'Date': ['2024-01-01', '2024-01-02'], 'Close': [np.nan, np.nan]})
        with pytest.raises(InvalidInputError):
            extract_price_series(frame)


class TestImputeMissing:

    def test_forward_fill(self):
        prices = pd.Series([100, np.nan, np.nan, 102, 103], dtype=float)
        assert impute_missing(prices).tolist() == [100.0, 100.0, 100.0, 102.0, 103.0]

    def test_leading_gap_back_filled(self):
        prices = pd.Series([np.nan, 5.0, 6.0])
        assert impute_missing(prices).tolist() == [5.0, 5.0, 6.0]

    def test_input_not_modified(self):
        prices = pd.Series([1.0, np.nan, 3.0])
        impute_missing(prices)
        assert np.isnan(prices.iloc[1])


# ============================================================================
# TEST 3: MARKET-DATA DOWNLOAD
# ============================================================================

class TestFetchPrices:

    def test_empty_download_raises(self, monkeypatch):
        monkeypatch.setattr(data_loader.yf, "download", lambda *args, **kwargs: pd.DataFrame())
        with pytest.raises(InvalidInputError):
            fetch_prices("BTC-USD", start="2024-01-01")

    def test_multiindex_columns_flattened(self, monkeypatch):
        index = pd.date_range("2024-01-01", periods=3, freq="D", name="Date")
        columns = pd.MultiIndex.from_tuples([('Close', 'BTC-USD'), ('Open', 'BTC-USD')])
        frame = pd.DataFrame([[1.0, 1.0], [2.0, 2.0], [3.0, 3.0]], index=index, columns=columns)
        monkeypatch.setattr(data_loader.yf, "download", lambda *args, **kwargs: frame)

        data = fetch_prices("BTC-USD")
        assert list(data.columns) == ['Close', 'Open']

    def test_load_price_series_from_download(self, monkeypatch):
        index = pd.date_range("2024-01-01", periods=4, freq="D", name="Date")
        frame = pd.DataFrame({'Close': [10.0, 11.0, 12.0, 13.0]}, index=index)
        calls = {}

        def fake_download(ticker, **kwargs):
            calls['ticker'] = ticker
            calls.update(kwargs)
            return frame

        monkeypatch.setattr(data_loader.yf, "download", fake_download)
        series = load_price_series({'ticker': 'BTC-USD', 'start': '2024-01-01', 'end': None})

        assert calls['ticker'] == 'BTC-USD'
        assert calls['interval'] == '1d'
        assert series.values.tolist() == [10.0, 11.0, 12.0, 13.0]
        assert series.name == 'BTC-USD'

    def test_input_file_takes_precedence(self, csv_file, monkeypatch):
        def fail_download(*args, **kwargs):
            raise AssertionError("download should not be called")

        monkeypatch.setattr(data_loader.yf, "download", fail_download)
        series = load_price_series({'ticker': 'BTC-USD', 'input_file': str(csv_file)})
        assert len(series) == 4
