"""
Tests for bar validation.
"""
import numpy as np
import pandas as pd
import pytest

from models.bars import BAR_COLUMNS, Bar, bars_from_list, bars_from_records, validate_bars
from models.errors import EmptyBarsError, InvalidBarsError


def record(minute, close=100.0):
    return {"time": f"2024-01-01T00:{minute:02d}:00", "open": close, "high": close + 1,
            "low": close - 1, "close": close, "volume": 10}


class TestValidateBars:

    def test_datetime_index_becomes_time_column(self, small_ohlcv_data):
        bars = validate_bars(small_ohlcv_data)
        assert list(bars.columns) == BAR_COLUMNS
        assert isinstance(bars.index, pd.RangeIndex)
        assert bars['time'].iloc[0] == small_ohlcv_data.index[0]

    def test_missing_volume_defaults_to_zero(self, small_ohlcv_data):
        bars = validate_bars(small_ohlcv_data.drop(columns=['volume']))
        assert (bars['volume'] == 0).all()

    def test_empty(self):
        with pytest.raises(EmptyBarsError):
            validate_bars(pd.DataFrame())

    def test_missing_columns(self, small_ohlcv_data):
        with pytest.raises(InvalidBarsError):
            validate_bars(small_ohlcv_data.drop(columns=['close']))

    def test_non_finite_prices(self, small_ohlcv_data):
        df = small_ohlcv_data.copy()
        df.iloc[5, df.columns.get_loc('close')] = np.nan
        with pytest.raises(InvalidBarsError):
            validate_bars(df)

    @pytest.mark.parametrize("column,value", [("high", 50.0), ("low", 500.0), ("close", 500.0)])
    def test_high_low_must_bracket_open_close(self, small_ohlcv_data, column, value):
        df = small_ohlcv_data.copy()
        df.iloc[7, df.columns.get_loc(column)] = value
        with pytest.raises(InvalidBarsError, match="Bar 7"):
            validate_bars(df)

    def test_unsorted_times(self, small_ohlcv_data):
        with pytest.raises(InvalidBarsError):
            validate_bars(small_ohlcv_data.iloc[::-1])


class TestRecords:

    def test_from_records(self):
        bars = bars_from_records([record(0), record(1, 101.0)])
        assert len(bars) == 2
        assert bars['close'].tolist() == [100.0, 101.0]

    def test_empty_records(self):
        with pytest.raises(EmptyBarsError):
            bars_from_records([])
        with pytest.raises(EmptyBarsError):
            bars_from_records(None)

    def test_missing_time(self):
        rows = [record(0), record(1)]
        for row in rows:
            del row["time"]
        with pytest.raises(InvalidBarsError):
            bars_from_records(rows)

    def test_non_numeric_price(self):
        rows = [record(0), record(1)]
        rows[1]["close"] = "abc"
        with pytest.raises(InvalidBarsError):
            bars_from_records(rows)

    def test_duplicate_times(self):
        with pytest.raises(InvalidBarsError):
            bars_from_records([record(0), record(0)])

    def test_from_bar_dataclasses(self):
        bars = bars_from_list([Bar("2024-01-01T00:00:00", 1, 2, 0.5, 1.5), Bar("2024-01-01T00:01:00", 1.5, 2, 1, 1.8)])
        assert bars['volume'].tolist() == [0.0, 0.0]
