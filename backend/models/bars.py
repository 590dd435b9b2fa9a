"""
BARS
====
OHLCV bar sequences.

Bars travel through the engine as a pandas DataFrame with the columns
time, open, high, low, close, volume and a RangeIndex. The engine assumes
the sequence is sorted ascending by time and never re-sorts it.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List

import numpy as np
import pandas as pd

from models.errors import EmptyBarsError, InvalidBarsError

PRICE_COLUMNS = ['open', 'high', 'low', 'close']
BAR_COLUMNS = ['time'] + PRICE_COLUMNS + ['volume']


@dataclass(frozen=True)
class Bar:
    """A single OHLCV bar."""
    time: Any
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


def validate_bars(df: pd.DataFrame) -> pd.DataFrame:
    """
    Check a bar frame and return it with a clean RangeIndex.

    Raises:
        EmptyBarsError: no rows
        InvalidBarsError: missing columns, non-finite prices, high/low not bracketing
            open/close, or time not strictly increasing
    """
    if df is None or len(df) == 0:
        raise EmptyBarsError("Invalid or empty data provided")

    missing = [col for col in PRICE_COLUMNS if col not in df.columns]
    if missing:
        raise InvalidBarsError(f"Missing required columns: {missing}")

    df = df.reset_index(drop='time' in df.columns)
    if 'time' not in df.columns:
        # A DatetimeIndex was moved into the first column by reset_index
        df = df.rename(columns={df.columns[0]: 'time'})
    if 'volume' not in df.columns:
        df['volume'] = 0.0

    prices = df[PRICE_COLUMNS].to_numpy(dtype=np.float64)
    if not np.isfinite(prices).all():
        raise InvalidBarsError("Bars contain non-finite prices")

    open_, high, low, close = prices.T
    inverted = (high < np.maximum(open_, close)) | (low > np.minimum(open_, close))
    if inverted.any():
        first = int(np.flatnonzero(inverted)[0])
        raise InvalidBarsError(f"Bar {first} has high/low outside its open/close range")

    times = pd.to_datetime(df['time'], utc=True, errors='coerce')
    if times.isna().any():
        raise InvalidBarsError("Bars contain unparseable timestamps")
    if len(times) > 1 and not (times.diff().iloc[1:] > pd.Timedelta(0)).all():
        raise InvalidBarsError("Bar times must be strictly increasing")

    return df[BAR_COLUMNS]


def bars_from_records(records: Iterable[Dict[str, Any]]) -> pd.DataFrame:
    """Build a validated bar frame from protocol records ({time, open, high, low, close, volume})."""
    if records is None:
        raise EmptyBarsError("Invalid or empty data provided")
    rows = [dict(r) for r in records]
    if not rows:
        raise EmptyBarsError("Invalid or empty data provided")
    try:
        df = pd.DataFrame(rows)
        for col in PRICE_COLUMNS + (['volume'] if 'volume' in df.columns else []):
            df[col] = pd.to_numeric(df[col], errors='raise').astype(np.float64)
    except (KeyError, ValueError, TypeError) as e:
        raise InvalidBarsError(f"Malformed bar records: {e}") from e
    if 'time' not in df.columns:
        raise InvalidBarsError("Missing required columns: ['time']")
    return validate_bars(df)


def bars_from_list(bars: List[Bar]) -> pd.DataFrame:
    """Build a bar frame from Bar dataclasses."""
    return bars_from_records(
        {'time': b.time, 'open': b.open, 'high': b.high, 'low': b.low,
         'close': b.close, 'volume': b.volume}
        for b in bars
    )
