"""
INDICATORS
==========
Indicator series computed from a bar frame.

Every function is a pure function of its input columns and returns a
Series aligned with the bars. Values are NaN wherever the trailing
history is too short, so comparisons against them evaluate to False.

The `ta` library is used where its formula matches ours exactly
(SMA, Bollinger Bands, Stochastic, Chaikin Money Flow, CCI). EMA, RSI and
ADX are seeded with a simple average before the recursive smoothing
starts, which `ta` does not do, so those are computed here.
"""
from typing import Dict

import numpy as np
import pandas as pd
import ta


# =============================================================================
# SMOOTHING HELPERS
# =============================================================================

def _seeded_smoothing(series: pd.Series, period: int, alpha: float) -> pd.Series:
    """
    Recursive average y[i] = alpha*x[i] + (1-alpha)*y[i-1], seeded by the
    simple mean of the first `period` valid values.
    """
    out = pd.Series(np.nan, index=series.index, dtype=np.float64)
    values = series.to_numpy(dtype=np.float64)
    valid = np.flatnonzero(~np.isnan(values))
    if period < 1 or len(valid) < period:
        return out

    start = valid[0]
    seed_pos = start + period - 1
    tail = series.iloc[seed_pos:].astype(np.float64).copy()
    tail.iloc[0] = series.iloc[start:seed_pos + 1].mean()
    out.iloc[seed_pos:] = tail.ewm(alpha=alpha, adjust=False).mean().to_numpy()
    return out


def _wilder(series: pd.Series, period: int) -> pd.Series:
    """Wilder's running average (RMA)."""
    return _seeded_smoothing(series, period, 1.0 / period)


def true_range(high: pd.Series, low: pd.Series, close: pd.Series) -> pd.Series:
    """True range. NaN on the first bar, which has no previous close."""
    prev_close = close.shift(1)
    tr = pd.concat([
        high - low,
        (high - prev_close).abs(),
        (low - prev_close).abs(),
    ], axis=1).max(axis=1, skipna=False)
    return tr


# =============================================================================
# MOVING AVERAGES
# =============================================================================

def sma(series: pd.Series, period: int) -> pd.Series:
    return ta.trend.SMAIndicator(series, window=period).sma_indicator()


def ema(series: pd.Series, period: int) -> pd.Series:
    """EMA with multiplier 2/(period+1), seeded by the first SMA."""
    return _seeded_smoothing(series, period, 2.0 / (period + 1))


# =============================================================================
# OSCILLATORS
# =============================================================================

def rsi(close: pd.Series, period: int = 14) -> pd.Series:
    """RSI using Wilder's running averages of gains and losses."""
    change = close.diff()
    avg_gain = _wilder(change.clip(lower=0), period)
    avg_loss = _wilder((-change).clip(lower=0), period)

    rs = avg_gain / avg_loss.replace(0, np.nan)
    result = 100 - (100 / (1 + rs))
    # No losses in the window
    result = result.where(~((avg_loss == 0) & avg_gain.notna()), 100.0)
    return result


def stochastic(high: pd.Series, low: pd.Series, close: pd.Series,
               period: int = 14, smooth_d: int = 3) -> Dict[str, pd.Series]:
    """Stochastic %K from the rolling high/low range, %D = SMA of %K."""
    indicator = ta.momentum.StochasticOscillator(
        high=high, low=low, close=close, window=period, smooth_window=smooth_d
    )
    k = indicator.stoch().replace([np.inf, -np.inf], np.nan)
    d = k.rolling(smooth_d, min_periods=smooth_d).mean()
    return {'k': k, 'd': d}


def adx(high: pd.Series, low: pd.Series, close: pd.Series, period: int = 14) -> pd.Series:
    """Average Directional Index with Wilder smoothing of TR, +DM, -DM and DX."""
    tr = true_range(high, low, close)

    up_move = high.diff()
    down_move = -low.diff()
    plus_dm = up_move.where((up_move > down_move) & (up_move > 0), 0.0)
    minus_dm = down_move.where((down_move > up_move) & (down_move > 0), 0.0)
    plus_dm[up_move.isna()] = np.nan
    minus_dm[down_move.isna()] = np.nan

    tr_smooth = _wilder(tr, period)
    plus_di = 100 * _wilder(plus_dm, period) / tr_smooth.replace(0, np.nan)
    minus_di = 100 * _wilder(minus_dm, period) / tr_smooth.replace(0, np.nan)
    # No price range at all means no directional movement
    plus_di = plus_di.where(tr_smooth != 0, 0.0)
    minus_di = minus_di.where(tr_smooth != 0, 0.0)

    di_sum = (plus_di + minus_di).replace(0, np.nan)
    dx = 100 * (plus_di - minus_di).abs() / di_sum
    # Flat stretches have no directional movement at all
    dx = dx.where(plus_di.isna() | dx.notna(), 0.0)
    return _wilder(dx, period)


def cci(high: pd.Series, low: pd.Series, close: pd.Series, period: int = 20) -> pd.Series:
    """Commodity Channel Index. Zero mean deviation gives 0."""
    result = ta.trend.CCIIndicator(
        high=high, low=low, close=close, window=period, constant=0.015
    ).cci()
    result = result.replace([np.inf, -np.inf], np.nan)
    result.iloc[period - 1:] = result.iloc[period - 1:].fillna(0.0)
    return result


def linreg_slope(series: pd.Series, period: int = 14) -> pd.Series:
    """Least-squares slope of the last `period` values against x = 0..period-1."""
    x = np.arange(period, dtype=np.float64)
    sum_x = x.sum()
    denominator = period * np.dot(x, x) - sum_x * sum_x
    if abs(denominator) < 1e-12:
        return pd.Series(np.where(series.notna(), 0.0, np.nan), index=series.index)

    sum_y = series.rolling(period, min_periods=period).sum()
    sum_xy = series.rolling(period, min_periods=period).apply(lambda w: np.dot(x, w), raw=True)
    return (period * sum_xy - sum_x * sum_y) / denominator


def aroon(high: pd.Series, low: pd.Series, period: int = 14) -> Dict[str, pd.Series]:
    """
    Aroon up/down from bars since the rolling high/low, scaled 0-100.

    Ties go to the current bar when it matches the extreme, otherwise to
    the oldest bar in the window that reaches it.
    """
    def bars_since(window, extreme_at):
        last = len(window) - 1
        first = extreme_at(window)
        return 0 if window[last] == window[first] else last - first

    since_high = high.rolling(period, min_periods=period).apply(bars_since, raw=True, args=(np.argmax,))
    since_low = low.rolling(period, min_periods=period).apply(bars_since, raw=True, args=(np.argmin,))
    up = (period - since_high) / period * 100
    down = (period - since_low) / period * 100
    return {'up': up, 'down': down, 'oscillator': up - down}


def choppiness(high: pd.Series, low: pd.Series, close: pd.Series, period: int = 14) -> pd.Series:
    """Choppiness Index. A window with no price range scores 100."""
    tr_sum = true_range(high, low, close).rolling(period, min_periods=period).sum()
    price_range = (high.rolling(period, min_periods=period).max()
                   - low.rolling(period, min_periods=period).min())

    ratio = tr_sum / price_range.where(price_range >= 1e-10)
    result = 100 * np.log10(ratio) / np.log10(period)
    return result.where(~((price_range < 1e-10) & tr_sum.notna()), 100.0)


# =============================================================================
# BANDS / VOLUME
# =============================================================================

def bollinger(close: pd.Series, period: int = 20, num_std: float = 2.0) -> Dict[str, pd.Series]:
    """Bollinger Bands with population standard deviation."""
    bands = ta.volatility.BollingerBands(close=close, window=period, window_dev=num_std)
    return {
        'upper': bands.bollinger_hband(),
        'middle': bands.bollinger_mavg(),
        'lower': bands.bollinger_lband(),
    }


def chaikin_money_flow(high: pd.Series, low: pd.Series, close: pd.Series,
                       volume: pd.Series, period: int = 20) -> pd.Series:
    """Chaikin Money Flow. Windows without volume score 0."""
    result = ta.volume.ChaikinMoneyFlowIndicator(
        high=high, low=low, close=close, volume=volume, window=period
    ).chaikin_money_flow()
    volume_sum = volume.rolling(period, min_periods=period).sum()
    result = result.replace([np.inf, -np.inf], np.nan)
    return result.where(~(volume_sum == 0), 0.0)


# =============================================================================
# PRICE LEVELS
# =============================================================================

def pivot_levels(high: pd.Series, low: pd.Series, close: pd.Series) -> Dict[str, pd.Series]:
    """Classic pivot supports/resistances from the previous bar's H/L/C."""
    prev_high = high.shift(1)
    prev_low = low.shift(1)
    prev_close = close.shift(1)
    pivot = (prev_high + prev_low + prev_close) / 3

    return {
        'r1': 2 * pivot - prev_low,
        's1': 2 * pivot - prev_high,
        'r2': pivot + (prev_high - prev_low),
        's2': pivot - (prev_high - prev_low),
        'r3': prev_high + 2 * (pivot - prev_low),
        's3': prev_low - 2 * (prev_high - pivot),
    }


FIB_RATIOS = {'236': 0.236, '382': 0.382, '500': 0.5, '618': 0.618}


def fibonacci_levels(high: pd.Series, low: pd.Series, period: int = 20) -> Dict[str, pd.Series]:
    """Retracement levels measured down from the rolling high."""
    local_high = high.rolling(period, min_periods=period).max()
    local_low = low.rolling(period, min_periods=period).min()
    diff = local_high - local_low
    return {key: local_high - ratio * diff for key, ratio in FIB_RATIOS.items()}


# =============================================================================
# CANDLESTICK PATTERNS
# =============================================================================

def candle_patterns(df: pd.DataFrame) -> Dict[str, pd.Series]:
    """Boolean candlestick predicates over 1-3 consecutive bars."""
    o, h, l, c = df['open'], df['high'], df['low'], df['close']
    o1, h1, l1, c1 = o.shift(1), h.shift(1), l.shift(1), c.shift(1)
    o2, h2, l2, c2 = o.shift(2), h.shift(2), l.shift(2), c.shift(2)

    body = (c - o).abs()
    body1 = (c1 - o1).abs()
    body2 = (c2 - o2).abs()
    rng = h - l
    up = c > o
    down = c < o

    patterns = {
        'up': up,
        'down': down,
        'three_up': up & up.shift(1, fill_value=False) & up.shift(2, fill_value=False),
        'three_down': down & down.shift(1, fill_value=False) & down.shift(2, fill_value=False),
        'bullish_engulfing': (c1 < o1) & (c > o) & (o < c1) & (c > o1),
        'bearish_engulfing': (c1 > o1) & (c < o) & (o > c1) & (c < o1),
        'bullish_harami': (c1 < o1) & (c > o) & (h < o1) & (l > c1) & (body < body1 * 0.6),
        'bearish_harami': (c1 > o1) & (c < o) & (h < c1) & (l > o1) & (body < body1 * 0.6),
        'doji': body < rng * 0.1,
        'hammer': up & (c == h) & ((c - o) > rng * 0.6) & ((o - l) < rng * 0.1),
        'shooting_star': down & (c == l) & ((o - c) > rng * 0.6) & ((h - o) < rng * 0.1),
        # Three-bar stars: bar i-2 sets direction, bar i-1 is the small gapped star
        'morning_star': (c2 < o2) & (body1 < body2 * 0.3) & up & (h1 < l2) & (h1 < l),
        'evening_star': (c2 > o2) & (body1 < body2 * 0.3) & down & (l1 > h2) & (l1 > h),
    }
    return {name: series.fillna(False).astype(bool) for name, series in patterns.items()}
