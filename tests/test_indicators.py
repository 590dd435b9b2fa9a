"""
Tests for indicator series.

Indicators must be aligned with the bars, NaN only during warm-up and
never look ahead.
"""
import numpy as np
import pandas as pd
import pytest

from engine import indicators


class TestMovingAverages:

    def test_sma_warm_up_and_value(self):
        s = pd.Series([1.0, 2.0, 3.0, 4.0, 5.0])
        result = indicators.sma(s, 3)
        assert result.iloc[:2].isna().all()
        assert result.iloc[2] == pytest.approx(2.0)
        assert result.iloc[4] == pytest.approx(4.0)

    def test_ema_is_seeded_with_sma(self):
        s = pd.Series([1.0, 2.0, 3.0, 4.0])
        result = indicators.ema(s, 3)
        assert result.iloc[:2].isna().all()
        assert result.iloc[2] == pytest.approx(2.0)
        # alpha = 2 / (3 + 1) = 0.5
        assert result.iloc[3] == pytest.approx(0.5 * 4.0 + 0.5 * 2.0)

    def test_ema_too_short(self):
        result = indicators.ema(pd.Series([1.0, 2.0]), 5)
        assert result.isna().all()


class TestOscillators:

    def test_rsi_all_gains_is_100(self):
        close = pd.Series(np.arange(1.0, 31.0))
        result = indicators.rsi(close, 14)
        assert result.iloc[:14].isna().all()
        assert (result.iloc[14:] == 100.0).all()

    def test_rsi_in_range(self, sample_bars):
        result = indicators.rsi(sample_bars['close'], 14).dropna()
        assert len(result) > 0
        assert ((result >= 0) & (result <= 100)).all()

    def test_stochastic_bounds(self, sample_bars):
        result = indicators.stochastic(sample_bars['high'], sample_bars['low'], sample_bars['close'], 14)
        k = result['k'].dropna()
        assert ((k >= 0) & (k <= 100)).all()
        assert result['d'].notna().sum() <= result['k'].notna().sum()

    def test_adx_flat_market_is_zero(self, flat_bars):
        result = indicators.adx(flat_bars['high'], flat_bars['low'], flat_bars['close'], 14).dropna()
        assert len(result) > 0
        assert (result == 0).all()

    def test_cci_flat_market_is_zero(self, flat_bars):
        result = indicators.cci(flat_bars['high'], flat_bars['low'], flat_bars['close'], 20)
        assert result.iloc[:19].isna().all()
        assert (result.iloc[19:] == 0).all()


class TestTrendAndRange:

    def test_linreg_slope_of_line(self):
        s = pd.Series(np.arange(0.0, 40.0, 2.0))
        result = indicators.linreg_slope(s, 5)
        assert result.iloc[:4].isna().all()
        assert np.allclose(result.iloc[4:], 2.0)

    def test_aroon_rising_series(self):
        high = pd.Series(np.arange(1.0, 31.0))
        low = high - 0.5
        result = indicators.aroon(high, low, 14)
        up = result['up'].dropna()
        assert (up == 100).all()
        assert (result['oscillator'].dropna() > 0).all()

    def test_aroon_ties(self):
        high = pd.Series(np.ones(14))
        high[[2, 10]] = 5.0
        low = pd.Series(np.zeros(14))
        result = indicators.aroon(high, low, 14)
        # Oldest of the tied highs counts; the current bar ties the low
        assert result['up'].iloc[-1] == pytest.approx(3 / 14 * 100)
        assert result['down'].iloc[-1] == 100.0

        high[13] = 5.0
        assert indicators.aroon(high, low, 14)['up'].iloc[-1] == 100.0

    def test_choppiness_flat_is_100(self, flat_bars):
        result = indicators.choppiness(flat_bars['high'], flat_bars['low'], flat_bars['close'], 14)
        assert (result.dropna() == 100.0).all()

    def test_true_range_first_bar_nan(self, small_bars):
        tr = indicators.true_range(small_bars['high'], small_bars['low'], small_bars['close'])
        assert np.isnan(tr.iloc[0])
        assert (tr.iloc[1:] >= 0).all()


class TestBandsAndLevels:

    def test_bollinger_ordering(self, sample_bars):
        bands = indicators.bollinger(sample_bars['close'], 20, 2.0)
        valid = bands['middle'].notna()
        assert (bands['upper'][valid] >= bands['middle'][valid]).all()
        assert (bands['middle'][valid] >= bands['lower'][valid]).all()

    def test_cmf_zero_volume(self, flat_bars):
        result = indicators.chaikin_money_flow(
            flat_bars['high'], flat_bars['low'], flat_bars['close'], flat_bars['volume'], 20)
        assert (result.iloc[19:] == 0).all()

    def test_pivots_use_previous_bar(self, small_bars):
        levels = indicators.pivot_levels(small_bars['high'], small_bars['low'], small_bars['close'])
        assert np.isnan(levels['r1'].iloc[0])
        i = 10
        pivot = (small_bars['high'].iloc[i - 1] + small_bars['low'].iloc[i - 1] + small_bars['close'].iloc[i - 1]) / 3
        assert levels['r1'].iloc[i] == pytest.approx(2 * pivot - small_bars['low'].iloc[i - 1])
        assert levels['s1'].iloc[i] == pytest.approx(2 * pivot - small_bars['high'].iloc[i - 1])

    def test_fibonacci_between_high_and_low(self, sample_bars):
        levels = indicators.fibonacci_levels(sample_bars['high'], sample_bars['low'], 20)
        local_high = sample_bars['high'].rolling(20).max()
        local_low = sample_bars['low'].rolling(20).min()
        valid = local_high.notna()
        for key in indicators.FIB_RATIOS:
            assert (levels[key][valid] <= local_high[valid] + 1e-9).all()
            assert (levels[key][valid] >= local_low[valid] - 1e-9).all()


class TestCandlePatterns:

    def test_all_patterns_boolean_and_aligned(self, sample_bars):
        patterns = indicators.candle_patterns(sample_bars)
        assert len(patterns) == 13
        for series in patterns.values():
            assert series.dtype == bool
            assert len(series) == len(sample_bars)

    def test_up_and_down_exclusive(self, sample_bars):
        patterns = indicators.candle_patterns(sample_bars)
        assert not (patterns['up'] & patterns['down']).any()

    def test_three_up_needs_history(self, rising_bars):
        patterns = indicators.candle_patterns(rising_bars)
        assert not patterns['three_up'].iloc[0]
        assert not patterns['three_up'].iloc[1]
        assert patterns['three_up'].iloc[2:].all()

    def test_no_look_ahead(self, sample_bars):
        """Truncating the future must not change past values."""
        full = indicators.candle_patterns(sample_bars)
        cut = indicators.candle_patterns(sample_bars.iloc[:200])
        for name in full:
            assert (full[name].iloc[:200].to_numpy() == cut[name].to_numpy()).all()
