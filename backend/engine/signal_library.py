"""
SIGNAL LIBRARY
==============
Named boolean entry conditions, using a registry pattern.

Each signal is registered with a decorator under its typed Signal key and
evaluated against a SignalContext, which caches the indicator series of
one bar frame so a backtest computes every indicator at most once.

A signal is False wherever its indicators lack trailing history; no
signal ever looks at a later bar.
"""
from typing import Callable, Dict, Iterable, List

import numpy as np
import pandas as pd

from engine import indicators
from logging_config import log
from models.errors import UnknownSignalError
from models.strategy_models import Signal, SignalNamespace

SignalFunction = Callable[['SignalContext'], pd.Series]

# Signal registry - maps signal keys to signal functions
SIGNAL_REGISTRY: Dict[Signal, SignalFunction] = {}

# Signals the random search never draws
_NON_SEARCHABLE = set()


def register_signal(namespace: SignalNamespace, name: str, searchable: bool = True):
    """Decorator to register a signal function."""
    def decorator(func: SignalFunction):
        key = Signal(namespace, name)
        SIGNAL_REGISTRY[key] = func
        if not searchable:
            _NON_SEARCHABLE.add(key)
        return func
    return decorator


def safe_bool(series: pd.Series) -> pd.Series:
    """Ensure boolean series with no NaN values."""
    return series.fillna(False).astype(bool)


# =============================================================================
# INDICATOR CACHE
# =============================================================================

class SignalContext:
    """
    Indicator cache for one bar frame.

    Owned by whoever evaluates signals against the frame (a single
    backtest, or one optimizer run for its fixed in/out-of-sample splits).
    """

    def __init__(self, bars: pd.DataFrame):
        self.bars = bars
        self.open = bars['open'].astype(np.float64)
        self.high = bars['high'].astype(np.float64)
        self.low = bars['low'].astype(np.float64)
        self.close = bars['close'].astype(np.float64)
        self.volume = bars['volume'].astype(np.float64)
        self._cache: Dict[tuple, object] = {}
        self._signals: Dict[Signal, np.ndarray] = {}

    def __len__(self) -> int:
        return len(self.bars)

    def _cached(self, key: tuple, compute: Callable[[], object]):
        if key not in self._cache:
            self._cache[key] = compute()
        return self._cache[key]

    def sma(self, period: int) -> pd.Series:
        return self._cached(('sma', period), lambda: indicators.sma(self.close, period))

    def ema(self, period: int) -> pd.Series:
        return self._cached(('ema', period), lambda: indicators.ema(self.close, period))

    def rsi(self, period: int = 14) -> pd.Series:
        return self._cached(('rsi', period), lambda: indicators.rsi(self.close, period))

    def stochastic(self, period: int = 14) -> Dict[str, pd.Series]:
        return self._cached(('stoch', period),
                            lambda: indicators.stochastic(self.high, self.low, self.close, period))

    def adx(self, period: int = 14) -> pd.Series:
        return self._cached(('adx', period),
                            lambda: indicators.adx(self.high, self.low, self.close, period))

    def bollinger(self, period: int, num_std: float) -> Dict[str, pd.Series]:
        return self._cached(('bb', period, num_std),
                            lambda: indicators.bollinger(self.close, period, num_std))

    def cmf(self, period: int = 20) -> pd.Series:
        return self._cached(('cmf', period), lambda: indicators.chaikin_money_flow(
            self.high, self.low, self.close, self.volume, period))

    def cci(self, period: int = 20) -> pd.Series:
        return self._cached(('cci', period),
                            lambda: indicators.cci(self.high, self.low, self.close, period))

    def linreg_slope(self, period: int = 14) -> pd.Series:
        return self._cached(('linreg', period), lambda: indicators.linreg_slope(self.close, period))

    def aroon(self, period: int = 14) -> Dict[str, pd.Series]:
        return self._cached(('aroon', period), lambda: indicators.aroon(self.high, self.low, period))

    def choppiness(self, period: int = 14) -> pd.Series:
        return self._cached(('chop', period),
                            lambda: indicators.choppiness(self.high, self.low, self.close, period))

    def pivots(self) -> Dict[str, pd.Series]:
        return self._cached(('pivots',), lambda: indicators.pivot_levels(self.high, self.low, self.close))

    def fibonacci(self, period: int = 20) -> Dict[str, pd.Series]:
        return self._cached(('fib', period), lambda: indicators.fibonacci_levels(self.high, self.low, period))

    def candles(self) -> Dict[str, pd.Series]:
        return self._cached(('candles',), lambda: indicators.candle_patterns(self.bars))

    def evaluate(self, signal: Signal) -> np.ndarray:
        """Boolean array for one signal, one value per bar."""
        if signal not in self._signals:
            func = SIGNAL_REGISTRY.get(signal)
            if func is None:
                raise UnknownSignalError(f"Unknown signal '{signal.key}'")
            self._signals[signal] = safe_bool(func(self)).to_numpy()
        return self._signals[signal]


# =============================================================================
# CANDLESTICK PATTERNS
# =============================================================================

_CANDLES = {
    'BullishEngulfing': 'bullish_engulfing',
    'BearishEngulfing': 'bearish_engulfing',
    'UpCandle': 'up',
    'DownCandle': 'down',
    'ThreeUpCandles': 'three_up',
    'ThreeDownCandles': 'three_down',
    'BullishHarami': 'bullish_harami',
    'BearishHarami': 'bearish_harami',
    'Doji': 'doji',
    'Hammer': 'hammer',
    'ShootingStar': 'shooting_star',
    'EveningStar': 'evening_star',
    'MorningStar': 'morning_star',
}

for _name, _pattern in _CANDLES.items():
    register_signal(SignalNamespace.CANDLESTICK, _name)(
        lambda ctx, pattern=_pattern: ctx.candles()[pattern]
    )


# =============================================================================
# OSCILLATORS
# =============================================================================

@register_signal(SignalNamespace.OSCILLATOR, 'RSIBelow30')
def rsi_below_30(ctx: SignalContext) -> pd.Series:
    return ctx.rsi() < 30


@register_signal(SignalNamespace.OSCILLATOR, 'RSIAbove70')
def rsi_above_70(ctx: SignalContext) -> pd.Series:
    return ctx.rsi() > 70


@register_signal(SignalNamespace.OSCILLATOR, 'StochasticBelow20')
def stochastic_below_20(ctx: SignalContext) -> pd.Series:
    return ctx.stochastic()['k'] < 20


@register_signal(SignalNamespace.OSCILLATOR, 'StochasticAbove80')
def stochastic_above_80(ctx: SignalContext) -> pd.Series:
    return ctx.stochastic()['k'] > 80


@register_signal(SignalNamespace.OSCILLATOR, 'StochKCrossAboveD')
def stoch_k_cross_above_d(ctx: SignalContext) -> pd.Series:
    """%K crosses over %D on this bar."""
    k, d = ctx.stochastic()['k'], ctx.stochastic()['d']
    return (k > d) & (k.shift(1) <= d.shift(1))


@register_signal(SignalNamespace.OSCILLATOR, 'StochKCrossBelowD')
def stoch_k_cross_below_d(ctx: SignalContext) -> pd.Series:
    """%K crosses under %D on this bar."""
    k, d = ctx.stochastic()['k'], ctx.stochastic()['d']
    return (k < d) & (k.shift(1) >= d.shift(1))


@register_signal(SignalNamespace.OSCILLATOR, 'ADXAbove30')
def adx_above_30(ctx: SignalContext) -> pd.Series:
    return ctx.adx() > 30


# =============================================================================
# MOVING AVERAGE STATES
# =============================================================================

def _register_ma_pair(kind: str, fast: int, slow: int):
    def averages(ctx: SignalContext):
        if kind == 'EMA':
            return ctx.ema(fast), ctx.ema(slow)
        return ctx.sma(fast), ctx.sma(slow)

    @register_signal(SignalNamespace.MOVING_AVERAGE, f'{kind}{fast}Above{kind}{slow}')
    def fast_above(ctx: SignalContext) -> pd.Series:
        f, s = averages(ctx)
        return f > s

    @register_signal(SignalNamespace.MOVING_AVERAGE, f'{kind}{fast}Below{kind}{slow}')
    def fast_below(ctx: SignalContext) -> pd.Series:
        f, s = averages(ctx)
        return f < s


_register_ma_pair('SMA', 50, 200)
_register_ma_pair('SMA', 7, 21)
_register_ma_pair('EMA', 20, 50)
_register_ma_pair('SMA', 21, 50)


# =============================================================================
# BOLLINGER BANDS
# =============================================================================

@register_signal(SignalNamespace.BOLLINGER, 'PriceAboveUpper')
def price_above_upper(ctx: SignalContext) -> pd.Series:
    """Bar high pierces the (20, 2) upper band."""
    return ctx.high > ctx.bollinger(20, 2.0)['upper']


@register_signal(SignalNamespace.BOLLINGER, 'PriceBelowLower')
def price_below_lower(ctx: SignalContext) -> pd.Series:
    """Bar low pierces the (20, 2) lower band."""
    return ctx.low < ctx.bollinger(20, 2.0)['lower']


for _k in (1, 2, 3):
    register_signal(SignalNamespace.BOLLINGER, f'CloseAboveBB{_k}_20Upper')(
        lambda ctx, k=_k: ctx.close > ctx.bollinger(20, float(k))['upper']
    )
    register_signal(SignalNamespace.BOLLINGER, f'CloseBelowBB{_k}_20Lower')(
        lambda ctx, k=_k: ctx.close < ctx.bollinger(20, float(k))['lower']
    )


# =============================================================================
# VOLUME
# =============================================================================

@register_signal(SignalNamespace.VOLUME, 'VolumeIncreasing')
def volume_increasing(ctx: SignalContext) -> pd.Series:
    return ctx.volume > ctx.volume.shift(1)


@register_signal(SignalNamespace.VOLUME, 'VolumeDecreasing')
def volume_decreasing(ctx: SignalContext) -> pd.Series:
    return ctx.volume < ctx.volume.shift(1)


for _level in (40, 35, 30):
    register_signal(SignalNamespace.VOLUME, f'CMFAbove{_level}')(
        lambda ctx, level=_level: ctx.cmf() > level / 100
    )
for _level in (40, 30, 20):
    register_signal(SignalNamespace.VOLUME, f'CMFBelowMinus{_level}')(
        lambda ctx, level=_level: ctx.cmf() < -level / 100
    )


# =============================================================================
# TREND INDICATORS
# =============================================================================

for _level in (250, 200, 150, 100):
    register_signal(SignalNamespace.TREND, f'CCIAbove{_level}')(
        lambda ctx, level=_level: ctx.cci() > level
    )
    register_signal(SignalNamespace.TREND, f'CCIBelowMinus{_level}')(
        lambda ctx, level=_level: ctx.cci() < -level
    )

for _level in (5, 10):
    register_signal(SignalNamespace.TREND, f'LinRegSlopeAbove{_level}')(
        lambda ctx, level=_level: ctx.linreg_slope() > level
    )
    register_signal(SignalNamespace.TREND, f'LinRegSlopeBelowMinus{_level}')(
        lambda ctx, level=_level: ctx.linreg_slope() < -level
    )


# =============================================================================
# AROON
# =============================================================================

@register_signal(SignalNamespace.AROON, 'AroonUpAboveDown')
def aroon_up_above_down(ctx: SignalContext) -> pd.Series:
    return ctx.aroon()['up'] > ctx.aroon()['down']


@register_signal(SignalNamespace.AROON, 'AroonUpBelowDown')
def aroon_up_below_down(ctx: SignalContext) -> pd.Series:
    return ctx.aroon()['up'] < ctx.aroon()['down']


for _level in (90, 80):
    register_signal(SignalNamespace.AROON, f'AroonOscAbove{_level}')(
        lambda ctx, level=_level: ctx.aroon()['oscillator'] > level
    )
    register_signal(SignalNamespace.AROON, f'AroonOscBelowMinus{_level}')(
        lambda ctx, level=_level: ctx.aroon()['oscillator'] < -level
    )


# =============================================================================
# CHOPPINESS
# =============================================================================

for _level in (70, 65, 60):
    register_signal(SignalNamespace.CHOPPINESS, f'ChoppinessIndexAbove{_level}')(
        lambda ctx, level=_level: ctx.choppiness() > level
    )
for _level in (40, 35, 30):
    register_signal(SignalNamespace.CHOPPINESS, f'ChoppinessIndexBelow{_level}')(
        lambda ctx, level=_level: ctx.choppiness() < level
    )


# =============================================================================
# SUPPORT / RESISTANCE (pivot points)
# =============================================================================

for _level in ('S1', 'S2', 'S3', 'R1', 'R2', 'R3'):
    register_signal(SignalNamespace.SUPPORT_RESISTANCE, f'PriceAbove{_level}')(
        lambda ctx, level=_level.lower(): ctx.close > ctx.pivots()[level]
    )
    register_signal(SignalNamespace.SUPPORT_RESISTANCE, f'PriceBelow{_level}')(
        lambda ctx, level=_level.lower(): ctx.close < ctx.pivots()[level]
    )


# =============================================================================
# FIBONACCI RETRACEMENTS
# =============================================================================

for _level in indicators.FIB_RATIOS:
    register_signal(SignalNamespace.FIBONACCI, f'PriceAbove{_level}Retracement')(
        lambda ctx, level=_level: ctx.close > ctx.fibonacci()[level]
    )
    register_signal(SignalNamespace.FIBONACCI, f'PriceBelow{_level}Retracement')(
        lambda ctx, level=_level: ctx.close < ctx.fibonacci()[level]
    )


# =============================================================================
# UTILITY
# =============================================================================

@register_signal(SignalNamespace.UTILITY, 'Always', searchable=False)
def always_signal(ctx: SignalContext) -> pd.Series:
    """Always signal - fires on every bar."""
    return pd.Series(True, index=ctx.bars.index)


# =============================================================================
# PUBLIC API
# =============================================================================

def evaluate(bars: pd.DataFrame, signal: Signal, context: SignalContext = None) -> np.ndarray:
    """
    Evaluate one signal over a bar frame.

    Args:
        bars: Validated bar frame
        signal: Registered signal key
        context: Optional indicator cache already built for `bars`

    Returns:
        Boolean array with one value per bar
    """
    if context is None:
        context = SignalContext(bars)
    return context.evaluate(signal)


def is_registered(signal: Signal) -> bool:
    return signal in SIGNAL_REGISTRY


def ensure_registered(signals: Iterable[Signal]) -> None:
    """Raise UnknownSignalError for the first signal not in the registry."""
    for signal in signals:
        if signal not in SIGNAL_REGISTRY:
            raise UnknownSignalError(f"Unknown signal '{signal.key}'")


def available_signals(searchable_only: bool = True) -> List[Signal]:
    """Registered signals in registration order."""
    return [s for s in SIGNAL_REGISTRY if not (searchable_only and s in _NON_SEARCHABLE)]


def catalog(searchable_only: bool = False) -> Dict[str, List[str]]:
    """Signal names grouped by namespace, as exposed on the wire."""
    grouped: Dict[str, List[str]] = {}
    for signal in available_signals(searchable_only):
        grouped.setdefault(signal.namespace.value, []).append(signal.name)
    return grouped


def get_signal_count() -> int:
    """Get total number of searchable signals."""
    return len(available_signals(searchable_only=True))


log(f"[Signals] Registry loaded: {get_signal_count()} searchable signals", level='DEBUG')
