"""
Pytest Configuration and Shared Fixtures
=========================================
Common fixtures for testing the Genetic Strategy Finder.
"""
import os
import sys

import numpy as np
import pandas as pd
import pytest

# Add backend to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

from models.bars import validate_bars  # noqa: E402
from models.settings_models import OptimizationSettings  # noqa: E402
from state import app_state  # noqa: E402


def make_ohlcv(n_bars: int, seed: int = 42, initial_price: float = 100.0) -> pd.DataFrame:
    """Random-walk OHLCV frame with a DatetimeIndex."""
    rng = np.random.RandomState(seed)
    returns = rng.normal(0.0002, 0.01, n_bars)
    prices = initial_price * np.cumprod(1 + returns)

    dates = pd.date_range(start='2024-01-01', periods=n_bars, freq='1h')

    df = pd.DataFrame({
        'open': prices * (1 + rng.uniform(-0.003, 0.003, n_bars)),
        'high': prices * (1 + rng.uniform(0.001, 0.01, n_bars)),
        'low': prices * (1 - rng.uniform(0.001, 0.01, n_bars)),
        'close': prices,
        'volume': rng.uniform(100, 10000, n_bars)
    }, index=dates)

    # Ensure high >= open, close, low and low <= open, close, high
    df['high'] = df[['open', 'high', 'close']].max(axis=1)
    df['low'] = df[['open', 'low', 'close']].min(axis=1)
    return df


def to_records(df: pd.DataFrame):
    """Wire form of a bar frame ({time, open, high, low, close, volume})."""
    bars = validate_bars(df)
    return [
        {
            'time': pd.Timestamp(row.time).isoformat(),
            'open': float(row.open),
            'high': float(row.high),
            'low': float(row.low),
            'close': float(row.close),
            'volume': float(row.volume),
        }
        for row in bars.itertuples(index=False)
    ]


@pytest.fixture
def sample_ohlcv_data():
    """Generate sample OHLCV data for backtesting."""
    np.random.seed(42)
    return make_ohlcv(500)


@pytest.fixture
def small_ohlcv_data():
    """Small dataset for quick tests."""
    np.random.seed(42)
    return make_ohlcv(120)


@pytest.fixture
def sample_bars(sample_ohlcv_data):
    return validate_bars(sample_ohlcv_data)


@pytest.fixture
def small_bars(small_ohlcv_data):
    return validate_bars(small_ohlcv_data)


@pytest.fixture
def rising_bars():
    """Closes 100..109 in steps of 1 with half-point wicks."""
    closes = np.arange(100.0, 110.0)
    return validate_bars(pd.DataFrame({
        'time': pd.date_range(start='2024-01-01', periods=len(closes), freq='1min'),
        'open': closes - 0.25,
        'high': closes + 0.5,
        'low': closes - 0.5,
        'close': closes,
        'volume': np.full(len(closes), 1000.0),
    }))


@pytest.fixture
def flat_bars():
    """Fifty identical bars."""
    n = 50
    return validate_bars(pd.DataFrame({
        'time': pd.date_range(start='2024-01-01', periods=n, freq='1min'),
        'open': np.full(n, 100.0),
        'high': np.full(n, 100.0),
        'low': np.full(n, 100.0),
        'close': np.full(n, 100.0),
        'volume': np.zeros(n),
    }))


@pytest.fixture
def settings_payload():
    """Small, fast run in the original client's wire shape."""
    return {
        "populationSize": 6,
        "generations": 2,
        "mutationRate": 0.3,
        "elitismRate": 0.2,
        "inSamplePercentage": 0.7,
        "seed": 7,
        "monteCarloSimulations": 50,
        "exits": {
            "fixedTarget": {"enabled": True, "params": {"profitTargetMin": 1, "profitTargetMax": 3, "profitTargetStep": 1}},
            "stopLoss": {"enabled": True, "params": {"stopLossMin": 1, "stopLossMax": 3, "stopLossStep": 1}},
        },
    }


@pytest.fixture
def default_settings():
    return OptimizationSettings.default()


@pytest.fixture(autouse=True)
def reset_app_state():
    """Every test starts with an empty run registry."""
    app_state.reset()
    yield
    app_state.reset()
