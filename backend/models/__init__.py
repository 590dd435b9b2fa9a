"""
MODELS PACKAGE
==============
Data classes and type definitions for the Genetic Strategy Finder.
"""
from .errors import (
    InputError,
    EmptyBarsError,
    InvalidBarsError,
    InvalidSettingsError,
    UnknownSignalError,
    InvalidStrategyError,
)
from .trade_models import Trade, BacktestResult, empty_result, LONG, SHORT
from .strategy_models import (
    SignalNamespace,
    EntryMode,
    Signal,
    EntryGroups,
    StrategyDefinition,
    Individual,
)
from .bars import Bar, validate_bars, bars_from_records, bars_from_list
from .settings_models import OptimizationSettings, parse_settings

__all__ = [
    'InputError',
    'EmptyBarsError',
    'InvalidBarsError',
    'InvalidSettingsError',
    'UnknownSignalError',
    'InvalidStrategyError',
    'Trade',
    'BacktestResult',
    'empty_result',
    'LONG',
    'SHORT',
    'SignalNamespace',
    'EntryMode',
    'Signal',
    'EntryGroups',
    'StrategyDefinition',
    'Individual',
    'Bar',
    'validate_bars',
    'bars_from_records',
    'bars_from_list',
    'OptimizationSettings',
    'parse_settings',
]
