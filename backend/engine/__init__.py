"""
ENGINE PACKAGE
==============
Signal library, backtester, fitness, genetic search and validation.
"""
from .signal_library import (
    SIGNAL_REGISTRY,
    SignalContext,
    available_signals,
    catalog,
    evaluate,
    get_signal_count,
)
from .backtest import run_backtest
from .fitness import score_fitness, fitness_components
from .genetic import GeneticOptimizer, split_bars
from .validation import run_walk_forward, run_monte_carlo, validate_individual

__all__ = [
    'SIGNAL_REGISTRY',
    'SignalContext',
    'available_signals',
    'catalog',
    'evaluate',
    'get_signal_count',
    'run_backtest',
    'score_fitness',
    'fitness_components',
    'GeneticOptimizer',
    'split_bars',
    'run_walk_forward',
    'run_monte_carlo',
    'validate_individual',
]
