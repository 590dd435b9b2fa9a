"""
VALIDATION SUITE
================
Robustness checks for the optimizer's best strategy.

Walk-forward: split the bars into `periods` equal windows and backtest the
strategy on the in-sample and out-of-sample part of each. The last window
is not evaluated, so `periods - 1` windows are reported.

Monte Carlo: shuffle the trade order many times and collect the spread of
net profit, max drawdown and win rate. Confidence intervals use
nearest-rank selection on the sorted outcomes (no interpolation).
"""
import math
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from config import VALIDATION_CONFIG
from engine.backtest import run_backtest
from logging_config import log
from models.errors import EmptyBarsError
from models.settings_models import OptimizationSettings
from models.strategy_models import Individual, StrategyDefinition
from models.trade_models import BacktestResult, Trade, empty_result

CONFIDENCE_LEVELS = (0.95, 0.99)


# =============================================================================
# REPORT TYPES
# =============================================================================

@dataclass
class WalkForwardPeriod:
    start: Any
    end: Any
    start_index: int
    end_index: int  # inclusive
    in_sample_result: BacktestResult
    out_of_sample_result: BacktestResult
    robustness: Optional[float]  # None when in-sample net profit is not positive


@dataclass
class WalkForwardReport:
    periods: List[WalkForwardPeriod] = field(default_factory=list)

    @property
    def average_robustness(self) -> Optional[float]:
        values = [p.robustness for p in self.periods if p.robustness is not None]
        return sum(values) / len(values) if values else None


@dataclass
class ConfidenceInterval:
    lower: float
    upper: float


@dataclass
class MetricDistribution:
    ci95: ConfidenceInterval
    ci99: ConfidenceInterval
    mean: float = 0.0
    median: float = 0.0


@dataclass
class MonteCarloReport:
    simulations: int
    trade_count: int
    net_profit: MetricDistribution
    max_drawdown: MetricDistribution
    win_rate: MetricDistribution


# =============================================================================
# WALK-FORWARD
# =============================================================================

def _window_backtest(bars: pd.DataFrame, strategy: StrategyDefinition, tick_size: float) -> BacktestResult:
    """An empty window scores as a zero-trade result instead of aborting the analysis."""
    if len(bars) == 0:
        return empty_result()
    return run_backtest(bars.reset_index(drop=True), strategy, tick_size)


def robustness_ratio(in_sample: BacktestResult, out_of_sample: BacktestResult) -> Optional[float]:
    """Out-of-sample / in-sample net profit, undefined for a non-positive denominator."""
    if in_sample.net_profit <= VALIDATION_CONFIG["robustness_min_denominator"]:
        return None
    return out_of_sample.net_profit / in_sample.net_profit


def run_walk_forward(bars: pd.DataFrame, strategy: StrategyDefinition, periods: int = 4,
                     in_sample_ratio: float = 0.7, tick_size: float = 1.0) -> WalkForwardReport:
    """
    Walk-forward analysis over contiguous, non-overlapping windows.

    Args:
        bars: Full validated bar frame
        strategy: Strategy to re-test
        periods: Number of windows the bars are divided into
        in_sample_ratio: Fraction of each window used as in-sample
        tick_size: Price value of one tick

    Returns:
        WalkForwardReport with periods - 1 windows (empty when the series is too short)
    """
    if bars is None or len(bars) == 0:
        raise EmptyBarsError()

    period_length = len(bars) // periods
    report = WalkForwardReport()
    if period_length == 0:
        log(f"[Walk-Forward] {len(bars)} bars is too short for {periods} periods", level='WARNING')
        return report

    times = bars['time']
    for i in range(periods - 1):
        start = i * period_length
        in_sample_end = start + int(math.floor(period_length * in_sample_ratio))
        end = start + period_length

        in_sample = _window_backtest(bars.iloc[start:in_sample_end], strategy, tick_size)
        out_of_sample = _window_backtest(bars.iloc[in_sample_end:end], strategy, tick_size)

        report.periods.append(WalkForwardPeriod(
            start=times.iloc[start],
            end=times.iloc[end - 1],
            start_index=start,
            end_index=end - 1,
            in_sample_result=in_sample,
            out_of_sample_result=out_of_sample,
            robustness=robustness_ratio(in_sample, out_of_sample),
        ))

    log(f"[Walk-Forward] {len(report.periods)} windows of {period_length} bars, "
        f"average robustness {report.average_robustness}")
    return report


# =============================================================================
# MONTE CARLO
# =============================================================================

def _nearest_rank(sorted_values: np.ndarray, confidence: float) -> ConfidenceInterval:
    n = len(sorted_values)
    lower = int(math.floor(n * (1 - confidence) / 2))
    upper = min(n - 1, int(math.floor(n * (1 - (1 - confidence) / 2))))
    return ConfidenceInterval(lower=float(sorted_values[lower]), upper=float(sorted_values[upper]))


def _distribution(values: np.ndarray) -> MetricDistribution:
    ordered = np.sort(values)
    ci95, ci99 = (_nearest_rank(ordered, level) for level in CONFIDENCE_LEVELS)
    return MetricDistribution(
        ci95=ci95,
        ci99=ci99,
        mean=float(np.mean(ordered)),
        median=float(np.median(ordered)),
    )


def _zero_distribution() -> MetricDistribution:
    return MetricDistribution(ci95=ConfidenceInterval(0.0, 0.0), ci99=ConfidenceInterval(0.0, 0.0))


def run_monte_carlo(trades: Sequence[Trade], simulations: int = 1000,
                    seed: Optional[int] = None) -> MonteCarloReport:
    """
    Resample trade order and report confidence intervals.

    Args:
        trades: Trades to shuffle
        simulations: Number of random permutations
        seed: Seed for the numpy Generator

    Returns:
        MonteCarloReport; every metric is 0 when there are no trades
    """
    profits = np.array([t.profit for t in trades], dtype=np.float64)
    if len(profits) == 0:
        return MonteCarloReport(
            simulations=simulations,
            trade_count=0,
            net_profit=_zero_distribution(),
            max_drawdown=_zero_distribution(),
            win_rate=_zero_distribution(),
        )

    rng = np.random.default_rng(seed)
    shuffled = rng.permuted(np.tile(profits, (simulations, 1)), axis=1)

    equity = np.cumsum(shuffled, axis=1)
    peak = np.maximum(np.maximum.accumulate(equity, axis=1), 0.0)
    max_drawdown = (peak - equity).max(axis=1)
    net_profit = equity[:, -1]
    win_rate = (shuffled > 0).sum(axis=1) / len(profits)

    report = MonteCarloReport(
        simulations=simulations,
        trade_count=len(profits),
        net_profit=_distribution(net_profit),
        max_drawdown=_distribution(max_drawdown),
        win_rate=_distribution(win_rate),
    )
    log(f"[Monte Carlo] {simulations} simulations over {len(profits)} trades, "
        f"max drawdown 95% CI [{report.max_drawdown.ci95.lower:.2f}, {report.max_drawdown.ci95.upper:.2f}]")
    return report


# =============================================================================
# COMBINED
# =============================================================================

def validate_individual(bars: pd.DataFrame, individual: Individual,
                        settings: OptimizationSettings) -> Tuple[WalkForwardReport, MonteCarloReport]:
    """Walk-forward over the full series and Monte Carlo over all of the individual's trades."""
    walk_forward = run_walk_forward(
        bars,
        individual.combination,
        periods=settings.walk_forward_periods,
        in_sample_ratio=settings.walk_forward_in_sample_ratio,
        tick_size=settings.tick_size,
    )
    trades = list(individual.in_sample_result.trades) + list(individual.out_of_sample_result.trades)
    monte_carlo = run_monte_carlo(trades, settings.monte_carlo_simulations, settings.seed)
    return walk_forward, monte_carlo
