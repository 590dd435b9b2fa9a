"""
Tests for walk-forward and Monte Carlo validation.
"""
import numpy as np
import pytest

from engine.backtest import run_backtest
from engine.genetic import GeneticOptimizer
from engine.validation import (
    _nearest_rank,
    robustness_ratio,
    run_monte_carlo,
    run_walk_forward,
    validate_individual,
)
from models.errors import EmptyBarsError
from models.settings_models import parse_settings
from models.strategy_models import EntryGroups, EntryMode, Signal, SignalNamespace, StrategyDefinition
from models.trade_models import BacktestResult, Trade

UP_CANDLE_STRATEGY = StrategyDefinition(
    EntryMode.SIGNALS,
    EntryGroups(entry1=(Signal(SignalNamespace.CANDLESTICK, 'UpCandle'),)),
    profit_target_ticks=2,
    stop_loss_ticks=2,
)


def make_trade(profit):
    return Trade(entry_time=0, exit_time=1, entry_price=100.0, exit_price=100.0 + profit,
                 quantity=1, direction=1, profit=profit, entry_reason='Signals entry',
                 exit_reason='Take profit' if profit > 0 else 'Stop loss')


class TestWalkForward:

    def test_window_layout(self, sample_bars):
        bars = sample_bars.iloc[:100].reset_index(drop=True)
        report = run_walk_forward(bars, UP_CANDLE_STRATEGY, periods=4, in_sample_ratio=0.7)
        assert [(p.start_index, p.end_index) for p in report.periods] == [(0, 24), (25, 49), (50, 74)]
        assert report.periods[0].start == bars['time'].iloc[0]
        assert report.periods[2].end == bars['time'].iloc[74]

    def test_windows_match_direct_backtests(self, sample_bars):
        report = run_walk_forward(sample_bars, UP_CANDLE_STRATEGY, periods=5, in_sample_ratio=0.6)
        assert len(report.periods) == 4
        first = report.periods[0]
        # 500 // 5 = 100 bar windows, 60 in-sample
        expected_in = run_backtest(sample_bars.iloc[0:60].reset_index(drop=True), UP_CANDLE_STRATEGY)
        expected_out = run_backtest(sample_bars.iloc[60:100].reset_index(drop=True), UP_CANDLE_STRATEGY)
        assert first.in_sample_result.net_profit == expected_in.net_profit
        assert first.out_of_sample_result.net_profit == expected_out.net_profit

    def test_too_short_gives_empty_report(self, rising_bars):
        report = run_walk_forward(rising_bars.iloc[:3], UP_CANDLE_STRATEGY, periods=4)
        assert report.periods == []
        assert report.average_robustness is None

    def test_empty_bars_raise(self, rising_bars):
        with pytest.raises(EmptyBarsError):
            run_walk_forward(rising_bars.iloc[:0], UP_CANDLE_STRATEGY)

    def test_robustness_ratio(self):
        assert robustness_ratio(BacktestResult(net_profit=10.0), BacktestResult(net_profit=5.0)) == 0.5
        assert robustness_ratio(BacktestResult(net_profit=0.0), BacktestResult(net_profit=5.0)) is None
        assert robustness_ratio(BacktestResult(net_profit=-3.0), BacktestResult(net_profit=5.0)) is None

    def test_average_skips_undefined_windows(self, sample_bars):
        report = run_walk_forward(sample_bars, UP_CANDLE_STRATEGY, periods=4)
        defined = [p.robustness for p in report.periods if p.robustness is not None]
        if defined:
            assert report.average_robustness == pytest.approx(sum(defined) / len(defined))
        else:
            assert report.average_robustness is None


class TestMonteCarlo:

    def test_order_independent_metrics_are_constant(self):
        trades = [make_trade(p) for p in (10.0, -5.0, 3.0, -2.0)]
        report = run_monte_carlo(trades, simulations=200, seed=1)
        assert report.trade_count == 4
        assert report.net_profit.ci95.lower == pytest.approx(6.0)
        assert report.net_profit.ci99.upper == pytest.approx(6.0)
        assert report.win_rate.mean == pytest.approx(0.5)

    def test_drawdown_bounds(self):
        trades = [make_trade(p) for p in (10.0, -5.0, 3.0, -2.0)]
        report = run_monte_carlo(trades, simulations=500, seed=1)
        dd = report.max_drawdown
        assert 0.0 <= dd.ci99.lower <= dd.ci95.lower <= dd.median <= dd.ci95.upper <= dd.ci99.upper <= 7.0

    def test_seeded_runs_reproducible(self):
        trades = [make_trade(p) for p in (4.0, -1.0, -3.0, 2.5, -0.5, 1.0)]
        a = run_monte_carlo(trades, simulations=100, seed=9)
        b = run_monte_carlo(trades, simulations=100, seed=9)
        assert a.max_drawdown == b.max_drawdown

    def test_no_trades(self):
        report = run_monte_carlo([], simulations=100, seed=1)
        assert report.trade_count == 0
        assert report.net_profit.ci95.lower == report.net_profit.ci95.upper == 0.0
        assert report.max_drawdown.mean == 0.0

    def test_nearest_rank_indices(self):
        ci = _nearest_rank(np.arange(1000, dtype=float), 0.95)
        assert ci.lower == 25.0
        assert ci.upper == pytest.approx(975.0, abs=1.0)

    def test_nearest_rank_single_value(self):
        ci = _nearest_rank(np.array([4.2]), 0.99)
        assert ci.lower == ci.upper == 4.2


class TestValidateIndividual:

    def test_combined_reports(self, sample_bars, settings_payload):
        settings = parse_settings(settings_payload)
        optimizer = GeneticOptimizer(sample_bars, settings)
        individual = optimizer.evaluate(UP_CANDLE_STRATEGY, is_initializing=False)

        walk_forward, monte_carlo = validate_individual(sample_bars, individual, settings)
        assert len(walk_forward.periods) == settings.walk_forward_periods - 1
        assert monte_carlo.simulations == 50
        assert monte_carlo.trade_count == (individual.in_sample_result.total_trades
                                           + individual.out_of_sample_result.total_trades)
