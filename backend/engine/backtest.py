"""
BACKTEST ENGINE
===============
Deterministic bar-by-bar simulation of one StrategyDefinition.

Positions are entered at the bar close and managed from the following
bar. Only interior bars (index 1 .. n-2) are visited: the first bar has no
previous close to measure momentum against, and a position still open
after the last visited bar is dropped without recording a trade.

Exit checks run in fixed order: stop loss, profit target, trailing stop,
time stop. The exit price is the bar close clamped into [stop, target]
for longs and [target, stop] for shorts.
"""
from typing import List, Optional

import numpy as np
import pandas as pd

from engine.signal_library import SignalContext
from logging_config import log
from models.errors import EmptyBarsError
from models.strategy_models import EntryMode, StrategyDefinition
from models.trade_models import BacktestResult, LONG, SHORT, Trade

QUANTITY = 1


def _group_fires(ctx: SignalContext, signals) -> Optional[np.ndarray]:
    """Per-bar OR over a group's signals. None for an empty group (never fires)."""
    if not signals:
        return None
    return np.logical_or.reduce([ctx.evaluate(s) for s in signals])


def _entry_direction(mode: EntryMode, fired: List[Optional[bool]], momentum: int) -> int:
    """
    Direction to enter at this bar, or 0 for no entry.

    `fired` holds one flag per entry group (None for empty groups).
    """
    if mode == EntryMode.SIGNALS:
        return momentum if any(fired) else 0

    if mode == EntryMode.CONFIRMATIONS:
        active = [f for f in fired if f is not None]
        return momentum if active and all(active) else 0

    # Split: group 1 trades long, group 2 trades short
    if fired[0] and momentum > 0:
        return LONG
    if fired[1] and momentum < 0:
        return SHORT
    return 0


def run_backtest(bars: pd.DataFrame, strategy: StrategyDefinition, tick_size: float = 1.0,
                 context: Optional[SignalContext] = None) -> BacktestResult:
    """
    Simulate one strategy over a bar frame.

    Args:
        bars: Validated bar frame (see models.bars.validate_bars)
        strategy: Strategy to simulate
        tick_size: Price value of one tick
        context: Optional indicator cache already built for `bars`

    Returns:
        BacktestResult with the closed trades and summary statistics

    Raises:
        EmptyBarsError: when bars is empty
    """
    if bars is None or len(bars) == 0:
        raise EmptyBarsError()

    ctx = context if context is not None else SignalContext(bars)
    n = len(bars)

    close = ctx.close.to_numpy()
    high = ctx.high.to_numpy()
    low = ctx.low.to_numpy()
    times = bars['time'].tolist()
    momentum = np.zeros(n, dtype=int)
    momentum[1:] = np.sign(np.diff(close)).astype(int)

    groups = [_group_fires(ctx, signals) for signals in strategy.entry_groups]

    target_dist = strategy.profit_target_ticks * tick_size
    stop_dist = strategy.stop_loss_ticks * tick_size
    trail_dist = strategy.trailing_stop_ticks * tick_size
    breakeven_dist = (strategy.breakeven_ticks * tick_size
                      if strategy.breakeven_ticks is not None else None)
    time_limit = strategy.time_limit_bars

    trades: List[Trade] = []
    net_profit = 0.0
    gross_profit = 0.0
    gross_loss = 0.0
    peak = 0.0
    max_drawdown = 0.0

    direction = 0
    entry_price = 0.0
    entry_index = -1
    best_price = 0.0
    stop_level = 0.0
    target_level = 0.0
    at_breakeven = False

    for i in range(1, n - 1):
        if direction == 0:
            fired = [None if g is None else bool(g[i]) for g in groups]
            new_direction = _entry_direction(strategy.mode, fired, int(momentum[i]))
            if new_direction:
                direction = new_direction
                entry_price = close[i]
                entry_index = i
                best_price = close[i]
                stop_level = entry_price - direction * stop_dist
                target_level = entry_price + direction * target_dist
                at_breakeven = False
            continue

        # Position management
        if direction == LONG:
            best_price = max(best_price, high[i])
            favourable = best_price - entry_price
        else:
            best_price = min(best_price, low[i])
            favourable = entry_price - best_price

        if breakeven_dist is not None and not at_breakeven and favourable >= breakeven_dist:
            stop_level = (max(stop_level, entry_price) if direction == LONG
                          else min(stop_level, entry_price))
            at_breakeven = True

        if direction == LONG:
            stop_hit = low[i] <= stop_level
            target_hit = high[i] >= target_level
            trail_hit = trail_dist > 0 and low[i] <= best_price - trail_dist
        else:
            stop_hit = high[i] >= stop_level
            target_hit = low[i] <= target_level
            trail_hit = trail_dist > 0 and high[i] >= best_price + trail_dist
        time_hit = time_limit is not None and (i - entry_index) >= time_limit

        if stop_hit:
            reason = 'Breakeven stop' if at_breakeven else 'Stop loss'
        elif target_hit:
            reason = 'Take profit'
        elif trail_hit:
            reason = 'Trailing stop'
        elif time_hit:
            reason = 'Time stop'
        else:
            continue

        if direction == LONG:
            exit_price = min(target_level, max(close[i], stop_level))
        else:
            exit_price = max(target_level, min(close[i], stop_level))

        profit = (exit_price - entry_price) * direction * QUANTITY
        net_profit = round(net_profit + profit, 2)
        if profit > 0:
            gross_profit += profit
        else:
            gross_loss += abs(profit)
        peak = max(peak, net_profit)
        max_drawdown = max(max_drawdown, peak - net_profit)

        trades.append(Trade(
            entry_time=times[entry_index],
            exit_time=times[i],
            entry_price=float(entry_price),
            exit_price=float(exit_price),
            quantity=QUANTITY,
            direction=direction,
            profit=float(profit),
            entry_reason=f'{strategy.mode.value} entry',
            exit_reason=reason,
            entry_index=entry_index,
            exit_index=i,
        ))
        direction = 0

    winners = sum(1 for t in trades if t.profit > 0)
    losers = len(trades) - winners

    log(f"[Backtest] {len(trades)} trades over {n} bars, net {net_profit:.2f} "
        f"({strategy.describe()})", level='DEBUG')

    return BacktestResult(
        total_trades=len(trades),
        winning_trades=winners,
        losing_trades=losers,
        win_rate=winners / len(trades) if trades else 0.0,
        net_profit=float(net_profit),
        profit_factor=gross_profit / gross_loss if gross_loss > 0 else float('inf'),
        max_drawdown=float(max_drawdown),
        average_win=gross_profit / winners if winners else 0.0,
        average_loss=-gross_loss / losers if losers else 0.0,
        gross_profit=float(gross_profit),
        gross_loss=float(gross_loss),
        trades=trades,
    )
