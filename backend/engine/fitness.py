"""
FITNESS
=======
Maps a backtest summary to a scalar fitness >= 0.

Five components, each roughly in [0, 1], are combined as a weighted
average. Outside the seeding phase, each violated constraint multiplies
the score by a fixed penalty.
"""
import math
from typing import Dict

from models.settings_models import Constraints, FitnessWeights
from models.trade_models import BacktestResult

PROFIT_FACTOR_CAP = 3.0
PENALTY_MIN_TRADES = 0.5
PENALTY_MIN_WIN_RATE = 0.7
PENALTY_MAX_DRAWDOWN = 0.8


def fitness_components(result: BacktestResult, constraints: Constraints) -> Dict[str, float]:
    """Normalised components keyed like FitnessWeights fields."""
    if result.net_profit > 0:
        profit = min(1.0, math.log10(result.net_profit + 1) / 3)
    else:
        profit = max(-0.5, result.net_profit / 1000)

    return {
        'profit_factor': min(PROFIT_FACTOR_CAP, result.profit_factor or 0.0) / PROFIT_FACTOR_CAP,
        'win_rate': result.win_rate,
        'max_drawdown': max(0.0, 1 - result.max_drawdown / 100),
        'net_profit': profit,
        'trade_count': min(1.0, result.total_trades / constraints.minimum_trades),
    }


def score_fitness(result: BacktestResult, weights: FitnessWeights, constraints: Constraints,
                  is_initializing: bool = False) -> float:
    """
    Score a backtest result.

    Args:
        result: Backtest summary
        weights: Component weights (normalised by their sum)
        constraints: Minimum trades / win rate and maximum drawdown
        is_initializing: Suppress constraint penalties while seeding

    Returns:
        Fitness >= 0; exactly 0 when there are no trades
    """
    if result.total_trades == 0:
        return 0.0

    components = fitness_components(result, constraints)
    fitness = sum(getattr(weights, name) * value for name, value in components.items()) / weights.total

    if not is_initializing:
        if result.total_trades < constraints.minimum_trades:
            fitness *= PENALTY_MIN_TRADES
        if result.win_rate < constraints.minimum_win_rate:
            fitness *= PENALTY_MIN_WIN_RATE
        if result.max_drawdown > constraints.maximum_drawdown:
            fitness *= PENALTY_MAX_DRAWDOWN

    return max(0.0, fitness)
