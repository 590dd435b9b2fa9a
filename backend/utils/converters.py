"""
CONVERTERS
==========
Conversions between engine objects and the camelCase wire format.

Signals travel as dotted "Namespace.Name" strings; everything else uses
the key names of the run protocol.
"""
from typing import Any, Dict, List, Optional

from engine.signal_library import ensure_registered
from models.errors import InvalidStrategyError, UnknownSignalError
from models.run_models import CompleteMessage, ErrorMessage, ProgressMessage, StoppedMessage
from models.strategy_models import EntryGroups, EntryMode, Individual, Signal, SignalNamespace, StrategyDefinition
from models.trade_models import BacktestResult, Trade


# =============================================================================
# STRATEGIES
# =============================================================================

def strategy_to_dict(strategy: StrategyDefinition) -> Dict[str, Any]:
    return {
        "mode": strategy.mode.value,
        "entries": {
            f"entry{n}": [s.key for s in strategy.entry_groups.group(n)]
            for n in range(1, EntryGroups.NUM_GROUPS + 1)
        },
        "profitTarget": strategy.profit_target_ticks,
        "stopLoss": strategy.stop_loss_ticks,
        "trailingStop": strategy.trailing_stop_ticks,
        "breakevenTicks": strategy.breakeven_ticks,
        "timeLimitBars": strategy.time_limit_bars,
    }


def _signal_from_wire(value: Any) -> Signal:
    if isinstance(value, dict):
        try:
            return Signal(SignalNamespace(value["namespace"]), str(value["name"]))
        except (KeyError, ValueError) as e:
            raise UnknownSignalError(f"Malformed signal {value!r}") from e
    return Signal.parse(value)


def _optional_int(d: Dict, *keys: str) -> Optional[int]:
    for key in keys:
        if d.get(key) is not None:
            return int(d[key])
    return None


def dict_to_strategy(d: Dict[str, Any]) -> StrategyDefinition:
    """
    Build a StrategyDefinition from its wire form.

    Accepts signals as dotted strings or {namespace, name} objects.

    Raises:
        InvalidStrategyError: missing or malformed fields
        UnknownSignalError: a signal is not in the registry
    """
    if not isinstance(d, dict):
        raise InvalidStrategyError("Strategy must be an object")
    try:
        entries = d.get("entries") or d.get("entryGroups") or {}
        groups = EntryGroups(*(
            tuple(_signal_from_wire(s) for s in entries.get(f"entry{n}") or ())
            for n in range(1, EntryGroups.NUM_GROUPS + 1)
        ))
        strategy = StrategyDefinition(
            mode=EntryMode.parse(d.get("mode", EntryMode.SIGNALS.value)),
            entry_groups=groups,
            profit_target_ticks=_optional_int(d, "profitTarget", "profitTargetTicks"),
            stop_loss_ticks=_optional_int(d, "stopLoss", "stopLossTicks"),
            trailing_stop_ticks=_optional_int(d, "trailingStop", "trailingStopTicks") or 0,
            breakeven_ticks=_optional_int(d, "breakevenTicks"),
            time_limit_bars=_optional_int(d, "timeLimitBars", "timeLimit"),
        )
    except (TypeError, ValueError, AttributeError) as e:
        raise InvalidStrategyError(f"Invalid strategy: {e}") from e

    if strategy.profit_target_ticks is None or strategy.stop_loss_ticks is None:
        raise InvalidStrategyError("Strategy requires profitTarget and stopLoss")
    if min(strategy.profit_target_ticks, strategy.stop_loss_ticks, strategy.trailing_stop_ticks) < 0:
        raise InvalidStrategyError("Exit distances must not be negative")
    ensure_registered(s for group in groups for s in group)
    return strategy


# =============================================================================
# RESULTS
# =============================================================================

def trade_to_dict(trade: Trade) -> Dict[str, Any]:
    return {
        "entryTime": trade.entry_time,
        "exitTime": trade.exit_time,
        "entryPrice": trade.entry_price,
        "exitPrice": trade.exit_price,
        "quantity": trade.quantity,
        "direction": trade.direction,
        "profit": trade.profit,
        "entryReason": trade.entry_reason,
        "exitReason": trade.exit_reason,
    }


def result_to_dict(result: BacktestResult, include_trades: bool = True) -> Dict[str, Any]:
    data = {
        "totalTrades": result.total_trades,
        "winningTrades": result.winning_trades,
        "losingTrades": result.losing_trades,
        "winRate": result.win_rate,
        "netProfit": result.net_profit,
        "profitFactor": result.profit_factor,
        "maxDrawdown": result.max_drawdown,
        "averageWin": result.average_win,
        "averageLoss": result.average_loss,
        "grossProfit": result.gross_profit,
        "grossLoss": result.gross_loss,
    }
    if include_trades:
        data["trades"] = [trade_to_dict(t) for t in result.trades]
    return data


def individual_to_dict(individual: Individual, include_trades: bool = True) -> Dict[str, Any]:
    return {
        "combination": strategy_to_dict(individual.combination),
        "fitness": individual.fitness,
        "generation": individual.generation,
        "inSampleResults": result_to_dict(individual.in_sample_result, include_trades),
        "outOfSampleResults": result_to_dict(individual.out_of_sample_result, include_trades),
    }


def walk_forward_to_dict(report) -> List[Dict[str, Any]]:
    return [
        {
            "period": {"start": p.start, "end": p.end,
                       "startIndex": p.start_index, "endIndex": p.end_index},
            "inSampleResults": result_to_dict(p.in_sample_result, include_trades=False),
            "outOfSampleResults": result_to_dict(p.out_of_sample_result, include_trades=False),
            "robustness": p.robustness,
        }
        for p in report.periods
    ]


def _distribution_to_dict(dist) -> Dict[str, Any]:
    return {
        "ci95": {"lower": dist.ci95.lower, "upper": dist.ci95.upper},
        "ci99": {"lower": dist.ci99.lower, "upper": dist.ci99.upper},
        "mean": dist.mean,
        "median": dist.median,
    }


def monte_carlo_to_dict(report) -> Dict[str, Any]:
    return {
        "simulations": report.simulations,
        "tradeCount": report.trade_count,
        "confidenceIntervals": {
            "netProfit": _distribution_to_dict(report.net_profit),
            "maxDrawdown": _distribution_to_dict(report.max_drawdown),
            "winRate": _distribution_to_dict(report.win_rate),
        },
    }


# =============================================================================
# RUN PROTOCOL
# =============================================================================

def message_to_dict(message) -> Dict[str, Any]:
    """Wire form of a run protocol message. Progress omits per-trade detail."""
    if isinstance(message, ProgressMessage):
        return {
            "type": message.type,
            "generation": message.generation,
            "totalGenerations": message.total_generations,
            "bestFitness": message.best_fitness,
            "isInitializing": message.is_initializing,
            "topStrategies": [individual_to_dict(ind, include_trades=False)
                              for ind in message.top_strategies],
        }
    if isinstance(message, CompleteMessage):
        return {
            "type": message.type,
            "bestIndividual": individual_to_dict(message.best_individual),
            "walkForwardReport": walk_forward_to_dict(message.walk_forward_report),
            "monteCarloReport": monte_carlo_to_dict(message.monte_carlo_report),
        }
    if isinstance(message, ErrorMessage):
        return {"type": message.type, "message": message.message}
    if isinstance(message, StoppedMessage):
        return {"type": message.type}
    raise TypeError(f"Not a run protocol message: {type(message).__name__}")
