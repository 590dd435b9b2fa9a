"""
TRADE MODELS
=============
Data classes for simulated trades and backtest results.
"""
from dataclasses import dataclass, field
from typing import Any, List


LONG = 1
SHORT = -1


@dataclass(frozen=True)
class Trade:
    """Result of a single simulated round trip. Created only by the backtester."""
    entry_time: Any
    exit_time: Any
    entry_price: float
    exit_price: float
    quantity: int
    direction: int  # +1 long, -1 short
    profit: float
    entry_reason: str
    exit_reason: str  # 'Stop loss', 'Take profit', 'Trailing stop', 'Time stop'
    entry_index: int = -1
    exit_index: int = -1

    @property
    def is_win(self) -> bool:
        return self.profit > 0


@dataclass
class BacktestResult:
    """Summary statistics of one (bars, strategy) simulation."""
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    net_profit: float = 0.0
    profit_factor: float = float('inf')
    max_drawdown: float = 0.0
    average_win: float = 0.0
    average_loss: float = 0.0
    gross_profit: float = 0.0
    gross_loss: float = 0.0
    trades: List[Trade] = field(default_factory=list)


def empty_result() -> BacktestResult:
    """Result of a window with no trades (zero win rate, unbounded profit factor)."""
    return BacktestResult()
