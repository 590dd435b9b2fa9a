"""
STRATEGY MODELS
===============
Data classes describing a candidate strategy and a scored population member.

A StrategyDefinition is immutable: the genetic optimizer produces new
variants with dataclasses.replace() and never mutates one in place.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional, Tuple

from models.errors import UnknownSignalError
from models.trade_models import BacktestResult


class SignalNamespace(str, Enum):
    """Signal families. Values are the identifiers used on the wire."""
    CANDLESTICK = "CandlestickPatterns"
    OSCILLATOR = "OscillatorSignals"
    MOVING_AVERAGE = "MovingAverageCrossovers"
    BOLLINGER = "BollingerBandSignals"
    VOLUME = "VolumeSignals"
    TREND = "TrendIndicators"
    AROON = "AroonSignals"
    CHOPPINESS = "ChoppinessSignals"
    SUPPORT_RESISTANCE = "SupportResistanceSignals"
    FIBONACCI = "FibonacciSignals"
    UTILITY = "Utility"


class EntryMode(str, Enum):
    """How the three entry groups combine into an entry decision."""
    SIGNALS = "Signals"              # OR: any group fires
    CONFIRMATIONS = "Confirmations"  # AND: every non-empty group fires
    SPLIT = "Split"                  # group 1 longs, group 2 shorts

    @classmethod
    def parse(cls, value: str) -> "EntryMode":
        """Case-insensitive lookup ('signals' and 'Signals' are both accepted)."""
        if isinstance(value, cls):
            return value
        for mode in cls:
            if mode.value.lower() == str(value).lower():
                return mode
        raise ValueError(f"Unknown entry mode '{value}'")


@dataclass(frozen=True, order=True)
class Signal:
    """Key of one boolean-series evaluator in the signal registry."""
    namespace: SignalNamespace
    name: str

    @property
    def key(self) -> str:
        """Dotted wire form, e.g. 'CandlestickPatterns.Doji'."""
        return f"{self.namespace.value}.{self.name}"

    @classmethod
    def parse(cls, key: str) -> "Signal":
        """Parse the dotted wire form back into a Signal."""
        namespace, sep, name = str(key).partition('.')
        if not sep or not name:
            raise UnknownSignalError(f"Malformed signal identifier '{key}'")
        try:
            return cls(SignalNamespace(namespace), name)
        except ValueError:
            raise UnknownSignalError(f"Unknown signal namespace '{namespace}'") from None

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class EntryGroups:
    """The three ordered entry groups of a strategy."""
    entry1: Tuple[Signal, ...] = ()
    entry2: Tuple[Signal, ...] = ()
    entry3: Tuple[Signal, ...] = ()

    NUM_GROUPS = 3

    def group(self, number: int) -> Tuple[Signal, ...]:
        """Return group 1, 2 or 3."""
        if number == 1:
            return self.entry1
        if number == 2:
            return self.entry2
        if number == 3:
            return self.entry3
        raise IndexError(f"Entry group must be 1-3, got {number}")

    def with_group(self, number: int, signals: Tuple[Signal, ...]) -> "EntryGroups":
        """Return a copy with one group replaced."""
        groups = [self.entry1, self.entry2, self.entry3]
        if not 1 <= number <= self.NUM_GROUPS:
            raise IndexError(f"Entry group must be 1-3, got {number}")
        groups[number - 1] = tuple(signals)
        return EntryGroups(*groups)

    def __iter__(self) -> Iterator[Tuple[Signal, ...]]:
        return iter((self.entry1, self.entry2, self.entry3))

    @property
    def signal_count(self) -> int:
        return len(self.entry1) + len(self.entry2) + len(self.entry3)


@dataclass(frozen=True)
class StrategyDefinition:
    """
    A candidate trading rule.

    Tick distances are converted to price distances by the backtester's
    tick size. breakeven_ticks / time_limit_bars of None disable those exits.
    """
    mode: EntryMode
    entry_groups: EntryGroups
    profit_target_ticks: int
    stop_loss_ticks: int
    trailing_stop_ticks: int = 0
    breakeven_ticks: Optional[int] = None
    time_limit_bars: Optional[int] = None

    def describe(self) -> str:
        """Short human-readable summary, used in logs."""
        groups = " | ".join(
            ",".join(s.name for s in g) or "-" for g in self.entry_groups
        )
        return (f"{self.mode.value} [{groups}] PT={self.profit_target_ticks} "
                f"SL={self.stop_loss_ticks} TS={self.trailing_stop_ticks}")


@dataclass
class Individual:
    """A scored member of one generation."""
    combination: StrategyDefinition
    fitness: float
    in_sample_result: BacktestResult
    out_of_sample_result: BacktestResult
    generation: int = 0
    components: dict = field(default_factory=dict)
