"""
SETTINGS MODELS
===============
Validated configuration of one optimization run.

Accepts both snake_case and the camelCase names used by the run protocol,
including the original client's nested exit-rule shape:

    "exits": {"fixedTarget": {"enabled": true, "params": {"profitTargetMin": 10, ...}}, ...}

Settings are frozen. Use the with_*() update operations to derive a
modified, re-validated copy.
"""
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Tuple, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from config import DEFAULT_EXIT_TICKS, DEFAULT_OPTIMIZATION_SETTINGS, VALIDATION_CONFIG
from models.errors import InvalidSettingsError, UnknownSignalError
from models.strategy_models import EntryMode, Signal, SignalNamespace


class _SettingsModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,   # Accept both snake_case and camelCase
        extra="ignore",          # Ignore unknown fields gracefully
        frozen=True,
    )


# =============================================================================
# EXIT RULES (one variant per rule kind)
# =============================================================================

class _ExitRule(_SettingsModel):
    """Common handling of the {"enabled", "params": {...}} wire shape."""

    param_aliases: ClassVar[Dict[str, str]] = {}

    enabled: bool = False

    @model_validator(mode="before")
    @classmethod
    def flatten_params(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        params = data.pop("params", None) or {}
        for key, value in params.items():
            data.setdefault(cls.param_aliases.get(key, key), value)
        return data


class _RangeExitRule(_ExitRule):
    """An exit distance searched over min..max in steps of step ticks."""
    min_ticks: int = Field(default=10, ge=0)
    max_ticks: int = Field(default=50, ge=0)
    step: int = Field(default=5, ge=1)
    default_ticks: int = Field(default=DEFAULT_EXIT_TICKS, ge=0)

    @model_validator(mode="after")
    def check_bounds(self):
        if self.min_ticks > self.max_ticks:
            raise ValueError(f"min_ticks ({self.min_ticks}) exceeds max_ticks ({self.max_ticks})")
        return self

    def candidates(self) -> List[int]:
        """All tick values the optimizer may sample."""
        return list(range(self.min_ticks, self.max_ticks + 1, self.step))

    def clamp(self, ticks: int) -> int:
        return max(self.min_ticks, min(self.max_ticks, ticks))


class FixedTargetRule(_RangeExitRule):
    param_aliases: ClassVar[Dict[str, str]] = {
        "profitTargetMin": "min_ticks", "profitTargetMax": "max_ticks", "profitTargetStep": "step",
    }
    kind: Literal["fixedTarget"] = "fixedTarget"
    enabled: bool = True


class StopLossRule(_RangeExitRule):
    param_aliases: ClassVar[Dict[str, str]] = {
        "stopLossMin": "min_ticks", "stopLossMax": "max_ticks", "stopLossStep": "step",
    }
    kind: Literal["stopLoss"] = "stopLoss"
    enabled: bool = True


class TrailingStopRule(_RangeExitRule):
    param_aliases: ClassVar[Dict[str, str]] = {
        "trailingMin": "min_ticks", "trailingMax": "max_ticks", "trailingStep": "step",
    }
    kind: Literal["trailingStop"] = "trailingStop"
    min_ticks: int = Field(default=5, ge=0)
    max_ticks: int = Field(default=25, ge=0)
    step: int = Field(default=2, ge=1)


class BreakevenRule(_ExitRule):
    param_aliases: ClassVar[Dict[str, str]] = {"breakevenTicks": "trigger_ticks"}
    kind: Literal["breakeven"] = "breakeven"
    trigger_ticks: int = Field(default=10, ge=1)


class TimeStopRule(_ExitRule):
    param_aliases: ClassVar[Dict[str, str]] = {"timeLimit": "time_limit_bars"}
    kind: Literal["timeStop"] = "timeStop"
    time_limit_bars: int = Field(default=60, ge=1)


ExitRule = Annotated[
    Union[FixedTargetRule, StopLossRule, TrailingStopRule, BreakevenRule, TimeStopRule],
    Field(discriminator="kind"),
]
_exit_rule_list = TypeAdapter(List[ExitRule])


class ExitRules(_SettingsModel):
    """
    The configured exit rules. Fixed target and stop loss are required.

    Also accepts a list of tagged rules: [{"kind": "stopLoss", ...}, ...].
    """
    fixed_target: FixedTargetRule
    stop_loss: StopLossRule
    trailing_stop: TrailingStopRule = Field(default_factory=TrailingStopRule)
    breakeven: BreakevenRule = Field(default_factory=BreakevenRule)
    time_stop: TimeStopRule = Field(default_factory=TimeStopRule)

    @model_validator(mode="before")
    @classmethod
    def from_tagged_list(cls, data: Any) -> Any:
        if isinstance(data, list):
            return {rule.kind: rule for rule in _exit_rule_list.validate_python(data)}
        return data

    def rules(self) -> List[ExitRule]:
        return [self.fixed_target, self.stop_loss, self.trailing_stop, self.breakeven, self.time_stop]


# =============================================================================
# FITNESS CONFIGURATION
# =============================================================================

class FitnessWeights(_SettingsModel):
    profit_factor: float = Field(default=1.0, ge=0)
    win_rate: float = Field(default=1.0, ge=0)
    max_drawdown: float = Field(default=1.0, ge=0)
    net_profit: float = Field(default=1.0, ge=0)
    trade_count: float = Field(default=1.0, ge=0)

    @model_validator(mode="after")
    def check_total(self):
        if self.total <= 0:
            raise ValueError("At least one fitness weight must be positive")
        return self

    @property
    def total(self) -> float:
        return self.profit_factor + self.win_rate + self.max_drawdown + self.net_profit + self.trade_count


class Constraints(_SettingsModel):
    minimum_trades: int = Field(default=10, ge=1)
    minimum_win_rate: float = Field(default=0.45, ge=0, le=1)
    maximum_drawdown: float = Field(default=15.0, ge=0)


# =============================================================================
# PINNED SIGNALS
# =============================================================================

def _to_signal(value: Any) -> Signal:
    if isinstance(value, Signal):
        return value
    if isinstance(value, str):
        return Signal.parse(value)
    if isinstance(value, dict):
        return Signal(SignalNamespace(value["namespace"]), str(value["name"]))
    raise ValueError(f"Cannot interpret {value!r} as a signal")


class SelectedSignals(_SettingsModel):
    """User-pinned entry groups. When enabled, seeding and mutation keep these signals."""
    enabled: bool = False
    entry_mode: EntryMode = EntryMode.SIGNALS
    randomize_entry_mode: bool = False
    entry1: Tuple[Signal, ...] = ()
    entry2: Tuple[Signal, ...] = ()
    entry3: Tuple[Signal, ...] = ()

    @field_validator("entry_mode", mode="before")
    @classmethod
    def parse_mode(cls, v: Any) -> EntryMode:
        return EntryMode.parse(v)

    @field_validator("entry1", "entry2", "entry3", mode="before")
    @classmethod
    def parse_signals(cls, v: Any) -> Tuple[Signal, ...]:
        if v is None:
            return ()
        try:
            return tuple(_to_signal(item) for item in v)
        except (KeyError, ValueError, UnknownSignalError) as e:
            raise ValueError(str(e)) from e

    @model_validator(mode="after")
    def check_not_empty(self):
        if self.enabled and not (self.entry1 or self.entry2 or self.entry3):
            raise ValueError("Selected signals are enabled but no signals were selected")
        return self

    def groups(self) -> Tuple[Tuple[Signal, ...], Tuple[Signal, ...], Tuple[Signal, ...]]:
        return self.entry1, self.entry2, self.entry3


# =============================================================================
# OPTIMIZATION SETTINGS
# =============================================================================

class OptimizationSettings(_SettingsModel):
    """Complete configuration of one genetic optimization run."""

    population_size: int = Field(default=10, ge=2, le=100000)
    generations: int = Field(default=3, ge=0, le=100000)
    mutation_rate: float = Field(default=0.15, ge=0, le=1)
    crossover_rate: float = Field(default=1.0, ge=0, le=1)
    elitism_rate: float = Field(default=0.1, ge=0, le=1)
    in_sample_percentage: float = Field(default=0.7, gt=0, lt=1)
    early_stopping_generations: int = Field(default=0, ge=0)
    fitness_weights: FitnessWeights = Field(default_factory=FitnessWeights)
    constraints: Constraints = Field(default_factory=Constraints)
    exits: ExitRules
    selected_signals: SelectedSignals = Field(default_factory=SelectedSignals)
    tick_size: float = Field(default=1.0, gt=0)
    seed: Optional[int] = None
    debug: bool = False
    walk_forward_periods: int = Field(default=VALIDATION_CONFIG["walk_forward_periods"], ge=2)
    walk_forward_in_sample_ratio: float = Field(
        default=VALIDATION_CONFIG["walk_forward_in_sample_ratio"], gt=0, lt=1)
    monte_carlo_simulations: int = Field(default=VALIDATION_CONFIG["monte_carlo_simulations"], ge=1)

    @model_validator(mode="before")
    @classmethod
    def lift_selection_flags(cls, data: Any) -> Any:
        """The original client keeps useSelectedSignals/randomizeEntryMode at the top level."""
        if not isinstance(data, dict):
            return data
        if "useSelectedSignals" not in data and "randomizeEntryMode" not in data:
            return data
        data = dict(data)
        selected = data.get("selectedSignals", data.get("selected_signals"))
        selected = dict(selected) if isinstance(selected, dict) else {}
        if "useSelectedSignals" in data:
            selected["enabled"] = data.pop("useSelectedSignals")
        if "randomizeEntryMode" in data:
            selected["randomizeEntryMode"] = data.pop("randomizeEntryMode")
        data.pop("selected_signals", None)
        data["selectedSignals"] = selected
        return data

    @property
    def elite_count(self) -> int:
        return int(self.population_size * self.elitism_rate)

    @classmethod
    def default(cls) -> "OptimizationSettings":
        return parse_settings(DEFAULT_OPTIMIZATION_SETTINGS)

    # -------------------------------------------------------------------------
    # Typed update operations
    # -------------------------------------------------------------------------

    def _updated(self, **changes: Any) -> "OptimizationSettings":
        data = self.model_dump()
        data.update(changes)
        return parse_settings(data)

    def with_population_size(self, population_size: int) -> "OptimizationSettings":
        return self._updated(population_size=population_size)

    def with_generations(self, generations: int) -> "OptimizationSettings":
        return self._updated(generations=generations)

    def with_mutation_rate(self, mutation_rate: float) -> "OptimizationSettings":
        return self._updated(mutation_rate=mutation_rate)

    def with_elitism_rate(self, elitism_rate: float) -> "OptimizationSettings":
        return self._updated(elitism_rate=elitism_rate)

    def with_in_sample_percentage(self, in_sample_percentage: float) -> "OptimizationSettings":
        return self._updated(in_sample_percentage=in_sample_percentage)

    def with_seed(self, seed: Optional[int]) -> "OptimizationSettings":
        return self._updated(seed=seed)

    def with_fitness_weights(self, weights: FitnessWeights) -> "OptimizationSettings":
        return self._updated(fitness_weights=weights.model_dump())

    def with_constraints(self, constraints: Constraints) -> "OptimizationSettings":
        return self._updated(constraints=constraints.model_dump())

    def with_exit_rules(self, exits: ExitRules) -> "OptimizationSettings":
        return self._updated(exits=exits.model_dump())

    def with_selected_signals(self, selected: SelectedSignals) -> "OptimizationSettings":
        return self._updated(selected_signals=selected.model_dump())


def parse_settings(payload: Any) -> OptimizationSettings:
    """
    Validate a settings payload.

    Raises:
        InvalidSettingsError: missing exit-rule sub-objects or out-of-range values
    """
    if isinstance(payload, OptimizationSettings):
        return payload
    if not isinstance(payload, dict):
        raise InvalidSettingsError("Invalid optimization settings")
    try:
        return OptimizationSettings.model_validate(payload)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}"
            for err in e.errors()
        )
        raise InvalidSettingsError(f"Invalid optimization settings: {details}") from e
