"""
Tests for NinjaScript export.
"""
import pytest

from models.errors import InvalidStrategyError
from models.strategy_models import EntryGroups, EntryMode, Signal, SignalNamespace, StrategyDefinition
from ninjascript_generator import NinjaScriptGenerator, sanitize_class_name

STRATEGY = StrategyDefinition(
    mode=EntryMode.SPLIT,
    entry_groups=EntryGroups(
        entry1=(Signal(SignalNamespace.CANDLESTICK, 'Hammer'), Signal(SignalNamespace.OSCILLATOR, 'RSIBelow30')),
        entry2=(Signal(SignalNamespace.CANDLESTICK, 'ShootingStar'),),
    ),
    profit_target_ticks=12,
    stop_loss_ticks=8,
    trailing_stop_ticks=4,
    breakeven_ticks=6,
)


class TestGenerate:

    def test_parameters_and_signals(self):
        script = NinjaScriptGenerator().generate(STRATEGY, strategy_name="Split Test", trade_direction="Short")
        assert "public class SplitTest : Strategy" in script
        assert "ProfitTargetTicks { get; set; } = 12;" in script
        assert "StopLossTicks { get; set; } = 8;" in script
        assert "BreakevenTicks { get; set; } = 6;" in script
        assert "TimeLimitBars { get; set; } = 0;" in script
        assert "EntryMode.Split;" in script
        assert "TradeDirection.Short;" in script
        assert '"CandlestickPatterns.Hammer",' in script
        assert '"OscillatorSignals.RSIBelow30",' in script
        assert '"CandlestickPatterns.ShootingStar",' in script
        assert "SetTrailStop(CalculationMode.Ticks, TrailingStopTicks);" in script

    def test_trailing_disabled(self):
        strategy = StrategyDefinition(EntryMode.SIGNALS, EntryGroups(), 10, 10)
        script = NinjaScriptGenerator().generate(strategy)
        assert "// Trailing stop disabled" in script
        assert "public class GeneticStrategy : Strategy" in script

    def test_metrics_header(self):
        script = NinjaScriptGenerator().generate(STRATEGY, metrics={"totalTrades": 42, "winRate": 0.55})
        assert "Trades: 42" in script
        assert "Net Profit: N/A" in script

    def test_braces_balanced(self):
        script = NinjaScriptGenerator().generate(STRATEGY)
        assert script.count("{") == script.count("}")

    def test_invalid_direction(self):
        with pytest.raises(InvalidStrategyError):
            NinjaScriptGenerator().generate(STRATEGY, trade_direction="Up")


class TestClassName:

    @pytest.mark.parametrize("name,expected", [
        ("Genetic Strategy 1", "GeneticStrategy1"),
        ("1st", "S1st"),
        ("!!!", "GeneticStrategy"),
        ("", "GeneticStrategy"),
        ("my_strategy", "my_strategy"),
    ])
    def test_sanitize(self, name, expected):
        assert sanitize_class_name(name) == expected
