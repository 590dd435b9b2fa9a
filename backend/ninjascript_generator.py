"""
NinjaScript Generator - Outputs a NinjaTrader 8 strategy for a discovered signal combination
"""
import re
from datetime import datetime
from typing import Dict, Optional

from models.errors import InvalidStrategyError
from models.strategy_models import EntryGroups, StrategyDefinition

TRADE_DIRECTIONS = ("Long", "Short", "Both")


def sanitize_class_name(name: str) -> str:
    """Turn a display name into a valid C# class identifier."""
    cleaned = re.sub(r"[^0-9A-Za-z_]", "", name or "")
    if not cleaned:
        cleaned = "GeneticStrategy"
    if cleaned[0].isdigit():
        cleaned = f"S{cleaned}"
    return cleaned


class NinjaScriptGenerator:
    """Generates NinjaScript (C#) code from a StrategyDefinition"""

    def _signal_list(self, strategy: StrategyDefinition, number: int) -> str:
        keys = [s.key for s in strategy.entry_groups.group(number)]
        if not keys:
            return ""
        return "\n".join(f'            "{key}",' for key in keys)

    def _metrics_header(self, metrics: Optional[Dict]) -> str:
        if not metrics:
            return ""
        return f"""
// In-sample results:
//   - Trades: {metrics.get('totalTrades', 'N/A')}
//   - Win Rate: {metrics.get('winRate', 'N/A')}
//   - Net Profit: {metrics.get('netProfit', 'N/A')}
//   - Profit Factor: {metrics.get('profitFactor', 'N/A')}"""

    def generate(self, strategy: StrategyDefinition, strategy_name: str = "GeneticStrategy",
                 trade_direction: str = "Both", metrics: Optional[Dict] = None) -> str:
        """
        Generate a NinjaScript strategy.

        Args:
            strategy: Strategy to export (only its public fields are read)
            strategy_name: Class and display name
            trade_direction: 'Long', 'Short' or 'Both'
            metrics: Optional result summary written into the header comment

        Returns:
            Complete NinjaScript source as a string
        """
        if trade_direction not in TRADE_DIRECTIONS:
            raise InvalidStrategyError(
                f"Invalid trade direction '{trade_direction}'. Must be one of: {', '.join(TRADE_DIRECTIONS)}"
            )

        class_name = sanitize_class_name(strategy_name)
        generation_date = datetime.now().strftime("%Y-%m-%d %H:%M")
        entry_lists = {n: self._signal_list(strategy, n) for n in range(1, EntryGroups.NUM_GROUPS + 1)}

        trail_setup = (f"                SetTrailStop(CalculationMode.Ticks, TrailingStopTicks);"
                       if strategy.trailing_stop_ticks > 0
                       else "                // Trailing stop disabled")
        breakeven_ticks = strategy.breakeven_ticks or 0
        time_limit = strategy.time_limit_bars or 0

        script = f'''// Generated by Genetic Strategy Finder
// Generated: {generation_date}
//
// Entry mode: {strategy.mode.value}
// Profit target: {strategy.profit_target_ticks} ticks, stop loss: {strategy.stop_loss_ticks} ticks,
// trailing stop: {strategy.trailing_stop_ticks} ticks{self._metrics_header(metrics)}
//
// Requires the SignalLibrary add-on for NinjaScript.SignalLibrary.GetSignal().
using System;
using System.Collections.Generic;
using System.ComponentModel;
using System.ComponentModel.DataAnnotations;
using NinjaTrader.Cbi;
using NinjaTrader.Data;
using NinjaTrader.NinjaScript;
using NinjaTrader.NinjaScript.Indicators;
using NinjaTrader.NinjaScript.Strategies.SignalLibrary;

namespace NinjaTrader.NinjaScript.Strategies
{{
    public class {class_name} : Strategy
    {{
        public enum EntryMode {{ Signals, Confirmations, Split }}
        public enum TradeDirection {{ Long, Short, Both }}

        [NinjaScriptProperty]
        [Display(Name = "Profit Target Ticks", Order = 1, GroupName = "Parameters")]
        public int ProfitTargetTicks {{ get; set; }} = {strategy.profit_target_ticks};

        [NinjaScriptProperty]
        [Display(Name = "Stop Loss Ticks", Order = 2, GroupName = "Parameters")]
        public int StopLossTicks {{ get; set; }} = {strategy.stop_loss_ticks};

        [NinjaScriptProperty]
        [Display(Name = "Trailing Stop Ticks", Order = 3, GroupName = "Parameters")]
        public int TrailingStopTicks {{ get; set; }} = {strategy.trailing_stop_ticks};

        [NinjaScriptProperty]
        [Display(Name = "Breakeven Ticks (0 = off)", Order = 4, GroupName = "Parameters")]
        public int BreakevenTicks {{ get; set; }} = {breakeven_ticks};

        [NinjaScriptProperty]
        [Display(Name = "Time Limit Bars (0 = off)", Order = 5, GroupName = "Parameters")]
        public int TimeLimitBars {{ get; set; }} = {time_limit};

        [NinjaScriptProperty]
        [Display(Name = "Entry Mode", Order = 6, GroupName = "Parameters")]
        public EntryMode EntryModeProperty {{ get; set; }} = EntryMode.{strategy.mode.value};

        [NinjaScriptProperty]
        [Display(Name = "Trade Direction", Order = 7, GroupName = "Parameters")]
        public TradeDirection TradeDirectionStrategy {{ get; set; }} = TradeDirection.{trade_direction};

        // Signals discovered by the genetic search
        private readonly List<string> entry1Signals = new List<string>()
        {{
{entry_lists[1]}
        }};

        private readonly List<string> entry2Signals = new List<string>()
        {{
{entry_lists[2]}
        }};

        private readonly List<string> entry3Signals = new List<string>()
        {{
{entry_lists[3]}
        }};

        private int entryBar = -1;
        private bool atBreakeven = false;

        protected override void OnStateChange()
        {{
            if (State == State.SetDefaults)
            {{
                Name = "{class_name}";
                Calculate = Calculate.OnBarClose;
                EntriesPerDirection = 1;
                EntryHandling = EntryHandling.AllEntries;
                IsExitOnSessionCloseStrategy = true;
                BarsRequiredToTrade = 20;
            }}
            else if (State == State.Configure)
            {{
                if (ProfitTargetTicks > 0)
                    SetProfitTarget(CalculationMode.Ticks, ProfitTargetTicks);
                if (StopLossTicks > 0)
                    SetStopLoss(CalculationMode.Ticks, StopLossTicks);
{trail_setup}
            }}
        }}

        protected override void OnBarUpdate()
        {{
            if (CurrentBar < BarsRequiredToTrade)
                return;

            if (Position.MarketPosition != MarketPosition.Flat)
            {{
                ManagePosition();
                return;
            }}

            // Restore the tick-based stop after a breakeven exit
            if (atBreakeven && StopLossTicks > 0)
                SetStopLoss(CalculationMode.Ticks, StopLossTicks);
            atBreakeven = false;

            // Direction follows bar-to-bar momentum of the close
            int momentum = Close[0] > Close[1] ? 1 : (Close[0] < Close[1] ? -1 : 0);

            bool fired1 = AnyFired(entry1Signals);
            bool fired2 = AnyFired(entry2Signals);
            bool fired3 = AnyFired(entry3Signals);
            int direction = 0;

            switch (EntryModeProperty)
            {{
                case EntryMode.Signals:
                    if (fired1 || fired2 || fired3)
                        direction = momentum;
                    break;

                case EntryMode.Confirmations:
                    bool active = entry1Signals.Count > 0 || entry2Signals.Count > 0 || entry3Signals.Count > 0;
                    bool allConfirm = (entry1Signals.Count == 0 || fired1)
                        && (entry2Signals.Count == 0 || fired2)
                        && (entry3Signals.Count == 0 || fired3);
                    if (active && allConfirm)
                        direction = momentum;
                    break;

                case EntryMode.Split:
                    if (fired1 && momentum > 0)
                        direction = 1;
                    else if (fired2 && momentum < 0)
                        direction = -1;
                    break;
            }}

            bool allowLong = TradeDirectionStrategy != TradeDirection.Short;
            bool allowShort = TradeDirectionStrategy != TradeDirection.Long;

            if (direction > 0 && allowLong)
            {{
                EnterLong("GeneticLong");
                entryBar = CurrentBar;
                atBreakeven = false;
            }}
            else if (direction < 0 && allowShort)
            {{
                EnterShort("GeneticShort");
                entryBar = CurrentBar;
                atBreakeven = false;
            }}
        }}

        private void ManagePosition()
        {{
            if (BreakevenTicks > 0 && !atBreakeven)
            {{
                double entry = Position.AveragePrice;
                double favourable = Position.MarketPosition == MarketPosition.Long
                    ? High[0] - entry
                    : entry - Low[0];
                if (favourable >= BreakevenTicks * TickSize)
                {{
                    SetStopLoss(CalculationMode.Price, entry);
                    atBreakeven = true;
                }}
            }}

            if (TimeLimitBars > 0 && entryBar >= 0 && CurrentBar - entryBar >= TimeLimitBars)
            {{
                if (Position.MarketPosition == MarketPosition.Long)
                    ExitLong();
                else
                    ExitShort();
            }}
        }}

        private bool AnyFired(List<string> signalKeys)
        {{
            foreach (var sigKey in signalKeys)
            {{
                var parts = sigKey.Split('.');
                if (parts.Length != 2)
                    continue;
                var signal = SignalLibrary.GetSignal(parts[0], parts[1]);
                if (signal != null && signal.Evaluate(this).SignalFound)
                    return true;
            }}
            return false;
        }}
    }}
}}
'''
        return script
