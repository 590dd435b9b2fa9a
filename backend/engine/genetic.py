"""
GENETIC OPTIMIZER
=================
Evolves StrategyDefinitions using in-sample backtest fitness.

Seed -> Evolve (x generations) -> Done / Stopped

Every random draw goes through the optimizer's own random.Random, so a
run with a fixed seed over the same bars and settings is reproducible.
Each strategy is scored exactly once; elites are carried over as the
same Individual objects without re-evaluation.
"""
import math
import random
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

import pandas as pd

from config import SEED_PROGRESS_EVERY, TOP_STRATEGIES_LIMIT
from engine.backtest import run_backtest
from engine.fitness import fitness_components, score_fitness
from engine.signal_library import SignalContext, available_signals, ensure_registered
from logging_config import log
from models.errors import InvalidBarsError
from models.run_models import OptimizationOutcome, ProgressMessage, RunContext
from models.settings_models import OptimizationSettings
from models.strategy_models import (
    EntryGroups,
    EntryMode,
    Individual,
    Signal,
    SignalNamespace,
    StrategyDefinition,
)


def split_bars(bars: pd.DataFrame, ratio: float) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """In-sample = first floor(n * ratio) bars, out-of-sample = the rest."""
    cut = int(math.floor(len(bars) * ratio))
    return bars.iloc[:cut].reset_index(drop=True), bars.iloc[cut:].reset_index(drop=True)


def top_strategies(population: List[Individual], limit: int = TOP_STRATEGIES_LIMIT) -> List[Individual]:
    """Best individuals with positive fitness, highest first."""
    ranked = sorted(population, key=lambda ind: ind.fitness, reverse=True)
    return [ind for ind in ranked if ind.fitness > 0][:limit]


class GeneticOptimizer:
    """
    Genetic search over strategy definitions.

    The population is owned by this object for the length of a run and is
    never shared; callers only see Individuals through progress messages
    and the returned OptimizationOutcome.
    """

    def __init__(self, bars: pd.DataFrame, settings: OptimizationSettings, seed: Optional[int] = None):
        self.settings = settings
        self.rng = random.Random(settings.seed if seed is None else seed)

        self.in_sample, self.out_of_sample = split_bars(bars, settings.in_sample_percentage)
        if len(self.in_sample) == 0 or len(self.out_of_sample) == 0:
            raise InvalidBarsError(
                f"Not enough bars ({len(bars)}) for a {settings.in_sample_percentage:.0%} in-sample split"
            )
        # Indicator caches for the two fixed splits, reused by every evaluation
        self._in_sample_ctx = SignalContext(self.in_sample)
        self._out_of_sample_ctx = SignalContext(self.out_of_sample)

        self._signals_by_namespace: Dict[SignalNamespace, List[Signal]] = {}
        for signal in available_signals(searchable_only=True):
            self._signals_by_namespace.setdefault(signal.namespace, []).append(signal)
        self._namespaces = list(self._signals_by_namespace)

        selected = settings.selected_signals
        self.pinned_signals = selected.enabled
        self.pinned_mode = selected.enabled and not selected.randomize_entry_mode
        if self.pinned_signals:
            ensure_registered(s for group in selected.groups() for s in group)

        self.evaluations = 0

    # =========================================================================
    # RANDOM GENERATION
    # =========================================================================

    def random_signal(self) -> Signal:
        """Uniform namespace, then uniform signal within it."""
        namespace = self.rng.choice(self._namespaces)
        return self.rng.choice(self._signals_by_namespace[namespace])

    def random_mode(self) -> EntryMode:
        if self.rng.random() < 0.33:
            return EntryMode.SIGNALS
        return EntryMode.CONFIRMATIONS if self.rng.random() < 0.5 else EntryMode.SPLIT

    def _sample_ticks(self, rule) -> int:
        if not rule.enabled:
            return rule.default_ticks
        return self.rng.choice(rule.candidates())

    def random_strategy(self) -> StrategyDefinition:
        """A fresh strategy: pinned groups when configured, else 1-3 random signals."""
        selected = self.settings.selected_signals
        exits = self.settings.exits

        if self.pinned_signals:
            entry_groups = EntryGroups(*selected.groups())
        else:
            groups: List[List[Signal]] = [[], [], []]
            for _ in range(self.rng.randint(1, 3)):
                groups[self.rng.randrange(EntryGroups.NUM_GROUPS)].append(self.random_signal())
            entry_groups = EntryGroups(*(tuple(g) for g in groups))

        return StrategyDefinition(
            mode=selected.entry_mode if self.pinned_mode else self.random_mode(),
            entry_groups=entry_groups,
            profit_target_ticks=self._sample_ticks(exits.fixed_target),
            stop_loss_ticks=self._sample_ticks(exits.stop_loss),
            trailing_stop_ticks=self._sample_ticks(exits.trailing_stop) if exits.trailing_stop.enabled else 0,
            breakeven_ticks=exits.breakeven.trigger_ticks if exits.breakeven.enabled else None,
            time_limit_bars=exits.time_stop.time_limit_bars if exits.time_stop.enabled else None,
        )

    # =========================================================================
    # GENETIC OPERATORS
    # =========================================================================

    def _pick(self, a, b):
        return a if self.rng.random() < 0.5 else b

    def crossover(self, a: StrategyDefinition, b: StrategyDefinition) -> StrategyDefinition:
        """Each entry group wholesale from one parent; mode and each exit parameter independently."""
        groups = EntryGroups(*(self._pick(ga, gb) for ga, gb in zip(a.entry_groups, b.entry_groups)))
        return StrategyDefinition(
            mode=self._pick(a.mode, b.mode),
            entry_groups=groups,
            profit_target_ticks=self._pick(a.profit_target_ticks, b.profit_target_ticks),
            stop_loss_ticks=self._pick(a.stop_loss_ticks, b.stop_loss_ticks),
            trailing_stop_ticks=self._pick(a.trailing_stop_ticks, b.trailing_stop_ticks),
            breakeven_ticks=self._pick(a.breakeven_ticks, b.breakeven_ticks),
            time_limit_bars=self._pick(a.time_limit_bars, b.time_limit_bars),
        )

    def _nudge(self, rule, ticks: int) -> int:
        delta = rule.step if self.rng.random() < 0.5 else -rule.step
        return rule.clamp(ticks + delta)

    def mutate(self, strategy: StrategyDefinition) -> StrategyDefinition:
        """
        Mode reroll, per-group single add/remove and exit nudges, each
        drawn with probability mutation_rate. Pinned parts are left alone.
        """
        rate = self.settings.mutation_rate
        exits = self.settings.exits
        changes = {}

        if not self.pinned_mode and self.rng.random() < rate:
            changes['mode'] = self.rng.choice(list(EntryMode))

        if not self.pinned_signals and self.rng.random() < rate:
            groups = strategy.entry_groups
            for number in range(1, EntryGroups.NUM_GROUPS + 1):
                signals = list(groups.group(number))
                if self.rng.random() < 0.5:
                    signals.append(self.random_signal())
                elif signals:
                    del signals[self.rng.randrange(len(signals))]
                groups = groups.with_group(number, tuple(signals))
            changes['entry_groups'] = groups

        if self.rng.random() < rate and exits.fixed_target.enabled:
            changes['profit_target_ticks'] = self._nudge(exits.fixed_target, strategy.profit_target_ticks)
        if self.rng.random() < rate and exits.stop_loss.enabled:
            changes['stop_loss_ticks'] = self._nudge(exits.stop_loss, strategy.stop_loss_ticks)
        if self.rng.random() < rate and exits.trailing_stop.enabled:
            changes['trailing_stop_ticks'] = self._nudge(exits.trailing_stop, strategy.trailing_stop_ticks)

        return replace(strategy, **changes) if changes else strategy

    # =========================================================================
    # EVALUATION
    # =========================================================================

    def evaluate(self, strategy: StrategyDefinition, is_initializing: bool, generation: int = 0) -> Individual:
        """Backtest in-sample and out-of-sample; fitness comes from in-sample only."""
        tick_size = self.settings.tick_size
        in_sample = run_backtest(self.in_sample, strategy, tick_size, self._in_sample_ctx)
        out_of_sample = run_backtest(self.out_of_sample, strategy, tick_size, self._out_of_sample_ctx)
        fitness = score_fitness(in_sample, self.settings.fitness_weights,
                                self.settings.constraints, is_initializing)
        self.evaluations += 1

        if self.settings.debug:
            log(f"[GA] gen {generation} fitness {fitness:.4f} trades {in_sample.total_trades} "
                f"{strategy.describe()}", level='DEBUG')

        return Individual(
            combination=strategy,
            fitness=fitness,
            in_sample_result=in_sample,
            out_of_sample_result=out_of_sample,
            generation=generation,
            components=fitness_components(in_sample, self.settings.constraints),
        )

    def _progress(self, context: RunContext, generation: int, best: Individual,
                  population: List[Individual], is_initializing: bool) -> None:
        context.emit(ProgressMessage(
            generation=generation,
            total_generations=self.settings.generations,
            best_fitness=best.fitness,
            is_initializing=is_initializing,
            top_strategies=top_strategies(population),
        ))

    # =========================================================================
    # EVOLUTION
    # =========================================================================

    def seed_population(self, context: RunContext) -> List[Individual]:
        """
        Score populationSize random strategies without constraint penalties.

        Returns early (with a partial population) when the run is cancelled.
        """
        size = self.settings.population_size
        population: List[Individual] = []
        best: Optional[Individual] = None

        for k in range(size):
            individual = self.evaluate(self.random_strategy(), is_initializing=True)
            population.append(individual)
            if best is None or individual.fitness > best.fitness:
                best = individual

            if (k + 1) % SEED_PROGRESS_EVERY == 0 or k + 1 == size:
                self._progress(context, 0, best, population, is_initializing=True)
            if context.cancelled:
                break

        return population

    def next_generation(self, population: List[Individual], generation: int) -> List[Individual]:
        """Elites first, then offspring from parents drawn uniformly from the whole population."""
        ranked = sorted(population, key=lambda ind: ind.fitness, reverse=True)
        size = self.settings.population_size
        next_population = ranked[:self.settings.elite_count]

        while len(next_population) < size:
            parent1 = self.rng.choice(ranked)
            parent2 = self.rng.choice(ranked)
            if self.rng.random() < self.settings.crossover_rate:
                child = self.crossover(parent1.combination, parent2.combination)
            else:
                child = parent1.combination
            if self.rng.random() < self.settings.mutation_rate:
                child = self.mutate(child)
            next_population.append(self.evaluate(child, is_initializing=False, generation=generation))

        return next_population

    def run(self, context: RunContext) -> OptimizationOutcome:
        """Seed, then evolve for the configured number of generations."""
        settings = self.settings
        log(f"[GA] Starting: population={settings.population_size} generations={settings.generations} "
            f"in-sample={len(self.in_sample)} out-of-sample={len(self.out_of_sample)} bars")

        population = self.seed_population(context)
        best = max(population, key=lambda ind: ind.fitness)
        if context.cancelled:
            log("[GA] Stopped during seeding")
            return OptimizationOutcome(best=best, generations_completed=0, stopped=True)

        stagnant = 0
        completed = 0
        for generation in range(1, settings.generations + 1):
            population = self.next_generation(population, generation)
            completed = generation

            generation_best = max(population, key=lambda ind: ind.fitness)
            if generation_best.fitness > best.fitness:
                best = generation_best
                stagnant = 0
            else:
                stagnant += 1

            log(f"[GA] Generation {generation}/{settings.generations}: best fitness {best.fitness:.4f}",
                level='DEBUG')
            self._progress(context, generation, best, population, is_initializing=False)

            if context.cancelled:
                log(f"[GA] Stopped after generation {generation}")
                return OptimizationOutcome(best=best, generations_completed=completed, stopped=True)

            limit = settings.early_stopping_generations
            if limit and stagnant >= limit:
                log(f"[GA] Early stop: no improvement for {stagnant} generations")
                return OptimizationOutcome(best=best, generations_completed=completed, early_stopped=True)

        log(f"[GA] Finished: best fitness {best.fitness:.4f} after {self.evaluations} evaluations")
        return OptimizationOutcome(best=best, generations_completed=completed)
