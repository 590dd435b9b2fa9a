"""
RUN MODELS
==========
Run-scoped context and the messages of the run protocol.

A RunContext is created by whoever starts a run and passed explicitly
through the optimizer. It carries the cancellation token and the callback
that hands messages back to the caller. Nothing about a run lives in
module-level state.
"""
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, List, Optional

from models.strategy_models import Individual


@dataclass
class ProgressMessage:
    type: ClassVar[str] = "progress"
    generation: int
    total_generations: int
    best_fitness: float
    is_initializing: bool
    top_strategies: List[Individual] = field(default_factory=list)


@dataclass
class CompleteMessage:
    type: ClassVar[str] = "complete"
    best_individual: Individual
    walk_forward_report: Any
    monte_carlo_report: Any


@dataclass
class ErrorMessage:
    type: ClassVar[str] = "error"
    message: str


@dataclass
class StoppedMessage:
    type: ClassVar[str] = "stopped"


TERMINAL_TYPES = {CompleteMessage.type, ErrorMessage.type, StoppedMessage.type}


def _discard(message) -> None:
    pass


@dataclass
class RunContext:
    """Cancellation token plus message sink for one run."""
    emit: Callable[[Any], None] = _discard
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        """Request a stop. Observed at the next yield point."""
        self.cancel_event.set()


@dataclass
class OptimizationOutcome:
    """What the optimizer hands back when its loop ends."""
    best: Optional[Individual]
    generations_completed: int
    stopped: bool = False
    early_stopped: bool = False
