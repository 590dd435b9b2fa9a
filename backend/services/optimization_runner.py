"""
OPTIMIZATION RUNNER
===================
Runs Seed -> Evolve -> Validate on a background thread.

Every run emits exactly one terminal message (complete, stopped or
error). Progress messages are best-effort and may be dropped by the
throttle, but never after the terminal message.
"""
import threading
import time
import traceback
from typing import Any, Callable, Optional

import pandas as pd

from config import WEBSOCKET_CONFIG
from engine.genetic import GeneticOptimizer
from engine.validation import validate_individual
from logging_config import log
from models.bars import bars_from_records, validate_bars
from models.errors import InputError
from models.run_models import (
    CompleteMessage,
    ErrorMessage,
    ProgressMessage,
    RunContext,
    StoppedMessage,
    TERMINAL_TYPES,
)
from models.settings_models import parse_settings
from services.websocket_manager import broadcast_run_progress, broadcast_run_status
from state import app_state


class OptimizationRun:
    """
    One cancellable optimization run.

    Args:
        bars: Bar records (list of dicts) or a bar DataFrame
        settings: Settings payload (dict) or OptimizationSettings
        emit: Callback receiving run protocol messages, called from the run thread
        run_id: Optional identifier (generated when omitted)
    """

    def __init__(self, bars: Any, settings: Any, emit: Callable[[Any], None],
                 run_id: Optional[str] = None):
        self._bars_payload = bars
        self._settings_payload = settings
        self._sink = emit
        self.context = RunContext(emit=self._emit)
        if run_id is not None:
            self.context.run_id = run_id
        self.terminal_message = None
        self._emit_lock = threading.Lock()
        self._last_progress = 0.0
        self._thread: Optional[threading.Thread] = None

    @property
    def run_id(self) -> str:
        return self.context.run_id

    # =========================================================================
    # MESSAGE HANDLING
    # =========================================================================

    def _emit(self, message) -> None:
        with self._emit_lock:
            if self.terminal_message is not None:
                return
            if message.type in TERMINAL_TYPES:
                self.terminal_message = message
            elif isinstance(message, ProgressMessage):
                throttle = WEBSOCKET_CONFIG["progress_throttle"]
                now = time.monotonic()
                if throttle and now - self._last_progress < throttle:
                    return
                self._last_progress = now
                app_state.update_run(self.run_id, generation=message.generation,
                                     best_fitness=message.best_fitness,
                                     is_initializing=message.is_initializing)
                broadcast_run_progress(self.run_id, message.generation, message.best_fitness)
        self._sink(message)

    # =========================================================================
    # EXECUTION
    # =========================================================================

    def _load_bars(self) -> pd.DataFrame:
        if isinstance(self._bars_payload, pd.DataFrame):
            return validate_bars(self._bars_payload)
        return bars_from_records(self._bars_payload)

    def execute(self) -> None:
        """Run to completion on the calling thread. Emits exactly one terminal message."""
        status = "error"
        try:
            try:
                settings = parse_settings(self._settings_payload)
                bars = self._load_bars()
                optimizer = GeneticOptimizer(bars, settings)
            except InputError as e:
                log(f"[Run] {self.run_id} rejected: {e}", level='WARNING')
                self.context.emit(ErrorMessage(message=str(e)))
                return

            log(f"[Run] {self.run_id} started on {len(bars)} bars")
            outcome = optimizer.run(self.context)

            if outcome.stopped or self.context.cancelled:
                status = "stopped"
                self.context.emit(StoppedMessage())
                return

            walk_forward, monte_carlo = validate_individual(bars, outcome.best, settings)
            if self.context.cancelled:
                status = "stopped"
                self.context.emit(StoppedMessage())
                return

            status = "complete"
            app_state.update_run(self.run_id, best_fitness=outcome.best.fitness)
            self.context.emit(CompleteMessage(
                best_individual=outcome.best,
                walk_forward_report=walk_forward,
                monte_carlo_report=monte_carlo,
            ))
            log(f"[Run] {self.run_id} complete: fitness {outcome.best.fitness:.4f}, "
                f"{outcome.generations_completed} generations")
        except Exception as e:
            log(f"[Run] {self.run_id} failed: {e}\n{traceback.format_exc()}", level='ERROR')
            self.context.emit(ErrorMessage(message=f"Optimization failed: {e}"))
        finally:
            app_state.finish_run(self.run_id, status)
            broadcast_run_status({"runId": self.run_id, "status": status})

    def start(self) -> bool:
        """
        Register the run and start its background thread.

        Returns False (and emits an error message) when the concurrency cap is reached.
        """
        if not app_state.try_register_run(self.run_id):
            self.context.emit(ErrorMessage(message="Too many concurrent optimization runs"))
            return False
        broadcast_run_status({"runId": self.run_id, "status": "running"})
        self._thread = threading.Thread(target=self.execute, name=f"optimize-{self.run_id}", daemon=True)
        self._thread.start()
        return True

    def cancel(self) -> None:
        log(f"[Run] {self.run_id} stop requested")
        self.context.cancel()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
