"""
STATE MANAGEMENT MODULE
=======================
Thread-safe registry of optimization runs.

Holds only status snapshots for the HTTP surface. The cancellation token
and the population of a run belong to the run itself (see RunContext),
never to this module.
"""
import copy
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from config import MAX_CONCURRENT_RUNS, MAX_RUN_HISTORY


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class AppState:
    """
    Centralized application state with thread-safe access.
    Run threads update their own snapshot; routes read copies.
    """
    _lock: threading.RLock = field(default_factory=threading.RLock)
    max_concurrent_runs: int = MAX_CONCURRENT_RUNS

    active_runs: Dict[str, Dict] = field(default_factory=dict)
    run_history: List[Dict] = field(default_factory=list)

    # =========================================================================
    # RUN REGISTRY
    # =========================================================================

    def try_register_run(self, run_id: str, **snapshot) -> bool:
        """Add a run unless the concurrency cap is reached. Returns False when full."""
        with self._lock:
            if len(self.active_runs) >= self.max_concurrent_runs:
                return False
            self.active_runs[run_id] = {
                "run_id": run_id,
                "status": "running",
                "started_at": _now(),
                "generation": 0,
                "best_fitness": 0.0,
                **snapshot,
            }
            return True

    def update_run(self, run_id: str, **kwargs) -> None:
        with self._lock:
            if run_id in self.active_runs:
                self.active_runs[run_id].update(kwargs)

    def finish_run(self, run_id: str, status: str, **kwargs) -> None:
        """Move a run from active to history with its terminal status."""
        with self._lock:
            entry = self.active_runs.pop(run_id, None)
            if entry is None:
                return
            entry.update(kwargs, status=status, finished_at=_now())
            self.run_history.append(entry)
            if len(self.run_history) > MAX_RUN_HISTORY:
                self.run_history = self.run_history[-MAX_RUN_HISTORY:]

    def get_run(self, run_id: str) -> Optional[Dict]:
        with self._lock:
            run = self.active_runs.get(run_id)
            return copy.deepcopy(run) if run else None

    def get_active_runs(self) -> List[Dict]:
        with self._lock:
            return copy.deepcopy(list(self.active_runs.values()))

    def get_history(self) -> List[Dict]:
        with self._lock:
            return copy.deepcopy(self.run_history)

    def get_running_count(self) -> int:
        with self._lock:
            return len(self.active_runs)

    def reset(self) -> None:
        """Forget all runs (used on shutdown and by tests)."""
        with self._lock:
            self.active_runs.clear()
            self.run_history.clear()

    def get_full_state(self) -> Dict:
        with self._lock:
            return {
                "active": copy.deepcopy(list(self.active_runs.values())),
                "history": copy.deepcopy(self.run_history),
                "max_concurrent_runs": self.max_concurrent_runs,
            }


# =============================================================================
# SINGLETON INSTANCE
# =============================================================================

app_state = AppState()
