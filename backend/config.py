"""
CONFIGURATION MODULE
====================
All configuration constants for the Genetic Strategy Finder.
Values that differ between deployments can be overridden via environment variables.
"""
import os
import psutil

# =============================================================================
# SYSTEM RESOURCES
# =============================================================================

CPU_CORES = os.cpu_count() or 4
MEMORY_TOTAL_GB = psutil.virtual_memory().total / (1024**3)

# =============================================================================
# RUN LIMITS
# =============================================================================

# Each run owns one background computation thread
MAX_CONCURRENT_RUNS = int(os.getenv("MAX_CONCURRENT_RUNS", str(max(1, CPU_CORES // 2))))

# Progress messages carry at most this many ranked strategies
TOP_STRATEGIES_LIMIT = 10

# During seeding, progress is emitted every N individuals
SEED_PROGRESS_EVERY = int(os.getenv("SEED_PROGRESS_EVERY", "5"))

# Finished runs kept for /api/runs
MAX_RUN_HISTORY = int(os.getenv("MAX_RUN_HISTORY", "20"))

# =============================================================================
# OPTIMIZATION DEFAULTS
# =============================================================================
# Camel-case keys match the wire format of the run protocol.

DEFAULT_OPTIMIZATION_SETTINGS = {
    "populationSize": 10,
    "generations": 3,
    "mutationRate": 0.15,
    "crossoverRate": 1.0,
    "elitismRate": 0.1,
    "inSamplePercentage": 0.7,
    "earlyStoppingGenerations": 0,
    "tickSize": 1.0,
    "fitnessWeights": {
        "profitFactor": 1.0,
        "winRate": 1.0,
        "maxDrawdown": 1.0,
        "netProfit": 1.0,
        "tradeCount": 1.0,
    },
    "constraints": {
        "minimumTrades": 10,
        "minimumWinRate": 0.45,
        "maximumDrawdown": 15.0,
    },
    "exits": {
        "fixedTarget": {"enabled": True, "params": {"profitTargetMin": 10, "profitTargetMax": 50, "profitTargetStep": 5}},
        "stopLoss": {"enabled": True, "params": {"stopLossMin": 10, "stopLossMax": 50, "stopLossStep": 5}},
        "trailingStop": {"enabled": False, "params": {"trailingMin": 5, "trailingMax": 25, "trailingStep": 2}},
        "breakeven": {"enabled": False, "params": {"breakevenTicks": 10}},
        "timeStop": {"enabled": False, "params": {"timeLimit": 60}},
    },
}

# Tick distance used for a fixed target / stop loss when its rule is disabled
DEFAULT_EXIT_TICKS = 20

# =============================================================================
# VALIDATION CONFIGURATION
# =============================================================================

VALIDATION_CONFIG = {
    "walk_forward_periods": int(os.getenv("WALK_FORWARD_PERIODS", "4")),
    "walk_forward_in_sample_ratio": float(os.getenv("WALK_FORWARD_IN_SAMPLE_RATIO", "0.7")),
    "monte_carlo_simulations": int(os.getenv("MONTE_CARLO_SIMULATIONS", "1000")),
    # In-sample net profit at or below this makes the robustness ratio undefined
    "robustness_min_denominator": 1e-9,
}

# =============================================================================
# WEBSOCKET CONFIGURATION
# =============================================================================

WEBSOCKET_CONFIG = {
    "keepalive_interval": 30.0,  # Seconds of silence before a status socket is pinged
    "progress_throttle": float(os.getenv("PROGRESS_THROTTLE", "0")),  # Min seconds between progress messages
}

# =============================================================================
# SERVER CONFIGURATION
# =============================================================================

SERVER_HOST = os.getenv("HOST", "0.0.0.0")
SERVER_PORT = int(os.getenv("PORT", "8000"))
