"""
SERVICES PACKAGE
================
Run orchestration and WebSocket fan-out for the Genetic Strategy Finder.
"""
from .websocket_manager import (
    ws_manager,
    WebSocketManager,
    serialize_for_json,
    broadcast_run_status,
    broadcast_run_progress,
)
from .optimization_runner import OptimizationRun

__all__ = [
    # WebSocket
    'ws_manager',
    'WebSocketManager',
    'serialize_for_json',
    'broadcast_run_status',
    'broadcast_run_progress',
    # Runs
    'OptimizationRun',
]
