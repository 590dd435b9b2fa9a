"""
WEBSOCKET MANAGER
=================
Tracks WebSocket connections and sends JSON-safe messages to them.
"""
import asyncio
import math
import time
from datetime import datetime, date
from enum import Enum
from typing import Any, Dict, Optional, Set

import numpy as np
from fastapi import WebSocket

from logging_config import log


def serialize_for_json(data: Any) -> Any:
    """
    Recursively serialize data for JSON.

    Datetimes become ISO strings, infinite floats become "Infinity" /
    "-Infinity", NaN becomes null and numpy scalars become Python numbers.
    """
    if isinstance(data, dict):
        return {k: serialize_for_json(v) for k, v in data.items()}
    elif isinstance(data, (list, tuple)):
        return [serialize_for_json(item) for item in data]
    elif isinstance(data, (datetime, date)):
        return data.isoformat()
    elif isinstance(data, Enum):
        return data.value
    elif isinstance(data, np.generic):
        return serialize_for_json(data.item())
    elif isinstance(data, float):
        if math.isinf(data):
            return "Infinity" if data > 0 else "-Infinity"
        if math.isnan(data):
            return None
    return data


class WebSocketManager:
    """
    Registry of status subscribers.

    Run sockets (/ws/optimize) are accepted here too but never subscribed,
    so registry broadcasts do not interleave with a run's own messages.
    Run threads publish through broadcast_sync(), which hops onto the
    event loop handed over at startup.
    """

    def __init__(self, throttle_interval: float = 1.0):
        self.active_connections: Set[WebSocket] = set()
        self._lock = asyncio.Lock()
        self._main_loop: Optional[asyncio.AbstractEventLoop] = None
        # message type -> monotonic time of its last broadcast
        self._throttled: Dict[str, float] = {"run_progress": float("-inf")}
        self._throttle_interval = throttle_interval

    def set_main_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._main_loop = loop
        log("[WebSocket] Main event loop registered")

    async def connect(self, websocket: WebSocket, subscribe: bool = True) -> None:
        await websocket.accept()
        if subscribe:
            async with self._lock:
                self.active_connections.add(websocket)
            log(f"[WebSocket] Status client connected ({self.client_count} subscribed)")
        else:
            log("[WebSocket] Run client connected")

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self.active_connections.discard(websocket)
        log(f"[WebSocket] Client disconnected ({self.client_count} subscribed)")

    async def send_to_client(self, websocket: WebSocket, message: Dict) -> bool:
        """Send one message; returns False when the socket refused it."""
        try:
            await websocket.send_json(serialize_for_json(message))
        except Exception as e:
            log(f"[WebSocket] Send failed: {e}", level='WARNING')
            return False
        return True

    def _throttled_out(self, message_type: str) -> bool:
        last = self._throttled.get(message_type)
        if last is None:
            return False
        now = time.monotonic()
        if now - last < self._throttle_interval:
            return True
        self._throttled[message_type] = now
        return False

    async def broadcast(self, message_type: str, data: Dict) -> None:
        """Send to every subscriber, dropping any that fail."""
        if not self.active_connections or self._throttled_out(message_type):
            return

        payload = serialize_for_json({"type": message_type, **data})
        async with self._lock:
            targets = list(self.active_connections)

        stale = []
        for websocket in targets:
            try:
                await websocket.send_json(payload)
            except Exception as e:
                log(f"[WebSocket] Dropping subscriber during {message_type}: {str(e) or type(e).__name__}",
                    level='DEBUG')
                stale.append(websocket)

        if stale:
            async with self._lock:
                self.active_connections.difference_update(stale)

    def broadcast_sync(self, message_type: str, data: Dict) -> None:
        """Schedule broadcast() on the main loop from any thread without waiting."""
        if not self.active_connections:
            return
        loop = self._main_loop
        if loop is None or not loop.is_running():
            log(f"[WebSocket] No main loop available for {message_type}", level='WARNING')
            return
        asyncio.run_coroutine_threadsafe(self.broadcast(message_type, data), loop)

    @property
    def client_count(self) -> int:
        return len(self.active_connections)


ws_manager = WebSocketManager()


# =============================================================================
# REGISTRY NOTIFICATIONS
# =============================================================================

def broadcast_run_status(snapshot: Dict) -> None:
    """A run started or finished."""
    ws_manager.broadcast_sync("run_status", {"run": snapshot})


def broadcast_run_progress(run_id: str, generation: int, best_fitness: float) -> None:
    ws_manager.broadcast_sync("run_progress", {
        "runId": run_id, "generation": generation, "bestFitness": best_fitness,
    })
