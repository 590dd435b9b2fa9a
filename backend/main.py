"""
Genetic Strategy Finder - FastAPI entry point
=============================================
Builds the app, mounts the routers from api/, serves the /ws/status
registry socket and owns startup/shutdown.

Run with `python main.py` or `uvicorn main:app`. Search, backtesting and
validation live in engine/; run orchestration lives in services/.
"""
import asyncio
import json
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from config import CPU_CORES, MAX_CONCURRENT_RUNS, MEMORY_TOTAL_GB, SERVER_HOST, SERVER_PORT, WEBSOCKET_CONFIG
from engine.signal_library import get_signal_count
from logging_config import log, UVICORN_LOG_CONFIG
from services.websocket_manager import ws_manager
from state import app_state

# API routes
from api import register_routes

log("[Startup] Genetic Strategy Finder v1.0.0")
log(f"[Startup] CPU cores: {CPU_CORES}")
log(f"[Startup] Memory: {MEMORY_TOTAL_GB:.1f} GB")
log(f"[Startup] Max concurrent runs: {MAX_CONCURRENT_RUNS}")


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    log("[Startup] Application starting...")
    ws_manager.set_main_loop(asyncio.get_running_loop())
    log(f"[Startup] {get_signal_count()} searchable signals registered")

    yield

    log("[Shutdown] Application shutting down...")
    active = app_state.get_running_count()
    if active:
        log(f"[Shutdown] {active} run(s) still active; their threads are daemonic", level='WARNING')
    app_state.reset()


# =============================================================================
# FASTAPI APPLICATION
# =============================================================================

app = FastAPI(
    title="Genetic Strategy Finder",
    version="1.0.0",
    description="Genetic search for entry-signal combinations with walk-forward and Monte Carlo validation",
    lifespan=lifespan
)

# Register all API routes
register_routes(app)


# =============================================================================
# STATUS WEBSOCKET
# =============================================================================

async def _send_full_state(websocket: WebSocket) -> None:
    await websocket.send_json({"type": "full_state", **app_state.get_full_state()})


def _is_state_request(text: str) -> bool:
    try:
        request = json.loads(text)
    except json.JSONDecodeError:
        return False
    return isinstance(request, dict) and request.get("type") == "get_state"


@app.websocket("/ws/status")
async def websocket_status(websocket: WebSocket):
    """
    Run registry updates for dashboards.

    Server -> client:
    - full_state: active runs and history, on connect and on {"type": "get_state"}
    - run_status: a run started or finished
    - run_progress: throttled progress of any run
    - "ping" after WEBSOCKET_CONFIG["keepalive_interval"] seconds of silence

    A plain "ping" from the client is answered with "pong"; anything else is ignored.
    """
    await ws_manager.connect(websocket)
    idle_timeout = WEBSOCKET_CONFIG["keepalive_interval"]

    try:
        await _send_full_state(websocket)
        while True:
            try:
                text = await asyncio.wait_for(websocket.receive_text(), timeout=idle_timeout)
            except asyncio.TimeoutError:
                await websocket.send_text("ping")
                continue

            if text == "ping":
                await websocket.send_text("pong")
            elif _is_state_request(text):
                await _send_full_state(websocket)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        log(f"[WebSocket] Status socket closed: {e}", level='WARNING')
    finally:
        await ws_manager.disconnect(websocket)


# =============================================================================
# UTILITY ENDPOINTS
# =============================================================================

@app.get("/api/ping")
async def ping():
    """Simple ping endpoint for health checks."""
    return {"pong": True, "timestamp": datetime.now().isoformat()}


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host=SERVER_HOST,
        port=SERVER_PORT,
        log_config=UVICORN_LOG_CONFIG
    )
