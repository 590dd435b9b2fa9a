"""
OPTIMIZATION ROUTES
===================
Run protocol over WebSocket plus single-backtest and settings endpoints.

WebSocket /ws/optimize
    client -> {"bars": [...], "settings": {...}}   (optionally "command": "start")
    client -> {"command": "stop"}
    server -> progress* then exactly one of complete / stopped / error
"""
import asyncio
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ConfigDict, Field

from engine.backtest import run_backtest
from logging_config import log
from models.bars import bars_from_records
from models.errors import InputError
from models.run_models import ErrorMessage
from models.settings_models import OptimizationSettings, parse_settings
from services.optimization_runner import OptimizationRun
from services.websocket_manager import serialize_for_json, ws_manager
from utils.converters import dict_to_strategy, message_to_dict, result_to_dict

router = APIRouter(prefix="/api", tags=["optimization"])
ws_router = APIRouter(tags=["optimization"])


# =============================================================================
# REQUEST MODELS
# =============================================================================

class BacktestRequest(BaseModel):
    """Single backtest of one strategy over the given bars."""
    model_config = ConfigDict(
        populate_by_name=True,  # Accept both snake_case and camelCase
        extra="ignore",
    )

    bars: List[Dict[str, Any]] = Field(default_factory=list)
    strategy: Dict[str, Any]
    tick_size: float = Field(default=1.0, gt=0, alias="tickSize")
    include_trades: bool = Field(default=True, alias="includeTrades")


# =============================================================================
# HTTP ENDPOINTS
# =============================================================================

@router.post("/backtest")
async def backtest(request: BacktestRequest):
    """Run one backtest. Structural input problems return 400."""
    try:
        bars = bars_from_records(request.bars)
        strategy = dict_to_strategy(request.strategy)
    except InputError as e:
        raise HTTPException(status_code=400, detail=str(e))

    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(None, run_backtest, bars, strategy, request.tick_size)
    log(f"[Backtest] API backtest: {result.total_trades} trades, net {result.net_profit:.2f}")
    return serialize_for_json(result_to_dict(result, request.include_trades))


@router.get("/settings/defaults")
async def default_settings():
    """Default optimization settings in wire form."""
    return OptimizationSettings.default().model_dump(mode="json", by_alias=True)


@router.post("/settings/validate")
async def validate_settings(payload: Dict[str, Any]):
    """Validate a settings payload and return its normalised form."""
    try:
        settings = parse_settings(payload)
    except InputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return settings.model_dump(mode="json", by_alias=True)


# =============================================================================
# WEBSOCKET RUN PROTOCOL
# =============================================================================

@ws_router.websocket("/ws/optimize")
async def optimize_socket(websocket: WebSocket):
    """
    One connection drives at most one run at a time.

    Messages from the run thread are handed to this event loop through an
    asyncio.Queue; disconnecting cancels the active run. Errors about the
    connection itself (bad JSON, unknown command, second start) go straight
    to the socket and leave the active run untouched.
    """
    await ws_manager.connect(websocket, subscribe=False)
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()
    run: Optional[OptimizationRun] = None

    def emit(message) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, message)

    async def reject(text: str) -> None:
        await ws_manager.send_to_client(websocket, message_to_dict(ErrorMessage(message=text)))

    receive_task = asyncio.create_task(websocket.receive_json())
    queue_task = asyncio.create_task(queue.get())

    try:
        while True:
            done, _ = await asyncio.wait({receive_task, queue_task}, return_when=asyncio.FIRST_COMPLETED)

            if queue_task in done:
                message = queue_task.result()
                await ws_manager.send_to_client(websocket, message_to_dict(message))
                if run is not None and message is run.terminal_message:
                    run = None
                queue_task = asyncio.create_task(queue.get())

            if receive_task not in done:
                continue
            try:
                request = receive_task.result()
            except WebSocketDisconnect:
                break
            except ValueError:
                request = None
            receive_task = asyncio.create_task(websocket.receive_json())

            if not isinstance(request, dict):
                await reject("Messages must be JSON objects")
                continue

            command = request.get("command", "start" if "bars" in request else None)
            if command == "stop":
                if run is not None:
                    run.cancel()
            elif command == "start":
                if run is not None:
                    await reject("A run is already in progress on this connection")
                    continue
                run = OptimizationRun(request.get("bars"), request.get("settings"), emit)
                if run.start():
                    log(f"[WebSocket] Run {run.run_id} started")
                # A refused start has already queued its terminal error
            else:
                await reject(f"Unknown command: {command}")
    except WebSocketDisconnect:
        pass
    finally:
        if run is not None:
            run.cancel()
        receive_task.cancel()
        queue_task.cancel()
        await ws_manager.disconnect(websocket)
