"""
EXPORT ROUTES
=============
NinjaScript export of a discovered strategy.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from logging_config import log
from models.errors import InputError
from ninjascript_generator import NinjaScriptGenerator, sanitize_class_name
from utils.converters import dict_to_strategy

router = APIRouter(prefix="/api/export", tags=["export"])


class NinjaScriptRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    strategy: Dict[str, Any]
    strategy_name: str = Field(default="GeneticStrategy", alias="strategyName")
    trade_direction: str = Field(default="Both", alias="tradeDirection")
    metrics: Optional[Dict[str, Any]] = None


@router.post("/ninjascript")
def export_ninjascript(request: NinjaScriptRequest):
    """Generate NinjaScript for a strategy."""
    try:
        strategy = dict_to_strategy(request.strategy)
        script = NinjaScriptGenerator().generate(
            strategy,
            strategy_name=request.strategy_name,
            trade_direction=request.trade_direction,
            metrics=request.metrics,
        )
    except InputError as e:
        raise HTTPException(status_code=400, detail=str(e))

    class_name = sanitize_class_name(request.strategy_name)
    log(f"[Export] NinjaScript generated for {class_name} ({strategy.entry_groups.signal_count} signals)")
    return {
        "strategyName": class_name,
        "fileName": f"{class_name}.cs",
        "ninjascript": script,
    }
