"""
SYSTEM ROUTES
=============
API endpoints for health, resources and the run registry.
"""
import psutil
from fastapi import APIRouter, HTTPException

from config import CPU_CORES, MEMORY_TOTAL_GB
from state import app_state

router = APIRouter(prefix="/api", tags=["system"])


@router.get("/health")
async def health_check():
    """Simple health check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


@router.get("/system")
async def get_system_info():
    """Get system resource information."""
    mem = psutil.virtual_memory()
    return {
        "cpu_cores": CPU_CORES,
        "cpu_percent": round(psutil.cpu_percent(interval=None), 1),
        "memory_total_gb": round(MEMORY_TOTAL_GB, 1),
        "memory_available_gb": round(mem.available / (1024**3), 1),
        "memory_used_percent": round(mem.percent, 1),
        "running_optimizations": app_state.get_running_count(),
        "max_concurrent_runs": app_state.max_concurrent_runs,
    }


@router.get("/runs")
async def get_runs():
    """Active runs and recent history."""
    return app_state.get_full_state()


@router.get("/runs/{run_id}")
async def get_run(run_id: str):
    run = app_state.get_run(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail=f"Run {run_id} is not active")
    return run
