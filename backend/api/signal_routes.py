"""
SIGNAL ROUTES
=============
Catalog of the entry signals available to the search.
"""
from fastapi import APIRouter

from engine.signal_library import catalog, get_signal_count

router = APIRouter(prefix="/api", tags=["signals"])


@router.get("/signals")
async def list_signals(searchable_only: bool = False):
    """Signal names grouped by namespace."""
    return {
        "namespaces": catalog(searchable_only=searchable_only),
        "count": get_signal_count(),
    }
