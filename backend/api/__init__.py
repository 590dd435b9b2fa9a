"""
API ROUTES PACKAGE
==================
Modular API route definitions for the Genetic Strategy Finder.
"""
from .system_routes import router as system_router
from .optimization_routes import router as optimization_router, ws_router as optimization_ws_router
from .signal_routes import router as signal_router
from .export_routes import router as export_router


def register_routes(app):
    """Register all API routes with the FastAPI app."""
    app.include_router(system_router)
    app.include_router(optimization_router)
    app.include_router(optimization_ws_router)
    app.include_router(signal_router)
    app.include_router(export_router)


__all__ = [
    'system_router',
    'optimization_router',
    'optimization_ws_router',
    'signal_router',
    'export_router',
    'register_routes',
]
