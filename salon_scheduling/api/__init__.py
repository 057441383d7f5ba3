"""
API Module Initialization

Exports the scheduling router for the FastAPI application.
"""

from salon_scheduling.api.routes import router as scheduling_router

__all__ = [
    "scheduling_router",
]
