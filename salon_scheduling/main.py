"""
FastAPI Application Entry Point

This module initializes the FastAPI application and integrates:
- Scheduling routes (conflict checks, recurrence, availability)
- Database connections
- Lifecycle events
"""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from salon_scheduling import __version__
from salon_scheduling.api import scheduling_router
from salon_scheduling.config import settings
from salon_scheduling.db.session import check_database_connection, close_database_connection

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
    ]
)
logger = logging.getLogger(__name__)

logger.info("=" * 60)
logger.info("Salon Scheduling Service")
logger.info("=" * 60)
logger.info(f"Debug mode: {settings.debug}")
logger.info(f"Log level: {settings.log_level}")
logger.info(f"Database URL: {settings.database_url_str.split('@')[0]}@***")
logger.info(
    f"Advance window: {settings.min_advance_minutes}-{settings.max_advance_minutes} minutes"
)
logger.info("=" * 60)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Verifies the database on startup and disposes the engine on shutdown.
    """
    logger.info("Starting application...")

    db_healthy = await check_database_connection()
    if db_healthy:
        logger.info("Database connection verified")
    else:
        logger.error("Database connection failed!")
        logger.warning("Application will start but scheduling checks will return 503")

    yield

    logger.info("Shutting down application...")
    await close_database_connection()
    logger.info("Application shutdown complete")


app = FastAPI(
    title="Salon Scheduling Service",
    description=(
        "Booking validation and recurrence expansion for the salon "
        "management platform."
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    """Basic API information."""
    return {
        "message": "Salon Scheduling Service API",
        "version": __version__,
        "status": "running",
        "endpoints": {
            "health": "/health",
            "conflicts": "/scheduling/conflicts",
            "recurrence_validate": "/scheduling/recurrence/validate",
            "recurrence_expand": "/scheduling/recurrence/expand",
            "availability": "/scheduling/availability",
            "availability_range": "/scheduling/availability/range",
        },
    }


@app.get("/health")
async def health_check():
    """
    Application health check endpoint.

    Returns:
        JSONResponse with 200 when the database answers, 503 otherwise
    """
    db_healthy = await check_database_connection()

    return JSONResponse(
        status_code=200 if db_healthy else 503,
        content={
            "status": "healthy" if db_healthy else "degraded",
            "api": "operational",
            "database": "connected" if db_healthy else "disconnected",
            "version": __version__,
        },
    )


app.include_router(scheduling_router)

logger.info("FastAPI application initialized")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "salon_scheduling.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
