"""
Gig Contract Engine - Main Application Entry Point

Negotiation and contract lifecycle for artist/organizer bookings:
- Turn-based counter-offers capped at three rounds
- Contract generation with locked and editable terms
- One-time edit workflow, review -> accept -> sign per party
- Dual-signature gate into admin review
- Deadline sweep voiding unsigned contracts after 48 hours
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gigflow.api.middleware import RequestLoggingMiddleware
from gigflow.api.router import api_router
from gigflow.core.config import get_settings
from gigflow.core.errors import GigflowError
from gigflow.core.logging import get_logger, setup_logging
from gigflow.core.metrics import metrics_endpoint
from gigflow.db.session import SessionLocal
from gigflow.services.deadline_service import run_deadline_sweeper
from gigflow.services.lock_service import close_redis, get_lock_status, get_redis

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Entity locks are in-process only")

    sweeper = None
    if settings.DEADLINE_SWEEP_ENABLED:
        sweeper = asyncio.create_task(run_deadline_sweeper(SessionLocal))

    yield

    if sweeper is not None:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Negotiation and contract lifecycle engine for live-performance bookings",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.exception_handler(GigflowError)
async def gigflow_error_handler(request: Request, exc: GigflowError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "locks": await get_lock_status(),
        "deadline_sweeper": settings.DEADLINE_SWEEP_ENABLED,
    }


@app.get("/metrics", tags=["Health"])
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
