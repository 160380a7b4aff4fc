"""
Seat Reservation API - Main Application Entry Point

A seat reservation service demonstrating:
- Oversell-free seat holds with row locks plus Redis seat locks
- A PENDING -> CONFIRMED/CANCELLED booking lifecycle with a hold window
- A background sweeper reclaiming abandoned holds
- Demand-based admission control with a deferred admission queue
- Structured logging with request correlation
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from seatkeeper.core.config import get_settings
from seatkeeper.core.exceptions import AdmissionDeferred, RateLimited
from seatkeeper.core.logging import setup_logging, get_logger
from seatkeeper.core.metrics import metrics_endpoint
from seatkeeper.api.router import api_router
from seatkeeper.api.middleware import RequestLoggingMiddleware
from seatkeeper.db.session import AsyncSessionLocal, engine
from seatkeeper.infrastructure.redis_client import RedisClient, get_lock_store_stats, ping
from seatkeeper.workers import DeferredAdmissionWorker, ExpirySweeper

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

    lock_store = RedisClient.get_client()
    if await ping():
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Seat locks will fail until Redis is reachable")

    workers = []
    if settings.BACKGROUND_WORKERS_ENABLED:
        workers = [
            ExpirySweeper(AsyncSessionLocal, lock_store),
            DeferredAdmissionWorker(lock_store),
        ]
        for worker in workers:
            worker.start()

    yield

    for worker in workers:
        await worker.stop()
    await RedisClient.close()
    await engine.dispose()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Seat reservation API with hold windows and admission control",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Custom middleware
app.add_middleware(RequestLoggingMiddleware)

# Routes
app.include_router(api_router)


@app.exception_handler(AdmissionDeferred)
async def admission_deferred_handler(request: Request, exc: AdmissionDeferred):
    message = (
        "High traffic detected. You have been placed in the virtual waiting room."
        if exc.requeued
        else "Please wait, you are in the virtual waiting room"
    )
    return JSONResponse(
        status_code=429,
        headers={"Retry-After": str(max(exc.estimated_wait_seconds, 1))},
        content={
            "status": "deferred",
            "message": message,
            "estimated_wait_seconds": exc.estimated_wait_seconds,
            "position": "in_queue",
            "token": exc.token,
        },
    )


@app.exception_handler(RateLimited)
async def rate_limited_handler(request: Request, exc: RateLimited):
    return JSONResponse(
        status_code=429,
        headers={"Retry-After": str(exc.retry_after)},
        content={
            "message": "Too many requests. Please slow down.",
            "retry_after": exc.retry_after,
        },
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    lock_store = await get_lock_store_stats()
    return {
        "status": "healthy" if lock_store["status"] == "connected" else "degraded",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "lock_store": lock_store,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
