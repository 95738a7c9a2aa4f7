"""
Accessibility Match API - Main Application Entry Point

This module initializes the FastAPI application with:
- Logging configured from settings
- Database connection and schema initialization
- CORS middleware for frontend communication
- Prometheus metrics middleware and /metrics endpoint
- API router registration

Architecture:
    FastAPI App
    ├── Lifespan Management (startup/shutdown)
    ├── CORS Middleware (localhost:3000)
    ├── Prometheus Middleware
    └── API Router
        └── /matches - Scoring, batch recomputation and ranked lists
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.config import get_settings
from app.database import init_db
from app.api import api_router
from app.middleware.metrics import setup_metrics
from app.services.cache import get_cache

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle events.

    Startup:
        1. Initialize database tables

    Shutdown:
        1. Close the Redis connection if one was opened

    Yields:
        Control to the application during its runtime
    """
    await init_db()
    logger.info("Database initialized")
    yield
    if get_settings().cache_enabled:
        cache = await get_cache()
        await cache.close()


configure_logging()

app = FastAPI(
    title="Accessibility Match API",
    description="Compatibility scoring between PcD candidates and jobs",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_metrics(app)

app.include_router(api_router)


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
