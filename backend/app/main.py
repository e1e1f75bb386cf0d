"""FastAPI application for the Billing Decision Engine."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import billing_router
from app.core.config import settings
from app.core.database import close_db, init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown events:
    - Startup: Create reference tables in debug mode
    - Shutdown: Close database connections
    """
    if settings.debug:
        await init_db()
    logger.info(f"{settings.app_name} ready")

    yield

    await close_db()


app = FastAPI(
    title=settings.app_name,
    description="API for turning clinical encounters into billable claim lines with an auditable decision trail.",
    version="0.1.0",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:3001", "http://localhost:3002"],  # Next.js dev server
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(billing_router)


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, Any]:
    """Health check endpoint (liveness probe).

    Returns service status and basic info for monitoring.
    """
    return {
        "status": "healthy",
        "service": "billing-decision-engine",
        "version": "0.1.0",
        "timestamp": datetime.now(UTC).isoformat(),
    }


@app.get("/", tags=["Health"])
async def root() -> dict[str, str]:
    """Root endpoint with API info."""
    return {
        "service": "Billing Decision Engine API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }
