"""LokaClean API -- Main Application Entry Point

Creates the FastAPI application, configures CORS middleware, registers
all API route modules under the /api/v1 prefix, and mounts the Socket.IO
ASGI application used to push order status changes to customers.

Run with::

    uvicorn src.main:app --host 0.0.0.0 --port 8000 --reload
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.core.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan: startup / shutdown hooks
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Shutdown:
      - Close the shared Redis client used by the realtime module.
    """
    yield

    from src.realtime.socketServer import close_redis

    try:
        await close_redis()
    except Exception:
        logger.warning("Failed to close Redis client on shutdown", exc_info=True)


# ---------------------------------------------------------------------------
# Application instance
# ---------------------------------------------------------------------------

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# CORS middleware
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health():
    """Lightweight health check for load balancers and readiness probes."""
    return {"status": "ok", "version": settings.app_version}


# ---------------------------------------------------------------------------
# Register API route modules
# ---------------------------------------------------------------------------
# Each router defines its own prefix (e.g. /orders, /payments) and tags.
# They are mounted under the shared /api/v1 prefix.
# ---------------------------------------------------------------------------

from src.api.routes import (  # noqa: E402
    admin_orders,
    notifications,
    orders,
    packages,
    payments,
)

_prefix = settings.api_v1_prefix

app.include_router(packages.router, prefix=_prefix)
app.include_router(orders.router, prefix=_prefix)
app.include_router(payments.router, prefix=_prefix)
app.include_router(admin_orders.router, prefix=_prefix)
app.include_router(notifications.router, prefix=_prefix)


# ---------------------------------------------------------------------------
# Mount Socket.IO ASGI application
# ---------------------------------------------------------------------------

from src.realtime.socketServer import socket_app  # noqa: E402

app.mount("/ws", socket_app)
