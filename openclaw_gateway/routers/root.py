"""Root endpoint router."""

import time

from fastapi import APIRouter

from openclaw_gateway import __version__
from openclaw_gateway.utils import iso_now

router = APIRouter(tags=["root"])

_STARTED = time.monotonic()


@router.get(
    "/",
    summary="API Information",
    description="Get API information and links to documentation",
    response_description="API metadata and documentation links",
)
async def root():
    """Root endpoint with API information and documentation links.

    Returns:
        API metadata including version and links to interactive documentation.
    """
    return {
        "message": "OpenClaw Gateway API",
        "version": __version__,
        "docs": {
            "swagger_ui": "/docs",
            "redoc": "/redoc",
            "openapi_schema": "/openapi.json",
        },
        "endpoints": {
            "services": "/api/services",
            "websocket": "/ws",
        },
        "description": "Service control and status gateway for the openclaw container stack",
    }


@router.get("/health", summary="Gateway liveness")
async def health():
    """Report that the gateway process is up. Does not query the engine."""
    return {
        "status": "healthy",
        "service": "openclaw-gateway",
        "version": __version__,
        "uptime": round(time.monotonic() - _STARTED, 3),
        "timestamp": iso_now(),
    }
