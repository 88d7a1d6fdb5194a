"""FastAPI application for the openclaw service-control gateway."""

import logging
import os
from typing import Callable, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from openclaw_gateway.config import load_config
from openclaw_gateway.lifespan import lifespan
from openclaw_gateway.models import ErrorResponse, GatewayConfig
from openclaw_gateway.routers import root, services, websocket

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

DESCRIPTION = """
Service-control and status gateway for the openclaw container stack.

The gateway maps a fixed set of logical services onto Docker containers and
exposes their live state, control actions and logs.

## Features

* Aggregated and per-service container status
* Control services (start, stop, restart, up, down, pull, remove)
* Recent container logs
* WebSocket status pushes and live log streaming

## Documentation

* **Swagger UI**: Available at `/docs` (interactive API testing)
* **ReDoc**: Available at `/redoc` (alternative documentation)
* **OpenAPI Schema**: Available at `/openapi.json`
"""


async def http_exception_handler(request, exc: HTTPException):
    """Custom exception handler for HTTP exceptions."""
    if isinstance(exc.detail, dict):
        content = ErrorResponse(**exc.detail)
    else:
        content = ErrorResponse(error=exc.detail or "Unknown error")
    return JSONResponse(
        status_code=exc.status_code,
        content=content.model_dump(exclude_none=True),
        headers=getattr(exc, "headers", None),
    )


def create_app(
    config: Optional[GatewayConfig] = None,
    docker_client_factory: Optional[Callable] = None,
) -> FastAPI:
    """Create the gateway application.

    Args:
        config: Gateway configuration. Loaded with ``load_config`` when omitted.
        docker_client_factory: Called with the engine base URL to build the
            Docker client. Defaults to ``DockerClient``.

    Returns:
        Configured FastAPI app. Components are built by its lifespan.
    """
    config = config or load_config()

    app = FastAPI(
        title="OpenClaw Gateway API",
        description=DESCRIPTION,
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        openapi_tags=[
            {
                "name": "root",
                "description": "Root endpoint and API information",
            },
            {
                "name": "services",
                "description": "Service status, control actions (start/stop/restart/up/down/pull/remove) and logs.",
            },
            {
                "name": "websocket",
                "description": "Status pushes and live log streaming over WebSocket.",
            },
        ],
    )
    app.state.config = config
    app.state.docker_client_factory = docker_client_factory

    # Add CORS middleware to allow requests from the dashboard
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(root.router)
    app.include_router(services.router)
    app.include_router(websocket.router)

    app.add_exception_handler(HTTPException, http_exception_handler)
    return app
