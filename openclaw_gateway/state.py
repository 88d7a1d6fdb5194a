"""FastAPI dependencies for the components owned by the app lifespan.

Components live on ``app.state`` and are set up by ``lifespan.lifespan``.
HTTP dependencies raise 503 while a component is missing; WebSocket handlers
use the ``_or_none`` variants.
"""

from typing import Any, Optional

from fastapi import HTTPException, Request, WebSocket, status

from openclaw_gateway.broadcaster import StatusBroadcaster
from openclaw_gateway.executor import ActionExecutor
from openclaw_gateway.logs import LogRetriever
from openclaw_gateway.models import GatewayConfig
from openclaw_gateway.registry import ServiceRegistry
from openclaw_gateway.resolver import StatusResolver
from openclaw_gateway.subscriptions import LogSubscriptions


def _require(request: Request, name: str, label: str) -> Any:
    component = getattr(request.app.state, name, None)
    if component is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} not initialized",
        )
    return component


def get_config(request: Request) -> GatewayConfig:
    """Get loaded configuration.

    Raises:
        HTTPException: If configuration is not loaded.
    """
    return _require(request, "config", "Configuration")


def get_registry(request: Request) -> ServiceRegistry:
    return _require(request, "registry", "Service registry")


def get_resolver(request: Request) -> StatusResolver:
    return _require(request, "resolver", "Status resolver")


def get_executor(request: Request) -> ActionExecutor:
    return _require(request, "executor", "Action executor")


def get_log_retriever(request: Request) -> LogRetriever:
    return _require(request, "log_retriever", "Log retriever")


# WebSocket helpers (return None instead of raising HTTPException)
def get_resolver_or_none(websocket: WebSocket) -> Optional[StatusResolver]:
    return getattr(websocket.app.state, "resolver", None)


def get_broadcaster_or_none(websocket: WebSocket) -> Optional[StatusBroadcaster]:
    return getattr(websocket.app.state, "broadcaster", None)


def get_log_subscriptions_or_none(websocket: WebSocket) -> Optional[LogSubscriptions]:
    return getattr(websocket.app.state, "log_subscriptions", None)
