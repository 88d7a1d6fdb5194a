"""Service status, control and log endpoints router."""

import logging
from typing import Optional

from docker.errors import DockerException
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from openclaw_gateway.auth import require_auth
from openclaw_gateway.errors import (
    ContainerNotFound,
    EngineUnavailable,
    InvalidAction,
    InvalidOption,
    InvalidService,
)
from openclaw_gateway.executor import ActionExecutor
from openclaw_gateway.logs import LogRetriever
from openclaw_gateway.models import (
    ActionOptions,
    ActionResult,
    ComposeFlagsRequest,
    EngineHealthResponse,
    LogOptions,
    RemoveRequest,
    ServiceAction,
    ServiceListResponse,
    ServiceLogsResponse,
    ServiceStatusMapResponse,
    ServiceStatusResponse,
)
from openclaw_gateway.registry import ServiceRegistry
from openclaw_gateway.resolver import StatusResolver
from openclaw_gateway.state import (
    get_executor,
    get_log_retriever,
    get_registry,
    get_resolver,
)
from openclaw_gateway.utils import iso_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/services", tags=["services"])

# DELETE /{service}/remove is the only way to remove a container
POST_ACTIONS = frozenset(
    {
        ServiceAction.START,
        ServiceAction.STOP,
        ServiceAction.RESTART,
        ServiceAction.UP,
        ServiceAction.DOWN,
        ServiceAction.PULL,
    }
)


def _invalid_service(e: InvalidService) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"error": str(e), "valid_services": e.valid_services},
    )


def _action_response(result: ActionResult):
    """Return successful results as-is and failed ones with an error status."""
    if result.success:
        return result
    status_code = (
        status.HTTP_503_SERVICE_UNAVAILABLE
        if result.error == "engine_unavailable"
        else status.HTTP_500_INTERNAL_SERVER_ERROR
    )
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


async def _execute(
    executor: ActionExecutor, service: str, action: str, options: ActionOptions
):
    try:
        result = await executor.execute(service, action, options)
    except InvalidService as e:
        raise _invalid_service(e)
    except (InvalidAction, InvalidOption) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _action_response(result)


@router.get("/status", response_model=ServiceStatusMapResponse)
async def get_all_service_status(
    resolver: StatusResolver = Depends(get_resolver),
) -> ServiceStatusMapResponse:
    """Get the live status of every registered service."""
    try:
        statuses = await resolver.resolve_all()
        return ServiceStatusMapResponse(services=statuses, timestamp=iso_now())
    except Exception as e:
        logger.error(f"Failed to get service status: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to get service status: {str(e)}",
        )


@router.get("/list", response_model=ServiceListResponse)
async def list_services(
    registry: ServiceRegistry = Depends(get_registry),
) -> ServiceListResponse:
    """List valid service names grouped by category."""
    return ServiceListResponse(services=registry.names(), categories=registry.categories())


@router.get("/health", response_model=EngineHealthResponse)
async def get_engine_health(
    resolver: StatusResolver = Depends(get_resolver),
) -> EngineHealthResponse:
    """Check whether the Docker engine is reachable."""
    try:
        available = await resolver.engine_available()
    except Exception as e:
        logger.error(f"Docker health check failed: {e}")
        available = False
    return EngineHealthResponse(docker_available=available, timestamp=iso_now())


@router.get("/{service}/status", response_model=ServiceStatusResponse)
async def get_service_status(
    service: str,
    resolver: StatusResolver = Depends(get_resolver),
) -> ServiceStatusResponse:
    """Get the live status of one service."""
    try:
        service_status = await resolver.resolve(service)
    except InvalidService as e:
        raise _invalid_service(e)
    return ServiceStatusResponse(**service_status.model_dump(), timestamp=iso_now())


@router.get("/{service}/logs", response_model=ServiceLogsResponse)
async def get_service_logs(
    service: str,
    tail: int = Query(100, description="Lines to return, clamped to 1..10000"),
    timestamps: bool = Query(True, description="Split engine timestamps from the text"),
    since: Optional[int] = Query(None, description="Only lines newer than this Unix time"),
    retriever: LogRetriever = Depends(get_log_retriever),
) -> ServiceLogsResponse:
    """Get recent logs of one service."""
    try:
        lines = await retriever.fetch_recent(
            service, tail=tail, since=since, timestamps=timestamps
        )
    except InvalidService as e:
        raise _invalid_service(e)
    except ContainerNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except EngineUnavailable as e:
        logger.error(f"Failed to get logs for '{service}': {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    except DockerException as e:
        logger.error(f"Failed to get logs for '{service}': {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to get service logs: {str(e)}",
        )

    return ServiceLogsResponse(
        service=service,
        logs=lines,
        count=len(lines),
        options=LogOptions(tail=retriever.clamp_tail(tail), timestamps=timestamps, since=since),
    )


@router.delete(
    "/{service}/remove",
    response_model=ActionResult,
    dependencies=[Depends(require_auth)],
)
async def remove_service(
    service: str,
    request: Optional[RemoveRequest] = None,
    executor: ActionExecutor = Depends(get_executor),
):
    """Remove a service's container.

    A running container is only removed with ``force``; it is stopped first.
    """
    request = request or RemoveRequest()
    options = ActionOptions(force=request.force, volumes=request.volumes)
    return await _execute(executor, service, ServiceAction.REMOVE.value, options)


@router.post(
    "/{service}/{action}",
    response_model=ActionResult,
    dependencies=[Depends(require_auth)],
)
async def control_service(
    service: str,
    action: str,
    request: Optional[ComposeFlagsRequest] = None,
    executor: ActionExecutor = Depends(get_executor),
):
    """Control a service (start, stop, restart, up, down or pull).

    ``up`` and ``down`` accept extra compose flags from the allow-list.
    """
    if action not in {a.value for a in POST_ACTIONS}:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid action: {action}",
        )
    options = ActionOptions(flags=request.flags if request else [])
    return await _execute(executor, service, action, options)
