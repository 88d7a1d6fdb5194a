"""Pydantic models for the gateway API and configuration."""

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# Configuration Models


class ServiceDefinition(BaseModel):
    """Static mapping from a logical service to its container."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Logical service name", examples=["redis"])
    container: str = Field(
        ..., description="Container name used by the engine", examples=["openclaw-redis"]
    )
    category: Literal["core", "databases", "messaging", "monitoring"] = Field(
        ..., description="Service category shown in the dashboard", examples=["databases"]
    )
    port: Optional[int] = Field(None, description="Published host port", examples=[6379])
    image: Optional[str] = Field(
        None,
        description="Fallback image used when no container exists",
        examples=["redis:7-alpine"],
    )
    local_build: bool = Field(
        default=False, description="Image is built locally and never pulled"
    )


class DockerSettings(BaseModel):
    """Container engine connection settings."""

    base_url: Optional[str] = Field(
        None,
        description="Docker daemon URL. Falls back to DOCKER_HOST or the default socket.",
        examples=["unix://var/run/docker.sock"],
    )


class ControlSettings(BaseModel):
    """How control actions reach the engine."""

    backend: Literal["engine", "compose"] = Field(
        default="engine",
        description="Use the Docker Engine API or the docker compose CLI for lifecycle actions",
    )
    command: list[str] = Field(
        default_factory=lambda: ["docker", "compose"],
        description="Compose executable as an argument vector",
    )
    compose_file: str = Field(
        default="docker-compose.full.yml", description="Compose file passed with -f"
    )
    project_dir: str = Field(default=".", description="Working directory for compose")
    lifecycle_timeout: float = Field(
        default=60.0, description="Timeout in seconds for start/stop/restart"
    )
    multi_step_timeout: float = Field(
        default=120.0, description="Timeout in seconds for up/down/pull"
    )
    stop_timeout: int = Field(
        default=10, description="Grace period in seconds before a stop kills the container"
    )
    local_image_prefixes: list[str] = Field(
        default_factory=lambda: ["openclaw-"],
        description="Image name prefixes that identify locally built images",
    )


class BroadcastSettings(BaseModel):
    """Periodic status push settings."""

    interval_seconds: float = Field(
        default=30.0, gt=0, description="Seconds between full-fleet status pushes"
    )


class LogSettings(BaseModel):
    """Log retrieval bounds."""

    default_tail: int = Field(default=100, ge=1, description="Lines returned when tail is omitted")
    max_tail: int = Field(default=10000, ge=1, description="Upper bound for requested tail")


class AuthSettings(BaseModel):
    """Bearer token protecting mutating endpoints."""

    token: Optional[str] = Field(
        None, description="Expected bearer token. Authentication is disabled when unset."
    )


class GatewayConfig(BaseModel):
    """Root configuration model."""

    services: list[ServiceDefinition] = Field(
        default_factory=list, description="Managed services in display order"
    )
    docker: DockerSettings = Field(default_factory=DockerSettings)
    control: ControlSettings = Field(default_factory=ControlSettings)
    broadcast: BroadcastSettings = Field(default_factory=BroadcastSettings)
    logs: LogSettings = Field(default_factory=LogSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:32102", "http://localhost:32103"],
        description="Origins allowed to call the API from a browser",
    )


# Status Models


class LifecycleState(str, Enum):
    """Container run state as reported by the engine."""

    NOT_FOUND = "not_found"
    CREATED = "created"
    RUNNING = "running"
    RESTARTING = "restarting"
    PAUSED = "paused"
    EXITED = "exited"
    DEAD = "dead"
    REMOVING = "removing"
    ERROR = "error"


class HealthState(str, Enum):
    """Health check result, independent of the run state."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    STARTING = "starting"
    NO_HEALTHCHECK = "no_healthcheck"
    UNKNOWN = "unknown"


class ServiceStatus(BaseModel):
    """Live status of one logical service, computed per request."""

    service: str = Field(..., description="Logical service name", examples=["redis"])
    container: Optional[str] = Field(
        None, description="Container name, null when no container exists"
    )
    category: Optional[str] = Field(None, description="Service category")
    state: LifecycleState = Field(..., description="Lifecycle state", examples=["running"])
    health: HealthState = Field(HealthState.UNKNOWN, description="Health state")
    running: bool = Field(False, description="Whether the container is running")
    started_at: Optional[str] = Field(None, description="Container start timestamp")
    restart_count: int = Field(0, description="Restarts performed by the engine")
    uptime_seconds: int = Field(0, description="Seconds since start when running")
    ports: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Port bindings keyed by container port",
        examples=[{"6379/tcp": ["0.0.0.0:6379"]}],
    )
    image: Optional[str] = Field(None, description="Configured image reference")
    exit_code: Optional[int] = Field(None, description="Exit code of a stopped container")
    error: Optional[str] = Field(None, description="Engine error when state is 'error'")


# Action Models


class ServiceAction(str, Enum):
    """Closed set of control actions."""

    START = "start"
    STOP = "stop"
    RESTART = "restart"
    UP = "up"
    DOWN = "down"
    PULL = "pull"
    REMOVE = "remove"


class ActionOptions(BaseModel):
    """Action-specific flags. Validated against allow-lists by the executor."""

    force: bool = Field(default=False, description="Stop a running container before removing it")
    volumes: bool = Field(default=False, description="Also remove attached anonymous volumes")
    flags: list[str] = Field(
        default_factory=list,
        description="Extra compose flags for up/down",
        examples=[["--force-recreate"]],
    )


class ActionRequest(BaseModel):
    """A control action addressed to one service."""

    service: str = Field(..., description="Logical service name")
    action: ServiceAction = Field(..., description="Action to perform")
    options: ActionOptions = Field(default_factory=ActionOptions)


class ActionResult(BaseModel):
    """Outcome of a control action."""

    success: bool = Field(..., description="Whether the action succeeded")
    service: str = Field(..., description="Logical service name")
    action: ServiceAction = Field(..., description="Action that was performed")
    status: Optional[str] = Field(
        None,
        description="Outcome status",
        examples=["started", "already_running", "not_found", "removed", "pulled", "local_image"],
    )
    message: str = Field(..., description="Human-readable outcome")
    error: Optional[Literal["execution_failed", "timeout", "engine_unavailable"]] = Field(
        None, description="Failure classification"
    )
    exit_code: Optional[int] = Field(None, description="Exit code of the control process")
    raw_output: Optional[str] = Field(None, description="Captured tool output or stderr")
    image: Optional[str] = Field(None, description="Image involved in a pull")
    layers: Optional[int] = Field(None, description="Layers reported by a pull")
    requires_build: bool = Field(False, description="Image must be rebuilt locally")
    volumes_removed: Optional[bool] = Field(None, description="Volumes removed with the container")


class RemoveRequest(BaseModel):
    """Request body for DELETE /api/services/{service}/remove."""

    volumes: bool = Field(default=False, description="Remove attached anonymous volumes")
    force: bool = Field(default=False, description="Stop the container first if running")


class ComposeFlagsRequest(BaseModel):
    """Optional request body for up/down."""

    flags: list[str] = Field(default_factory=list, description="Extra compose flags")


# Log Models


class LogLine(BaseModel):
    """One normalized log line."""

    service: str = Field(..., description="Logical service name")
    timestamp: Optional[str] = Field(None, description="Engine timestamp when requested")
    text: str = Field(..., description="Log text without framing or colour codes")


class LogOptions(BaseModel):
    """Effective options applied to a log query."""

    tail: int
    timestamps: bool
    since: Optional[int] = None


class ServiceLogsResponse(BaseModel):
    """Response for GET /api/services/{service}/logs."""

    success: bool = True
    service: str = Field(..., description="Logical service name")
    logs: list[LogLine] = Field(..., description="Log lines, oldest first")
    count: int = Field(..., description="Number of lines returned")
    options: LogOptions


# API Response Models


class ServiceStatusMapResponse(BaseModel):
    """Response for GET /api/services/status."""

    success: bool = True
    services: dict[str, ServiceStatus] = Field(..., description="Status keyed by service")
    timestamp: str = Field(..., description="Time the statuses were computed")


class ServiceStatusResponse(ServiceStatus):
    """Response for GET /api/services/{service}/status."""

    success: bool = True
    timestamp: str = Field(..., description="Time the status was computed")


class ServiceListResponse(BaseModel):
    """Response for GET /api/services/list."""

    success: bool = True
    services: list[str] = Field(..., description="Valid service names")
    categories: dict[str, list[str]] = Field(..., description="Service names by category")


class EngineHealthResponse(BaseModel):
    """Response for GET /api/services/health."""

    success: bool = True
    docker_available: bool = Field(..., description="Whether the engine answers a ping")
    timestamp: str


class ErrorResponse(BaseModel):
    """Error response model."""

    success: bool = False
    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Additional error details")
    valid_services: Optional[list[str]] = Field(
        None, description="Valid service names when the service was unknown"
    )
