"""Resolve live container state for logical services."""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from openclaw_gateway.docker_client import DockerClient
from openclaw_gateway.models import (
    HealthState,
    LifecycleState,
    ServiceDefinition,
    ServiceStatus,
)
from openclaw_gateway.registry import ServiceRegistry
from openclaw_gateway.utils import parse_docker_timestamp, utc_now

logger = logging.getLogger(__name__)


def extract_ports(ports: Optional[dict]) -> dict[str, list[str]]:
    """Flatten engine port bindings into ``{"6379/tcp": ["0.0.0.0:6379"]}``.

    Exposed ports without a host binding are skipped.
    """
    result: dict[str, list[str]] = {}
    for container_port, bindings in (ports or {}).items():
        if bindings:
            result[container_port] = [
                f"{binding.get('HostIp', '')}:{binding.get('HostPort', '')}" for binding in bindings
            ]
    return result


def _health_state(state: dict) -> HealthState:
    health = state.get("Health")
    if not health:
        return HealthState.NO_HEALTHCHECK
    try:
        return HealthState(health.get("Status"))
    except ValueError:
        return HealthState.UNKNOWN


def build_status(service: ServiceDefinition, attrs: dict, now: datetime) -> ServiceStatus:
    """Normalize an engine inspect document into a ServiceStatus."""
    state = attrs.get("State") or {}
    raw_status = state.get("Status", "")
    try:
        lifecycle = LifecycleState(raw_status)
    except ValueError:
        lifecycle = LifecycleState.ERROR

    if lifecycle in (LifecycleState.NOT_FOUND, LifecycleState.ERROR):
        return ServiceStatus(
            service=service.name,
            container=service.container,
            category=service.category,
            state=LifecycleState.ERROR,
            health=HealthState.UNKNOWN,
            error=f"Unrecognized container state: {raw_status!r}",
        )

    running = lifecycle == LifecycleState.RUNNING
    started = parse_docker_timestamp(state.get("StartedAt"))
    uptime = 0
    if running and started is not None:
        uptime = max(0, int((now - started).total_seconds()))

    return ServiceStatus(
        service=service.name,
        container=service.container,
        category=service.category,
        state=lifecycle,
        health=_health_state(state),
        running=running,
        started_at=state.get("StartedAt") if started is not None else None,
        restart_count=attrs.get("RestartCount") or 0,
        uptime_seconds=uptime,
        ports=extract_ports((attrs.get("NetworkSettings") or {}).get("Ports")),
        image=(attrs.get("Config") or {}).get("Image"),
        exit_code=None if running else state.get("ExitCode"),
    )


def not_found_status(service: ServiceDefinition) -> ServiceStatus:
    return ServiceStatus(
        service=service.name,
        container=None,
        category=service.category,
        state=LifecycleState.NOT_FOUND,
        health=HealthState.UNKNOWN,
    )


def error_status(service: ServiceDefinition, message: str) -> ServiceStatus:
    return ServiceStatus(
        service=service.name,
        container=service.container,
        category=service.category,
        state=LifecycleState.ERROR,
        health=HealthState.UNKNOWN,
        error=message,
    )


class StatusResolver:
    """Computes fresh ServiceStatus records from the container engine.

    Nothing is cached: every call queries the engine. Engine failures are
    reported as an ``error`` state instead of being raised, so callers must
    treat ``error`` as inconclusive rather than stopped.
    """

    def __init__(
        self,
        registry: ServiceRegistry,
        docker_client: Optional[DockerClient],
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize resolver.

        Args:
            registry: Service registry.
            docker_client: Docker client, or None when the engine was
                unreachable at startup.
            clock: Returns the current UTC time; used for uptime.
        """
        self.registry = registry
        self.docker_client = docker_client
        self.clock = clock

    async def resolve(self, name: str) -> ServiceStatus:
        """Get the live status of one service.

        Raises:
            InvalidService: If the service is not registered.
        """
        service = self.registry.lookup(name)

        if self.docker_client is None:
            return error_status(service, "Docker client not available")

        try:
            attrs = await asyncio.to_thread(self.docker_client.inspect_container, service.container)
        except Exception as e:
            logger.warning(f"Failed to resolve status for '{name}': {e}")
            return error_status(service, str(e))

        if attrs is None:
            return not_found_status(service)

        return build_status(service, attrs, self.clock())

    async def resolve_all(self) -> dict[str, ServiceStatus]:
        """Resolve every registered service concurrently.

        Returns:
            Statuses keyed by service name, in registry order. A failure for
            one service never hides the others.
        """
        services = self.registry.list()
        results = await asyncio.gather(
            *(self.resolve(service.name) for service in services), return_exceptions=True
        )

        statuses: dict[str, ServiceStatus] = {}
        for service, result in zip(services, results):
            if isinstance(result, BaseException):
                logger.error(f"Unexpected error resolving '{service.name}': {result}")
                statuses[service.name] = error_status(service, str(result))
            else:
                statuses[service.name] = result
        return statuses

    async def engine_available(self) -> bool:
        """Check whether the engine answers a ping."""
        if self.docker_client is None:
            return False
        return await asyncio.to_thread(self.docker_client.ping)
