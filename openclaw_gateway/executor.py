"""Control actions against logical services."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Union

import requests
from docker.errors import DockerException, NotFound

from openclaw_gateway.compose import COMPOSE_FLAGS, ComposeRunner
from openclaw_gateway.docker_client import DockerClient
from openclaw_gateway.errors import (
    ActionTimeout,
    EngineUnavailable,
    ExecutionFailed,
    InvalidAction,
    InvalidOption,
)
from openclaw_gateway.models import (
    ActionOptions,
    ActionResult,
    ControlSettings,
    LifecycleState,
    ServiceAction,
    ServiceDefinition,
)
from openclaw_gateway.registry import ServiceRegistry
from openclaw_gateway.resolver import StatusResolver

logger = logging.getLogger(__name__)

FLAG_ACTIONS = frozenset({ServiceAction.UP, ServiceAction.DOWN})
DETACH_FLAGS = frozenset({"-d", "--detach"})

# Outcome statuses that leave the container untouched
NO_CHANGE_STATUSES = frozenset({"already_running", "not_found", "local_image", "pulled"})

ChangeCallback = Callable[[str], Awaitable[None]]


class ActionExecutor:
    """Executes allow-listed control actions, one at a time per service.

    Requests are validated before the engine is touched or any process is
    spawned. Invalid service names, actions and options raise; operational
    failures are returned as an unsuccessful ActionResult.
    """

    def __init__(
        self,
        registry: ServiceRegistry,
        resolver: StatusResolver,
        docker_client: Optional[DockerClient],
        settings: ControlSettings,
        compose: Optional[ComposeRunner] = None,
        on_change: Optional[ChangeCallback] = None,
    ):
        """Initialize executor.

        Args:
            registry: Service registry.
            resolver: Status resolver used for idempotence checks.
            docker_client: Docker client, or None when the engine is unreachable.
            settings: Control settings (backend, timeouts, local image prefixes).
            compose: Compose runner. Created from settings when omitted.
            on_change: Awaited with the service name after a successful action
                that changed the service.
        """
        self.registry = registry
        self.resolver = resolver
        self.docker_client = docker_client
        self.settings = settings
        self.compose = compose or ComposeRunner(settings)
        self.on_change = on_change
        self._locks: dict[str, asyncio.Lock] = {}
        self._handlers = {
            ServiceAction.START: self._start,
            ServiceAction.STOP: self._stop,
            ServiceAction.RESTART: self._restart,
            ServiceAction.UP: self._up,
            ServiceAction.DOWN: self._down,
            ServiceAction.PULL: self._pull,
            ServiceAction.REMOVE: self._remove,
        }

    def _get_lock(self, service: str) -> asyncio.Lock:
        """Get or create lock for a service."""
        if service not in self._locks:
            self._locks[service] = asyncio.Lock()
        return self._locks[service]

    def validate(
        self,
        service: str,
        action: Union[str, ServiceAction],
        options: Optional[ActionOptions] = None,
    ) -> tuple[ServiceDefinition, ServiceAction, ActionOptions]:
        """Check a request against the registry and the allow-lists.

        Raises:
            InvalidService: If the service is not registered.
            InvalidAction: If the action is not allow-listed.
            InvalidOption: If an option does not apply to the action or a
                flag is not allow-listed.
        """
        definition = self.registry.lookup(service)

        try:
            action = ServiceAction(action)
        except ValueError:
            raise InvalidAction(str(action)) from None

        options = options or ActionOptions()
        if action != ServiceAction.REMOVE:
            if options.force:
                raise InvalidOption("force", action.value)
            if options.volumes:
                raise InvalidOption("volumes", action.value)
        if options.flags and action not in FLAG_ACTIONS:
            raise InvalidOption(options.flags[0], action.value)
        for flag in options.flags:
            if flag not in COMPOSE_FLAGS:
                raise InvalidOption(flag, action.value)

        return definition, action, options

    async def execute(
        self,
        service: str,
        action: Union[str, ServiceAction],
        options: Optional[ActionOptions] = None,
    ) -> ActionResult:
        """Execute a control action against one service.

        Args:
            service: Logical service name.
            action: One of start, stop, restart, up, down, pull, remove.
            options: Action-specific options.

        Returns:
            ActionResult. ``success`` is False for engine or tool failures,
            timeouts and an unreachable engine.

        Raises:
            InvalidService: If the service is not registered.
            InvalidAction: If the action is not allow-listed.
            InvalidOption: If an option or flag is rejected.
        """
        definition, action, options = self.validate(service, action, options)
        handler = self._handlers[action]

        async with self._get_lock(definition.name):
            logger.info(f"Executing '{action.value}' on service '{definition.name}'")
            try:
                result = await handler(definition, options)
            except ExecutionFailed as e:
                result = _failure(
                    definition, action, "execution_failed", str(e), e.exit_code, e.stderr
                )
            except ActionTimeout as e:
                result = _failure(definition, action, "timeout", str(e))
            except EngineUnavailable as e:
                result = _failure(definition, action, "engine_unavailable", str(e))
            except NotFound:
                result = _failure(
                    definition, action, "execution_failed", f"Service not found: {definition.name}"
                )
            except requests.exceptions.ConnectionError as e:
                result = _failure(definition, action, "engine_unavailable", str(e))
            except DockerException as e:
                result = _failure(definition, action, "execution_failed", _docker_message(e))

        if result.success:
            logger.info(f"Action '{action.value}' on '{definition.name}': {result.status}")
            if result.status not in NO_CHANGE_STATUSES:
                await self._notify(definition.name)
        else:
            logger.error(f"Action '{action.value}' on '{definition.name}' failed: {result.message}")
        return result

    async def _notify(self, service: str) -> None:
        if self.on_change is None:
            return
        try:
            await self.on_change(service)
        except Exception as e:
            logger.error(f"Failed to publish status change for '{service}': {e}")

    async def _engine(self, method: str, *args, **kwargs):
        """Run a blocking Docker client method off the event loop.

        Args:
            method: Name of the DockerClient method to call.

        Raises:
            EngineUnavailable: If there is no Docker client.
        """
        if self.docker_client is None:
            raise EngineUnavailable("Docker client not available")
        return await asyncio.to_thread(getattr(self.docker_client, method), *args, **kwargs)

    def _use_compose(self) -> bool:
        return self.settings.backend == "compose"

    def is_local_image(self, definition: ServiceDefinition, image: str) -> bool:
        """Whether an image is built locally rather than pulled from a registry."""
        if definition.local_build:
            return True
        return any(image.startswith(prefix) for prefix in self.settings.local_image_prefixes)

    # Lifecycle primitives

    async def _lifecycle(
        self, definition: ServiceDefinition, action: ServiceAction, status: str
    ) -> ActionResult:
        raw_output = None
        if self._use_compose():
            raw_output = (await self.compose.run(action, definition.name)).output
        elif action == ServiceAction.START:
            await self._engine("start_container", definition.container)
        elif action == ServiceAction.STOP:
            await self._engine(
                "stop_container",
                definition.container,
                timeout=self.settings.stop_timeout,
            )
        else:
            await self._engine(
                "restart_container",
                definition.container,
                timeout=self.settings.stop_timeout,
            )
        return ActionResult(
            success=True,
            service=definition.name,
            action=action,
            status=status,
            message=f"Service {definition.name} {status}",
            raw_output=raw_output,
        )

    async def _start(self, definition: ServiceDefinition, options: ActionOptions) -> ActionResult:
        return await self._lifecycle(definition, ServiceAction.START, "started")

    async def _stop(self, definition: ServiceDefinition, options: ActionOptions) -> ActionResult:
        return await self._lifecycle(definition, ServiceAction.STOP, "stopped")

    async def _restart(self, definition: ServiceDefinition, options: ActionOptions) -> ActionResult:
        return await self._lifecycle(definition, ServiceAction.RESTART, "restarted")

    async def _up(self, definition: ServiceDefinition, options: ActionOptions) -> ActionResult:
        status = await self.resolver.resolve(definition.name)
        if status.running:
            return ActionResult(
                success=True,
                service=definition.name,
                action=ServiceAction.UP,
                status="already_running",
                message=f"Service {definition.name} is already running",
            )

        raw_output = None
        if self._use_compose():
            flags = ["-d", *(flag for flag in options.flags if flag not in DETACH_FLAGS)]
            raw_output = (await self.compose.run(ServiceAction.UP, definition.name, flags)).output
        elif status.state == LifecycleState.NOT_FOUND:
            if not definition.image:
                raise ExecutionFailed(f"Cannot determine image for service: {definition.name}")
            await self._engine(
                "create_container",
                definition.container,
                definition.image,
                definition.port,
            )
        else:
            await self._engine("start_container", definition.container)

        return ActionResult(
            success=True,
            service=definition.name,
            action=ServiceAction.UP,
            status="up",
            message=f"Service {definition.name} is up",
            raw_output=raw_output,
        )

    async def _down(self, definition: ServiceDefinition, options: ActionOptions) -> ActionResult:
        status = await self.resolver.resolve(definition.name)
        if status.state == LifecycleState.NOT_FOUND:
            return ActionResult(
                success=True,
                service=definition.name,
                action=ServiceAction.DOWN,
                status="not_found",
                message=f"Service {definition.name} is not running",
            )

        raw_output = None
        if self._use_compose():
            result = await self.compose.run(ServiceAction.DOWN, definition.name, options.flags)
            raw_output = result.output
        else:
            if status.running:
                await self._engine(
                    "stop_container",
                    definition.container,
                    timeout=self.settings.stop_timeout,
                )
            await self._engine("remove_container", definition.container)

        return ActionResult(
            success=True,
            service=definition.name,
            action=ServiceAction.DOWN,
            status="down",
            message=f"Service {definition.name} is down",
            raw_output=raw_output,
        )

    async def _remove(self, definition: ServiceDefinition, options: ActionOptions) -> ActionResult:
        attrs = await self._engine("inspect_container", definition.container)
        if attrs is None:
            return ActionResult(
                success=True,
                service=definition.name,
                action=ServiceAction.REMOVE,
                status="not_found",
                message=f"Service {definition.name} not found (already removed)",
            )

        if (attrs.get("State") or {}).get("Running"):
            if not options.force:
                raise ExecutionFailed(
                    f"Service {definition.name} is running. Use force: true to stop and remove."
                )
            await self._engine(
                "stop_container",
                definition.container,
                timeout=self.settings.stop_timeout,
            )

        await self._engine(
            "remove_container",
            definition.container,
            volumes=options.volumes,
            force=options.force,
        )
        return ActionResult(
            success=True,
            service=definition.name,
            action=ServiceAction.REMOVE,
            status="removed",
            message=f"Service {definition.name} removed successfully",
            volumes_removed=options.volumes,
        )

    async def _pull(self, definition: ServiceDefinition, options: ActionOptions) -> ActionResult:
        attrs = await self._engine("inspect_container", definition.container)
        image = (attrs.get("Config") or {}).get("Image") if attrs else None
        image = image or definition.image
        if not image:
            raise ExecutionFailed(f"Cannot determine image for service: {definition.name}")

        if self.is_local_image(definition, image):
            return ActionResult(
                success=True,
                service=definition.name,
                action=ServiceAction.PULL,
                status="local_image",
                message=(
                    f"Service {definition.name} uses local image {image}. "
                    "Use docker build to update."
                ),
                image=image,
                requires_build=True,
            )

        layers = await self._engine("pull_image", image)
        return ActionResult(
            success=True,
            service=definition.name,
            action=ServiceAction.PULL,
            status="pulled",
            message=f"Image {image} pulled successfully",
            image=image,
            layers=layers,
        )


def _failure(
    definition: ServiceDefinition,
    action: ServiceAction,
    kind: str,
    message: str,
    exit_code: Optional[int] = None,
    stderr: Optional[str] = None,
) -> ActionResult:
    return ActionResult(
        success=False,
        service=definition.name,
        action=action,
        status="failed",
        message=message,
        error=kind,
        exit_code=exit_code,
        raw_output=stderr or None,
    )


def _docker_message(error: DockerException) -> str:
    """Prefer the engine's explanation over the HTTP status line."""
    explanation = getattr(error, "explanation", None)
    return str(explanation or error)
