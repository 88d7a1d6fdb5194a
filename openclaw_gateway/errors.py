"""Exceptions raised by the gateway core."""

from typing import Optional


class GatewayError(Exception):
    """Base exception for gateway errors."""

    pass


class InvalidService(GatewayError):
    """Service name is not in the registry."""

    def __init__(self, name: str, valid_services: Optional[list[str]] = None) -> None:
        self.name = name
        self.valid_services = list(valid_services or [])
        super().__init__(f"Invalid service: {name}")


class InvalidAction(GatewayError):
    """Action is not in the allow-list."""

    def __init__(self, action: str) -> None:
        self.action = action
        super().__init__(f"Invalid action: {action}")


class InvalidOption(GatewayError):
    """Option or flag is not allowed for the requested action."""

    def __init__(self, option: str, action: Optional[str] = None) -> None:
        self.option = option
        self.action = action
        suffix = f" for action '{action}'" if action else ""
        super().__init__(f"Invalid option: {option}{suffix}")


class ContainerNotFound(GatewayError):
    """No container exists for the service."""

    def __init__(self, service: str, container: Optional[str] = None) -> None:
        self.service = service
        self.container = container
        super().__init__(f"Service not found: {service}")


class ExecutionFailed(GatewayError):
    """The engine or the compose tool rejected the operation."""

    def __init__(
        self, message: str, exit_code: Optional[int] = None, stderr: str = ""
    ) -> None:
        """
        Initialize ExecutionFailed.

        Args:
            message: Error message
            exit_code: Exit code of the control process, if one ran
            stderr: Captured standard error
        """
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(message)


class ActionTimeout(GatewayError):
    """Operation exceeded its time bound and was killed."""

    def __init__(self, message: str, timeout_s: float) -> None:
        self.timeout_s = timeout_s
        super().__init__(message)


class EngineUnavailable(GatewayError):
    """The container engine could not be reached."""

    def __init__(self, message: str = "Docker daemon is unreachable") -> None:
        super().__init__(message)
