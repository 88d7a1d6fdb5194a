"""Registry of managed services."""

import logging
from typing import Iterable, Optional

from openclaw_gateway.errors import InvalidService
from openclaw_gateway.models import ServiceDefinition

logger = logging.getLogger(__name__)


class ServiceRegistry:
    """Read-only mapping from logical service names to container definitions.

    Built once from configuration at startup. Lookup order follows the order
    the services were declared in, which is also the order used for status
    listings.
    """

    def __init__(self, services: Iterable[ServiceDefinition]):
        """Initialize registry.

        Args:
            services: Service definitions in display order.

        Raises:
            ValueError: If a service name or container name is declared twice.
        """
        self._services: dict[str, ServiceDefinition] = {}
        containers: set[str] = set()
        for service in services:
            if service.name in self._services:
                raise ValueError(f"Duplicate service name in registry: {service.name}")
            if service.container in containers:
                raise ValueError(f"Duplicate container name in registry: {service.container}")
            self._services[service.name] = service
            containers.add(service.container)
        logger.debug(f"Service registry loaded with {len(self._services)} services")

    def lookup(self, name: str) -> ServiceDefinition:
        """Get a service definition by name.

        Raises:
            InvalidService: If the name is not registered.
        """
        service = self._services.get(name)
        if service is None:
            raise InvalidService(name, self.names())
        return service

    def get(self, name: str) -> Optional[ServiceDefinition]:
        return self._services.get(name)

    def names(self) -> list[str]:
        return list(self._services)

    def categories(self) -> dict[str, list[str]]:
        """Group service names by category, keeping declaration order."""
        result: dict[str, list[str]] = {}
        for service in self._services.values():
            result.setdefault(service.category, []).append(service.name)
        return result

    def __contains__(self, name: object) -> bool:
        return name in self._services

    def __len__(self) -> int:
        return len(self._services)

    # Keep last: shadows the builtin for annotations in the class body.
    def list(self) -> list[ServiceDefinition]:
        return [service for service in self._services.values()]
