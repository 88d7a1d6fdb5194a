"""Shared fixtures for gateway tests."""

from unittest.mock import MagicMock

import pytest

from openclaw_gateway.docker_client import DockerClient
from openclaw_gateway.models import (
    ControlSettings,
    GatewayConfig,
    LogSettings,
    ServiceDefinition,
)
from openclaw_gateway.registry import ServiceRegistry
from openclaw_gateway.resolver import StatusResolver

from tests.factories import FIXED_NOW


@pytest.fixture
def services():
    """A small registry: a pulled database, a local build and a monitor."""
    return [
        ServiceDefinition(
            name="redis",
            container="openclaw-redis",
            category="databases",
            port=6379,
            image="redis:7-alpine",
        ),
        ServiceDefinition(
            name="gateway",
            container="openclaw-gateway",
            category="core",
            port=32104,
            image="openclaw-gateway:latest",
            local_build=True,
        ),
        ServiceDefinition(
            name="prometheus",
            container="openclaw-prometheus",
            category="monitoring",
            port=9090,
            image="prom/prometheus:latest",
        ),
    ]


@pytest.fixture
def registry(services):
    return ServiceRegistry(services)


@pytest.fixture
def mock_docker_client():
    """Docker client mock. Containers do not exist unless a test says so."""
    client = MagicMock(spec=DockerClient)
    client.inspect_container.return_value = None
    client.ping.return_value = True
    return client


@pytest.fixture
def resolver(registry, mock_docker_client):
    return StatusResolver(registry, mock_docker_client, clock=lambda: FIXED_NOW)


@pytest.fixture
def control_settings():
    return ControlSettings()


@pytest.fixture
def log_settings():
    return LogSettings()


@pytest.fixture
def gateway_config(services):
    return GatewayConfig(services=services, broadcast={"interval_seconds": 3600})
