"""Lifespan management for FastAPI app."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from openclaw_gateway.broadcaster import StatusBroadcaster
from openclaw_gateway.compose import ComposeRunner
from openclaw_gateway.config import load_config
from openclaw_gateway.docker_client import DockerClient
from openclaw_gateway.executor import ActionExecutor
from openclaw_gateway.logs import LogRetriever
from openclaw_gateway.registry import ServiceRegistry
from openclaw_gateway.resolver import StatusResolver
from openclaw_gateway.subscriptions import LogSubscriptions

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI app.

    Builds the gateway components on startup and stores them on
    ``app.state``. Uses ``app.state.config`` when it is already set, and
    ``app.state.docker_client_factory`` to connect to the engine. Stops the
    broadcaster, closes log streams and the Docker client on shutdown.
    """
    # Startup
    logger.info("Starting openclaw gateway...")
    try:
        config = getattr(app.state, "config", None) or load_config()
        app.state.config = config

        registry = ServiceRegistry(config.services)

        # Docker client is optional: the gateway still answers with error states
        docker_client_factory = getattr(app.state, "docker_client_factory", None) or DockerClient
        try:
            docker_client = docker_client_factory(config.docker.base_url)
        except Exception as e:
            logger.warning(
                f"Docker client initialization failed (Docker operations will be unavailable): {e}"
            )
            docker_client = None

        resolver = StatusResolver(registry, docker_client)
        broadcaster = StatusBroadcaster(resolver, config.broadcast.interval_seconds)
        executor = ActionExecutor(
            registry,
            resolver,
            docker_client,
            config.control,
            compose=ComposeRunner(config.control),
            on_change=broadcaster.push_service,
        )
        log_retriever = LogRetriever(registry, docker_client, config.logs)
        log_subscriptions = LogSubscriptions(log_retriever)

        app.state.registry = registry
        app.state.docker_client = docker_client
        app.state.resolver = resolver
        app.state.broadcaster = broadcaster
        app.state.executor = executor
        app.state.log_retriever = log_retriever
        app.state.log_subscriptions = log_subscriptions

        if not config.auth.token:
            logger.warning("GATEWAY_AUTH_TOKEN not set - mutating endpoints are unauthenticated")

        await broadcaster.start()
        logger.info(
            f"Gateway initialized with {len(registry)} services "
            f"(control backend: {config.control.backend})"
        )
    except Exception as e:
        logger.error(f"Failed to initialize gateway: {e}")
        raise

    yield

    # Shutdown
    logger.info("Shutting down openclaw gateway...")
    await broadcaster.stop()
    await log_subscriptions.close_all()
    log_retriever.close_all()

    if docker_client:
        try:
            docker_client.close()
        except Exception as e:
            logger.error(f"Error closing Docker client: {e}")

    logger.info("Openclaw gateway shut down")
