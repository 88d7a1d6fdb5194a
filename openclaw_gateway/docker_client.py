"""Docker client for container management."""

import logging
from typing import Optional

import docker
from docker.errors import DockerException, NotFound
from docker.models.containers import Container
from docker.utils import parse_repository_tag

logger = logging.getLogger(__name__)


class DockerClient:
    """Client for interacting with Docker daemon via Docker socket.

    All methods are blocking. Async callers run them through
    ``asyncio.to_thread``.
    """

    def __init__(self, base_url: Optional[str] = None):
        """Initialize Docker client.

        Args:
            base_url: Docker daemon socket URL. Defaults to DOCKER_HOST or the
                local Unix socket.
        """
        try:
            if base_url:
                self.client = docker.DockerClient(base_url=base_url)
            else:
                self.client = docker.from_env()
            # Test connection
            self.client.ping()
            logger.info("Docker client initialized successfully")
        except DockerException as e:
            logger.error(f"Failed to initialize Docker client: {e}")
            raise

    def ping(self) -> bool:
        """Check whether the daemon answers."""
        try:
            return bool(self.client.ping())
        except DockerException as e:
            logger.warning(f"Docker ping failed: {e}")
            return False

    def find_container(self, container_name: str) -> Optional[Container]:
        """Find a container (running or stopped) by exact name.

        The engine's name filter matches substrings, so results are narrowed
        to an exact match here.

        Args:
            container_name: Container name without leading slash.

        Returns:
            Docker container object, or None if no container has this name.
        """
        try:
            summaries = self.client.api.containers(all=True, filters={"name": container_name})
            for summary in summaries:
                names = summary.get("Names") or []
                if f"/{container_name}" in names or container_name in names:
                    return self.client.containers.get(summary["Id"])
            return None
        except NotFound:
            # Removed between listing and inspection
            return None
        except DockerException as e:
            logger.error(f"Failed to look up container '{container_name}': {e}")
            raise

    def get_container(self, container_name: str) -> Container:
        """Get a container by name.

        Raises:
            NotFound: If container not found.
        """
        container = self.find_container(container_name)
        if container is None:
            logger.warning(f"Container '{container_name}' not found")
            raise NotFound(f"Container '{container_name}' not found")
        return container

    def inspect_container(self, container_name: str) -> Optional[dict]:
        """Get the engine's inspect document for a container.

        Returns:
            Inspect attributes, or None if the container does not exist.
        """
        container = self.find_container(container_name)
        if container is None:
            return None
        return container.attrs

    def start_container(self, container_name: str) -> dict:
        """Start a container.

        Raises:
            NotFound: If container not found.
        """
        try:
            container = self.get_container(container_name)
            container.start()
            logger.info(f"Started container '{container_name}'")
            return {"name": container_name, "action": "start", "result": "ok"}
        except NotFound:
            raise
        except DockerException as e:
            logger.error(f"Failed to start container '{container_name}': {e}")
            raise

    def stop_container(self, container_name: str, timeout: int = 10) -> dict:
        """Stop a container.

        Args:
            container_name: Container name.
            timeout: Timeout in seconds before force killing.

        Raises:
            NotFound: If container not found.
        """
        try:
            container = self.get_container(container_name)
            container.stop(timeout=timeout)
            logger.info(f"Stopped container '{container_name}'")
            return {"name": container_name, "action": "stop", "result": "ok"}
        except NotFound:
            raise
        except DockerException as e:
            logger.error(f"Failed to stop container '{container_name}': {e}")
            raise

    def restart_container(self, container_name: str, timeout: int = 10) -> dict:
        """Restart a container.

        Args:
            container_name: Container name.
            timeout: Timeout in seconds before force killing.

        Raises:
            NotFound: If container not found.
        """
        try:
            container = self.get_container(container_name)
            container.restart(timeout=timeout)
            logger.info(f"Restarted container '{container_name}'")
            return {"name": container_name, "action": "restart", "result": "ok"}
        except NotFound:
            raise
        except DockerException as e:
            logger.error(f"Failed to restart container '{container_name}': {e}")
            raise

    def remove_container(
        self, container_name: str, volumes: bool = False, force: bool = False
    ) -> dict:
        """Remove a container.

        Args:
            container_name: Container name.
            volumes: Also remove anonymous volumes attached to the container.
            force: Kill the container first if it is still running.

        Raises:
            NotFound: If container not found.
        """
        try:
            container = self.get_container(container_name)
            container.remove(v=volumes, force=force)
            logger.info(f"Removed container '{container_name}' (volumes={volumes})")
            return {"name": container_name, "action": "remove", "result": "ok"}
        except NotFound:
            raise
        except DockerException as e:
            logger.error(f"Failed to remove container '{container_name}': {e}")
            raise

    def create_container(
        self, container_name: str, image: str, port: Optional[int] = None
    ) -> Container:
        """Create and start a detached container.

        Args:
            container_name: Name to give the container.
            image: Image reference.
            port: Port published on the same host port, if any.
        """
        ports = {f"{port}/tcp": port} if port else None
        try:
            container = self.client.containers.run(
                image,
                name=container_name,
                detach=True,
                ports=ports,
                restart_policy={"Name": "unless-stopped"},
            )
            logger.info(f"Created container '{container_name}' from image '{image}'")
            return container
        except DockerException as e:
            logger.error(f"Failed to create container '{container_name}': {e}")
            raise

    def pull_image(self, image: str) -> int:
        """Pull an image from its registry.

        Args:
            image: Image reference, with or without tag.

        Returns:
            Number of distinct layers reported by the pull.

        Raises:
            DockerException: If the pull fails or the registry reports an error.
        """
        repository, tag = parse_repository_tag(image)
        layers: set[str] = set()
        try:
            for event in self.client.api.pull(
                repository, tag=tag or "latest", stream=True, decode=True
            ):
                if "error" in event:
                    raise DockerException(event["error"])
                if "id" in event and "progressDetail" in event:
                    layers.add(event["id"])
            logger.info(f"Pulled image '{image}' ({len(layers)} layers)")
            return len(layers)
        except DockerException as e:
            logger.error(f"Failed to pull image '{image}': {e}")
            raise

    def get_container_logs(
        self,
        container_name: str,
        tail: int = 100,
        since: Optional[int] = None,
        timestamps: bool = True,
    ) -> bytes:
        """Get container logs.

        Args:
            container_name: Container name.
            tail: Number of lines to return from the end.
            since: Only return logs newer than this Unix timestamp.
            timestamps: Prefix each line with the engine timestamp.

        Returns:
            Raw log bytes.

        Raises:
            NotFound: If container not found.
        """
        kwargs = {"stdout": True, "stderr": True, "tail": tail, "timestamps": timestamps}
        if since:
            kwargs["since"] = since
        try:
            container = self.get_container(container_name)
            return container.logs(**kwargs)
        except NotFound:
            raise
        except DockerException as e:
            logger.error(f"Failed to get logs for container '{container_name}': {e}")
            raise

    def stream_container_logs(self, container_name: str, tail: int = 100):
        """Open a follow-mode log stream.

        Returns:
            Cancellable iterator of raw log chunks. ``close()`` interrupts a
            pending read.

        Raises:
            NotFound: If container not found.
        """
        try:
            container = self.get_container(container_name)
            return container.logs(
                stdout=True, stderr=True, stream=True, follow=True, tail=tail, timestamps=True
            )
        except NotFound:
            raise
        except DockerException as e:
            logger.error(f"Failed to stream logs for container '{container_name}': {e}")
            raise

    def close(self) -> None:
        """Close the Docker client connection."""
        if hasattr(self, "client"):
            self.client.close()
