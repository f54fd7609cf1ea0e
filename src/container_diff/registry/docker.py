"""Local Docker daemon access."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import docker
from docker.errors import DockerException, ImageNotFound

from container_diff.registry.base import RegistryError, RegistryNotFoundError
from container_diff.utils.logging import get_logger

logger = get_logger("registry.docker")

_SAVE_CHUNK = 2 * 1024 * 1024


class DockerDaemon:
    """Client for images held by the local Docker daemon.

    The underlying SDK client is created lazily with API version
    negotiation, so constructing a DockerDaemon never touches the socket.

    Example:
        daemon = DockerDaemon()
        if daemon.image_exists("ubuntu:22.04"):
            daemon.save("ubuntu:22.04", Path("/tmp/ubuntu.tar"))
    """

    def __init__(self, client: Any = None) -> None:
        """Initialize the daemon client.

        Args:
            client: Preconfigured docker SDK client
        """
        self._client = client

    @property
    def client(self) -> Any:
        """Get the Docker client, creating it if necessary."""
        if self._client is None:
            try:
                self._client = docker.from_env(version="auto")
            except DockerException as e:
                raise RegistryError(
                    f"Failed to connect to Docker daemon: {e}",
                    code="CONNECTION_ERROR",
                ) from e
        return self._client

    def image_exists(self, reference: str) -> bool:
        """Check if an image exists locally.

        Args:
            reference: Image reference or id

        Returns:
            True if the daemon reports the image, False if it does not or is unreachable
        """
        try:
            self.client.images.get(reference)
        except ImageNotFound:
            return False
        except (DockerException, RegistryError) as e:
            logger.debug(f"Docker daemon unavailable while looking up {reference}: {e}")
            return False
        return True

    def save(self, reference: str, dest: Path) -> Path:
        """Write ``docker save`` output for an image to a file.

        Args:
            reference: Image reference or id
            dest: Archive path to create

        Returns:
            The archive path

        Raises:
            RegistryNotFoundError: If the image is not present
            RegistryError: For other daemon errors
        """
        try:
            image = self.client.images.get(reference)
            logger.info(f"Saving image {reference} from the local daemon")
            with open(dest, "wb") as f:
                for chunk in image.save(chunk_size=_SAVE_CHUNK, named=True):
                    f.write(chunk)
        except ImageNotFound as e:
            raise RegistryNotFoundError(reference) from e
        except DockerException as e:
            raise RegistryError(f"Failed to save image {reference}: {e}") from e
        return dest
