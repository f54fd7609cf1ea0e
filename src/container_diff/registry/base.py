"""Image source protocol, registry credentials and registry errors."""

import os
from typing import Iterator, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from container_diff.models.image import LayerInfo


class RegistryAuth(BaseModel):
    """Authentication credentials for a container registry."""

    model_config = {"frozen": True}

    username: str | None = Field(default=None, description="Registry username")
    password: str | None = Field(default=None, description="Registry password or token")
    token: str | None = Field(default=None, description="Bearer token")

    @classmethod
    def from_env(cls) -> "RegistryAuth | None":
        """Create auth from environment variables.

        Looks for REGISTRY_USERNAME and REGISTRY_PASSWORD,
        or REGISTRY_TOKEN for token auth.
        """
        username = os.environ.get("REGISTRY_USERNAME")
        password = os.environ.get("REGISTRY_PASSWORD")
        token = os.environ.get("REGISTRY_TOKEN")

        if token:
            return cls(token=token)
        if username and password:
            return cls(username=username, password=password)
        return None


class RegistryError(Exception):
    """Base exception for registry and daemon operations."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class RegistryAuthError(RegistryError):
    """Authentication failed."""

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message, code="AUTH_ERROR")


class RegistryNotFoundError(RegistryError):
    """Image, manifest or blob not found."""

    def __init__(self, reference: str) -> None:
        super().__init__(f"Not found: {reference}", code="NOT_FOUND")
        self.reference = reference


@runtime_checkable
class ImageSource(Protocol):
    """Protocol for anything that can hand out the layers and config of one image.

    Sources are bound to a single image. Layer order returned by
    ``layer_infos`` is the order layers must be applied in. ``iter_blob``
    may be called concurrently for different layers, so implementations
    must not share stream state between calls.

    Example:
        class MySource:
            def layer_infos(self) -> list[LayerInfo]:
                return [LayerInfo(digest="sha256:...")]

            def iter_blob(self, layer: LayerInfo) -> Iterator[bytes]:
                yield from fetch_chunks(layer.digest)

            def config_blob(self) -> bytes:
                return fetch_config()
    """

    def layer_infos(self) -> list[LayerInfo]:
        """Get the ordered layer list of the image.

        Raises:
            RegistryError: If the image manifest cannot be read
        """
        ...

    def iter_blob(self, layer: LayerInfo) -> Iterator[bytes]:
        """Stream the (possibly compressed) bytes of one layer blob.

        Raises:
            RegistryError: If the blob cannot be fetched
        """
        ...

    def config_blob(self) -> bytes:
        """Get the raw image config JSON.

        Raises:
            RegistryError: If the config cannot be fetched
        """
        ...
