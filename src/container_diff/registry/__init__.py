"""Image sources: local daemon, remote registries and image archives."""

from container_diff.registry.base import (
    ImageSource,
    RegistryAuth,
    RegistryAuthError,
    RegistryError,
    RegistryNotFoundError,
)
from container_diff.registry.docker import DockerDaemon
from container_diff.registry.oci import OCIRegistry, RegistrySource
from container_diff.registry.reference import ImageReference
from container_diff.registry.tarball import DockerSaveArchive, is_tar_path

__all__ = [
    "ImageSource",
    "RegistryAuth",
    "RegistryAuthError",
    "RegistryError",
    "RegistryNotFoundError",
    "DockerDaemon",
    "OCIRegistry",
    "RegistrySource",
    "ImageReference",
    "DockerSaveArchive",
    "is_tar_path",
]
