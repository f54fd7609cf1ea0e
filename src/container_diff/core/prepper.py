"""Resolve image identifiers to materialized images.

Three strategies are tried in a fixed order: the local Docker daemon, a
remote registry, and a local ``docker save`` archive. An identifier prefixed
with ``daemon://`` or ``remote://`` is handed to that strategy alone.
"""

from __future__ import annotations

import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Protocol, runtime_checkable

from container_diff.core.archive import unpack_tar
from container_diff.core.compression import open_decompressed
from container_diff.core.image import Image, parse_config
from container_diff.core.layers import LayerPipeline
from container_diff.models.image import ConfigSchema
from container_diff.models.options import AnalysisOptions
from container_diff.registry.base import ImageSource, RegistryError
from container_diff.registry.docker import DockerDaemon
from container_diff.registry.oci import OCIRegistry, RegistrySource
from container_diff.registry.reference import ImageReference
from container_diff.registry.tarball import DockerSaveArchive, is_tar_path
from container_diff.utils.errors import (
    ConfigParseError,
    ContainerDiffError,
    LayerFetchError,
    MaterializationCancelled,
    SourceUnresolvedError,
)
from container_diff.utils.fs import make_temp_dir, remove_tree
from container_diff.utils.logging import get_logger, log_duration

logger = get_logger("prepper")

DAEMON_PREFIX = "daemon://"
REMOTE_PREFIX = "remote://"


@runtime_checkable
class Prepper(Protocol):
    """Protocol for one way of obtaining an image."""

    name: str
    source: str

    def supports_image(self) -> bool:
        """Check whether this strategy can handle the identifier.

        May normalize ``source`` by stripping a recognized scheme.
        """
        ...

    def get_filesystem(self) -> Path:
        """Materialize the image filesystem into a fresh directory."""
        ...

    def get_config(self) -> ConfigSchema:
        """Get the parsed image config."""
        ...


class BasePrepper(ABC):
    """Shared plumbing for the built-in strategies.

    Subclasses fill ``_populate`` with the materialization itself; the
    scratch directory is removed here if that fails or is cancelled.
    """

    name = "base"

    def __init__(
        self,
        source: str,
        options: AnalysisOptions | None = None,
        cancel_event: threading.Event | None = None,
        daemon: DockerDaemon | None = None,
        registry: OCIRegistry | None = None,
    ) -> None:
        self.source = source
        self.options = options or AnalysisOptions()
        self.cancel_event = cancel_event or threading.Event()
        self._daemon = daemon
        self._registry = registry

    @property
    def daemon(self) -> DockerDaemon:
        if self._daemon is None:
            self._daemon = DockerDaemon()
        return self._daemon

    @property
    def registry(self) -> OCIRegistry:
        if self._registry is None:
            self._registry = OCIRegistry()
        return self._registry

    @abstractmethod
    def supports_image(self) -> bool:
        ...

    @abstractmethod
    def _populate(self, path: Path) -> None:
        ...

    @abstractmethod
    def _config_blob(self) -> bytes:
        ...

    def get_filesystem(self) -> Path:
        path = make_temp_dir(self.source)
        try:
            self._populate(path)
        except BaseException:
            remove_tree(path)
            raise
        return path

    def get_config(self) -> ConfigSchema:
        try:
            blob = self._config_blob()
        except RegistryError as e:
            raise ConfigParseError(f"Could not obtain config for image {self.source}: {e}", source=self.source) from e
        return parse_config(blob, source=self.source)

    def _pipeline(self, source: ImageSource) -> LayerPipeline:
        return LayerPipeline(
            source,
            max_workers=self.options.max_workers,
            cancel_event=self.cancel_event,
            name=self.source,
        )


class DaemonPrepper(BasePrepper):
    """Images held by the local Docker daemon, exported with ``docker save``."""

    name = "Local Daemon"

    _config: bytes | None = None

    def supports_image(self) -> bool:
        if self.source.startswith(DAEMON_PREFIX):
            self.source = self.source[len(DAEMON_PREFIX):]
        if is_tar_path(self.source):
            return False
        return self.daemon.image_exists(self.source)

    def _save(self, scratch: Path) -> DockerSaveArchive:
        archive_path = self.daemon.save(self.source, scratch / "image.tar")
        return DockerSaveArchive(archive_path)

    def _populate(self, path: Path) -> None:
        with tempfile.TemporaryDirectory(prefix="container-diff-save-") as scratch:
            archive = self._save(Path(scratch))
            self._pipeline(archive).run(path)
            self._config = archive.config_blob()

    def _config_blob(self) -> bytes:
        if self._config is None:
            with tempfile.TemporaryDirectory(prefix="container-diff-save-") as scratch:
                self._config = self._save(Path(scratch)).config_blob()
        return self._config


class CloudPrepper(BasePrepper):
    """Images pulled layer by layer from a remote registry."""

    name = "Cloud Registry"

    _remote: RegistrySource | None = None

    def supports_image(self) -> bool:
        if self.source.startswith(DAEMON_PREFIX) or is_tar_path(self.source):
            return False
        if self.source.startswith(REMOTE_PREFIX):
            self.source = self.source[len(REMOTE_PREFIX):]
        return ImageReference.is_valid(self.source)

    @property
    def remote(self) -> RegistrySource:
        if self._remote is None:
            try:
                reference = ImageReference.parse(self.source)
            except ValueError as e:
                raise LayerFetchError("manifest", str(e), source=self.source) from e
            self._remote = RegistrySource(self.registry, reference)
        return self._remote

    def _populate(self, path: Path) -> None:
        self._pipeline(self.remote).run(path)

    def _config_blob(self) -> bytes:
        return self.remote.config_blob()


class TarPrepper(BasePrepper):
    """Images stored as a local ``docker save`` archive."""

    name = "Tar Archive"

    def supports_image(self) -> bool:
        return is_tar_path(self.source) and Path(self.source).is_file()

    @property
    def archive(self) -> DockerSaveArchive:
        return DockerSaveArchive(self.source)

    def _populate(self, path: Path) -> None:
        logger.info(f"Extracting image archive {self.source} to obtain image file system")
        archive = self.archive
        layers = archive.layer_infos()
        with archive.open() as tar:
            for applied, layer in enumerate(layers):
                if self.cancel_event.is_set():
                    raise MaterializationCancelled(applied)
                logger.debug(f"Applying layer {applied + 1}/{len(layers)} {layer.short_digest}")
                with archive.open_layer(tar, layer) as handle:
                    unpack_tar(open_decompressed(handle, digest=layer.digest), path)

    def _config_blob(self) -> bytes:
        return self.archive.config_blob()


PREPPER_ORDER: tuple[type[BasePrepper], ...] = (DaemonPrepper, CloudPrepper, TarPrepper)


def build_image(prepper: Prepper, preserve: bool = False) -> Image:
    """Materialize one image with a chosen strategy.

    The filesystem is removed again if the config cannot be obtained.
    """
    with log_duration(logger, f"Materialized {prepper.source} from {prepper.name}"):
        fs_path = prepper.get_filesystem()
    try:
        config = prepper.get_config()
    except BaseException:
        remove_tree(fs_path)
        raise
    logger.info(f"Finished prepping image {prepper.source}")
    return Image(prepper.source, fs_path, config, preserve=preserve)


class ImagePrepper:
    """Picks a strategy for an identifier and prepares the image.

    Example:
        prepper = ImagePrepper("daemon://myapp:latest")
        with prepper.get_image() as image:
            ...
    """

    def __init__(
        self,
        source: str,
        options: AnalysisOptions | None = None,
        cancel_event: threading.Event | None = None,
        daemon: DockerDaemon | None = None,
        registry: OCIRegistry | None = None,
    ) -> None:
        self.source = source
        self.options = options or AnalysisOptions()
        self.cancel_event = cancel_event or threading.Event()
        self.daemon = daemon
        self.registry = registry

    def _make(self, prepper_cls: type[BasePrepper], source: str) -> BasePrepper:
        return prepper_cls(
            source,
            options=self.options,
            cancel_event=self.cancel_event,
            daemon=self.daemon,
            registry=self.registry,
        )

    def _exclusive(self, prepper: BasePrepper) -> Image:
        logger.info(f"Retrieving image {prepper.source} from {prepper.name}")
        try:
            return build_image(prepper, preserve=self.options.preserve_filesystem)
        except MaterializationCancelled:
            raise
        except (ContainerDiffError, RegistryError) as e:
            raise SourceUnresolvedError(self.source, {prepper.name: str(e)}) from e

    def get_image(self) -> Image:
        """Prepare the image.

        Returns:
            The materialized image, owned by the caller

        Raises:
            SourceUnresolvedError: If no strategy could prepare the image
            MaterializationCancelled: If the cancel event was set
        """
        logger.info(f"Starting prep for image {self.source}")

        if self.source.startswith(DAEMON_PREFIX):
            return self._exclusive(self._make(DaemonPrepper, self.source[len(DAEMON_PREFIX):]))
        if self.source.startswith(REMOTE_PREFIX):
            return self._exclusive(self._make(CloudPrepper, self.source[len(REMOTE_PREFIX):]))

        failures: dict[str, str] = {}
        for prepper_cls in PREPPER_ORDER:
            prepper = self._make(prepper_cls, self.source)
            if not prepper.supports_image():
                continue
            logger.info(f"Attempting to retrieve image {prepper.source} from {prepper.name}")
            try:
                return build_image(prepper, preserve=self.options.preserve_filesystem)
            except MaterializationCancelled:
                raise
            except (ContainerDiffError, RegistryError) as e:
                logger.warning(f"{prepper.name} could not provide {prepper.source}: {e}")
                failures[prepper.name] = str(e)

        raise SourceUnresolvedError(self.source, failures)


def resolve(
    identifier: str,
    options: AnalysisOptions | None = None,
    cancel_event: threading.Event | None = None,
    daemon: DockerDaemon | None = None,
    registry: OCIRegistry | None = None,
) -> Image:
    """Resolve an identifier to a materialized image.

    Args:
        identifier: Image name, ``daemon://`` / ``remote://`` prefixed name, or archive path
        options: Run options (worker bound, filesystem preservation)
        cancel_event: Event that aborts materialization when set
        daemon: Docker daemon client to use
        registry: Registry client to use

    Returns:
        The materialized image, owned by the caller
    """
    return ImagePrepper(
        identifier,
        options=options,
        cancel_event=cancel_event,
        daemon=daemon,
        registry=registry,
    ).get_image()
