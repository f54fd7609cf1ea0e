"""Concurrent layer acquisition with in-order application."""

from __future__ import annotations

import tempfile
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from pathlib import Path

from container_diff.core.archive import unpack_tar
from container_diff.core.compression import decompress_to
from container_diff.models.image import LayerInfo
from container_diff.registry.base import ImageSource, RegistryError
from container_diff.utils.errors import (
    ArchiveError,
    ContainerDiffError,
    LayerFetchError,
    LayerPipelineError,
    MaterializationCancelled,
)
from container_diff.utils.logging import get_logger, get_logger_with_context

logger = get_logger("layers")


class LayerPipeline:
    """Fetches and decompresses layers concurrently, then applies them in order.

    Each layer gets its own worker and its own staging files; workers share
    nothing but the cancellation event. Application to the destination is
    strictly sequential in manifest order, whatever order the fetches
    complete in.

    Example:
        pipeline = LayerPipeline(RegistrySource(OCIRegistry(), ref), max_workers=4)
        layers = pipeline.run(Path("/tmp/rootfs"))
    """

    def __init__(
        self,
        source: ImageSource,
        max_workers: int = 8,
        cancel_event: threading.Event | None = None,
        name: str | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            source: Where layer blobs come from
            max_workers: Upper bound on concurrent fetch workers
            cancel_event: Event that stops the pipeline when set
            name: Image identifier used in logs and errors
        """
        self.source = source
        self.max_workers = max(1, max_workers)
        self.cancel_event = cancel_event or threading.Event()
        self.name = name
        self._log = get_logger_with_context("layers", image=name or "image")

    def _layer_infos(self) -> list[LayerInfo]:
        try:
            return self.source.layer_infos()
        except RegistryError as e:
            raise LayerFetchError("manifest", str(e), source=self.name) from e

    def _fetch_one(self, index: int, layer: LayerInfo, staging: Path) -> Path:
        """Download one blob and decompress it into a staging tar."""
        if self.cancel_event.is_set():
            raise MaterializationCancelled()

        blob_path = staging / f"{index:04d}.blob"
        self._log.debug(f"Fetching layer {index + 1} {layer.short_digest}")
        try:
            with open(blob_path, "wb") as f:
                for chunk in self.source.iter_blob(layer):
                    if self.cancel_event.is_set():
                        raise MaterializationCancelled()
                    f.write(chunk)
        except RegistryError as e:
            raise LayerFetchError(layer.digest, str(e), source=self.name) from e
        except OSError as e:
            raise LayerFetchError(layer.digest, f"cannot stage blob: {e}", source=self.name) from e

        tar_path = staging / f"{index:04d}.tar"
        with open(blob_path, "rb") as src, open(tar_path, "wb") as out:
            decompress_to(src, out, digest=layer.digest)
        blob_path.unlink()
        return tar_path

    def _fetch_all(self, layers: list[LayerInfo], staging: Path) -> list[Path]:
        workers = min(self.max_workers, len(layers))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="layer-fetch") as executor:
            futures: list[Future[Path]] = [
                executor.submit(self._fetch_one, index, layer, staging) for index, layer in enumerate(layers)
            ]
            try:
                wait(futures)
            except KeyboardInterrupt:
                self.cancel_event.set()
                raise

        if self.cancel_event.is_set():
            raise MaterializationCancelled()

        # Every worker has finished; collect all failures rather than the first
        errors: list[ContainerDiffError] = []
        staged: list[Path] = []
        for layer, future in zip(layers, futures):
            exc = future.exception()
            if exc is None:
                staged.append(future.result())
            elif isinstance(exc, ContainerDiffError):
                errors.append(exc)
            else:
                wrapped = LayerFetchError(layer.digest, str(exc), source=self.name)
                wrapped.__cause__ = exc
                errors.append(wrapped)

        if len(errors) == 1:
            raise errors[0]
        if errors:
            raise LayerPipelineError(errors)
        return staged

    def _apply_all(self, layers: list[LayerInfo], staged: list[Path], dest: Path) -> None:
        total = len(layers)
        for applied, (layer, tar_path) in enumerate(zip(layers, staged)):
            if self.cancel_event.is_set():
                raise MaterializationCancelled(applied)
            self._log.debug(f"Applying layer {applied + 1}/{total} {layer.short_digest}")
            try:
                with open(tar_path, "rb") as f:
                    unpack_tar(f, dest)
            except ArchiveError as e:
                e.details["digest"] = layer.digest
                raise
            tar_path.unlink()

    def run(self, dest: Path | str) -> list[LayerInfo]:
        """Materialize every layer of the source into a directory.

        Args:
            dest: Directory the image filesystem is built in

        Returns:
            The layers that were applied, in application order

        Raises:
            LayerFetchError: If one layer could not be fetched
            DecompressionError: If one layer could not be decompressed
            LayerPipelineError: If several layers failed
            ArchiveError: If a layer could not be applied
            MaterializationCancelled: If the cancel event was set
        """
        dest = Path(dest)
        dest.mkdir(parents=True, exist_ok=True)

        layers = self._layer_infos()
        if not layers:
            logger.info(f"No layers to apply for {self.name or 'image'}")
            return []

        logger.info(f"Retrieving {len(layers)} layers for {self.name or 'image'}")
        with tempfile.TemporaryDirectory(prefix="container-diff-layers-") as staging:
            staged = self._fetch_all(layers, Path(staging))
            self._apply_all(layers, staged, dest)
        return layers
