"""Materialized image handle."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from types import TracebackType

from pydantic import ValidationError

from container_diff.models.image import ConfigSchema
from container_diff.utils.errors import ConfigParseError
from container_diff.utils.fs import remove_tree
from container_diff.utils.logging import get_logger

logger = get_logger("image")


def parse_config(data: bytes | str, source: str | None = None) -> ConfigSchema:
    """Parse an image config blob.

    Args:
        data: Raw config JSON
        source: Image identifier, used for error context

    Returns:
        Parsed config

    Raises:
        ConfigParseError: If the blob is not a valid image config
    """
    try:
        raw = json.loads(data)
    except (ValueError, UnicodeDecodeError) as e:
        raise ConfigParseError(f"Invalid config JSON for image {source}: {e}", source=source) from e

    if not isinstance(raw, dict):
        raise ConfigParseError(f"Config for image {source} is not a JSON object", source=source)

    # Daemons write null for empty sections
    raw = {k: v for k, v in raw.items() if v is not None}
    if isinstance(raw.get("config"), dict) and raw["config"].get("Env") is None:
        raw["config"] = {k: v for k, v in raw["config"].items() if k != "Env"}

    try:
        return ConfigSchema.model_validate(raw)
    except ValidationError as e:
        raise ConfigParseError(f"Unexpected config structure for image {source}: {e}", source=source) from e


class Image:
    """A prepared image: its identifier, materialized filesystem and config.

    The filesystem directory belongs to whoever obtained the Image and is
    removed by ``cleanup()`` unless the caller asked to preserve it.

    Example:
        with resolve("ubuntu:22.04") as image:
            print(image.fs_path, image.config.env)
    """

    def __init__(self, source: str, fs_path: Path | str, config: ConfigSchema, preserve: bool = False) -> None:
        """Initialize the image handle.

        Args:
            source: Identifier the image was resolved from
            fs_path: Root of the materialized filesystem
            config: Parsed image config
            preserve: Keep the filesystem when cleaning up
        """
        self._source = source
        self._fs_path = Path(fs_path)
        self._config = config
        self.preserve = preserve
        self._cleaned = False
        self._lock = threading.Lock()

    @property
    def source(self) -> str:
        """Get the identifier the image was resolved from."""
        return self._source

    @property
    def fs_path(self) -> Path:
        """Get the root of the materialized filesystem."""
        return self._fs_path

    @property
    def config(self) -> ConfigSchema:
        """Get the parsed image config."""
        return self._config

    @property
    def cleaned(self) -> bool:
        return self._cleaned

    def cleanup(self) -> None:
        """Release the materialized filesystem. Further calls do nothing."""
        with self._lock:
            if self._cleaned:
                return
            self._cleaned = True
        if self.preserve:
            logger.info(f"Image filesystem for {self._source} preserved at {self._fs_path}")
            return
        remove_tree(self._fs_path)

    def __enter__(self) -> "Image":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.cleanup()

    def __repr__(self) -> str:
        return f"Image(source={self._source!r}, fs_path={str(self._fs_path)!r})"
