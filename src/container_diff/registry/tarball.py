"""Reader for ``docker save`` archives."""

from __future__ import annotations

import json
import posixpath
import tarfile
from pathlib import Path
from typing import IO, Any, Iterator

from container_diff.models.image import LayerInfo
from container_diff.registry.base import RegistryError, RegistryNotFoundError

_BLOB_CHUNK = 1024 * 1024

TAR_SUFFIXES = (".tar", ".tar.gz", ".tgz")


def is_tar_path(identifier: str) -> bool:
    """Check whether an identifier names a local image archive."""
    return identifier.lower().endswith(TAR_SUFFIXES)


class DockerSaveArchive:
    """ImageSource over an archive written by ``docker save``.

    Handles both the legacy layout (``<id>/layer.tar`` members) and the OCI
    layout written by newer daemons (``blobs/sha256/<hex>`` members). Every
    ``iter_blob`` call opens its own handle on the archive, so layers can be
    read from several threads at once.

    Example:
        archive = DockerSaveArchive("ubuntu.tar")
        for layer in archive.layer_infos():
            for chunk in archive.iter_blob(layer):
                ...
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        if not self.path.is_file():
            raise RegistryNotFoundError(str(self.path))
        self._manifest: dict[str, Any] | None = None
        self._members: dict[str, str] = {}

    def _open(self) -> tarfile.TarFile:
        try:
            return tarfile.open(self.path, "r:*")
        except (tarfile.TarError, OSError) as e:
            raise RegistryError(f"Cannot open image archive {self.path}: {e}") from e

    @staticmethod
    def _read_member(tar: tarfile.TarFile, name: str) -> bytes:
        try:
            member = tar.getmember(name)
        except KeyError:
            raise RegistryNotFoundError(f"{name} in image archive") from None
        handle = tar.extractfile(member)
        if handle is None:
            raise RegistryError(f"Archive member {name} is not a regular file")
        with handle:
            return handle.read()

    @property
    def manifest(self) -> dict[str, Any]:
        """First entry of the archive's manifest.json."""
        if self._manifest is None:
            with self._open() as tar:
                raw = self._read_member(tar, "manifest.json")
            try:
                entries = json.loads(raw)
            except ValueError as e:
                raise RegistryError(f"Invalid manifest.json in {self.path}: {e}") from e
            if not isinstance(entries, list) or not entries:
                raise RegistryError(f"Empty manifest.json in {self.path}")
            self._manifest = entries[0]
        return self._manifest

    @property
    def repo_tags(self) -> list[str]:
        return list(self.manifest.get("RepoTags") or [])

    @staticmethod
    def _digest_for(member: str) -> str:
        # blobs/sha256/<hex> carries its digest in the path; legacy layers use their directory id
        parts = member.split("/")
        if len(parts) == 3 and parts[0] == "blobs":
            return f"{parts[1]}:{parts[2]}"
        return posixpath.dirname(member) or member

    def layer_infos(self) -> list[LayerInfo]:
        layers = []
        members = {}
        for member in self.manifest.get("Layers") or []:
            digest = self._digest_for(member)
            members[digest] = member
            layers.append(LayerInfo(digest=digest))
        self._members = members
        return layers

    def member_for(self, layer: LayerInfo) -> str:
        if not self._members:
            self.layer_infos()
        try:
            return self._members[layer.digest]
        except KeyError:
            raise RegistryNotFoundError(f"layer {layer.digest} in {self.path}") from None

    def iter_blob(self, layer: LayerInfo) -> Iterator[bytes]:
        member = self.member_for(layer)
        with self._open() as tar:
            try:
                info = tar.getmember(member)
            except KeyError:
                raise RegistryNotFoundError(f"{member} in image archive") from None
            handle = tar.extractfile(info)
            if handle is None:
                raise RegistryError(f"Layer member {member} is not a regular file")
            with handle:
                while chunk := handle.read(_BLOB_CHUNK):
                    yield chunk

    def open_layer(self, tar: tarfile.TarFile, layer: LayerInfo) -> IO[bytes]:
        """Open a layer member on an already opened archive handle."""
        member = self.member_for(layer)
        try:
            handle = tar.extractfile(tar.getmember(member))
        except KeyError:
            raise RegistryNotFoundError(f"{member} in image archive") from None
        if handle is None:
            raise RegistryError(f"Layer member {member} is not a regular file")
        return handle

    def open(self) -> tarfile.TarFile:
        """Open the archive for sequential layer reads."""
        return self._open()

    def config_blob(self) -> bytes:
        config = self.manifest.get("Config")
        if not config:
            raise RegistryError(f"manifest.json in {self.path} has no Config entry")
        with self._open() as tar:
            return self._read_member(tar, config)
