"""Shared test fixtures for container-diff tests."""

import bz2
import gzip
import hashlib
import io
import json
import lzma
import shutil
import tarfile
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Callable, Iterator

import httpx
import pytest

from container_diff.core.image import Image
from container_diff.models.image import ConfigSchema, ContainerConfig, HistoryItem, LayerInfo
from container_diff.registry.base import RegistryAuth, RegistryError, RegistryNotFoundError
from container_diff.registry.oci import OCIRegistry

# A layer member: ("file", name, content), ("dir", name), ("symlink", name, target),
# ("hardlink", name, target) or ("fifo", name)
Member = tuple


def build_tar(members: list[Member], compression: str = "none", mtime: int = 1_600_000_000) -> bytes:
    """Build a layer tar in memory, optionally compressed."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w", format=tarfile.PAX_FORMAT) as tar:
        for member in members:
            kind, name = member[0], member[1]
            info = tarfile.TarInfo(name)
            info.mtime = mtime
            data = None
            if kind == "file":
                content = member[2]
                info.size = len(content)
                info.mode = member[3] if len(member) > 3 else 0o644
                data = io.BytesIO(content)
            elif kind == "dir":
                info.type = tarfile.DIRTYPE
                info.mode = member[2] if len(member) > 2 else 0o755
            elif kind == "symlink":
                info.type = tarfile.SYMTYPE
                info.linkname = member[2]
            elif kind == "hardlink":
                info.type = tarfile.LNKTYPE
                info.linkname = member[2]
            elif kind == "fifo":
                info.type = tarfile.FIFOTYPE
            else:
                raise ValueError(f"unknown member kind {kind}")
            tar.addfile(info, data)
    raw = buf.getvalue()

    if compression == "gzip":
        return gzip.compress(raw)
    if compression == "bzip2":
        return bz2.compress(raw)
    if compression == "xz":
        return lzma.compress(raw)
    return raw


def build_config(history: list[str] | None = None, env: list[str] | None = None) -> dict[str, Any]:
    """Image config JSON as a daemon would write it."""
    return {
        "architecture": "amd64",
        "os": "linux",
        "config": {"Env": env if env is not None else ["PATH=/usr/bin"]},
        "history": [{"created_by": cmd} for cmd in (history or [])],
    }


def build_docker_save(
    path: Path,
    layers: list[bytes],
    config: dict[str, Any] | None = None,
    layout: str = "legacy",
    repo_tags: list[str] | None = None,
) -> Path:
    """Write a ``docker save`` archive holding the given layer blobs."""
    config_bytes = json.dumps(config or build_config()).encode()
    entries: dict[str, bytes] = {}

    if layout == "oci":
        config_name = "blobs/sha256/" + "c" * 64
        layer_names = [f"blobs/sha256/{i:064x}" for i in range(1, len(layers) + 1)]
    else:
        config_name = "c" * 64 + ".json"
        layer_names = [f"layer{i}/layer.tar" for i in range(len(layers))]

    entries[config_name] = config_bytes
    for name, blob in zip(layer_names, layers):
        entries[name] = blob
    manifest = [{"Config": config_name, "RepoTags": repo_tags or ["test/image:latest"], "Layers": layer_names}]
    entries["manifest.json"] = json.dumps(manifest).encode()

    with tarfile.open(path, "w") as tar:
        for name, data in entries.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return path


def populate(root: Path, tree: dict[str, Any]) -> Path:
    """Create files below root: bytes for files, None for dirs, ("symlink", target) for links."""
    root.mkdir(parents=True, exist_ok=True)
    for rel, value in tree.items():
        path = root / rel
        if value is None:
            path.mkdir(parents=True, exist_ok=True)
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(value, tuple):
            path.symlink_to(value[1])
        elif isinstance(value, str):
            path.write_text(value)
        else:
            path.write_bytes(value)
    return root


class FakeSource:
    """In-memory ImageSource with per-layer delays and failures."""

    def __init__(
        self,
        blobs: list[bytes],
        delays: dict[int, float] | None = None,
        failures: dict[int, Exception] | None = None,
        config: dict[str, Any] | None = None,
    ) -> None:
        self.blobs = blobs
        self.delays = delays or {}
        self.failures = failures or {}
        self.config = config or build_config()
        self.started: list[int] = []
        self.lock = threading.Lock()

    def layer_infos(self) -> list[LayerInfo]:
        return [LayerInfo(digest=f"sha256:{i:064x}") for i in range(len(self.blobs))]

    def _index(self, layer: LayerInfo) -> int:
        return int(layer.digest.split(":", 1)[1], 16)

    def iter_blob(self, layer: LayerInfo) -> Iterator[bytes]:
        index = self._index(layer)
        with self.lock:
            self.started.append(index)
        if index in self.delays:
            time.sleep(self.delays[index])
        if index in self.failures:
            raise self.failures[index]
        blob = self.blobs[index]
        for start in range(0, len(blob), 4096):
            yield blob[start : start + 4096]

    def config_blob(self) -> bytes:
        return json.dumps(self.config).encode()


class BrokenManifestSource(FakeSource):
    def __init__(self) -> None:
        super().__init__([])

    def layer_infos(self) -> list[LayerInfo]:
        raise RegistryError("manifest unknown")


@pytest.fixture
def fake_source() -> type[FakeSource]:
    """The in-memory ImageSource class; instantiate with layer blobs."""
    return FakeSource


@pytest.fixture
def broken_manifest_source() -> BrokenManifestSource:
    return BrokenManifestSource()


@pytest.fixture
def tar_factory() -> Callable[..., bytes]:
    """Build layer tars: tar_factory([("file", "etc/a", b"x")], compression="gzip")."""
    return build_tar


@pytest.fixture
def save_factory(tmp_path: Path) -> Callable[..., Path]:
    """Write docker save archives into the test's temp directory."""
    counter = iter(range(1000))

    def factory(layers: list[bytes], name: str | None = None, **kwargs: Any) -> Path:
        path = tmp_path / (name or f"image{next(counter)}.tar")
        return build_docker_save(path, layers, **kwargs)

    return factory


@pytest.fixture
def rootfs_factory(tmp_path: Path) -> Callable[[str, dict[str, Any]], Path]:
    """Create image root filesystems from a path -> content mapping."""

    def factory(name: str, tree: dict[str, Any]) -> Path:
        return populate(tmp_path / "rootfs" / name, tree)

    return factory


@pytest.fixture
def image_factory(rootfs_factory: Callable[[str, dict[str, Any]], Path]) -> Callable[..., Image]:
    """Create prepared Images over throwaway root filesystems."""

    def factory(
        source: str,
        tree: dict[str, Any] | None = None,
        history: list[str] | None = None,
        env: list[str] | None = None,
    ) -> Image:
        fs_path = rootfs_factory(source.replace("/", "_").replace(":", "_"), tree or {})
        config = ConfigSchema(
            config=ContainerConfig(env=env or []),
            history=[HistoryItem(created_by=cmd) for cmd in (history or [])],
        )
        return Image(source, fs_path, config)

    return factory


DPKG_STATUS_1 = """\
Package: libc6
Status: install ok installed
Installed-Size: 12000
Version: 2.35-0ubuntu3

Package: bash
Status: install ok installed
Installed-Size: 1800
Version: 5.1-6ubuntu1

Package: removed-thing
Status: deinstall ok config-files
Installed-Size: 10
Version: 1.0
"""

DPKG_STATUS_2 = """\
Package: libc6
Status: install ok installed
Installed-Size: 12100
Version: 2.35-0ubuntu3.1

Package: curl
Status: install ok installed
Installed-Size: 450
Version: 7.81.0-1
Description: command line tool
 for transferring data
"""


@pytest.fixture
def dpkg_status_pair() -> tuple[str, str]:
    return DPKG_STATUS_1, DPKG_STATUS_2


class MockRegistryServer:
    """Request handler for httpx.MockTransport serving images from memory.

    Images are keyed ``repository:tag`` and served from registry.example.com.
    """

    MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
    LAYER_TYPE = "application/vnd.docker.image.rootfs.diff.tar.gzip"

    def __init__(self) -> None:
        self.manifests: dict[str, dict[str, Any]] = {}
        self.blobs: dict[str, bytes] = {}
        self.requests: list[httpx.Request] = []

    def add_image(self, name: str, layers: list[bytes], config: dict[str, Any] | None = None) -> None:
        repository, tag = name.rsplit(":", 1)
        config_bytes = json.dumps(config or build_config()).encode()
        config_digest = self._store(config_bytes)
        self.manifests[f"{repository}:{tag}"] = {
            "schemaVersion": 2,
            "mediaType": self.MANIFEST_V2,
            "config": {"mediaType": "application/vnd.docker.container.image.v1+json", "digest": config_digest},
            "layers": [
                {"mediaType": self.LAYER_TYPE, "digest": self._store(blob), "size": len(blob)} for blob in layers
            ],
        }

    def _store(self, data: bytes) -> str:
        digest = "sha256:" + hashlib.sha256(data).hexdigest()
        self.blobs[digest] = data
        return digest

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if "/manifests/" in path:
            repository, reference = path[len("/v2/"):].split("/manifests/")
            manifest = self.manifests.get(f"{repository}:{reference}")
            if manifest is None:
                return httpx.Response(404, json={"errors": [{"code": "MANIFEST_UNKNOWN"}]})
            return httpx.Response(200, json=manifest, headers={"content-type": self.MANIFEST_V2})
        if "/blobs/" in path:
            digest = path.rsplit("/", 1)[1]
            if digest not in self.blobs:
                return httpx.Response(404)
            return httpx.Response(200, content=self.blobs[digest])
        return httpx.Response(404)


class FakeDaemon:
    """Stands in for DockerDaemon with pre-built docker save archives."""

    def __init__(self, archives: dict[str, Path] | None = None) -> None:
        self.archives = archives or {}
        self.failures: dict[str, Exception] = {}
        self.saved: list[str] = []

    def image_exists(self, reference: str) -> bool:
        return reference in self.archives or reference in self.failures

    def save(self, reference: str, dest: Path) -> Path:
        if reference in self.failures:
            raise self.failures[reference]
        if reference not in self.archives:
            raise RegistryNotFoundError(reference)
        self.saved.append(reference)
        shutil.copyfile(self.archives[reference], dest)
        return dest


@pytest.fixture
def registry_server() -> MockRegistryServer:
    return MockRegistryServer()


@pytest.fixture
def mock_registry(registry_server: MockRegistryServer) -> OCIRegistry:
    """OCIRegistry whose HTTP traffic is answered by registry_server."""
    return OCIRegistry(auth=RegistryAuth(), transport=httpx.MockTransport(registry_server))


@pytest.fixture
def fake_daemon() -> FakeDaemon:
    return FakeDaemon()


@pytest.fixture
def scratch(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Redirect scratch directories so leftovers can be inspected."""
    directory = tmp_path / "scratch"
    directory.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(directory))
    return directory
