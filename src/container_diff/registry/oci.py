"""OCI distribution registry client."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Iterator

import httpx

from container_diff.models.image import LayerInfo
from container_diff.registry.base import (
    RegistryAuth,
    RegistryAuthError,
    RegistryError,
    RegistryNotFoundError,
)
from container_diff.registry.reference import ImageReference
from container_diff.utils.logging import get_logger

logger = get_logger("registry.oci")

_BLOB_CHUNK = 1024 * 1024


class OCIRegistry:
    """Registry client for OCI-compliant container registries.

    Implements the parts of the OCI Distribution Specification needed to
    materialize an image: manifest (and manifest list) resolution, config
    retrieval and streaming blob download, with bearer-token auth.

    Example:
        registry = OCIRegistry()
        ref = ImageReference.parse("ubuntu:22.04")
        manifest = registry.get_manifest(ref)
        for chunk in registry.iter_blob(ref, manifest["layers"][0]["digest"]):
            ...
    """

    # Well-known registry URLs
    REGISTRY_URLS = {
        "docker.io": "https://registry-1.docker.io",
        "index.docker.io": "https://registry-1.docker.io",
        "registry-1.docker.io": "https://registry-1.docker.io",
    }

    # Media types
    MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
    MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"
    OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
    OCI_INDEX = "application/vnd.oci.image.index.v1+json"

    INDEX_TYPES = (MANIFEST_LIST, OCI_INDEX)

    def __init__(
        self,
        auth: RegistryAuth | None = None,
        timeout: float = 60.0,
        max_retries: int = 3,
        platform: str = "linux/amd64",
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the OCI registry client.

        Args:
            auth: Authentication credentials (defaults to the environment)
            timeout: Request timeout in seconds
            max_retries: Connection retry attempts
            platform: ``os/arch[/variant]`` picked from manifest lists
            transport: Custom httpx transport
        """
        self._auth = auth or RegistryAuth.from_env()
        self._timeout = timeout
        self._max_retries = max_retries
        self._platform = platform
        self._transport = transport
        self._token_cache: dict[str, str] = {}
        self._token_lock = threading.Lock()

    def _get_registry_url(self, registry: str) -> str:
        """Get the registry URL for a registry hostname."""
        if registry in self.REGISTRY_URLS:
            return self.REGISTRY_URLS[registry]
        if registry.startswith("localhost") or registry.startswith("127.0.0.1"):
            return f"http://{registry}"
        return f"https://{registry}"

    def _get_client(self) -> httpx.Client:
        """Create an HTTP client with retry support."""
        transport = self._transport or httpx.HTTPTransport(retries=self._max_retries)
        return httpx.Client(
            timeout=self._timeout,
            transport=transport,
            follow_redirects=True,
        )

    def _get_token(self, client: httpx.Client, www_authenticate: str, repository: str) -> str:
        """Get a bearer token for a repository.

        Args:
            client: HTTP client
            www_authenticate: WWW-Authenticate header value
            repository: Repository name for scope

        Returns:
            Bearer token
        """
        if self._auth and self._auth.token:
            return self._auth.token

        # Format: Bearer realm="...",service="...",scope="..."
        params = {}
        for part in www_authenticate[len("Bearer "):].split(","):
            if "=" in part:
                key, value = part.split("=", 1)
                params[key.strip()] = value.strip().strip('"')

        realm = params.get("realm")
        if not realm:
            raise RegistryAuthError("No realm in WWW-Authenticate header")

        token_params = {
            "service": params.get("service", ""),
            "scope": f"repository:{repository}:pull",
        }

        auth = None
        if self._auth and self._auth.username and self._auth.password:
            auth = (self._auth.username, self._auth.password)

        response = client.get(realm, params=token_params, auth=auth)

        if response.status_code == 401:
            raise RegistryAuthError(f"Token authentication failed for {repository}")
        if response.status_code != 200:
            raise RegistryError(f"Token request failed: {response.status_code}")

        data = response.json()
        return data.get("token") or data.get("access_token", "")

    def _send(
        self,
        client: httpx.Client,
        url: str,
        repository: str,
        headers: dict[str, str] | None = None,
        stream: bool = False,
    ) -> httpx.Response:
        """Send an authenticated GET, fetching a token on the first 401."""
        headers = dict(headers or {})

        with self._token_lock:
            token = self._token_cache.get(repository)
        if token:
            headers["Authorization"] = f"Bearer {token}"

        response = client.send(client.build_request("GET", url, headers=headers), stream=stream)

        if response.status_code == 401:
            www_auth = response.headers.get("www-authenticate", "")
            if www_auth.lower().startswith("bearer"):
                response.close()
                token = self._get_token(client, www_auth, repository)
                with self._token_lock:
                    self._token_cache[repository] = token
                headers["Authorization"] = f"Bearer {token}"
                response = client.send(client.build_request("GET", url, headers=headers), stream=stream)

        return response

    @staticmethod
    def _check(response: httpx.Response, what: str) -> None:
        if response.status_code == 404:
            raise RegistryNotFoundError(what)
        if response.status_code in (401, 403):
            raise RegistryAuthError(f"Access denied to {what}")
        if response.status_code != 200:
            raise RegistryError(f"Failed to fetch {what}: HTTP {response.status_code}")

    def _base(self, ref: ImageReference) -> str:
        return f"{self._get_registry_url(ref.registry)}/v2/{ref.repository}"

    def _fetch_manifest(self, client: httpx.Client, ref: ImageReference, reference: str) -> tuple[dict[str, Any], str]:
        url = f"{self._base(ref)}/manifests/{reference}"
        headers = {
            "Accept": ", ".join([self.MANIFEST_V2, self.OCI_MANIFEST, self.MANIFEST_LIST, self.OCI_INDEX])
        }
        response = self._send(client, url, ref.repository, headers=headers)
        self._check(response, f"manifest {ref.repository}:{reference}")
        data = response.json()
        media_type = data.get("mediaType") or response.headers.get("content-type", "").split(";")[0]
        return data, media_type

    def _select_platform(self, manifests: list[dict[str, Any]], ref: ImageReference) -> str:
        os_name, _, rest = self._platform.partition("/")
        arch, _, variant = rest.partition("/")
        for entry in manifests:
            platform = entry.get("platform") or {}
            if platform.get("os") != os_name or platform.get("architecture") != arch:
                continue
            if variant and platform.get("variant") not in (None, variant):
                continue
            return entry["digest"]
        raise RegistryNotFoundError(f"{ref} for platform {self._platform}")

    def get_manifest(self, ref: ImageReference) -> dict[str, Any]:
        """Get the image manifest, resolving manifest lists to the configured platform.

        Args:
            ref: Parsed image reference

        Returns:
            The image manifest JSON

        Raises:
            RegistryNotFoundError: If the image or platform is not found
            RegistryAuthError: If authentication fails
            RegistryError: For other errors
        """
        with self._get_client() as client:
            try:
                data, media_type = self._fetch_manifest(client, ref, ref.reference)

                if media_type in self.INDEX_TYPES or "manifests" in data:
                    digest = self._select_platform(data.get("manifests", []), ref)
                    logger.debug(f"Selected {digest} for {self._platform} from manifest list of {ref}")
                    data, media_type = self._fetch_manifest(client, ref, digest)
            except httpx.HTTPError as e:
                raise RegistryError(f"Failed to fetch manifest for {ref}: {e}") from e

        if data.get("schemaVersion") != 2:
            raise RegistryError(f"Unsupported manifest schema version {data.get('schemaVersion')} for {ref}")
        return data

    def get_layers(self, ref: ImageReference, manifest: dict[str, Any] | None = None) -> list[LayerInfo]:
        """Get the ordered layers of an image."""
        manifest = manifest or self.get_manifest(ref)
        return [
            LayerInfo(
                digest=layer["digest"],
                size_hint=layer.get("size", 0),
                media_type=layer.get("mediaType"),
            )
            for layer in manifest.get("layers", [])
        ]

    def get_config_blob(self, ref: ImageReference, manifest: dict[str, Any] | None = None) -> bytes:
        """Get the raw config blob of an image."""
        manifest = manifest or self.get_manifest(ref)
        digest = (manifest.get("config") or {}).get("digest")
        if not digest:
            raise RegistryError(f"Manifest for {ref} has no config descriptor")

        with self._get_client() as client:
            try:
                response = self._send(client, f"{self._base(ref)}/blobs/{digest}", ref.repository)
            except httpx.HTTPError as e:
                raise RegistryError(f"Failed to fetch config blob {digest}: {e}") from e
            self._check(response, f"config blob {digest}")
            return response.content

    def iter_blob(self, ref: ImageReference, digest: str, chunk_size: int = _BLOB_CHUNK) -> Iterator[bytes]:
        """Stream a blob in chunks.

        Args:
            ref: Parsed image reference
            digest: Blob digest
            chunk_size: Bytes per yielded chunk

        Yields:
            Chunks of the blob as stored in the registry

        Raises:
            RegistryNotFoundError: If the blob is not found
            RegistryError: For other errors
        """
        with self._get_client() as client, self._stream(client, ref, digest) as response:
            try:
                yield from response.iter_bytes(chunk_size)
            except httpx.HTTPError as e:
                raise RegistryError(f"Failed while downloading blob {digest}: {e}") from e

    @contextmanager
    def _stream(self, client: httpx.Client, ref: ImageReference, digest: str) -> Iterator[httpx.Response]:
        try:
            response = self._send(client, f"{self._base(ref)}/blobs/{digest}", ref.repository, stream=True)
        except httpx.HTTPError as e:
            raise RegistryError(f"Failed to fetch blob {digest}: {e}") from e
        try:
            self._check(response, f"blob {digest}")
            yield response
        finally:
            response.close()


class RegistrySource:
    """ImageSource over one image in an OCI registry.

    The manifest is fetched once, on first use.
    """

    def __init__(self, registry: OCIRegistry, reference: ImageReference) -> None:
        self.registry = registry
        self.reference = reference
        self._manifest: dict[str, Any] | None = None
        self._lock = threading.Lock()

    @property
    def manifest(self) -> dict[str, Any]:
        with self._lock:
            if self._manifest is None:
                self._manifest = self.registry.get_manifest(self.reference)
            return self._manifest

    def layer_infos(self) -> list[LayerInfo]:
        return self.registry.get_layers(self.reference, self.manifest)

    def iter_blob(self, layer: LayerInfo) -> Iterator[bytes]:
        return self.registry.iter_blob(self.reference, layer.digest)

    def config_blob(self) -> bytes:
        return self.registry.get_config_blob(self.reference, self.manifest)
