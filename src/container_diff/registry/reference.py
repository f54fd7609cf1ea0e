"""Image reference parsing."""

from __future__ import annotations

import re

from pydantic import BaseModel, Field

DEFAULT_REGISTRY = "docker.io"
DEFAULT_TAG = "latest"

_REPOSITORY_RE = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*(?:/[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*)*$")
_TAG_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")
_DIGEST_RE = re.compile(r"^[a-z0-9]+(?:[+._-][a-z0-9]+)*:[A-Fa-f0-9]{32,}$")


class ImageReference(BaseModel):
    """A parsed ``registry/repository:tag@digest`` reference."""

    model_config = {"frozen": True}

    registry: str = Field(default=DEFAULT_REGISTRY, description="Registry hostname")
    repository: str = Field(description="Repository path inside the registry")
    tag: str | None = Field(default=None, description="Tag, if given")
    digest: str | None = Field(default=None, description="Manifest digest, if given")

    @property
    def reference(self) -> str:
        """Tag or digest used to address the manifest."""
        return self.digest or self.tag or DEFAULT_TAG

    @property
    def is_docker_hub(self) -> bool:
        return self.registry in ("docker.io", "index.docker.io", "registry-1.docker.io")

    def __str__(self) -> str:
        value = f"{self.registry}/{self.repository}"
        if self.tag:
            value += f":{self.tag}"
        if self.digest:
            value += f"@{self.digest}"
        return value

    @classmethod
    def parse(cls, reference: str) -> "ImageReference":
        """Parse an image reference.

        Args:
            reference: Reference such as ``ubuntu:22.04`` or ``gcr.io/proj/app@sha256:...``

        Returns:
            Parsed reference with docker.io defaults applied

        Raises:
            ValueError: If the reference is not a valid image name
        """
        original = reference
        if not reference or reference != reference.strip():
            raise ValueError(f"Invalid image reference: {original!r}")

        digest = None
        if "@" in reference:
            reference, digest = reference.rsplit("@", 1)
            if not _DIGEST_RE.match(digest):
                raise ValueError(f"Invalid digest in image reference: {original}")

        tag = None
        name = reference
        colon = reference.rfind(":")
        if colon > reference.rfind("/"):
            name, tag = reference[:colon], reference[colon + 1:]
            if not _TAG_RE.match(tag):
                raise ValueError(f"Invalid tag in image reference: {original}")

        parts = name.split("/")
        registry = DEFAULT_REGISTRY
        if len(parts) > 1 and ("." in parts[0] or ":" in parts[0] or parts[0] == "localhost"):
            registry = parts[0]
            parts = parts[1:]

        repository = "/".join(parts)
        if not _REPOSITORY_RE.match(repository):
            raise ValueError(f"Invalid repository name in image reference: {original}")

        if registry in ("docker.io", "index.docker.io") and "/" not in repository:
            repository = f"library/{repository}"

        return cls(registry=registry, repository=repository, tag=tag, digest=digest)

    @classmethod
    def is_valid(cls, reference: str) -> bool:
        """Check whether a string parses as an image reference."""
        try:
            cls.parse(reference)
        except ValueError:
            return False
        return True
