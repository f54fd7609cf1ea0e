"""Error handling utilities for container-diff."""

from __future__ import annotations

from typing import Any

from container_diff.models.common import ErrorInfo


class ContainerDiffError(Exception):
    """Base exception for container-diff."""

    def __init__(self, message: str, code: str = "UNKNOWN_ERROR", details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_error_info(self) -> ErrorInfo:
        """Convert to ErrorInfo model."""
        return ErrorInfo(code=self.code, message=self.message, details=self.details)


class SourceUnresolvedError(ContainerDiffError):
    """No prepper strategy could materialize the image."""

    def __init__(self, identifier: str, failures: dict[str, str] | None = None):
        failures = failures or {}
        message = f"Could not retrieve image {identifier} from any source"
        if failures:
            reasons = "; ".join(f"{name}: {reason}" for name, reason in failures.items())
            message = f"{message} ({reasons})"
        super().__init__(
            message,
            code="SOURCE_UNRESOLVED",
            details={"identifier": identifier, "failures": failures},
        )
        self.identifier = identifier
        self.failures = failures


class LayerFetchError(ContainerDiffError):
    """A layer blob could not be fetched."""

    def __init__(self, digest: str, reason: str, source: str | None = None):
        details: dict[str, Any] = {"digest": digest}
        if source:
            details["source"] = source
        super().__init__(
            f"Failed to pull image layer {digest}: {reason}",
            code="LAYER_FETCH_ERROR",
            details=details,
        )
        self.digest = digest


class DecompressionError(ContainerDiffError):
    """A layer blob could not be identified or decompressed."""

    def __init__(self, message: str, digest: str | None = None):
        details = {"digest": digest} if digest else {}
        super().__init__(message, code="DECOMPRESSION_ERROR", details=details)
        self.digest = digest


class ArchiveError(ContainerDiffError):
    """A tar stream is malformed, unsafe, or could not be written."""

    def __init__(self, message: str, member: str | None = None):
        details = {"member": member} if member else {}
        super().__init__(message, code="ARCHIVE_ERROR", details=details)
        self.member = member


class LayerPipelineError(ContainerDiffError):
    """Several layers failed while being fetched."""

    def __init__(self, errors: list[ContainerDiffError]):
        joined = "; ".join(error.message for error in errors)
        super().__init__(
            f"{len(errors)} layers failed: {joined}",
            code="LAYER_PIPELINE_ERROR",
            details={"errors": [error.to_error_info().model_dump() for error in errors]},
        )
        self.errors = errors


class MaterializationCancelled(ContainerDiffError):
    """Image materialization was cancelled."""

    def __init__(self, applied_layers: int = 0):
        super().__init__(
            f"Materialization cancelled after {applied_layers} applied layers",
            code="CANCELLED",
            details={"applied_layers": applied_layers},
        )
        self.applied_layers = applied_layers


class ConfigParseError(ContainerDiffError):
    """The image config blob could not be obtained or parsed."""

    def __init__(self, message: str, source: str | None = None):
        details = {"source": source} if source else {}
        super().__init__(message, code="CONFIG_PARSE_ERROR", details=details)


class UnsupportedAnalyzerError(ContainerDiffError):
    """An analyzer cannot run against the contents of an image."""

    def __init__(self, analyzer: str, image: str, reason: str):
        super().__init__(
            f"Analyzer '{analyzer}' cannot analyze {image}: {reason}",
            code="UNSUPPORTED_ANALYZER",
            details={"analyzer": analyzer, "image": image},
        )
        self.analyzer = analyzer
        self.image = image


class UnknownAnalyzerError(ContainerDiffError):
    """A requested analyzer name is not registered."""

    def __init__(self, name: str, available: list[str] | None = None):
        available = sorted(available or [])
        message = f"Argument {name} is not a valid analyzer"
        if available:
            message = f"{message} (available: {', '.join(available)})"
        super().__init__(
            message,
            code="UNKNOWN_ANALYZER",
            details={"analyzer": name, "available": available},
        )
        self.name = name


class RenderError(ContainerDiffError):
    """A result could not be rendered."""

    def __init__(self, message: str, analyzer: str | None = None):
        details = {"analyzer": analyzer} if analyzer else {}
        super().__init__(message, code="RENDER_ERROR", details=details)


class ConfigurationError(ContainerDiffError):
    """Configuration error."""

    def __init__(self, message: str, config_key: str | None = None):
        details = {"config_key": config_key} if config_key else {}
        super().__init__(message, code="CONFIG_ERROR", details=details)


def validate_image_reference(reference: str) -> None:
    """Validate an image identifier given on the command line.

    Args:
        reference: Image identifier to validate

    Raises:
        ValueError: If the identifier is invalid
    """
    if not reference:
        raise ValueError("Image identifier cannot be empty")

    if reference.startswith("-"):
        raise ValueError("Image identifier cannot start with '-'")

    invalid_chars = set("<>|\"'")
    for char in invalid_chars:
        if char in reference:
            raise ValueError(f"Image identifier contains invalid character: {char}")
