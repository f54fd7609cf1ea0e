"""Base analyzer protocol."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from container_diff.models.results import AnalyzeResult, DiffResult

if TYPE_CHECKING:
    from container_diff.core.image import Image


@runtime_checkable
class Analyzer(Protocol):
    """Protocol for image analyzers.

    An analyzer turns materialized images into results: two images in diff
    mode, one in analysis mode. Analyzers only read the image filesystem and
    config; they never modify them, so one image can be shared by several
    analyzers running concurrently.

    To implement a custom analyzer:
    1. Create a class that implements this protocol
    2. Register it with AnalyzerRegistry

    Example:
        class MyAnalyzer:
            @property
            def name(self) -> str:
                return "my_analyzer"

            @property
            def description(self) -> str:
                return "Counts files under /opt"

            def diff(self, image1: Image, image2: Image) -> DiffResult:
                ...

            def analyze(self, image: Image) -> AnalyzeResult:
                ...
    """

    @property
    def name(self) -> str:
        """Unique name used to request this analyzer."""
        ...

    @property
    def description(self) -> str:
        """Human-readable description of what this analyzer compares."""
        ...

    def diff(self, image1: "Image", image2: "Image") -> DiffResult:
        """Compare two images.

        Raises:
            UnsupportedAnalyzerError: If an image lacks the data this analyzer reads
        """
        ...

    def analyze(self, image: "Image") -> AnalyzeResult:
        """Describe one image.

        Raises:
            UnsupportedAnalyzerError: If the image lacks the data this analyzer reads
        """
        ...
