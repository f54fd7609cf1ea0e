"""Analyzer registry for managing and discovering analyzers."""

from __future__ import annotations

import threading
from typing import Iterator

from container_diff.analyzers.base import Analyzer
from container_diff.utils.errors import UnknownAnalyzerError


class AnalyzerRegistry:
    """Registry mapping analyzer names to analyzers.

    Example:
        registry = AnalyzerRegistry()
        registry.register(FileAnalyzer())
        registry.register(AptAnalyzer())

        result = registry["file"].diff(image1, image2)
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._analyzers: dict[str, Analyzer] = {}

    def register(self, analyzer: Analyzer) -> None:
        """Register an analyzer.

        Args:
            analyzer: The analyzer to register

        Raises:
            ValueError: If an analyzer with the same name is already registered
        """
        if analyzer.name in self._analyzers:
            raise ValueError(f"Analyzer '{analyzer.name}' is already registered")
        self._analyzers[analyzer.name] = analyzer

    def unregister(self, name: str) -> None:
        """Unregister an analyzer by name.

        Raises:
            KeyError: If no analyzer with that name is registered
        """
        if name not in self._analyzers:
            raise KeyError(f"No analyzer named '{name}' is registered")
        del self._analyzers[name]

    def get(self, name: str) -> Analyzer | None:
        """Get an analyzer by name, or None if not registered."""
        return self._analyzers.get(name)

    def __getitem__(self, name: str) -> Analyzer:
        if name not in self._analyzers:
            raise UnknownAnalyzerError(name, self.names)
        return self._analyzers[name]

    def __contains__(self, name: object) -> bool:
        return name in self._analyzers

    def __iter__(self) -> Iterator[Analyzer]:
        return iter(self._analyzers.values())

    def __len__(self) -> int:
        return len(self._analyzers)

    @property
    def names(self) -> list[str]:
        """Get names of all registered analyzers, sorted."""
        return sorted(self._analyzers)

    def validate(self, names: list[str]) -> None:
        """Check that every requested name is registered.

        Raises:
            UnknownAnalyzerError: For the first name that is not registered
        """
        for name in names:
            if name not in self._analyzers:
                raise UnknownAnalyzerError(name, self.names)


def create_default_registry() -> AnalyzerRegistry:
    """Create a registry holding the built-in analyzers."""
    from container_diff.analyzers.apt import AptAnalyzer
    from container_diff.analyzers.file import FileAnalyzer
    from container_diff.analyzers.history import HistoryAnalyzer
    from container_diff.analyzers.node import NodeAnalyzer
    from container_diff.analyzers.pip import PipAnalyzer

    registry = AnalyzerRegistry()
    for analyzer in (AptAnalyzer(), FileAnalyzer(), HistoryAnalyzer(), NodeAnalyzer(), PipAnalyzer()):
        registry.register(analyzer)
    return registry


_default_registry: AnalyzerRegistry | None = None
_default_lock = threading.Lock()


def get_default_registry() -> AnalyzerRegistry:
    """Get the shared registry of built-in analyzers.

    The registry is built once and never mutated afterwards; callers that
    need custom analyzers should create their own AnalyzerRegistry.
    """
    global _default_registry
    with _default_lock:
        if _default_registry is None:
            _default_registry = create_default_registry()
        return _default_registry
