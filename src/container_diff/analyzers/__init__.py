"""Image analyzers."""

from container_diff.analyzers.base import Analyzer
from container_diff.analyzers.apt import AptAnalyzer
from container_diff.analyzers.file import FileAnalyzer
from container_diff.analyzers.history import HistoryAnalyzer
from container_diff.analyzers.node import NodeAnalyzer
from container_diff.analyzers.package import PackageAnalyzer
from container_diff.analyzers.pip import PipAnalyzer
from container_diff.analyzers.registry import AnalyzerRegistry, create_default_registry, get_default_registry

__all__ = [
    "Analyzer",
    "AptAnalyzer",
    "FileAnalyzer",
    "HistoryAnalyzer",
    "NodeAnalyzer",
    "PackageAnalyzer",
    "PipAnalyzer",
    "AnalyzerRegistry",
    "create_default_registry",
    "get_default_registry",
]
