"""Data models for container-diff.

All models are Pydantic BaseModel with frozen=True for immutability.
"""

from container_diff.models.common import ErrorInfo
from container_diff.models.image import (
    ConfigSchema,
    ContainerConfig,
    HistoryItem,
    LayerInfo,
)
from container_diff.models.options import AnalysisOptions
from container_diff.models.results import (
    AnalysisReport,
    AnalyzeResult,
    AnalyzerOutcome,
    DiffResult,
    FileAnalyzeResult,
    FileDiff,
    FileDiffResult,
    FileEntry,
    FileEntryDiff,
    HistoryAnalyzeResult,
    HistoryChange,
    HistoryDiff,
    HistoryDiffResult,
    HistoryLine,
    PackageAnalyzeResult,
    PackageDiff,
    PackageDiffEntry,
    PackageDiffResult,
    PackageEntry,
    PackageInfo,
    Result,
    order_entries,
)

__all__ = [
    # Common
    "ErrorInfo",
    # Image
    "ConfigSchema",
    "ContainerConfig",
    "HistoryItem",
    "LayerInfo",
    # Options
    "AnalysisOptions",
    # Results
    "AnalysisReport",
    "AnalyzeResult",
    "AnalyzerOutcome",
    "DiffResult",
    "FileAnalyzeResult",
    "FileDiff",
    "FileDiffResult",
    "FileEntry",
    "FileEntryDiff",
    "HistoryAnalyzeResult",
    "HistoryChange",
    "HistoryDiff",
    "HistoryDiffResult",
    "HistoryLine",
    "PackageAnalyzeResult",
    "PackageDiff",
    "PackageDiffEntry",
    "PackageDiffResult",
    "PackageEntry",
    "PackageInfo",
    "Result",
    "order_entries",
]
