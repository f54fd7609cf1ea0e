"""Analyzer result models.

Every analyzer returns one of the result types below. Results are plain
values: entry order inside a result carries no meaning (except for history),
and the presentation order is chosen by ``to_structured`` from the
``sort_by_size`` option.
"""

from enum import Enum
from typing import Any, Callable, Iterable, TypeVar

from pydantic import BaseModel, Field

from container_diff.models.common import ErrorInfo

E = TypeVar("E")


def order_entries(
    entries: Iterable[E],
    key: Callable[[E], str],
    size: Callable[[E], int],
    sort_by_size: bool = False,
) -> list[E]:
    """Order entries by key, or by descending size with ties broken by key."""
    if sort_by_size:
        return sorted(entries, key=lambda e: (-size(e), key(e)))
    return sorted(entries, key=key)


class FileEntry(BaseModel):
    """A path inside an image filesystem."""

    model_config = {"frozen": True}

    name: str = Field(description="Absolute path inside the image")
    size: int = Field(description="Size in bytes (recursive for directories)")


class FileEntryDiff(BaseModel):
    """A path present in both images with different contents."""

    model_config = {"frozen": True}

    name: str = Field(description="Absolute path inside the image")
    size1: int = Field(description="Size in the first image")
    size2: int = Field(description="Size in the second image")


class PackageInfo(BaseModel):
    """Version and installed size of a package."""

    model_config = {"frozen": True}

    version: str = Field(description="Package version")
    size: int = Field(default=0, description="Installed size in bytes")


class PackageEntry(BaseModel):
    """A package found in one image."""

    model_config = {"frozen": True}

    name: str
    version: str
    size: int = 0


class PackageDiffEntry(BaseModel):
    """A package present in both images with a different version or size."""

    model_config = {"frozen": True}

    name: str
    info1: PackageInfo
    info2: PackageInfo


class HistoryChange(str, Enum):
    """Alignment state of a history line."""

    UNCHANGED = "unchanged"
    ADDED = "added"
    DELETED = "deleted"


class HistoryLine(BaseModel):
    """One aligned history command."""

    model_config = {"frozen": True}

    change: HistoryChange
    created_by: str


class FileDiff(BaseModel):
    """Filesystem differences between two images."""

    model_config = {"frozen": True}

    adds: list[FileEntry] = Field(default_factory=list, description="Paths only in the second image")
    dels: list[FileEntry] = Field(default_factory=list, description="Paths only in the first image")
    mods: list[FileEntryDiff] = Field(default_factory=list, description="Paths changed between images")


class PackageDiff(BaseModel):
    """Package differences between two images."""

    model_config = {"frozen": True}

    packages1: list[PackageEntry] = Field(default_factory=list, description="Packages only in the first image")
    packages2: list[PackageEntry] = Field(default_factory=list, description="Packages only in the second image")
    info_diff: list[PackageDiffEntry] = Field(default_factory=list, description="Packages that changed")

    @property
    def is_empty(self) -> bool:
        return not (self.packages1 or self.packages2 or self.info_diff)


class HistoryDiff(BaseModel):
    """Order-preserving alignment of two build histories."""

    model_config = {"frozen": True}

    lines: list[HistoryLine] = Field(default_factory=list)

    @property
    def adds(self) -> list[str]:
        return [line.created_by for line in self.lines if line.change == HistoryChange.ADDED]

    @property
    def dels(self) -> list[str]:
        return [line.created_by for line in self.lines if line.change == HistoryChange.DELETED]


def _file_key(entry: FileEntry | FileEntryDiff) -> str:
    return entry.name


class DiffResult(BaseModel):
    """Base for two-image results."""

    model_config = {"frozen": True}

    image1: str = Field(description="Identifier of the first image")
    image2: str = Field(description="Identifier of the second image")
    diff_type: str = Field(description="Display name of the analyzer")

    def _structured_diff(self, sort_by_size: bool) -> Any:
        raise NotImplementedError

    def to_structured(self, sort_by_size: bool = False) -> dict[str, Any]:
        """Structured payload with entries in presentation order."""
        return {
            "image1": self.image1,
            "image2": self.image2,
            "diff_type": self.diff_type,
            "diff": self._structured_diff(sort_by_size),
        }


class AnalyzeResult(BaseModel):
    """Base for single-image results."""

    model_config = {"frozen": True}

    image: str = Field(description="Identifier of the analyzed image")
    analyze_type: str = Field(description="Display name of the analyzer")

    def _structured_analysis(self, sort_by_size: bool) -> Any:
        raise NotImplementedError

    def to_structured(self, sort_by_size: bool = False) -> dict[str, Any]:
        """Structured payload with entries in presentation order."""
        return {
            "image": self.image,
            "analyze_type": self.analyze_type,
            "analysis": self._structured_analysis(sort_by_size),
        }


class FileDiffResult(DiffResult):
    diff: FileDiff

    def ordered(self, sort_by_size: bool = False) -> FileDiff:
        return FileDiff(
            adds=order_entries(self.diff.adds, _file_key, lambda e: e.size, sort_by_size),
            dels=order_entries(self.diff.dels, _file_key, lambda e: e.size, sort_by_size),
            mods=order_entries(self.diff.mods, _file_key, lambda e: e.size2, sort_by_size),
        )

    def _structured_diff(self, sort_by_size: bool) -> Any:
        return self.ordered(sort_by_size).model_dump(mode="json")


class PackageDiffResult(DiffResult):
    diff: PackageDiff

    def ordered(self, sort_by_size: bool = False) -> PackageDiff:
        return PackageDiff(
            packages1=order_entries(self.diff.packages1, lambda e: e.name, lambda e: e.size, sort_by_size),
            packages2=order_entries(self.diff.packages2, lambda e: e.name, lambda e: e.size, sort_by_size),
            info_diff=order_entries(
                self.diff.info_diff, lambda e: e.name, lambda e: e.info2.size, sort_by_size
            ),
        )

    def _structured_diff(self, sort_by_size: bool) -> Any:
        return self.ordered(sort_by_size).model_dump(mode="json")


class HistoryDiffResult(DiffResult):
    diff: HistoryDiff

    def _structured_diff(self, sort_by_size: bool) -> Any:
        # Build order is the only meaningful order for history
        return {
            "adds": self.diff.adds,
            "dels": self.diff.dels,
            "lines": [line.model_dump(mode="json") for line in self.diff.lines],
        }


class FileAnalyzeResult(AnalyzeResult):
    analysis: list[FileEntry] = Field(default_factory=list)

    def ordered(self, sort_by_size: bool = False) -> list[FileEntry]:
        return order_entries(self.analysis, _file_key, lambda e: e.size, sort_by_size)

    def _structured_analysis(self, sort_by_size: bool) -> Any:
        return [entry.model_dump(mode="json") for entry in self.ordered(sort_by_size)]


class PackageAnalyzeResult(AnalyzeResult):
    analysis: list[PackageEntry] = Field(default_factory=list)

    def ordered(self, sort_by_size: bool = False) -> list[PackageEntry]:
        return order_entries(self.analysis, lambda e: e.name, lambda e: e.size, sort_by_size)

    def _structured_analysis(self, sort_by_size: bool) -> Any:
        return [entry.model_dump(mode="json") for entry in self.ordered(sort_by_size)]


class HistoryAnalyzeResult(AnalyzeResult):
    analysis: list[str] = Field(default_factory=list)

    def _structured_analysis(self, sort_by_size: bool) -> Any:
        return list(self.analysis)


Result = DiffResult | AnalyzeResult


class AnalyzerOutcome(BaseModel):
    """The result or failure of one analyzer run."""

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    analyzer: str = Field(description="Registered analyzer name")
    result: Any = Field(default=None, description="DiffResult or AnalyzeResult on success")
    error: ErrorInfo | None = Field(default=None, description="Failure details")

    @property
    def success(self) -> bool:
        return self.error is None and self.result is not None

    @classmethod
    def ok(cls, analyzer: str, result: Result) -> "AnalyzerOutcome":
        """Create a successful outcome."""
        return cls(analyzer=analyzer, result=result)

    @classmethod
    def fail(cls, analyzer: str, error: ErrorInfo) -> "AnalyzerOutcome":
        """Create a failed outcome."""
        return cls(analyzer=analyzer, error=error)


class AnalysisReport(BaseModel):
    """Outcomes of every analyzer requested in one invocation."""

    model_config = {"frozen": True}

    images: list[str] = Field(description="Identifiers of the analyzed images")
    outcomes: dict[str, AnalyzerOutcome] = Field(default_factory=dict)

    def ordered(self) -> list[AnalyzerOutcome]:
        """Outcomes in ascending analyzer-name order."""
        return [self.outcomes[name] for name in sorted(self.outcomes)]

    @property
    def failed(self) -> list[AnalyzerOutcome]:
        return [outcome for outcome in self.ordered() if not outcome.success]
