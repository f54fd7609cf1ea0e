"""AnalysisEngine for running analyzers over prepared images."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Callable

from container_diff.analyzers.registry import AnalyzerRegistry, get_default_registry
from container_diff.models.common import ErrorInfo
from container_diff.models.options import AnalysisOptions
from container_diff.models.results import AnalysisReport, AnalyzerOutcome, Result
from container_diff.utils.errors import ContainerDiffError
from container_diff.utils.logging import get_logger

if TYPE_CHECKING:
    from container_diff.analyzers.base import Analyzer
    from container_diff.core.image import Image

logger = get_logger("engine")


class AnalysisEngine:
    """Runs the requested analyzers concurrently and collects their outcomes.

    A failing analyzer never prevents the others from producing results:
    each failure is captured in that analyzer's outcome.

    Example:
        engine = AnalysisEngine(options=AnalysisOptions(analyzer_names=["apt", "file"]))
        report = engine.diff(image1, image2)

        for outcome in report.ordered():
            if outcome.success:
                print(outcome.result.to_structured())
            else:
                print(f"{outcome.analyzer} failed: {outcome.error}")
    """

    def __init__(
        self,
        registry: AnalyzerRegistry | None = None,
        options: AnalysisOptions | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            registry: Analyzers to choose from (defaults to the built-ins)
            options: Run options; ``analyzer_names`` selects what runs
        """
        self._registry = registry or get_default_registry()
        self._options = options or AnalysisOptions()

    @property
    def registry(self) -> AnalyzerRegistry:
        return self._registry

    @property
    def options(self) -> AnalysisOptions:
        return self._options

    def validate(self) -> None:
        """Reject requested analyzer names that are not registered.

        Raises:
            UnknownAnalyzerError: For the first unknown name
        """
        self._registry.validate(self._options.analyzer_names)

    def _run_one(self, name: str, call: Callable[["Analyzer"], Result], images: list[str]) -> AnalyzerOutcome:
        analyzer = self._registry[name]
        logger.debug(f"Running {name} analyzer on {', '.join(images)}")
        try:
            return AnalyzerOutcome.ok(name, call(analyzer))
        except ContainerDiffError as e:
            logger.warning(f"Analyzer {name} failed: {e.message}")
            return AnalyzerOutcome.fail(name, e.to_error_info())
        except Exception as e:
            logger.warning(f"Analyzer {name} failed unexpectedly: {e}")
            return AnalyzerOutcome.fail(
                name,
                ErrorInfo(
                    code="ANALYZER_ERROR",
                    message=f"Analyzer '{name}' failed: {e}",
                    details={"analyzer": name, "images": images},
                ),
            )

    def _run(self, call: Callable[["Analyzer"], Result], images: list[str]) -> AnalysisReport:
        self.validate()
        names = self._options.analyzer_names
        if not names:
            return AnalysisReport(images=images)

        workers = min(self._options.max_workers, len(names))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="analyzer") as executor:
            futures = {name: executor.submit(self._run_one, name, call, images) for name in names}
            outcomes = {name: future.result() for name, future in futures.items()}

        return AnalysisReport(images=images, outcomes=outcomes)

    def diff(self, image1: "Image", image2: "Image") -> AnalysisReport:
        """Run every requested analyzer in diff mode.

        Args:
            image1: The first (old) image
            image2: The second (new) image

        Returns:
            One outcome per requested analyzer

        Raises:
            UnknownAnalyzerError: If a requested analyzer is not registered
        """
        return self._run(lambda analyzer: analyzer.diff(image1, image2), [image1.source, image2.source])

    def analyze(self, image: "Image") -> AnalysisReport:
        """Run every requested analyzer in analysis mode.

        Raises:
            UnknownAnalyzerError: If a requested analyzer is not registered
        """
        return self._run(lambda analyzer: analyzer.analyze(image), [image.source])


def run_analyzer(name: str, *images: "Image", registry: AnalyzerRegistry | None = None) -> Result:
    """Run a single analyzer, letting its errors propagate.

    With two images the analyzer diffs them; with one it analyzes it.

    Args:
        name: Registered analyzer name
        *images: One or two prepared images
        registry: Analyzers to choose from (defaults to the built-ins)

    Returns:
        The analyzer's result

    Raises:
        UnknownAnalyzerError: If the analyzer is not registered
        UnsupportedAnalyzerError: If the analyzer cannot handle the images
        ValueError: If not given one or two images
    """
    analyzer = (registry or get_default_registry())[name]
    if len(images) == 2:
        return analyzer.diff(images[0], images[1])
    if len(images) == 1:
        return analyzer.analyze(images[0])
    raise ValueError(f"run_analyzer takes one or two images, got {len(images)}")
