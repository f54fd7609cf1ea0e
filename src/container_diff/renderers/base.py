"""Base renderer protocol and types."""

from enum import Enum
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

from container_diff.models.options import AnalysisOptions
from container_diff.models.results import AnalysisReport


class OutputFormat(str, Enum):
    """Supported output formats."""

    JSON = "json"
    TEXT = "text"


class RenderContext(BaseModel):
    """Presentation options for one rendering pass."""

    model_config = {"frozen": True}

    sort_by_size: bool = Field(default=False, description="Order entries by descending size")
    output_path: Path | None = Field(default=None, description="Output file path")
    indent: int = Field(default=2, description="JSON indentation")

    @classmethod
    def from_options(cls, options: AnalysisOptions, **kwargs: object) -> "RenderContext":
        """Build a context from run options."""
        return cls(sort_by_size=options.sort_by_size, **kwargs)


@runtime_checkable
class Renderer(Protocol):
    """Protocol for output renderers.

    Renderers turn an AnalysisReport into output, one analyzer at a time in
    ascending analyzer-name order.

    Example:
        class MyRenderer:
            @property
            def format(self) -> OutputFormat:
                return OutputFormat.JSON

            def render(self, report: AnalysisReport, context: RenderContext) -> str:
                return json.dumps([o.analyzer for o in report.ordered()])

            def render_to_file(self, report: AnalysisReport, context: RenderContext) -> None:
                context.output_path.write_text(self.render(report, context))
    """

    @property
    def format(self) -> OutputFormat:
        """The output format this renderer produces."""
        ...

    def render(self, report: AnalysisReport, context: RenderContext) -> str:
        """Render a report.

        Args:
            report: Outcomes of one invocation
            context: Rendering context with options

        Returns:
            Rendered output
        """
        ...

    def render_to_file(self, report: AnalysisReport, context: RenderContext) -> None:
        """Render a report to ``context.output_path``.

        Raises:
            ValueError: If context.output_path is not set
        """
        ...


class BaseRenderer:
    """Base implementation with common functionality.

    Provides default implementation of render_to_file.
    Subclasses should implement format property and render method.
    """

    def render_to_file(self, report: AnalysisReport, context: RenderContext) -> None:
        """Render a report directly to a file.

        Raises:
            ValueError: If context.output_path is not set
        """
        if context.output_path is None:
            raise ValueError("output_path must be set in context for file rendering")

        content = self.render(report, context)
        context.output_path.write_text(content, encoding="utf-8")

    def render(self, report: AnalysisReport, context: RenderContext) -> str:
        """Render a report. Must be implemented by subclasses."""
        raise NotImplementedError
