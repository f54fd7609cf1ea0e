"""Terminal renderer for container-diff output."""

from __future__ import annotations

import io
import json
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from container_diff.models.results import (
    AnalysisReport,
    AnalyzerOutcome,
    FileAnalyzeResult,
    FileDiffResult,
    HistoryAnalyzeResult,
    HistoryChange,
    HistoryDiffResult,
    PackageAnalyzeResult,
    PackageDiffResult,
)
from container_diff.renderers.base import BaseRenderer, OutputFormat, RenderContext
from container_diff.utils.logging import get_logger

logger = get_logger("renderers.terminal")


def format_size(size: int) -> str:
    """Human-readable byte count."""
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if abs(value) < 1024 or unit == "GB":
            return f"{int(value)}{unit}" if unit == "B" else f"{value:.1f}{unit}"
        value /= 1024
    return f"{size}B"


class TerminalRenderer(BaseRenderer):
    """Renderer for rich terminal output.

    Prints analyzer by analyzer in ascending name order, each under a
    header naming the analyzer. A failed analyzer, or one whose result
    cannot be rendered, is reported in place and the rest still print.

    Example:
        renderer = TerminalRenderer()
        renderer.render(report, RenderContext())
    """

    def __init__(self, console: Console | None = None) -> None:
        """Initialize the terminal renderer.

        Args:
            console: Rich console to use. Creates a new one if None.
        """
        self._console = console or Console()

    @property
    def console(self) -> Console:
        return self._console

    @property
    def format(self) -> OutputFormat:
        """The output format this renderer produces."""
        return OutputFormat.TEXT

    def render(self, report: AnalysisReport, context: RenderContext) -> str:
        """Render a report to the terminal.

        Note: This method prints to the console and returns an empty string.
        For capturing output, use Console(record=True) or Console.capture().
        """
        for outcome in report.ordered():
            self.render_result(outcome.analyzer, outcome, context)
        return ""

    def render_to_file(self, report: AnalysisReport, context: RenderContext) -> None:
        """Render a report to a text file."""
        if context.output_path is None:
            raise ValueError("output_path must be set in context for file rendering")

        file_console = Console(record=True, file=io.StringIO(), force_terminal=False, width=120)
        original_console = self._console
        self._console = file_console

        try:
            self.render(report, context)
            context.output_path.write_text(file_console.export_text(), encoding="utf-8")
        finally:
            self._console = original_console

    def render_result(self, name: str, outcome: AnalyzerOutcome, context: RenderContext) -> None:
        """Render one analyzer's outcome under its header."""
        self._console.print()
        self._console.rule(f"[bold]{escape(name)}[/bold]")

        if not outcome.success:
            message = str(outcome.error) if outcome.error else "no result"
            self._console.print(f"[red]Error:[/red] {escape(message)}")
            return

        try:
            self._render_payload(outcome.result, context)
        except Exception as e:
            logger.warning(f"Could not render {name} result: {e}")
            self._console.print(f"[red]Error rendering {escape(name)} result:[/red] {escape(str(e))}")

    def _render_payload(self, result: Any, context: RenderContext) -> None:
        if isinstance(result, FileDiffResult):
            self._render_file_diff(result, context)
        elif isinstance(result, PackageDiffResult):
            self._render_package_diff(result, context)
        elif isinstance(result, HistoryDiffResult):
            self._render_history_diff(result)
        elif isinstance(result, FileAnalyzeResult):
            self._render_file_analysis(result, context)
        elif isinstance(result, PackageAnalyzeResult):
            self._render_package_analysis(result, context)
        elif isinstance(result, HistoryAnalyzeResult):
            self._render_history_analysis(result)
        else:
            self._render_generic(result, context)

    def _diff_header(self, title: str, image1: str, image2: str) -> None:
        self._console.print(
            Panel(
                f"[bold]Image 1:[/bold] {escape(image1)}\n[bold]Image 2:[/bold] {escape(image2)}",
                title=f"{title} Diff",
            )
        )

    def _entries_table(self, title: str, columns: list[str], rows: list[list[str]]) -> None:
        title = escape(title)
        if not rows:
            self._console.print(f"{title}: [dim]None[/dim]")
            return
        table = Table(title=title)
        for column in columns:
            table.add_column(column)
        for row in rows:
            table.add_row(*[escape(cell) for cell in row])
        self._console.print(table)

    def _render_file_diff(self, result: FileDiffResult, context: RenderContext) -> None:
        diff = result.ordered(context.sort_by_size)
        self._diff_header(result.diff_type, result.image1, result.image2)
        self._entries_table(
            f"These entries have been added to {result.image2}",
            ["File", "Size"],
            [[e.name, format_size(e.size)] for e in diff.adds],
        )
        self._entries_table(
            f"These entries have been deleted from {result.image1}",
            ["File", "Size"],
            [[e.name, format_size(e.size)] for e in diff.dels],
        )
        self._entries_table(
            "These entries have been changed between images",
            ["File", "Size 1", "Size 2"],
            [[e.name, format_size(e.size1), format_size(e.size2)] for e in diff.mods],
        )

    def _render_package_diff(self, result: PackageDiffResult, context: RenderContext) -> None:
        diff = result.ordered(context.sort_by_size)
        self._diff_header(result.diff_type, result.image1, result.image2)
        self._entries_table(
            f"Packages found only in {result.image1}",
            ["Name", "Version", "Size"],
            [[p.name, p.version, format_size(p.size)] for p in diff.packages1],
        )
        self._entries_table(
            f"Packages found only in {result.image2}",
            ["Name", "Version", "Size"],
            [[p.name, p.version, format_size(p.size)] for p in diff.packages2],
        )
        self._entries_table(
            "Version differences",
            ["Name", "Image 1", "Image 2"],
            [
                [
                    p.name,
                    f"{p.info1.version}, {format_size(p.info1.size)}",
                    f"{p.info2.version}, {format_size(p.info2.size)}",
                ]
                for p in diff.info_diff
            ],
        )

    def _render_history_diff(self, result: HistoryDiffResult) -> None:
        self._diff_header(result.diff_type, result.image1, result.image2)
        if not result.diff.adds and not result.diff.dels:
            self._console.print("History: [dim]No changes[/dim]")
            return
        styles = {
            HistoryChange.ADDED: ("+", "green"),
            HistoryChange.DELETED: ("-", "red"),
            HistoryChange.UNCHANGED: (" ", "dim"),
        }
        for line in result.diff.lines:
            marker, style = styles[line.change]
            self._console.print(f"[{style}]{marker} {escape(line.created_by)}[/{style}]")

    def _analysis_header(self, title: str, image: str) -> None:
        self._console.print(Panel(f"[bold]Image:[/bold] {escape(image)}", title=f"{title} Analysis"))

    def _render_file_analysis(self, result: FileAnalyzeResult, context: RenderContext) -> None:
        self._analysis_header(result.analyze_type, result.image)
        self._entries_table(
            "Files",
            ["File", "Size"],
            [[e.name, format_size(e.size)] for e in result.ordered(context.sort_by_size)],
        )

    def _render_package_analysis(self, result: PackageAnalyzeResult, context: RenderContext) -> None:
        self._analysis_header(result.analyze_type, result.image)
        self._entries_table(
            "Packages",
            ["Name", "Version", "Size"],
            [[p.name, p.version, format_size(p.size)] for p in result.ordered(context.sort_by_size)],
        )

    def _render_history_analysis(self, result: HistoryAnalyzeResult) -> None:
        self._analysis_header(result.analyze_type, result.image)
        if not result.analysis:
            self._console.print("History: [dim]None[/dim]")
            return
        for command in result.analysis:
            self._console.print(f"  {escape(command)}")

    def _render_generic(self, result: Any, context: RenderContext) -> None:
        """Render results of analyzers without a dedicated layout."""
        data = result.to_structured(sort_by_size=context.sort_by_size)
        self._console.print(escape(json.dumps(data, indent=2, default=str)))
