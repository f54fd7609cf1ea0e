"""JSON renderer for container-diff output."""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Any

from container_diff.models.results import AnalysisReport, AnalyzerOutcome
from container_diff.renderers.base import BaseRenderer, OutputFormat, RenderContext
from container_diff.utils.errors import RenderError
from container_diff.utils.logging import get_logger

logger = get_logger("renderers.json")


class JSONRenderer(BaseRenderer):
    """Renderer for structured JSON output.

    Produces one JSON array holding each successful analyzer's structured
    payload, in ascending analyzer-name order. Nothing is produced unless
    every included analyzer renders.

    Example:
        renderer = JSONRenderer()
        print(renderer.render(report, RenderContext(sort_by_size=True)))
    """

    @property
    def format(self) -> OutputFormat:
        """The output format this renderer produces."""
        return OutputFormat.JSON

    def structured(self, report: AnalysisReport, context: RenderContext) -> list[dict[str, Any]]:
        """Collect structured payloads of the successful analyzers.

        Raises:
            RenderError: If any included analyzer's result cannot be structured
        """
        payloads = []
        for outcome in report.ordered():
            if not outcome.success:
                logger.warning(f"Omitting analyzer {outcome.analyzer} from output: {outcome.error}")
                continue
            payloads.append(self._structure(outcome, context))
        return payloads

    @staticmethod
    def _structure(outcome: AnalyzerOutcome, context: RenderContext) -> dict[str, Any]:
        try:
            return outcome.result.to_structured(sort_by_size=context.sort_by_size)
        except Exception as e:
            raise RenderError(f"Could not render {outcome.analyzer} result: {e}", analyzer=outcome.analyzer) from e

    def render(self, report: AnalysisReport, context: RenderContext) -> str:
        """Render a report to a JSON string.

        Raises:
            RenderError: If any included analyzer fails to render
        """
        payloads = self.structured(report, context)
        try:
            return json.dumps(
                payloads,
                indent=context.indent if context.indent else None,
                default=self._json_serializer,
                ensure_ascii=False,
            )
        except (TypeError, ValueError) as e:
            raise RenderError(f"Could not serialize results: {e}") from e

    @staticmethod
    def _json_serializer(obj: Any) -> Any:
        """Custom JSON serializer for non-standard types."""
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, Path):
            return str(obj)
        if isinstance(obj, set):
            return sorted(obj)
        if isinstance(obj, bytes):
            return obj.decode("utf-8", errors="replace")
        raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")
