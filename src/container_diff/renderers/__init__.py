"""Output renderers for container-diff."""

from container_diff.renderers.base import BaseRenderer, OutputFormat, RenderContext, Renderer
from container_diff.renderers.json import JSONRenderer
from container_diff.renderers.terminal import TerminalRenderer

__all__ = [
    "BaseRenderer",
    "OutputFormat",
    "RenderContext",
    "Renderer",
    "JSONRenderer",
    "TerminalRenderer",
]
