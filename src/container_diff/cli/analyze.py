"""CLI command for analyzing a single container image."""

from pathlib import Path
from typing import List, Optional

import typer

from container_diff.cli.utils import run_command


def analyze_cmd(
    image: str = typer.Argument(..., help="Image: name, daemon://NAME, remote://NAME or archive path"),
    types: Optional[List[str]] = typer.Option(
        None,
        "--types",
        "-t",
        help="Analyzers to run, comma separated or repeated (apt, file, history, node, pip)",
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output structured JSON"),
    save: bool = typer.Option(False, "--save", "-s", help="Keep the image filesystem after the run"),
    order: bool = typer.Option(False, "--order", "-o", help="Order entries by size instead of name"),
    config: Optional[Path] = typer.Option(None, "--config", help="Configuration file path"),
) -> None:
    """
    Analyze a single container image.

    Example:
        container-diff analyze ./image.tar -t pip,history
    """
    run_command([image], types, json_output, save, order, config)
