"""CLI command for diffing two container images."""

from pathlib import Path
from typing import List, Optional

import typer

from container_diff.cli.utils import run_command


def diff_cmd(
    image1: str = typer.Argument(..., help="First (old) image: name, daemon://NAME, remote://NAME or archive path"),
    image2: str = typer.Argument(..., help="Second (new) image"),
    types: Optional[List[str]] = typer.Option(
        None,
        "--types",
        "-t",
        help="Analyzers to run, comma separated or repeated (apt, file, history, node, pip)",
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output structured JSON"),
    save: bool = typer.Option(False, "--save", "-s", help="Keep the image filesystems after the run"),
    order: bool = typer.Option(False, "--order", "-o", help="Order entries by size instead of name"),
    config: Optional[Path] = typer.Option(None, "--config", help="Configuration file path"),
) -> None:
    """
    Compare two container images.

    Each requested analyzer reports what was added, deleted or changed
    between the images.

    Example:
        container-diff diff ubuntu:22.04 ubuntu:24.04 -t apt,file
    """
    run_command([image1, image2], types, json_output, save, order, config)
