"""Shared utilities for CLI commands."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, wait
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console

from container_diff.utils.errors import (
    ConfigurationError,
    ContainerDiffError,
    MaterializationCancelled,
    UnknownAnalyzerError,
    validate_image_reference,
)
from container_diff.utils.logging import get_logger

if TYPE_CHECKING:
    from container_diff.core.image import Image
    from container_diff.models.options import AnalysisOptions
    from container_diff.models.results import AnalysisReport
    from container_diff.registry.oci import OCIRegistry
    from container_diff.utils.config import ContainerDiffConfig

logger = get_logger("cli")

# Shared console instances
console = Console()
err_console = Console(stderr=True)

EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def parse_types(types: list[str] | None) -> list[str] | None:
    """Split repeated and comma-separated ``--types`` values.

    Args:
        types: Raw option values, e.g. ``["apt,pip", "file"]``

    Returns:
        Analyzer names, or None when the option was not given
    """
    if not types:
        return None
    return [name.strip() for value in types for name in value.split(",") if name.strip()]


def load_settings(config_path: Path | None) -> "ContainerDiffConfig":
    """Load the configuration file, exiting on invalid configuration."""
    from container_diff.utils.config import load_config

    try:
        return load_config(config_path)
    except ConfigurationError as e:
        err_console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(EXIT_USAGE)


def check_identifiers(identifiers: list[str]) -> None:
    """Reject malformed image identifiers before any work starts."""
    for identifier in identifiers:
        try:
            validate_image_reference(identifier)
        except ValueError as e:
            err_console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(EXIT_USAGE)


def build_options(
    settings: "ContainerDiffConfig",
    types: list[str] | None,
    json_output: bool,
    save: bool,
    order: bool,
) -> "AnalysisOptions":
    """Merge command-line flags over file settings.

    Flags that were not given leave the file value in place.
    """
    return settings.to_options(
        analyzer_names=parse_types(types),
        json_output=json_output or None,
        preserve_filesystem=save or None,
        sort_by_size=order or None,
    )


def check_analyzers(options: "AnalysisOptions") -> None:
    """Reject unknown analyzer names before any image is prepared."""
    from container_diff.analyzers.registry import get_default_registry

    try:
        get_default_registry().validate(options.analyzer_names)
    except UnknownAnalyzerError as e:
        err_console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(EXIT_USAGE)


def make_registry(settings: "ContainerDiffConfig") -> "OCIRegistry":
    """Registry client configured from the settings file."""
    from container_diff.registry.oci import OCIRegistry

    return OCIRegistry(
        timeout=settings.registry.timeout,
        max_retries=settings.registry.max_retries,
        platform=settings.registry.platform,
    )


def cleanup_images(images: list["Image"]) -> None:
    """Release materialized images; preserved ones only log their paths."""
    for image in images:
        try:
            image.cleanup()
        except OSError as e:
            logger.warning(f"Could not clean up {image.source}: {e}")


def prepare_images(
    identifiers: list[str],
    options: "AnalysisOptions",
    registry: "OCIRegistry | None" = None,
) -> list["Image"]:
    """Prepare every image concurrently, sharing one cancellation event.

    If any image fails, those that succeeded are cleaned up and the command
    exits 1. On Ctrl-C the event is set, the workers are drained, and the
    command exits 130.

    Args:
        identifiers: Image identifiers in argument order
        options: Run options
        registry: Registry client shared by the preparations

    Returns:
        Images in the same order as ``identifiers``
    """
    from container_diff.core.prepper import resolve

    cancel_event = threading.Event()
    executor = ThreadPoolExecutor(max_workers=len(identifiers), thread_name_prefix="prep")
    futures = [
        executor.submit(resolve, identifier, options, cancel_event, None, registry)
        for identifier in identifiers
    ]

    interrupted = False
    try:
        wait(futures)
    except KeyboardInterrupt:
        interrupted = True
        cancel_event.set()
        err_console.print("[yellow]Interrupted, waiting for image preparation to stop...[/yellow]")
        wait(futures)
    finally:
        executor.shutdown(wait=True)

    images: list["Image"] = []
    errors: list[BaseException] = []
    for future in futures:
        error = future.exception()
        if error is None:
            images.append(future.result())
        else:
            errors.append(error)

    if not errors and not interrupted:
        return images

    cleanup_images(images)
    if interrupted or any(isinstance(e, MaterializationCancelled) for e in errors):
        raise typer.Exit(EXIT_INTERRUPTED)

    for error in errors:
        message = error.message if isinstance(error, ContainerDiffError) else str(error)
        err_console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(EXIT_FAILURE)


def emit_report(report: "AnalysisReport", options: "AnalysisOptions") -> None:
    """Render a report in the requested format to stdout."""
    from container_diff.renderers.base import RenderContext
    from container_diff.renderers.json import JSONRenderer
    from container_diff.renderers.terminal import TerminalRenderer

    context = RenderContext.from_options(options)
    if options.json_output:
        try:
            output = JSONRenderer().render(report, context)
        except ContainerDiffError as e:
            err_console.print(f"[red]Error:[/red] {e.message}")
            raise typer.Exit(EXIT_FAILURE)
        typer.echo(output)
    else:
        TerminalRenderer(console).render(report, context)


def run_command(
    identifiers: list[str],
    types: list[str] | None,
    json_output: bool,
    save: bool,
    order: bool,
    config_path: Path | None,
) -> None:
    """Prepare images, run the analyzers and print the outcome.

    Two identifiers produce a diff, one produces an analysis.
    """
    from container_diff.core.engine import AnalysisEngine

    check_identifiers(identifiers)
    settings = load_settings(config_path)
    options = build_options(settings, types, json_output, save, order)
    check_analyzers(options)

    images = prepare_images(identifiers, options, make_registry(settings))
    try:
        engine = AnalysisEngine(options=options)
        if len(images) == 2:
            report = engine.diff(images[0], images[1])
        else:
            report = engine.analyze(images[0])
        emit_report(report, options)
    finally:
        cleanup_images(images)
