"""Main CLI entry point for container-diff."""

import typer
from rich.console import Console

from container_diff.cli import analyze, diff

app = typer.Typer(
    name="container-diff",
    help="Diff and analyze container images.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

# Register subcommands
app.command(name="diff")(diff.diff_cmd)
app.command(name="analyze")(analyze.analyze_cmd)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output"),
) -> None:
    """
    container-diff: Diff and analyze container images.

    - [bold]diff[/bold]: Compare two images with the selected analyzers
    - [bold]analyze[/bold]: Inspect one image with the selected analyzers

    Images may be named in the local daemon or a registry, forced to one
    with [bold]daemon://[/bold] or [bold]remote://[/bold], or given as a
    [bold]docker save[/bold] archive path.
    """
    from container_diff.utils.logging import configure_logging

    if verbose:
        configure_logging(level="DEBUG")
    elif quiet:
        configure_logging(level="WARNING")
    else:
        configure_logging(level="INFO")


@app.command()
def version() -> None:
    """Show the container-diff version."""
    from container_diff import __version__

    console.print(f"container-diff version {__version__}")


if __name__ == "__main__":
    app()
