"""container-diff: diff and analyze container images.

Images are resolved from the local Docker daemon, a remote registry, or a
``docker save`` archive, materialized to a local filesystem, and compared
or inspected by pluggable analyzers:

- **apt**: Debian packages from the dpkg status database
- **pip**: Python distributions in site-packages
- **node**: npm packages in node_modules
- **file**: every filesystem entry with its size
- **history**: the build history of the image config

Usage:
    # Library API
    from container_diff import AnalysisEngine, AnalysisOptions, resolve

    options = AnalysisOptions(analyzer_names=["apt", "file"])
    with resolve("ubuntu:22.04", options) as img1, resolve("ubuntu:24.04", options) as img2:
        report = AnalysisEngine(options=options).diff(img1, img2)

    for outcome in report.ordered():
        print(outcome.analyzer, outcome.success)

CLI:
    container-diff diff <image1> <image2> -t apt,file
    container-diff analyze <image> -t pip --json
"""

__version__ = "0.1.0"

# Core classes
from container_diff.core.engine import AnalysisEngine, run_analyzer
from container_diff.core.image import Image
from container_diff.core.prepper import ImagePrepper, resolve

# Models (commonly used)
from container_diff.models.image import ConfigSchema
from container_diff.models.options import AnalysisOptions
from container_diff.models.results import AnalysisReport, AnalyzerOutcome

# Analyzers
from container_diff.analyzers.base import Analyzer
from container_diff.analyzers.registry import AnalyzerRegistry, get_default_registry

# Renderers
from container_diff.renderers.base import Renderer, RenderContext, OutputFormat

__all__ = [
    # Version
    "__version__",
    # Core
    "AnalysisEngine",
    "run_analyzer",
    "Image",
    "ImagePrepper",
    "resolve",
    # Models
    "ConfigSchema",
    "AnalysisOptions",
    "AnalysisReport",
    "AnalyzerOutcome",
    # Analyzers
    "Analyzer",
    "AnalyzerRegistry",
    "get_default_registry",
    # Renderers
    "Renderer",
    "RenderContext",
    "OutputFormat",
]
