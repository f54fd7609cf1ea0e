"""Utility functions for container-diff."""

from container_diff.utils.hashing import hash_file, sanitize_name
from container_diff.utils.logging import configure_logging, get_logger, get_logger_with_context, log_duration
from container_diff.utils.errors import (
    ArchiveError,
    ConfigParseError,
    ConfigurationError,
    ContainerDiffError,
    DecompressionError,
    LayerFetchError,
    LayerPipelineError,
    MaterializationCancelled,
    RenderError,
    SourceUnresolvedError,
    UnknownAnalyzerError,
    UnsupportedAnalyzerError,
    validate_image_reference,
)
from container_diff.utils.fs import directory_size, make_temp_dir, path_size, remove_tree
from container_diff.utils.config import (
    AnalysisConfig,
    ContainerDiffConfig,
    OutputConfig,
    RegistryConfig,
    load_config,
    save_config,
)

__all__ = [
    # Hashing
    "hash_file",
    "sanitize_name",
    # Logging
    "configure_logging",
    "get_logger",
    "get_logger_with_context",
    "log_duration",
    # Errors
    "ArchiveError",
    "ConfigParseError",
    "ConfigurationError",
    "ContainerDiffError",
    "DecompressionError",
    "LayerFetchError",
    "LayerPipelineError",
    "MaterializationCancelled",
    "RenderError",
    "SourceUnresolvedError",
    "UnknownAnalyzerError",
    "UnsupportedAnalyzerError",
    "validate_image_reference",
    # Filesystem
    "directory_size",
    "make_temp_dir",
    "path_size",
    "remove_tree",
    # Config
    "AnalysisConfig",
    "ContainerDiffConfig",
    "OutputConfig",
    "RegistryConfig",
    "load_config",
    "save_config",
]
