"""Core domain logic for container-diff.

This module provides the main library API: resolving images to local
filesystems and running analyzers over them.
"""

from container_diff.core.archive import unpack_tar
from container_diff.core.compression import Compression, decompress_to, detect_compression, open_decompressed
from container_diff.core.engine import AnalysisEngine, run_analyzer
from container_diff.core.image import Image, parse_config
from container_diff.core.layers import LayerPipeline
from container_diff.core.prepper import (
    CloudPrepper,
    DaemonPrepper,
    ImagePrepper,
    TarPrepper,
    resolve,
)

__all__ = [
    "unpack_tar",
    "Compression",
    "decompress_to",
    "detect_compression",
    "open_decompressed",
    "AnalysisEngine",
    "run_analyzer",
    "Image",
    "parse_config",
    "LayerPipeline",
    "CloudPrepper",
    "DaemonPrepper",
    "ImagePrepper",
    "TarPrepper",
    "resolve",
]
