"""Configuration file support for container-diff."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from container_diff.models.options import AnalysisOptions
from container_diff.utils.errors import ConfigurationError


class RegistryConfig(BaseModel):
    """Registry configuration."""

    timeout: float = Field(default=60.0, gt=0, description="HTTP timeout in seconds")
    max_retries: int = Field(default=3, ge=1, description="Attempts per registry request")
    platform: str = Field(default="linux/amd64", description="Platform selected from manifest lists")


class AnalysisConfig(BaseModel):
    """Analysis configuration."""

    types: list[str] = Field(default_factory=lambda: ["apt"], description="Analyzers to run")
    preserve_filesystem: bool = Field(default=False, description="Keep image filesystems after the run")
    max_workers: int = Field(default=8, ge=1, description="Concurrent layer and analyzer workers")


class OutputConfig(BaseModel):
    """Output configuration."""

    json_output: bool = Field(default=False, alias="json", description="Emit JSON instead of text")
    sort_by_size: bool = Field(default=False, description="Order entries by size")

    model_config = {"populate_by_name": True}


class ContainerDiffConfig(BaseModel):
    """Main configuration for container-diff."""

    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    def to_options(self, **overrides: Any) -> AnalysisOptions:
        """Build run options, letting explicit values win over file values.

        Args:
            **overrides: AnalysisOptions fields; None values are ignored

        Returns:
            Options for one invocation
        """
        values: dict[str, Any] = {
            "analyzer_names": self.analysis.types,
            "sort_by_size": self.output.sort_by_size,
            "preserve_filesystem": self.analysis.preserve_filesystem,
            "json_output": self.output.json_output,
            "max_workers": self.analysis.max_workers,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return AnalysisOptions(**values)


def get_config_paths() -> list[Path]:
    """Get possible configuration file paths.

    Returns:
        List of paths to check for configuration files
    """
    paths = []

    # Current directory
    paths.append(Path.cwd() / ".container-diff.yaml")
    paths.append(Path.cwd() / ".container-diff.yml")

    # Home directory
    home = Path.home()
    paths.append(home / ".container-diff.yaml")
    paths.append(home / ".config" / "container-diff" / "config.yaml")

    # XDG config directory
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        paths.append(Path(xdg_config) / "container-diff" / "config.yaml")

    return paths


def load_config(config_path: Path | str | None = None) -> ContainerDiffConfig:
    """Load configuration from file.

    Args:
        config_path: Explicit path to config file. If None, searches default locations.

    Returns:
        Loaded configuration

    Raises:
        ConfigurationError: If an explicit path is missing or a file is invalid
    """
    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            return _load_config_file(path)
        raise ConfigurationError(f"Config file not found: {config_path}")

    for path in get_config_paths():
        if path.exists():
            return _load_config_file(path)

    return ContainerDiffConfig()


def _load_config_file(path: Path) -> ContainerDiffConfig:
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in config file {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Failed to read config file {path}: {e}") from e

    if data is None:
        return ContainerDiffConfig()
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    try:
        return ContainerDiffConfig.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        key = ".".join(str(part) for part in first["loc"])
        raise ConfigurationError(f"Invalid config file {path}: {first['msg']}", config_key=key) from e


def save_config(config: ContainerDiffConfig, config_path: Path | str | None = None) -> Path:
    """Save configuration to file.

    Args:
        config: Configuration to save
        config_path: Path to save to. Defaults to ~/.config/container-diff/config.yaml

    Returns:
        Path where config was saved
    """
    if config_path is None:
        config_path = Path.home() / ".config" / "container-diff" / "config.yaml"
    else:
        config_path = Path(config_path)

    config_path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump(mode="json", exclude_defaults=True, by_alias=True)
    config_path.write_text(yaml.dump(data, default_flow_style=False, sort_keys=False))

    return config_path
