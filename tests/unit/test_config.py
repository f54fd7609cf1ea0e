"""Unit tests for the config module."""

import pytest
import yaml

from container_diff.utils.config import (
    AnalysisConfig,
    ContainerDiffConfig,
    OutputConfig,
    RegistryConfig,
    get_config_paths,
    load_config,
    save_config,
)
from container_diff.utils.errors import ConfigurationError


@pytest.fixture
def isolated_home(tmp_path, monkeypatch):
    """Point the home and working directories at an empty tree."""
    home = tmp_path / "home"
    work = tmp_path / "work"
    home.mkdir()
    work.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    monkeypatch.chdir(work)
    return home


class TestConfigModels:
    """Tests for the configuration sections."""

    def test_default_values(self):
        """Test default values."""
        config = ContainerDiffConfig()
        assert config.registry == RegistryConfig()
        assert config.registry.timeout == 60.0
        assert config.registry.platform == "linux/amd64"
        assert config.analysis.types == ["apt"]
        assert config.analysis.preserve_filesystem is False
        assert config.output.json_output is False

    def test_output_json_alias(self):
        """Test that the output section accepts its file key and field name."""
        assert OutputConfig.model_validate({"json": True}).json_output is True
        assert OutputConfig(json_output=True).json_output is True

    def test_limits(self):
        """Test that out-of-range values are rejected."""
        with pytest.raises(ValueError):
            RegistryConfig(timeout=0)
        with pytest.raises(ValueError):
            AnalysisConfig(max_workers=0)


class TestToOptions:
    """Tests for merging settings into run options."""

    def test_file_values(self):
        """Test options built from file values alone."""
        config = ContainerDiffConfig(
            analysis=AnalysisConfig(types=["pip", "file"], max_workers=2),
            output=OutputConfig(sort_by_size=True),
        )
        options = config.to_options()
        assert options.analyzer_names == ["file", "pip"]
        assert options.sort_by_size is True
        assert options.max_workers == 2

    def test_overrides_win(self):
        """Test explicit overrides replace file values."""
        config = ContainerDiffConfig(analysis=AnalysisConfig(types=["pip"]))
        options = config.to_options(analyzer_names=["history"], json_output=True)
        assert options.analyzer_names == ["history"]
        assert options.json_output is True

    def test_none_overrides_ignored(self):
        """Test None overrides keep file values."""
        config = ContainerDiffConfig(analysis=AnalysisConfig(types=["node"], preserve_filesystem=True))
        options = config.to_options(analyzer_names=None, preserve_filesystem=None)
        assert options.analyzer_names == ["node"]
        assert options.preserve_filesystem is True


class TestLoadConfig:
    """Tests for load_config function."""

    def test_explicit_path(self, tmp_path):
        """Test loading an explicit file."""
        path = tmp_path / "config.yaml"
        path.write_text("analysis:\n  types: [file, history]\noutput:\n  json: true\nregistry:\n  timeout: 5\n")

        config = load_config(path)

        assert config.analysis.types == ["file", "history"]
        assert config.output.json_output is True
        assert config.registry.timeout == 5.0

    def test_missing_explicit_path(self, tmp_path):
        """Test that a missing explicit file is an error."""
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(tmp_path / "absent.yaml")
        assert exc_info.value.code == "CONFIG_ERROR"

    def test_empty_file(self, tmp_path):
        """Test that an empty file yields defaults."""
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(path) == ContainerDiffConfig()

    def test_invalid_yaml(self, tmp_path):
        """Test invalid YAML."""
        path = tmp_path / "config.yaml"
        path.write_text("analysis: [unclosed\n")
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(path)
        assert "Invalid YAML" in exc_info.value.message

    def test_not_a_mapping(self, tmp_path):
        """Test a top-level list."""
        path = tmp_path / "config.yaml"
        path.write_text("- apt\n- pip\n")
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_invalid_value_names_key(self, tmp_path):
        """Test that validation errors carry the offending key."""
        path = tmp_path / "config.yaml"
        path.write_text("analysis:\n  max_workers: 0\n")
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(path)
        assert exc_info.value.details["config_key"] == "analysis.max_workers"

    def test_defaults_without_files(self, isolated_home):
        """Test defaults when no config file exists."""
        assert load_config() == ContainerDiffConfig()

    def test_discovers_working_directory_file(self, isolated_home, tmp_path):
        """Test the working directory file is picked up."""
        (tmp_path / "work" / ".container-diff.yaml").write_text("analysis:\n  types: [pip]\n")
        assert load_config().analysis.types == ["pip"]


class TestConfigPaths:
    """Tests for get_config_paths function."""

    def test_search_order(self, isolated_home, tmp_path):
        """Test that the working directory comes before home."""
        paths = get_config_paths()
        assert paths[0] == tmp_path / "work" / ".container-diff.yaml"
        assert isolated_home / ".container-diff.yaml" in paths

    def test_xdg_config_home(self, isolated_home, tmp_path, monkeypatch):
        """Test that XDG_CONFIG_HOME is searched last."""
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
        assert get_config_paths()[-1] == tmp_path / "xdg" / "container-diff" / "config.yaml"


class TestSaveConfig:
    """Tests for save_config function."""

    def test_round_trip(self, tmp_path):
        """Test saving and loading configuration."""
        config = ContainerDiffConfig(
            analysis=AnalysisConfig(types=["apt", "pip"]),
            output=OutputConfig(json_output=True),
        )
        path = save_config(config, tmp_path / "nested" / "config.yaml")

        assert path.exists()
        assert load_config(path) == config

    def test_only_changed_values_written(self, tmp_path):
        """Test that defaults are left out of the file."""
        path = save_config(ContainerDiffConfig(output=OutputConfig(json_output=True)), tmp_path / "config.yaml")
        assert yaml.safe_load(path.read_text()) == {"output": {"json": True}}

    def test_default_location(self, isolated_home):
        """Test saving to the home config directory."""
        path = save_config(ContainerDiffConfig())
        assert path == isolated_home / ".config" / "container-diff" / "config.yaml"
        assert path.exists()
