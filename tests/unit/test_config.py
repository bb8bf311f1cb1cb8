"""Tests for configuration loading."""

from pathlib import Path

import pytest
import yaml

from state_upgrader.config import UpgraderConfig, find_config_file, load_config
from state_upgrader.config.loader import DEFAULT_STATE_KEY_PREFIX, load_env_vars
from state_upgrader.utils.logging import ConfigurationError


@pytest.fixture
def isolated_home(tmp_path, monkeypatch):
    """Point cwd and HOME at an empty directory."""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "upgrader.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "database_url": "sqlite:///base.db",
                "log_level": "warning",
                "profiles": {
                    "prod": {"database_url": "postgresql://db/app", "echo": True}
                },
            }
        )
    )
    return path


class TestUpgraderConfig:
    """Test the configuration model."""

    def test_defaults(self, isolated_home):
        """Test default values."""
        config = UpgraderConfig()

        assert config.database_url == f"sqlite:///{Path.home() / '.state-upgrader' / 'state.db'}"
        assert config.state_key_prefix == DEFAULT_STATE_KEY_PREFIX
        assert config.log_level == "INFO"
        assert config.structured_logging is True
        assert config.echo is False

    def test_log_level_normalized(self):
        """Test log levels are upper-cased and validated."""
        assert UpgraderConfig(log_level="debug").log_level == "DEBUG"
        with pytest.raises(ValueError):
            UpgraderConfig(log_level="chatty")

    def test_blank_state_key_prefix(self):
        """Test the key prefix cannot be blank."""
        with pytest.raises(ValueError):
            UpgraderConfig(state_key_prefix="  ")


class TestLoadConfig:
    """Test configuration precedence."""

    def test_no_file(self, isolated_home):
        """Test defaults apply when no file exists."""
        assert find_config_file() is None
        assert load_config().state_key_prefix == DEFAULT_STATE_KEY_PREFIX

    def test_file_in_cwd_is_found(self, isolated_home):
        """Test the working directory is searched."""
        path = isolated_home / "state-upgrader.yaml"
        path.write_text("echo: true\n")

        assert find_config_file().resolve() == path.resolve()
        assert load_config().echo is True

    def test_missing_explicit_file(self):
        """Test an explicit path must exist."""
        with pytest.raises(FileNotFoundError):
            load_config("/nonexistent/upgrader.yaml")

    def test_file_values(self, config_file):
        """Test values are read from the file."""
        config = load_config(str(config_file))

        assert config.database_url == "sqlite:///base.db"
        assert config.log_level == "WARNING"

    def test_profile_overrides_file(self, config_file):
        """Test a profile is layered over the base values."""
        config = load_config(str(config_file), profile="prod")

        assert config.database_url == "postgresql://db/app"
        assert config.echo is True
        assert config.log_level == "WARNING"

    def test_unknown_profile(self, config_file):
        """Test asking for a missing profile."""
        with pytest.raises(ConfigurationError, match="Profile 'staging'"):
            load_config(str(config_file), profile="staging")

    def test_env_overrides_file(self, config_file, monkeypatch):
        """Test environment variables beat the file."""
        monkeypatch.setenv("STATE_UPGRADER_DATABASE_URL", "sqlite:///env.db")
        monkeypatch.setenv("STATE_UPGRADER_STRUCTURED_LOGGING", "off")

        config = load_config(str(config_file))

        assert config.database_url == "sqlite:///env.db"
        assert config.structured_logging is False

    def test_cli_overrides_env(self, config_file, monkeypatch):
        """Test CLI overrides beat everything and None is ignored."""
        monkeypatch.setenv("STATE_UPGRADER_DATABASE_URL", "sqlite:///env.db")

        config = load_config(
            str(config_file),
            cli_overrides={"database_url": "sqlite:///cli.db", "log_level": None},
        )

        assert config.database_url == "sqlite:///cli.db"
        assert config.log_level == "WARNING"

    def test_invalid_yaml(self, tmp_path):
        """Test malformed YAML is a configuration error."""
        path = tmp_path / "bad.yaml"
        path.write_text("database_url: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(str(path))

    def test_non_mapping_file(self, tmp_path):
        """Test the file must hold a mapping."""
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(str(path))

    def test_invalid_values(self, tmp_path):
        """Test validation errors become configuration errors."""
        path = tmp_path / "bad.yaml"
        path.write_text("log_level: chatty\n")

        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            load_config(str(path))

    def test_load_env_vars(self, monkeypatch):
        """Test env parsing of booleans and strings."""
        monkeypatch.setenv("STATE_UPGRADER_ECHO", "yes")
        monkeypatch.setenv("STATE_UPGRADER_STATE_KEY_PREFIX", "app:")

        assert load_env_vars() == {"echo": True, "state_key_prefix": "app:"}
