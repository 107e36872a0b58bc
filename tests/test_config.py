"""Tests for agentloop configuration system."""

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from agentloop.config.loader import (
    _get_global_config_path,
    _get_project_config_path,
    create_default_config,
    get_config_paths,
    load_config,
    save_config,
    validate_config_file,
)
from agentloop.config.models import (
    AgentConfig,
    AgentLoopConfig,
    ClaudeConfig,
    LoggingConfig,
    resolve_env_vars,
)
from agentloop.core.exceptions import ConfigurationError


def _write_yaml(path: Path, data) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(data, f)
    return path


class TestConfigModels:
    """Test configuration model validation."""

    def test_default_config(self):
        """Test creating default configuration."""
        config = AgentLoopConfig()

        assert config.agent.max_retry_attempts == 3
        assert config.agent.backoff_base_seconds == 1.0
        assert config.agent.backoff_max_seconds == 30.0
        assert config.agent.max_refinement_rounds == 1
        assert config.agent.refinement_enabled is True
        assert config.agent.task_timeout_seconds is None
        assert config.claude.command == "claude --dangerously-skip-permissions"
        assert config.workspace.save_plans is True
        assert config.logging.level == "INFO"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_retry_attempts": 0},
            {"max_retry_attempts": 21},
            {"backoff_base_seconds": -1},
            {"backoff_base_seconds": 5, "backoff_max_seconds": 1},
            {"polling_interval_seconds": 0},
            {"run_timeout_seconds": -5},
            {"task_timeout_seconds": 0},
            {"max_refinement_rounds": -1},
        ],
    )
    def test_agent_config_validation(self, kwargs):
        """Test that out-of-range engine settings are rejected."""
        with pytest.raises(ValidationError):
            AgentConfig(**kwargs)

    def test_agent_config_valid_values(self):
        """Test accepting valid engine settings."""
        config = AgentConfig(
            max_retry_attempts=5,
            backoff_base_seconds=0,
            backoff_max_seconds=0,
            task_timeout_seconds=60,
            max_refinement_rounds=0,
        )
        assert config.max_retry_attempts == 5
        assert config.task_timeout_seconds == 60

    def test_claude_command_required(self):
        """Test that an empty Claude command is rejected."""
        with pytest.raises(ValidationError, match="command cannot be empty"):
            ClaudeConfig(command="   ")

    def test_logging_level_normalized(self):
        """Test that log levels are upper-cased and validated."""
        assert LoggingConfig(level="debug").level == "DEBUG"
        with pytest.raises(ValidationError):
            LoggingConfig(level="LOUD")

    def test_directory_helpers(self, tmp_path):
        """Test path helpers resolve configured directories."""
        config = AgentLoopConfig(
            workspace={"directory": str(tmp_path / "ws"), "plans_dir": str(tmp_path / "plans")},
            logging={"output_dir": str(tmp_path / "logs")},
        )

        assert config.get_workspace_dir() == (tmp_path / "ws").resolve()
        assert config.get_plans_dir() == (tmp_path / "plans").resolve()
        assert config.get_log_dir() == (tmp_path / "logs").resolve()


class TestEnvironmentVariables:
    """Test ${VAR} resolution."""

    def test_resolves_set_variable(self, monkeypatch):
        """Test substituting a defined variable."""
        monkeypatch.setenv("AGENTLOOP_MODEL", "opus")
        assert resolve_env_vars({"model": "${AGENTLOOP_MODEL}"}) == {"model": "opus"}

    def test_default_value(self, monkeypatch):
        """Test falling back to the inline default."""
        monkeypatch.delenv("AGENTLOOP_UNSET", raising=False)
        assert resolve_env_vars(["${AGENTLOOP_UNSET:fallback}"]) == ["fallback"]

    def test_non_strings_untouched(self):
        """Test that numbers and booleans pass through."""
        assert resolve_env_vars({"a": 1, "b": True, "c": None}) == {"a": 1, "b": True, "c": None}


class TestConfigLoader:
    """Test layered configuration loading."""

    def test_load_defaults_only(self, tmp_path):
        """Test loading when no config file exists."""
        config = load_config(
            project_config_path=tmp_path / "missing-project.yaml",
            global_config_path=tmp_path / "missing-global.yaml",
        )
        assert config == create_default_config()

    def test_layers_merge_in_order(self, tmp_path):
        """Test that project overrides global and the explicit file overrides both."""
        global_path = _write_yaml(
            tmp_path / "global.yaml",
            {"agent": {"max_retry_attempts": 4, "backoff_base_seconds": 2}},
        )
        project_path = _write_yaml(
            tmp_path / "project.yaml", {"agent": {"max_retry_attempts": 5}}
        )
        explicit_path = _write_yaml(tmp_path / "explicit.yaml", {"claude": {"model": "sonnet"}})

        config = load_config(
            config_path=explicit_path,
            project_config_path=project_path,
            global_config_path=global_path,
        )

        assert config.agent.max_retry_attempts == 5
        assert config.agent.backoff_base_seconds == 2
        assert config.claude.model == "sonnet"

    def test_env_vars_resolved_before_validation(self, tmp_path, monkeypatch):
        """Test that numeric fields can come from the environment."""
        monkeypatch.setenv("AGENTLOOP_ATTEMPTS", "7")
        path = _write_yaml(
            tmp_path / "config.yaml", {"agent": {"max_retry_attempts": "${AGENTLOOP_ATTEMPTS}"}}
        )

        config = load_config(
            config_path=path,
            project_config_path=tmp_path / "none.yaml",
            global_config_path=tmp_path / "none.yaml",
        )
        assert config.agent.max_retry_attempts == 7

    def test_missing_explicit_file(self, tmp_path):
        """Test that a missing explicit config file is an error."""
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(config_path=tmp_path / "nope.yaml")

    def test_invalid_values(self, tmp_path):
        """Test that validation errors become ConfigurationError."""
        path = _write_yaml(tmp_path / "config.yaml", {"agent": {"max_retry_attempts": 0}})

        with pytest.raises(ConfigurationError, match="validation failed"):
            load_config(
                config_path=path,
                project_config_path=tmp_path / "none.yaml",
                global_config_path=tmp_path / "none.yaml",
            )

    def test_invalid_yaml(self, tmp_path):
        """Test that malformed YAML is reported."""
        path = tmp_path / "config.yaml"
        path.write_text("agent: [unclosed", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(config_path=path, global_config_path=tmp_path / "none.yaml")

    def test_non_mapping_yaml(self, tmp_path):
        """Test that a YAML list is rejected."""
        path = _write_yaml(tmp_path / "config.yaml", ["not", "a", "mapping"])

        with pytest.raises(ConfigurationError, match="YAML object"):
            load_config(config_path=path, global_config_path=tmp_path / "none.yaml")

    def test_save_and_reload(self, tmp_path):
        """Test saving configuration and loading it back."""
        config = AgentLoopConfig(agent={"max_retry_attempts": 6}, claude={"model": "opus"})
        path = tmp_path / "nested" / "config.yaml"

        save_config(config, path)
        loaded = load_config(
            config_path=path,
            project_config_path=tmp_path / "none.yaml",
            global_config_path=tmp_path / "none.yaml",
        )

        assert loaded.agent.max_retry_attempts == 6
        assert loaded.claude.model == "opus"


class TestValidateConfigFile:
    """Test standalone config validation."""

    def test_valid_file(self, config_file):
        """Test validating a correct file."""
        result = validate_config_file(config_file)

        assert result["valid"] is True
        assert result["errors"] == []
        assert result["config"]["agent"]["max_retry_attempts"] == 2

    def test_invalid_file(self, tmp_path):
        """Test that errors name the offending field."""
        path = _write_yaml(tmp_path / "bad.yaml", {"agent": {"max_retry_attempts": 99}})

        result = validate_config_file(path)

        assert result["valid"] is False
        assert result["config"] is None
        assert result["errors"][0].startswith("agent.max_retry_attempts:")

    def test_missing_file(self, tmp_path):
        """Test validating a file that does not exist."""
        with pytest.raises(ConfigurationError):
            validate_config_file(tmp_path / "missing.yaml")


class TestConfigPaths:
    """Test config file discovery."""

    def test_global_path_honours_xdg(self, tmp_path, monkeypatch):
        """Test XDG_CONFIG_HOME overrides the home directory."""
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        assert _get_global_config_path() == tmp_path / "agentloop" / "config.yaml"

    def test_project_path_searches_parents(self, tmp_path, monkeypatch):
        """Test finding .agentloop in a parent directory."""
        (tmp_path / ".agentloop").mkdir()
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        monkeypatch.chdir(nested)

        assert _get_project_config_path() == tmp_path.resolve() / ".agentloop" / "config.yaml"

    def test_get_config_paths_keys(self):
        """Test the reported config locations."""
        assert set(get_config_paths()) == {"global", "project"}
