"""Layered YAML configuration for agentloop.

Layers, lowest precedence first:

1. model defaults
2. ``$XDG_CONFIG_HOME/agentloop/config.yaml`` (``~/.config`` without XDG)
3. ``.agentloop/config.yaml`` in the working directory or its nearest parent
4. a file named explicitly (``agentloop --config``)

Mappings merge key by key; any other value from a later layer replaces the
earlier one. ``${VAR}`` and ``${VAR:default}`` references are expanded
after merging and before validation.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError

from agentloop.config.models import AgentLoopConfig, resolve_env_vars
from agentloop.core.exceptions import ConfigurationError

APP_DIR_NAME = "agentloop"
PROJECT_DIR_NAME = ".agentloop"
CONFIG_FILE_NAME = "config.yaml"


def load_config(
    config_path: Optional[Path] = None,
    project_config_path: Optional[Path] = None,
    global_config_path: Optional[Path] = None,
) -> AgentLoopConfig:
    """Build the effective configuration.

    Args:
        config_path: Explicit file, applied last; it must exist
        project_config_path: Project file to use instead of searching for one
        global_config_path: Global file to use instead of the XDG location

    Raises:
        ConfigurationError: If a file is unreadable or the result is invalid
    """
    layers: List[Path] = [
        path
        for path in (
            global_config_path or _get_global_config_path(),
            project_config_path or _get_project_config_path(),
        )
        if path is not None and path.exists()
    ]
    if config_path is not None:
        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")
        layers.append(config_path)

    merged: Dict[str, Any] = {}
    for path in layers:
        merged = _merge_config(merged, _load_yaml_file(path))

    try:
        return AgentLoopConfig(**resolve_env_vars(merged))
    except ValidationError as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e


def save_config(config: AgentLoopConfig, config_path: Path) -> None:
    """Write ``config`` as YAML, creating parent directories.

    Raises:
        ConfigurationError: If the file cannot be written
    """
    data = config.model_dump(exclude_none=True, mode="json")
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(
            yaml.safe_dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True),
            encoding="utf-8",
        )
    except OSError as e:
        raise ConfigurationError(f"Cannot write configuration to {config_path}: {e}") from e


def create_default_config() -> AgentLoopConfig:
    return AgentLoopConfig()


def validate_config_file(config_path: Path) -> Dict[str, Any]:
    """Check a single file on its own, without the other layers.

    Returns:
        ``{"valid": bool, "errors": [...], "config": dict or None}``; each
        error reads ``section.field: message``

    Raises:
        ConfigurationError: If the file is missing or is not valid YAML
    """
    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    data = resolve_env_vars(_load_yaml_file(config_path))
    try:
        config = AgentLoopConfig(**data)
    except ValidationError as e:
        errors = [
            "{}: {}".format(".".join(str(part) for part in err["loc"]), err["msg"])
            for err in e.errors()
        ]
        return {"valid": False, "errors": errors, "config": None}
    return {"valid": True, "errors": [], "config": config.model_dump(mode="json")}


def get_config_paths() -> Dict[str, Optional[Path]]:
    """Where the global and project layers are looked up."""
    return {"global": _get_global_config_path(), "project": _get_project_config_path()}


def _get_global_config_path() -> Optional[Path]:
    base = os.getenv("XDG_CONFIG_HOME")
    config_home = Path(base) if base else Path.home() / ".config"
    return config_home / APP_DIR_NAME / CONFIG_FILE_NAME


def _get_project_config_path() -> Optional[Path]:
    cwd = Path.cwd()
    for directory in (cwd, *cwd.parents):
        if (directory / PROJECT_DIR_NAME).is_dir():
            return directory / PROJECT_DIR_NAME / CONFIG_FILE_NAME
    return None


def _load_yaml_file(file_path: Path) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(file_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {file_path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read {file_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"{file_path} must contain a YAML object, got {type(data).__name__}"
        )
    return data


def _merge_config(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _merge_config(current, value)
        else:
            merged[key] = value
    return merged
