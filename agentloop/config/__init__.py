"""Configuration models and loading."""

from .loader import load_config, save_config, validate_config_file
from .models import AgentConfig, AgentLoopConfig, ClaudeConfig, LoggingConfig, WorkspaceConfig

__all__ = [
    "AgentConfig",
    "AgentLoopConfig",
    "ClaudeConfig",
    "LoggingConfig",
    "WorkspaceConfig",
    "load_config",
    "save_config",
    "validate_config_file",
]
