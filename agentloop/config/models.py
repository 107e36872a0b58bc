"""Configuration models for agentloop."""

import os
import re
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class AgentConfig(BaseModel):
    """Orchestration engine configuration."""

    max_retry_attempts: int = Field(default=3, description="Attempts allowed per step")
    backoff_base_seconds: float = Field(default=1.0, description="Delay before the first retry")
    backoff_max_seconds: float = Field(default=30.0, description="Upper bound on any retry delay")
    polling_interval_seconds: float = Field(
        default=0.5, description="Interval between status checks of a running backend call"
    )
    run_timeout_seconds: float = Field(
        default=300.0, description="Maximum duration of a single backend run"
    )
    task_timeout_seconds: Optional[float] = Field(
        default=None, description="Optional overall deadline for one task"
    )
    max_refinement_rounds: int = Field(
        default=1, description="How many times a task may be replanned"
    )
    refinement_enabled: bool = Field(default=True, description="Allow replanning after failures")

    @field_validator("max_retry_attempts")
    @classmethod
    def validate_max_retry_attempts(cls, v: int) -> int:
        """Validate retry attempt count."""
        if v < 1:
            raise ValueError("max_retry_attempts must be at least 1")
        if v > 20:
            raise ValueError("max_retry_attempts cannot exceed 20")
        return v

    @field_validator("backoff_base_seconds")
    @classmethod
    def validate_backoff_base(cls, v: float) -> float:
        """Validate base delay."""
        if v < 0:
            raise ValueError("backoff_base_seconds cannot be negative")
        return v

    @field_validator("polling_interval_seconds", "run_timeout_seconds")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Validate positive durations."""
        if v <= 0:
            raise ValueError("Value must be positive")
        return v

    @field_validator("task_timeout_seconds")
    @classmethod
    def validate_task_timeout(cls, v: Optional[float]) -> Optional[float]:
        """Validate optional task deadline."""
        if v is not None and v <= 0:
            raise ValueError("task_timeout_seconds must be positive when set")
        return v

    @field_validator("max_refinement_rounds")
    @classmethod
    def validate_refinement_rounds(cls, v: int) -> int:
        """Validate refinement budget."""
        if v < 0:
            raise ValueError("max_refinement_rounds cannot be negative")
        return v

    @model_validator(mode="after")
    def validate_backoff_bounds(self) -> "AgentConfig":
        """Validate that the delay cap is not below the base delay."""
        if self.backoff_max_seconds < self.backoff_base_seconds:
            raise ValueError("backoff_max_seconds must be >= backoff_base_seconds")
        return self


class ClaudeConfig(BaseModel):
    """Claude CLI configuration."""

    command: str = Field(
        default="claude --dangerously-skip-permissions", description="Claude command"
    )
    model: Optional[str] = Field(default=None, description="Model passed via --model")
    use_tools: bool = Field(
        default=True, description="Pass the declared tool set via --allowedTools"
    )

    @field_validator("command")
    @classmethod
    def validate_command(cls, v: str) -> str:
        """Validate that a command is given."""
        if not v.strip():
            raise ValueError("command cannot be empty")
        return v


class WorkspaceConfig(BaseModel):
    """Workspace and plan storage configuration."""

    directory: str = Field(default="./workspace", description="Directory steps run in")
    plans_dir: str = Field(default=".agentloop/plans", description="Where plan versions are saved")
    save_plans: bool = Field(default=True, description="Persist every plan version")
    cleanup_on_exit: bool = Field(
        default=False, description="Remove generated scripts when a task finishes"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    output_dir: str = Field(default=".agentloop/logs", description="Activity log directory")
    activity_log: bool = Field(default=True, description="Write the JSONL activity log")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR"]
        if v.upper() not in valid_levels:
            raise ValueError(f"level must be one of: {', '.join(valid_levels)}")
        return v.upper()


class AgentLoopConfig(BaseModel):
    """Main agentloop configuration."""

    agent: AgentConfig = Field(default_factory=AgentConfig, description="Engine configuration")
    claude: ClaudeConfig = Field(default_factory=ClaudeConfig, description="Claude configuration")
    workspace: WorkspaceConfig = Field(
        default_factory=WorkspaceConfig, description="Workspace configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    def get_log_dir(self) -> Path:
        """Get the log directory as a Path object."""
        return Path(self.logging.output_dir).expanduser().resolve()

    def get_workspace_dir(self) -> Path:
        """Get the workspace directory as a Path object."""
        return Path(self.workspace.directory).expanduser().resolve()

    def get_plans_dir(self) -> Path:
        """Get the plan storage directory as a Path object."""
        return Path(self.workspace.plans_dir).expanduser().resolve()


def resolve_env_vars(obj: Any) -> Any:
    """Recursively resolve ``${VAR}`` and ``${VAR:default}`` in configuration data."""
    if isinstance(obj, dict):
        return {key: resolve_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [resolve_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return _resolve_env_var_string(obj)
    else:
        return obj


def _resolve_env_var_string(value: str) -> str:
    """Resolve environment variables in a string."""
    pattern = r"\$\{([^}:]+)(?::([^}]*))?\}"

    def replace_var(match):
        var_name = match.group(1)
        default_value = match.group(2) if match.group(2) is not None else ""
        return os.getenv(var_name, default_value)

    return re.sub(pattern, replace_var, value)
