"""Backend contracts and the Claude CLI implementation."""

from .base import (
    ExecutionBackend,
    Judgment,
    ReasoningBackend,
    ToolDefinition,
    ToolProvider,
    WorkspaceAdapter,
)
from .claude_cli import ClaudeCliBackend
from .polling import RunPoller
from .tools import CodeInterpreterTools
from .workspace import Workspace

__all__ = [
    "ClaudeCliBackend",
    "CodeInterpreterTools",
    "ExecutionBackend",
    "Judgment",
    "ReasoningBackend",
    "RunPoller",
    "ToolDefinition",
    "ToolProvider",
    "Workspace",
    "WorkspaceAdapter",
]
