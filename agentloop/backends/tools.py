"""Tool declarations for the execution backend."""

from typing import List

from .base import ToolDefinition

_CODE_INTERPRETER_TOOLS = (
    ToolDefinition(name="read", description="Read files in the workspace", cli_name="Read"),
    ToolDefinition(name="write", description="Create or overwrite files", cli_name="Write"),
    ToolDefinition(name="edit", description="Edit existing files", cli_name="Edit"),
    ToolDefinition(
        name="shell",
        description="Run shell commands, including python scripts and pip installs",
        cli_name="Bash",
    ),
    ToolDefinition(name="glob", description="Find files by pattern", cli_name="Glob"),
    ToolDefinition(name="grep", description="Search file contents", cli_name="Grep"),
)


class CodeInterpreterTools:
    """Fixed code-interpreter capability set.

    The list is the same for every call, so it can be declared once per
    backend session.
    """

    def get_tool_definitions(self) -> List[ToolDefinition]:
        """Return the declared tools."""
        return list(_CODE_INTERPRETER_TOOLS)

    def describe(self) -> List[str]:
        """One line per tool, for rendering into prompts."""
        return [f"{tool.name}: {tool.description}" for tool in _CODE_INTERPRETER_TOOLS]

    def allowed_tools_argument(self) -> str:
        """Comma-separated tool names for the CLI allow-list."""
        return ",".join(tool.cli_name for tool in _CODE_INTERPRETER_TOOLS)
