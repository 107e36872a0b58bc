"""Tests for the local workspace and the tool declarations."""

import os
import time

import pytest

from agentloop.backends.tools import CodeInterpreterTools
from agentloop.backends.workspace import SCRIPTS_DIR, Workspace


class TestWorkspace:
    """Test workspace file operations."""

    def test_ensure_exists(self, tmp_path):
        """Test creating the workspace directories."""
        ws = Workspace(tmp_path / "ws")
        ws.ensure_exists()

        assert ws.root.is_dir()
        assert (ws.root / SCRIPTS_DIR).is_dir()

    def test_save_script_unique_names(self, workspace):
        """Test that saving the same name twice never overwrites."""
        first = workspace.save_script("step_01_prompt.md", "one")
        second = workspace.save_script("step_01_prompt.md", "two")

        assert first.name == "step_01_prompt.md"
        assert second.name == "step_01_prompt_1.md"
        assert first.read_text() == "one"
        assert second.read_text() == "two"

    def test_stage_input(self, workspace, input_file):
        """Test copying an input file into the workspace."""
        staged = workspace.stage_input(input_file)

        assert staged == workspace.root / "sales.csv"
        assert staged.read_text() == input_file.read_text()

    def test_stage_input_collision(self, workspace, input_file):
        """Test staging two files with the same name."""
        workspace.stage_input(input_file)
        second = workspace.stage_input(input_file)

        assert second.name == "sales_1.csv"

    def test_stage_missing_input(self, workspace, tmp_path):
        """Test staging a file that does not exist."""
        with pytest.raises(FileNotFoundError):
            workspace.stage_input(tmp_path / "missing.csv")

    def test_collect_outputs(self, workspace, input_file):
        """Test that only new files outside the scripts directory are reported."""
        old = workspace.root / "old.txt"
        old.write_text("old")
        past = time.time() - 3600
        os.utime(old, (past, past))

        since = Workspace.now() - 1
        workspace.stage_input(input_file)
        workspace.save_script("script.py", "print(1)")
        (workspace.root / "charts").mkdir()
        (workspace.root / "charts" / "sales.png").write_bytes(b"png")
        (workspace.root / "summary.txt").write_text("done")

        assert workspace.collect_outputs(since) == ["charts/sales.png", "summary.txt"]

    def test_collect_outputs_missing_root(self, tmp_path):
        """Test collecting from a workspace that was never created."""
        assert Workspace(tmp_path / "never").collect_outputs(0) == []

    def test_read_file(self, workspace):
        """Test reading a workspace file."""
        (workspace.root / "result.txt").write_text("42", encoding="utf-8")
        assert workspace.read_file("result.txt") == "42"

    def test_read_file_outside_workspace(self, workspace):
        """Test that paths escaping the workspace are rejected."""
        with pytest.raises(ValueError, match="escapes"):
            workspace.read_file("../secret.txt")

    def test_cleanup(self, workspace):
        """Test removing generated scripts while keeping outputs."""
        workspace.save_script("script.py", "print(1)")
        (workspace.root / "keep.txt").write_text("keep")

        workspace.cleanup()

        assert not workspace.scripts_dir.exists()
        assert (workspace.root / "keep.txt").exists()


class TestCodeInterpreterTools:
    """Test the declared tool set."""

    def test_tool_definitions(self):
        """Test the fixed capability set."""
        names = [tool.name for tool in CodeInterpreterTools().get_tool_definitions()]
        assert names == ["read", "write", "edit", "shell", "glob", "grep"]

    def test_allowed_tools_argument(self):
        """Test the CLI allow-list."""
        assert CodeInterpreterTools().allowed_tools_argument() == "Read,Write,Edit,Bash,Glob,Grep"

    def test_describe(self):
        """Test prompt descriptions."""
        lines = CodeInterpreterTools().describe()
        assert lines[0] == "read: Read files in the workspace"
        assert len(lines) == 6
