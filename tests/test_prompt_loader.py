"""Tests for prompt template loader."""

from pathlib import Path

import pytest

from agentloop.core.prompt_loader import (
    PromptLoadError,
    PromptLoader,
    PromptRenderError,
    PromptTemplate,
    load_prompt,
)


class TestPromptTemplate:
    """Test PromptTemplate model and rendering."""

    def test_simple_render(self):
        """Test rendering with simple variable substitution."""
        template = PromptTemplate(
            name="test",
            content="Step {order}: {description}",
            required_variables=["description", "order"],
        )

        assert template.render({"order": 2, "description": "Chart"}) == "Step 2: Chart"

    def test_missing_required_variable(self):
        """Test that missing required variables raise error."""
        template = PromptTemplate(
            name="test", content="Hello {name}!", required_variables=["name"]
        )

        with pytest.raises(PromptRenderError, match="name"):
            template.render({})

    def test_json_braces_survive(self):
        """Test that literal JSON in templates is not treated as variables."""
        template = PromptTemplate(
            name="test",
            content='{request}\n{"result": "success", "errors": []}',
            required_variables=["request"],
        )

        assert template.render({"request": "Go"}) == 'Go\n{"result": "success", "errors": []}'

    def test_optional_section_rendered_from_data(self):
        """Test that *_section variables render from their data variable."""
        template = PromptTemplate(
            name="test",
            content="Files:{input_files_section}End",
            optional_variables=["input_files_section"],
        )

        rendered = template.render({"input_files": ["a.csv", "b.txt"]})

        assert "## Input Files" in rendered
        assert "- a.csv" in rendered
        assert "- b.txt" in rendered

    def test_optional_section_empty(self):
        """Test that an empty or missing data variable removes the section."""
        template = PromptTemplate(
            name="test",
            content="Files:{input_files_section}End",
            optional_variables=["input_files_section"],
        )

        assert template.render({}) == "Files:End"
        assert template.render({"input_files": []}) == "Files:End"

    def test_failure_history_section(self):
        """Test numbering of previous failures."""
        template = PromptTemplate(
            name="test",
            content="{failure_history_section}",
            optional_variables=["failure_history_section"],
        )

        rendered = template.render({"failure_history": ["first", "second"]})

        assert "## Previous Failures" in rendered
        assert "1. first" in rendered
        assert "2. second" in rendered

    def test_retry_hint_section(self):
        """Test rendering the adjustment from a previous attempt."""
        template = PromptTemplate(
            name="test",
            content="{retry_hint_section}",
            optional_variables=["retry_hint_section"],
        )

        assert "use utf-8" in template.render({"retry_hint": "use utf-8"})
        assert template.render({"retry_hint": None}) == ""

    def test_none_value_renders_empty(self):
        """Test that None values render as empty strings."""
        template = PromptTemplate(name="test", content="[{model}]", required_variables=["model"])
        assert template.render({"model": None}) == "[]"


class TestPromptLoader:
    """Test loading templates from disk."""

    def test_packaged_templates(self):
        """Test that all packaged templates are available."""
        loader = PromptLoader()

        assert loader.list_templates() == [
            "evaluation",
            "execution",
            "impossibility",
            "planning",
            "refinement",
        ]

    def test_variable_detection(self, tmp_path):
        """Test required and optional variable detection."""
        (tmp_path / "custom.md").write_text(
            "{request} {input_files_section} {request}", encoding="utf-8"
        )
        template = PromptLoader(tmp_path).load_template("custom")

        assert template.required_variables == ["request"]
        assert template.optional_variables == ["input_files_section"]

    def test_planning_template(self):
        """Test that the planning template needs only the request."""
        loader = PromptLoader()
        template = loader.load_template("planning")

        assert template.required_variables == ["request"]
        rendered = loader.render_template(
            "planning", {"request": "Chart book.txt", "input_files": ["book.txt"]}
        )
        assert "Chart book.txt" in rendered
        assert "- book.txt" in rendered
        assert '"steps"' in rendered

    def test_execution_template_requires_step_fields(self):
        """Test that execution prompts need the step details."""
        with pytest.raises(PromptRenderError):
            PromptLoader().render_template("execution", {"order": 1})

    def test_templates_are_cached(self):
        """Test that templates are loaded once until the cache is cleared."""
        loader = PromptLoader()
        first = loader.load_template("evaluation")

        assert loader.load_template("evaluation") is first
        loader.clear_cache()
        assert loader.load_template("evaluation") is not first

    def test_missing_template(self):
        """Test loading a template that does not exist."""
        with pytest.raises(PromptLoadError, match="not found"):
            PromptLoader().load_template("nonexistent")

    def test_missing_directory(self, tmp_path):
        """Test pointing the loader at a missing directory."""
        with pytest.raises(PromptLoadError):
            PromptLoader(tmp_path / "nope")

    def test_load_prompt_helper(self, tmp_path: Path):
        """Test the one-shot helper."""
        (tmp_path / "greet.md").write_text("Hi {name}", encoding="utf-8")
        assert load_prompt("greet", prompts_dir=tmp_path, name="there") == "Hi there"
