"""Markdown prompt templates for the reasoning and execution backends.

Each template in ``agentloop/prompts`` is plain markdown with ``{name}``
placeholders. A placeholder ending in ``_section`` is optional: it is built
from the variable without the suffix (``input_files_section`` from
``input_files``) and disappears when that variable is empty. Every other
placeholder must be supplied.
"""

import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .exceptions import AgentLoopError

# Only identifier-shaped placeholders are variables, so literal JSON braces
# in example output survive rendering.
_VARIABLE_PATTERN = re.compile(r"\{([a-z_][a-z0-9_]*)\}")

_SECTION_SUFFIX = "_section"

_DEFAULT_PROMPTS_DIR = Path(__file__).parent.parent / "prompts"

_SECTION_TITLES = {
    "input_files": "Input Files",
    "failure_history": "Previous Failures",
    "retry_hint": "Adjustment From The Previous Attempt",
    "tools": "Available Tools",
    "previous_results": "Results Of Previous Steps",
}


class PromptLoadError(AgentLoopError):
    """A template file is missing or unreadable."""

    pass


class PromptRenderError(AgentLoopError):
    """A template was rendered without all of its required variables."""

    pass


def _bullets(items: Any) -> str:
    return "\n".join(f"- {item}" for item in items)


def _section_body(data_var: str, value: Any) -> str:
    is_list = isinstance(value, (list, tuple))
    if data_var == "input_files" and is_list:
        return "The following files are available in the workspace:\n" + _bullets(value)
    if data_var == "failure_history" and is_list:
        return "\n".join(f"{n}. {reason}" for n, reason in enumerate(value, start=1))
    if data_var == "retry_hint":
        return f"The previous attempt failed. Apply this adjustment:\n{value}"
    if data_var in ("tools", "previous_results") and is_list:
        return _bullets(value)
    return str(value)


def render_section(data_var: str, value: Any) -> str:
    """Markdown for an optional section, or ``""`` when ``value`` is empty."""
    if not value:
        return ""
    title = _SECTION_TITLES.get(data_var, data_var.replace("_", " ").title())
    return f"\n## {title}\n\n{_section_body(data_var, value)}\n"


class PromptTemplate(BaseModel):
    """A prompt template and the placeholders found in it."""

    name: str = Field(description="Template name, the file stem (e.g. 'planning')")
    content: str = Field(description="Markdown source")
    required_variables: List[str] = Field(
        default_factory=list, description="Placeholders that must be supplied"
    )
    optional_variables: List[str] = Field(
        default_factory=list, description="Placeholders that may be left out"
    )

    def render(self, variables: Dict[str, Any]) -> str:
        """Substitute ``variables`` into the template.

        ``None`` renders as an empty string. Unknown placeholders are left
        untouched.

        Raises:
            PromptRenderError: If a required variable is missing
        """
        missing = sorted(set(self.required_variables).difference(variables))
        if missing:
            raise PromptRenderError(f"Template '{self.name}' is missing variables: {missing}")

        values = dict(variables)
        for placeholder in self.optional_variables:
            if placeholder.endswith(_SECTION_SUFFIX):
                data_var = placeholder[: -len(_SECTION_SUFFIX)]
                values[placeholder] = render_section(data_var, variables.get(data_var))
            else:
                values.setdefault(placeholder, "")

        def substitute(match: "re.Match[str]") -> str:
            key = match.group(1)
            if key not in values:
                return match.group(0)
            value = values[key]
            return "" if value is None else str(value)

        return _VARIABLE_PATTERN.sub(substitute, self.content)


class PromptLoader:
    """Reads templates from a directory and caches them by name.

    Args:
        prompts_dir: Template directory, the packaged prompts by default

    Raises:
        PromptLoadError: If the directory does not exist
    """

    def __init__(self, prompts_dir: Optional[Path] = None):
        self.prompts_dir = Path(prompts_dir) if prompts_dir is not None else _DEFAULT_PROMPTS_DIR
        if not self.prompts_dir.is_dir():
            raise PromptLoadError(f"Prompts directory not found: {self.prompts_dir}")
        self._cache: Dict[str, PromptTemplate] = {}

    def load_template(self, name: str) -> PromptTemplate:
        """Return the template ``<prompts_dir>/<name>.md``.

        Raises:
            PromptLoadError: If the file is missing or unreadable
        """
        cached = self._cache.get(name)
        if cached is not None:
            return cached

        path = self.prompts_dir / f"{name}.md"
        if not path.is_file():
            raise PromptLoadError(f"Template file not found: {path}")
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise PromptLoadError(f"Cannot read template '{name}': {e}") from e

        placeholders = sorted(set(_VARIABLE_PATTERN.findall(content)))
        template = PromptTemplate(
            name=name,
            content=content,
            required_variables=[p for p in placeholders if not p.endswith(_SECTION_SUFFIX)],
            optional_variables=[p for p in placeholders if p.endswith(_SECTION_SUFFIX)],
        )
        self._cache[name] = template
        return template

    def render_template(self, name: str, variables: Dict[str, Any]) -> str:
        return self.load_template(name).render(variables)

    def list_templates(self) -> List[str]:
        """Names of the templates in the directory, sorted."""
        return sorted(path.stem for path in self.prompts_dir.glob("*.md") if path.is_file())

    def clear_cache(self) -> None:
        self._cache.clear()


def load_prompt(name: str, prompts_dir: Optional[Path] = None, **variables: Any) -> str:
    """Render a template without keeping a loader around.

    Example:
        >>> prompt = load_prompt(
        ...     "planning",
        ...     request="Summarise sales.csv by region",
        ...     input_files=["sales.csv"],
        ... )
    """
    return PromptLoader(prompts_dir=prompts_dir).render_template(name, variables)
