"""Execution plan models.

A plan is an ordered, immutable sequence of steps produced for one request.
Refinement never edits a plan in place; it produces a new version.
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import PlanningError


class StepType(str, Enum):
    """Kind of action a plan step performs."""

    CODE_EXECUTION = "code_execution"
    FILE_READ = "file_read"
    FILE_WRITE = "file_write"
    ANALYSIS = "analysis"
    USER_INPUT = "user_input"

    @classmethod
    def parse(cls, value: Any) -> "StepType":
        """Parse a step type from backend output.

        Accepts the enum value (``code_execution``) as well as the
        CamelCase spelling (``CodeExecution``) planners tend to emit.

        Raises:
            ValueError: If the value names no known step type
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Step type must be a string, got {type(value).__name__}")

        normalized = value.strip()
        if normalized != normalized.upper():
            normalized = re.sub(r"(?<!^)(?=[A-Z])", "_", normalized)
        normalized = re.sub(r"[\s_-]+", "_", normalized.lower())
        for member in cls:
            if member.value == normalized:
                return member
        raise ValueError(f"Unknown step type: {value!r}")


class PlanStep(BaseModel):
    """A single executable step in an execution plan."""

    model_config = ConfigDict(frozen=True)

    order: int = Field(description="1-based position of the step in the plan")
    description: str = Field(description="What this step does")
    step_type: StepType = Field(default=StepType.CODE_EXECUTION, description="Kind of action")
    expected_output: str = Field(default="", description="Expected result of the step")
    dependencies: Tuple[int, ...] = Field(
        default_factory=tuple, description="Orders of earlier steps this step relies on"
    )
    parameters: Dict[str, Any] = Field(
        default_factory=dict, description="Backend-specific parameters (opaque to the core)"
    )

    @field_validator("step_type", mode="before")
    @classmethod
    def validate_step_type(cls, v: Any) -> StepType:
        """Accept both enum values and CamelCase names."""
        return StepType.parse(v)

    @property
    def script_hint(self) -> Optional[str]:
        """Optional hint for script generation."""
        hint = self.parameters.get("script_hint")
        return str(hint) if hint else None


class ExecutionPlan(BaseModel):
    """An ordered, immutable sequence of steps for one request."""

    model_config = ConfigDict(frozen=True)

    original_request: str = Field(description="The request this plan accomplishes")
    summary: str = Field(default="Execution plan", description="Brief summary")
    steps: Tuple[PlanStep, ...] = Field(default_factory=tuple, description="Ordered steps")
    complexity: int = Field(default=5, description="Estimated complexity (1-10)")
    version: int = Field(default=1, description="1 for the initial plan, +1 per refinement")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("complexity", mode="before")
    @classmethod
    def clamp_complexity(cls, v: Any) -> int:
        """Clamp complexity into 1-10."""
        try:
            value = int(v)
        except (TypeError, ValueError):
            return 5
        return max(1, min(10, value))

    def get_step(self, order: int) -> Optional[PlanStep]:
        """Return the step with the given order, if any."""
        for step in self.steps:
            if step.order == order:
                return step
        return None

    @classmethod
    def from_dict(
        cls,
        original_request: str,
        data: Dict[str, Any],
        version: int = 1,
    ) -> "ExecutionPlan":
        """Build a plan from a backend's structured response.

        Steps are sorted by order. Structural problems that cannot be
        represented at all (missing steps list, non-integer orders, unknown
        step types) raise; representable but invalid plans (gaps, duplicates,
        blank descriptions) are left for ``Planner.validate_plan``.

        Raises:
            PlanningError: If the structure is malformed
        """
        if not isinstance(data, dict):
            raise PlanningError(
                original_request,
                f"Planning response must be a JSON object, got {type(data).__name__}",
            )

        raw_steps = data.get("steps")
        if not isinstance(raw_steps, list):
            raise PlanningError(original_request, "Planning response has no 'steps' list")

        steps = []
        for index, raw in enumerate(raw_steps):
            if not isinstance(raw, dict):
                raise PlanningError(
                    original_request, f"Step #{index + 1} is not a JSON object"
                )

            try:
                parameters = dict(raw.get("parameters") or {})
                hint = raw.get("script_hint", raw.get("scriptHint"))
                if hint:
                    parameters.setdefault("script_hint", hint)
                steps.append(
                    PlanStep(
                        order=raw.get("order", raw.get("step_number")),
                        description=raw.get("description") or "",
                        step_type=raw.get("type", raw.get("step_type", StepType.CODE_EXECUTION)),
                        expected_output=raw.get("expected_output", raw.get("expectedOutput")) or "",
                        dependencies=tuple(raw.get("dependencies") or ()),
                        parameters=parameters,
                    )
                )
            except (TypeError, ValueError, ValidationError) as e:
                raise PlanningError(
                    original_request, f"Step #{index + 1} is malformed: {e}"
                ) from e

        steps.sort(key=lambda s: s.order)

        try:
            return cls(
                original_request=original_request,
                summary=data.get("summary") or "Execution plan",
                steps=tuple(steps),
                complexity=data.get("complexity", 5),
                version=version,
            )
        except ValidationError as e:
            raise PlanningError(original_request, f"Plan is malformed: {e}") from e

    def to_prompt_dict(self) -> Dict[str, Any]:
        """Serialize the plan in the shape planners produce."""
        return {
            "summary": self.summary,
            "complexity": self.complexity,
            "steps": [
                {
                    "order": step.order,
                    "description": step.description,
                    "type": step.step_type.value,
                    "expected_output": step.expected_output,
                    "dependencies": list(step.dependencies),
                    "parameters": step.parameters,
                }
                for step in self.steps
            ],
        }
