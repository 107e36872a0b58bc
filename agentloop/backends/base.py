"""Contracts for the external collaborators of the orchestration engine.

The engine talks to the outside world only through these protocols, so any
reasoning service, execution service or workspace can be plugged in.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
)

from agentloop.core.output_parser import OutputParser
from agentloop.core.plan import ExecutionPlan, PlanStep
from agentloop.core.results import ExecutionResult

if TYPE_CHECKING:
    from agentloop.orchestrator.retry_policy import RetryContext


@dataclass
class Judgment:
    """Reasoning backend's assessment of one failed attempt."""

    success: bool = False
    retryable: bool = False
    impossible: bool = False
    reasoning: str = ""
    suggested_adjustment: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Judgment":
        """Build a judgment from a backend's JSON answer."""
        adjustment = data.get("suggested_adjustment", data.get("suggestedAdjustment"))
        return cls(
            success=OutputParser.parse_bool(data.get("success")),
            retryable=OutputParser.parse_bool(data.get("retryable")),
            impossible=OutputParser.parse_bool(data.get("impossible")),
            reasoning=str(data.get("reasoning") or ""),
            suggested_adjustment=str(adjustment) if adjustment else None,
        )


@dataclass(frozen=True)
class ToolDefinition:
    """One capability declared to the execution backend."""

    name: str
    description: str
    cli_name: str
    """Identifier understood by the backend's tool allow-list"""


class ReasoningBackend(Protocol):
    """Produces plans, judges attempts and assesses impossibility."""

    async def propose_plan(self, request: str, input_files: Sequence[str]) -> Dict[str, Any]:
        """Return a structured plan (``summary``, ``complexity``, ``steps``)."""
        ...

    async def propose_refinement(self, plan: ExecutionPlan, feedback: str) -> Dict[str, Any]:
        """Return a structured replacement plan informed by feedback."""
        ...

    async def judge(
        self, step: PlanStep, result: ExecutionResult, context: "RetryContext"
    ) -> Judgment:
        """Assess a failed attempt."""
        ...

    async def assess_impossibility(self, failures: Sequence[str]) -> Tuple[bool, str]:
        """Decide whether accumulated failures mean the task cannot succeed."""
        ...


class ExecutionBackend(Protocol):
    """Runs one attempt of one step."""

    async def run(
        self,
        step: PlanStep,
        previous_results: Optional[Mapping[int, ExecutionResult]] = None,
        retry_hint: Optional[str] = None,
    ) -> ExecutionResult:
        """Execute the step and report the outcome.

        ``previous_results`` holds the results of the earlier steps of the
        same plan, keyed by step order.
        """
        ...


class WorkspaceAdapter(Protocol):
    """File operations on the directory steps run in."""

    def save_script(self, file_name: str, content: str) -> Path:
        """Persist a generated script or prompt under a unique name."""
        ...

    def stage_input(self, source: Path) -> Path:
        """Copy an input file into the workspace."""
        ...

    def collect_outputs(self, since: float) -> List[str]:
        """List files created or modified since a timestamp."""
        ...

    def read_file(self, name: str) -> str:
        """Read a workspace file as text."""
        ...

    def cleanup(self) -> None:
        """Remove generated artifacts."""
        ...


class ToolProvider(Protocol):
    """Declares the fixed capability set for a backend session."""

    def get_tool_definitions(self) -> List[ToolDefinition]:
        """Return the tools available to the execution backend."""
        ...
