"""Scripted backends for deterministic orchestration tests.

These classes implement the reasoning and execution backend protocols but
return predefined answers instead of calling a real service.

Example:
    >>> reasoning = ScriptedReasoningBackend(plans=[plan_dict(2)])
    >>> execution = ScriptedExecutionBackend()
    >>> execution.add_results(1, MockResultLibrary.failure(1), MockResultLibrary.success(1))
"""

import asyncio
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from agentloop.backends.base import Judgment
from agentloop.core.plan import ExecutionPlan, PlanStep
from agentloop.core.results import ExecutionResult, ExecutionStatus

PlanAnswer = Union[Dict[str, Any], Exception]
JudgmentAnswer = Union[Judgment, Exception]
ResultAnswer = Union[ExecutionResult, Exception]


def plan_dict(
    step_count: int = 2,
    summary: str = "Test plan",
    orders: Optional[Sequence[int]] = None,
    step_type: str = "code_execution",
) -> Dict[str, Any]:
    """Build a planning response in the shape reasoning backends return.

    Args:
        step_count: Number of steps when ``orders`` is not given
        summary: Plan summary
        orders: Explicit step orders (for building invalid plans)
        step_type: Type used for every step
    """
    orders = list(orders) if orders is not None else list(range(1, step_count + 1))
    return {
        "summary": summary,
        "complexity": 3,
        "steps": [
            {
                "order": order,
                "description": f"Step {order} of {summary.lower()}",
                "type": step_type,
                "expected_output": f"output-{order}.txt",
                "dependencies": [order - 1] if order > 1 else [],
            }
            for order in orders
        ],
    }


class MockResultLibrary:
    """Library of common attempt outcomes and judgments."""

    @staticmethod
    def success(order: int = 1, output: str = "done", files: Optional[List[str]] = None):
        return ExecutionResult(
            step_order=order,
            status=ExecutionStatus.SUCCESS,
            output=output,
            generated_files=list(files or []),
            duration_seconds=0.01,
        )

    @staticmethod
    def failure(order: int = 1, error: str = "Script exited with status 1"):
        return ExecutionResult.failure(order, error, duration_seconds=0.01)

    @staticmethod
    def timed_out(order: int = 1):
        return ExecutionResult.failure(
            order, "Run did not complete within 300 seconds", status=ExecutionStatus.TIMED_OUT
        )

    @staticmethod
    def cancelled(order: int = 1):
        return ExecutionResult.failure(
            order, "Run cancelled", status=ExecutionStatus.CANCELLED
        )

    @staticmethod
    def retryable(reasoning: str = "Transient failure", adjustment: Optional[str] = None):
        return Judgment(retryable=True, reasoning=reasoning, suggested_adjustment=adjustment)

    @staticmethod
    def terminal(reasoning: str = "Fundamental error"):
        return Judgment(retryable=False, reasoning=reasoning)

    @staticmethod
    def impossible(reasoning: str = "Required data does not exist"):
        return Judgment(impossible=True, reasoning=reasoning)


class ScriptedReasoningBackend:
    """Reasoning backend that answers from queues.

    Each queue is consumed front to back; when a queue runs dry the last
    answer keeps being returned (plans, refinements) or a default is used
    (judgments, impossibility).
    """

    def __init__(
        self,
        plans: Optional[List[PlanAnswer]] = None,
        refinements: Optional[List[PlanAnswer]] = None,
        judgments: Optional[List[JudgmentAnswer]] = None,
        impossibility: Union[Tuple[bool, str], Exception] = (False, "Failures look fixable"),
    ):
        self.plans: List[PlanAnswer] = list(plans or [plan_dict()])
        self.refinements: List[PlanAnswer] = list(refinements or [plan_dict(summary="Refined plan")])
        self.judgments: List[JudgmentAnswer] = list(judgments or [])
        self.default_judgment = MockResultLibrary.retryable()
        self.impossibility = impossibility
        self.call_history: List[Dict[str, Any]] = []

    async def propose_plan(self, request: str, input_files: Sequence[str]) -> Dict[str, Any]:
        self.call_history.append(
            {"method": "propose_plan", "request": request, "input_files": list(input_files)}
        )
        return self._answer(self._next(self.plans))

    async def propose_refinement(self, plan: ExecutionPlan, feedback: str) -> Dict[str, Any]:
        self.call_history.append(
            {"method": "propose_refinement", "version": plan.version, "feedback": feedback}
        )
        return self._answer(self._next(self.refinements))

    async def judge(self, step: PlanStep, result: ExecutionResult, context: Any) -> Judgment:
        self.call_history.append(
            {
                "method": "judge",
                "order": step.order,
                "attempt": context.attempt_number,
                "failures": list(context.failures),
            }
        )
        answer = self.judgments.pop(0) if self.judgments else self.default_judgment
        return self._answer(answer)

    async def assess_impossibility(self, failures: Sequence[str]) -> Tuple[bool, str]:
        self.call_history.append({"method": "assess_impossibility", "failures": list(failures)})
        return self._answer(self.impossibility)

    def calls(self, method: str) -> List[Dict[str, Any]]:
        """Return the recorded calls of one method."""
        return [call for call in self.call_history if call["method"] == method]

    @staticmethod
    def _next(queue: List[Any]) -> Any:
        return queue.pop(0) if len(queue) > 1 else queue[0]

    @staticmethod
    def _answer(answer: Any) -> Any:
        if isinstance(answer, Exception):
            raise answer
        return answer


class ScriptedExecutionBackend:
    """Execution backend that answers from per-step queues.

    Steps without queued answers succeed.
    """

    def __init__(self, delay: float = 0.0):
        self.results: Dict[int, List[ResultAnswer]] = {}
        self.delay = delay
        self.before_run: Optional[Callable[[PlanStep], None]] = None
        self.call_history: List[Tuple[int, Optional[str]]] = []
        self.previous_results: List[Dict[int, ExecutionResult]] = []
        """Earlier-step results each attempt was given, in call order"""

    def add_results(self, order: int, *answers: ResultAnswer) -> None:
        """Queue answers for the given step order."""
        self.results.setdefault(order, []).extend(answers)

    async def run(
        self,
        step: PlanStep,
        previous_results: Optional[Mapping[int, ExecutionResult]] = None,
        retry_hint: Optional[str] = None,
    ) -> ExecutionResult:
        self.call_history.append((step.order, retry_hint))
        self.previous_results.append(dict(previous_results or {}))
        if self.before_run is not None:
            self.before_run(step)
        if self.delay:
            await asyncio.sleep(self.delay)

        queue = self.results.get(step.order)
        answer = queue.pop(0) if queue else MockResultLibrary.success(step.order)
        if isinstance(answer, Exception):
            raise answer
        return answer

    @property
    def call_count(self) -> int:
        return len(self.call_history)

    def orders_run(self) -> List[int]:
        """Step orders in the order attempts were made."""
        return [order for order, _ in self.call_history]

    def reset(self) -> None:
        self.results.clear()
        self.call_history.clear()
        self.previous_results.clear()
