"""Orchestrator for the Plan, Execute, Evaluate loop.

The orchestrator owns the task lifecycle: it asks the planner for a plan,
runs every step through the execution engine, and when a step cannot succeed
decides between declaring the task impossible, replanning, or failing it.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from agentloop.backends.base import WorkspaceAdapter
from agentloop.backends.claude_cli import ClaudeCliBackend
from agentloop.backends.polling import RunPoller
from agentloop.backends.tools import CodeInterpreterTools
from agentloop.backends.workspace import Workspace
from agentloop.config.models import AgentLoopConfig
from agentloop.core.exceptions import (
    AgentLoopError,
    ExecutionError,
    ImpossibleTaskError,
    PlanningError,
    TaskCancelledError,
)
from agentloop.core.plan import ExecutionPlan, PlanStep
from agentloop.core.results import ExecutionResult
from agentloop.core.state_machine import TaskStateMachine
from agentloop.core.task_state import TaskStatus
from agentloop.tracking.activity_logger import ActivityLogger

from .cancellation import check_cancelled
from .evaluator import EvaluationResult, Evaluator
from .execution_engine import AttemptListener, ExecutionEngine, StepOutcome
from .plan_storage import PlanStorage
from .planner import Planner
from .retry_policy import RetryContext, RetryPolicy

logger = logging.getLogger(__name__)

OUTPUT_PREVIEW_LENGTH = 500


@dataclass
class Task:
    """One end-to-end unit of work derived from a single request."""

    task_id: str
    request: str
    input_files: List[str] = field(default_factory=list)
    status: TaskStatus = TaskStatus.PENDING
    plan: Optional[ExecutionPlan] = None
    plans: List[ExecutionPlan] = field(default_factory=list)
    """Every plan version produced for the task, oldest first"""

    failures: List[str] = field(default_factory=list)
    """Failure explanations accumulated across steps and plan versions"""

    outcomes: Dict[int, StepOutcome] = field(default_factory=dict)
    """Successful step outcomes of the current plan, by step order"""

    refinement_rounds: int = 0
    explanation: Optional[str] = None
    output: Optional[str] = None
    error: Optional[AgentLoopError] = None

    def set_plan(self, plan: ExecutionPlan) -> None:
        self.plan = plan
        self.plans.append(plan)
        self.outcomes = {}


@dataclass
class TaskResult:
    """Final outcome of a task as observed by the caller."""

    task_id: str
    status: TaskStatus
    plan: Optional[ExecutionPlan]
    outcomes: List[StepOutcome]
    output: Optional[str]
    explanation: Optional[str]
    failures: List[str]
    refinement_rounds: int
    plan_versions: int
    duration_seconds: float
    error: Optional[AgentLoopError] = None

    @property
    def success(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    def raise_for_status(self) -> None:
        """Raise the error behind a task that did not complete.

        Raises:
            ImpossibleTaskError: If the task was judged impossible
            TaskCancelledError: If the task was cancelled
            AgentLoopError: If the task failed
        """
        if self.status == TaskStatus.COMPLETED:
            return
        if self.error is not None:
            raise self.error
        if self.status == TaskStatus.IMPOSSIBLE:
            raise ImpossibleTaskError(self.failures, self.explanation or "Task is impossible")
        if self.status == TaskStatus.CANCELLED:
            raise TaskCancelledError(self.explanation or "Task cancelled")
        raise AgentLoopError(self.explanation or f"Task ended in state {self.status.value}")


class _TaskAttemptListener(AttemptListener):
    """Maps attempt events onto task states and activity events."""

    def __init__(self, orchestrator: "Orchestrator", task: Task):
        self.orchestrator = orchestrator
        self.task = task
        self._last_result: Optional[ExecutionResult] = None

    def on_attempt_start(self, step: PlanStep, context: RetryContext) -> None:
        self.orchestrator._set_status(
            self.task,
            TaskStatus.EXECUTING,
            f"Step {step.order} attempt {context.attempt_number}",
        )

    def on_attempt_finished(
        self, step: PlanStep, result: ExecutionResult, context: RetryContext
    ) -> None:
        self._last_result = result
        self.orchestrator._set_status(
            self.task, TaskStatus.EVALUATING, f"Step {step.order} returned {result.status.value}"
        )

    def on_evaluated(
        self, step: PlanStep, evaluation: EvaluationResult, context: RetryContext
    ) -> None:
        activity = self.orchestrator.activity_logger
        if activity is None or self._last_result is None:
            return
        activity.log_step_attempt(
            self.task.task_id,
            step.order,
            context.attempt_number,
            self._last_result.status.value,
            int(self._last_result.duration_seconds * 1000),
            verdict=evaluation.verdict.value,
        )

    def on_retry_scheduled(
        self, step: PlanStep, context: RetryContext, delay: float, reason: str
    ) -> None:
        activity = self.orchestrator.activity_logger
        if activity is not None:
            activity.log_step_retry(
                self.task.task_id, step.order, context.attempt_number, delay, reason
            )


class Orchestrator:
    """Drives tasks through planning, execution, evaluation and refinement."""

    def __init__(
        self,
        planner: Planner,
        execution_engine: ExecutionEngine,
        evaluator: Evaluator,
        state_machine: Optional[TaskStateMachine] = None,
        activity_logger: Optional[ActivityLogger] = None,
        workspace: Optional[WorkspaceAdapter] = None,
        max_refinement_rounds: int = 1,
        refinement_enabled: bool = True,
        task_timeout_seconds: Optional[float] = None,
        cleanup_workspace: bool = False,
    ):
        """Initialize the orchestrator.

        Args:
            planner: Creates and refines plans
            execution_engine: Runs steps with retries
            evaluator: Runs impossibility analysis after a step gives up
            state_machine: Task state machine (creates one if None)
            activity_logger: Optional JSONL activity log
            workspace: Optional workspace for staging input files
            max_refinement_rounds: How many times one task may be replanned
            refinement_enabled: Whether replanning is attempted at all
            task_timeout_seconds: Optional overall deadline per task
            cleanup_workspace: Remove generated scripts when a task finishes
        """
        self.planner = planner
        self.execution_engine = execution_engine
        self.evaluator = evaluator
        self.state_machine = state_machine or TaskStateMachine()
        self.activity_logger = activity_logger
        self.workspace = workspace
        self.max_refinement_rounds = max_refinement_rounds
        self.refinement_enabled = refinement_enabled
        self.task_timeout_seconds = task_timeout_seconds
        self.cleanup_workspace = cleanup_workspace
        self._tasks: Dict[str, Task] = {}
        self._active_tasks = 0

        if self.activity_logger is not None:
            self.state_machine.add_listener(self._log_transition)

    def get_task(self, task_id: str) -> Optional[Task]:
        """Return a task started by this orchestrator, if any."""
        return self._tasks.get(task_id)

    async def run(
        self,
        request: str,
        input_files: Sequence[str] = (),
        cancel_event: Optional[asyncio.Event] = None,
        task_id: Optional[str] = None,
    ) -> TaskResult:
        """Run one request to a terminal state.

        Args:
            request: Natural-language request
            input_files: Paths of files to stage into the workspace
            cancel_event: Optional cancellation signal
            task_id: Optional task identifier (generated when omitted)

        Returns:
            TaskResult describing the terminal state

        Raises:
            asyncio.CancelledError: Re-raised after recording CANCELLED when
                the surrounding asyncio task is cancelled
        """
        task = Task(
            task_id=task_id or f"task-{uuid.uuid4().hex[:8]}",
            request=request,
            input_files=[str(f) for f in input_files],
        )
        self._tasks[task.task_id] = task
        self.state_machine.register_task(task.task_id, metadata={"request": request})
        if self.activity_logger is not None:
            self.activity_logger.log_task_start(task.task_id, request)

        start = time.monotonic()
        self._active_tasks += 1
        try:
            if self.task_timeout_seconds is not None:
                await asyncio.wait_for(self._drive(task, cancel_event), self.task_timeout_seconds)
            else:
                await self._drive(task, cancel_event)
        except asyncio.TimeoutError:
            self._finish(
                task,
                TaskStatus.FAILED,
                f"Task timed out after {self.task_timeout_seconds:g} seconds",
                start,
            )
        except asyncio.CancelledError:
            self._finish(task, TaskStatus.CANCELLED, "Task cancelled", start)
            raise
        finally:
            self._active_tasks -= 1
            # Tasks run by run_many share the workspace
            if self.cleanup_workspace and self.workspace is not None and not self._active_tasks:
                self.workspace.cleanup()

        return self._result(task, time.monotonic() - start)

    async def run_many(
        self,
        requests: Sequence[str],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[TaskResult]:
        """Run several independent requests concurrently.

        The tasks share one workspace. Generated files are attributed by
        modification time, so a step may also report files written by a
        concurrent task at the same moment. Workspace cleanup waits until the
        last running task finishes.
        """
        return list(
            await asyncio.gather(
                *(self.run(request, cancel_event=cancel_event) for request in requests)
            )
        )

    async def _drive(self, task: Task, cancel_event: Optional[asyncio.Event]) -> None:
        """Move a task from PENDING to a terminal state."""
        start = time.monotonic()

        try:
            check_cancelled(cancel_event, "before planning")
            self._set_status(task, TaskStatus.PLANNING, "Creating plan")

            staged = self._stage_inputs(task)
            plan = await self.planner.create_plan(
                task.request, staged, cancel_event=cancel_event, task_id=task.task_id
            )
            self._adopt_plan(task, plan)

            while True:
                try:
                    await self._execute_plan(task, cancel_event)
                except ExecutionError as e:
                    task.failures.extend(e.failures)
                    check_cancelled(cancel_event, "before impossibility analysis")

                    impossible, analysis = await self.evaluator.analyze_impossibility(
                        task.failures, cancel_event
                    )
                    if impossible:
                        raise ImpossibleTaskError(task.failures, analysis) from e

                    if not self._can_refine(task):
                        task.error = e
                        self._finish(task, TaskStatus.FAILED, str(e), start)
                        return

                    task.refinement_rounds += 1
                    self._set_status(
                        task,
                        TaskStatus.PLANNING,
                        f"Refinement round {task.refinement_rounds} after step {e.step_order} failed",
                    )
                    plan = await self.planner.refine_plan(
                        task.plan,
                        self._build_feedback(e, analysis),
                        cancel_event=cancel_event,
                        task_id=task.task_id,
                    )
                    self._adopt_plan(task, plan)
                    continue

                task.output = format_final_output(task.plan, task.outcomes)
                self._finish(task, TaskStatus.COMPLETED, None, start)
                return

        except ImpossibleTaskError as e:
            task.error = e
            self._finish(task, TaskStatus.IMPOSSIBLE, e.explanation, start)
        except PlanningError as e:
            task.error = e
            self._finish(task, TaskStatus.FAILED, f"Planning failed: {e}", start)
        except TaskCancelledError as e:
            task.error = e
            self._finish(task, TaskStatus.CANCELLED, str(e), start)
        except AgentLoopError as e:
            logger.exception("Task %s failed", task.task_id)
            task.error = e
            self._log_error(task, e)
            self._finish(task, TaskStatus.FAILED, str(e), start)
        except Exception as e:
            logger.exception("Unexpected error in task %s", task.task_id)
            task.error = AgentLoopError(f"{type(e).__name__}: {e}")
            self._log_error(task, e)
            self._finish(task, TaskStatus.FAILED, f"Unexpected error: {e}", start)

    async def _execute_plan(self, task: Task, cancel_event: Optional[asyncio.Event]) -> None:
        """Run every step of the current plan in order."""
        listener = _TaskAttemptListener(self, task)
        for step in task.plan.steps:
            previous = {order: done.result for order, done in task.outcomes.items()}
            outcome = await self.execution_engine.execute_step_with_retry(
                step, cancel_event=cancel_event, listener=listener, previous_results=previous
            )
            task.outcomes[step.order] = outcome
            logger.info(
                "Step %d/%d succeeded after %d attempt(s)",
                step.order,
                len(task.plan.steps),
                outcome.attempts,
            )

    def _adopt_plan(self, task: Task, plan: ExecutionPlan) -> None:
        task.set_plan(plan)
        logger.debug("Plan for %s:\n%s", task.task_id, format_plan(plan))
        if self.activity_logger is not None:
            self.activity_logger.log_plan(task.task_id, plan.version, len(plan.steps), plan.summary)

    def _can_refine(self, task: Task) -> bool:
        return self.refinement_enabled and task.refinement_rounds < self.max_refinement_rounds

    @staticmethod
    def _build_feedback(error: ExecutionError, analysis: str) -> str:
        lines = [str(error), "", f"Failures of step {error.step_order}:"]
        lines.extend(f"- {failure}" for failure in error.failures)
        if analysis:
            lines.extend(["", f"Analysis: {analysis}"])
        return "\n".join(lines)

    def _stage_inputs(self, task: Task) -> List[str]:
        """Copy input files into the workspace and return their names."""
        if not task.input_files:
            return []
        if self.workspace is None:
            return [Path(f).name for f in task.input_files]
        staged = [self.workspace.stage_input(Path(f)).name for f in task.input_files]
        if self.activity_logger is not None:
            self.activity_logger.log_info(
                f"Staged {len(staged)} input file(s)", task_id=task.task_id, files=staged
            )
        return staged

    def _set_status(self, task: Task, status: TaskStatus, reason: Optional[str] = None) -> None:
        if task.status == status and status != TaskStatus.PLANNING:
            return
        self.state_machine.transition(task.task_id, status, reason=reason)
        task.status = status

    def _finish(
        self, task: Task, status: TaskStatus, explanation: Optional[str], start: float
    ) -> None:
        """Move a task into a terminal state and record it."""
        if self.state_machine.is_terminal(task.task_id):
            return

        if status in (TaskStatus.FAILED, TaskStatus.IMPOSSIBLE):
            self.state_machine.fail_task(task.task_id, explanation or status.value, to_state=status)
        else:
            self.state_machine.transition(task.task_id, status, reason=explanation)
        task.status = status
        task.explanation = explanation

        duration_ms = int((time.monotonic() - start) * 1000)
        if status == TaskStatus.COMPLETED:
            logger.info("Task %s completed", task.task_id)
        else:
            logger.warning("Task %s ended %s: %s", task.task_id, status.value, explanation)

        if self.activity_logger is None:
            return
        if status == TaskStatus.COMPLETED:
            self.activity_logger.log_task_complete(
                task.task_id,
                duration_ms,
                steps=len(task.outcomes),
                refinement_rounds=task.refinement_rounds,
            )
        elif status == TaskStatus.IMPOSSIBLE:
            self.activity_logger.log_task_impossible(task.task_id, explanation or "", duration_ms)
        elif status == TaskStatus.CANCELLED:
            self.activity_logger.log_task_cancelled(task.task_id, duration_ms)
        else:
            self.activity_logger.log_task_fail(task.task_id, explanation or "", duration_ms)

    def _result(self, task: Task, duration: float) -> TaskResult:
        return TaskResult(
            task_id=task.task_id,
            status=task.status,
            plan=task.plan,
            outcomes=[task.outcomes[order] for order in sorted(task.outcomes)],
            output=task.output,
            explanation=task.explanation,
            failures=list(task.failures),
            refinement_rounds=task.refinement_rounds,
            plan_versions=len(task.plans),
            duration_seconds=duration,
            error=task.error,
        )

    def _log_error(self, task: Task, error: Exception) -> None:
        if self.activity_logger is not None:
            self.activity_logger.log_error(
                f"{type(error).__name__}: {error}", task_id=task.task_id
            )

    def _log_transition(self, task_id: str, from_state: TaskStatus, to_state: TaskStatus) -> None:
        self.activity_logger.log_state_transition(task_id, from_state.value, to_state.value)


def format_plan(plan: ExecutionPlan) -> str:
    """Render a plan for display."""
    lines = [
        f"Execution Plan: {plan.summary}",
        f"Complexity: {plan.complexity}/10",
        f"Steps: {len(plan.steps)}",
        "",
    ]
    for step in plan.steps:
        lines.append(f"  {step.order}. [{step.step_type.value}] {step.description}")
        if step.expected_output:
            lines.append(f"     Expected: {step.expected_output}")
        if step.dependencies:
            lines.append(f"     Depends on: {', '.join(str(d) for d in step.dependencies)}")
    return "\n".join(lines)


def format_final_output(plan: ExecutionPlan, outcomes: Dict[int, StepOutcome]) -> str:
    """Summarise a completed plan: per-step status, output preview and files."""
    lines = ["=== Execution Complete ===", f"Plan: {plan.summary}", ""]
    for step in plan.steps:
        outcome = outcomes.get(step.order)
        if outcome is None:
            continue
        result = outcome.result
        lines.append(f"Step {step.order}: {'SUCCESS' if result.success else 'FAILED'}")
        if result.output and result.output.strip():
            lines.append(f"  Output: {_truncate(result.output.strip(), OUTPUT_PREVIEW_LENGTH)}")
        if result.generated_files:
            lines.append(f"  Files: {', '.join(result.generated_files)}")
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"


def _truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length] + "... (truncated)"


def new_session_id() -> str:
    """Session identifier for activity logs (sortable by start time)."""
    return datetime.now().strftime("%Y%m%d-%H%M%S") + f"-{uuid.uuid4().hex[:6]}"


def build_orchestrator(
    config: AgentLoopConfig,
    session_id: Optional[str] = None,
) -> Orchestrator:
    """Wire an orchestrator backed by the Claude CLI from configuration."""
    workspace = Workspace(config.get_workspace_dir())
    poller: RunPoller = RunPoller(
        interval=config.agent.polling_interval_seconds,
        timeout=config.agent.run_timeout_seconds,
    )
    backend = ClaudeCliBackend(
        workspace=workspace,
        command=config.claude.command,
        model=config.claude.model,
        tools=CodeInterpreterTools(),
        use_tools=config.claude.use_tools,
        poller=poller,
    )

    plan_storage = PlanStorage(config.get_plans_dir()) if config.workspace.save_plans else None
    retry_policy = RetryPolicy.from_config(config.agent)
    evaluator = Evaluator(backend)
    engine = ExecutionEngine(
        backend, evaluator, retry_policy, max_attempts=config.agent.max_retry_attempts
    )

    activity_logger = None
    if config.logging.activity_log:
        activity_logger = ActivityLogger(session_id or new_session_id(), config.get_log_dir())

    return Orchestrator(
        planner=Planner(backend, plan_storage),
        execution_engine=engine,
        evaluator=evaluator,
        activity_logger=activity_logger,
        workspace=workspace,
        max_refinement_rounds=config.agent.max_refinement_rounds,
        refinement_enabled=config.agent.refinement_enabled,
        task_timeout_seconds=config.agent.task_timeout_seconds,
        cleanup_workspace=config.workspace.cleanup_on_exit,
    )
