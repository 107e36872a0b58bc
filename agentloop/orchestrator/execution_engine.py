"""Execution engine: run one plan step with bounded retries.

Each attempt is run against the execution backend and evaluated. Retryable
failures are retried with exponential backoff until the attempt budget is
spent; terminal or impossible verdicts stop the step immediately.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import List, Mapping, Optional

from agentloop.backends.base import ExecutionBackend
from agentloop.core.exceptions import BackendTimeoutError, ExecutionError, TaskCancelledError
from agentloop.core.plan import PlanStep
from agentloop.core.results import ExecutionResult, ExecutionStatus

from .cancellation import cancellable_sleep, check_cancelled
from .evaluator import EvaluationResult, Evaluator, Verdict
from .retry_policy import RetryContext, RetryPolicy

logger = logging.getLogger(__name__)


@dataclass
class StepOutcome:
    """Successful result of one step's attempt loop."""

    step: PlanStep
    result: ExecutionResult
    attempts: int
    failures: List[str] = field(default_factory=list)
    """Explanations of the attempts that failed before the success"""


class AttemptListener:
    """Hooks called by the engine around each attempt.

    Subclass and override the methods you need; the defaults do nothing.
    """

    def on_attempt_start(self, step: PlanStep, context: RetryContext) -> None:
        pass

    def on_attempt_finished(
        self, step: PlanStep, result: ExecutionResult, context: RetryContext
    ) -> None:
        pass

    def on_evaluated(
        self, step: PlanStep, evaluation: EvaluationResult, context: RetryContext
    ) -> None:
        pass

    def on_retry_scheduled(
        self, step: PlanStep, context: RetryContext, delay: float, reason: str
    ) -> None:
        pass


class ExecutionEngine:
    """Runs plan steps against an execution backend with retries."""

    def __init__(
        self,
        backend: ExecutionBackend,
        evaluator: Evaluator,
        retry_policy: RetryPolicy,
        max_attempts: Optional[int] = None,
    ):
        """Initialize the engine.

        Args:
            backend: Backend that runs individual attempts
            evaluator: Classifies each attempt's outcome
            retry_policy: Backoff and attempt budget
            max_attempts: Per-step attempt budget (defaults to the policy's)
        """
        self.backend = backend
        self.evaluator = evaluator
        self.retry_policy = retry_policy
        self.max_attempts = max_attempts

    async def execute_step_with_retry(
        self,
        step: PlanStep,
        cancel_event: Optional[asyncio.Event] = None,
        listener: Optional[AttemptListener] = None,
        previous_results: Optional[Mapping[int, ExecutionResult]] = None,
    ) -> StepOutcome:
        """Run a step until it succeeds or its retry budget is exhausted.

        Args:
            step: Step to execute
            cancel_event: Optional cancellation signal
            listener: Optional hooks around each attempt
            previous_results: Results of the earlier steps, by step order;
                passed read-only to every attempt

        Returns:
            StepOutcome for the successful attempt

        Raises:
            ExecutionError: If the step fails terminally, signals impossibility,
                or exhausts its retries
            TaskCancelledError: If cancellation is signalled
        """
        listener = listener or AttemptListener()
        context = self.retry_policy.create_initial_context(self.max_attempts)
        previous = MappingProxyType(dict(previous_results or {}))

        while True:
            check_cancelled(cancel_event, f"before step {step.order}")
            logger.info(
                "Executing step %d (attempt %d/%d): %s",
                step.order,
                context.attempt_number,
                context.max_attempts,
                step.description,
            )
            listener.on_attempt_start(step, context)

            result = await self._run_attempt(
                step, previous, context.suggested_adjustment, cancel_event
            )
            if result.status == ExecutionStatus.CANCELLED:
                raise TaskCancelledError(f"Step {step.order} was cancelled by the backend")
            listener.on_attempt_finished(step, result, context)

            evaluation = await self.evaluator.evaluate(step, result, context, cancel_event)
            listener.on_evaluated(step, evaluation, context)

            if evaluation.verdict == Verdict.SUCCESS:
                return StepOutcome(
                    step=step,
                    result=result,
                    attempts=context.attempt_number,
                    failures=list(context.failures),
                )

            context.record_failure(evaluation.explanation)

            if evaluation.verdict == Verdict.RETRYABLE_FAILURE and self.retry_policy.should_retry(
                context
            ):
                message = self.retry_policy.get_retry_message(context, evaluation.explanation)
                delay = self.retry_policy.get_delay(context.attempt_number + 1)
                context.advance(delay, evaluation.feedback)
                logger.info("%s (waiting %.1fs)", message, delay)
                listener.on_retry_scheduled(step, context, delay, evaluation.explanation)
                await cancellable_sleep(delay, cancel_event)
                continue

            raise ExecutionError(
                step_order=step.order,
                attempts_made=context.attempt_number,
                message=self._failure_message(step, evaluation, context),
                failures=context.failures,
                verdict=evaluation.verdict.value,
            )

    async def _run_attempt(
        self,
        step: PlanStep,
        previous: Mapping[int, ExecutionResult],
        retry_hint: Optional[str],
        cancel_event: Optional[asyncio.Event],
    ) -> ExecutionResult:
        """Run one attempt, absorbing backend exceptions into a failed result."""
        start = time.monotonic()

        try:
            return await self._call_backend(step, previous, retry_hint, cancel_event)
        except TaskCancelledError:
            raise
        except BackendTimeoutError as e:
            return ExecutionResult.failure(
                step.order,
                str(e),
                status=ExecutionStatus.TIMED_OUT,
                duration_seconds=time.monotonic() - start,
            )
        except Exception as e:
            logger.warning("Execution backend raised for step %d: %s", step.order, e)
            return ExecutionResult.failure(
                step.order,
                f"{type(e).__name__}: {e}",
                duration_seconds=time.monotonic() - start,
            )

    async def _call_backend(
        self,
        step: PlanStep,
        previous: Mapping[int, ExecutionResult],
        retry_hint: Optional[str],
        cancel_event: Optional[asyncio.Event],
    ) -> ExecutionResult:
        """Call the backend, abandoning the call if cancellation is signalled."""
        if cancel_event is None:
            return await self.backend.run(step, previous, retry_hint)

        run_task = asyncio.ensure_future(self.backend.run(step, previous, retry_hint))
        cancel_wait = asyncio.ensure_future(cancel_event.wait())

        try:
            done, _ = await asyncio.wait(
                {run_task, cancel_wait}, return_when=asyncio.FIRST_COMPLETED
            )
        except BaseException:
            run_task.cancel()
            await asyncio.gather(run_task, return_exceptions=True)
            raise
        finally:
            cancel_wait.cancel()

        if run_task not in done:
            run_task.cancel()
            await asyncio.gather(run_task, return_exceptions=True)
            raise TaskCancelledError(f"Task cancelled during step {step.order}")

        return run_task.result()

    @staticmethod
    def _failure_message(
        step: PlanStep, evaluation: EvaluationResult, context: RetryContext
    ) -> str:
        if evaluation.verdict == Verdict.IMPOSSIBLE_SIGNAL:
            return f"Step {step.order} reported as impossible: {evaluation.explanation}"
        if evaluation.verdict == Verdict.TERMINAL_FAILURE:
            return f"Step {step.order} failed with a non-retryable error: {evaluation.explanation}"
        return (
            f"Step {step.order} failed after {context.attempt_number} attempt(s): "
            f"{evaluation.explanation}"
        )
