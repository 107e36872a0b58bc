"""Evaluation: classify attempt outcomes and assess task impossibility."""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple

from agentloop.backends.base import Judgment, ReasoningBackend
from agentloop.core.exceptions import TaskCancelledError
from agentloop.core.plan import PlanStep
from agentloop.core.results import ExecutionResult, ExecutionStatus

from .cancellation import check_cancelled
from .retry_policy import FailureClassifier, RetryContext

logger = logging.getLogger(__name__)


class Verdict(str, Enum):
    """Classification of one attempt's outcome."""

    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    TERMINAL_FAILURE = "terminal_failure"
    IMPOSSIBLE_SIGNAL = "impossible_signal"


@dataclass
class EvaluationResult:
    """Verdict for one attempt plus the reasoning behind it."""

    verdict: Verdict
    explanation: str
    feedback: Optional[str] = None
    """Suggested adjustment for the next attempt or for refinement"""

    @property
    def is_success(self) -> bool:
        return self.verdict == Verdict.SUCCESS


class Evaluator:
    """Turns attempt outcomes into verdicts.

    Failed attempts are judged by the reasoning backend. When the backend
    cannot answer, a deterministic heuristic based on the error text decides.
    """

    def __init__(self, backend: ReasoningBackend):
        self.backend = backend

    async def evaluate(
        self,
        step: PlanStep,
        result: ExecutionResult,
        context: RetryContext,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> EvaluationResult:
        """Classify the outcome of one attempt.

        Args:
            step: Step that was attempted
            result: Outcome of the attempt
            context: Retry bookkeeping for the step
            cancel_event: Optional cancellation signal

        Returns:
            EvaluationResult with the verdict

        Raises:
            TaskCancelledError: If cancellation is signalled before judging
        """
        logger.debug("Evaluating step %d with status %s", step.order, result.status.value)

        if result.success:
            logger.info("Step %d succeeded", step.order)
            return EvaluationResult(Verdict.SUCCESS, "Step executed successfully")

        check_cancelled(cancel_event, "before evaluation")

        try:
            judgment = await self.backend.judge(step, result, context)
        except TaskCancelledError:
            raise
        except Exception as e:
            logger.warning("Backend evaluation failed, using heuristic evaluation: %s", e)
            return self._heuristic(result)

        return self._from_judgment(judgment, result)

    async def analyze_impossibility(
        self,
        failures: Sequence[str],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Tuple[bool, str]:
        """Decide whether accumulated failures mean the task cannot succeed.

        Returns:
            ``(is_impossible, explanation)``; backend errors yield ``(False, ...)``
        """
        if not failures:
            return False, "No failures to analyze"

        check_cancelled(cancel_event, "before impossibility analysis")

        try:
            impossible, explanation = await self.backend.assess_impossibility(list(failures))
        except TaskCancelledError:
            raise
        except Exception as e:
            logger.warning("Impossibility analysis failed: %s", e)
            return False, f"Could not analyze failures: {e}"

        return bool(impossible), explanation or "No explanation provided"

    @staticmethod
    def _from_judgment(judgment: Judgment, result: ExecutionResult) -> EvaluationResult:
        explanation = judgment.reasoning or result.error_message or "Execution failed"

        if judgment.impossible:
            return EvaluationResult(Verdict.IMPOSSIBLE_SIGNAL, explanation)
        if judgment.success:
            return EvaluationResult(Verdict.SUCCESS, explanation)
        if judgment.retryable:
            return EvaluationResult(
                Verdict.RETRYABLE_FAILURE, explanation, feedback=judgment.suggested_adjustment
            )
        return EvaluationResult(
            Verdict.TERMINAL_FAILURE, explanation, feedback=judgment.suggested_adjustment
        )

    @staticmethod
    def _heuristic(result: ExecutionResult) -> EvaluationResult:
        error = result.error_message or "Execution failed"
        timed_out = result.status == ExecutionStatus.TIMED_OUT

        if FailureClassifier.is_retryable(error, timed_out=timed_out):
            return EvaluationResult(Verdict.RETRYABLE_FAILURE, error)
        return EvaluationResult(Verdict.TERMINAL_FAILURE, error)
