"""Planning: turn a request (or execution feedback) into a validated plan."""

import asyncio
import logging
from typing import List, Optional, Sequence

from agentloop.backends.base import ReasoningBackend
from agentloop.core.exceptions import PlanningError, TaskCancelledError
from agentloop.core.plan import ExecutionPlan, StepType

from .cancellation import check_cancelled
from .plan_storage import PlanStorage

logger = logging.getLogger(__name__)


class Planner:
    """Produces, validates and refines execution plans.

    A plan returned by this class has always passed ``validate_plan``.
    """

    def __init__(self, backend: ReasoningBackend, plan_storage: Optional[PlanStorage] = None):
        """Initialize the planner.

        Args:
            backend: Reasoning backend that proposes plans
            plan_storage: Optional storage every produced plan is saved to
        """
        self.backend = backend
        self.plan_storage = plan_storage

    async def create_plan(
        self,
        request: str,
        input_files: Sequence[str] = (),
        cancel_event: Optional[asyncio.Event] = None,
        task_id: Optional[str] = None,
    ) -> ExecutionPlan:
        """Create the initial plan for a request.

        Args:
            request: Natural-language request
            input_files: Names of files available in the workspace
            cancel_event: Optional cancellation signal
            task_id: Task the plan belongs to (used as the storage key)

        Returns:
            A validated plan with version 1

        Raises:
            PlanningError: If the request is blank or no valid plan is produced
            TaskCancelledError: If cancellation is signalled before planning
        """
        if not request or not request.strip():
            raise PlanningError(request or "", "Request cannot be empty")

        check_cancelled(cancel_event, "before planning")
        logger.info("Creating plan for request: %s", request[:100])

        try:
            data = await self.backend.propose_plan(request, list(input_files))
        except TaskCancelledError:
            raise
        except Exception as e:
            raise PlanningError(request, f"Planning backend failed: {e}") from e

        plan = ExecutionPlan.from_dict(request, data, version=1)
        self._ensure_valid(plan)
        self._save(task_id, plan)

        logger.info("Created plan with %d steps: %s", len(plan.steps), plan.summary)
        return plan

    async def refine_plan(
        self,
        original_plan: ExecutionPlan,
        feedback: str,
        cancel_event: Optional[asyncio.Event] = None,
        task_id: Optional[str] = None,
    ) -> ExecutionPlan:
        """Produce a new plan version informed by execution feedback.

        The original plan is left untouched. The refined plan keeps the
        original request and gets the next version number.

        Raises:
            PlanningError: If feedback is blank or no valid plan is produced
            TaskCancelledError: If cancellation is signalled before refining
        """
        request = original_plan.original_request
        if not feedback or not feedback.strip():
            raise PlanningError(request, "Refinement feedback cannot be empty")

        check_cancelled(cancel_event, "before refinement")
        logger.info("Refining plan v%d based on feedback", original_plan.version)

        try:
            data = await self.backend.propose_refinement(original_plan, feedback)
        except TaskCancelledError:
            raise
        except Exception as e:
            raise PlanningError(request, f"Refinement backend failed: {e}") from e

        plan = ExecutionPlan.from_dict(request, data, version=original_plan.version + 1)
        self._ensure_valid(plan)
        self._save(task_id, plan)

        logger.info("Refined plan v%d has %d steps", plan.version, len(plan.steps))
        return plan

    def validate_plan(self, plan: Optional[ExecutionPlan]) -> bool:
        """Check that a plan is executable.

        Never raises and has no side effects.
        """
        return not self.get_validation_errors(plan)

    def get_validation_errors(self, plan: Optional[ExecutionPlan]) -> List[str]:
        """List every reason a plan is not executable (empty when valid)."""
        if plan is None:
            return ["Plan is missing"]
        if not plan.steps:
            return ["Plan has no steps"]

        errors = []
        for index, step in enumerate(plan.steps):
            expected_order = index + 1
            if step.order != expected_order:
                errors.append(
                    f"Step at position {expected_order} has order {step.order}"
                    " (orders must be 1..N without gaps or duplicates)"
                )
            if not step.description or not step.description.strip():
                errors.append(f"Step {step.order} has an empty description")
            if not isinstance(step.step_type, StepType):
                errors.append(f"Step {step.order} has unknown type {step.step_type!r}")
            for dep in step.dependencies:
                if dep < 1 or dep >= step.order:
                    errors.append(
                        f"Step {step.order} has invalid dependency on step {dep}"
                    )
        return errors

    def _ensure_valid(self, plan: ExecutionPlan) -> None:
        errors = self.get_validation_errors(plan)
        if errors:
            for error in errors:
                logger.warning("Plan validation: %s", error)
            raise PlanningError(
                plan.original_request, f"Plan failed validation: {'; '.join(errors)}"
            )

    def _save(self, task_id: Optional[str], plan: ExecutionPlan) -> None:
        if self.plan_storage is None or task_id is None:
            return
        path = self.plan_storage.save_plan(task_id, plan)
        logger.debug("Saved plan v%d to %s", plan.version, path)
