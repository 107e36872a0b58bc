"""Plan, Execute, Evaluate orchestration."""

from .evaluator import EvaluationResult, Evaluator, Verdict
from .execution_engine import AttemptListener, ExecutionEngine, StepOutcome
from .orchestrator import (
    Orchestrator,
    Task,
    TaskResult,
    build_orchestrator,
    format_final_output,
    format_plan,
)
from .plan_storage import PlanStorage
from .planner import Planner
from .retry_policy import FailureClassifier, RetryContext, RetryPolicy

__all__ = [
    "AttemptListener",
    "EvaluationResult",
    "Evaluator",
    "ExecutionEngine",
    "FailureClassifier",
    "Orchestrator",
    "PlanStorage",
    "Planner",
    "RetryContext",
    "RetryPolicy",
    "StepOutcome",
    "Task",
    "TaskResult",
    "Verdict",
    "build_orchestrator",
    "format_final_output",
    "format_plan",
]
