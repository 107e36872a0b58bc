"""Core data model, state machine and parsing helpers."""

from .exceptions import (
    AgentLoopError,
    BackendError,
    BackendTimeoutError,
    ConfigurationError,
    ExecutionError,
    ImpossibleTaskError,
    OutputParseError,
    PlanningError,
    TaskCancelledError,
)
from .plan import ExecutionPlan, PlanStep, StepType
from .results import ExecutionResult, ExecutionStatus
from .state_machine import StateTransitionError, TaskStateMachine
from .task_state import TaskStatus

__all__ = [
    "AgentLoopError",
    "BackendError",
    "BackendTimeoutError",
    "ConfigurationError",
    "ExecutionError",
    "ExecutionPlan",
    "ExecutionResult",
    "ExecutionStatus",
    "ImpossibleTaskError",
    "OutputParseError",
    "PlanStep",
    "PlanningError",
    "StateTransitionError",
    "StepType",
    "TaskCancelledError",
    "TaskStateMachine",
    "TaskStatus",
]
