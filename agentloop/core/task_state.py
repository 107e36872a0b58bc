"""Task status definitions and transitions."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskStatus(str, Enum):
    """Task lifecycle states."""

    PENDING = "pending"
    PLANNING = "planning"
    EXECUTING = "executing"
    EVALUATING = "evaluating"
    COMPLETED = "completed"
    FAILED = "failed"
    IMPOSSIBLE = "impossible"
    CANCELLED = "cancelled"


class StateTransition(BaseModel):
    """Represents a state transition event."""

    from_state: TaskStatus
    to_state: TaskStatus
    timestamp: datetime = Field(default_factory=_utcnow)
    reason: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class TaskStateInfo(BaseModel):
    """Complete state information for a task."""

    task_id: str
    current_state: TaskStatus
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    history: List[StateTransition] = Field(default_factory=list)
    error_message: Optional[str] = None
    refinement_count: int = 0
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def add_transition(
        self,
        to_state: TaskStatus,
        reason: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Add a state transition to history."""
        transition = StateTransition(
            from_state=self.current_state,
            to_state=to_state,
            reason=reason,
            metadata=metadata or {},
        )
        self.history.append(transition)
        self.current_state = to_state
        self.updated_at = _utcnow()


# Valid state transitions
VALID_TRANSITIONS: Dict[TaskStatus, List[TaskStatus]] = {
    TaskStatus.PENDING: [TaskStatus.PLANNING, TaskStatus.FAILED, TaskStatus.CANCELLED],
    TaskStatus.PLANNING: [
        TaskStatus.EXECUTING,
        TaskStatus.PLANNING,  # Refinement round-trip
        TaskStatus.FAILED,
        TaskStatus.CANCELLED,
    ],
    TaskStatus.EXECUTING: [
        TaskStatus.EVALUATING,
        TaskStatus.FAILED,
        TaskStatus.CANCELLED,
    ],
    TaskStatus.EVALUATING: [
        TaskStatus.EXECUTING,  # Retry or next step
        TaskStatus.PLANNING,  # Refinement
        TaskStatus.COMPLETED,
        TaskStatus.FAILED,
        TaskStatus.IMPOSSIBLE,
        TaskStatus.CANCELLED,
    ],
    TaskStatus.COMPLETED: [],  # Terminal state
    TaskStatus.FAILED: [],  # Terminal state
    TaskStatus.IMPOSSIBLE: [],  # Terminal state
    TaskStatus.CANCELLED: [],  # Terminal state
}


def is_valid_transition(from_state: TaskStatus, to_state: TaskStatus) -> bool:
    """Check if a state transition is valid."""
    return to_state in VALID_TRANSITIONS.get(from_state, [])


def get_valid_next_states(current_state: TaskStatus) -> List[TaskStatus]:
    """Get list of valid next states for a given state."""
    return VALID_TRANSITIONS.get(current_state, [])


def is_terminal_state(state: TaskStatus) -> bool:
    """Check if a state is terminal (no further transitions allowed)."""
    return len(VALID_TRANSITIONS.get(state, [])) == 0
