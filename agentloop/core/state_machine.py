"""Task lifecycle bookkeeping for the orchestrator.

The orchestrator is the only writer of a task's status; this module keeps
the current status of every task it has seen, refuses moves that are not in
``VALID_TRANSITIONS`` and tells interested parties (the CLI, the activity
log) about each move.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from .exceptions import AgentLoopError
from .task_state import (
    TaskStateInfo,
    TaskStatus,
    get_valid_next_states,
    is_terminal_state,
    is_valid_transition,
)

logger = logging.getLogger(__name__)

TransitionListener = Callable[[str, TaskStatus, TaskStatus], None]


class StateTransitionError(AgentLoopError):
    """Raised when a task is moved to a status its current status cannot reach."""

    pass


class TaskStateMachine:
    """Tracks the status of orchestrated tasks.

    Every move is checked against the transition table and appended to the
    task's history. A move from ``evaluating`` back to ``planning`` counts
    as one refinement round. Listeners are called after the move is recorded;
    a listener that raises is logged and skipped.

    Safe to share between concurrently running tasks.
    """

    def __init__(self) -> None:
        self._tasks: Dict[str, TaskStateInfo] = {}
        self._listeners: List[TransitionListener] = []
        self._lock = threading.RLock()

    def _lookup(self, task_id: str) -> TaskStateInfo:
        try:
            return self._tasks[task_id]
        except KeyError:
            raise ValueError(f"Task {task_id} not found") from None

    def register_task(
        self,
        task_id: str,
        initial_state: TaskStatus = TaskStatus.PENDING,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> TaskStateInfo:
        """Start tracking a task.

        Args:
            task_id: Identifier of the task
            initial_state: Status the task starts in
            metadata: Extra data stored with the task (the request, for example)

        Raises:
            ValueError: If the id is already tracked
        """
        with self._lock:
            if task_id in self._tasks:
                raise ValueError(f"Task {task_id} is already registered")
            info = TaskStateInfo(
                task_id=task_id, current_state=initial_state, metadata=metadata or {}
            )
            self._tasks[task_id] = info
        return info

    def transition(
        self,
        task_id: str,
        to_state: TaskStatus,
        reason: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> TaskStateInfo:
        """Move a task to ``to_state``.

        Args:
            task_id: Identifier of the task
            to_state: New status
            reason: Short explanation stored in the history
            metadata: Extra data stored with the history entry

        Raises:
            ValueError: If the task is not tracked
            StateTransitionError: If the move is not allowed from the current status
        """
        with self._lock:
            info = self._lookup(task_id)
            previous = info.current_state
            if not is_valid_transition(previous, to_state):
                allowed = ", ".join(s.value for s in get_valid_next_states(previous)) or "none"
                raise StateTransitionError(
                    f"Cannot move task {task_id} {previous.value} -> {to_state.value} "
                    f"(allowed: {allowed})"
                )
            info.add_transition(to_state, reason=reason, metadata=metadata)
            if previous == TaskStatus.EVALUATING and to_state == TaskStatus.PLANNING:
                info.refinement_count += 1
            listeners = list(self._listeners)

        logger.debug("Task %s: %s -> %s", task_id, previous.value, to_state.value)
        for listener in listeners:
            try:
                listener(task_id, previous, to_state)
            except Exception:
                logger.exception("Transition listener failed for task %s", task_id)
        return info

    def fail_task(
        self,
        task_id: str,
        error_message: str,
        to_state: TaskStatus = TaskStatus.FAILED,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> TaskStateInfo:
        """Finish a task as failed (or impossible) and remember why."""
        with self._lock:
            self._lookup(task_id).error_message = error_message
            return self.transition(task_id, to_state, reason=error_message, metadata=metadata)

    def get_state(self, task_id: str) -> TaskStateInfo:
        """Return the tracked record for a task.

        Raises:
            ValueError: If the task is not tracked
        """
        with self._lock:
            return self._lookup(task_id)

    def has_task(self, task_id: str) -> bool:
        with self._lock:
            return task_id in self._tasks

    def get_all_states(self) -> Dict[str, TaskStateInfo]:
        with self._lock:
            return dict(self._tasks)

    def get_tasks_by_state(self, state: TaskStatus) -> List[TaskStateInfo]:
        """Tasks whose current status is ``state``, in registration order."""
        with self._lock:
            return [info for info in self._tasks.values() if info.current_state == state]

    def is_terminal(self, task_id: str) -> bool:
        """True once the task is completed, failed, impossible or cancelled."""
        return is_terminal_state(self.get_state(task_id).current_state)

    def can_transition_to(self, task_id: str, to_state: TaskStatus) -> bool:
        """True if the task is tracked and may move to ``to_state`` now."""
        with self._lock:
            info = self._tasks.get(task_id)
            return info is not None and is_valid_transition(info.current_state, to_state)

    def add_listener(self, listener: TransitionListener) -> None:
        """Call ``listener(task_id, from_state, to_state)`` after every move."""
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: TransitionListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def get_history(self, task_id: str) -> List[Dict[str, Any]]:
        """Moves made by a task, oldest first, as plain dictionaries."""
        return [
            {
                "from_state": entry.from_state.value,
                "to_state": entry.to_state.value,
                "timestamp": entry.timestamp.isoformat(),
                "reason": entry.reason,
                "metadata": entry.metadata,
            }
            for entry in self.get_state(task_id).history
        ]
