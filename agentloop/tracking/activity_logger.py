"""Activity logging for orchestration runs."""

import json
import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Types of events that can be logged."""

    TASK_START = "task_start"
    TASK_COMPLETE = "task_complete"
    TASK_FAIL = "task_fail"
    TASK_IMPOSSIBLE = "task_impossible"
    TASK_CANCELLED = "task_cancelled"
    PLAN_CREATED = "plan_created"
    PLAN_REFINED = "plan_refined"
    STEP_ATTEMPT = "step_attempt"
    STEP_RETRY = "step_retry"
    STATE_TRANSITION = "state_transition"
    ERROR = "error"
    INFO = "info"


class ActivityEvent(BaseModel):
    """Activity event model."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    event_type: EventType = Field(..., description="Type of event")
    session_id: str = Field(..., description="Session identifier")
    task_id: Optional[str] = Field(None, description="Task identifier")
    message: str = Field(..., description="Event message")

    data: Dict[str, Any] = Field(default_factory=dict, description="Additional event data")

    step_order: Optional[int] = Field(None, description="Plan step the event concerns")
    attempt: Optional[int] = Field(None, description="Attempt number within the step")
    duration_ms: Optional[int] = Field(None, description="Duration in milliseconds")


class ActivityLogger:
    """Thread-safe JSONL activity logger for one session."""

    _EVENT_FIELDS = {"step_order", "attempt", "duration_ms"}

    def __init__(self, session_id: str, logs_dir: Path):
        """Initialize activity logger.

        Args:
            session_id: Current session identifier
            logs_dir: Directory to store log files
        """
        self.session_id = session_id
        self.logs_dir = logs_dir
        self.session_log_dir = logs_dir / "sessions" / session_id
        self.session_log_dir.mkdir(parents=True, exist_ok=True)

        self.main_log_file = self.session_log_dir / "activity.jsonl"

        self._lock = threading.Lock()

    def log_event(
        self,
        event_type: EventType,
        message: str,
        task_id: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        """Log a general activity event.

        Keyword arguments matching ``ActivityEvent`` fields are set on the
        event; everything else lands in ``data``.
        """
        event_fields: Dict[str, Any] = {
            "event_type": event_type,
            "session_id": self.session_id,
            "task_id": task_id,
            "message": message,
        }

        data_fields = {}
        for key, value in kwargs.items():
            if key in self._EVENT_FIELDS:
                event_fields[key] = value
            else:
                data_fields[key] = value

        if data_fields:
            event_fields["data"] = data_fields

        self._write_event(ActivityEvent(**event_fields))

    def log_task_start(self, task_id: str, request: str) -> None:
        """Log task start event."""
        self.log_event(EventType.TASK_START, f"Task started: {request}", task_id=task_id)

    def log_task_complete(self, task_id: str, duration_ms: int, **kwargs: Any) -> None:
        """Log task completion event."""
        self.log_event(
            EventType.TASK_COMPLETE,
            "Task completed successfully",
            task_id=task_id,
            duration_ms=duration_ms,
            **kwargs,
        )

    def log_task_fail(self, task_id: str, error: str, duration_ms: int) -> None:
        """Log task failure event."""
        self.log_event(
            EventType.TASK_FAIL,
            f"Task failed: {error}",
            task_id=task_id,
            duration_ms=duration_ms,
            error=error,
        )

    def log_task_impossible(self, task_id: str, explanation: str, duration_ms: int) -> None:
        """Log that impossibility analysis concluded the task cannot succeed."""
        self.log_event(
            EventType.TASK_IMPOSSIBLE,
            f"Task impossible: {explanation}",
            task_id=task_id,
            duration_ms=duration_ms,
            explanation=explanation,
        )

    def log_task_cancelled(self, task_id: str, duration_ms: int) -> None:
        """Log task cancellation event."""
        self.log_event(
            EventType.TASK_CANCELLED, "Task cancelled", task_id=task_id, duration_ms=duration_ms
        )

    def log_plan(self, task_id: str, version: int, step_count: int, summary: str) -> None:
        """Log a created (version 1) or refined (version > 1) plan."""
        event_type = EventType.PLAN_CREATED if version == 1 else EventType.PLAN_REFINED
        verb = "created" if version == 1 else "refined"
        self.log_event(
            event_type,
            f"Plan v{version} {verb}: {summary} ({step_count} steps)",
            task_id=task_id,
            version=version,
            step_count=step_count,
        )

    def log_step_attempt(
        self,
        task_id: str,
        step_order: int,
        attempt: int,
        status: str,
        duration_ms: int,
        verdict: Optional[str] = None,
    ) -> None:
        """Log the outcome of one attempt at a step."""
        self.log_event(
            EventType.STEP_ATTEMPT,
            f"Step {step_order} attempt {attempt}: {status}",
            task_id=task_id,
            step_order=step_order,
            attempt=attempt,
            duration_ms=duration_ms,
            status=status,
            verdict=verdict,
        )

    def log_step_retry(
        self, task_id: str, step_order: int, attempt: int, delay: float, reason: str
    ) -> None:
        """Log a scheduled retry."""
        self.log_event(
            EventType.STEP_RETRY,
            f"Retrying step {step_order} (attempt {attempt}) in {delay:.1f}s: {reason}",
            task_id=task_id,
            step_order=step_order,
            attempt=attempt,
            delay_seconds=delay,
        )

    def log_state_transition(
        self, task_id: str, from_state: str, to_state: str
    ) -> None:
        """Log a task state transition."""
        self.log_event(
            EventType.STATE_TRANSITION,
            f"{from_state} -> {to_state}",
            task_id=task_id,
            from_state=from_state,
            to_state=to_state,
        )

    def log_error(self, error: str, task_id: Optional[str] = None, **kwargs: Any) -> None:
        """Log error event."""
        self.log_event(EventType.ERROR, error, task_id=task_id, error=error, **kwargs)

    def log_info(self, message: str, task_id: Optional[str] = None, **kwargs: Any) -> None:
        """Log info event."""
        self.log_event(EventType.INFO, message, task_id=task_id, **kwargs)

    def get_task_events(self, task_id: str) -> List[ActivityEvent]:
        """Get all events for a specific task."""
        return [event for event in self._read_events() if event.task_id == task_id]

    def get_recent_events(self, limit: int = 100) -> List[ActivityEvent]:
        """Get the most recent events from the session."""
        return self._read_events()[-limit:]

    def _read_events(self) -> List[ActivityEvent]:
        events = []

        if self.main_log_file.exists():
            with open(self.main_log_file, "r", encoding="utf-8") as f:
                for line in f:
                    try:
                        events.append(ActivityEvent(**json.loads(line.strip())))
                    except (json.JSONDecodeError, ValueError):
                        continue

        return events

    def _write_event(self, event: ActivityEvent) -> None:
        """Append an event to the session log in a thread-safe manner."""
        event_dict = event.model_dump(mode="json")

        with self._lock:
            try:
                with open(self.main_log_file, "a", encoding="utf-8") as f:
                    json.dump(event_dict, f, default=str, separators=(",", ":"))
                    f.write("\n")
            except OSError as e:
                logger.warning("Failed to write activity event to %s: %s", self.main_log_file, e)
