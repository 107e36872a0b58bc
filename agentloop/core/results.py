"""Outcome of a single attempt at a plan step."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class ExecutionStatus(str, Enum):
    """Status of one execution attempt."""

    SUCCESS = "success"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass
class ExecutionResult:
    """Result of running one step once against the execution backend."""

    step_order: int
    status: ExecutionStatus
    output: str = ""
    error_message: Optional[str] = None
    generated_files: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0
    script_path: Optional[str] = None

    @property
    def success(self) -> bool:
        """True if the attempt succeeded."""
        return self.status == ExecutionStatus.SUCCESS

    @property
    def can_retry(self) -> bool:
        """True if re-running the same step could plausibly help."""
        return self.status in (ExecutionStatus.FAILED, ExecutionStatus.TIMED_OUT)

    @classmethod
    def failure(
        cls,
        step_order: int,
        error_message: str,
        status: ExecutionStatus = ExecutionStatus.FAILED,
        duration_seconds: float = 0.0,
    ) -> "ExecutionResult":
        """Build a failed result from an error message."""
        return cls(
            step_order=step_order,
            status=status,
            error_message=error_message,
            duration_seconds=duration_seconds,
        )
