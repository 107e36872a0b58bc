"""agentloop exception classes."""

from typing import List, Optional, Sequence


class AgentLoopError(Exception):
    """Base exception for all agentloop errors."""

    pass


class ConfigurationError(AgentLoopError):
    """Raised when configuration is invalid."""

    pass


class PlanningError(AgentLoopError):
    """Raised when no valid plan could be produced for a request."""

    def __init__(self, request: str, message: str):
        super().__init__(message)
        self.request = request


class ExecutionError(AgentLoopError):
    """Raised when a step cannot succeed within its retry budget."""

    def __init__(
        self,
        step_order: int,
        attempts_made: int,
        message: str,
        failures: Optional[Sequence[str]] = None,
        verdict: Optional[str] = None,
    ):
        super().__init__(message)
        self.step_order = step_order
        self.attempts_made = attempts_made
        self.failures: List[str] = list(failures or [])
        self.verdict = verdict


class ImpossibleTaskError(AgentLoopError):
    """Raised when impossibility analysis concludes the task cannot succeed."""

    def __init__(self, failure_reasons: Sequence[str], explanation: str):
        super().__init__(explanation)
        self.failure_reasons: List[str] = list(failure_reasons)
        self.explanation = explanation


class TaskCancelledError(AgentLoopError):
    """Raised when a cancellation signal is observed.

    This is a control-flow signal, not a failure.
    """

    pass


class BackendError(AgentLoopError):
    """Raised when a reasoning or execution backend call fails."""

    pass


class BackendTimeoutError(BackendError):
    """Raised when a backend run does not finish within its timeout."""

    pass


class OutputParseError(BackendError):
    """Raised when backend output cannot be parsed."""

    pass
