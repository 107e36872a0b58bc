"""Retry policy for step execution attempts.

This module provides the bounded exponential backoff used between attempts
at a plan step, the per-step retry bookkeeping, and the deterministic failure
classification used when the reasoning backend cannot judge an attempt.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional

from agentloop.core.exceptions import ConfigurationError

if TYPE_CHECKING:
    from agentloop.config.models import AgentConfig

DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 30.0
DEFAULT_MAX_ATTEMPTS = 3


@dataclass
class RetryContext:
    """Retry bookkeeping for one step's attempt loop.

    A context is owned by a single attempt loop and is never shared.
    """

    max_attempts: int
    attempt_number: int = 1
    failures: List[str] = field(default_factory=list)
    """Explanations of prior failed attempts, oldest first"""

    last_delay: float = 0.0
    """Backoff applied before the current attempt (seconds)"""

    suggested_adjustment: Optional[str] = None
    """Evaluator hint carried into the next attempt"""

    def __post_init__(self) -> None:
        if self.max_attempts <= 0:
            raise ConfigurationError(
                f"max_attempts must be at least 1, got {self.max_attempts}"
            )

    @property
    def can_retry(self) -> bool:
        """True while another attempt fits in the budget."""
        return self.attempt_number < self.max_attempts

    @property
    def remaining_attempts(self) -> int:
        """Attempts still available after the current one."""
        return max(0, self.max_attempts - self.attempt_number)

    def record_failure(self, explanation: str) -> None:
        """Append the explanation of a failed attempt to the history."""
        self.failures.append(explanation)

    def advance(self, delay: float, suggested_adjustment: Optional[str] = None) -> None:
        """Move to the next attempt."""
        self.attempt_number += 1
        self.last_delay = delay
        self.suggested_adjustment = suggested_adjustment


class RetryPolicy:
    """Bounded exponential backoff between attempts at a step."""

    def __init__(
        self,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        """Initialize retry policy.

        Args:
            base_delay: Delay before the first retry, in seconds
            max_delay: Upper bound on any delay, in seconds
            max_attempts: Default attempt budget per step

        Raises:
            ConfigurationError: If any value is out of range
        """
        if max_attempts <= 0:
            raise ConfigurationError(f"max_attempts must be at least 1, got {max_attempts}")
        if base_delay < 0:
            raise ConfigurationError(f"base_delay cannot be negative, got {base_delay}")
        if max_delay < base_delay:
            raise ConfigurationError(
                f"max_delay ({max_delay}) must be >= base_delay ({base_delay})"
            )

        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_attempts = max_attempts

    @classmethod
    def from_config(cls, config: "AgentConfig") -> "RetryPolicy":
        """Build a policy from the ``agent`` configuration section."""
        return cls(
            base_delay=config.backoff_base_seconds,
            max_delay=config.backoff_max_seconds,
            max_attempts=config.max_retry_attempts,
        )

    def should_retry(self, context: RetryContext) -> bool:
        """Return True if another attempt is allowed."""
        return context.can_retry

    def get_delay(self, attempt_number: int) -> float:
        """Calculate delay before the given attempt (in seconds).

        Exponential backoff: 1s, 2s, 4s, 8s, ... capped at ``max_delay``.
        Attempt numbers of 1 or less yield the base delay.
        """
        if attempt_number <= 1:
            return self.base_delay

        # Exponent is bounded so large attempt numbers cannot overflow
        exponent = min(attempt_number - 1, 64)
        return min(self.base_delay * (2 ** exponent), self.max_delay)

    def create_initial_context(self, max_attempts: Optional[int] = None) -> RetryContext:
        """Create the context for a step's first attempt.

        Raises:
            ConfigurationError: If ``max_attempts`` is not positive
        """
        return RetryContext(
            max_attempts=self.max_attempts if max_attempts is None else max_attempts
        )

    def get_retry_message(self, context: RetryContext, reason: Optional[str] = None) -> str:
        """Get a human-readable message about the retry decision.

        Args:
            context: Context after the failed attempt
            reason: Optional reason for the decision

        Returns:
            Message string
        """
        if self.should_retry(context):
            msg = f"Retrying step (attempt {context.attempt_number + 1}/{context.max_attempts})"
        else:
            msg = f"Step failed after {context.attempt_number} attempt(s)"

        if reason:
            msg += f": {reason}"
        return msg


class FailureClassifier:
    """Classifies failure messages when no reasoning backend verdict is available."""

    TRANSIENT_PATTERNS = (
        "timeout",
        "timed out",
        "network",
        "connection",
        "temporary",
        "temporarily",
        "unavailable",
        "rate limit",
        "too many requests",
    )

    PERMANENT_PATTERNS = (
        "permission denied",
        "access denied",
        "syntaxerror",
        "syntax error",
        "invalid request",
        "not supported",
        "unsupported",
    )

    @classmethod
    def is_transient_error(cls, error_message: str) -> bool:
        """Check if an error is likely transient."""
        error_lower = error_message.lower()
        return any(pattern in error_lower for pattern in cls.TRANSIENT_PATTERNS)

    @classmethod
    def is_permanent_error(cls, error_message: str) -> bool:
        """Check if an error can never be fixed by retrying."""
        error_lower = error_message.lower()
        return any(pattern in error_lower for pattern in cls.PERMANENT_PATTERNS)

    @classmethod
    def is_retryable(cls, error_message: str, timed_out: bool = False) -> bool:
        """Decide whether a failed attempt is worth retrying.

        Timeouts and transient errors are retryable, permanent errors are
        not, and anything unrecognised is given the benefit of the doubt.
        """
        if timed_out or cls.is_transient_error(error_message):
            return True
        return not cls.is_permanent_error(error_message)
