"""Wait for an asynchronous run to reach a terminal state."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from agentloop.core.exceptions import BackendTimeoutError, TaskCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RunPoller(Generic[T]):
    """Poll a run's status until it is terminal, times out, or is cancelled.

    Args:
        interval: Seconds between status checks
        timeout: Maximum seconds to wait for a terminal status
    """

    def __init__(self, interval: float = 0.5, timeout: float = 300.0):
        if interval <= 0:
            raise ValueError("interval must be positive")
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.interval = interval
        self.timeout = timeout

    async def wait_for_completion(
        self,
        fetch_status: Callable[[], Awaitable[T]],
        is_terminal: Callable[[T], bool],
        run_id: str = "run",
        cancel_event: Optional[asyncio.Event] = None,
    ) -> T:
        """Poll ``fetch_status`` until ``is_terminal`` accepts its result.

        Args:
            fetch_status: Coroutine function returning the current status
            is_terminal: Predicate deciding whether a status is final
            run_id: Identifier used in log and error messages
            cancel_event: Optional cancellation signal

        Returns:
            The first terminal status observed

        Raises:
            BackendTimeoutError: If no terminal status arrives within ``timeout``
            TaskCancelledError: If cancellation is signalled while waiting
        """
        start = time.monotonic()
        logger.debug("Starting to poll %s", run_id)

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise TaskCancelledError(f"Cancelled while waiting for {run_id}")

            elapsed = time.monotonic() - start
            if elapsed > self.timeout:
                logger.warning("%s timed out after %.1f seconds", run_id, self.timeout)
                raise BackendTimeoutError(
                    f"{run_id} did not complete within {self.timeout:g} seconds"
                )

            status = await fetch_status()
            if is_terminal(status):
                logger.debug("%s finished in %.0fms", run_id, (time.monotonic() - start) * 1000)
                return status

            await asyncio.sleep(self.interval)
