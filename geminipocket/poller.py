"""Client-side wait/poll loop for a long-running video operation.

The loop sleeps `interval` seconds before every status check, including the
first one. It stops on the first finished status, on the first failed status
call (no retries), or when one of the optional limits is reached. With no
limits configured it keeps polling until the provider finishes the job.
"""
import logging
import time
from typing import Callable, Optional

from .errors import GeminiPocketError, PollTimeout
from .operation import Operation, PollStatus

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 10


class OperationFailed(GeminiPocketError):
    def __init__(self, operation: Operation, cause: Optional[Exception] = None):
        super().__init__(operation.failure_reason or "Video generation failed")
        self.operation = operation
        self.cause = cause


class OperationPoller:
    def __init__(self, check: Callable[[str], PollStatus], interval: float = DEFAULT_INTERVAL,
                 max_polls: Optional[int] = None, timeout: Optional[float] = None,
                 on_progress: Optional[Callable[[Operation], None]] = None,
                 sleep: Callable[[float], None] = time.sleep, clock: Callable[[], float] = time.monotonic):
        if interval < DEFAULT_INTERVAL:
            raise ValueError(f"poll interval must be at least {DEFAULT_INTERVAL} seconds")
        if max_polls is not None and max_polls < 1:
            raise ValueError("max_polls must be positive")
        if timeout is not None and timeout <= 0:
            raise ValueError("timeout must be positive")
        self.check = check
        self.interval = interval
        self.max_polls = max_polls
        self.timeout = timeout
        self.on_progress = on_progress
        self.sleep = sleep
        self.clock = clock

    def _limit_reached(self, operation: Operation, started: float) -> Optional[str]:
        if self.max_polls is not None and operation.polls >= self.max_polls:
            return f"Gave up after {operation.polls} status checks"
        if self.timeout is not None:
            # stop early when the next sleep alone would overrun the timeout
            elapsed = self.clock() - started
            if elapsed + self.interval > self.timeout:
                return f"Gave up after {elapsed:g} seconds ({self.timeout:g} second timeout)"
        return None

    def run(self, operation: Operation) -> Operation:
        """Poll until the operation finishes; raise OperationFailed otherwise."""
        started = self.clock()
        while True:
            self.sleep(self.interval)
            try:
                status = self.check(operation.operation_id)
            except GeminiPocketError as exc:
                operation.fail(f"Failed to check video status: {exc.message}")
                logger.error("Polling %s aborted: %s", operation.operation_id, exc.message)
                raise OperationFailed(operation, exc) from exc

            operation.apply(status)
            if operation.done:
                if operation.failure_reason:
                    logger.error("Operation %s failed: %s", operation.operation_id, operation.failure_reason)
                    raise OperationFailed(operation)
                logger.info("Operation %s finished after %d polls", operation.operation_id, operation.polls)
                return operation

            if self.on_progress is not None:
                self.on_progress(operation)

            reason = self._limit_reached(operation, started)
            if reason:
                operation.fail(reason)
                raise OperationFailed(operation, PollTimeout(reason))


def poll_until_done(check: Callable[[str], PollStatus], operation_id: str, **kwargs) -> Operation:
    return OperationPoller(check, **kwargs).run(Operation(operation_id))
