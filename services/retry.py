import logging
import time
from typing import Callable, TypeVar

from services.errors import TransientIOError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def run_with_retries(
        fn: Callable[[], T],
        attempts: int = 3,
        backoff: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        label: str = "operation",
) -> T:
    """
    Run fn, retrying on TransientIOError with a linearly increasing wait.

    The wait before attempt n+1 is backoff * n seconds, so the default policy
    makes three attempts spaced one and two seconds apart. Any other error
    propagates immediately.

    Args:
        fn: Zero-argument callable performing the operation
        attempts: Total number of attempts, at least one
        backoff: Base wait in seconds
        sleep: Sleep function, replaceable in tests
        label: Name used in log lines

    Returns:
        Whatever fn returns on its first successful attempt

    Raises:
        TransientIOError: If every attempt failed transiently
    """
    attempts = max(1, attempts)
    last_error = None
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except TransientIOError as e:
            last_error = e
            remaining = attempts - attempt
            logger.warning("%s failed (attempt %d/%d): %s", label, attempt, attempts, e.message)
            if remaining:
                sleep(backoff * attempt)

    raise TransientIOError(f"{label} failed after {attempts} attempts: {last_error.message}")


class RetryPolicy:
    """Bounded retry settings shared by the core services"""

    def __init__(self, attempts: int = 3, backoff: float = 1.0,
                 sleep: Callable[[float], None] = time.sleep):
        self.attempts = attempts
        self.backoff = backoff
        self.sleep = sleep

    def run(self, fn: Callable[[], T], label: str = "operation") -> T:
        return run_with_retries(fn, attempts=self.attempts, backoff=self.backoff,
                                sleep=self.sleep, label=label)
