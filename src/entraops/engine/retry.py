"""Retry handling for throttled remote calls.

Classes:
    RetryingInvoker: Runs one remote call, backing off exponentially with
        jitter while the service signals rate limiting
"""

import logging
import random
import time
from typing import Any, Callable, Optional, Tuple, TypeVar

from .exceptions import ThrottledError, ThrottleExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

THROTTLE_STATUS_CODE = 429


def _parse_retry_after(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    return seconds if seconds >= 0 else None


def classify_throttle(error: BaseException) -> Tuple[bool, Optional[float]]:
    """Decide whether an error is a rate-limit signal.

    Recognizes ``ThrottledError`` and any exception exposing HTTP status 429,
    either as ``status_code`` or on an attached ``response`` object (as
    ``requests.HTTPError`` does).

    Args:
        error: Exception raised by the remote call

    Returns:
        Tuple of (is_throttled, retry_after_seconds)
    """
    if isinstance(error, ThrottledError):
        return True, _parse_retry_after(error.retry_after)

    if getattr(error, "status_code", None) == THROTTLE_STATUS_CODE:
        return True, _parse_retry_after(getattr(error, "retry_after", None))

    response = getattr(error, "response", None)
    if response is not None and getattr(response, "status_code", None) == THROTTLE_STATUS_CODE:
        headers = getattr(response, "headers", None) or {}
        return True, _parse_retry_after(headers.get("Retry-After"))

    return False, None


class RetryingInvoker:
    """Runs one remote call with exponential backoff on throttling.

    Non-throttling errors propagate immediately. The invoker keeps no state
    between calls, so a single instance is shared by every worker.
    """

    def __init__(
        self,
        max_retries: int = 5,
        jitter_range: Tuple[float, float] = (0.2, 1.0),
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
        log: Optional[logging.Logger] = None,
        classifier: Callable[[BaseException], Tuple[bool, Optional[float]]] = classify_throttle,
    ):
        """Initialize the invoker.

        Args:
            max_retries: Retries allowed after the first attempt
            jitter_range: Bounds of the random jitter added to each delay, in seconds
            sleep: Sleep function, injectable for tests
            rng: Random source for jitter
            log: Logger receiving one line per retry
            classifier: Function deciding whether an error is a throttle signal
        """
        if max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        self.max_retries = max_retries
        self.jitter_range = jitter_range
        self.sleep = sleep
        self.rng = rng or random.Random()
        self.log = log or logger
        self.classifier = classifier

    def calculate_delay(self, retry_count: int, retry_after: Optional[float] = None) -> float:
        """Calculate the delay before the given retry.

        Args:
            retry_count: 1-based number of the upcoming retry
            retry_after: Server supplied Retry-After in seconds, if any

        Returns:
            Delay in seconds: the larger of the server hint and
            ``2 ** retry_count`` plus jitter
        """
        backoff = float(2**retry_count) + self.rng.uniform(*self.jitter_range)
        if retry_after is not None:
            return max(float(retry_after), backoff)
        return backoff

    def invoke(
        self,
        operation: Callable[[], T],
        max_retries: Optional[int] = None,
        target: Optional[str] = None,
    ) -> T:
        """Execute an operation, retrying while it is throttled.

        Args:
            operation: Zero-argument callable performing the remote call
            max_retries: Override for the configured retry ceiling
            target: Identifier used in log lines and errors

        Returns:
            Whatever the operation returns

        Raises:
            ThrottleExhaustedError: If still throttled after the last retry
            Exception: Any non-throttling error raised by the operation
        """
        limit = self.max_retries if max_retries is None else max_retries
        retry_count = 0

        while True:
            try:
                return operation()
            except Exception as e:
                throttled, retry_after = self.classifier(e)
                if not throttled:
                    raise

                if retry_count >= limit:
                    raise ThrottleExhaustedError(
                        attempts=retry_count + 1, last_error=e, target=target
                    ) from e

                retry_count += 1
                delay = self.calculate_delay(retry_count, retry_after)
                self.log.warning(
                    "Throttled on %s, retry %d/%d in %.2fs",
                    target or "operation",
                    retry_count,
                    limit,
                    delay,
                )
                self.sleep(delay)
