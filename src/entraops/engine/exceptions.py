"""Custom exception classes for the bulk operation engine."""

from typing import Any, Dict, List, Optional


class EngineError(Exception):
    """Base exception for bulk engine errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        """Initialize engine error.

        Args:
            message: Error message
            context: Additional context information
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}


class ThrottledError(EngineError):
    """Raised by a remote call when the service signals rate limiting."""

    def __init__(self, message: str = "Request was throttled", retry_after: Optional[float] = None):
        """Initialize throttled error.

        Args:
            message: Error message
            retry_after: Server supplied Retry-After value in seconds, if any
        """
        super().__init__(message, context={"retry_after": retry_after})
        self.retry_after = retry_after


class ThrottleExhaustedError(EngineError):
    """Raised when an operation is still throttled after all retries."""

    def __init__(
        self,
        attempts: int,
        last_error: Optional[BaseException] = None,
        target: Optional[str] = None,
    ):
        """Initialize throttle exhausted error.

        Args:
            attempts: Total number of attempts made, including the first
            last_error: The throttling error seen on the final attempt
            target: Identifier of the item being processed
        """
        message = f"Still throttled after {attempts} attempts"
        if target:
            message += f" for {target}"
        if last_error is not None:
            message += f": {last_error}"
        super().__init__(message, context={"attempts": attempts, "target": target})
        self.attempts = attempts
        self.last_error = last_error
        self.target = target


class ValidationFailedError(EngineError):
    """Raised when the input cannot be processed at all."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        """Initialize validation failed error.

        Args:
            message: Error message
            errors: Individual validation problems
        """
        super().__init__(message, context={"errors": errors or []})
        self.errors = errors or []


class ConnectionFailedError(EngineError):
    """Raised when a directory session cannot be established."""
