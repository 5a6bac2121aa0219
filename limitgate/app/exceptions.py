"""Custom exceptions for the rate limiter."""

from typing import Optional


class LimitGateException(Exception):
    """Base class for application exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    """
    status_code: int = 500

    def __init__(self, message: str = "Rate limiter error"):
        self.message = message
        super().__init__(message)


class ConfigurationError(LimitGateException):
    """Raised when a rate limit rule or policy is invalid.

    Only ever raised while wiring the application, never while
    evaluating a request.
    """
    status_code = 500


class StoreUnavailable(LimitGateException):
    """Raised when the shared counter store cannot be reached.

    Covers connection failures, timeouts and server errors. The outcome of
    the increment is unknown when this is raised.
    """
    status_code = 503

    def __init__(self, message: str = "Counter store unavailable", cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)

    @property
    def error_type(self) -> str:
        """Short classification used in logs and metrics."""
        if self.cause is None:
            return "unknown"
        return type(self.cause).__name__


class LimitExceeded(LimitGateException):
    """Raised when a request is denied by its rate limit rule.

    Maps to HTTP 429 Too Many Requests. The middleware renders it directly;
    route handlers may also raise it, and the app exception handler turns it
    into the same 429 response.
    """
    status_code = 429

    def __init__(
        self,
        resource_key: str,
        limit: int,
        retry_after: Optional[int] = None,
        reset_at_ms: Optional[int] = None,
        detail: Optional[str] = None,
    ):
        self.resource_key = resource_key
        self.limit = limit
        self.retry_after = retry_after
        self.reset_at_ms = reset_at_ms
        super().__init__(detail or "Rate limit exceeded. Please try again later.")

    def to_response(self) -> dict:
        return {
            "error": "rate_limit_exceeded",
            "message": self.message,
            "retry_after": self.retry_after,
        }
