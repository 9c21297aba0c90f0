"""Failure taxonomy for the streaming inference client."""

from __future__ import annotations

__all__ = [
    "InferenceError",
    "TransientNetworkError",
    "RateLimitedError",
    "RateLimitExceededError",
    "ServiceUnavailableError",
    "TerminalApiError",
    "RequestCancelled",
]


class InferenceError(RuntimeError):
    """Base class for failures talking to an inference endpoint."""

    def __init__(self, message: str, *, endpoint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.endpoint = endpoint


class TransientNetworkError(InferenceError):
    """The request never produced a response (connect/read failure, timeout)."""


class RateLimitedError(InferenceError):
    """HTTP 429 whose wait fits under the ceiling; retried after ``retry_after`` seconds."""

    def __init__(self, message: str, *, retry_after: float, endpoint: str | None = None) -> None:
        super().__init__(message, endpoint=endpoint)
        self.retry_after = retry_after


class RateLimitExceededError(InferenceError):
    """HTTP 429 asking for a wait above the ceiling; the endpoint is abandoned."""

    def __init__(self, message: str, *, retry_after: float | None = None, endpoint: str | None = None) -> None:
        super().__init__(message, endpoint=endpoint)
        self.retry_after = retry_after


class ServiceUnavailableError(InferenceError):
    """HTTP 503; retried with exponential backoff."""


class TerminalApiError(InferenceError):
    """Any other non-2xx status. Never retried on the same endpoint."""

    def __init__(self, message: str, *, status_code: int, endpoint: str | None = None) -> None:
        super().__init__(message, endpoint=endpoint)
        self.status_code = status_code


class RequestCancelled(Exception):
    """Raised internally when the abort signal trips; callers treat it as a quiet stop."""
