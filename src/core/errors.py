"""
Typed errors for the news pipeline.

Every error carries an explicit ``retryable`` flag decided where it is raised,
so callers never have to inspect message text to choose a recovery path.

Hierarchy:
    NewsPipelineError (base)
    ├── ConfigurationError
    ├── InvalidRequestError
    ├── TransientNetworkError
    ├── APIError
    ├── RateLimitError
    ├── ModelInvocationError
    └── PipelineFailure
"""
from typing import Optional


class NewsPipelineError(Exception):
    """
    Base exception for pipeline errors.

    Attributes:
        message: Human-readable error message
        suggestion: Optional hint for resolving the error
        retryable: Whether repeating the same operation later may succeed
    """

    retryable: bool = False

    def __init__(
        self,
        message: str,
        suggestion: Optional[str] = None,
        retryable: Optional[bool] = None,
    ) -> None:
        self.message = message
        self.suggestion = suggestion
        if retryable is not None:
            self.retryable = retryable
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.suggestion:
            return f"{self.message} Suggestion: {self.suggestion}"
        return self.message


class ConfigurationError(NewsPipelineError):
    """Raised when configuration is invalid, e.g. a model pool smaller than two."""


class InvalidRequestError(NewsPipelineError):
    """Raised for caller input that can never succeed (unknown ids, bad votes)."""


class TransientNetworkError(NewsPipelineError):
    """Timeouts, connection failures and 5xx responses."""

    retryable = True


class APIError(NewsPipelineError):
    """Non-429 HTTP failure. Not retried by the client."""

    def __init__(
        self,
        message: str,
        status_code: int,
        suggestion: Optional[str] = None,
    ) -> None:
        self.status_code = status_code
        super().__init__(message, suggestion=suggestion, retryable=status_code >= 500)


class RateLimitError(NewsPipelineError):
    """Raised after the backoff budget for HTTP 429 responses is exhausted."""

    retryable = True

    def __init__(
        self,
        message: str,
        attempts: int,
        suggestion: Optional[str] = None,
    ) -> None:
        self.attempts = attempts
        super().__init__(message, suggestion=suggestion)


class ModelInvocationError(NewsPipelineError):
    """The chat model call failed or timed out."""

    def __init__(
        self,
        message: str,
        model_id: str,
        retryable: bool = False,
    ) -> None:
        self.model_id = model_id
        super().__init__(f"[{model_id}] {message}", retryable=retryable)


class PipelineFailure(NewsPipelineError):
    """
    Total zero-content failure: every requested source failed.
    ``rate_limited`` is set when at least one failure was a rate limit.
    """

    def __init__(
        self,
        message: str,
        rate_limited: bool = False,
        failures: Optional[dict] = None,
    ) -> None:
        self.rate_limited = rate_limited
        self.failures = failures or {}
        suggestion = (
            "Sources are rate limited; wait a few minutes before running the cycle again."
            if rate_limited
            else None
        )
        super().__init__(message, suggestion=suggestion, retryable=rate_limited)
