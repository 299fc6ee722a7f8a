"""Custom Exceptions used throughout the TestingBot CLI."""

from typing import Any, Optional


class TestingBotError(Exception):
    """Base class for every error surfaced to the user."""

    __test__ = False

    def __init__(self, message: str, cause: Any = None) -> None:
        """Initialize Exception.

        Args:
            message: primary, user facing failure message.
            cause: server payload or exception that caused the failure.
        """
        super().__init__(message)
        self.message = message
        self.cause = cause


class ConfigError(TestingBotError):
    """No configuration found for key."""

    pass


class ValidationError(TestingBotError):
    """Bad paths or options, raised before any network call."""

    pass


class UploadError(TestingBotError):
    """Binary or bundle upload failed."""

    pass


class SubmissionError(TestingBotError):
    """Server rejected run creation."""

    pass


class PollingTimeoutError(TestingBotError):
    """Runs did not complete within the polling ceiling."""

    pass


class CancellationError(TestingBotError):
    """User interrupted the invocation."""

    pass


class ArtifactError(TestingBotError):
    """Report or artifact retrieval failed for a single run."""

    pass


class LoginError(TestingBotError):
    """Browser authentication failed or timed out."""

    pass


class RequestError(TestingBotError):
    """An HTTP call did not produce a usable response."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        content: Any = None,
        cause: Any = None,
    ) -> None:
        """Initialize Exception."""
        super().__init__(message, cause=cause)
        self.status_code = status_code
        self.content = content


class InvalidRequest(RequestError):
    """Client error (4xx). Never retried."""

    pass


class InvalidResponse(RequestError):
    """Server error (5xx or 423). Retried for idempotent reads."""

    pass


class RequestTimeout(RequestError):
    """The per-call HTTP timeout elapsed."""

    pass


class RetryBudgetExceeded(RequestError):
    """Retries were exhausted for an idempotent read."""

    pass
