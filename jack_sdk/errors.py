"""
Exception hierarchy for the JACK SDK.

Every failure raised by the SDK derives from :class:`JackError`, so
callers can catch one type and branch on the subclass when they need
to tell transport, API, validation and timeout problems apart.
"""

from __future__ import annotations

from typing import Any


class JackError(Exception):
    """Base class for all SDK errors.

    Args:
        message: Human readable description.
        context: Optional free-form details (intent id, elapsed time, ...).
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        return self.message


class NetworkError(JackError):
    """No response was obtained (DNS failure, refused connection, reset)."""

    def __init__(
        self,
        message: str,
        original_error: BaseException | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context)
        self.original_error = original_error


class APIError(JackError):
    """The server answered with a non-2xx status or an unreadable body."""

    def __init__(
        self,
        message: str,
        status_code: int,
        response: Any = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context)
        self.status_code = status_code
        self.response = response

    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500

    def is_server_error(self) -> bool:
        return 500 <= self.status_code < 600

    def is_retryable(self) -> bool:
        """Server errors and rate limiting (429) are worth another attempt."""
        return self.is_server_error() or self.status_code == 429


class ValidationError(JackError):
    """One or more input checks failed. ``errors`` lists every violation."""

    def __init__(
        self,
        message: str,
        errors: list[str] | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context)
        self.errors = list(errors or [])

    def __str__(self) -> str:
        if not self.errors:
            return self.message
        return f"{self.message}: {'; '.join(self.errors)}"


class JackTimeoutError(JackError):
    """An operation's deadline elapsed before it completed."""

    def __init__(
        self,
        message: str,
        timeout_ms: float,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context)
        self.timeout_ms = timeout_ms


class RetryError(JackError):
    """Every attempt of a retried request failed."""

    def __init__(
        self,
        message: str,
        attempts: int,
        last_error: BaseException | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context)
        self.attempts = attempts
        self.last_error = last_error
