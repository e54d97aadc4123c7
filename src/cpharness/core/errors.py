"""
Error taxonomy for cpharness.

Every failure surfaced to a caller is self-describing: API errors carry the
HTTP status, the remote status text, any structured error list from the
response body, the top-level message field and a timestamp, concatenated
into one string so a log line is enough to diagnose the failure.

Exit Codes (CLI):
- 0: Success
- 1: Cleanup finished with failures
- 10: Configuration error
- 11: Remote API error
- 12: Timed out waiting on remote state
- 127: Unknown/internal error
"""

from __future__ import annotations

import functools
import json
import sys
import traceback
from datetime import datetime
from enum import IntEnum
from typing import Any, Callable, TypeVar

import httpx
import structlog

logger = structlog.get_logger()

TIMESTAMP_FORMAT = "%Y-%m-%d, %H:%M:%S %z"


class ExitCode(IntEnum):
    """Standardized exit codes for CLI commands."""

    SUCCESS = 0
    CLEANUP_FAILED = 1
    CONFIG_ERROR = 10
    API_ERROR = 11
    TIMEOUT = 12
    UNKNOWN_ERROR = 127


class HarnessError(Exception):
    """Base exception for cpharness errors with exit code support."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR
    show_traceback: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(HarnessError):
    """Raised for missing or invalid settings and credentials."""

    exit_code = ExitCode.CONFIG_ERROR


def _timestamp() -> str:
    return datetime.now().astimezone().strftime(TIMESTAMP_FORMAT)


def format_api_error(
    context: str = "",
    *,
    status_code: int | None = None,
    status_text: str = "",
    errors: list[Any] | None = None,
    remote_message: str | None = None,
    cause: str | None = None,
    timestamp: str | None = None,
) -> str:
    """Build the single-string diagnostic for a failed remote call."""
    message = context
    if status_code is not None:
        message += f"\nFailed with status code: {status_code}\n"
        message += f"Message: {status_text}\n"
        for entry in errors or []:
            message += json.dumps(entry) + "\n"
        if remote_message:
            message += remote_message + "\n"
    else:
        message += f"\n{cause or ''}\n"
    message += timestamp or _timestamp()
    return message


class ApiError(HarnessError):
    """A remote control-plane call failed."""

    exit_code = ExitCode.API_ERROR

    def __init__(
        self,
        *,
        status_code: int | None,
        status_text: str = "",
        errors: list[Any] | None = None,
        remote_message: str | None = None,
        cause: str | None = None,
        context: str = "",
        method: str | None = None,
        url: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.status_text = status_text
        self.errors = list(errors or [])
        self.remote_message = remote_message
        self.cause = cause
        self.context = context
        self.method = method
        self.url = url
        self.timestamp = _timestamp()
        super().__init__(
            format_api_error(
                context,
                status_code=status_code,
                status_text=status_text,
                errors=self.errors,
                remote_message=remote_message,
                cause=cause,
                timestamp=self.timestamp,
            ),
            details={"status_code": status_code, "method": method, "url": url},
        )

    @classmethod
    def from_response(cls, response: httpx.Response, context: str = "") -> "ApiError":
        """Build the error subclass matching the response status."""
        errors: list[Any] = []
        remote_message: str | None = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            if isinstance(body.get("errors"), list):
                errors = body["errors"]
            if body.get("message"):
                remote_message = str(body["message"])

        if response.status_code == 404:
            error_cls: type[ApiError] = NotFoundError
        elif response.status_code >= 500:
            error_cls = ServerError
        else:
            error_cls = ApiError

        try:
            request: httpx.Request | None = response.request
        except RuntimeError:
            # Responses built by hand carry no request.
            request = None
        return error_cls(
            status_code=response.status_code,
            status_text=response.reason_phrase,
            errors=errors,
            remote_message=remote_message,
            context=context,
            method=request.method if request else None,
            url=str(request.url) if request else None,
        )

    def with_context(self, context: str) -> "ApiError":
        """Return a copy of this error prefixed with operation context.

        The copy has the same class so NotFound/transient classification
        survives the wrap.
        """
        return type(self)(
            status_code=self.status_code,
            status_text=self.status_text,
            errors=self.errors,
            remote_message=self.remote_message,
            cause=self.cause,
            context=context,
            method=self.method,
            url=self.url,
        )


class NotFoundError(ApiError):
    """404 - the resource does not exist (yet, or any more)."""


class ServerError(ApiError):
    """5xx - server-side failure, safe to retry for idempotent calls."""


class NetworkError(ApiError):
    """The request never produced a response (connect/read/timeout)."""


class PollTimeoutError(HarnessError):
    """A polled condition never became true within its attempt budget."""

    exit_code = ExitCode.TIMEOUT

    def __init__(
        self,
        description: str,
        *,
        attempts: int,
        interval_seconds: float,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.description = description
        self.attempts = attempts
        self.interval_seconds = interval_seconds
        budget = attempts * interval_seconds
        super().__init__(
            f"Timed out while waiting for {description} "
            f"({attempts} attempts every {interval_seconds:g}s, ~{budget:g}s budget)",
            details={
                "attempts": attempts,
                "interval_seconds": interval_seconds,
                "budget_seconds": budget,
                **(details or {}),
            },
        )


class ResourceStillExistsError(PollTimeoutError):
    """A resource expected to be gone was still present at the deadline."""


class ResourceMissingError(HarnessError):
    """A resource expected to exist was not found."""

    exit_code = ExitCode.API_ERROR


class InvitationTokenMissingError(HarnessError):
    """The invitation token never became visible on the project."""

    exit_code = ExitCode.API_ERROR


def is_transient(exc: BaseException) -> bool:
    """Whether a failure is worth retrying (network or 5xx)."""
    return isinstance(exc, (ServerError, NetworkError))


def is_not_found(exc: BaseException) -> bool:
    return isinstance(exc, NotFoundError)


# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., int])


def main_with_error_handling(
    *,
    show_traceback: bool = False,
    log_errors: bool = True,
) -> Callable[[F], F]:
    """
    Decorator for CLI main functions that provides unified error handling.

    Catches exceptions and converts them to exit codes with consistent
    error reporting.

    Exit codes:
        - HarnessError subclasses: Uses the error's exit_code
        - KeyboardInterrupt: Returns 130 (standard for SIGINT)
        - Other exceptions: Returns 127 (unknown error)
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except HarnessError as e:
                if log_errors:
                    logger.error(
                        "command_error",
                        error_type=type(e).__name__,
                        message=e.message,
                        exit_code=e.exit_code,
                    )
                if e.show_traceback or show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return e.exit_code
            except KeyboardInterrupt:
                if log_errors:
                    logger.info("command_interrupted")
                return 130
            except Exception as e:
                if log_errors:
                    logger.error(
                        "unexpected_error",
                        error_type=type(e).__name__,
                        message=str(e),
                        exit_code=ExitCode.UNKNOWN_ERROR,
                    )
                if show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return ExitCode.UNKNOWN_ERROR

        return wrapper  # type: ignore[return-value]

    return decorator
