"""Core error types and exit codes."""

from cpharness.core.errors import (
    ApiError,
    ConfigurationError,
    ExitCode,
    HarnessError,
    InvitationTokenMissingError,
    NetworkError,
    NotFoundError,
    PollTimeoutError,
    ResourceMissingError,
    ResourceStillExistsError,
    ServerError,
    format_api_error,
    is_not_found,
    is_transient,
    main_with_error_handling,
)

__all__ = [
    "ApiError",
    "ConfigurationError",
    "ExitCode",
    "HarnessError",
    "InvitationTokenMissingError",
    "NetworkError",
    "NotFoundError",
    "PollTimeoutError",
    "ResourceMissingError",
    "ResourceStillExistsError",
    "ServerError",
    "format_api_error",
    "is_not_found",
    "is_transient",
    "main_with_error_handling",
]
