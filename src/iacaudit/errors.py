"""iacaudit exception hierarchy.

All iacaudit-specific exceptions inherit from IacAuditError, so callers can
catch one type. Backend failures are always surfaced as BackendError, which
carries the uniform ErrorKind taxonomy produced by iacaudit.classify.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    AUTHENTICATION_FAILED = "authentication_failed"
    AUTHORIZATION_FAILED = "authorization_failed"
    RESOURCE_NOT_FOUND = "resource_not_found"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    NETWORK_ERROR = "network_error"
    INVALID_CONFIGURATION = "invalid_configuration"
    PLATFORM_ERROR = "platform_error"
    UNKNOWN_ERROR = "unknown_error"


_USER_MESSAGES = {
    ErrorKind.AUTHENTICATION_FAILED: "Authentication failed. Check your token or credentials.",
    ErrorKind.AUTHORIZATION_FAILED: (
        "Access denied. You may not have permission to access this resource."
    ),
    ErrorKind.RESOURCE_NOT_FOUND: "The requested resource was not found.",
    ErrorKind.RATE_LIMIT_EXCEEDED: "Rate limit exceeded. Wait before making more requests.",
    ErrorKind.NETWORK_ERROR: "Network error occurred. Check your connection.",
    ErrorKind.INVALID_CONFIGURATION: "Invalid configuration. Check your settings.",
}


class IacAuditError(Exception):
    """Base exception for all iacaudit errors."""

    def __init__(self, message: str = "", *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class ConfigError(IacAuditError):
    """Invalid or missing configuration, raised at construction time."""

    kind = ErrorKind.INVALID_CONFIGURATION


class BackendError(IacAuditError):
    """Classified failure raised at a backend boundary.

    Built once where the raw failure is caught; code upstream of a backend
    only ever sees this type.
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        platform: str,
        *,
        http_status: int | None = None,
        cause: BaseException | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message, retryable=retryable)
        self.kind = kind
        self.platform = platform
        self.http_status = http_status
        self.cause = cause

    def is_retryable(self) -> bool:
        return self.retryable or self.kind is ErrorKind.RATE_LIMIT_EXCEEDED

    def user_message(self) -> str:
        return _USER_MESSAGES.get(self.kind, str(self))

    def __repr__(self) -> str:
        status = f", http_status={self.http_status}" if self.http_status is not None else ""
        return (
            f"BackendError({str(self)!r}, kind={self.kind.value}, "
            f"platform={self.platform}{status}, retryable={self.retryable})"
        )
