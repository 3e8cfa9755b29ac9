"""Map raw backend failures onto the uniform ErrorKind taxonomy."""

from __future__ import annotations

import httpx

from iacaudit.errors import BackendError, ConfigError, ErrorKind

_STATUS_KINDS = {
    401: ErrorKind.AUTHENTICATION_FAILED,
    403: ErrorKind.AUTHORIZATION_FAILED,
    404: ErrorKind.RESOURCE_NOT_FOUND,
    429: ErrorKind.RATE_LIMIT_EXCEEDED,
}


def classify_status(status: int) -> tuple[ErrorKind, bool]:
    """Return ``(kind, retryable)`` for an HTTP status code."""
    kind = _STATUS_KINDS.get(status, ErrorKind.PLATFORM_ERROR)
    if kind is ErrorKind.RATE_LIMIT_EXCEEDED:
        return kind, True
    if kind is ErrorKind.PLATFORM_ERROR:
        return kind, status >= 500
    return kind, False


def classify_error(exc: BaseException, platform: str) -> BackendError:
    """Classify ``exc`` raised while talking to ``platform``.

    Already-classified errors are returned unchanged.
    """
    if isinstance(exc, BackendError):
        return exc
    if isinstance(exc, ConfigError):
        return BackendError(str(exc), ErrorKind.INVALID_CONFIGURATION, platform, cause=exc)
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        kind, retryable = classify_status(status)
        # GitHub reports an exhausted quota as 403
        if status == 403 and exc.response.headers.get("x-ratelimit-remaining") == "0":
            kind, retryable = ErrorKind.RATE_LIMIT_EXCEEDED, True
        return BackendError(
            f"HTTP {status} for {exc.request.method} {exc.request.url}",
            kind,
            platform,
            http_status=status,
            cause=exc,
            retryable=retryable,
        )
    if isinstance(exc, httpx.TransportError):
        return BackendError(
            str(exc) or type(exc).__name__,
            ErrorKind.NETWORK_ERROR,
            platform,
            cause=exc,
            retryable=True,
        )
    if isinstance(exc, FileNotFoundError):
        return BackendError(str(exc), ErrorKind.RESOURCE_NOT_FOUND, platform, cause=exc)
    if isinstance(exc, PermissionError):
        return BackendError(str(exc), ErrorKind.AUTHORIZATION_FAILED, platform, cause=exc)
    if isinstance(exc, OSError):
        return BackendError(str(exc), ErrorKind.PLATFORM_ERROR, platform, cause=exc)
    return BackendError(
        str(exc) or type(exc).__name__,
        ErrorKind.UNKNOWN_ERROR,
        platform,
        cause=exc,
    )


def is_not_found(exc: BaseException) -> bool:
    if isinstance(exc, BackendError):
        return exc.kind is ErrorKind.RESOURCE_NOT_FOUND
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code == 404
    return isinstance(exc, FileNotFoundError)
