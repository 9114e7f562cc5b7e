"""
Exception hierarchy for ctsync.

All errors raised by the engine derive from CtsyncError. Provider errors
carry a ``retryable`` flag that the retry layer uses to decide between
backing off and failing fast.

Hierarchy:
    CtsyncError
    ├── ProviderError
    │   ├── NotFoundError
    │   ├── AuthenticationError
    │   ├── PermissionError
    │   ├── PreconditionFailedError
    │   ├── TransientError
    │   │   ├── RateLimitError
    │   │   ├── ServerError
    │   │   └── TimeoutError
    ├── ValidationError
    ├── SnapshotError
    │   ├── IntegrityError
    │   └── SnapshotSizeError
    ├── ConflictError
    │   ├── ConflictNotFoundError
    │   └── ConflictStateError
    ├── SyncStateError
    ├── SyncCancelledError
    └── ConfigError
        ├── ConfigFileError
        └── MissingConfigError
"""

from __future__ import annotations


class CtsyncError(Exception):
    """Base class for all ctsync errors."""

    retryable: bool = False

    def __init__(self, message: str, cause: BaseException | None = None):
        self.message = message
        self.cause = cause
        super().__init__(message)

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message} (caused by: {self.cause})"
        return self.message


# =============================================================================
# Provider Errors
# =============================================================================


class ProviderError(CtsyncError):
    """Error raised by a remote CMS provider."""

    def __init__(
        self,
        message: str,
        type_key: str | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message, cause=cause)
        self.type_key = type_key


class NotFoundError(ProviderError):
    """The requested content type does not exist remotely."""


class AuthenticationError(ProviderError):
    """Credentials were rejected by the provider."""


class PermissionError(ProviderError):  # noqa: A001
    """Credentials are valid but lack the required permission."""


class PreconditionFailedError(ProviderError):
    """
    The precondition token (ETag) did not match the remote item.

    Retried first; if it keeps failing the item is surfaced as a conflict
    and never overwritten.
    """

    retryable = True

    def __init__(
        self,
        message: str,
        type_key: str | None = None,
        etag: str | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message, type_key=type_key, cause=cause)
        self.etag = etag


class TransientError(ProviderError):
    """Temporary failure that may succeed on retry."""

    retryable = True


class RateLimitError(TransientError):
    """The provider throttled the request."""

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        type_key: str | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message, type_key=type_key, cause=cause)
        self.retry_after = retry_after


class ServerError(TransientError):
    """The provider answered with a 5xx status."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        type_key: str | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message, type_key=type_key, cause=cause)
        self.status_code = status_code


class TimeoutError(TransientError):  # noqa: A001
    """A remote call did not finish within its time budget."""

    def __init__(
        self,
        message: str,
        timeout_seconds: float | None = None,
        operation: str | None = None,
        type_key: str | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message, type_key=type_key, cause=cause)
        self.timeout_seconds = timeout_seconds
        self.operation = operation


# =============================================================================
# Validation / Snapshot Errors
# =============================================================================


class ValidationError(CtsyncError):
    """A definition does not satisfy the target platform's constraints."""

    def __init__(
        self,
        message: str,
        errors: list[str] | None = None,
        type_key: str | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message, cause=cause)
        self.errors = errors or []
        self.type_key = type_key


class SnapshotError(CtsyncError):
    """Base class for snapshot capture/restore errors."""


class IntegrityError(SnapshotError):
    """Snapshot checksum mismatch or undecodable payload."""


class SnapshotSizeError(SnapshotError):
    """Payload exceeds the maximum snapshot size."""

    def __init__(self, message: str, size: int, limit: int):
        super().__init__(message)
        self.size = size
        self.limit = limit


# =============================================================================
# Conflict / State Errors
# =============================================================================


class ConflictError(CtsyncError):
    """Base class for review-queue errors."""


class ConflictNotFoundError(ConflictError):
    """No conflict entry with the given id."""

    def __init__(self, conflict_id: str):
        super().__init__(f"Conflict not found: {conflict_id}")
        self.conflict_id = conflict_id


class ConflictStateError(ConflictError):
    """Illegal conflict status transition."""


class SyncStateError(CtsyncError):
    """Illegal sync state or sync record transition."""


class SyncCancelledError(CtsyncError):
    """Raised when a cancellation token has been triggered."""


# =============================================================================
# Config Errors
# =============================================================================


class ConfigError(CtsyncError):
    """Configuration problem."""


class ConfigFileError(ConfigError):
    """Config file missing or unreadable."""

    def __init__(self, message: str, path: str | None = None, cause: BaseException | None = None):
        super().__init__(message, cause=cause)
        self.path = path


class MissingConfigError(ConfigError):
    """A required setting is absent."""

    def __init__(self, setting: str):
        super().__init__(f"Missing required configuration: {setting}")
        self.setting = setting


def is_retryable(error: BaseException) -> bool:
    """
    Decide whether an error should be retried with backoff.

    ctsync errors declare it through ``retryable``. Errors from outside the
    hierarchy (including asyncio timeouts) are treated as transient.
    """
    if isinstance(error, CtsyncError):
        return error.retryable
    return True


__all__ = [
    "AuthenticationError",
    "ConfigError",
    "ConfigFileError",
    "ConflictError",
    "ConflictNotFoundError",
    "ConflictStateError",
    "CtsyncError",
    "IntegrityError",
    "MissingConfigError",
    "NotFoundError",
    "PermissionError",
    "PreconditionFailedError",
    "ProviderError",
    "RateLimitError",
    "ServerError",
    "SnapshotError",
    "SnapshotSizeError",
    "SyncCancelledError",
    "SyncStateError",
    "TimeoutError",
    "TransientError",
    "ValidationError",
    "is_retryable",
]
