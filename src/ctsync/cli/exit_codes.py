"""
Exit codes for the ctsync CLI.

Scripts and CI jobs branch on these, so values never change once released.
"""

from __future__ import annotations

from enum import IntEnum

from ctsync.core.exceptions import (
    AuthenticationError,
    ConfigError,
    PermissionError,
    ProviderError,
    SyncCancelledError,
    ValidationError,
)


class ExitCode(IntEnum):
    """Process exit codes."""

    SUCCESS = 0
    ERROR = 1
    CONFIG_ERROR = 2
    FILE_NOT_FOUND = 3
    CONNECTION_ERROR = 4
    VALIDATION_ERROR = 5
    SYNC_ERROR = 6
    CONFLICTS = 7
    """Sync finished but left conflicts in the review queue."""

    CANCELLED = 8
    """Stopped through a cancellation token."""

    SIGINT = 130
    """Terminated by SIGINT (Ctrl+C) - Unix standard."""

    @classmethod
    def from_exception(cls, error: BaseException) -> ExitCode:
        """Map an uncaught exception to the closest exit code."""
        if isinstance(error, SyncCancelledError):
            return cls.CANCELLED
        if isinstance(error, ConfigError):
            return cls.CONFIG_ERROR
        if isinstance(error, FileNotFoundError):
            return cls.FILE_NOT_FOUND
        if isinstance(error, ValidationError):
            return cls.VALIDATION_ERROR
        if isinstance(error, (AuthenticationError, PermissionError)):
            return cls.CONNECTION_ERROR
        if isinstance(error, ProviderError):
            return cls.SYNC_ERROR
        return cls.ERROR
