"""Shared exceptions for the practice engine.

This module defines a consistent exception hierarchy used across all modules
to standardize error handling and provide clear error semantics.

Missing records and insufficient signal are not errors: the engine answers
them with defaults or a silent no-op. Only storage and coordination failures
surface as exceptions.
"""

from typing import Any


class PracticeEngineError(Exception):
    """Base exception for all engine errors.

    All domain-specific exceptions should inherit from this class
    to enable consistent error handling in the calling layer.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for the calling layer."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


# ===================
# Storage Errors
# ===================

class StorageError(PracticeEngineError):
    """Raised when the persistence store fails (connection, timeout, constraint)."""

    def __init__(self, operation: str, cause: Exception | None = None) -> None:
        details: dict[str, Any] = {"operation": operation}
        if cause is not None:
            details["cause"] = f"{type(cause).__name__}: {cause}"
        super().__init__(f"Storage operation failed: {operation}", details)
        self.cause = cause


class SelectionLogError(StorageError):
    """Raised by a store when selection-log entries cannot be written.

    The engine reports and swallows this; it never reaches the caller.
    """

    def __init__(self, session_id: int, cause: Exception | None = None) -> None:
        super().__init__("insert_selection_log", cause)
        self.details["session_id"] = session_id


# ===================
# Coordination Errors
# ===================

class LockAcquisitionError(PracticeEngineError):
    """Raised when an entry-point lock cannot be acquired after retries."""

    def __init__(self, key: str, attempts: int) -> None:
        super().__init__(
            f"Could not acquire lock '{key}' after {attempts} attempts",
            {"key": key, "attempts": attempts},
        )

