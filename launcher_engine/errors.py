"""
Domain exceptions for the launcher engine.

Notes
-----
Engine code avoids raising generic exceptions. Every expected failure mode maps
to one of the types below so callers (CLI, GUI adapter) can react without
inspecting sqlite3 or OS error details.

Errors raised by the repository propagate unmodified. The lifecycle service
re-raises them as the same type with ``operation`` set, chaining the original
as ``__cause__``.
"""

from __future__ import annotations

from typing import Self


class LauncherError(RuntimeError):
    """
    Base exception for all launcher engine failures.

    Parameters
    ----------
    message:
        Human-readable description.
    operation:
        Name of the public operation that failed, if known.
    """

    def __init__(self, message: str, *, operation: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation

    def __str__(self) -> str:
        if self.operation:
            return f"{self.operation}: {self.message}"
        return self.message

    def with_operation(self, operation: str) -> Self:
        """
        Return a copy of this error of the same type, tagged with an operation name.

        Parameters
        ----------
        operation:
            Public operation name, e.g. ``"create_profile"``.

        Returns
        -------
        LauncherError
            New instance of ``type(self)``. The caller is expected to raise it
            ``from`` the original.
        """
        return type(self)(self.message, operation=operation)


class ValidationError(LauncherError):
    """Raised when profile or setting fields are malformed. Nothing is mutated."""


class ConstraintViolationError(LauncherError):
    """Raised for duplicate names, deleting the last profile, or integrity failures."""


class NotFoundError(LauncherError):
    """Raised when an operation references an id that does not exist."""


class StorageError(LauncherError):
    """Raised when the database file cannot be opened, read, or written."""


class SchemaMigrationError(StorageError):
    """Raised when a schema migration fails. Startup must not continue."""
