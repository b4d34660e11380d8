"""
Error taxonomy for registry loading, mapping and joining.

Per-row and per-column problems are absorbed where they occur; the classes
below surface per-source and configuration problems to the caller.
"""


class RegistryError(Exception):
    """Base class for all registerdata errors."""


class RegistryIOError(RegistryError, OSError):
    """A batch source is missing, unreachable or unreadable."""


class SchemaError(RegistryError):
    """
    A column is missing or carries an unexpected physical type.

    Always recoverable: extraction degrades to ``None`` and the problem is
    logged once per column.
    """

    def __init__(self, message: str, column: str | None = None) -> None:
        super().__init__(message)
        self.column = column


class ValidationError(RegistryError, ValueError):
    """Configuration or programming error that aborts the enclosing operation."""


class LockError(RegistryError, RuntimeError):
    """A cache lock could not be acquired."""
