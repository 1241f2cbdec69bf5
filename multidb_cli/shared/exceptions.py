"""Project-wide custom exceptions."""

from __future__ import annotations


class MultiDbError(Exception):
    """Base exception for the multi-database query tool."""


class ConfigurationError(MultiDbError):
    """Raised when configuration loading or validation fails."""


class TargetListError(MultiDbError):
    """Raised when the target list cannot be read or is malformed."""


class DriverError(MultiDbError):
    """Raised for database driver failures."""


class ConnectionFailure(DriverError):
    """Raised when a connection to a target cannot be established."""


class CommandExecutionError(DriverError):
    """Raised when the command fails while executing or fetching rows."""
