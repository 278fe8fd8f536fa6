# ==============================================
# Errors
# ==============================================
#
# PURPOSE:
#   One exception hierarchy for the whole sync loop so callers can
#   decide per failure class whether to abort, skip a column, or
#   isolate a single document.
#
#   SyncError
#   ├── ConfigError            → bad environment / .env values
#   ├── StoreConnectionError   → source or sink unreachable (fatal)
#   ├── SchemaEvolutionError   → DDL rejected by the sink (per column)
#   │   └── TypeConflictError  → value does not fit its column and
#   │                            the widen policy is "reject"
#   └── WriteError             → upsert failed for one document
#
# ==============================================

from typing import Any, Dict, Optional


class SyncError(Exception):
    """
    Base class for every error raised by docsync.

    Carries an optional `details` dict that ends up in the cycle report.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConfigError(SyncError):
    """Invalid configuration value."""


class StoreConnectionError(SyncError, ConnectionError):
    """The source or sink link is not established."""


class SchemaEvolutionError(SyncError):
    """A DDL statement was rejected by the relational store."""

    def __init__(self, message: str, table: str, column: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.table = table
        self.column = column
        super().__init__(message, details)


class TypeConflictError(SchemaEvolutionError):
    """A value needs a wider column than the one stored and widening is disabled."""


class WriteError(SyncError):
    """Committing one row failed."""

    def __init__(self, message: str, table: str, natural_key: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.table = table
        self.natural_key = natural_key
        super().__init__(message, details)
