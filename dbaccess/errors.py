"""Typed error taxonomy raised by the data-access layer.

Every error keeps the exception it wraps in ``cause`` and is raised with
``raise ... from cause`` so the driver traceback stays attached.
"""

from __future__ import annotations

from typing import Optional


class DBError(Exception):
    """Base class for all data-access errors."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        detail = str(self.cause) if self.cause is not None else ""
        if not detail:
            return self.message
        return f"{self.message}: {detail}"


class DBConnectionError(DBError):
    """The database is unavailable, not connected, or a lease could not be acquired."""


class QueryExecutionError(DBError):
    """A statement (control statements included) failed at the driver level."""


class RollbackError(QueryExecutionError):
    """Rolling back a transaction failed after an earlier failure.

    ``cause`` is the rollback failure, ``original_error`` the error that
    triggered the rollback in the first place.
    """

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, cause)
        self.original_error = original_error


class ResultMarshallingError(DBError):
    """A result marshaller raised while converting a query result."""


class FactoryError(DBError):
    """A DB instance could not be created from the given configuration."""


__all__ = [
    "DBError",
    "DBConnectionError",
    "QueryExecutionError",
    "RollbackError",
    "ResultMarshallingError",
    "FactoryError",
]
