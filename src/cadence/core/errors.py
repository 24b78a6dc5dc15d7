"""Database error taxonomy and translation of driver/ORM exceptions."""

from __future__ import annotations

from typing import Any

from sqlalchemy import exc as sa_exc

# PostgreSQL SQLSTATE codes for lock_timeout and statement_timeout.
_PG_TIMEOUT_CODES = {"55P03", "57014"}


class DatabaseError(Exception):
    """Base class for every failure surfaced by the store.

    Carries the operation name and identifying context so callers can decide
    between retry and give-up without parsing messages.
    """

    retryable = False
    kind = "database"

    def __init__(self, message: str, operation: str | None = None, **context: Any):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.context = context

    def __str__(self) -> str:
        parts = [self.message]
        if self.operation:
            parts.append(f"operation={self.operation}")
        parts.extend(f"{k}={v}" for k, v in self.context.items())
        return " | ".join(parts)


class DatabaseTimeoutError(DatabaseError):
    """Pool acquisition or lock wait exceeded its budget."""

    retryable = True
    kind = "timeout"


class DatabaseConnectionError(DatabaseError):
    """Transport or authentication failure while talking to the store."""

    retryable = True
    kind = "connection"


class QueryError(DatabaseError):
    """Malformed statement or constraint violation."""

    kind = "query"


class NotFoundError(DatabaseError):
    """Requested entity is absent or soft-deleted."""

    kind = "not_found"


def _sqlstate(error: sa_exc.DBAPIError) -> str | None:
    orig = error.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def translate_error(
    error: BaseException, operation: str | None = None, **context: Any
) -> DatabaseError | None:
    """Map an exception raised inside a unit of work onto the taxonomy.

    Returns ``None`` for exceptions that did not come from the store, so
    application errors raised inside a transaction propagate unchanged.
    """
    if isinstance(error, DatabaseError):
        if operation and error.operation is None:
            error.operation = operation
        return error

    if isinstance(error, sa_exc.TimeoutError):
        return DatabaseTimeoutError(f"connection pool timeout: {error}", operation, **context)

    if isinstance(error, sa_exc.DBAPIError):
        if _sqlstate(error) in _PG_TIMEOUT_CODES:
            return DatabaseTimeoutError(f"lock wait timeout: {error.orig}", operation, **context)
        if isinstance(error, sa_exc.OperationalError) and "database is locked" in str(error.orig):
            return DatabaseTimeoutError(f"lock wait timeout: {error.orig}", operation, **context)
        if error.connection_invalidated or isinstance(error, sa_exc.InterfaceError):
            return DatabaseConnectionError(f"connection error: {error.orig}", operation, **context)
        return QueryError(f"query error: {error.orig}", operation, **context)

    if isinstance(error, (ConnectionError, OSError)):
        return DatabaseConnectionError(f"connection error: {error}", operation, **context)

    if isinstance(error, sa_exc.SQLAlchemyError):
        return QueryError(f"query error: {error}", operation, **context)

    return None
