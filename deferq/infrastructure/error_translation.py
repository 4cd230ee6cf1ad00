"""Storage Error Translation - maps SQLAlchemy exceptions onto DeferqError.

Invariants:
    - Only SQLAlchemyError subclasses are translated; every other error passes through
    - Unique violations become ConflictError (409), other failures DatabaseError (503)
    - The raw driver error stays reachable as __cause__ (raise ... from exc), never in the message

Design Decisions:
    - Same category split as the session manager's rollback handlers: integrity,
      operational, driver, generic
"""

import logging

from sqlalchemy.exc import (
    IntegrityError, OperationalError, DBAPIError, SQLAlchemyError,
)

from deferq.core.errors import ConflictError, DatabaseError, ErrorContext

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


def _sqlstate(error: DBAPIError) -> str | None:
    orig = error.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def _is_unique_violation(error: IntegrityError) -> bool:
    if _sqlstate(error) == UNIQUE_VIOLATION:
        return True
    # SQLite reports no SQLSTATE
    return "UNIQUE constraint failed" in str(error.orig)


def translate_database_error(error: Exception) -> Exception:
    """Return the structured error for a raw storage error, or error unchanged."""
    if not isinstance(error, SQLAlchemyError):
        return error

    if isinstance(error, IntegrityError):
        context = ErrorContext(debug_info={"sqlstate": _sqlstate(error)})
        if _is_unique_violation(error):
            logger.warning(
                f"DB uniqueness violation: {error.orig}",
                extra={"error_code": "UNIQUENESS_VIOLATION"},
            )
            return ConflictError(
                "A record with the same unique values already exists",
                getattr(getattr(error.orig, "diag", None), "constraint_name", None),
                context,
            )
        logger.error(
            f"DB integrity error: {error}", extra={"error_code": "DATABASE_ERROR"},
        )
        return DatabaseError("Integrity constraint violated", "commit", context)
    if isinstance(error, OperationalError):
        logger.error(
            f"DB operational error: {error}", extra={"error_code": "DATABASE_ERROR"},
        )
        return DatabaseError("Connection or operational error", "execute")
    if isinstance(error, DBAPIError):
        logger.error(
            f"DB driver error: {error}", extra={"error_code": "DATABASE_ERROR"},
        )
        return DatabaseError("Database driver error", "query")
    logger.error(f"SQLAlchemy error: {error}", extra={"error_code": "DATABASE_ERROR"})
    return DatabaseError("Database operation failed", "unknown")
