"""Error Hierarchy - typed, categorized exceptions surfaced by deferred queries.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Storage errors reach callers only as DatabaseError / ConflictError, never raw driver errors
    - MissingContainerError is a programmer error: it is raised, never recovered internally
    - to_response() produces the REST envelope used by the HTTP hook

Design Decisions:
    - Single hierarchy with DeferqError base: one global handler catches all (ADR: uniform error shape)
    - ErrorContext as dataclass: observability without coupling to the logging setup
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    RESOURCE_NOT_FOUND = "resource_not_found"
    DATABASE = "database"
    CONFLICT = "conflict"
    USAGE = "usage"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Context attached to an error for logging and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    query_name: str | None = None
    user_message: str | None = None
    debug_info: dict[str, Any] | None = None


class DeferqError(Exception):
    """Base exception for all structured errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.context.user_message or self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "query_name": self.context.query_name,
                },
            }
        }


# --- Domain Errors (400-level) ---------------------------------------

class ResourceNotFoundError(DeferqError):
    """Requested resource does not exist."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(DeferqError):
    """A uniqueness constraint rejected the write."""
    def __init__(
        self, message: str, constraint: str | None = None,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, "UNIQUENESS_VIOLATION", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, context, 409,
        )
        self.constraint = constraint


class InvalidRequestError(DeferqError):
    """Request input failed validation before any query was built."""
    def __init__(self, details: list[dict], context: ErrorContext | None = None):
        super().__init__(
            "Invalid request data", "VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.WARNING, context, 400,
        )
        self.details = details

    def to_response(self) -> dict:
        response = super().to_response()
        response["error"]["details"] = self.details
        return response


# --- Infrastructure Errors (500-level) -------------------------------

class DatabaseError(DeferqError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation


class MissingContainerError(DeferqError):
    """A deferred value was executed with no container supplied or configured."""
    def __init__(self, kind: str, context: ErrorContext | None = None):
        super().__init__(
            f"Cannot execute {kind} deferred operation: no execution container available",
            "MISSING_CONTAINER", ErrorCategory.USAGE,
            ErrorSeverity.CRITICAL, context, 500,
        )
        self.kind = kind


class InternalError(DeferqError):
    """Stand-in reported for any exception outside the hierarchy; details stay in the log."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "An unexpected error occurred", "INTERNAL_ERROR", ErrorCategory.INTERNAL,
            ErrorSeverity.CRITICAL, context, 500,
        )
