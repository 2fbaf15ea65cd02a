"""Error Hierarchy — typed, categorized exceptions for all TaskHub failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Domain errors (400-level) are recoverable; upstream errors (500-level) are critical
    - to_response() produces the REST envelope
    - No internal details leaked in user-facing messages

Design Decisions:
    - Single hierarchy with TaskHubError base: one FastAPI handler renders all of them
    - ErrorContext as dataclass: observability fields travel with the error, not the logger
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
    CONFLICT = "conflict"
    DATABASE = "database"
    QUEUE = "queue"
    UPSTREAM = "upstream"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    task_id: str | None = None
    field: str | None = None
    debug_info: dict[str, Any] | None = None


class TaskHubError(Exception):
    """Base exception for all TaskHub errors."""

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
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "task_id": self.context.task_id,
                    "field": self.context.field,
                },
            }
        }


# ─── Domain Errors (400-level) ──────────────────────────────────

class ValidationError(TaskHubError):
    """Malformed or missing input."""
    def __init__(
        self,
        message: str,
        field: str | None = None,
        context: ErrorContext | None = None,
        code: str = "VALIDATION_ERROR",
    ):
        ctx = context or ErrorContext()
        ctx.field = field
        super().__init__(
            message, code, ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, ctx, 400,
        )
        self.field = field


class InvalidActionError(ValidationError):
    """Batch action outside the supported set."""
    def __init__(self, action: str, context: ErrorContext | None = None):
        super().__init__(
            f"Invalid action '{action}'", "action", context, "INVALID_ACTION",
        )
        self.action = action


class InvalidCacheKeyError(ValidationError):
    """Cache key is empty or not a string."""
    def __init__(self, key: object, context: ErrorContext | None = None):
        super().__init__(
            "Invalid cache key", "key", context, "INVALID_CACHE_KEY",
        )
        self.key = key


class NotFoundError(TaskHubError):
    """Operation targets a resource that does not exist."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        if resource_type == "Task":
            ctx.task_id = resource_id
        super().__init__(
            f"{resource_type} with ID {resource_id} not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, ctx, 404,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(TaskHubError):
    """Uniqueness, integrity or concurrent-modification conflict."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "CONFLICT", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, context, 409,
        )


# ─── Upstream Errors (500-level) ────────────────────────────────

class UpstreamError(TaskHubError):
    """Store or queue failure not otherwise classified."""
    def __init__(
        self,
        message: str,
        code: str = "UPSTREAM_ERROR",
        category: ErrorCategory = ErrorCategory.UPSTREAM,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, code, category, ErrorSeverity.CRITICAL, context, 503,
        )


class DatabaseError(UpstreamError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE, context,
        )
        self.operation = operation


class QueueError(UpstreamError):
    """Queue client rejected or failed to accept a job."""
    def __init__(self, message: str, event_name: str, context: ErrorContext | None = None):
        super().__init__(
            f"Queue enqueue of '{event_name}' failed: {message}",
            "QUEUE_ERROR", ErrorCategory.QUEUE, context,
        )
        self.event_name = event_name
