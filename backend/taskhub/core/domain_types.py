"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - TaskId, UserId wrap UUIDs in TaskService signatures; routes wrap path ids on entry
    - All valid states encoded as Enums — no raw string matching
    - Enum values are the wire/storage representation (upper-case)

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON without custom encoders
"""

from enum import Enum
from typing import NewType
from uuid import UUID


# ─── Identity Types ──────────────────────────────────────────────

TaskId = NewType("TaskId", UUID)
UserId = NewType("UserId", UUID)


# ─── Event Names ─────────────────────────────────────────────────

STATUS_UPDATE_EVENT = "task-status-update"


# ─── Enums ───────────────────────────────────────────────────────

class TaskStatus(str, Enum):
    """Task lifecycle states — maps to DB `status` column."""
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class TaskPriority(str, Enum):
    """Task priority — maps to DB `priority` column."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class BatchAction(str, Enum):
    """Set-based operations accepted by batch processing."""
    COMPLETE = "complete"
    DELETE = "delete"


class SortOrder(str, Enum):
    ASC = "ASC"
    DESC = "DESC"
