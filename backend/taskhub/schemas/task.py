"""Task Schemas — Pydantic models with field-level validation for API boundaries.

Invariants:
    - TaskCreate.title: 1-255 chars, stripped, non-empty
    - status/priority only accept TaskStatus/TaskPriority members
    - TaskFilter applies page=1, limit=10, sorting_order=DESC when absent
    - BatchProcessRequest.tasks is non-empty; action is checked by TaskService
    - Request models accept snake_case and camelCase keys (userId, sortingColumn, ...)
    - TaskFilter rejects unknown query parameters; page and limit are capped

Design Decisions:
    - sorting_column stays a plain string here: the allow-list lives in
      core/task_filters.py so service callers get the same check as HTTP callers
    - BatchProcessRequest.action is a str so unknown actions reach
      InvalidActionError instead of a generic schema error
"""

from datetime import date, datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_snake

from taskhub.core.domain_types import TaskPriority, TaskStatus
from taskhub.core.task_filters import MAX_LIMIT, MAX_PAGE


class RequestModel(BaseModel):
    """Input model that also takes the camelCase names older clients send."""

    @model_validator(mode="before")
    @classmethod
    def snake_case_keys(cls, data):
        if isinstance(data, dict):
            return {
                to_snake(k) if isinstance(k, str) else k: v for k, v in data.items()
            }
        return data


class TaskCreate(RequestModel):
    """Task creation input."""
    title: str = Field(min_length=1, max_length=255)
    description: str | None = Field(None, max_length=10_000)
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: datetime | None = None
    user_id: UUID

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title cannot be empty or whitespace")
        return v


class TaskUpdate(RequestModel):
    """Partial update. Only fields explicitly sent are applied."""
    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=10_000)
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: datetime | None = None
    user_id: UUID | None = None
    version: int | None = Field(None, ge=1)

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("title cannot be empty or whitespace")
        return v


class TaskFilter(RequestModel):
    """Query parameters for listing tasks."""
    model_config = ConfigDict(extra="forbid")

    page: int = Field(1, ge=0, le=MAX_PAGE)
    limit: int = Field(10, ge=1, le=MAX_LIMIT)
    search_query: str | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    user_id: UUID | None = None
    date_from: datetime | date | None = None
    date_to: datetime | date | None = None
    sorting_column: str | None = None
    sorting_order: Literal["ASC", "DESC"] = "DESC"

    @field_validator("sorting_order", mode="before")
    @classmethod
    def upper_sorting_order(cls, v):
        return v.upper() if isinstance(v, str) else v

    @field_validator("date_from", "date_to", mode="before")
    @classmethod
    def parse_date_bound(cls, v):
        """'YYYY-MM-DD' is a calendar day; anything longer is an ISO datetime."""
        if not isinstance(v, str):
            return v
        v = v.strip()
        if not v:
            return None
        if len(v) == 10:
            return date.fromisoformat(v)
        return datetime.fromisoformat(v)

    @field_validator("search_query", "sorting_column")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        return v or None


class BatchProcessRequest(RequestModel):
    """Batch mutation input."""
    tasks: list[UUID] = Field(min_length=1)
    action: str


class OwnerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    name: str


class TaskResponse(BaseModel):
    """Public-facing task data."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: str | None
    status: TaskStatus
    priority: TaskPriority
    due_date: datetime | None
    user_id: UUID
    version: int
    created_at: datetime
    updated_at: datetime


class TaskDetailResponse(TaskResponse):
    """Task with its owner resolved."""
    user: OwnerResponse


class TaskPage(BaseModel):
    tasks: list[TaskResponse]
    count: int
    page: int
    limit: int


class BatchResult(BaseModel):
    action: str
    updated: int | None = None
    deleted: int | None = None
    failed_events: list[UUID] | None = None


class TaskStats(BaseModel):
    total: int
    completed: int
    in_progress: int
    pending: int
    cancelled: int
    high_priority: int
