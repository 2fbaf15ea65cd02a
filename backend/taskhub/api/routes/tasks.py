"""Task Routes — thin HTTP surface over TaskService.

Invariants:
    - Routes never contain business logic (delegate to TaskService)
    - find/update absence becomes NotFoundError here; the service returns None
    - Filter input is validated by Pydantic before reaching the route handler

Design Decisions:
    - /stats and /batch declared before /{task_id} so they are not parsed as ids
"""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.config import get_settings
from taskhub.core.domain_types import TaskId
from taskhub.core.errors import NotFoundError
from taskhub.infrastructure.cache import TTLCache, get_cache
from taskhub.infrastructure.database import get_db
from taskhub.infrastructure.task_queue import InProcessTaskQueue, get_task_queue
from taskhub.schemas.task import (
    BatchProcessRequest, BatchResult, TaskCreate, TaskDetailResponse,
    TaskFilter, TaskPage, TaskResponse, TaskStats, TaskUpdate,
)
from taskhub.services.outbox_dispatcher import OutboxDispatcher
from taskhub.services.task_service import TaskService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/tasks", tags=["tasks"])


def get_task_service(
    db: AsyncSession = Depends(get_db),
    queue: InProcessTaskQueue = Depends(get_task_queue),
    cache: TTLCache = Depends(get_cache),
) -> TaskService:
    settings = get_settings()
    dispatcher = OutboxDispatcher(
        queue,
        grace_seconds=settings.outbox_grace_seconds,
        max_attempts=settings.outbox_max_attempts,
    )
    return TaskService(
        db, queue, cache=cache, dispatcher=dispatcher,
        stats_ttl_seconds=settings.stats_cache_ttl_seconds,
    )


def _not_found(task_id: UUID) -> NotFoundError:
    return NotFoundError("Task", str(task_id))


@router.post(
    "", response_model=TaskResponse, status_code=status.HTTP_201_CREATED,
)
async def create_task(
    body: TaskCreate, service: TaskService = Depends(get_task_service),
):
    """Create a new task."""
    return await service.create(body)


@router.get("", response_model=TaskPage)
async def list_tasks(
    filters: Annotated[TaskFilter, Query()],
    service: TaskService = Depends(get_task_service),
):
    """List tasks with filtering, sorting and pagination."""
    tasks, count = await service.find_all(filters)
    return TaskPage(
        tasks=[TaskResponse.model_validate(t) for t in tasks],
        count=count, page=filters.page, limit=filters.limit,
    )


@router.get("/stats", response_model=TaskStats)
async def task_stats(service: TaskService = Depends(get_task_service)):
    """Task counts per status."""
    return await service.get_stats()


@router.post("/batch", response_model=BatchResult, response_model_exclude_none=True)
async def batch_process(
    body: BatchProcessRequest, service: TaskService = Depends(get_task_service),
):
    """Complete or delete many tasks with one set-based statement."""
    result = await service.batch_process([TaskId(t) for t in body.tasks], body.action)
    return BatchResult(action=body.action, **result)


@router.get("/{task_id}", response_model=TaskDetailResponse)
async def get_task(
    task_id: UUID, service: TaskService = Depends(get_task_service),
):
    """Get a task with its owner."""
    task = await service.find_one(TaskId(task_id))
    if task is None:
        raise _not_found(task_id)
    return task


@router.patch("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: UUID,
    body: TaskUpdate,
    service: TaskService = Depends(get_task_service),
):
    """Update a task. Status changes are mirrored onto the processing queue."""
    task = await service.update(TaskId(task_id), body)
    if task is None:
        raise _not_found(task_id)
    return task


@router.delete("/{task_id}")
async def delete_task(
    task_id: UUID, service: TaskService = Depends(get_task_service),
):
    """Delete a task."""
    await service.remove(TaskId(task_id))
    return {"message": f"Task with ID {task_id} deleted successfully"}
