"""Task Service — create/update/delete/batch coordinator with transactional event staging.

Invariants:
    - Every write runs inside one unit of work on the caller's session; any failure
      rolls back the write AND its staged outbox events, then re-raises
    - Queue events are staged as OutboxEvent rows in the same transaction and
      published only after commit; publish failures never undo a committed write
    - update() re-reads the row from the store (not the identity map) before merging
    - A status-update event is staged only when status actually changes
    - Batch operations are single set-based statements, never one transaction per id
    - Read paths return None / empty results instead of raising for absence
    - Every committed mutation invalidates the cached stats

Design Decisions:
    - Owner existence checked explicitly before insert: SQLite test stores do not
      enforce foreign keys, and a missing owner is a ValidationError, not a 409
    - remove() and batch delete emit no queue events
"""

import logging
from datetime import datetime, timezone
from typing import Any, Sequence
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.core.domain_types import (
    STATUS_UPDATE_EVENT, BatchAction, TaskId, TaskPriority, TaskStatus, UserId,
)
from taskhub.core.errors import (
    ConflictError, ErrorContext, InvalidActionError, NotFoundError, ValidationError,
)
from taskhub.core.repository_protocols import QueueClient
from taskhub.core.task_events import status_update_payload
from taskhub.infrastructure.cache import TTLCache
from taskhub.infrastructure.database import unit_of_work
from taskhub.models import OutboxEvent, Task, User
from taskhub.schemas.task import TaskCreate, TaskFilter, TaskUpdate
from taskhub.services.outbox_dispatcher import OutboxDispatcher
from taskhub.services.task_query import fetch_task_page

logger = logging.getLogger(__name__)

STATS_CACHE_KEY = "tasks:stats"


class TaskService:
    """Owns every task mutation and its consistency with the processing queue."""

    def __init__(
        self,
        db: AsyncSession,
        queue: QueueClient,
        cache: TTLCache | None = None,
        dispatcher: OutboxDispatcher | None = None,
        stats_ttl_seconds: float = 30,
    ):
        self.db = db
        self.cache = cache
        self.dispatcher = dispatcher or OutboxDispatcher(queue)
        self.stats_ttl_seconds = stats_ttl_seconds

    # ─── Reads ───────────────────────────────────────────────────

    async def find_all(self, filters: TaskFilter) -> tuple[list[Task], int]:
        return await fetch_task_page(self.db, filters)

    async def find_one(self, task_id: TaskId) -> Task | None:
        """Task with owner loaded, or None. The caller decides whether absence is an error."""
        result = await self.db.execute(
            select(Task).where(Task.id == task_id)
            .execution_options(populate_existing=True),
        )
        return result.scalar_one_or_none()

    async def get_stats(self) -> dict[str, int]:
        """Counts per status plus high-priority total, memoised in the cache."""
        if self.cache is not None:
            cached = self.cache.get(STATS_CACHE_KEY)
            if cached is not None:
                return cached

        def _count_where(condition):
            return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

        result = await self.db.execute(select(
            func.count(Task.id),
            _count_where(Task.status == TaskStatus.COMPLETED.value),
            _count_where(Task.status == TaskStatus.IN_PROGRESS.value),
            _count_where(Task.status == TaskStatus.PENDING.value),
            _count_where(Task.status == TaskStatus.CANCELLED.value),
            _count_where(Task.priority == TaskPriority.HIGH.value),
        ))
        total, completed, in_progress, pending, cancelled, high = result.one()
        stats = {
            "total": total,
            "completed": completed,
            "in_progress": in_progress,
            "pending": pending,
            "cancelled": cancelled,
            "high_priority": high,
        }
        if self.cache is not None:
            self.cache.set(STATS_CACHE_KEY, stats, self.stats_ttl_seconds)
        return stats

    # ─── Writes ──────────────────────────────────────────────────

    async def create(self, data: TaskCreate) -> Task:
        """Persist a task and stage its status-update event in one unit of work."""
        async with unit_of_work(self.db):
            await self._require_owner(data.user_id)
            task = Task(
                title=data.title,
                description=data.description,
                status=data.status,
                priority=data.priority,
                due_date=data.due_date,
                user_id=data.user_id,
            )
            self.db.add(task)
            await self.db.flush()
            events = [self._stage_status_event(task.id, task.status)]

        logger.info(f"Task {task.id} created", extra={"task_id": task.id})
        await self._after_commit(events)
        return task

    async def update(self, task_id: TaskId, patch: TaskUpdate) -> Task | None:
        """Merge patch into the current persisted row. None when the task does not exist."""
        changes = patch.model_dump(exclude_unset=True)
        expected_version = changes.pop("version", None)
        events: list[OutboxEvent] = []

        async with unit_of_work(self.db):
            task = await self.db.get(
                Task, task_id, populate_existing=True, with_for_update=True,
            )
            if task is None:
                return None
            if expected_version is not None and expected_version != task.version:
                raise ConflictError(
                    f"Task {task_id} is at version {task.version}, "
                    f"not {expected_version}",
                    ErrorContext(
                        task_id=str(task_id),
                        debug_info={"current_version": task.version},
                    ),
                )
            if changes.get("user_id") not in (None, task.user_id):
                await self._require_owner(changes["user_id"])

            original_status = task.status
            for name, value in changes.items():
                if value is None and name in ("title", "status", "priority", "user_id"):
                    continue
                setattr(task, name, value)
            await self.db.flush()

            if task.status != original_status:
                events.append(self._stage_status_event(task.id, task.status))

        logger.info(f"Task {task_id} updated", extra={"task_id": task_id})
        await self._after_commit(events)
        return task

    async def remove(self, task_id: TaskId) -> None:
        """Delete by id in one statement. NotFoundError when nothing was deleted."""
        async with unit_of_work(self.db):
            result = await self.db.execute(delete(Task).where(Task.id == task_id))
            if result.rowcount == 0:
                raise NotFoundError("Task", str(task_id))

        logger.info(f"Task {task_id} deleted", extra={"task_id": task_id})
        await self._after_commit([])

    async def batch_process(
        self, task_ids: Sequence[TaskId], action: str | BatchAction,
    ) -> dict[str, Any]:
        """Set-based complete/delete. Missing ids are skipped, not errors.

        complete also reports failed_events: ids whose status-update event the
        queue rejected. Those tasks are completed; the outbox drain retries the events.
        """
        try:
            batch_action = BatchAction(action)
        except ValueError:
            raise InvalidActionError(str(getattr(action, "value", action)))
        ids = list(dict.fromkeys(task_ids))
        if not ids:
            raise ValidationError("No task IDs provided", field="tasks")

        if batch_action is BatchAction.COMPLETE:
            return await self._batch_complete(ids)
        return await self._batch_delete(ids)

    # ─── Internals ───────────────────────────────────────────────

    async def _batch_complete(self, ids: list[TaskId]) -> dict[str, Any]:
        completed = TaskStatus.COMPLETED.value
        async with unit_of_work(self.db):
            result = await self.db.execute(
                update(Task)
                .where(Task.id.in_(ids), Task.status != completed)
                .values(
                    status=completed,
                    version=Task.version + 1,
                    updated_at=datetime.now(timezone.utc),
                )
                .returning(Task.id),
            )
            affected = list(result.scalars().all())
            events = [self._stage_status_event(tid, completed) for tid in affected]

        logger.info(
            f"Batch complete updated {len(affected)}/{len(ids)} tasks",
            extra={"count": len(affected)},
        )
        failures = await self._after_commit(events)
        summary: dict[str, Any] = {"updated": len(affected)}
        if failures:
            summary["failed_events"] = [f["task_id"] for f in failures]
        return summary

    async def _batch_delete(self, ids: list[TaskId]) -> dict[str, int]:
        async with unit_of_work(self.db):
            result = await self.db.execute(delete(Task).where(Task.id.in_(ids)))
            deleted = result.rowcount

        logger.info(
            f"Batch delete removed {deleted}/{len(ids)} tasks",
            extra={"count": deleted},
        )
        await self._after_commit([])
        return {"deleted": deleted}

    async def _require_owner(self, user_id: UserId) -> None:
        owner = await self.db.get(User, user_id)
        if owner is None:
            raise ValidationError(
                f"User with ID {user_id} does not exist", field="user_id",
            )

    def _stage_status_event(self, task_id: TaskId, status: str) -> OutboxEvent:
        event = OutboxEvent(
            event_name=STATUS_UPDATE_EVENT,
            task_id=task_id,
            payload=status_update_payload(task_id, status),
        )
        self.db.add(event)
        return event

    async def _after_commit(self, events: list[OutboxEvent]) -> list[dict]:
        if self.cache is not None:
            self.cache.delete(STATS_CACHE_KEY)
        failures = await self.dispatcher.publish(self.db, events)
        if failures:
            logger.warning(
                f"{len(failures)} of {len(events)} events left in outbox for retry",
                extra={"count": len(failures)},
            )
        return failures
