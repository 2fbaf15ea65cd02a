"""TaskService — create/find/update/remove and their consistency with the queue.

Invariants:
    - create emits exactly one status-update event carrying the new id and status
    - a nonexistent owner is a ValidationError and leaves no row and no event
    - a failed commit leaves no task, no outbox row, and an untouched queue
    - update emits only when status genuinely changes, judged against the stored row
    - remove raises NotFoundError for missing ids and emits nothing
"""

from uuid import uuid4

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError

from taskhub.core.domain_types import STATUS_UPDATE_EVENT, TaskPriority, TaskStatus
from taskhub.core.errors import ConflictError, DatabaseError, NotFoundError, ValidationError
from taskhub.models import OutboxEvent, Task
from taskhub.schemas.task import TaskCreate, TaskUpdate
from taskhub.services.outbox_dispatcher import OutboxDispatcher
from taskhub.services.task_service import STATS_CACHE_KEY, TaskService

from tests.fakes import FailingQueue, reload


async def _count(db, model) -> int:
    result = await db.execute(select(func.count()).select_from(model))
    return result.scalar_one()


# --- create -------------------------------------------------------------------

async def test_create_defaults_status_and_emits_one_event(service, owner, queue):
    task = await service.create(TaskCreate(title="Write report", user_id=owner.id))

    assert task.id is not None
    assert task.status == TaskStatus.PENDING.value
    assert task.priority == TaskPriority.MEDIUM.value
    assert task.version == 1
    assert task.created_at is not None
    assert queue.events == [
        (STATUS_UPDATE_EVENT, {"task_id": str(task.id), "status": "PENDING"}),
    ]


async def test_create_keeps_requested_status(service, owner, queue):
    task = await service.create(TaskCreate(
        title="Already started", status=TaskStatus.IN_PROGRESS, user_id=owner.id,
    ))

    assert task.status == "IN_PROGRESS"
    assert queue.events[0][1]["status"] == "IN_PROGRESS"


async def test_create_generates_unique_ids(service, owner):
    a = await service.create(TaskCreate(title="A", user_id=owner.id))
    b = await service.create(TaskCreate(title="B", user_id=owner.id))
    assert a.id != b.id


async def test_create_marks_outbox_event_dispatched(service, owner, test_db):
    task = await service.create(TaskCreate(title="A", user_id=owner.id))

    event = (await test_db.execute(select(OutboxEvent))).scalar_one()
    assert event.task_id == task.id
    assert event.dispatched_at is not None
    assert event.attempts == 1


async def test_create_with_unknown_owner_is_validation_error(service, owner, test_db, queue):
    with pytest.raises(ValidationError) as exc_info:
        await service.create(TaskCreate(title="Orphan", user_id=uuid4()))

    assert exc_info.value.field == "user_id"
    assert await _count(test_db, Task) == 0
    assert await _count(test_db, OutboxEvent) == 0
    assert queue.events == []


async def test_failed_commit_rolls_back_task_and_event(
    service, owner, test_db, queue, monkeypatch,
):
    async def broken_commit():
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(test_db, "commit", broken_commit)

    with pytest.raises(DatabaseError):
        await service.create(TaskCreate(title="Lost", user_id=owner.id))

    monkeypatch.undo()
    assert await _count(test_db, Task) == 0
    assert await _count(test_db, OutboxEvent) == 0
    assert queue.events == []


async def test_queue_failure_keeps_committed_task(test_db, owner):
    failing = FailingQueue()
    service = TaskService(
        test_db, failing, dispatcher=OutboxDispatcher(failing, grace_seconds=0),
    )

    task = await service.create(TaskCreate(title="Survives", user_id=owner.id))

    assert (await reload(test_db, task.id)) is not None
    event = (await test_db.execute(select(OutboxEvent))).scalar_one()
    assert event.dispatched_at is None
    assert event.attempts == 1
    assert "broker unavailable" in event.last_error


# --- find_one -----------------------------------------------------------------

async def test_find_one_resolves_owner(service, make_task, owner):
    task = await make_task("Find me")

    found = await service.find_one(task.id)

    assert found.id == task.id
    assert found.user.email == owner.email


async def test_find_one_missing_returns_none(service):
    assert await service.find_one(uuid4()) is None


# --- update -------------------------------------------------------------------

async def test_update_status_change_emits_one_event(service, make_task, queue):
    task = await make_task("Move me")

    updated = await service.update(task.id, TaskUpdate(status=TaskStatus.IN_PROGRESS))

    assert updated.status == "IN_PROGRESS"
    assert queue.events == [
        (STATUS_UPDATE_EVENT, {"task_id": str(task.id), "status": "IN_PROGRESS"}),
    ]


async def test_update_same_status_emits_nothing(service, make_task, queue):
    task = await make_task("Stay", status=TaskStatus.IN_PROGRESS)

    await service.update(task.id, TaskUpdate(status=TaskStatus.IN_PROGRESS))

    assert queue.events == []


async def test_update_non_status_fields_emits_nothing(service, make_task, queue, test_db):
    task = await make_task("Old title")

    await service.update(task.id, TaskUpdate(title="New title", description="details"))

    stored = await reload(test_db, task.id)
    assert stored.title == "New title"
    assert stored.description == "details"
    assert queue.events == []


async def test_update_compares_against_stored_row_not_stale_copy(
    service, make_task, queue, test_db,
):
    task = await make_task("Raced")
    # Another writer moves the row without touching our identity-map copy
    await test_db.execute(
        update(Task).where(Task.id == task.id).values(status="IN_PROGRESS")
        .execution_options(synchronize_session=False),
    )
    await test_db.commit()
    assert task.status == "PENDING"

    await service.update(task.id, TaskUpdate(status=TaskStatus.IN_PROGRESS))

    assert queue.events == []


async def test_update_missing_task_returns_none(service, queue):
    assert await service.update(uuid4(), TaskUpdate(title="x")) is None
    assert queue.events == []


async def test_update_bumps_version(service, make_task, test_db):
    task = await make_task("Versioned")

    await service.update(task.id, TaskUpdate(title="v2"))

    assert (await reload(test_db, task.id)).version == 2


async def test_update_with_stale_version_conflicts(service, make_task, queue, test_db):
    task = await make_task("Contended")
    task_id = task.id
    await service.update(task_id, TaskUpdate(title="first writer"))

    with pytest.raises(ConflictError) as exc_info:
        await service.update(task_id, TaskUpdate(
            status=TaskStatus.COMPLETED, version=1,
        ))

    assert exc_info.value.context.debug_info == {"current_version": 2}
    # the rollback expired every loaded row; re-read by the saved id
    stored = await reload(test_db, task_id)
    assert stored.status == "PENDING"
    assert queue.events == []


async def test_update_reassign_to_unknown_owner_fails(service, make_task):
    task = await make_task("Mine")

    with pytest.raises(ValidationError):
        await service.update(task.id, TaskUpdate(user_id=uuid4()))


async def test_update_reassign_owner(service, make_task, other_owner, test_db):
    task = await make_task("Hand over")

    await service.update(task.id, TaskUpdate(user_id=other_owner.id))

    assert (await reload(test_db, task.id)).user_id == other_owner.id


async def test_update_ignores_explicit_null_for_required_fields(service, make_task, test_db):
    task = await make_task("Keep me", description="text")

    await service.update(task.id, TaskUpdate(title=None, description=None))

    stored = await reload(test_db, task.id)
    assert stored.title == "Keep me"
    assert stored.description is None


# --- remove -------------------------------------------------------------------

async def test_remove_missing_raises_not_found(service):
    with pytest.raises(NotFoundError):
        await service.remove(uuid4())


async def test_remove_existing_then_find_returns_none(service, make_task, queue):
    task = await make_task("Delete me")

    await service.remove(task.id)

    assert await service.find_one(task.id) is None
    assert queue.events == []


# --- stats --------------------------------------------------------------------

async def test_stats_counts_by_status(service, make_task):
    await make_task("a")
    await make_task("b", status=TaskStatus.COMPLETED, priority=TaskPriority.HIGH)
    await make_task("c", status=TaskStatus.IN_PROGRESS, priority=TaskPriority.URGENT)

    stats = await service.get_stats()

    assert stats == {
        "total": 3, "completed": 1, "in_progress": 1,
        "pending": 1, "cancelled": 0, "high_priority": 1,
    }


async def test_stats_cached_until_mutation(service, make_task, owner, cache):
    await make_task("a")
    assert (await service.get_stats())["total"] == 1
    assert cache.has(STATS_CACHE_KEY)

    await make_task("bypasses service")
    assert (await service.get_stats())["total"] == 1

    await service.create(TaskCreate(title="via service", user_id=owner.id))
    assert not cache.has(STATS_CACHE_KEY)
    assert (await service.get_stats())["total"] == 3
