"""Task Query Builder — TaskFilter to predicates, ordering, page and total count.

Invariants:
    - One conjunctive predicate per present filter field; absent fields add nothing
    - Free-text search is case-insensitive substring match on title OR description,
      with LIKE wildcards in the input escaped
    - ORDER BY only ever references a column from the sort allow-list, with id as tie-breaker
    - Rows and count are built from the same predicate list and run in the same transaction
"""

from sqlalchemy import ColumnElement, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.core.domain_types import SortOrder
from taskhub.core.task_filters import (
    page_offset, resolve_date_range, resolve_sort_column, resolve_sort_order,
)
from taskhub.models import Task
from taskhub.schemas.task import TaskFilter


def build_task_predicates(filters: TaskFilter) -> list[ColumnElement[bool]]:
    predicates: list[ColumnElement[bool]] = []

    if filters.status is not None:
        predicates.append(Task.status == filters.status.value)
    if filters.priority is not None:
        predicates.append(Task.priority == filters.priority.value)
    if filters.user_id is not None:
        predicates.append(Task.user_id == filters.user_id)
    if filters.search_query:
        predicates.append(or_(
            Task.title.icontains(filters.search_query, autoescape=True),
            Task.description.icontains(filters.search_query, autoescape=True),
        ))

    dates = resolve_date_range(filters.date_from, filters.date_to)
    if dates.start is not None:
        predicates.append(Task.created_at >= dates.start)
    if dates.end is not None:
        if dates.end_exclusive:
            predicates.append(Task.created_at < dates.end)
        else:
            predicates.append(Task.created_at <= dates.end)

    return predicates


def build_order_by(filters: TaskFilter) -> list:
    name = resolve_sort_column(filters.sorting_column)
    ascending = resolve_sort_order(filters.sorting_order) == SortOrder.ASC
    columns = [getattr(Task, name)]
    if name != "id":
        columns.append(Task.id)
    return [c.asc() if ascending else c.desc() for c in columns]


async def fetch_task_page(
    db: AsyncSession, filters: TaskFilter,
) -> tuple[list[Task], int]:
    """Return (page of tasks with owners, total matching count)."""
    offset, limit = page_offset(filters.page, filters.limit)
    predicates = build_task_predicates(filters)
    order_by = build_order_by(filters)

    count_result = await db.execute(
        select(func.count()).select_from(Task).where(*predicates),
    )
    count = count_result.scalar_one()

    rows_result = await db.execute(
        select(Task).where(*predicates).order_by(*order_by)
        .offset(offset).limit(limit),
    )
    return list(rows_result.scalars().all()), count
