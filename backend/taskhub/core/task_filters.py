"""Task Filters — pure resolution of filter input into query parameters.

Invariants:
    - Sort columns only ever come from SORTABLE_COLUMNS (never interpolated from input)
    - offset is never negative: page 0 and page 1 both address the first page
    - page and limit are capped, so the offset always fits a BIGINT
    - Date bounds are inclusive; a date-only upper bound covers the whole day
    - Naive datetimes are interpreted as UTC

Design Decisions:
    - No SQLAlchemy here: services/task_query.py turns these values into predicates
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from taskhub.core.domain_types import SortOrder
from taskhub.core.errors import ValidationError

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100
MAX_PAGE = 1_000_000
DEFAULT_SORT_COLUMN = "id"

# Public name -> Task attribute. camelCase spellings kept for older clients.
SORTABLE_COLUMNS: dict[str, str] = {
    "id": "id",
    "title": "title",
    "status": "status",
    "priority": "priority",
    "due_date": "due_date",
    "dueDate": "due_date",
    "created_at": "created_at",
    "createdAt": "created_at",
    "updated_at": "updated_at",
    "updatedAt": "updated_at",
}


@dataclass(frozen=True)
class DateRange:
    """Resolved created_at bounds. end_exclusive is set for date-only upper bounds."""
    start: datetime | None = None
    end: datetime | None = None
    end_exclusive: bool = False

    @property
    def is_empty(self) -> bool:
        return self.start is None and self.end is None


def resolve_sort_column(name: str | None) -> str:
    """Map a caller-supplied sort column onto a Task attribute name."""
    if not name:
        return DEFAULT_SORT_COLUMN
    column = SORTABLE_COLUMNS.get(name)
    if column is None:
        allowed = ", ".join(sorted(set(SORTABLE_COLUMNS.values())))
        raise ValidationError(
            f"Cannot sort by '{name}'. Allowed columns: {allowed}",
            field="sorting_column",
        )
    return column


def resolve_sort_order(order: str | SortOrder | None) -> SortOrder:
    if order is None:
        return SortOrder.DESC
    if isinstance(order, SortOrder):
        return order
    try:
        return SortOrder(order.upper())
    except ValueError:
        raise ValidationError(
            f"Invalid sorting order '{order}'. Use ASC or DESC",
            field="sorting_order",
        )


def page_offset(page: int | None, limit: int | None) -> tuple[int, int]:
    """Return (offset, limit) with defaults applied."""
    page = DEFAULT_PAGE if page is None else page
    limit = DEFAULT_LIMIT if limit is None else limit
    if not 0 <= page <= MAX_PAGE:
        raise ValidationError(f"page must be between 0 and {MAX_PAGE}", field="page")
    if not 1 <= limit <= MAX_LIMIT:
        raise ValidationError(f"limit must be between 1 and {MAX_LIMIT}", field="limit")
    return (max(page, 1) - 1) * limit, limit


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_date_range(
    date_from: date | datetime | None, date_to: date | datetime | None,
) -> DateRange:
    """Turn date/datetime filter bounds into UTC datetimes."""
    start = end = None
    end_exclusive = False

    if date_from is not None:
        if isinstance(date_from, datetime):
            start = _as_utc(date_from)
        else:
            start = datetime.combine(date_from, time.min, tzinfo=timezone.utc)

    if date_to is not None:
        if isinstance(date_to, datetime):
            end = _as_utc(date_to)
        else:
            end = datetime.combine(
                date_to + timedelta(days=1), time.min, tzinfo=timezone.utc,
            )
            end_exclusive = True

    if start is not None and end is not None and (
        start >= end if end_exclusive else start > end
    ):
        raise ValidationError("date_from must not be after date_to", field="date_from")

    return DateRange(start=start, end=end, end_exclusive=end_exclusive)
