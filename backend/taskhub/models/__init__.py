"""ORM Models — SQLAlchemy declarative models for all persisted entities.

Invariants:
    - All models inherit from Base (db/base.py)
    - User owns Tasks; OutboxEvent references tasks by id only

Design Decisions:
    - One file per entity
    - All models imported here so SQLAlchemy resolves string-based relationship()
      references before any query runs
"""

from taskhub.models.user import User  # noqa: F401
from taskhub.models.task import Task  # noqa: F401
from taskhub.models.outbox_event import OutboxEvent  # noqa: F401
