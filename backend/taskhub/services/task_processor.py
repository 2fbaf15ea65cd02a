"""Task Processor — consumer for task-status-update jobs on the processing queue.

Invariants:
    - Malformed payloads raise, so the queue retries and finally dead-letters them
    - Handlers are idempotent: the queue delivers at-least-once
"""

import logging
from typing import Any
from uuid import UUID

from taskhub.core.domain_types import STATUS_UPDATE_EVENT, TaskStatus
from taskhub.infrastructure.task_queue import InProcessTaskQueue

logger = logging.getLogger(__name__)


async def handle_status_update(payload: dict[str, Any]) -> None:
    task_id = UUID(payload["task_id"])
    status = TaskStatus(payload["status"])
    logger.info(
        f"Task {task_id} moved to {status.value}",
        extra={"task_id": task_id, "event_name": STATUS_UPDATE_EVENT},
    )


def register_processors(queue: InProcessTaskQueue) -> None:
    queue.register(STATUS_UPDATE_EVENT, handle_status_update)
