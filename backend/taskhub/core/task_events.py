"""Task Events — payload shapes for events mirrored onto the processing queue."""

from typing import Any

from taskhub.core.domain_types import TaskId, TaskStatus


def status_update_payload(task_id: TaskId, status: TaskStatus | str) -> dict[str, Any]:
    """Payload for a task-status-update event. JSON-safe."""
    if isinstance(status, TaskStatus):
        status = status.value
    return {"task_id": str(task_id), "status": status}
