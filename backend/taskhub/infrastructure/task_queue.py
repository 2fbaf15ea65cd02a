"""In-Process Task Queue — asyncio-backed QueueClient with retry and dead-lettering.

Invariants:
    - enqueue() copies the payload: later mutation by the caller never changes a job
    - A job is handed to its handler until it succeeds or has failed max_retries times
    - Jobs that exhaust their retries land in dead_letters (never silently dropped)
    - Jobs with no registered handler are dead-lettered on first delivery

Design Decisions:
    - Implements core.repository_protocols.QueueClient; swap in a broker-backed
      client without touching TaskService
    - Single consumer coroutine (run()) started by the FastAPI lifespan
"""

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from taskhub.core.errors import QueueError

logger = logging.getLogger(__name__)

JobHandler = Callable[[dict[str, Any]], Awaitable[None]]


@dataclass
class Job:
    event_name: str
    payload: dict[str, Any]
    attempts: int = 0
    enqueued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_error: str | None = None


class InProcessTaskQueue:
    """At-least-once work queue living in the current event loop."""

    def __init__(self, name: str = "task-processing", max_retries: int = 3, maxsize: int = 0):
        self.name = name
        self.max_retries = max_retries
        self._jobs: asyncio.Queue[Job] = asyncio.Queue(maxsize=maxsize)
        self._handlers: dict[str, JobHandler] = {}
        self.dead_letters: list[Job] = []

    def register(self, event_name: str, handler: JobHandler) -> None:
        self._handlers[event_name] = handler

    async def enqueue(self, event_name: str, payload: dict[str, Any]) -> None:
        try:
            self._jobs.put_nowait(Job(event_name, copy.deepcopy(payload)))
        except asyncio.QueueFull:
            raise QueueError("queue is full", event_name)
        logger.debug(
            f"Enqueued {event_name} on {self.name}", extra={"event_name": event_name},
        )

    @property
    def pending(self) -> int:
        return self._jobs.qsize()

    async def process_next(self) -> Job:
        """Wait for one job and run its handler once. Returns the job."""
        job = await self._jobs.get()
        try:
            await self._deliver(job)
        finally:
            self._jobs.task_done()
        return job

    async def drain(self) -> int:
        """Process every job currently queued (including retries). Returns jobs handled."""
        handled = 0
        while not self._jobs.empty():
            await self.process_next()
            handled += 1
        return handled

    async def run(self) -> None:
        """Consume forever. Cancel the task to stop."""
        while True:
            await self.process_next()

    async def _deliver(self, job: Job) -> None:
        handler = self._handlers.get(job.event_name)
        job.attempts += 1
        if handler is None:
            job.last_error = "no handler registered"
            self.dead_letters.append(job)
            logger.error(
                f"No handler for {job.event_name}; job dead-lettered",
                extra={"event_name": job.event_name},
            )
            return
        try:
            await handler(job.payload)
        except Exception as e:
            job.last_error = str(e)
            if job.attempts >= self.max_retries:
                self.dead_letters.append(job)
                logger.error(
                    f"Job {job.event_name} failed permanently: {e}",
                    extra={"event_name": job.event_name, "attempt": job.attempts},
                )
                return
            logger.warning(
                f"Job {job.event_name} failed, retrying: {e}",
                extra={"event_name": job.event_name, "attempt": job.attempts},
            )
            try:
                self._jobs.put_nowait(job)
            except asyncio.QueueFull:
                self.dead_letters.append(job)
                logger.error(
                    f"Queue full; job {job.event_name} dead-lettered",
                    extra={"event_name": job.event_name},
                )


# Singleton (initialized on startup)
task_queue: InProcessTaskQueue | None = None


def init_task_queue(name: str = "task-processing", max_retries: int = 3) -> InProcessTaskQueue:
    global task_queue
    task_queue = InProcessTaskQueue(name=name, max_retries=max_retries)
    return task_queue


def get_task_queue() -> InProcessTaskQueue:
    """FastAPI dependency for the process-wide queue client."""
    if task_queue is None:
        raise RuntimeError("Task queue not initialized")
    return task_queue
