"""Outbox Dispatcher — publishes staged task events to the queue after commit.

Invariants:
    - Only events whose originating transaction committed are ever published
    - publish() never raises for queue failures: each failure is logged and
      recorded on its row (attempts, last_error) and reported in the return value
    - A row is marked dispatched only after the queue accepted it
    - drain_pending() retries undispatched rows older than grace_seconds with
      attempts < max_attempts, so delivery is at-least-once

Design Decisions:
    - Publish right after commit for low latency; the periodic drain covers
      process crashes and queue outages between commit and publish
    - grace_seconds keeps the drain away from rows a request is publishing right now
"""

import asyncio
import logging
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timedelta, timezone
from typing import Callable, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.core.repository_protocols import QueueClient
from taskhub.models import OutboxEvent

logger = logging.getLogger(__name__)

SessionScope = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class OutboxDispatcher:
    """Moves committed OutboxEvent rows onto the queue."""

    def __init__(
        self,
        queue: QueueClient,
        grace_seconds: float = 30,
        max_attempts: int = 10,
        batch_size: int = 100,
    ):
        self._queue = queue
        self.grace_seconds = grace_seconds
        self.max_attempts = max_attempts
        self.batch_size = batch_size

    async def publish(
        self, db: AsyncSession, events: Sequence[OutboxEvent],
    ) -> list[dict]:
        """Enqueue each event and record the outcome. Returns per-event failures."""
        if not events:
            return []
        failures = []
        for event in events:
            event.attempts += 1
            try:
                await self._queue.enqueue(event.event_name, event.payload)
            except Exception as e:
                event.last_error = str(e)[:1000]
                failures.append({
                    "event_id": str(event.id),
                    "task_id": str(event.task_id),
                    "error": str(e),
                })
                logger.warning(
                    f"Failed to enqueue {event.event_name} for task {event.task_id}: {e}",
                    extra={
                        "event_name": event.event_name,
                        "task_id": event.task_id,
                        "attempt": event.attempts,
                    },
                )
                continue
            event.dispatched_at = datetime.now(timezone.utc)
            event.last_error = None

        try:
            await db.commit()
        except SQLAlchemyError as e:
            # Rows stay undispatched and are re-sent by drain_pending.
            await db.rollback()
            logger.error(f"Failed to record outbox dispatch state: {e}")
        return failures

    async def drain_pending(self, db: AsyncSession) -> int:
        """Publish one batch of stale undispatched events. Returns how many were delivered."""
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=self.grace_seconds)
        result = await db.execute(
            select(OutboxEvent)
            .where(
                OutboxEvent.dispatched_at.is_(None),
                OutboxEvent.attempts < self.max_attempts,
                OutboxEvent.created_at <= cutoff,
            )
            .order_by(OutboxEvent.created_at, OutboxEvent.id)
            .limit(self.batch_size),
        )
        events = result.scalars().all()
        if not events:
            return 0
        failures = await self.publish(db, events)
        delivered = len(events) - len(failures)
        logger.info(
            f"Outbox drain delivered {delivered}/{len(events)} events",
            extra={"count": delivered},
        )
        return delivered

    async def run(self, session_scope: SessionScope, interval_seconds: float) -> None:
        """Drain forever on a fixed interval. Cancel the task to stop."""
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                async with session_scope() as db:
                    await self.drain_pending(db)
            except Exception as e:
                logger.error(f"Outbox drain failed: {e}", exc_info=True)
