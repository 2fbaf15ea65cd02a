"""TaskHub API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map TaskHubError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Database, cache and queue initialized on startup via lifespan context manager
    - Background loops (cache sweep, queue consumer, outbox drain) live exactly as
      long as the app and are cancelled on shutdown
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from taskhub.api.error_handlers import register_error_handlers
from taskhub.api.routes import health, tasks
from taskhub.config import get_settings
from taskhub.infrastructure.cache import init_cache
from taskhub.infrastructure.database import init_db
from taskhub.infrastructure.observability import setup_logging
from taskhub.infrastructure.task_queue import init_task_queue
from taskhub.services.outbox_dispatcher import OutboxDispatcher
from taskhub.services.task_processor import register_processors

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    db = init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    cache = init_cache(
        namespace=settings.cache_namespace,
        default_ttl_seconds=settings.cache_default_ttl_seconds,
        max_entries=settings.cache_max_entries,
    )
    queue = init_task_queue(settings.queue_name, settings.queue_max_retries)
    register_processors(queue)
    dispatcher = OutboxDispatcher(
        queue,
        grace_seconds=settings.outbox_grace_seconds,
        max_attempts=settings.outbox_max_attempts,
    )

    cache.start_sweeper(settings.cache_sweep_interval_seconds)
    workers = [
        asyncio.create_task(queue.run(), name="queue-consumer"),
        asyncio.create_task(
            dispatcher.run(db.session, settings.outbox_drain_interval_seconds),
            name="outbox-drain",
        ),
    ]
    logger.info("TaskHub API started")
    yield
    logger.info("TaskHub API shutting down")

    for worker in workers:
        worker.cancel()
    await asyncio.gather(*workers, return_exceptions=True)
    await cache.stop_sweeper()
    await db.dispose()


app = FastAPI(
    title="TaskHub API", version="1.0.0", lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(tasks.router)

register_error_handlers(app)
