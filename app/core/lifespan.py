import contextlib
from contextlib import asynccontextmanager
import asyncio
import logging

from app.analytics.db import init_db, purge_old_records
from app.core.config import settings
from app.services.screening_service import screening_service

logger = logging.getLogger(__name__)

PURGE_INTERVAL_S = 3600


async def _retention_loop(stop_event: asyncio.Event) -> None:
    while not stop_event.is_set():
        try:
            deleted = purge_old_records()
            if any(deleted.values()):
                logger.info("analytics_retention_purge deleted=%s", deleted)
        except Exception as exc:  # pragma: no cover
            logger.warning("analytics_retention_purge_failed: %s", exc)
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(stop_event.wait(), timeout=PURGE_INTERVAL_S)


@asynccontextmanager
async def lifespan(app):
    init_db()
    logger.info(
        "screening_service_ready batch_size=%s log_limit=%s analytics=%s",
        settings.screening_batch_size,
        settings.screening_log_limit,
        settings.analytics_enabled,
    )

    stop_event = asyncio.Event()
    purge_task = asyncio.create_task(_retention_loop(stop_event))
    try:
        yield
    finally:
        stop_event.set()
        # In-flight runs are cancelled and recorded as aborted.
        await screening_service.shutdown()
        if not purge_task.done():
            purge_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await purge_task
