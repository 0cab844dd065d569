import asyncio
import logging

from retail_sync.config import build_coordinator
from retail_sync.connectivity import ConnectivityMonitor, format_sync_summary
from retail_sync.db import close_db_pool, init_db_pool
from retail_sync.models import SubmitRequest
from retail_sync.worker import celery_app, settings

logger = logging.getLogger(__name__)

# Kept per worker process so transitions are seen across beat runs.
# Starts offline: the first successful probe drains whatever an earlier process left queued.
_monitor = ConnectivityMonitor(settings.connectivity_probe_url, online=False)


async def _open_coordinator():
    pool = await init_db_pool(settings.database_url)
    if pool is None:
        raise ConnectionError("Pending submission store is not available")
    return build_coordinator(settings, pool, connectivity=_monitor)


async def _submit(request_data: dict) -> dict:
    request = SubmitRequest.model_validate(request_data)
    coordinator = await _open_coordinator()
    try:
        # A recovery seen here stays latched for the next watch_connectivity run
        await _monitor.probe()
        outcome = await coordinator.submit(request)
    finally:
        await close_db_pool()
    logger.info(f"Submit {request.type.value}/{request.session_id}: {outcome.kind.value} {outcome.message}")
    return outcome.model_dump(mode="json")


async def _drain() -> dict:
    coordinator = await _open_coordinator()
    try:
        result = await coordinator.drain()
    finally:
        await close_db_pool()
    return {**result.model_dump(), "message": format_sync_summary(result)}


async def _watch() -> dict | None:
    coordinator = await _open_coordinator()
    try:
        result = await _monitor.check_and_drain(coordinator)
    finally:
        await close_db_pool()
    if result is None:
        return None
    return {**result.model_dump(), "message": format_sync_summary(result)}


async def _count() -> int:
    coordinator = await _open_coordinator()
    try:
        return await coordinator.pending_count()
    finally:
        await close_db_pool()


@celery_app.task(name="submit_submission")
def submit_submission(request_data: dict) -> dict:
    """Sends one submission, queueing it locally when the database is unreachable."""
    return asyncio.run(_submit(request_data))


@celery_app.task(name="drain_pending_submissions")
def drain_pending_submissions() -> dict:
    """Explicit "sync now"."""
    logger.info("Running drain_pending_submissions task")
    return asyncio.run(_drain())


@celery_app.task(name="watch_connectivity")
def watch_connectivity() -> dict | None:
    return asyncio.run(_watch())


@celery_app.task(name="pending_submission_count")
def pending_submission_count() -> int:
    return asyncio.run(_count())
