import asyncio
import logging

from celery import Celery
from celery.signals import worker_process_init

from retail_sync.config import Settings, configure_logging
from retail_sync.db import close_db_pool, init_db_pool

settings = Settings.from_env()
configure_logging(settings)
logger = logging.getLogger(__name__)

celery_app = Celery(
    'retail_sync',
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=['retail_sync.tasks.sync']
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='Asia/Taipei',
    enable_utc=True,
    beat_schedule={
        'watch-connectivity': {
            'task': 'watch_connectivity',
            'schedule': settings.connectivity_check_interval,
        },
    }
)


async def _prepare_store():
    # Creates the pending_submissions table if needed
    if await init_db_pool(settings.database_url):
        await close_db_pool()


@worker_process_init.connect
def on_worker_init(**kwargs):
    logger.info("Worker process initializing... Checking pending submission store.")
    asyncio.run(_prepare_store())


if __name__ == '__main__':
    celery_app.start()
