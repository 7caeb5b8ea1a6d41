import logging
from typing import Optional

from redis import Redis
from rq import Queue
from rq.job import Job

from fintrack.config import settings

logger = logging.getLogger(__name__)

_redis_connection: Optional[Redis] = None
_sync_queue: Optional[Queue] = None


def _get_redis_connection() -> Redis:
    global _redis_connection
    if _redis_connection is None:
        _redis_connection = Redis.from_url(settings.REDIS_URL)
    return _redis_connection


def get_sync_queue(connection: Optional[Redis] = None) -> Queue:
    global _sync_queue
    if connection is not None:
        return Queue(
            settings.SYNC_QUEUE_NAME,
            connection=connection,
            default_timeout=settings.SYNC_JOB_TIMEOUT,
        )
    if _sync_queue is None:
        _sync_queue = Queue(
            settings.SYNC_QUEUE_NAME,
            connection=_get_redis_connection(),
            default_timeout=settings.SYNC_JOB_TIMEOUT,
        )
    return _sync_queue


def enqueue_account_sync_job(user_id: str, bank_link_id: str, queue: Optional[Queue] = None) -> Job:
    from fintrack.tasks.account_sync import run_account_sync_job

    queue = queue or get_sync_queue()
    job = queue.enqueue(
        run_account_sync_job,
        user_id,
        bank_link_id,
        job_timeout=settings.SYNC_JOB_TIMEOUT,
    )
    job.meta = job.meta or {}
    job.meta.update(
        {
            "user_id": user_id,
            "bank_link_id": bank_link_id,
        }
    )
    job.save_meta()
    logger.info("Enqueued account sync job %s for user %s, bank link %s", job.id, user_id, bank_link_id)
    return job

