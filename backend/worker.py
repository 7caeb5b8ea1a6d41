import logging
import os
import signal
import sys

from redis import Redis
from rq import Worker, Queue

from fintrack.config import settings
from fintrack.database.session import close_db
from fintrack.logging_config import configure_logging

configure_logging()
logger = logging.getLogger(__name__)


def signal_handler(signum, frame):
    """Handle shutdown signals gracefully"""
    logger.info(f"Received signal {signum}, shutting down worker gracefully...")
    close_db()
    sys.exit(0)


def main():
    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    if not settings.is_plaid_configured:
        logger.warning("Plaid credentials are not set; account sync jobs will fail")

    redis_conn = Redis.from_url(settings.REDIS_URL)
    queue_list = os.getenv("QUEUE_LIST")
    if queue_list:
        listen = [q.strip() for q in queue_list.split(",") if q.strip()]
    else:
        listen = [settings.SYNC_QUEUE_NAME]

    # A queue configured twice would get two listeners
    seen = set()
    listen = [q for q in listen if not (q in seen or seen.add(q))]

    logger.info(f"Worker starting, listening to queues: {', '.join(listen)}")

    worker = Worker(
        [Queue(name, connection=redis_conn) for name in listen],
        connection=redis_conn,
        log_job_description=True,
        job_monitoring_interval=5,
    )

    logger.info("Worker started and ready to process jobs")
    worker.work(logging_level=settings.LOG_LEVEL, max_jobs=None, with_scheduler=True)


if __name__ == "__main__":
    main()
