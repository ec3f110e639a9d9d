"""
Celery application for background report exports.

Start a worker with ``celery -A qrtruck.celery_worker worker --loglevel=info``.
Redis is both broker and result store.
"""

from celery import Celery

from qrtruck.core.config import get_settings

REDIS_URL = get_settings().redis_url

celery_app = Celery(
    "qrtruck",
    broker=REDIS_URL,
    backend=REDIS_URL,
    include=["qrtruck.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # Workbook writes are slow and hold a file lock; take one job at a time.
    worker_prefetch_multiplier=1,
    worker_concurrency=2,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    result_expires=60 * 60,
    broker_connection_retry_on_startup=True,
)


if __name__ == "__main__":
    celery_app.start()
