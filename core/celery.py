"""
Celery application configuration for the Landing Page Grader
Handles background analysis with Redis as broker
"""

import logging

from celery import Celery
from celery.signals import (
    setup_logging as celery_setup_logging,
    task_failure,
    task_postrun,
    task_prerun,
    task_retry,
    worker_ready,
    worker_shutdown,
)
from kombu import Queue

from config import settings
from core.log_config import setup_logging

logger = logging.getLogger(__name__)

# Create Celery application
celery_app = Celery(
    "landing_page_grader",
    broker=settings.celery_broker,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["tasks.analysis"],
)

celery_app.conf.update(
    # Task Settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task Execution
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    # Task Time Limits
    task_time_limit=settings.TASK_TIME_LIMIT,
    task_soft_time_limit=settings.TASK_SOFT_TIME_LIMIT,
    # Result Backend Settings
    result_expires=settings.CELERY_RESULT_EXPIRES,
    result_extended=True,
    # One browser-heavy task at a time per worker process
    worker_prefetch_multiplier=1,
    # Queue Configuration
    task_default_queue="default",
    task_queues=(Queue("default", routing_key="task.default"),),
    broker_connection_retry_on_startup=True,
)

celery_app.conf.task_routes = {
    "tasks.analyze_website": {"queue": "default"},
    "tasks.cleanup_cache": {"queue": "default"},
}


@celery_setup_logging.connect
def configure_worker_logging(**kwargs):
    """Use the application's logging setup instead of Celery's"""
    setup_logging()


@worker_ready.connect
def worker_ready_handler(sender=None, **kwargs):
    logger.info("🚀 Celery worker is ready and waiting for tasks")


@worker_shutdown.connect
def worker_shutdown_handler(sender=None, **kwargs):
    logger.info("🛑 Celery worker is shutting down")


@task_prerun.connect
def task_prerun_handler(sender=None, task_id=None, task=None, args=None, **kwargs):
    logger.info(f"⏳ Starting task: {task.name} [ID: {task_id}]")


@task_postrun.connect
def task_postrun_handler(sender=None, task_id=None, task=None, retval=None, state=None, **kwargs):
    logger.info(f"✅ Completed task: {task.name} [ID: {task_id}] [State: {state}]")


@task_failure.connect
def task_failure_handler(sender=None, task_id=None, exception=None, traceback=None, **kwargs):
    logger.error(f"❌ Task failed: {sender.name} [ID: {task_id}] [Error: {str(exception)}]")


@task_retry.connect
def task_retry_handler(sender=None, task_id=None, reason=None, **kwargs):
    logger.warning(f"🔄 Retrying task: {sender.name} [ID: {task_id}] [Reason: {reason}]")


if __name__ == "__main__":
    # Start worker with: celery -A core.celery worker --loglevel=info
    celery_app.start()
