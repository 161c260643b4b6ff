"""
Celery background tasks for the Landing Page Grader
"""

import asyncio
import logging

from celery import Task

from analyzer.pipeline import AnalysisRequest, create_pipeline
from core.browser import BrowserSessionProvider
from core.cache import get_result_cache
from core.celery import celery_app
from core.errors import InvalidURLError, SessionAcquisitionError

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3


class CallbackTask(Task):
    """
    Celery task class with lifecycle logging.
    """

    def on_success(self, retval, task_id, args, kwargs):
        logger.info(f"✅ Task {task_id} completed successfully")

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error(f"❌ Task {task_id} failed: {str(exc)}")

    def on_retry(self, exc, task_id, args, kwargs, einfo):
        logger.warning(f"🔄 Task {task_id} retrying: {str(exc)}")


def _run(coro):
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _analyze(request: AnalysisRequest) -> dict:
    # Each task gets its own event loop, so it needs its own provider
    provider = BrowserSessionProvider()
    try:
        report = await create_pipeline(provider).run(request)
    finally:
        await provider.cleanup()
    return report.model_dump(mode="json", by_alias=True)


@celery_app.task(
    bind=True,
    base=CallbackTask,
    name="tasks.analyze_website",
    max_retries=MAX_ATTEMPTS - 1,
)
def analyze_website(self, url: str, force_rescan: bool = False, component: str = "all") -> dict:
    """
    Run the analysis pipeline in a worker.

    Retries when no browser session could be acquired; an invalid URL
    fails immediately.

    Returns:
        The AnalysisReport as a camelCase JSON dict
    """
    retry_count = self.request.retries
    if retry_count > 0:
        logger.info(f"🔄 Retry attempt {retry_count + 1}/{MAX_ATTEMPTS} for {url}")
    else:
        logger.info(f"🚀 Starting analysis task {self.request.id} for {url}")

    try:
        request = AnalysisRequest.create(url, force_rescan, component)
    except (InvalidURLError, ValueError) as e:
        logger.error(f"❌ Rejected analysis request for {url}: {str(e)}")
        raise

    try:
        return _run(_analyze(request))
    except SessionAcquisitionError as e:
        if retry_count < MAX_ATTEMPTS - 1:
            logger.info(f"🔄 Scheduling retry {retry_count + 2}/{MAX_ATTEMPTS} for {url}")
            raise self.retry(exc=e, countdown=2)
        logger.error(f"❌ All {MAX_ATTEMPTS} attempts exhausted for {url}")
        raise


@celery_app.task(name="tasks.cleanup_cache")
def cleanup_cache() -> dict:
    """
    Remove every cached analysis report.
    Reports stored by analysis id are left to expire on their own.
    """
    try:
        deleted_count = _run(get_result_cache().clear())
        logger.info(f"🧹 Cleaned up {deleted_count} cached results")
        return {"deleted_count": deleted_count}
    except Exception as e:
        logger.error(f"❌ Cleanup task failed: {str(e)}")
        raise
