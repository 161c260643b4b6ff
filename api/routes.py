import logging
import os
import uuid

from fastapi import APIRouter, Depends, HTTPException

from analyzer.pipeline import AnalysisPipeline, AnalysisRequest, create_pipeline
from analyzer.report import AnalysisReport, ValidatedURL
from api.models import (
    AnalyzeRequest,
    AnalyzeResponse,
    EmailRequest,
    EmailResponse,
    ScreenshotInfo,
    ScreenshotRequest,
    ScreenshotResponse,
)
from config import settings
from core.browser import get_browser_provider
from core.cache import ReportStore, ResultCache, get_report_store, get_result_cache
from core.errors import CacheUnavailableError, EmailDispatchError, SessionAcquisitionError
from utils.email import EmailDeliveryClient, is_valid_email
from utils.screenshots import ScreenshotService

logger = logging.getLogger(__name__)

# Create router
router = APIRouter()


# ======================
# Dependencies
# ======================

def get_pipeline() -> AnalysisPipeline:
    return create_pipeline()


def get_screenshot_service() -> ScreenshotService:
    return ScreenshotService(get_browser_provider())


def get_email_client() -> EmailDeliveryClient:
    return EmailDeliveryClient()


def _parse_request(request: AnalyzeRequest) -> AnalysisRequest:
    if not request.url:
        raise HTTPException(status_code=400, detail="URL is required")
    try:
        return AnalysisRequest.create(request.url, request.force_rescan, request.component)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ======================
# Analysis
# ======================

@router.get("/")
async def root():
    return {
        "service": "Landing Page Grader",
        "status": "running",
        "endpoints": {
            "analyze": "/api/analyze (POST)",
            "screenshot": "/api/screenshot (POST)",
            "email": "/api/email (POST)",
        },
    }


@router.post("/api/analyze", response_model=AnalyzeResponse)
async def analyze_website(request: AnalyzeRequest, pipeline: AnalysisPipeline = Depends(get_pipeline)):
    """
    Grade a landing page.

    Returns the cached report for the URL unless forceRescan is set. A report
    is returned even when some analyzers failed; only a missing browser
    session fails the request.
    """
    analysis_request = _parse_request(request)

    try:
        report = await pipeline.run(analysis_request)
    except SessionAcquisitionError as e:
        logger.error(f"❌ Browser unavailable for {analysis_request.url}: {str(e)}")
        raise HTTPException(status_code=503, detail=f"Browser service unavailable: {str(e)}")
    except Exception as e:
        logger.exception(f"❌ Unexpected failure for {analysis_request.url}: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")

    return AnalyzeResponse(
        analysis=report,
        from_cache=report.from_cache,
        analysis_id=report.analysis_id,
    )


@router.get("/api/analysis/{analysis_id}", response_model=AnalysisReport)
async def get_analysis(analysis_id: str, store: ReportStore = Depends(get_report_store)):
    try:
        report = await store.get(analysis_id)
    except CacheUnavailableError as e:
        raise HTTPException(status_code=503, detail=f"Report store unavailable: {str(e)}")

    if report is None:
        raise HTTPException(status_code=404, detail="Analysis not found")
    return report


@router.post("/api/screenshot", response_model=ScreenshotResponse)
async def capture_screenshot(
    request: ScreenshotRequest,
    service: ScreenshotService = Depends(get_screenshot_service),
):
    """Best-effort preview; callers treat an error here as "no preview" """
    if not request.url:
        raise HTTPException(status_code=400, detail="URL is required")
    try:
        url = ValidatedURL.parse(request.url)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        screenshot_url = await service.capture(str(url))
    except Exception as e:
        logger.warning(f"⚠️  Screenshot failed for {url}: {str(e)}")
        raise HTTPException(status_code=502, detail="Screenshot capture failed")

    return ScreenshotResponse(screenshot=ScreenshotInfo(url=screenshot_url))


@router.post("/api/email", response_model=EmailResponse)
async def submit_email(
    request: EmailRequest,
    store: ReportStore = Depends(get_report_store),
    client: EmailDeliveryClient = Depends(get_email_client),
):
    """
    Record an email lead for an analysis.

    Delivery is best-effort: once the input is valid this always reports
    success, even when the lead could not be stored or forwarded.
    """
    if not is_valid_email(request.email):
        raise HTTPException(status_code=400, detail="Invalid email format")
    if not request.analysis_id:
        raise HTTPException(status_code=400, detail="analysisId is required")
    try:
        analysis_id = str(uuid.UUID(request.analysis_id))
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid analysisId")

    email = request.email.strip()

    try:
        await store.add_lead(analysis_id, email)
    except CacheUnavailableError as e:
        logger.warning(f"⚠️  Lead for {analysis_id} not recorded: {str(e)}")

    try:
        await client.deliver(email, analysis_id)
    except EmailDispatchError as e:
        logger.warning(f"⚠️  {str(e)}")

    return EmailResponse(success=True)


# ======================
# Background analysis (Celery)
# ======================

@router.post("/api/analyze/async")
async def analyze_website_async(request: AnalyzeRequest):
    """
    Submit an analysis for background processing.
    Returns immediately with a task_id for status polling.
    """
    analysis_request = _parse_request(request)

    try:
        from tasks.analysis import analyze_website as analyze_task

        task = analyze_task.delay(
            str(analysis_request.url),
            analysis_request.force_rescan,
            request.component or "all",
        )
    except Exception as e:
        logger.error(f"❌ Failed to submit analysis task: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to submit analysis task: {str(e)}")

    return {
        "task_id": task.id,
        "status": "PENDING",
        "message": "Analysis task submitted successfully",
        "poll_url": f"/api/analyze/status/{task.id}",
    }


@router.get("/api/analyze/status/{task_id}")
async def get_task_status(task_id: str):
    """
    Check the status of a background analysis task.

    Returns:
        - PENDING: Task is waiting in queue
        - STARTED: Task is being processed
        - SUCCESS: Task completed successfully (includes result)
        - FAILURE: Task failed (includes error details)
    """
    try:
        from celery.result import AsyncResult
        from core.celery import celery_app

        task = AsyncResult(task_id, app=celery_app)
        state = task.state
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get task status: {str(e)}")

    response = {
        "task_id": task_id,
        "status": state,
    }

    if state == "PENDING":
        response["message"] = "Task is waiting in queue"
    elif state == "STARTED":
        response["message"] = "Task is being processed"
    elif state == "SUCCESS":
        response["message"] = "Task completed successfully"
        response["result"] = task.result
    elif state == "FAILURE":
        response["message"] = "Task failed"
        response["error"] = str(task.info)
    elif state == "RETRY":
        response["message"] = "Task is being retried"
        response["retry_info"] = str(task.info)
    else:
        response["message"] = f"Unknown state: {state}"

    return response


# ======================
# Cache administration
# ======================

@router.delete("/api/cache/analysis/{url:path}")
async def clear_analysis_cache(url: str, cache: ResultCache = Depends(get_result_cache)):
    """
    Clear the cached report for a URL so the next request re-analyzes it.

    Args:
        url: The website URL (URL-encoded if it contains special characters)
    """
    try:
        normalized = ValidatedURL.parse(url)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    cleared = await cache.invalidate(normalized)
    return {
        "cleared": cleared,
        "url": str(normalized),
        "message": "Analysis cache removed" if cleared else "Cache entry not found",
    }


# ======================
# Health
# ======================

@router.get("/health")
async def health_check():
    return {"status": "healthy"}


@router.get("/status/detailed")
async def detailed_status_check():
    """
    Status of Redis, Celery workers, the browser provider and screenshot storage.
    """
    status_info = {
        "api": "healthy",
        "cache_backend": settings.CACHE_BACKEND,
        "redis": "unknown",
        "celery": "unknown",
        "browser": "unknown",
        "screenshots": "writable" if _screenshot_dir_writable() else "unavailable",
        "pagespeed_api": "configured" if settings.PAGESPEED_API_KEY else "not_configured",
    }

    # Check Redis connection
    try:
        from core.cache import get_redis_client

        redis_client = get_redis_client()
        if redis_client.ping():
            status_info["redis"] = "connected"
            status_info["redis_stats"] = redis_client.get_stats()
        else:
            status_info["redis"] = "disconnected"
    except Exception as e:
        status_info["redis"] = f"error: {str(e)}"

    # Check Celery workers
    try:
        from core.celery import celery_app

        active_workers = celery_app.control.inspect(timeout=1.0).active()
        if active_workers:
            status_info["celery"] = "workers_active"
            status_info["celery_workers"] = list(active_workers.keys())
        else:
            status_info["celery"] = "no_workers"
    except Exception as e:
        status_info["celery"] = f"error: {str(e)}"

    try:
        status_info["browser"] = await get_browser_provider().health_check()
    except Exception as e:
        status_info["browser"] = f"error: {str(e)}"

    critical = [status_info["screenshots"]]
    if settings.CACHE_BACKEND == "redis":
        critical.append(status_info["redis"])

    if any("error" in str(c) or "disconnected" in str(c) or "unavailable" in str(c) for c in critical):
        status_info["overall_status"] = "degraded"
    else:
        status_info["overall_status"] = "healthy"

    return status_info


def _screenshot_dir_writable() -> bool:
    directory = settings.SCREENSHOT_DIR
    if os.path.isdir(directory):
        return os.access(directory, os.W_OK)
    parent = os.path.dirname(os.path.abspath(directory))
    return os.access(parent, os.W_OK)
