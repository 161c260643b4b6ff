"""
Backends a SessionController can drive.

LocalBackend runs the pipeline in-process. HttpBackend talks to a running
API server.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from analyzer.report import AnalysisReport
from config import settings
from core.errors import AnalysisError, CacheUnavailableError, EmailDispatchError

logger = logging.getLogger(__name__)


class AnalysisBackend(ABC):
    @abstractmethod
    async def analyze(self, url: str, force_rescan: bool = False, component: str = "all") -> AnalysisReport:
        """Run (or fetch from cache) an analysis; raises on run-level failure"""

    @abstractmethod
    async def capture_screenshot(self, url: str) -> Optional[str]:
        """Return a preview screenshot URL; raises on failure"""

    @abstractmethod
    async def submit_email(self, email: str, analysis_id: str) -> None:
        """Hand a captured email to the delivery collaborator"""

    async def close(self):
        pass


class LocalBackend(AnalysisBackend):
    def __init__(self, pipeline, screenshot_service=None, email_client=None, report_store=None):
        self.pipeline = pipeline
        self.screenshot_service = screenshot_service
        self.email_client = email_client
        self.report_store = report_store

    async def analyze(self, url: str, force_rescan: bool = False, component: str = "all") -> AnalysisReport:
        return await self.pipeline.run_url(url, force_rescan=force_rescan, component=component)

    async def capture_screenshot(self, url: str) -> Optional[str]:
        if self.screenshot_service is None:
            return None
        return await self.screenshot_service.capture(url)

    async def submit_email(self, email: str, analysis_id: str) -> None:
        if self.report_store is not None:
            try:
                await self.report_store.add_lead(analysis_id, email)
            except CacheUnavailableError as e:
                logger.warning(f"⚠️  Lead for {analysis_id} not recorded: {e}")
        if self.email_client is not None:
            await self.email_client.deliver(email, analysis_id)


class HttpBackend(AnalysisBackend):
    """Client for the /api endpoints"""

    def __init__(self, base_url: str, timeout: Optional[float] = None, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.ANALYSIS_TIMEOUT + 30,
        )

    async def analyze(self, url: str, force_rescan: bool = False, component: str = "all") -> AnalysisReport:
        response = await self._client.post(
            "/api/analyze",
            json={"url": url, "forceRescan": force_rescan, "component": component},
        )
        data = _json_or_empty(response)
        if response.status_code >= 400:
            raise AnalysisError(data.get("error") or f"Analysis failed with status {response.status_code}")
        return AnalysisReport.model_validate(data["analysis"])

    async def capture_screenshot(self, url: str) -> Optional[str]:
        response = await self._client.post("/api/screenshot", json={"url": url})
        response.raise_for_status()
        return response.json()["screenshot"]["url"]

    async def submit_email(self, email: str, analysis_id: str) -> None:
        try:
            response = await self._client.post(
                "/api/email",
                json={"email": email, "analysisId": analysis_id},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise EmailDispatchError(f"Email submission failed: {str(e)}") from e

    async def close(self):
        await self._client.aclose()


def _json_or_empty(response: httpx.Response) -> dict:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
