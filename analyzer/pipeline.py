"""
Analysis pipeline for the Landing Page Grader

Runs the selected analyzers against one rendered page and aggregates their
outcomes into an AnalysisReport. A crashing, hanging or failing analyzer
only fails its own slot; the run fails outright only when no browser
session can be acquired at all.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from analyzer.base import (
    AnalyzerKind,
    BaseAnalyzer,
    FailedOutcome,
    RenderedPage,
    SkippedOutcome,
)
from analyzer.registry import AnalyzerRegistry, default_analyzers
from analyzer.report import AnalysisReport, ValidatedURL
from config import settings
from core.browser import AcquireOptions, BrowserSession, BrowserSessionProvider
from core.cache import ReportStore, ResultCache
from core.errors import (
    AnalyzerFailure,
    InvalidURLError,
    SessionAcquisitionError,
    SessionFailureKind,
)
from utils.overlays import dismiss_consent_modals

logger = logging.getLogger(__name__)

ALL_KINDS: FrozenSet[AnalyzerKind] = frozenset(AnalyzerKind)

COMPONENT_ALIASES = {
    "pagespeed": AnalyzerKind.SPEED,
    "speed": AnalyzerKind.SPEED,
    "font": AnalyzerKind.FONT,
    "fonts": AnalyzerKind.FONT,
    "image": AnalyzerKind.IMAGE,
    "images": AnalyzerKind.IMAGE,
    "cta": AnalyzerKind.CTA,
}

TIMEOUT_REASON = "Timeout"
MIN_NAVIGATION_TIMEOUT_MS = 1.0
NETWORK_IDLE_TIMEOUT_MS = 5000


def parse_component_filter(component: Optional[str]) -> FrozenSet[AnalyzerKind]:
    """
    Map the "component" request field to a set of analyzer kinds.

    Raises:
        ValueError: unknown component name
    """
    if component is None or not str(component).strip() or str(component).strip().lower() == "all":
        return ALL_KINDS

    kind = COMPONENT_ALIASES.get(str(component).strip().lower())
    if kind is None:
        raise ValueError(
            f"Unknown component: {component}. Must be one of: all, speed, font, image, cta"
        )
    return frozenset({kind})


@dataclass(frozen=True)
class AnalysisRequest:
    url: ValidatedURL
    force_rescan: bool = False
    components: FrozenSet[AnalyzerKind] = field(default=ALL_KINDS)

    @classmethod
    def create(
        cls,
        url: Optional[str],
        force_rescan: bool = False,
        component: Optional[str] = "all",
    ) -> "AnalysisRequest":
        return cls(
            url=ValidatedURL.parse(url),
            force_rescan=bool(force_rescan),
            components=parse_component_filter(component),
        )

    @property
    def is_full_run(self) -> bool:
        return self.components == ALL_KINDS


class AnalysisPipeline:
    """
    Orchestrates one analysis run per request.

    Ordering within a run: cache lookup, session acquisition, one navigation,
    analyzers (concurrently, bounded), release, cache publish.
    """

    def __init__(
        self,
        provider: BrowserSessionProvider,
        cache: ResultCache,
        analyzers: Optional[AnalyzerRegistry] = None,
        report_store: Optional[ReportStore] = None,
        screenshot_service=None,
        navigation_timeout: Optional[float] = None,
        analyzer_timeout: Optional[float] = None,
        run_timeout: Optional[float] = None,
        concurrency: Optional[int] = None,
        acquire_attempts: Optional[int] = None,
        retry_wait: float = 1.0,
        fallback_to_local: Optional[bool] = None,
        capture_screenshot: Optional[bool] = None,
        block_consent_modals: Optional[bool] = None,
    ):
        self.provider = provider
        self.cache = cache
        self.analyzers = analyzers if analyzers is not None else default_analyzers()
        self.report_store = report_store
        self.screenshot_service = screenshot_service
        self.navigation_timeout = navigation_timeout or settings.NAVIGATION_TIMEOUT
        self.analyzer_timeout = analyzer_timeout or settings.ANALYZER_TIMEOUT
        self.run_timeout = run_timeout or settings.ANALYSIS_TIMEOUT
        self.concurrency = max(1, concurrency or settings.ANALYZER_CONCURRENCY)
        self.acquire_attempts = max(1, acquire_attempts or settings.SESSION_ACQUIRE_ATTEMPTS)
        self.retry_wait = retry_wait
        self.fallback_to_local = (
            settings.BROWSER_REMOTE_FALLBACK_TO_LOCAL if fallback_to_local is None else fallback_to_local
        )
        self.capture_screenshot = (
            settings.PIPELINE_CAPTURE_SCREENSHOT if capture_screenshot is None else capture_screenshot
        )
        self.block_consent_modals = (
            settings.BLOCK_CONSENT_MODALS if block_consent_modals is None else block_consent_modals
        )

    async def run_url(
        self,
        url: Optional[str],
        force_rescan: bool = False,
        component: Optional[str] = "all",
    ) -> AnalysisReport:
        """Validate raw input and run; raises InvalidURLError before touching any resource"""
        return await self.run(AnalysisRequest.create(url, force_rescan, component))

    async def run(self, request: AnalysisRequest) -> AnalysisReport:
        if not isinstance(request.url, ValidatedURL):
            raise InvalidURLError("Invalid URL format", url=str(request.url))

        url = request.url
        use_cache = request.is_full_run

        if use_cache and not request.force_rescan:
            cached = await self.cache.get(url)
            if cached is not None:
                logger.info(f"💾 Cache hit for {url}, returning report {cached.analysis_id}")
                return cached.as_cached()
        elif request.force_rescan:
            logger.info(f"🔄 Forced rescan for {url}, skipping cache")

        logger.info(f"🚀 Starting analysis of {url} ({', '.join(sorted(k.value for k in request.components))})")
        deadline = time.monotonic() + self.run_timeout

        selected: Dict[AnalyzerKind, BaseAnalyzer] = {
            kind: analyzer for kind, analyzer in self.analyzers.items() if kind in request.components
        }

        session = await self._acquire_session(deadline)
        screenshot_url = None
        try:
            rendered = await self._navigate(session, url, deadline)
            outcomes = await self._run_analyzers(selected, url, rendered, deadline)
            if self.capture_screenshot and rendered.usable:
                screenshot_url = await self._pipeline_screenshot(session, deadline)
        finally:
            await self.provider.release(session)

        for kind in AnalyzerKind:
            if kind not in outcomes:
                outcomes[kind] = SkippedOutcome()

        report = AnalysisReport.build(
            url,
            {kind: outcomes[kind] for kind in AnalyzerKind},
            screenshot_url=screenshot_url,
        )
        logger.info(f"🎉 Analysis complete for {url}! Overall score: {report.overall_score}/100")

        if use_cache:
            await self.cache.put(url, report)
        if self.report_store is not None:
            await self.report_store.save(report)

        return report

    async def _acquire_session(self, deadline: float) -> BrowserSession:
        """
        Acquire the run's browser session within what is left of the deadline.

        A session that only materializes after the deadline is released in
        the background; the run fails with a TIMEOUT acquisition error.
        """
        remaining = deadline - time.monotonic()
        task = asyncio.ensure_future(self._acquire_with_retry())
        try:
            done, _ = await asyncio.wait({task}, timeout=max(0.0, remaining))
        except asyncio.CancelledError:
            task.cancel()
            task.add_done_callback(self._release_orphan)
            raise
        if task in done:
            return task.result()

        task.cancel()
        task.add_done_callback(self._release_orphan)
        logger.error(f"❌ No browser session within the {self.run_timeout}s analysis deadline")
        raise SessionAcquisitionError(
            SessionFailureKind.TIMEOUT,
            f"No browser session within the {self.run_timeout}s analysis deadline",
        )

    def _release_orphan(self, task: asyncio.Task):
        if task.cancelled() or task.exception() is not None:
            return
        logger.info("🧹 Releasing browser session acquired after the deadline")
        asyncio.ensure_future(self.provider.release(task.result()))

    async def _acquire_with_retry(self) -> BrowserSession:
        options = AcquireOptions(block_consent_modals=self.block_consent_modals)

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.acquire_attempts),
                wait=wait_exponential(multiplier=self.retry_wait, max=10),
                retry=retry_if_exception_type(SessionAcquisitionError),
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.info(f"🔄 Browser session attempt {attempt.retry_state.attempt_number}/{self.acquire_attempts}")
                    return await self.provider.acquire(options)
        except SessionAcquisitionError as e:
            if e.kind == SessionFailureKind.REMOTE_UNAVAILABLE and self.fallback_to_local:
                logger.warning(f"⚠️  Remote browser unavailable ({e}), degrading to local browser")
                return await self.provider.acquire_local(options)
            logger.error(f"❌ Could not acquire a browser session: {e}")
            raise

    async def _navigate(self, session: BrowserSession, url: ValidatedURL, deadline: float) -> RenderedPage:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            logger.warning(f"⏱️  Analysis deadline reached before navigating to {url}")
            return RenderedPage(url=str(url), page=session.page, degraded=True, navigation_error=TIMEOUT_REASON)

        # Playwright treats a timeout of 0 as "no timeout"
        timeout_ms = max(MIN_NAVIGATION_TIMEOUT_MS, min(self.navigation_timeout, remaining) * 1000)
        logger.info(f"📡 Navigating to {url}")
        started = time.monotonic()

        try:
            await session.page.goto(str(url), wait_until="load", timeout=timeout_ms)
        except Exception as e:
            reason = TIMEOUT_REASON if "timeout" in str(e).lower() else str(e)
            logger.warning(f"⚠️  Navigation to {url} did not complete: {reason}")
            return RenderedPage(url=str(url), page=session.page, degraded=True, navigation_error=reason)

        load_time_ms = (time.monotonic() - started) * 1000
        logger.info(f"⏱️  Page loaded in {load_time_ms / 1000:.2f}s")

        # Settle late requests, bounded; the page is already usable
        idle_ms = min(NETWORK_IDLE_TIMEOUT_MS, (deadline - time.monotonic()) * 1000)
        if idle_ms >= MIN_NAVIGATION_TIMEOUT_MS:
            try:
                await session.page.wait_for_load_state("networkidle", timeout=idle_ms)
            except Exception:
                logger.debug(f"Network did not go idle for {url}, continuing")

        if self.block_consent_modals and not session.is_remote:
            try:
                await dismiss_consent_modals(session.page)
            except Exception as e:
                logger.debug(f"Consent dismissal failed: {e}")

        return RenderedPage(url=str(url), page=session.page, load_time_ms=load_time_ms)

    async def _run_analyzers(
        self,
        selected: Dict[AnalyzerKind, BaseAnalyzer],
        url: ValidatedURL,
        rendered: RenderedPage,
        deadline: float,
    ) -> Dict[AnalyzerKind, object]:
        if not selected:
            return {}

        semaphore = asyncio.Semaphore(self.concurrency)
        tasks = {
            kind: asyncio.create_task(self._invoke(kind, analyzer, url, rendered, semaphore))
            for kind, analyzer in selected.items()
        }

        remaining = max(0.0, deadline - time.monotonic())
        _, pending = await asyncio.wait(tasks.values(), timeout=remaining)

        if pending:
            logger.warning(f"⏱️  Analysis deadline reached with {len(pending)} analyzer(s) still running")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        outcomes: Dict[AnalyzerKind, object] = {}
        for kind, task in tasks.items():
            if task.cancelled() or task in pending:
                outcomes[kind] = FailedOutcome(reason=TIMEOUT_REASON)
            else:
                outcomes[kind] = task.result()
        return outcomes

    async def _invoke(
        self,
        kind: AnalyzerKind,
        analyzer: BaseAnalyzer,
        url: ValidatedURL,
        rendered: RenderedPage,
        semaphore: asyncio.Semaphore,
    ):
        """Run one analyzer; always returns an outcome, never raises (except cancellation)"""
        async with semaphore:
            logger.info(f"🔄 Starting {kind.value} analysis...")
            try:
                result = await asyncio.wait_for(
                    analyzer.analyze(str(url), rendered),
                    timeout=self.analyzer_timeout,
                )
                outcome = result.to_outcome()
                logger.info(f"✅ {kind.value} analysis complete: score {outcome.score}")
                return outcome
            except asyncio.TimeoutError:
                logger.error(f"⏱️ {kind.value} analysis timed out after {self.analyzer_timeout}s")
                return FailedOutcome(reason=TIMEOUT_REASON)
            except AnalyzerFailure as e:
                logger.error(f"❌ {kind.value} analysis failed: {e.reason}")
                return FailedOutcome(reason=e.reason)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"❌ {kind.value} analysis failed: {e}")
                return FailedOutcome(reason=f"{type(e).__name__}: {e}")

    async def _pipeline_screenshot(self, session: BrowserSession, deadline: float) -> Optional[str]:
        if self.screenshot_service is None:
            return None

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return None

        try:
            return await asyncio.wait_for(
                self.screenshot_service.capture_from_page(session.page),
                timeout=remaining,
            )
        except Exception as e:
            logger.warning(f"⚠️  Pipeline screenshot failed: {str(e)}")
            return None


def create_pipeline(provider: Optional[BrowserSessionProvider] = None, **overrides) -> AnalysisPipeline:
    """Build a pipeline wired to the process-wide provider, cache and stores"""
    from core.browser import get_browser_provider
    from core.cache import get_report_store, get_result_cache
    from utils.screenshots import ScreenshotService

    provider = provider or get_browser_provider()
    return AnalysisPipeline(
        provider=provider,
        cache=get_result_cache(),
        report_store=get_report_store(),
        screenshot_service=ScreenshotService(provider),
        **overrides,
    )
