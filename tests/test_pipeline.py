"""
Tests for AnalysisPipeline: validation, caching, failure isolation,
timeouts and browser session handling.
"""

import asyncio
import time

import pytest

from analyzer.base import AnalyzerKind, FailedOutcome, SkippedOutcome, SuccessOutcome
from analyzer.pipeline import ALL_KINDS, AnalysisRequest, parse_component_filter
from analyzer.report import ValidatedURL
from core.errors import AnalyzerFailure, InvalidURLError, SessionAcquisitionError, SessionFailureKind
from fakes import FakePage, FakeProvider, FakeSession, StubAnalyzer, make_pipeline, stub_registry


class TestPipelineValidation:
    @pytest.mark.asyncio
    async def test_unsupported_scheme_never_acquires_session(self, provider):
        pipeline = make_pipeline(provider)

        with pytest.raises(InvalidURLError):
            await pipeline.run_url("ftp://example.com")

        assert provider.acquire_calls == 0

    @pytest.mark.asyncio
    async def test_missing_url_never_acquires_session(self, provider):
        pipeline = make_pipeline(provider)

        with pytest.raises(InvalidURLError, match="URL is required"):
            await pipeline.run_url(None)

        assert provider.acquire_calls == 0

    def test_component_filter_aliases(self):
        assert parse_component_filter("all") == ALL_KINDS
        assert parse_component_filter(None) == ALL_KINDS
        assert parse_component_filter("pageSpeed") == frozenset({AnalyzerKind.SPEED})
        assert parse_component_filter("CTA") == frozenset({AnalyzerKind.CTA})

    def test_unknown_component_rejected(self):
        with pytest.raises(ValueError, match="Unknown component"):
            AnalysisRequest.create("https://example.com", component="colors")


class TestScoreAggregation:
    @pytest.mark.asyncio
    async def test_overall_score_is_mean_of_successes(self, provider):
        report = await make_pipeline(provider).run_url("https://example.com")

        assert report.overall_score == 75
        assert all(isinstance(o, SuccessOutcome) for o in report.per_analyzer.values())
        assert report.from_cache is False

    @pytest.mark.asyncio
    async def test_all_failed_still_returns_report(self, provider):
        analyzers = {
            kind: StubAnalyzer(kind, error=RuntimeError("boom")) for kind in AnalyzerKind
        }

        report = await make_pipeline(provider, analyzers=analyzers).run_url("https://example.com")

        assert report.overall_score == 0
        assert all(isinstance(o, FailedOutcome) for o in report.per_analyzer.values())

    @pytest.mark.asyncio
    async def test_unselected_kinds_are_skipped(self, provider):
        report = await make_pipeline(provider).run_url("https://example.com", component="cta")

        assert isinstance(report.per_analyzer[AnalyzerKind.CTA], SuccessOutcome)
        for kind in (AnalyzerKind.SPEED, AnalyzerKind.FONT, AnalyzerKind.IMAGE):
            assert isinstance(report.per_analyzer[kind], SkippedOutcome)
        assert report.overall_score == 70


class TestFailureIsolation:
    @pytest.mark.asyncio
    async def test_one_failing_analyzer_only_fails_its_slot(self, provider):
        analyzers = stub_registry(font=StubAnalyzer(AnalyzerKind.FONT, error=RuntimeError("font crash")))

        report = await make_pipeline(provider, analyzers=analyzers).run_url("https://example.com")

        font = report.per_analyzer[AnalyzerKind.FONT]
        assert isinstance(font, FailedOutcome)
        assert "font crash" in font.reason
        for kind in (AnalyzerKind.SPEED, AnalyzerKind.IMAGE, AnalyzerKind.CTA):
            assert isinstance(report.per_analyzer[kind], SuccessOutcome)
        # (80 + 90 + 70) / 3
        assert report.overall_score == 80

    @pytest.mark.asyncio
    async def test_analyzer_failure_reason_is_kept(self, provider):
        error = AnalyzerFailure(AnalyzerKind.IMAGE, "No images could be read")
        analyzers = stub_registry(image=StubAnalyzer(AnalyzerKind.IMAGE, error=error))

        report = await make_pipeline(provider, analyzers=analyzers).run_url("https://example.com")

        assert report.per_analyzer[AnalyzerKind.IMAGE].reason == "No images could be read"

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, provider):
        tracker = {"running": 0, "peak": 0}
        analyzers = {
            kind: StubAnalyzer(kind, score=50, delay=0.05, tracker=tracker) for kind in AnalyzerKind
        }

        report = await make_pipeline(provider, analyzers=analyzers, concurrency=2).run_url("https://example.com")

        assert tracker["peak"] == 2
        assert report.overall_score == 50

    @pytest.mark.asyncio
    async def test_navigation_timeout_degrades_page_analyzers(self):
        provider = FakeProvider(goto_error=Exception("Timeout 45000ms exceeded"))

        report = await make_pipeline(provider).run_url("https://example.com")

        assert report.overall_score == 0
        for outcome in report.per_analyzer.values():
            assert isinstance(outcome, FailedOutcome)
            assert "Page did not load" in outcome.reason
        assert provider.release_counts == [1]


class TestTimeouts:
    @pytest.mark.asyncio
    async def test_per_analyzer_timeout(self, provider):
        analyzers = stub_registry(cta=StubAnalyzer(AnalyzerKind.CTA, delay=5))

        report = await make_pipeline(provider, analyzers=analyzers, analyzer_timeout=0.1).run_url(
            "https://example.com"
        )

        assert report.per_analyzer[AnalyzerKind.CTA] == FailedOutcome(reason="Timeout")
        assert report.overall_score == 77  # (80 + 60 + 90) / 3 = 76.67
        assert provider.release_counts == [1]

    @pytest.mark.asyncio
    async def test_global_timeout_marks_pending_failed(self, provider):
        analyzers = stub_registry(speed=StubAnalyzer(AnalyzerKind.SPEED, delay=5))

        report = await make_pipeline(
            provider, analyzers=analyzers, analyzer_timeout=30, run_timeout=0.3, concurrency=4
        ).run_url("https://example.com")

        assert report.per_analyzer[AnalyzerKind.SPEED] == FailedOutcome(reason="Timeout")
        for kind in (AnalyzerKind.FONT, AnalyzerKind.IMAGE, AnalyzerKind.CTA):
            assert isinstance(report.per_analyzer[kind], SuccessOutcome)
        assert provider.release_counts == [1]

    @pytest.mark.asyncio
    async def test_slow_acquisition_fails_within_deadline(self):
        provider = FakeProvider(acquire_delay=5)

        with pytest.raises(SessionAcquisitionError) as exc_info:
            await make_pipeline(provider, run_timeout=0.2).run_url("https://example.com")

        assert exc_info.value.kind == SessionFailureKind.TIMEOUT
        assert provider.acquire_calls == 1
        assert provider.sessions == []

    @pytest.mark.asyncio
    async def test_session_acquired_after_deadline_is_released(self):
        provider = FakeProvider(acquire_delay=5, finish_after_cancel=True)

        with pytest.raises(SessionAcquisitionError):
            await make_pipeline(provider, run_timeout=0.2).run_url("https://example.com")
        await asyncio.sleep(0.05)

        assert provider.release_counts == [1]
        assert provider.sessions[0].page.visited == []

    @pytest.mark.asyncio
    async def test_navigation_timeout_is_always_bounded(self, provider):
        await make_pipeline(provider, navigation_timeout=30, run_timeout=60).run_url("https://example.com")

        timeouts = provider.sessions[0].page.goto_timeouts
        assert len(timeouts) == 1
        assert 0 < timeouts[0] <= 30000

    @pytest.mark.asyncio
    async def test_expired_deadline_skips_navigation(self, provider):
        session = FakeSession(FakePage())

        rendered = await make_pipeline(provider)._navigate(
            session, ValidatedURL.parse("https://example.com"), time.monotonic() - 1
        )

        assert rendered.degraded is True
        assert rendered.navigation_error == "Timeout"
        assert session.page.visited == []


class TestPipelineCaching:
    @pytest.mark.asyncio
    async def test_second_run_is_cache_hit_without_session(self, provider, result_cache):
        pipeline = make_pipeline(provider, cache=result_cache)

        first = await pipeline.run_url("https://Example.com")
        second = await pipeline.run_url("https://example.com/")

        assert provider.acquire_calls == 1
        assert second.from_cache is True
        assert second.analysis_id == first.analysis_id
        assert second.model_dump(exclude={"from_cache"}) == first.model_dump(exclude={"from_cache"})

    @pytest.mark.asyncio
    async def test_force_rescan_bypasses_cache(self, provider, result_cache):
        pipeline = make_pipeline(provider, cache=result_cache)

        first = await pipeline.run_url("https://example.com")
        rescanned = await pipeline.run_url("https://example.com", force_rescan=True)

        assert provider.acquire_calls == 2
        assert rescanned.from_cache is False
        assert rescanned.analysis_id != first.analysis_id

        cached = await pipeline.run_url("https://example.com")
        assert cached.analysis_id == rescanned.analysis_id

    @pytest.mark.asyncio
    async def test_filtered_runs_do_not_touch_cache(self, provider, result_cache):
        pipeline = make_pipeline(provider, cache=result_cache)

        await pipeline.run_url("https://example.com", component="font")
        full = await pipeline.run_url("https://example.com")

        assert full.from_cache is False
        assert provider.acquire_calls == 2

    @pytest.mark.asyncio
    async def test_report_is_stored_by_id(self, provider, result_cache, report_store):
        pipeline = make_pipeline(provider, cache=result_cache, report_store=report_store)

        report = await pipeline.run_url("https://example.com")

        stored = await report_store.get(report.analysis_id)
        assert stored == report


class TestSessionHandling:
    @pytest.mark.asyncio
    async def test_session_released_exactly_once_on_success(self, provider):
        await make_pipeline(provider).run_url("https://example.com")

        assert provider.release_counts == [1]

    @pytest.mark.asyncio
    async def test_session_released_exactly_once_on_analyzer_failure(self, provider):
        analyzers = {kind: StubAnalyzer(kind, error=ValueError("bad")) for kind in AnalyzerKind}

        await make_pipeline(provider, analyzers=analyzers).run_url("https://example.com")

        assert provider.release_counts == [1]

    @pytest.mark.asyncio
    async def test_acquisition_failure_propagates_after_retries(self):
        errors = [
            SessionAcquisitionError(SessionFailureKind.LOCAL_LAUNCH_FAILED, "no chromium"),
            SessionAcquisitionError(SessionFailureKind.LOCAL_LAUNCH_FAILED, "no chromium"),
        ]
        provider = FakeProvider(errors=errors)

        with pytest.raises(SessionAcquisitionError) as exc_info:
            await make_pipeline(provider, acquire_attempts=2).run_url("https://example.com")

        assert exc_info.value.kind == SessionFailureKind.LOCAL_LAUNCH_FAILED
        assert provider.acquire_calls == 2
        assert provider.sessions == []

    @pytest.mark.asyncio
    async def test_acquisition_retry_recovers(self):
        provider = FakeProvider(errors=[SessionAcquisitionError(SessionFailureKind.TIMEOUT, "slow")])

        report = await make_pipeline(provider, acquire_attempts=2).run_url("https://example.com")

        assert provider.acquire_calls == 2
        assert report.overall_score == 75

    @pytest.mark.asyncio
    async def test_remote_unavailable_without_fallback_fails(self):
        error = SessionAcquisitionError(SessionFailureKind.REMOTE_UNAVAILABLE, "refused")
        provider = FakeProvider(errors=[error, error])

        with pytest.raises(SessionAcquisitionError):
            await make_pipeline(provider).run_url("https://example.com")

        assert provider.local_calls == 0

    @pytest.mark.asyncio
    async def test_remote_unavailable_falls_back_to_local_when_enabled(self):
        error = SessionAcquisitionError(SessionFailureKind.REMOTE_UNAVAILABLE, "refused")
        provider = FakeProvider(errors=[error, error])

        report = await make_pipeline(provider, fallback_to_local=True).run_url("https://example.com")

        assert provider.local_calls == 1
        assert report.overall_score == 75
        assert provider.release_counts == [1]
