"""Page load speed analyzer."""

import logging
from typing import Any, Dict, Optional

import httpx

from analyzer.base import (
    AnalyzerKind,
    AnalyzerResult,
    BaseAnalyzer,
    RenderedPage,
    letter_grade,
)
from config import settings
from core.errors import AnalyzerFailure

logger = logging.getLogger(__name__)

# (good, poor) thresholds, Core Web Vitals style
THRESHOLDS = {
    "lcp": (2500, 4000),
    "fcp": (1800, 3000),
    "cls": (0.1, 0.25),
    "tbt": (200, 600),
    "si": (3400, 5800),
    "loadTime": (3000, 6000),
}

WEIGHTS = {
    "lcp": 25,
    "fcp": 15,
    "cls": 25,
    "tbt": 20,
    "si": 10,
    "loadTime": 5,
}

TIMING_SCRIPT = """
() => new Promise((resolve) => {
    const result = { lcp: null, fcp: null, cls: 0, tbt: null, loadTime: null };
    const nav = performance.getEntriesByType('navigation')[0];
    if (nav) {
        result.loadTime = nav.loadEventEnd > 0 ? nav.loadEventEnd : nav.domContentLoadedEventEnd;
    }
    const paint = performance.getEntriesByType('paint').find(e => e.name === 'first-contentful-paint');
    if (paint) result.fcp = paint.startTime;
    try {
        new PerformanceObserver((list) => {
            const entries = list.getEntries();
            if (entries.length) result.lcp = entries[entries.length - 1].startTime;
        }).observe({ type: 'largest-contentful-paint', buffered: true });
        new PerformanceObserver((list) => {
            for (const entry of list.getEntries()) {
                if (!entry.hadRecentInput) result.cls += entry.value;
            }
        }).observe({ type: 'layout-shift', buffered: true });
        new PerformanceObserver((list) => {
            let blocking = 0;
            for (const entry of list.getEntries()) blocking += Math.max(0, entry.duration - 50);
            result.tbt = blocking;
        }).observe({ type: 'longtask', buffered: true });
    } catch (e) {}
    setTimeout(() => resolve(result), 250);
})
"""


def metric_score(name: str, value: Optional[float]) -> Optional[float]:
    """100 at or below the good threshold, 50 at poor, 0 at twice poor"""
    if value is None:
        return None
    good, poor = THRESHOLDS[name]
    if value <= good:
        return 100.0
    if value <= poor:
        return 100.0 - 50.0 * (value - good) / (poor - good)
    if value >= 2 * poor:
        return 0.0
    return 50.0 - 50.0 * (value - poor) / poor


def score_speed_metrics(metrics: Dict[str, Optional[float]]) -> AnalyzerResult:
    """Weighted score over whichever metrics are present"""
    weighted = 0.0
    total_weight = 0
    for name, weight in WEIGHTS.items():
        score = metric_score(name, metrics.get(name))
        if score is None:
            continue
        weighted += score * weight
        total_weight += weight

    if total_weight == 0:
        raise AnalyzerFailure(AnalyzerKind.SPEED, "No speed metrics could be measured")

    score = weighted / total_weight
    lighthouse_score = metrics.get("lighthouseScore")
    if lighthouse_score is not None:
        score = (score + lighthouse_score) / 2

    issues = []
    recommendations = []

    lcp = metrics.get("lcp")
    if lcp is not None and lcp > THRESHOLDS["lcp"][0]:
        issues.append(f"Largest Contentful Paint is {lcp / 1000:.1f}s (target under 2.5s)")
        recommendations.append("Optimize the hero image and preload the largest above-the-fold asset")
    fcp = metrics.get("fcp")
    if fcp is not None and fcp > THRESHOLDS["fcp"][0]:
        issues.append(f"First Contentful Paint is {fcp / 1000:.1f}s (target under 1.8s)")
        recommendations.append("Inline critical CSS and defer render-blocking scripts")
    cls = metrics.get("cls")
    if cls is not None and cls > THRESHOLDS["cls"][0]:
        issues.append(f"Cumulative Layout Shift is {cls:.2f} (target under 0.1)")
        recommendations.append("Reserve space for images, embeds and ads with explicit dimensions")
    tbt = metrics.get("tbt")
    if tbt is not None and tbt > THRESHOLDS["tbt"][0]:
        issues.append(f"Total Blocking Time is {tbt:.0f}ms (target under 200ms)")
        recommendations.append("Split long JavaScript tasks and remove unused third-party scripts")
    load_time = metrics.get("loadTime")
    if load_time is not None and load_time > THRESHOLDS["loadTime"][0]:
        issues.append(f"Page takes {load_time / 1000:.1f}s to load")
        recommendations.append("Enable compression and caching, and reduce total page weight")

    return AnalyzerResult(
        score=score,
        issues=issues,
        recommendations=recommendations,
        metrics={
            "lcp": lcp or 0,
            "fcp": fcp or 0,
            "cls": cls or 0,
            "tbt": tbt or 0,
            "si": metrics.get("si") or 0,
            "loadTime": load_time or 0,
            "lighthouseScore": lighthouse_score or 0,
            "grade": letter_grade(score),
            "source": metrics.get("source", "navigation-timing"),
        },
    )


class SpeedAnalyzer(BaseAnalyzer):
    """
    Measures page load speed.

    Uses PageSpeed Insights when an API key is configured, otherwise reads
    Navigation/Paint timing from the pipeline's rendered page.
    """

    kind = AnalyzerKind.SPEED

    def __init__(self, api_key: Optional[str] = None, endpoint: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.PAGESPEED_API_KEY
        self.endpoint = endpoint or settings.PAGESPEED_ENDPOINT

    @property
    def needs_page(self) -> bool:
        return not self.api_key

    async def analyze(self, url: str, rendered: Optional[RenderedPage]) -> AnalyzerResult:
        if self.api_key:
            metrics = await self._run_pagespeed(url)
        else:
            metrics = await self._read_page_timing(rendered)

        result = score_speed_metrics(metrics)
        logger.info(f"⚡ Speed analysis for {url}: {result.score:.0f} ({result.metrics['grade']})")
        return result

    async def _run_pagespeed(self, url: str) -> Dict[str, Any]:
        params = {
            "url": url,
            "key": self.api_key,
            "strategy": "mobile",
            "category": "performance",
        }
        async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT) as client:
            response = await client.get(self.endpoint, params=params)
            response.raise_for_status()
            data = response.json()

        return parse_pagespeed_response(data)

    async def _read_page_timing(self, rendered: Optional[RenderedPage]) -> Dict[str, Any]:
        page = self.require_page(rendered)
        timing = await page.evaluate(TIMING_SCRIPT)
        if timing.get("loadTime") is None and rendered.load_time_ms is not None:
            timing["loadTime"] = rendered.load_time_ms
        timing["source"] = "navigation-timing"
        return timing


def parse_pagespeed_response(data: dict) -> Dict[str, Any]:
    """Pull the metrics we score from a PageSpeed Insights v5 response"""
    lighthouse = data.get("lighthouseResult") or {}
    audits = lighthouse.get("audits") or {}

    def numeric(audit_id: str) -> Optional[float]:
        value = (audits.get(audit_id) or {}).get("numericValue")
        return float(value) if value is not None else None

    performance = ((lighthouse.get("categories") or {}).get("performance") or {}).get("score")
    if performance is None and not audits:
        raise AnalyzerFailure(AnalyzerKind.SPEED, "PageSpeed response had no Lighthouse result")

    return {
        "lcp": numeric("largest-contentful-paint"),
        "fcp": numeric("first-contentful-paint"),
        "cls": numeric("cumulative-layout-shift"),
        "tbt": numeric("total-blocking-time"),
        "si": numeric("speed-index"),
        "loadTime": numeric("interactive"),
        "lighthouseScore": performance * 100 if performance is not None else None,
        "source": "pagespeed-insights",
    }
