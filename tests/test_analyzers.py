"""
Tests for the analyzer scoring functions and the page requirement.
"""

import pytest

from analyzer.base import AnalyzerKind, RenderedPage
from analyzer.cta import CTAAnalyzer, action_strength, has_urgency, score_ctas
from analyzer.fonts import FontAnalyzer, score_font_usage
from analyzer.images import is_appropriately_sized, is_modern_format, score_images
from analyzer.speed import SpeedAnalyzer, metric_score, parse_pagespeed_response, score_speed_metrics
from core.errors import AnalyzerFailure
from fakes import FakePage


class TestSpeedScoring:
    def test_metric_score_bands(self):
        assert metric_score("lcp", 2000) == 100.0
        assert metric_score("lcp", 4000) == 50.0
        assert metric_score("lcp", 8000) == 0.0
        assert metric_score("lcp", None) is None

    def test_fast_page_gets_a(self):
        result = score_speed_metrics({"lcp": 1200, "fcp": 800, "cls": 0.01, "tbt": 50, "si": 1500, "loadTime": 1800})

        assert result.score == 100
        assert result.metrics["grade"] == "A"
        assert result.issues == []

    def test_slow_lcp_reported(self):
        result = score_speed_metrics({"lcp": 6000, "fcp": 1000})

        assert result.score < 90
        assert any("Largest Contentful Paint" in issue for issue in result.issues)

    def test_no_metrics_fails(self):
        with pytest.raises(AnalyzerFailure):
            score_speed_metrics({})

    def test_pagespeed_response_parsing(self):
        data = {
            "lighthouseResult": {
                "categories": {"performance": {"score": 0.9}},
                "audits": {
                    "largest-contentful-paint": {"numericValue": 2100.5},
                    "cumulative-layout-shift": {"numericValue": 0.02},
                },
            }
        }
        metrics = parse_pagespeed_response(data)

        assert metrics["lighthouseScore"] == pytest.approx(90)
        assert metrics["lcp"] == 2100.5
        assert metrics["fcp"] is None
        assert metrics["source"] == "pagespeed-insights"

    def test_pagespeed_without_lighthouse_fails(self):
        with pytest.raises(AnalyzerFailure):
            parse_pagespeed_response({"error": {"code": 500}})

    def test_needs_page_only_without_api_key(self):
        assert SpeedAnalyzer(api_key="").needs_page is True
        assert SpeedAnalyzer(api_key="key").needs_page is False


class TestFontScoring:
    def test_few_families_scores_full(self):
        result = score_font_usage({
            "families": {"Inter": 40, "Georgia": 5},
            "weights": ["400", "700"],
            "textElements": 45,
            "smallText": 2,
            "webFonts": ["Inter"],
            "fontDisplay": ["swap"],
        })

        assert result.score == 100
        assert result.metrics["fontFamilies"] == ["Inter", "Georgia"]
        assert result.metrics["systemFonts"] == ["Georgia"]

    def test_too_many_families_penalized(self):
        families = {name: 1 for name in ("A", "B", "C", "D", "E", "F")}
        result = score_font_usage({"families": families, "textElements": 6})

        assert result.score == 70
        assert result.metrics["fontCount"] == 6

    def test_no_text(self):
        result = score_font_usage({})

        assert result.score == 60
        assert result.issues


class TestImageScoring:
    def test_no_images_is_perfect(self):
        assert score_images([]).score == 100

    def test_format_and_size_helpers(self):
        assert is_modern_format({"src": "https://cdn.example.com/hero.webp?w=800"})
        assert not is_modern_format({"src": "https://cdn.example.com/hero.jpg"})
        assert is_appropriately_sized({"naturalWidth": 1600, "renderedWidth": 800})
        assert not is_appropriately_sized({"naturalWidth": 4000, "renderedWidth": 800})

    def test_mixed_images(self):
        images = [
            {"src": "a.webp", "alt": "Hero", "naturalWidth": 800, "renderedWidth": 800,
             "renderedHeight": 400, "aboveFold": True},
            {"src": "b.jpg", "alt": "", "naturalWidth": 4000, "renderedWidth": 400,
             "renderedHeight": 300, "aboveFold": False, "loading": "lazy"},
            # Tracking pixel, ignored
            {"src": "pixel.gif", "renderedWidth": 1, "renderedHeight": 1},
        ]
        result = score_images(images)

        # modern 1/2, alt 1/2, sized 1/2, lazy 1/1
        assert result.score == 55
        assert result.metrics["totalImages"] == 2
        assert result.metrics["withAltText"] == 1
        assert result.metrics["details"]["oversized"] == ["b.jpg"]


class TestCTAScoring:
    def test_action_strength(self):
        assert action_strength("Get started free") == "strong"
        assert action_strength("Submit") == "weak"
        assert action_strength("Pricing") == "medium"
        assert has_urgency("Start today")

    def test_no_ctas_scores_zero(self):
        result = score_ctas([])

        assert result.score == 0
        assert result.metrics["primaryCTA"] is None

    def test_strong_visible_cta(self):
        result = score_ctas([
            {"text": "Start your free trial", "type": "button", "aboveFold": True, "width": 200, "height": 50},
            {"text": "Login", "type": "link", "aboveFold": True, "width": 60, "height": 20, "inNav": True},
        ])

        # 30 base + 25 above fold + 20 strong + 15 visible + 10 urgency
        assert result.score == 100
        assert result.metrics["primaryCTA"]["text"] == "Start your free trial"
        assert result.metrics["ctaCount"] == 2


class TestPageRequirement:
    @pytest.mark.asyncio
    async def test_degraded_page_fails_analyzer(self):
        rendered = RenderedPage(url="https://example.com/", page=FakePage(), degraded=True, navigation_error="Timeout")

        with pytest.raises(AnalyzerFailure) as exc_info:
            await CTAAnalyzer().analyze("https://example.com/", rendered)

        assert exc_info.value.kind == AnalyzerKind.CTA
        assert "Timeout" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_missing_page_fails_analyzer(self):
        with pytest.raises(AnalyzerFailure, match="No rendered page"):
            await FontAnalyzer().analyze("https://example.com/", None)
