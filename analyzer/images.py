"""Image optimization analyzer."""

import logging
from typing import Any, Dict, List, Optional

from analyzer.base import AnalyzerKind, AnalyzerResult, BaseAnalyzer, RenderedPage

logger = logging.getLogger(__name__)

MODERN_FORMATS = (".webp", ".avif", ".svg")

IMAGE_SCRIPT = """
() => {
    const fold = window.innerHeight;
    return Array.from(document.images).map(img => {
        const rect = img.getBoundingClientRect();
        return {
            src: img.currentSrc || img.src || '',
            alt: img.getAttribute('alt'),
            naturalWidth: img.naturalWidth,
            naturalHeight: img.naturalHeight,
            renderedWidth: Math.round(rect.width),
            renderedHeight: Math.round(rect.height),
            loading: img.getAttribute('loading') || '',
            aboveFold: rect.top < fold,
            inPicture: !!img.closest('picture'),
        };
    });
}
"""


def is_modern_format(image: Dict[str, Any]) -> bool:
    src = (image.get("src") or "").lower().split("?")[0]
    if src.startswith("data:image/webp") or src.startswith("data:image/avif") or src.startswith("data:image/svg"):
        return True
    return src.endswith(MODERN_FORMATS) or bool(image.get("inPicture"))


def is_appropriately_sized(image: Dict[str, Any]) -> bool:
    """Natural width at most twice the rendered width (2x covers retina)"""
    natural = image.get("naturalWidth") or 0
    rendered = image.get("renderedWidth") or 0
    if natural == 0 or rendered == 0:
        return True
    return natural <= rendered * 2


def score_images(images: List[Dict[str, Any]]) -> AnalyzerResult:
    # Tracking pixels and hidden images are not content
    content = [
        img for img in images
        if (img.get("renderedWidth") or 0) > 1 and (img.get("renderedHeight") or 0) > 1
    ]
    total = len(content)

    if total == 0:
        return AnalyzerResult(
            score=100,
            issues=[],
            recommendations=[],
            metrics={
                "totalImages": 0,
                "modernFormats": 0,
                "withAltText": 0,
                "appropriatelySized": 0,
                "details": {"lazyLoaded": 0, "belowFold": 0, "oversized": []},
            },
        )

    modern = sum(1 for img in content if is_modern_format(img))
    with_alt = sum(1 for img in content if (img.get("alt") or "").strip())
    sized = sum(1 for img in content if is_appropriately_sized(img))
    below_fold = [img for img in content if not img.get("aboveFold")]
    lazy = sum(1 for img in below_fold if img.get("loading") == "lazy")
    oversized = [img.get("src", "") for img in content if not is_appropriately_sized(img)][:10]

    modern_ratio = modern / total
    alt_ratio = with_alt / total
    sized_ratio = sized / total
    lazy_ratio = lazy / len(below_fold) if below_fold else 1.0

    score = modern_ratio * 30 + alt_ratio * 30 + sized_ratio * 30 + lazy_ratio * 10

    issues = []
    recommendations = []
    if modern_ratio < 0.8:
        issues.append(f"{total - modern} of {total} images use legacy formats")
        recommendations.append("Serve images as WebP or AVIF with a fallback")
    if alt_ratio < 1:
        issues.append(f"{total - with_alt} of {total} images are missing alt text")
        recommendations.append("Add descriptive alt text to every meaningful image")
    if sized_ratio < 1:
        issues.append(f"{total - sized} images are much larger than their displayed size")
        recommendations.append("Resize images to their display size and use srcset for responsive variants")
    if below_fold and lazy_ratio < 0.5:
        issues.append(f"Only {lazy} of {len(below_fold)} below-the-fold images are lazy-loaded")
        recommendations.append('Add loading="lazy" to images below the fold')

    return AnalyzerResult(
        score=score,
        issues=issues,
        recommendations=recommendations,
        metrics={
            "totalImages": total,
            "modernFormats": modern,
            "withAltText": with_alt,
            "appropriatelySized": sized,
            "details": {
                "lazyLoaded": lazy,
                "belowFold": len(below_fold),
                "oversized": oversized,
            },
        },
    )


class ImageAnalyzer(BaseAnalyzer):
    """Checks image formats, alt text, sizing and lazy loading."""

    kind = AnalyzerKind.IMAGE

    async def analyze(self, url: str, rendered: Optional[RenderedPage]) -> AnalyzerResult:
        page = self.require_page(rendered)
        images = await page.evaluate(IMAGE_SCRIPT)
        result = score_images(images)
        logger.info(f"🖼️  Image analysis for {url}: {result.metrics['totalImages']} images")
        return result
