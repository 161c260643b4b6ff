"""Font usage analyzer."""

import logging
from typing import Any, Dict, Optional

from analyzer.base import AnalyzerKind, AnalyzerResult, BaseAnalyzer, RenderedPage

logger = logging.getLogger(__name__)

SYSTEM_FONTS = {
    "arial", "helvetica", "helvetica neue", "times new roman", "times", "georgia",
    "verdana", "tahoma", "courier new", "system-ui", "-apple-system", "segoe ui",
    "sans-serif", "serif", "monospace", "blinkmacsystemfont", "roboto",
}

FONT_SCRIPT = """
() => {
    const families = {};
    const weights = new Set();
    let textElements = 0;
    let smallText = 0;
    const nodes = document.querySelectorAll('body *');
    for (const el of nodes) {
        const hasText = Array.from(el.childNodes).some(n => n.nodeType === 3 && n.textContent.trim().length > 0);
        if (!hasText) continue;
        const style = window.getComputedStyle(el);
        if (style.display === 'none' || style.visibility === 'hidden') continue;
        textElements += 1;
        const family = style.fontFamily.split(',')[0].replace(/["']/g, '').trim();
        families[family] = (families[family] || 0) + 1;
        weights.add(style.fontWeight);
        if (parseFloat(style.fontSize) < 14) smallText += 1;
    }
    const webFonts = [];
    const fontDisplay = [];
    for (const sheet of Array.from(document.styleSheets)) {
        let rules;
        try { rules = sheet.cssRules; } catch (e) { continue; }
        for (const rule of Array.from(rules || [])) {
            if (rule.type === CSSRule.FONT_FACE_RULE) {
                webFonts.push(rule.style.getPropertyValue('font-family').replace(/["']/g, '').trim());
                fontDisplay.push(rule.style.getPropertyValue('font-display') || '');
            }
        }
    }
    return {
        families,
        weights: Array.from(weights),
        textElements,
        smallText,
        webFonts,
        fontDisplay,
    };
}
"""


def score_font_usage(data: Dict[str, Any]) -> AnalyzerResult:
    families: Dict[str, int] = data.get("families") or {}
    text_elements = data.get("textElements") or 0
    small_text = data.get("smallText") or 0
    weights = data.get("weights") or []
    web_fonts = data.get("webFonts") or []
    font_display = data.get("fontDisplay") or []

    score = 100.0
    issues = []
    recommendations = []

    family_names = sorted(families, key=lambda name: families[name], reverse=True)
    font_count = len(family_names)

    if font_count == 0:
        issues.append("No visible text was found on the page")
        recommendations.append("Make sure key messaging is rendered as real text, not images")
        score -= 40
    elif font_count > 3:
        score -= min(40, (font_count - 3) * 10)
        issues.append(f"{font_count} different font families are used")
        recommendations.append("Limit the page to two or three font families for a consistent look")

    if len(weights) > 6:
        score -= 10
        issues.append(f"{len(weights)} different font weights are used")
        recommendations.append("Reduce the number of font weights to speed up font loading")

    small_ratio = small_text / text_elements if text_elements else 0
    if small_ratio > 0.2:
        score -= min(25, round(small_ratio * 50))
        issues.append(f"{small_ratio:.0%} of text elements are smaller than 14px")
        recommendations.append("Use at least 16px for body copy to improve readability")

    distinct_web_fonts = sorted(set(f for f in web_fonts if f))
    if len(distinct_web_fonts) > 4:
        score -= 10
        issues.append(f"{len(distinct_web_fonts)} custom web fonts are loaded")
        recommendations.append("Subset or drop unused web fonts to cut download size")

    if font_display and not any(value in ("swap", "optional", "fallback") for value in font_display):
        score -= 10
        issues.append("Web fonts are loaded without font-display")
        recommendations.append("Add font-display: swap so text stays visible while fonts load")

    return AnalyzerResult(
        score=max(0.0, score),
        issues=issues,
        recommendations=recommendations,
        metrics={
            "fontFamilies": family_names,
            "fontCount": font_count,
            "systemFonts": [name for name in family_names if name.lower() in SYSTEM_FONTS],
            "webFonts": distinct_web_fonts,
            "fontWeights": len(weights),
            "smallTextRatio": round(small_ratio, 3),
        },
    )


class FontAnalyzer(BaseAnalyzer):
    """Checks font family count, weights, text size and web font loading."""

    kind = AnalyzerKind.FONT

    async def analyze(self, url: str, rendered: Optional[RenderedPage]) -> AnalyzerResult:
        page = self.require_page(rendered)
        data = await page.evaluate(FONT_SCRIPT)
        result = score_font_usage(data)
        logger.info(f"🔤 Font analysis for {url}: {result.metrics['fontCount']} families")
        return result
