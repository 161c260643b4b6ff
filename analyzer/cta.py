"""
Call-to-action analyzer.

Finds clickable CTAs on the rendered page and rates each one by action
strength, urgency and visibility. The strongest visible CTA is the primary.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from analyzer.base import AnalyzerKind, AnalyzerResult, BaseAnalyzer, RenderedPage

logger = logging.getLogger(__name__)

STRONG_VERBS = [
    "get", "start", "buy", "try", "join", "sign up", "signup", "book", "download",
    "claim", "subscribe", "shop", "order", "register", "request", "schedule",
    "create", "grab", "unlock", "reserve",
]
WEAK_PHRASES = ["submit", "click here", "learn more", "read more", "more", "continue", "go", "enter", "here"]
URGENCY_WORDS = ["now", "today", "free", "limited", "instant", "instantly", "fast", "only", "last chance", "ends"]

MAX_CTAS = 40

CTA_SCRIPT = """
() => {
    const fold = window.innerHeight;
    const selectors = [
        'button',
        'a[role="button"]',
        'input[type="submit"]',
        'input[type="button"]',
        'a[class*="btn" i]',
        'a[class*="button" i]',
        'a[class*="cta" i]',
    ];
    const seen = new Set();
    const results = [];
    for (const el of document.querySelectorAll(selectors.join(','))) {
        if (seen.has(el)) continue;
        seen.add(el);
        const rect = el.getBoundingClientRect();
        const style = window.getComputedStyle(el);
        if (rect.width < 2 || rect.height < 2) continue;
        if (style.display === 'none' || style.visibility === 'hidden' || parseFloat(style.opacity) === 0) continue;
        const text = (el.innerText || el.value || el.getAttribute('aria-label') || '').trim();
        if (!text) continue;
        results.push({
            text: text.slice(0, 80),
            type: el.tagName.toLowerCase() === 'a' ? 'link' : 'button',
            top: rect.top + window.scrollY,
            width: rect.width,
            height: rect.height,
            aboveFold: rect.top + window.scrollY < fold,
            inForm: !!el.closest('form'),
            inNav: !!el.closest('nav, header'),
        });
    }
    return results;
}
"""


def _contains(text: str, phrases: List[str]) -> bool:
    return any(re.search(rf"\b{re.escape(p)}\b", text) for p in phrases)


def action_strength(text: str) -> str:
    lowered = text.lower().strip()
    if _contains(lowered, STRONG_VERBS):
        return "strong"
    if lowered in WEAK_PHRASES or _contains(lowered, WEAK_PHRASES):
        return "weak"
    return "medium"


def has_urgency(text: str) -> bool:
    return _contains(text.lower(), URGENCY_WORDS)


def visibility(cta: Dict[str, Any]) -> str:
    area = (cta.get("width") or 0) * (cta.get("height") or 0)
    if cta.get("aboveFold") and area >= 4000:
        return "high"
    if cta.get("aboveFold") or area >= 4000:
        return "medium"
    return "low"


def describe_cta(cta: Dict[str, Any]) -> Dict[str, Any]:
    context = "form" if cta.get("inForm") else "navigation" if cta.get("inNav") else "content"
    return {
        "text": cta.get("text", ""),
        "type": cta.get("type", "button"),
        "isAboveFold": bool(cta.get("aboveFold")),
        "actionStrength": action_strength(cta.get("text", "")),
        "urgency": "high" if has_urgency(cta.get("text", "")) else "low",
        "visibility": visibility(cta),
        "context": context,
    }


def _rank(cta: Dict[str, Any]) -> int:
    rank = {"strong": 3, "medium": 2, "weak": 1}[cta["actionStrength"]]
    rank += {"high": 3, "medium": 2, "low": 0}[cta["visibility"]]
    rank += 1 if cta["urgency"] == "high" else 0
    rank -= 2 if cta["context"] == "navigation" else 0
    return rank


def score_ctas(raw_ctas: List[Dict[str, Any]]) -> AnalyzerResult:
    ctas = [describe_cta(c) for c in raw_ctas[:MAX_CTAS]]

    if not ctas:
        return AnalyzerResult(
            score=0,
            issues=["No call-to-action buttons were found"],
            recommendations=["Add a clear, action-oriented CTA above the fold"],
            metrics={"ctas": [], "primaryCTA": None, "ctaCount": 0},
        )

    primary = max(ctas, key=_rank)
    score = 30.0
    issues = []
    recommendations = []

    above_fold = [c for c in ctas if c["isAboveFold"] and c["context"] != "navigation"]
    if above_fold:
        score += 25
    else:
        issues.append("No primary CTA is visible above the fold")
        recommendations.append("Place the main CTA in the hero section so visitors see it without scrolling")

    if primary["actionStrength"] == "strong":
        score += 20
    elif primary["actionStrength"] == "weak":
        issues.append(f'Primary CTA "{primary["text"]}" uses weak wording')
        recommendations.append('Start CTAs with a specific action verb such as "Get", "Start" or "Book"')
    else:
        score += 10

    if primary["visibility"] == "high":
        score += 15
    elif primary["visibility"] == "low":
        issues.append("Primary CTA is small or hard to spot")
        recommendations.append("Make the primary CTA larger and give it a contrasting color")
    else:
        score += 7

    if any(c["urgency"] == "high" for c in ctas):
        score += 10
    else:
        recommendations.append('Consider adding urgency or value ("free", "today") to CTA copy')

    distinct_texts = {c["text"].lower() for c in ctas if c["context"] != "navigation"}
    if len(distinct_texts) > 8:
        score -= 10
        issues.append(f"{len(distinct_texts)} different CTAs compete for attention")
        recommendations.append("Focus the page on one primary action and demote secondary CTAs")

    return AnalyzerResult(
        score=max(0.0, min(100.0, score)),
        issues=issues,
        recommendations=recommendations,
        metrics={"ctas": ctas, "primaryCTA": primary, "ctaCount": len(ctas)},
    )


class CTAAnalyzer(BaseAnalyzer):
    kind = AnalyzerKind.CTA

    async def analyze(self, url: str, rendered: Optional[RenderedPage]) -> AnalyzerResult:
        page = self.require_page(rendered)
        raw_ctas = await page.evaluate(CTA_SCRIPT)
        result = score_ctas(raw_ctas)
        logger.info(f"🎯 CTA analysis for {url}: {result.metrics['ctaCount']} CTAs found, score: {result.score:.0f}")
        return result
