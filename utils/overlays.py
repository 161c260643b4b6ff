"""
Consent modal dismissal for locally launched browsers.

The remote browser service dismisses cookie/consent modals itself when asked
to via its launch parameter. Local browsers have no such feature, so after
navigation we try the usual "Accept" buttons ourselves.
"""

from typing import Dict, List, Any
from playwright.async_api import Page
import logging

logger = logging.getLogger(__name__)


class ConsentModalDismisser:
    """
    Detects and dismisses cookie/consent banners on a rendered page.
    """

    DETECTION_SELECTORS = [
        '[class*="cookie"]',
        '[class*="consent"]',
        '[class*="gdpr"]',
        '[id*="cookie"]',
        '[id*="consent"]',
        '[aria-label*="cookie" i]',
        "#onetrust-banner-sdk",
        "#CybotCookiebotDialog",
    ]

    ACCEPT_SELECTORS = [
        "#onetrust-accept-btn-handler",
        "#CybotCookiebotDialogBodyLevelButtonLevelOptinAllowAll",
        'button:has-text("Accept All")',
        'button:has-text("Accept Cookies")',
        'button:has-text("Accept")',
        'button:has-text("I Accept")',
        'button:has-text("Agree")',
        'button:has-text("Allow")',
        'button:has-text("Got It")',
        '[class*="cookie"] button[class*="accept"]',
        '[class*="consent"] button[class*="accept"]',
    ]

    CLOSE_SELECTORS = [
        '[class*="cookie"] [class*="close"]',
        '[class*="consent"] [class*="close"]',
        '[class*="gdpr"] [class*="close"]',
    ]

    def __init__(self, page: Page):
        self.page = page
        self.results: Dict[str, Any] = {"detected": None, "dismissed": False}

    async def dismiss(self) -> Dict[str, Any]:
        """
        Dismiss a visible consent banner, if any.

        Returns:
            Dictionary with the detected selector and whether it was dismissed
        """
        detected = await self._detect()
        if not detected:
            return self.results

        self.results["detected"] = detected

        for selector in self.ACCEPT_SELECTORS + self.CLOSE_SELECTORS:
            if await self._try_click(selector):
                self.results["dismissed"] = True
                logger.info(f"🍪 Consent banner dismissed via {selector}")
                break
        else:
            logger.info(f"🍪 Consent banner detected ({detected}) but not dismissed")

        return self.results

    async def _detect(self) -> str:
        for selector in self.DETECTION_SELECTORS:
            try:
                locator = self.page.locator(selector).first
                if await locator.count() > 0 and await locator.is_visible():
                    return selector
            except Exception:
                continue
        return ""

    async def _try_click(self, selector: str) -> bool:
        try:
            locator = self.page.locator(selector).first
            if await locator.count() > 0 and await locator.is_visible():
                await locator.click(timeout=2000)
                await self.page.wait_for_timeout(500)
                return True
        except Exception:
            pass
        return False


async def dismiss_consent_modals(page: Page) -> Dict[str, Any]:
    """Convenience wrapper around ConsentModalDismisser"""
    return await ConsentModalDismisser(page).dismiss()
