"""
Browser session provider for the Landing Page Grader
Acquires Playwright browser sessions from the remote Browserless service
or from a locally launched Chromium process
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional
from urllib.parse import urlencode

from playwright.async_api import async_playwright, Browser, BrowserContext, Page, Playwright

from config import settings
from core.errors import SessionAcquisitionError, SessionFailureKind

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

LOCAL_LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",  # Prevents memory issues in Docker
    "--no-sandbox",  # Required in containerized environments
    "--disable-setuid-sandbox",
    "--disable-gpu",
]


@dataclass(frozen=True)
class BrowserConfig:
    """Explicit browser selection config, built once at provider construction"""

    prefer_remote: bool = False
    remote_credential: Optional[str] = None
    remote_endpoint: str = "wss://production-sfo.browserless.io"
    production: bool = False
    viewport_width: int = 1920
    viewport_height: int = 1080
    launch_timeout: float = 20
    close_timeout: float = 10
    max_sessions: int = 5

    @classmethod
    def from_settings(cls) -> "BrowserConfig":
        return cls(
            prefer_remote=settings.BROWSER_PREFER_REMOTE,
            remote_credential=settings.BROWSERLESS_TOKEN or None,
            remote_endpoint=settings.BROWSERLESS_ENDPOINT,
            production=settings.is_production,
            viewport_width=settings.VIEWPORT_WIDTH,
            viewport_height=settings.VIEWPORT_HEIGHT,
            launch_timeout=settings.BROWSER_LAUNCH_TIMEOUT,
            close_timeout=settings.BROWSER_CLOSE_TIMEOUT,
            max_sessions=settings.BROWSER_MAX_SESSIONS,
        )

    @property
    def viewport(self) -> dict:
        return {"width": self.viewport_width, "height": self.viewport_height}


@dataclass(frozen=True)
class AcquireOptions:
    prefer_remote: bool = False
    block_consent_modals: bool = False


@dataclass
class BrowserSession:
    """
    One exclusively owned browser (local process or remote connection).

    release() is idempotent; only the first call closes anything.
    """

    browser: Browser
    context: BrowserContext
    page: Page
    mode: str
    block_consent_modals: bool = False
    close_timeout: float = 10
    created_at: datetime = field(default_factory=datetime.now)
    on_release: Optional[Callable[[], None]] = None
    _released: bool = False

    @property
    def released(self) -> bool:
        return self._released

    @property
    def is_remote(self) -> bool:
        return self.mode == "remote"

    async def release(self):
        if self._released:
            return
        self._released = True

        try:
            await asyncio.wait_for(self._close(), timeout=self.close_timeout)
            logger.info(f"✅ Browser session released ({self.mode})")
        except Exception as e:
            logger.warning(f"⚠️  Error releasing browser session: {str(e)}")
        finally:
            if self.on_release is not None:
                self.on_release()

    async def _close(self):
        for closeable in (self.page, self.context, self.browser):
            try:
                await closeable.close()
            except Exception as e:
                logger.debug(f"Ignoring close error: {e}")


class BrowserSessionProvider:
    """
    Hands out exclusive browser sessions.

    Selection: remote when a credential exists and either the caller or the
    config prefers remote, or the deployment is production. The provider
    never falls back or retries on its own.
    """

    def __init__(self, config: Optional[BrowserConfig] = None):
        self.config = config or BrowserConfig.from_settings()
        self.playwright: Optional[Playwright] = None
        self.semaphore = asyncio.Semaphore(self.config.max_sessions)
        self._lock = asyncio.Lock()
        self._active = 0
        self._acquired_total = 0

    def uses_remote(self, options: AcquireOptions) -> bool:
        if not self.config.remote_credential:
            return False
        return options.prefer_remote or self.config.prefer_remote or self.config.production

    def remote_ws_endpoint(self, block_consent_modals: bool = False) -> str:
        """Build the Browserless WebSocket URL with rendering parameters"""
        params = {
            "token": self.config.remote_credential,
            "headless": "false",
            "stealth": "true",
            "blockAds": "true",
        }
        if block_consent_modals:
            params["launch"] = json.dumps({"blockConsentModals": True})
        return f"{self.config.remote_endpoint}?{urlencode(params)}"

    async def _ensure_playwright(self) -> Playwright:
        if self.playwright is None:
            async with self._lock:
                if self.playwright is None:
                    self.playwright = await async_playwright().start()
        return self.playwright

    async def acquire(self, options: AcquireOptions = AcquireOptions()) -> BrowserSession:
        """
        Acquire an exclusive browser session.

        Raises:
            SessionAcquisitionError: REMOTE_UNAVAILABLE, LOCAL_LAUNCH_FAILED or TIMEOUT
        """
        if self.uses_remote(options):
            return await self._acquire_slot(self._connect_remote, options)
        return await self._acquire_slot(self._launch_local, options)

    async def acquire_local(self, options: AcquireOptions = AcquireOptions()) -> BrowserSession:
        """Acquire a local session regardless of remote configuration"""
        return await self._acquire_slot(self._launch_local, options)

    async def _acquire_slot(self, opener, options: AcquireOptions) -> BrowserSession:
        try:
            await asyncio.wait_for(self.semaphore.acquire(), timeout=self.config.launch_timeout)
        except asyncio.TimeoutError:
            raise SessionAcquisitionError(
                SessionFailureKind.TIMEOUT,
                f"No browser slot freed within {self.config.launch_timeout}s",
            )

        try:
            session = await opener(options)
        except BaseException:
            self.semaphore.release()
            raise

        self._active += 1
        self._acquired_total += 1
        session.on_release = self._slot_released
        return session

    def _slot_released(self):
        self._active -= 1
        self.semaphore.release()

    async def _connect_remote(self, options: AcquireOptions) -> BrowserSession:
        logger.info("🌐 Connecting to Browserless...")
        endpoint = self.remote_ws_endpoint(options.block_consent_modals)
        if options.block_consent_modals:
            logger.info("🚫 Adding blockConsentModals via launch parameter")

        try:
            playwright = await self._ensure_playwright()
            browser = await asyncio.wait_for(
                playwright.chromium.connect_over_cdp(endpoint),
                timeout=self.config.launch_timeout,
            )
        except asyncio.TimeoutError:
            raise SessionAcquisitionError(
                SessionFailureKind.TIMEOUT,
                f"Browserless connection timed out after {self.config.launch_timeout}s",
            )
        except Exception as e:
            logger.error(f"❌ Failed to connect to Browserless: {str(e)}")
            raise SessionAcquisitionError(
                SessionFailureKind.REMOTE_UNAVAILABLE,
                f"Browserless connection failed: {str(e)}",
            )

        return await self._open_page(browser, "remote", options, SessionFailureKind.REMOTE_UNAVAILABLE)

    async def _launch_local(self, options: AcquireOptions) -> BrowserSession:
        logger.info("🏠 Launching local browser...")

        try:
            playwright = await self._ensure_playwright()
            browser = await asyncio.wait_for(
                playwright.chromium.launch(headless=True, args=LOCAL_LAUNCH_ARGS),
                timeout=self.config.launch_timeout,
            )
        except asyncio.TimeoutError:
            raise SessionAcquisitionError(
                SessionFailureKind.TIMEOUT,
                f"Local browser launch timed out after {self.config.launch_timeout}s",
            )
        except Exception as e:
            logger.error(f"❌ Failed to launch local browser: {str(e)}")
            raise SessionAcquisitionError(
                SessionFailureKind.LOCAL_LAUNCH_FAILED,
                f"Failed to launch browser: {str(e)}",
            )

        return await self._open_page(browser, "local", options, SessionFailureKind.LOCAL_LAUNCH_FAILED)

    async def _open_page(
        self,
        browser: Browser,
        mode: str,
        options: AcquireOptions,
        failure_kind: SessionFailureKind,
    ) -> BrowserSession:
        try:
            context = await browser.new_context(viewport=self.config.viewport, user_agent=USER_AGENT)
            page = await context.new_page()
        except Exception as e:
            logger.error(f"❌ Failed to create browser context/page: {str(e)}")
            try:
                await browser.close()
            except Exception:
                pass
            raise SessionAcquisitionError(failure_kind, f"Failed to open page: {str(e)}")

        logger.info(f"✅ Browser session acquired ({mode})")
        return BrowserSession(
            browser=browser,
            context=context,
            page=page,
            mode=mode,
            block_consent_modals=options.block_consent_modals,
            close_timeout=self.config.close_timeout,
        )

    async def release(self, session: Optional[BrowserSession]):
        """Release a session; safe to call more than once"""
        if session is not None:
            await session.release()

    async def health_check(self) -> dict:
        return {
            "mode": "remote" if self.uses_remote(AcquireOptions()) else "local",
            "remote_configured": bool(self.config.remote_credential),
            "active_sessions": self._active,
            "max_sessions": self.config.max_sessions,
            "sessions_acquired": self._acquired_total,
            "status": "healthy" if self._active < self.config.max_sessions else "saturated",
        }

    async def cleanup(self):
        """Stop Playwright"""
        logger.info("🧹 Stopping browser provider...")
        if self.playwright:
            try:
                await self.playwright.stop()
            except Exception as e:
                logger.warning(f"⚠️  Error stopping Playwright: {str(e)}")
            self.playwright = None


# Global provider instance
_browser_provider: Optional[BrowserSessionProvider] = None


def get_browser_provider() -> BrowserSessionProvider:
    """Get or create the global browser session provider"""
    global _browser_provider

    if _browser_provider is None:
        _browser_provider = BrowserSessionProvider()

    return _browser_provider


async def close_browser_provider():
    """Close the global browser session provider"""
    global _browser_provider

    if _browser_provider is not None:
        await _browser_provider.cleanup()
        _browser_provider = None
