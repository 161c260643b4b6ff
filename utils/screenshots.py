"""
Screenshot capture and storage for the Landing Page Grader.

ScreenshotService gives the caller an early visual preview while the full
analysis is still running. It uses its own browser session and never shares
state with the pipeline; a failed capture only means no preview.
"""

import asyncio
import io
import logging
import uuid
from pathlib import Path
from typing import Awaitable, Callable, Optional, Set

from PIL import Image
from playwright.async_api import Page

from config import settings
from core.browser import AcquireOptions, BrowserSessionProvider

logger = logging.getLogger(__name__)


def process_screenshot(
    screenshot_bytes: bytes,
    max_dimension: int = 1800,
    quality: int = 80,
) -> bytes:
    """
    Resize a screenshot so neither side exceeds max_dimension and re-encode as JPEG.

    Args:
        screenshot_bytes: Original screenshot bytes (PNG or JPEG)
        max_dimension: Maximum width/height in pixels
        quality: JPEG quality

    Returns:
        JPEG bytes
    """
    image = Image.open(io.BytesIO(screenshot_bytes))
    width, height = image.size

    if width > max_dimension or height > max_dimension:
        # Keep aspect ratio
        if width > height:
            new_width = max_dimension
            new_height = int(height * (max_dimension / width))
        else:
            new_height = max_dimension
            new_width = int(width * (max_dimension / height))
        image = image.resize((new_width, new_height), Image.Resampling.LANCZOS)

    # JPEG doesn't support transparency
    if image.mode == "RGBA":
        rgb_image = Image.new("RGB", image.size, (255, 255, 255))
        rgb_image.paste(image, mask=image.split()[3])
        image = rgb_image
    elif image.mode != "RGB":
        image = image.convert("RGB")

    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality, optimize=True)
    return buffer.getvalue()


class ScreenshotStore:
    """Writes screenshots to disk; main.py serves the directory at /screenshots"""

    def __init__(self, directory: Optional[str] = None, base_url: Optional[str] = None):
        self.directory = Path(directory or settings.SCREENSHOT_DIR)
        self.base_url = (base_url or settings.PUBLIC_BASE_URL).rstrip("/")

    async def save(self, image_bytes: bytes) -> str:
        name = f"{uuid.uuid4().hex}.jpg"
        path = self.directory / name

        def _write():
            self.directory.mkdir(parents=True, exist_ok=True)
            path.write_bytes(image_bytes)

        await asyncio.to_thread(_write)
        return f"{self.base_url}/screenshots/{name}"


class ScreenshotService:
    """Best-effort screenshot capture, run concurrently with the pipeline"""

    def __init__(
        self,
        provider: BrowserSessionProvider,
        store: Optional[ScreenshotStore] = None,
        navigation_timeout: Optional[float] = None,
    ):
        self.provider = provider
        self.store = store or ScreenshotStore()
        self.navigation_timeout = navigation_timeout or settings.NAVIGATION_TIMEOUT
        self._tasks: Set[asyncio.Task] = set()

    async def capture_from_page(self, page: Page) -> str:
        """Screenshot an already rendered page and store it"""
        raw = await page.screenshot(type="png", full_page=False)
        processed = await asyncio.to_thread(
            process_screenshot,
            raw,
            settings.MAX_SCREENSHOT_DIMENSION,
            settings.SCREENSHOT_QUALITY,
        )
        return await self.store.save(processed)

    async def capture(self, url: str) -> str:
        """
        Capture a screenshot with a dedicated browser session.

        Raises:
            SessionAcquisitionError or any navigation/storage error
        """
        session = await self.provider.acquire(
            AcquireOptions(block_consent_modals=settings.BLOCK_CONSENT_MODALS)
        )
        try:
            logger.info(f"📸 Capturing screenshot of {url}")
            await session.page.goto(
                str(url),
                wait_until="domcontentloaded",
                timeout=self.navigation_timeout * 1000,
            )
            await session.page.wait_for_timeout(1000)
            screenshot_url = await self.capture_from_page(session.page)
            logger.info(f"✅ Screenshot stored at {screenshot_url}")
            return screenshot_url
        finally:
            await self.provider.release(session)

    def capture_async(self, url: str, on_ready: Optional[Callable[[str], None]] = None) -> asyncio.Task:
        """
        Start a capture in the background.

        on_ready receives the screenshot URL on success. Failures are logged
        and dropped; the returned task never raises.
        """
        return capture_in_background(self.capture, url, on_ready, self._tasks)


def capture_in_background(
    capture: Callable[[str], Awaitable[Optional[str]]],
    url: str,
    on_ready: Optional[Callable[[str], None]] = None,
    tasks: Optional[Set[asyncio.Task]] = None,
) -> asyncio.Task:
    """
    Run a best-effort screenshot capture as a background task.

    Any capture callable works (ScreenshotService.capture, or a backend that
    asks a remote API). The task is tracked in `tasks` until it finishes so
    callers can wait for it.
    """
    task = asyncio.create_task(_capture_quietly(capture, url, on_ready))
    if tasks is not None:
        tasks.add(task)
        task.add_done_callback(tasks.discard)
    return task


async def _capture_quietly(
    capture: Callable[[str], Awaitable[Optional[str]]],
    url: str,
    on_ready: Optional[Callable[[str], None]],
) -> Optional[str]:
    try:
        screenshot_url = await capture(url)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.warning(f"⚠️  Screenshot capture failed for {url}: {str(e)}")
        return None

    if screenshot_url and on_ready is not None:
        try:
            on_ready(screenshot_url)
        except Exception as e:
            logger.warning(f"⚠️  Screenshot callback failed: {str(e)}")
    return screenshot_url
