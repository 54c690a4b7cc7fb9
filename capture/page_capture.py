# capture/page_capture.py
import asyncio
import time
from typing import Optional, Tuple

from playwright.async_api import Page, Error as PlaywrightError, TimeoutError as PWTimeoutError

from core.errors import DetectionUnavailableError
from core.logger import log
from detection.service import LayerDetector
from detection.sources import PlaywrightElementSource
from detection.views import DetectionResult
from .browser_manager import BrowserManager
from .browser_profile import CaptureProfile
from .screenshot_service import ScreenshotService

POPUP_SELECTORS = [
    # Cookie banners
    'button:has-text("Accept All Cookies")',
    'button:has-text("Accept All")',
    'button:has-text("Accept")',
    '[id*="accept"][id*="cookie"]',
    '[class*="accept"][class*="cookie"]',
    # Close buttons
    'button[aria-label*="Close"]',
    'button[aria-label*="close"]',
    '[class*="close"]',
    '[id*="close"]',
    # Modals
    'button.modal-close',
    '[data-dismiss="modal"]',
    '.modal [aria-label="Close"]',
    # Age gates / newsletters
    'button:has-text("I am 18")',
    'button:has-text("Enter")',
    'button:has-text("No thanks")',
    '[aria-label="Close popup"]',
    '.overlay button',
    '[role="dialog"] button[aria-label*="close" i]',
]

_AUTOSCROLL_JS = """
async () => {
    await new Promise((resolve) => {
        let total = 0;
        const step = 100;
        const timer = setInterval(() => {
            window.scrollBy(0, step);
            total += step;
            if (total >= document.body.scrollHeight) {
                clearInterval(timer);
                window.scrollTo(0, 0);
                resolve();
            }
        }, 100);
    });
}
"""


class PageCapture:
    """
    Loads a URL in an isolated browser context, cleans the page up, saves the
    screenshot and runs the layer detector against the live DOM.
    """

    def __init__(self, browser_manager: BrowserManager,
                 detector: Optional[LayerDetector] = None,
                 screenshots: Optional[ScreenshotService] = None):
        self.browser_manager = browser_manager
        self.detector = detector or LayerDetector()
        self.screenshots = screenshots or ScreenshotService()

    async def capture(self, url: str, screenshot_path: str,
                      profile: Optional[CaptureProfile] = None) -> Tuple[DetectionResult, str]:
        profile = profile or CaptureProfile.desktop()
        start = time.time()
        log("INFO", "capture_start", f"Capturing {url}", profile=profile.name,
            viewport=profile.viewport.model_dump())

        ctx = await self.browser_manager.new_context(profile)
        try:
            page = await ctx.new_page()
            await self._load(page, url, profile)
            if profile.dismiss_popups:
                await self.dismiss_popups(page)
            if profile.scroll:
                await self.auto_scroll(page)
            await self.screenshots.capture_to_file(page, screenshot_path)
            result = await self.detector.detect(PlaywrightElementSource(page), url=url)
        finally:
            try:
                await ctx.close()
            except PlaywrightError as e:
                log("WARN", "capture_context_close_err", "Error closing capture context", error=str(e))

        log("INFO", "capture_done", f"Captured {len(result.layers)} layers from {url}",
            duration_ms=int((time.time() - start) * 1000))
        return result, screenshot_path

    async def _load(self, page: Page, url: str, profile: CaptureProfile):
        try:
            await page.goto(url, wait_until="networkidle", timeout=profile.navigation_timeout_ms)
        except PWTimeoutError as e:
            log("ERROR", "capture_nav_timeout", "Page took too long to load", url=url, error=str(e))
            raise DetectionUnavailableError(f"navigation timeout for {url}")
        except PlaywrightError as e:
            log("ERROR", "capture_nav_failed", "Navigation failed", url=url, error=str(e))
            raise DetectionUnavailableError(f"navigation failed for {url}: {e}")
        # let animations and late content settle
        await asyncio.sleep(profile.settle_delay_ms / 1000)

    async def dismiss_popups(self, page: Page):
        for selector in POPUP_SELECTORS:
            try:
                el = await page.query_selector(selector)
                if el and await el.is_visible():
                    log("DEBUG", "capture_popup_click", "Dismissing popup", selector=selector)
                    await el.click(timeout=1000)
                    await asyncio.sleep(0.5)
            except PlaywrightError as e:
                log("DEBUG", "capture_popup_skip", "Popup selector not actionable", selector=selector, error=str(e))
        try:
            await page.keyboard.press("Escape")
            await asyncio.sleep(0.3)
        except PlaywrightError as e:
            log("DEBUG", "capture_escape_failed", "Escape key press failed", error=str(e))

    async def auto_scroll(self, page: Page):
        try:
            await page.evaluate(_AUTOSCROLL_JS)
            await asyncio.sleep(1.0)
        except PlaywrightError as e:
            log("WARN", "capture_scroll_failed", "Auto-scroll failed", error=str(e))
