# capture/browser_manager.py
import asyncio
import time
import traceback
from typing import Optional
from playwright.async_api import async_playwright, Playwright, Browser, BrowserContext, Error as PlaywrightError
from core import config, errors, metrics
from core.logger import log
from .browser_profile import CaptureProfile


class BrowserManager:
    """
    Owns one long-lived Chromium process shared by all detections.
    Each detection gets its own isolated BrowserContext via new_context();
    a background probe restarts the browser when it stops answering.
    """

    def __init__(self, profile: Optional[CaptureProfile] = None):
        self.profile = profile or CaptureProfile()
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._monitor_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self._restart_count = 0
        self._last_restart_ts = 0

    # -------------------------
    # Lifecycle: start / stop
    # -------------------------
    async def start(self):
        log("INFO", "browser_starting", "Starting BrowserManager")
        await self._start_browser()
        self._start_monitor()

    async def stop(self):
        log("INFO", "browser_stopping", "Stopping BrowserManager")
        self._stop_event.set()
        if self._monitor_task:
            try:
                await asyncio.wait_for(self._monitor_task, timeout=5)
            except asyncio.TimeoutError:
                self._monitor_task.cancel()
        await self._close_browser()
        log("INFO", "browser_stopped", "BrowserManager stopped")

    async def _start_browser(self):
        try:
            launch_args = self.profile.get_launch_args()
            log("INFO", "browser_launch", "Launching Playwright + Chromium",
                headless=self.profile.headless, exec_path=self.profile.executable_path, args=launch_args)
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.profile.headless,
                executable_path=self.profile.executable_path,
                args=launch_args,
            )
            metrics.BROWSER_UP.set(1)
            log("INFO", "browser_launched", "Chromium launched")
        except PlaywrightError as e:
            log("ERROR", "browser_launch_error", "Failed to launch browser", error=str(e), tb=traceback.format_exc())
            metrics.BROWSER_UP.set(0)
            raise errors.BrowserStartError(str(e))

    async def _close_browser(self):
        if self._browser:
            try:
                await self._browser.close()
            except PlaywrightError as e:
                log("WARN", "browser_close_err", "Error while closing browser", error=str(e))
            self._browser = None
        if self._playwright:
            try:
                await self._playwright.stop()
            except PlaywrightError as e:
                log("WARN", "playwright_stop_err", "Error while stopping playwright", error=str(e))
            self._playwright = None
        metrics.BROWSER_UP.set(0)

    # -------------------------
    # Context factory for detections
    # -------------------------
    async def new_context(self, profile: Optional[CaptureProfile] = None) -> BrowserContext:
        """
        Create an isolated browser context configured for `profile`.
        Raises BrowserHealthError if the browser is not available.
        """
        self.ensure_browser()
        profile = profile or self.profile
        try:
            ctx = await self._browser.new_context(**profile.context_kwargs())
            log("DEBUG", "browser_new_context", "Created new browser context", profile=profile.name)
            return ctx
        except PlaywrightError as e:
            log("ERROR", "browser_new_context_error", "Failed to create context", error=str(e))
            raise errors.BrowserHealthError(str(e))

    # -------------------------
    # Health probe & restart
    # -------------------------
    def _start_monitor(self):
        if self._monitor_task and not self._monitor_task.done():
            return
        self._stop_event.clear()
        self._monitor_task = asyncio.create_task(self._monitor_loop())

    async def _monitor_loop(self):
        backoff = config.RESTART_BACKOFF_BASE_SEC
        while not self._stop_event.is_set():
            healthy = await self._probe_once()
            if healthy:
                backoff = config.RESTART_BACKOFF_BASE_SEC
                wait_for = max(1, config.HEALTH_PROBE_INTERVAL_SEC)
            else:
                wait_for = backoff
                backoff = min(backoff * 2, config.RESTART_BACKOFF_MAX_SEC)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=wait_for)
            except asyncio.TimeoutError:
                pass

    async def _probe_once(self) -> bool:
        if not self._browser:
            return await self._restart_browser()
        try:
            ctx = await self._browser.new_context()
            try:
                page = await ctx.new_page()
                await page.goto("data:text/plain,ok", timeout=config.HEALTH_PROBE_TIMEOUT_SEC * 1000)
            finally:
                await ctx.close()
            metrics.BROWSER_UP.set(1)
            return True
        except PlaywrightError as e:
            log("ERROR", "browser_probe_failed", "Browser probe failed, restarting", error=str(e))
            metrics.BROWSER_UP.set(0)
            return await self._restart_browser()

    async def _restart_browser(self) -> bool:
        log("WARN", "browser_restart", "Restarting browser")
        await self._close_browser()
        try:
            await self._start_browser()
        except errors.BrowserStartError:
            return False
        self._restart_count += 1
        self._last_restart_ts = int(time.time())
        metrics.RESTART_COUNTER.inc()
        log("INFO", "browser_restart_done", "Browser restart completed", restart_count=self._restart_count)
        return True

    # -------------------------
    # Health API
    # -------------------------
    def get_health(self) -> dict:
        return {
            "browser_up": self._browser is not None,
            "restart_count": self._restart_count,
            "last_restart_ts": self._last_restart_ts
        }

    def ensure_browser(self):
        if not self._browser:
            log("WARN", "browser_ensure", "Browser not available")
            raise errors.BrowserHealthError("Browser not available")
        return True
