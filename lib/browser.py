"""Browser utilities for Playwright scraping.

Provides a managed single-page browser session. Everything acquired on enter is
released on exit, including when the session fails partway through startup.
"""

from typing import Optional

from loguru import logger
from playwright.async_api import (
    async_playwright,
    Browser,
    BrowserContext,
    Page,
    Playwright,
    Error as PlaywrightError,
)
from playwright_stealth import Stealth

from services.harvest.errors import AcquisitionError


DEFAULT_USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36"


class BrowserSession:
    """Owns one browser, one context and one page for the duration of a run."""

    def __init__(
        self,
        headless: bool = True,
        stealth: bool = False,
        timeout_ms: int = 30000,
        viewport: Optional[dict] = None,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        self.headless = headless
        self.stealth = stealth
        self.timeout_ms = timeout_ms
        self.viewport = viewport or {"width": 1280, "height": 800}
        self.user_agent = user_agent
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    async def __aenter__(self) -> "BrowserSession":
        """Start browser and open a single page."""
        try:
            self._playwright = await async_playwright().start()
            if self.stealth:
                await Stealth().apply_stealth_async(self._playwright)

            self._browser = await self._playwright.chromium.launch(headless=self.headless)
            self._context = await self._browser.new_context(
                user_agent=self.user_agent,
                viewport=self.viewport,
            )
            self._context.set_default_timeout(self.timeout_ms)
            self._context.set_default_navigation_timeout(self.timeout_ms)
            self._page = await self._context.new_page()
        except Exception as e:
            # Any startup failure, including stealth patching, releases what was started
            await self.close()
            raise AcquisitionError(f"Could not start browser session: {e}") from e

        logger.debug(f"Browser session started (headless={self.headless}, stealth={self.stealth})")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Clean up browser resources."""
        await self.close()
        return False

    async def close(self) -> None:
        """Release context, browser and driver. Safe to call more than once."""
        context, browser, pw = self._context, self._browser, self._playwright
        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None

        if context is not None:
            try:
                await context.close()
            except PlaywrightError as e:
                logger.debug(f"Error closing context: {e}")
        if browser is not None:
            try:
                await browser.close()
            except PlaywrightError as e:
                logger.debug(f"Error closing browser: {e}")
        if pw is not None:
            await pw.stop()
            logger.debug("Browser session closed")

    @property
    def page(self) -> Page:
        """Get the session's page."""
        if self._page is None:
            raise AcquisitionError("Browser session is not open")
        return self._page
