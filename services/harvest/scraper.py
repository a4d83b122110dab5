"""Practice site scraper.

Wraps a Playwright page with the individual steps of a harvest session.
Each step translates Playwright failures into the harvest error taxonomy at
the point they happen; nothing is retried.
"""

from typing import List, Optional, Protocol, runtime_checkable

from loguru import logger
from playwright.async_api import (
    Page,
    Error as PlaywrightError,
    TimeoutError as PlaywrightTimeoutError,
)

from services.harvest.errors import NavigationError, OutputWriteError, SelectorNotFoundError


@runtime_checkable
class IHarvestScraper(Protocol):
    """Protocol for page-level harvest operations."""

    async def open(self, url: str) -> None:
        """Navigate to a URL and wait for it to load."""
        ...

    async def screenshot(self, path: str) -> None:
        """Full-page screenshot of the current page."""
        ...

    async def extract_texts(self, selector: str) -> List[str]:
        """Text content of every element matching selector, in DOM order."""
        ...

    async def read_text(self, selector: str) -> str:
        """Text content of the first element matching selector."""
        ...

    async def click(self, selector: str) -> None:
        """Click an element."""
        ...

    async def fill(self, selector: str, value: str) -> None:
        """Fill an input element."""
        ...

    async def submit_and_wait(self, selector: str) -> None:
        """Click a submit control and wait for the navigation it triggers."""
        ...

    async def collect_sources(self, selector: str) -> List[str]:
        """Absolute src URLs of every element matching selector, in DOM order."""
        ...

    async def fetch_bytes(self, url: str) -> bytes:
        """Navigate to a URL and return the response body."""
        ...


class PracticeSiteScraper(IHarvestScraper):
    """Playwright-based scraper for one page."""

    def __init__(self, page: Page, timeout_ms: int = 30000):
        self._page = page
        self.timeout_ms = timeout_ms

    @property
    def page(self) -> Page:
        return self._page

    async def open(self, url: str) -> None:
        try:
            response = await self.page.goto(url, timeout=self.timeout_ms, wait_until="load")
        except PlaywrightError as e:
            raise NavigationError(f"Could not load {url}: {e}", url=url) from e
        if response is None:
            raise NavigationError(f"No response loading {url}", url=url)
        logger.debug(f"Loaded {url} (status {response.status})")

    async def screenshot(self, path: str) -> None:
        """Full-page screenshot of the current page."""
        try:
            await self.page.screenshot(path=path, full_page=True)
        except PlaywrightError as e:
            raise OutputWriteError(f"Could not save screenshot {path}: {e}", path=path) from e

    async def extract_texts(self, selector: str) -> List[str]:
        try:
            elements = await self.page.query_selector_all(selector)
            texts = []
            for el in elements:
                texts.append(await el.text_content() or "")
        except PlaywrightError as e:
            raise NavigationError(f"Could not read {selector!r}: {e}") from e
        return texts

    async def read_text(self, selector: str) -> str:
        try:
            el = await self.page.query_selector(selector)
            text = await el.text_content() if el is not None else None
        except PlaywrightError as e:
            raise NavigationError(f"Could not read {selector!r}: {e}") from e
        if el is None:
            raise SelectorNotFoundError(selector)
        return text or ""

    async def click(self, selector: str) -> None:
        try:
            await self.page.click(selector, timeout=self.timeout_ms)
        except PlaywrightTimeoutError as e:
            raise SelectorNotFoundError(selector, f"Could not click {selector!r}: {e}") from e
        except PlaywrightError as e:
            raise NavigationError(f"Could not click {selector!r}: {e}") from e

    async def fill(self, selector: str, value: str) -> None:
        try:
            await self.page.fill(selector, value, timeout=self.timeout_ms)
        except PlaywrightTimeoutError as e:
            raise SelectorNotFoundError(selector, f"Could not fill {selector!r}: {e}") from e
        except PlaywrightError as e:
            raise NavigationError(f"Could not fill {selector!r}: {e}") from e

    async def submit_and_wait(self, selector: str) -> None:
        # The navigation wait is registered before the click goes out, so a
        # navigation that starts immediately cannot be missed.
        try:
            async with self.page.expect_navigation(timeout=self.timeout_ms, wait_until="load"):
                await self.click(selector)
        except PlaywrightError as e:
            raise NavigationError(f"Form submit via {selector!r} did not navigate: {e}") from e

    async def collect_sources(self, selector: str) -> List[str]:
        # Elements without a src are kept; fetching them fails the run
        try:
            return await self.page.eval_on_selector_all(
                selector, "els => els.map(el => el.src)"
            )
        except PlaywrightError as e:
            raise NavigationError(f"Could not read {selector!r}: {e}") from e

    async def fetch_bytes(self, url: str) -> bytes:
        if not url:
            raise NavigationError("Image element has no src", url=url)
        try:
            response = await self.page.goto(url, timeout=self.timeout_ms)
        except PlaywrightError as e:
            raise NavigationError(f"Could not fetch {url}: {e}", url=url) from e
        if response is None:
            raise NavigationError(f"No response fetching {url}", url=url)
        if not response.ok:
            logger.warning(f"Fetching {url} returned status {response.status}")
        try:
            return await response.body()
        except PlaywrightError as e:
            raise NavigationError(f"Could not read body of {url}: {e}", url=url) from e


class MockScraper(IHarvestScraper):
    """Scripted scraper for testing the session runner without a browser."""

    def __init__(
        self,
        texts: Optional[dict] = None,
        lists: Optional[dict] = None,
        bodies: Optional[dict] = None,
        fail_on: Optional[dict] = None,
    ):
        self.texts = texts or {}
        self.lists = lists or {}
        self.bodies = bodies or {}
        self.fail_on = fail_on or {}
        self.calls: List[tuple] = []

    def _record(self, *call) -> None:
        self.calls.append(call)
        error = self.fail_on.get(call[0])
        if error is not None:
            raise error

    async def open(self, url: str) -> None:
        self._record("open", url)

    async def screenshot(self, path: str) -> None:
        self._record("screenshot", path)

    async def extract_texts(self, selector: str) -> List[str]:
        self._record("extract_texts", selector)
        return list(self.lists.get(selector, []))

    async def read_text(self, selector: str) -> str:
        self._record("read_text", selector)
        if selector not in self.texts:
            raise SelectorNotFoundError(selector)
        return self.texts[selector]

    async def click(self, selector: str) -> None:
        self._record("click", selector)

    async def fill(self, selector: str, value: str) -> None:
        self._record("fill", selector, value)

    async def submit_and_wait(self, selector: str) -> None:
        self._record("submit_and_wait", selector)

    async def collect_sources(self, selector: str) -> List[str]:
        self._record("collect_sources", selector)
        return list(self.lists.get(selector, []))

    async def fetch_bytes(self, url: str) -> bytes:
        self._record("fetch_bytes", url)
        return self.bodies.get(url, b"")
