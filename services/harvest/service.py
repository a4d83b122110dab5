"""Harvest service: one end-to-end browser session."""

from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from loguru import logger
from playwright.async_api import Page

from lib.browser import BrowserSession
from services.harvest import output
from services.harvest.config import HarvestConfig
from services.harvest.models import DownloadedImage, SessionResult
from services.harvest.scraper import IHarvestScraper, PracticeSiteScraper


class IService(ABC):
    """Harvest Service - Extract names, form output and images from the target site."""

    @abstractmethod
    async def run_session(self) -> SessionResult:
        """Run one full session and release the browser before returning.

        Raises:
            HarvestError: on any step failure; nothing is retried
        """
        pass


class Service(IService):
    def __init__(
        self,
        config: Optional[HarvestConfig] = None,
        session_factory: Optional[Callable[[], BrowserSession]] = None,
        scraper_factory: Optional[Callable[[Page], IHarvestScraper]] = None,
    ):
        self.config = config or HarvestConfig.from_env()
        self._session_factory = session_factory or self._default_session
        self._scraper_factory = scraper_factory or self._default_scraper

    def _default_session(self) -> BrowserSession:
        return BrowserSession(
            headless=self.config.headless,
            stealth=self.config.stealth,
            timeout_ms=self.config.timeout_ms,
            viewport=self.config.viewport,
        )

    def _default_scraper(self, page: Page) -> IHarvestScraper:
        return PracticeSiteScraper(page, timeout_ms=self.config.timeout_ms)

    async def run_session(self) -> SessionResult:
        result = SessionResult(started_at=datetime.now())
        logger.info(f"Harvest session started: {self.config.target_url}")

        async with self._session_factory() as session:
            scraper = self._scraper_factory(session.page)
            await self._harvest(scraper, result)

        result.finished_at = datetime.now()
        logger.info(
            f"Harvest session complete in {result.duration_seconds:.1f}s: "
            f"{len(result.names)} names, {len(result.images)} images"
        )
        return result

    async def _harvest(self, scraper: IHarvestScraper, result: SessionResult) -> None:
        """Steps of a session, strictly in order."""
        cfg = self.config

        await scraper.open(cfg.target_url)

        if cfg.screenshot_path:
            await scraper.screenshot(cfg.screenshot_path)
            result.screenshot = Path(cfg.screenshot_path)
            logger.debug(f"Screenshot saved to {cfg.screenshot_path}")

        # Names
        result.names = await scraper.extract_texts(cfg.names_selector)
        result.names_file = output.write_names(cfg.names_path, result.names, cfg.names_separator)
        logger.debug(f"Names: {result.names}")

        # Click-to-reveal, done before the form since submitting leaves the page
        await scraper.click(cfg.reveal_selector)
        result.revealed_text = await scraper.read_text(cfg.revealed_selector)
        logger.debug(f"Revealed text: {result.revealed_text}")

        # Form
        await scraper.fill(cfg.input_selector, cfg.input_value)
        await scraper.submit_and_wait(cfg.submit_selector)
        result.form_result = await scraper.read_text(cfg.result_selector)
        logger.info(result.form_result)

        # Images, one at a time since each fetch navigates the shared page
        result.image_urls = await scraper.collect_sources(cfg.image_selector)
        logger.debug(f"Found {len(result.image_urls)} images")
        for url in result.image_urls:
            body = await scraper.fetch_bytes(url)
            path = output.write_image(cfg.output_dir, url, body)
            result.images.append(DownloadedImage(url=url, path=path, size=len(body)))
