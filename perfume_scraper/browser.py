"""Playwright browser session shared serially across catalog items."""

from typing import Any, Dict, Optional

from loguru import logger
from playwright.sync_api import Error as PlaywrightError, Page, sync_playwright

from perfume_scraper.config_loader import get_scraping_config, get_site_config


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

HIDE_WEBDRIVER_SCRIPT = "Object.defineProperty(navigator, 'webdriver', { get: () => false });"


class BrowserSession:
    """Owns the Playwright instance, browser, context and the single page."""

    def __init__(self, config: Dict[str, Any], headless: Optional[bool] = None):
        """Initialize the session.

        Args:
            config: Configuration dictionary
            headless: Override headless mode from config
        """
        self.config = config
        self.browser_config = get_scraping_config(config).get("browser", {})
        self.timeout = int(get_site_config(config).get("navigation_timeout", 30000))
        self.headless = headless if headless is not None else self.browser_config.get("headless", True)

        self.page: Optional[Page] = None
        self.playwright = None
        self.browser = None
        self.context = None

    def start(self) -> Page:
        """Start the browser and create a new page."""
        logger.info(f"Starting browser (headless={self.headless})...")
        self.playwright = sync_playwright().start()

        viewport = self.browser_config.get("viewport", {"width": 1280, "height": 900})
        self.browser = self.playwright.chromium.launch(
            headless=self.headless,
            args=[
                "--no-sandbox",
                "--disable-setuid-sandbox",
                "--disable-blink-features=AutomationControlled",
            ],
        )
        self.context = self.browser.new_context(
            viewport=viewport,
            user_agent=self.browser_config.get("user_agent", DEFAULT_USER_AGENT),
        )
        self.context.add_init_script(HIDE_WEBDRIVER_SCRIPT)

        self.page = self.context.new_page()
        self.page.set_default_timeout(self.timeout)
        self.page.on("dialog", lambda dialog: dialog.accept())

        logger.info("Browser started successfully")
        return self.page

    def stop(self):
        """Stop the browser and cleanup."""
        logger.info("Stopping browser...")
        for resource in (self.context, self.browser):
            if resource is None:
                continue
            try:
                resource.close()
            except PlaywrightError as exc:
                logger.debug(f"Ignoring close error: {exc}")
        if self.playwright:
            try:
                self.playwright.stop()
            except PlaywrightError as exc:
                logger.debug(f"Ignoring playwright stop error: {exc}")
        self.page = None
        self.context = None
        self.browser = None
        self.playwright = None
        logger.info("Browser stopped")

    def ensure_page(self) -> Page:
        """Return a live page, restarting the session if the target was closed."""
        should_restart = self.page is None
        if self.page is not None:
            try:
                should_restart = self.page.is_closed()
            except PlaywrightError:
                should_restart = True

        if should_restart:
            logger.warning("Browser page not available; restarting browser session.")
            self.stop()
            self.start()
        return self.page

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
