"""Navigation & extraction flow against the Fragrantica search UI.

Per item the navigator walks::

    IDLE -> HOMEPAGE_READY -> SEARCH_OPENED -> QUERY_TYPED
         -> RESULT_SELECTED -> DETAIL_LOADED -> IMAGE_FOUND | IMAGE_MISSING

with SEARCH_FAILED, INPUT_NOT_FOUND and ERROR as the other terminal states.
The browser page is shared across items; whether it currently sits on the
homepage is tracked in a SessionState owned by the caller.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from loguru import logger
from playwright.sync_api import TimeoutError as PlaywrightTimeout
from tenacity import Retrying, retry_if_result, stop_after_attempt, wait_fixed

from perfume_scraper.config_loader import (
    get_delay_range,
    get_scraping_config,
    get_site_config,
    get_storage_config,
)
from perfume_scraper.locators import (
    ACTIVATE_LINK_JS,
    CANDIDATE_SELECTOR,
    Locator,
    default_image_locators,
    default_result_locators,
)
from perfume_scraper.models import (
    STATUS_ERROR,
    STATUS_NO_IMAGE,
    STATUS_NOT_FOUND,
    STATUS_OK,
    CatalogItem,
    ScrapeOutcome,
)
from perfume_scraper.transport import random_delay


class NavigationState(Enum):
    IDLE = "idle"
    HOMEPAGE_READY = "homepage_ready"
    SEARCH_OPENED = "search_opened"
    QUERY_TYPED = "query_typed"
    RESULT_SELECTED = "result_selected"
    DETAIL_LOADED = "detail_loaded"
    IMAGE_FOUND = "image_found"
    IMAGE_MISSING = "image_missing"
    SEARCH_FAILED = "search_failed"
    INPUT_NOT_FOUND = "input_not_found"
    ERROR = "error"


TERMINAL_STATES = {
    NavigationState.IMAGE_FOUND,
    NavigationState.IMAGE_MISSING,
    NavigationState.SEARCH_FAILED,
    NavigationState.INPUT_NOT_FOUND,
    NavigationState.ERROR,
}


@dataclass
class SessionState:
    """Browser position shared across items of one run."""

    on_homepage: bool = False


@dataclass
class ExtractionResult:
    """What the navigator learned about one catalog item."""

    item_id: str
    query: str
    state: NavigationState = NavigationState.IDLE
    image_url: Optional[str] = None
    selected_url: Optional[str] = None
    detail_url: Optional[str] = None
    error: Optional[str] = None
    debug_files: List[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.state is NavigationState.IMAGE_FOUND

    def to_outcome(self, file: Optional[str] = None) -> ScrapeOutcome:
        """Map the terminal state to a ledger record."""
        if self.state is NavigationState.IMAGE_FOUND:
            return ScrapeOutcome(status=STATUS_OK, url=self.image_url, file=file, fragrantica=self.detail_url)
        if self.state is NavigationState.IMAGE_MISSING:
            return ScrapeOutcome(status=STATUS_NO_IMAGE, url=self.detail_url)
        if self.state is NavigationState.SEARCH_FAILED:
            return ScrapeOutcome(status=STATUS_NOT_FOUND, query=self.query)
        if self.state is NavigationState.INPUT_NOT_FOUND:
            return ScrapeOutcome(status=STATUS_ERROR, error=self.error or "modal input not found")
        return ScrapeOutcome(status=STATUS_ERROR, error=self.error or f"navigation stopped at {self.state.value}")


class FragranticaNavigator:
    """Drives one Playwright page through search, selection and image extraction."""

    def __init__(
        self,
        page_provider: Callable[[], Any],
        config: Dict[str, Any],
        result_locators: Optional[List[Locator]] = None,
        image_locators: Optional[List[Locator]] = None,
        debug_dir: Optional[str] = None,
        pause: Callable[[int, int], Any] = random_delay,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the navigator.

        Args:
            page_provider: Callable returning the live Playwright page
            config: Configuration dictionary
            result_locators: Ranked strategies for the dropdown result link
            image_locators: Ranked strategies for the detail-page image
            debug_dir: Where screenshots/HTML dumps are written
            pause: Randomized settle delay, called as pause(min_ms, max_ms)
            sleep: Fixed sleep used between result lookup attempts
        """
        self.page_provider = page_provider
        self.pause = pause
        self.sleep = sleep

        site = get_site_config(config)
        scraping = get_scraping_config(config)
        delays = scraping.get("delays", {})

        self.base_url = site.get("base_url", "https://www.fragrantica.es/")
        self.navigation_timeout = int(site.get("navigation_timeout", 30000))
        self.detail_timeout = int(site.get("detail_navigation_timeout", 15000))
        self.consent_selectors = site.get(
            "consent_selectors",
            ["button#onetrust-accept-btn-handler", ".accept-cookies", "[aria-label='Aceptar']"],
        )
        self.search_bar_selector = site.get("search_bar_selector", "input[placeholder*='Buscar']")
        self.search_input_selectors = site.get(
            "search_input_selectors",
            ["input[placeholder*='Buscar']", "input[type='search']", "input:focus"],
        )
        self.min_input_width = float(site.get("min_input_width", 100))

        self.result_attempts = int(scraping.get("result_attempts", 5))
        self.result_retry_delay_ms = int(scraping.get("result_retry_delay_ms", 1500))
        self.html_dump_chars = int(scraping.get("html_dump_chars", 80000))

        self.homepage_settle_ms = get_delay_range(delays, "homepage_settle_ms", [1500, 2500])
        self.search_open_ms = get_delay_range(delays, "search_open_ms", [800, 1500])
        self.keystroke_ms = get_delay_range(delays, "keystroke_ms", [50, 100])
        self.suggestions_settle_ms = get_delay_range(delays, "suggestions_settle_ms", [2500, 4500])
        self.detail_settle_ms = get_delay_range(delays, "detail_settle_ms", [2000, 3500])

        self.result_locators = result_locators if result_locators is not None else default_result_locators(config)
        self.image_locators = image_locators if image_locators is not None else default_image_locators(config)

        self.debug_dir = Path(debug_dir or get_storage_config(config).get("debug_dir", "data/debug"))
        self.debug_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _advance(result: ExtractionResult, state: NavigationState) -> None:
        logger.debug(f"   {result.item_id}: {result.state.value} -> {state.value}")
        result.state = state

    # -- diagnostics -------------------------------------------------------

    def _capture(self, page, result: ExtractionResult, reason: str, with_html: bool = False) -> None:
        """Best-effort screenshot (and HTML dump) named after the item and reason."""
        screenshot = self.debug_dir / f"{result.item_id}_{reason}.png"
        try:
            page.screenshot(path=str(screenshot))
            result.debug_files.append(str(screenshot))
        except Exception as exc:
            logger.debug(f"Screenshot failed for {result.item_id}: {exc}")

        if not with_html:
            return
        dump = self.debug_dir / f"{result.item_id}_{reason}.html"
        try:
            dump.write_text(page.content()[: self.html_dump_chars], encoding="utf-8")
            result.debug_files.append(str(dump))
        except Exception as exc:
            logger.debug(f"HTML dump failed for {result.item_id}: {exc}")

    # -- steps ---------------------------------------------------------------

    def _dismiss_consent(self, page) -> None:
        for selector in self.consent_selectors:
            try:
                button = page.query_selector(selector)
                if button:
                    button.click()
                    self.pause(500, 500)
                    logger.debug(f"Consent dismissed via {selector}")
                    return
            except Exception as exc:
                logger.debug(f"Consent dismissal via {selector} failed: {exc}")

    def ensure_homepage(self, page, session: SessionState) -> None:
        """Navigate to the site entry point unless already positioned there."""
        if session.on_homepage:
            return
        page.goto(self.base_url, wait_until="domcontentloaded", timeout=self.navigation_timeout)
        self.pause(*self.homepage_settle_ms)
        self._dismiss_consent(page)
        session.on_homepage = True

    def open_search(self, page) -> None:
        """Open the search modal: click the bar, or fall back to Ctrl+K."""
        search_bar = page.query_selector(self.search_bar_selector)
        if search_bar:
            search_bar.click()
        else:
            logger.debug("Search bar not found, using Ctrl+K")
            page.keyboard.down("Control")
            page.keyboard.press("KeyK")
            page.keyboard.up("Control")
        self.pause(*self.search_open_ms)

    def find_search_input(self, page):
        """First candidate input wide enough to be the overlay's own field."""
        candidates = page.query_selector_all(", ".join(self.search_input_selectors))
        for candidate in candidates:
            box = candidate.bounding_box()
            if box and box.get("width", 0) > self.min_input_width:
                return candidate
        return None

    def type_query(self, search_input, query: str) -> None:
        """Clear the field and type the query one key at a time."""
        search_input.click(click_count=3)
        search_input.press("Backspace")
        self.pause(200, 200)
        for char in query:
            search_input.press_sequentially(char)
            self.pause(*self.keystroke_ms)
        self.pause(*self.suggestions_settle_ms)

    def _run_result_locators(self, page) -> Optional[str]:
        for locator in self.result_locators:
            url = locator.locate(page)
            if url:
                logger.debug(f"Result located by {locator.name}: {url}")
                return url
        return None

    def select_result(self, page) -> Optional[str]:
        """Locate the first matching product link, retrying while suggestions load."""
        retryer = Retrying(
            stop=stop_after_attempt(max(1, self.result_attempts)),
            wait=wait_fixed(self.result_retry_delay_ms / 1000.0),
            retry=retry_if_result(lambda url: url is None),
            retry_error_callback=lambda _state: None,
            sleep=self.sleep,
        )
        return retryer(self._run_result_locators, page)

    def open_detail(self, page, session: SessionState) -> str:
        """Activate the tagged result link and wait for the detail page.

        Only a navigation timeout is tolerated; a failed activation propagates.
        """
        activated = False
        try:
            with page.expect_navigation(wait_until="domcontentloaded", timeout=self.detail_timeout):
                page.eval_on_selector(CANDIDATE_SELECTOR, ACTIVATE_LINK_JS)
                activated = True
        except PlaywrightTimeout:
            if not activated:
                raise
            logger.warning("   Detail navigation timed out, continuing with current page")
        session.on_homepage = False
        self.pause(*self.detail_settle_ms)
        return page.url

    def extract_image(self, page) -> Optional[str]:
        for locator in self.image_locators:
            src = locator.locate(page)
            if src:
                logger.debug(f"Image located by {locator.name}: {src}")
                return src
        return None

    # -- flow -----------------------------------------------------------------

    def scrape_item(self, item: CatalogItem, session: SessionState) -> ExtractionResult:
        """Run the full search-and-extract flow for one item.

        Never raises: unexpected failures end in NavigationState.ERROR and
        clear ``session.on_homepage`` so the next item re-bootstraps.
        """
        result = ExtractionResult(item_id=item.id, query=item.nombre)
        page = None
        try:
            page = self.page_provider()

            self.ensure_homepage(page, session)
            self._advance(result, NavigationState.HOMEPAGE_READY)

            self.open_search(page)
            self._advance(result, NavigationState.SEARCH_OPENED)

            search_input = self.find_search_input(page)
            if search_input is None:
                self._capture(page, result, "no_input")
                logger.warning(f"   Search input not found (debug: {result.item_id}_no_input.png)")
                session.on_homepage = False
                result.error = "modal input not found"
                self._advance(result, NavigationState.INPUT_NOT_FOUND)
                return result

            self.type_query(search_input, item.nombre)
            logger.info(f"   Searching \"{item.nombre}\"...")
            self._advance(result, NavigationState.QUERY_TYPED)

            selected = self.select_result(page)
            if not selected:
                self._capture(page, result, "autocomplete", with_html=True)
                logger.warning(f"   No autocomplete match (debug: {result.item_id}_autocomplete.png)")
                try:
                    page.keyboard.press("Escape")
                    self.pause(500, 500)
                except Exception as exc:
                    logger.debug(f"Escape after empty search failed: {exc}")
                self._advance(result, NavigationState.SEARCH_FAILED)
                return result

            result.selected_url = selected
            logger.info(f"   Selected: {selected}")
            self._advance(result, NavigationState.RESULT_SELECTED)

            result.detail_url = self.open_detail(page, session)
            logger.info(f"   Page: {result.detail_url}")
            self._advance(result, NavigationState.DETAIL_LOADED)

            image_url = self.extract_image(page)
            if not image_url:
                self._capture(page, result, "detail")
                logger.warning(f"   No image found (debug: {result.item_id}_detail.png)")
                self._advance(result, NavigationState.IMAGE_MISSING)
                return result

            result.image_url = image_url
            logger.info(f"   Image: {image_url}")
            self._advance(result, NavigationState.IMAGE_FOUND)
            return result

        except Exception as exc:
            logger.error(f"   Error scraping {item.id}: {exc}")
            session.on_homepage = False
            result.error = str(exc) or type(exc).__name__
            if page is not None:
                self._capture(page, result, "error")
            self._advance(result, NavigationState.ERROR)
            return result
