"""Scrape orchestrator: catalog -> navigator -> image download -> result ledger."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from loguru import logger

from perfume_scraper.browser import BrowserSession
from perfume_scraper.catalog import load_catalog
from perfume_scraper.config_loader import get_delay_range, get_scraping_config, get_storage_config
from perfume_scraper.ledger import LedgerStore, open_ledger
from perfume_scraper.models import STATUS_ERROR, CatalogItem, RunSummary, ScrapeOutcome
from perfume_scraper.navigator import FragranticaNavigator, SessionState
from perfume_scraper.transport import download_resource, random_delay


@dataclass
class ScrapeOptions:
    dry_run: bool = False
    skip_existing: bool = False
    headless: bool = True
    limit: Optional[int] = None


class ScrapeOrchestrator:
    """Serially processes catalog items against one navigator/browser page."""

    def __init__(
        self,
        navigator: FragranticaNavigator,
        ledger: LedgerStore,
        images_dir,
        downloader: Callable[[str, Path], Any] = download_resource,
        pause: Callable[[int, int], Any] = random_delay,
        delay_range_ms: Sequence[int] = (3000, 6000),
    ):
        self.navigator = navigator
        self.ledger = ledger
        self.images_dir = Path(images_dir)
        self.downloader = downloader
        self.pause = pause
        self.delay_range_ms = tuple(delay_range_ms)
        self.session = SessionState()

    def _discard_stale_image(self, path: Path) -> None:
        if path.exists():
            logger.debug(f"   Removing stale image {path.name}")
            path.unlink()

    def process_item(self, item: CatalogItem, options: ScrapeOptions) -> Optional[ScrapeOutcome]:
        """Process one item. Returns None when the item was skipped."""
        image_path = self.images_dir / item.image_filename

        if options.skip_existing and image_path.exists():
            logger.info("   Image already exists, skipping")
            return None

        if options.dry_run:
            logger.info(f"   Dry run: would search \"{item.nombre}\"")
            return None

        try:
            result = self.navigator.scrape_item(item, self.session)
            if result.found:
                self.downloader(result.image_url, image_path)
                logger.info(f"   Saved: {image_path}")
                outcome = result.to_outcome(file=item.image_filename)
            else:
                outcome = result.to_outcome()
        except Exception as exc:
            logger.error(f"   Error: {exc}")
            outcome = ScrapeOutcome(status=STATUS_ERROR, error=str(exc) or type(exc).__name__)

        if not outcome.is_ok:
            self._discard_stale_image(image_path)

        self.ledger.put(item.id, outcome.to_dict())
        return outcome

    def run(self, items: List[CatalogItem], options: ScrapeOptions) -> RunSummary:
        """Process items (first ``options.limit``) and return the tally."""
        to_process = list(items)[: options.limit] if options.limit is not None else list(items)
        total = len(to_process)
        summary = RunSummary(
            outputs={"images_dir": str(self.images_dir), "ledger": getattr(self.ledger, "location", "")}
        )

        logger.info(f"Processing {total} perfumes{' (DRY RUN)' if options.dry_run else ''}...")

        for index, item in enumerate(to_process):
            logger.info(f"[{index + 1}/{total}] {item.marca} - {item.nombre}")
            outcome = self.process_item(item, options)

            if outcome is None:
                summary.skipped += 1
            elif outcome.is_ok:
                summary.success += 1
            else:
                summary.failed += 1
                logger.warning(f"   Outcome: {outcome.status}")

            if index < total - 1:
                waited = self.pause(*self.delay_range_ms)
                if waited:
                    logger.debug(f"   Waited {waited:.1f}s")

        return summary


def run_scrape(
    config: Dict[str, Any],
    options: ScrapeOptions,
    items: Optional[List[CatalogItem]] = None,
) -> RunSummary:
    """Load the catalog and run the scrape pass.

    Raises:
        CatalogUnavailableError: No catalog source available.
        LedgerCorruptError: Result ledger exists but cannot be parsed.
    """
    storage = get_storage_config(config)
    scraping = get_scraping_config(config)

    if items is None:
        items = load_catalog(config)

    ledger = open_ledger(config, "results")
    images_dir = Path(storage.get("images_dir", "data/images"))
    images_dir.mkdir(parents=True, exist_ok=True)

    def _download(url: str, destination: Path):
        return download_resource(
            url,
            destination,
            timeout=float(scraping.get("download_timeout", 30)),
            max_redirects=int(scraping.get("max_redirects", 5)),
            attempts=int(scraping.get("download_attempts", 3)),
        )

    between_items = get_delay_range(scraping.get("delays", {}), "between_items_ms", [3000, 6000])

    if options.dry_run:
        navigator = FragranticaNavigator(lambda: None, config, result_locators=[], image_locators=[])
        orchestrator = ScrapeOrchestrator(navigator, ledger, images_dir, _download, delay_range_ms=between_items)
        return orchestrator.run(items, options)

    with BrowserSession(config, headless=options.headless) as browser:
        navigator = FragranticaNavigator(browser.ensure_page, config)
        orchestrator = ScrapeOrchestrator(navigator, ledger, images_dir, _download, delay_range_ms=between_items)
        return orchestrator.run(items, options)
