"""Tests for the scrape orchestrator."""

import sys
import tempfile
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from perfume_scraper.ledger import JsonLedger
from perfume_scraper.models import CatalogItem
from perfume_scraper.navigator import ExtractionResult, NavigationState
from perfume_scraper.scraper import ScrapeOptions, ScrapeOrchestrator, run_scrape
from perfume_scraper.transport import HttpStatusError


DETAIL = "https://www.fragrantica.es/perfume/Dior/Sauvage-31861.html"
IMAGE = "https://fimgs.net/mdimg/perfume/375x500.31861.jpg"


class FakeNavigator:
    def __init__(self, states):
        self.states = states
        self.calls = []
        self.sessions = []

    def scrape_item(self, item, session):
        self.calls.append(item.id)
        self.sessions.append(session)
        state = self.states.get(item.id, NavigationState.SEARCH_FAILED)
        result = ExtractionResult(item_id=item.id, query=item.nombre, state=state)
        if state in (NavigationState.IMAGE_FOUND, NavigationState.IMAGE_MISSING):
            result.detail_url = DETAIL
        if state is NavigationState.IMAGE_FOUND:
            result.image_url = IMAGE
        if state is NavigationState.ERROR:
            result.error = "page crashed"
        return result


class FakeDownloader:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def __call__(self, url, destination):
        self.calls.append((url, Path(destination)))
        if self.error:
            raise self.error
        Path(destination).write_bytes(b"JPEG")
        return Path(destination)


class TestScrapeOrchestrator(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)
        self.images = self.root / "images"
        self.images.mkdir()
        self.ledger = JsonLedger(self.root / "results.json")
        self.pauses = []
        self.items = [
            CatalogItem(id="p1", nombre="Sauvage", marca="Dior"),
            CatalogItem(id="p2", nombre="Unknown Scent", marca="Nobody"),
            CatalogItem(id="p3", nombre="Aventus", marca="Creed"),
        ]

    def tearDown(self):
        self.tmp.cleanup()

    def _orchestrator(self, states, downloader=None):
        self.navigator = FakeNavigator(states)
        self.downloader = downloader or FakeDownloader()
        return ScrapeOrchestrator(
            self.navigator,
            self.ledger,
            self.images,
            downloader=self.downloader,
            pause=lambda low, high: self.pauses.append((low, high)),
            delay_range_ms=(3000, 6000),
        )

    def test_found_image_is_downloaded_and_recorded(self):
        orchestrator = self._orchestrator({"p1": NavigationState.IMAGE_FOUND})

        summary = orchestrator.run(self.items[:1], ScrapeOptions())

        self.assertEqual((summary.success, summary.failed, summary.skipped), (1, 0, 0))
        self.assertEqual((self.images / "p1.jpg").read_bytes(), b"JPEG")
        self.assertEqual(self.downloader.calls, [(IMAGE, self.images / "p1.jpg")])
        self.assertEqual(
            JsonLedger(self.root / "results.json").get("p1"),
            {"status": "ok", "url": IMAGE, "file": "p1.jpg", "fragrantica": DETAIL},
        )

    def test_not_found_records_query_and_writes_no_image(self):
        orchestrator = self._orchestrator({})

        summary = orchestrator.run([self.items[1]], ScrapeOptions())

        self.assertEqual(summary.failed, 1)
        self.assertEqual(self.ledger.get("p2"), {"status": "not_found", "query": "Unknown Scent"})
        self.assertFalse((self.images / "p2.jpg").exists())

    def test_no_image_and_error_outcomes(self):
        orchestrator = self._orchestrator({"p1": NavigationState.IMAGE_MISSING, "p3": NavigationState.ERROR})

        orchestrator.run([self.items[0], self.items[2]], ScrapeOptions())

        self.assertEqual(self.ledger.get("p1"), {"status": "no_image", "url": DETAIL})
        self.assertEqual(self.ledger.get("p3"), {"status": "error", "error": "page crashed"})

    def test_download_failure_is_recorded_as_error(self):
        orchestrator = self._orchestrator(
            {"p1": NavigationState.IMAGE_FOUND},
            downloader=FakeDownloader(error=HttpStatusError(404, IMAGE)),
        )

        summary = orchestrator.run(self.items[:1], ScrapeOptions())

        self.assertEqual(summary.failed, 1)
        self.assertEqual(self.ledger.get("p1"), {"status": "error", "error": "HTTP 404"})
        self.assertFalse((self.images / "p1.jpg").exists())

    def test_failed_retry_removes_stale_image(self):
        (self.images / "p2.jpg").write_bytes(b"OLD")
        orchestrator = self._orchestrator({})

        orchestrator.run([self.items[1]], ScrapeOptions())

        self.assertFalse((self.images / "p2.jpg").exists())

    def test_skip_existing_is_idempotent(self):
        (self.images / "p1.jpg").write_bytes(b"KEEP")
        self.ledger.put("p1", {"status": "ok", "file": "p1.jpg"})
        orchestrator = self._orchestrator({"p1": NavigationState.IMAGE_FOUND})

        summary = orchestrator.run(self.items[:1], ScrapeOptions(skip_existing=True))

        self.assertEqual(summary.skipped, 1)
        self.assertEqual(self.navigator.calls, [])
        self.assertEqual((self.images / "p1.jpg").read_bytes(), b"KEEP")
        self.assertEqual(self.ledger.get("p1"), {"status": "ok", "file": "p1.jpg"})

    def test_skipped_item_is_still_followed_by_a_pause(self):
        (self.images / "p1.jpg").write_bytes(b"KEEP")
        orchestrator = self._orchestrator({"p2": NavigationState.IMAGE_FOUND})

        summary = orchestrator.run(self.items[:2], ScrapeOptions(skip_existing=True))

        self.assertEqual(summary.skipped, 1)
        self.assertEqual(self.navigator.calls, ["p2"])
        self.assertEqual(self.pauses, [(3000, 6000)])

    def test_dry_run_touches_nothing(self):
        orchestrator = self._orchestrator({"p1": NavigationState.IMAGE_FOUND})

        summary = orchestrator.run(self.items, ScrapeOptions(dry_run=True))

        self.assertEqual(summary.skipped, 3)
        self.assertEqual(self.navigator.calls, [])
        self.assertEqual(self.downloader.calls, [])
        self.assertEqual(len(self.ledger), 0)
        self.assertFalse((self.root / "results.json").exists())
        self.assertEqual(self.pauses, [(3000, 6000), (3000, 6000)])

    def test_pauses_between_items_but_not_after_last(self):
        orchestrator = self._orchestrator({"p1": NavigationState.IMAGE_FOUND})

        summary = orchestrator.run(self.items, ScrapeOptions())

        self.assertEqual(summary.total, 3)
        self.assertEqual(self.pauses, [(3000, 6000), (3000, 6000)])

    def test_session_state_is_shared_across_items(self):
        orchestrator = self._orchestrator({})

        orchestrator.run(self.items, ScrapeOptions())

        self.assertEqual(self.navigator.calls, ["p1", "p2", "p3"])
        self.assertTrue(all(s is orchestrator.session for s in self.navigator.sessions))

    def test_limit_processes_first_items(self):
        orchestrator = self._orchestrator({})

        summary = orchestrator.run(self.items, ScrapeOptions(limit=2))

        self.assertEqual(self.navigator.calls, ["p1", "p2"])
        self.assertEqual(summary.total, 2)

    def test_navigator_exception_becomes_error_record(self):
        orchestrator = self._orchestrator({})

        def explode(item, session):
            raise RuntimeError("browser gone")

        self.navigator.scrape_item = explode
        orchestrator.run(self.items[:1], ScrapeOptions())

        self.assertEqual(self.ledger.get("p1"), {"status": "error", "error": "browser gone"})


class TestRunScrapeDryRun(unittest.TestCase):
    def test_dry_run_needs_no_browser(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            config = {
                "storage": {
                    "images_dir": str(root / "images"),
                    "debug_dir": str(root / "debug"),
                    "results_path": str(root / "results.json"),
                },
                "scraping": {"delays": {"between_items_ms": [0, 0]}},
            }
            items = [CatalogItem(id="p1", nombre="Sauvage"), CatalogItem(id="p2", nombre="Aventus")]

            summary = run_scrape(config, ScrapeOptions(dry_run=True), items=items)

            self.assertEqual(summary.skipped, 2)
            self.assertFalse((root / "results.json").exists())
            self.assertTrue((root / "images").is_dir())


if __name__ == "__main__":
    unittest.main()
