"""Tests for JSON and SQL outcome ledgers."""

import json
import sys
import tempfile
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from perfume_scraper.ledger import (
    JsonLedger,
    LedgerCorruptError,
    SqlLedger,
    ledger_exists,
    open_ledger,
)
from perfume_scraper.models import get_engine


class TestJsonLedger(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp.name) / "results.json"

    def tearDown(self):
        self.tmp.cleanup()

    def test_put_persists_pretty_json(self):
        ledger = JsonLedger(self.path)
        ledger.put("p1", {"status": "ok", "url": "https://fimgs.net/1.jpg", "file": "p1.jpg"})
        ledger.put("p2", {"status": "not_found", "query": "Ébène"})

        raw = self.path.read_text(encoding="utf-8")
        self.assertIn('\n  "p1"', raw)
        self.assertIn("Ébène", raw)

        reopened = JsonLedger(self.path)
        self.assertEqual(reopened.get("p2"), {"status": "not_found", "query": "Ébène"})
        self.assertEqual(list(reopened.all()), ["p1", "p2"])
        self.assertIn("p1", reopened)
        self.assertEqual(len(reopened), 2)

    def test_put_replaces_previous_record(self):
        ledger = JsonLedger(self.path)
        ledger.put("p1", {"status": "error", "error": "HTTP 404"})
        ledger.put("p1", {"status": "ok", "file": "p1.jpg"})
        self.assertEqual(json.loads(self.path.read_text(encoding="utf-8")), {"p1": {"status": "ok", "file": "p1.jpg"}})

    def test_no_temp_files_left_behind(self):
        ledger = JsonLedger(self.path)
        for index in range(5):
            ledger.put(f"p{index}", {"status": "ok"})
        self.assertEqual([p.name for p in Path(self.tmp.name).iterdir()], ["results.json"])

    def test_rewrite_all(self):
        ledger = JsonLedger(self.path)
        ledger.put("p1", {"status": "ok"})
        ledger.rewrite_all({"p9": {"status": "no_image"}})
        self.assertEqual(JsonLedger(self.path).all(), {"p9": {"status": "no_image"}})

    def test_returned_records_are_copies(self):
        ledger = JsonLedger(self.path)
        ledger.put("p1", {"status": "ok"})
        record = ledger.get("p1")
        record["status"] = "mutated"
        self.assertEqual(ledger.get("p1")["status"], "ok")

    def test_corrupt_file_raises(self):
        self.path.write_text("{not json", encoding="utf-8")
        with self.assertRaises(LedgerCorruptError):
            JsonLedger(self.path)

    def test_non_object_file_raises(self):
        self.path.write_text("[1, 2]", encoding="utf-8")
        with self.assertRaises(LedgerCorruptError):
            JsonLedger(self.path)


class TestSqlLedger(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.config = {
            "storage": {
                "ledger_backend": "sqlite",
                "sqlite": {"database_path": str(Path(self.tmp.name) / "ledger.db")},
            }
        }
        self.engine = get_engine(self.config)

    def tearDown(self):
        self.engine.dispose()
        self.tmp.cleanup()

    def test_put_get_and_upsert(self):
        ledger = SqlLedger(self.engine, "results")
        ledger.put("p1", {"status": "error", "error": "HTTP 404"})
        ledger.put("p1", {"status": "ok", "file": "p1.jpg"})
        ledger.put("p2", {"status": "not_found", "query": "Sauvage"})

        self.assertEqual(ledger.get("p1"), {"status": "ok", "file": "p1.jpg"})
        self.assertIsNone(ledger.get("missing"))
        self.assertEqual(list(ledger.all()), ["p1", "p2"])

    def test_ledgers_are_isolated_by_name(self):
        results = SqlLedger(self.engine, "results")
        uploads = SqlLedger(self.engine, "uploads")
        results.put("p1", {"status": "ok"})
        self.assertEqual(len(results), 1)
        self.assertEqual(len(uploads), 0)

    def test_rewrite_all(self):
        ledger = SqlLedger(self.engine, "uploads")
        ledger.put("p1", {"error": "x"})
        ledger.rewrite_all({"p2": {"cloudinaryUrl": "https://res.cloudinary.com/x.jpg"}})
        self.assertEqual(ledger.all(), {"p2": {"cloudinaryUrl": "https://res.cloudinary.com/x.jpg"}})

    def test_open_ledger_uses_configured_backend(self):
        ledger = open_ledger(self.config, "results")
        self.assertIsInstance(ledger, SqlLedger)
        self.assertFalse(ledger_exists(self.config, "results"))
        ledger.put("p1", {"status": "ok"})
        self.assertTrue(ledger_exists(self.config, "results"))
        ledger.engine.dispose()


class TestOpenLedger(unittest.TestCase):
    def test_json_backend_and_paths(self):
        with tempfile.TemporaryDirectory() as tmp:
            config = {
                "storage": {
                    "ledger_backend": "json",
                    "results_path": str(Path(tmp) / "results.json"),
                    "upload_log_path": str(Path(tmp) / "upload-log.json"),
                }
            }
            results = open_ledger(config, "results")
            uploads = open_ledger(config, "uploads")
            self.assertIsInstance(results, JsonLedger)
            self.assertTrue(uploads.location.endswith("upload-log.json"))
            self.assertFalse(ledger_exists(config, "results"))
            results.put("p1", {"status": "ok"})
            self.assertTrue(ledger_exists(config, "results"))

    def test_unknown_ledger_name(self):
        with self.assertRaises(ValueError):
            open_ledger({}, "prices")


if __name__ == "__main__":
    unittest.main()
