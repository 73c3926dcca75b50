"""Tests for pipeline script helpers."""

import argparse
import json
import sys
import tempfile
import unittest
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent.parent))

from scripts.pipeline_common import cli_cmd, run_cmd, stage_record, write_timing_payload
from scripts.run_pipeline import build_stages


class TestPipelineCommon(unittest.TestCase):
    def test_cli_cmd_targets_package_module(self):
        cmd = cli_cmd("custom.yaml", "scrape", "--skip-existing")
        self.assertEqual(cmd[1:3], ["-m", "perfume_scraper.cli"])
        self.assertEqual(cmd[3:], ["--config", "custom.yaml", "scrape", "--skip-existing"])

    def test_cli_cmd_without_config(self):
        self.assertEqual(cli_cmd(None, "publish")[3:], ["publish"])

    def test_stage_record_rounds_duration(self):
        record = stage_record("scrape", ["python", "-m", "perfume_scraper.cli", "scrape"], 12.34567)
        self.assertEqual(
            record,
            {"stage": "scrape", "command": "python -m perfume_scraper.cli scrape", "duration_seconds": 12.346},
        )

    def test_run_cmd_raises_on_failure(self):
        with patch("scripts.pipeline_common.subprocess.run", return_value=SimpleNamespace(returncode=2)):
            with self.assertRaises(RuntimeError):
                run_cmd(["false"])

    def test_run_cmd_returns_duration(self):
        with patch("scripts.pipeline_common.subprocess.run", return_value=SimpleNamespace(returncode=0)):
            self.assertGreaterEqual(run_cmd(["true"]), 0.0)

    def test_write_timing_payload(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "logs" / "timing.json"
            write_timing_payload(path, {"status": "completed", "stages": []})
            self.assertEqual(json.loads(path.read_text(encoding="utf-8"))["status"], "completed")


class TestRunPipelineStages(unittest.TestCase):
    def _args(self, **overrides):
        values = {
            "config": None,
            "limit": None,
            "skip_scrape": False,
            "skip_publish": False,
            "skip_existing": False,
            "skip_uploaded": False,
            "dry_run_publish": False,
            "export": False,
        }
        values.update(overrides)
        return argparse.Namespace(**values)

    def test_default_stages(self):
        names = [name for name, _cmd in build_stages(self._args())]
        self.assertEqual(names, ["init", "scrape", "publish"])

    def test_flags_are_forwarded(self):
        stages = dict(build_stages(self._args(skip_existing=True, skip_uploaded=True, limit=5, export=True)))
        self.assertEqual(stages["scrape"][-3:], ["--skip-existing", "--limit", "5"])
        self.assertEqual(stages["publish"][-3:], ["--skip-uploaded", "--limit", "5"])
        self.assertIn("export", stages)

    def test_skip_stages(self):
        names = [name for name, _cmd in build_stages(self._args(skip_scrape=True, skip_publish=True))]
        self.assertEqual(names, ["init"])


if __name__ == "__main__":
    unittest.main()
