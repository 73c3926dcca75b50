#!/usr/bin/env python3
"""Run scrape then publish as one timed pipeline."""

from __future__ import annotations

import argparse
import sys
from datetime import datetime, timezone
from pathlib import Path
from time import perf_counter
from typing import Any, Dict, List


ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from scripts.pipeline_common import cli_cmd, run_cmd, stage_record, write_timing_payload  # noqa: E402


def build_stages(args: argparse.Namespace) -> List[tuple]:
    stages = [("init", cli_cmd(args.config, "init"))]

    if not args.skip_scrape:
        scrape = ["scrape"]
        if args.skip_existing:
            scrape.append("--skip-existing")
        if args.limit is not None:
            scrape.extend(["--limit", str(args.limit)])
        stages.append(("scrape", cli_cmd(args.config, *scrape)))

    if not args.skip_publish:
        publish = ["publish"]
        if args.skip_uploaded:
            publish.append("--skip-uploaded")
        if args.dry_run_publish:
            publish.append("--dry-run")
        if args.limit is not None:
            publish.extend(["--limit", str(args.limit)])
        stages.append(("publish", cli_cmd(args.config, *publish)))

    if args.export:
        stages.append(("export", cli_cmd(args.config, "export")))

    return stages


def main() -> int:
    parser = argparse.ArgumentParser(description="Scrape Fragrantica images, then publish them to Cloudinary/Firebase.")
    parser.add_argument("--config", default=None, help="Optional config.yaml path")
    parser.add_argument("--limit", type=int, default=None, help="Only process the first N items per stage")
    parser.add_argument("--skip-scrape", action="store_true", help="Skip scrape step")
    parser.add_argument("--skip-publish", action="store_true", help="Skip publish step")
    parser.add_argument("--skip-existing", action="store_true", help="Pass --skip-existing to scrape")
    parser.add_argument("--skip-uploaded", action="store_true", help="Pass --skip-uploaded to publish")
    parser.add_argument("--dry-run-publish", action="store_true", help="Pass --dry-run to publish")
    parser.add_argument("--export", action="store_true", help="Export ledger status CSV at the end")
    parser.add_argument(
        "--timing-output",
        default="data/logs/pipeline_timing.json",
        help="Where to write stage timings (default: data/logs/pipeline_timing.json)",
    )
    args = parser.parse_args()

    payload: Dict[str, Any] = {
        "started_at": datetime.now(timezone.utc).isoformat(),
        "status": "running",
        "stages": [],
    }
    started = perf_counter()
    exit_code = 0

    try:
        for name, command in build_stages(args):
            duration = run_cmd(command)
            payload["stages"].append(stage_record(name, command, duration))
        payload["status"] = "completed"
    except Exception as exc:
        print(f"\nERROR: {exc}", file=sys.stderr)
        payload["status"] = "failed"
        payload["error"] = str(exc)
        exit_code = 1
    finally:
        payload["total_seconds"] = round(perf_counter() - started, 3)
        payload["completed_at"] = datetime.now(timezone.utc).isoformat()
        timing_path = Path(args.timing_output)
        if not timing_path.is_absolute():
            timing_path = ROOT / timing_path
        write_timing_payload(timing_path, payload)
        print(f"Timing written to {timing_path}")

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
