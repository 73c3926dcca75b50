#!/usr/bin/env python3
"""Shared helpers for pipeline scripts."""

from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path
from time import perf_counter
from typing import Any, Dict, List, Optional


ROOT = Path(__file__).resolve().parents[1]


def run_cmd(args: List[str], env: Optional[Dict[str, str]] = None) -> float:
    print(f"\n>>> {' '.join(args)}")
    started = perf_counter()
    completed = subprocess.run(args, cwd=ROOT, env=env or os.environ.copy())
    duration = perf_counter() - started
    if completed.returncode != 0:
        raise RuntimeError(f"Command failed ({completed.returncode}): {' '.join(args)}")
    return duration


def cli_cmd(config_path: Optional[str], *extra: str) -> List[str]:
    cmd = [sys.executable, "-m", "perfume_scraper.cli"]
    if config_path:
        cmd.extend(["--config", config_path])
    cmd.extend(extra)
    return cmd


def stage_record(name: str, command: List[str], duration_seconds: float) -> Dict[str, Any]:
    return {
        "stage": name,
        "command": " ".join(command),
        "duration_seconds": round(duration_seconds, 3),
    }


def write_timing_payload(path: Path, payload: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
