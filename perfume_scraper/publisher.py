"""Publish orchestrator: scraped images -> Cloudinary -> Firebase product records."""

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from loguru import logger

from perfume_scraper.catalog import ProductStore
from perfume_scraper.cloud_host import CloudinaryUploader
from perfume_scraper.config_loader import (
    get_delay_range,
    get_firebase_config,
    get_storage_config,
    require_setting,
)
from perfume_scraper.ledger import LedgerStore, ledger_exists, ledger_path, open_ledger
from perfume_scraper.models import STATUS_OK, RunSummary, UploadOutcome
from perfume_scraper.transport import random_delay


# Per-item results
UPLOADED = "uploaded"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass
class PublishOptions:
    dry_run: bool = False
    skip_uploaded: bool = False
    limit: Optional[int] = None
    workers: int = 1


class PublishOrchestrator:
    """Uploads every successfully scraped image and patches its product record."""

    def __init__(
        self,
        results_ledger: LedgerStore,
        upload_ledger: LedgerStore,
        uploader: CloudinaryUploader,
        store: ProductStore,
        images_dir,
        image_field: str = "imagen",
        pause: Callable[[int, int], Any] = random_delay,
        delay_range_ms: Sequence[int] = (500, 1500),
    ):
        self.results_ledger = results_ledger
        self.upload_ledger = upload_ledger
        self.uploader = uploader
        self.store = store
        self.images_dir = Path(images_dir)
        self.image_field = image_field
        self.pause = pause
        self.delay_range_ms = tuple(delay_range_ms)

    def pending_entries(self, limit: Optional[int] = None) -> List[Tuple[str, Dict[str, Any]]]:
        """Result ledger entries with status ok, in ledger order."""
        entries = [
            (item_id, record)
            for item_id, record in self.results_ledger.items()
            if record.get("status") == STATUS_OK
        ]
        return entries[:limit] if limit is not None else entries

    def _record(self, item_id: str, outcome: UploadOutcome) -> None:
        self.upload_ledger.put(item_id, outcome.to_dict())

    def publish_item(self, item_id: str, record: Dict[str, Any], options: PublishOptions) -> str:
        """Upload one image and patch its product. Returns UPLOADED, FAILED or SKIPPED."""
        file_name = record.get("file") or f"{item_id}.jpg"
        local_file = self.images_dir / file_name
        logger.info(f"   {file_name} -> Fragrantica: {record.get('fragrantica')}")

        if options.skip_uploaded:
            previous = self.upload_ledger.get(item_id) or {}
            if previous.get("cloudinaryUrl"):
                logger.info(f"   Already uploaded: {previous['cloudinaryUrl']}")
                return SKIPPED

        if not local_file.exists():
            message = f"File not found: {local_file}"
            logger.warning(f"   {message}")
            if not options.dry_run:
                self._record(item_id, UploadOutcome.failure(message))
            return FAILED

        if options.dry_run:
            logger.info(f"   Dry run: would upload {file_name} and update {self.image_field}")
            return SKIPPED

        try:
            logger.info("   Uploading to Cloudinary...")
            cloudinary_url = self.uploader.upload(local_file, item_id)
            logger.info(f"   Cloudinary: {cloudinary_url}")

            self.store.patch(item_id, {self.image_field: cloudinary_url})
            logger.info("   Firebase updated")

            self._record(item_id, UploadOutcome.success(cloudinary_url, record.get("fragrantica")))
            return UPLOADED
        except Exception as exc:
            logger.error(f"   Error publishing {item_id}: {exc}")
            self._record(item_id, UploadOutcome.failure(str(exc) or type(exc).__name__))
            return FAILED

    @staticmethod
    def _tally(summary: RunSummary, result: str) -> None:
        if result == UPLOADED:
            summary.success += 1
        elif result == FAILED:
            summary.failed += 1
        else:
            summary.skipped += 1

    def run(self, options: PublishOptions) -> RunSummary:
        entries = self.pending_entries(options.limit)
        total = len(entries)
        summary = RunSummary(outputs={"upload_log": getattr(self.upload_ledger, "location", "")})
        logger.info(f"{total} images to upload{' (DRY RUN)' if options.dry_run else ''}...")

        if options.workers > 1 and total > 1:
            return self._run_parallel(entries, options, summary)

        for index, (item_id, record) in enumerate(entries):
            logger.info(f"[{index + 1}/{total}] {item_id}")
            result = self.publish_item(item_id, record, options)
            self._tally(summary, result)

            if index < total - 1:
                self.pause(*self.delay_range_ms)

        return summary

    def _run_parallel(self, entries, options: PublishOptions, summary: RunSummary) -> RunSummary:
        lock = threading.Lock()

        def _worker(entry):
            item_id, record = entry
            result = self.publish_item(item_id, record, options)
            with lock:
                self._tally(summary, result)

        logger.info(f"Publishing with {options.workers} workers")
        with ThreadPoolExecutor(max_workers=options.workers) as pool:
            # list() re-raises worker exceptions
            list(pool.map(_worker, entries))
        return summary


def run_publish(
    config: Dict[str, Any],
    options: PublishOptions,
    uploader: Optional[CloudinaryUploader] = None,
    store: Optional[ProductStore] = None,
) -> RunSummary:
    """Validate configuration and run the publish pass.

    Raises:
        ConfigurationError: Cloudinary or Firebase settings missing.
        FileNotFoundError: The scrape pass has not produced a results ledger.
        LedgerCorruptError: A ledger exists but cannot be parsed.
    """
    firebase = get_firebase_config(config)
    storage = get_storage_config(config)

    uploader = uploader or CloudinaryUploader.from_config(config)
    if store is None:
        database_url = require_setting(firebase.get("database_url"), "NEXT_PUBLIC_FIREBASE_DATABASE_URL")
        store = ProductStore.from_config(config, database_url=database_url)

    if not ledger_exists(config, "results"):
        raise FileNotFoundError(
            f"Results ledger not found ({ledger_path(config, 'results')}). Run the scrape command first."
        )

    delays = config.get("publishing", {}).get("delays", {})
    orchestrator = PublishOrchestrator(
        results_ledger=open_ledger(config, "results"),
        upload_ledger=open_ledger(config, "uploads"),
        uploader=uploader,
        store=store,
        images_dir=storage.get("images_dir", "data/images"),
        image_field=firebase.get("image_field", "imagen"),
        delay_range_ms=get_delay_range(delays, "between_items_ms", [500, 1500]),
    )
    return orchestrator.run(options)
