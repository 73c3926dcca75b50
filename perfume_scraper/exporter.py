"""Export ledger status to CSV."""

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import pandas as pd
from loguru import logger

from perfume_scraper.config_loader import get_storage_config
from perfume_scraper.ledger import LedgerStore, open_ledger


STATUS_COLUMNS = [
    "id",
    "status",
    "file",
    "image_url",
    "fragrantica",
    "query",
    "error",
    "cloudinary_url",
    "uploaded_at",
    "upload_error",
    "upload_attempted_at",
]


def build_status_frame(results: LedgerStore, uploads: LedgerStore) -> pd.DataFrame:
    """One row per scraped item, with its upload outcome joined in."""
    scrape_rows = [
        {
            "id": item_id,
            "status": record.get("status"),
            "file": record.get("file"),
            "image_url": record.get("url") if record.get("status") == "ok" else None,
            "fragrantica": record.get("fragrantica") or (record.get("url") if record.get("status") == "no_image" else None),
            "query": record.get("query"),
            "error": record.get("error"),
        }
        for item_id, record in results.items()
    ]
    upload_rows = [
        {
            "id": item_id,
            "cloudinary_url": record.get("cloudinaryUrl"),
            "uploaded_at": record.get("uploadedAt"),
            "upload_error": record.get("error"),
            "upload_attempted_at": record.get("attemptedAt"),
        }
        for item_id, record in uploads.items()
    ]

    scrape_df = pd.DataFrame(scrape_rows, columns=STATUS_COLUMNS[:7])
    upload_df = pd.DataFrame(upload_rows, columns=["id"] + STATUS_COLUMNS[7:])
    merged = scrape_df.merge(upload_df, on="id", how="left")
    return merged[STATUS_COLUMNS]


def export_status_csv(
    config: Dict[str, Any],
    output_dir: Optional[str] = None,
) -> Dict[str, Any]:
    """Write the joined ledger status to a timestamped CSV.

    Returns:
        Dictionary with the CSV path, row count and counts per status.
    """
    if output_dir is None:
        output_dir = get_storage_config(config).get("exports_dir", "data/exports")
    Path(output_dir).mkdir(parents=True, exist_ok=True)

    df = build_status_frame(open_ledger(config, "results"), open_ledger(config, "uploads"))

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    path = Path(output_dir) / f"status_{timestamp}.csv"
    df.to_csv(path, index=False)
    logger.info(f"Exported {len(df)} ledger rows to {path}")

    counts = df["status"].value_counts().to_dict() if not df.empty else {}
    uploaded = int(df["cloudinary_url"].notna().sum()) if not df.empty else 0
    return {
        "path": str(path),
        "rows": len(df),
        "by_status": {str(k): int(v) for k, v in counts.items()},
        "uploaded": uploaded,
    }
