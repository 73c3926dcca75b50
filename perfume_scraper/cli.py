"""Command-line interface for the perfume image scraper."""

import sys
from pathlib import Path
from typing import Optional

import click
from loguru import logger

from perfume_scraper.config_loader import ensure_directories, get_storage_config, load_config
from perfume_scraper.exporter import export_status_csv
from perfume_scraper.publisher import PublishOptions, run_publish
from perfume_scraper.scraper import ScrapeOptions, run_scrape


def setup_logging(config: dict, verbose: bool = False):
    """Setup logging configuration."""
    log_config = config.get("logging", {})
    level = "DEBUG" if verbose else log_config.get("level", "INFO")
    log_file = log_config.get("file", "data/logs/scraper.log")

    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(
        sys.stdout,
        level=level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )
    logger.add(
        log_file,
        level=level,
        rotation=log_config.get("rotation", "1 week"),
        retention=log_config.get("retention", "1 month"),
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name} | {message}",
    )


def _echo_summary(title: str, summary, labels=("Success", "Failed", "Skipped")):
    click.echo(f"\n{'='*50}")
    click.echo(title)
    click.echo(f"{'='*50}")
    click.echo(f"{labels[0]}: {summary.success} | {labels[1]}: {summary.failed} | {labels[2]}: {summary.skipped}")
    for name, location in summary.outputs.items():
        if location:
            click.echo(f"{name}: {location}")
    click.echo(f"{'='*50}")


@click.group()
@click.option("--config", "-c", type=click.Path(exists=True), help="Path to config file")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx, config: Optional[str], verbose: bool):
    """Perfume image scraper - Fragrantica images to Cloudinary and Firebase."""
    ctx.ensure_object(dict)

    try:
        cfg = load_config(config)
        ctx.obj["config"] = cfg
        ctx.obj["config_path"] = config

        ensure_directories(cfg)
        setup_logging(cfg, verbose=verbose)

    except Exception as e:
        click.echo(f"Error loading configuration: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--dry-run", is_flag=True, help="Print the intended queries without opening the browser")
@click.option("--skip-existing", is_flag=True, help="Skip items whose image is already downloaded")
@click.option("--headed", is_flag=True, help="Show the browser window (debug)")
@click.option("--limit", "-n", type=click.IntRange(min=0), default=None, help="Only process the first N perfumes")
@click.pass_context
def scrape(ctx, dry_run: bool, skip_existing: bool, headed: bool, limit: Optional[int]):
    """Scrape Fragrantica images for the catalog."""
    config = ctx.obj["config"]
    options = ScrapeOptions(dry_run=dry_run, skip_existing=skip_existing, headless=not headed, limit=limit)

    logger.info(
        "Starting scrape: dry_run={}, skip_existing={}, headed={}, limit={}",
        dry_run,
        skip_existing,
        headed,
        limit,
    )

    try:
        summary = run_scrape(config, options)
    except Exception as e:
        logger.exception("Scrape failed")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    _echo_summary("SCRAPE RESULTS", summary)


@cli.command()
@click.option("--dry-run", is_flag=True, help="Preview without uploading")
@click.option("--skip-uploaded", is_flag=True, help="Skip items that already have a Cloudinary URL")
@click.option("--limit", "-n", type=click.IntRange(min=0), default=None, help="Only process the first N images")
@click.option("--workers", type=click.IntRange(min=1), default=None, help="Parallel uploads (default from config)")
@click.pass_context
def publish(ctx, dry_run: bool, skip_uploaded: bool, limit: Optional[int], workers: Optional[int]):
    """Upload scraped images to Cloudinary and update Firebase."""
    config = ctx.obj["config"]
    if workers is None:
        workers = int(config.get("publishing", {}).get("workers", 1))
    options = PublishOptions(dry_run=dry_run, skip_uploaded=skip_uploaded, limit=limit, workers=workers)

    logger.info(
        "Starting publish: dry_run={}, skip_uploaded={}, limit={}, workers={}",
        dry_run,
        skip_uploaded,
        limit,
        workers,
    )

    try:
        summary = run_publish(config, options)
    except Exception as e:
        logger.exception("Publish failed")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    _echo_summary("PUBLISH RESULTS", summary, labels=("Uploaded", "Failed", "Skipped"))


@cli.command()
@click.option("--output", "-o", type=click.Path(), help="Output directory")
@click.pass_context
def export(ctx, output: Optional[str]):
    """Export scrape/upload ledger status to CSV."""
    config = ctx.obj["config"]

    try:
        report = export_status_csv(config, output_dir=output)
    except Exception as e:
        logger.exception("Export failed")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"CSV: {report['path']} ({report['rows']} rows)")
    for status, count in sorted(report["by_status"].items()):
        click.echo(f"  - {status}: {count}")
    click.echo(f"  - uploaded: {report['uploaded']}")


@cli.command()
@click.pass_context
def init(ctx):
    """Create data directories and the SQL ledger table when configured."""
    config = ctx.obj["config"]

    try:
        ensure_directories(config)
        backend = get_storage_config(config).get("ledger_backend", "json")
        click.echo("[OK] Directories created")
        if backend != "json":
            from perfume_scraper.models import get_engine, init_db

            init_db(get_engine(config, backend))
            click.echo("[OK] Ledger table initialized")

        click.echo("\nNext steps:")
        click.echo("  1. Run: perfume-scraper scrape --dry-run")
        click.echo("  2. Run: perfume-scraper scrape --skip-existing")
        click.echo("  3. Run: perfume-scraper publish --skip-uploaded")

    except Exception as e:
        logger.exception("Initialization failed")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
