"""Main entry point for avcatalog."""

import argparse
import asyncio
import json
import sys

from loguru import logger

from .orchestrator.coordinator import JobCoordinator
from .orchestrator.scheduler import JobScheduler
from .utils.config import get_config
from .utils.logger import setup_logging


def _init():
    """Load configuration and configure logging."""
    config = get_config()
    setup_logging(config.logging.level, config.logging.file)
    return config


async def run_scheduler():
    """Run the job scheduler."""
    config = _init()

    logger.info("=" * 80)
    logger.info("avcatalog scheduler - Starting")
    logger.info("=" * 80)

    coordinator = JobCoordinator(config.model_dump())
    scheduler = JobScheduler(coordinator, config.model_dump())

    scheduler.configure_jobs()
    scheduler.start()

    logger.info("Scheduler started. Press Ctrl+C to stop.")

    try:
        while True:
            await asyncio.sleep(1)
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Shutting down...")
        scheduler.stop()


async def run_crawl(name: str):
    """Run one crawler, or all of them."""
    config = _init()
    coordinator = JobCoordinator(config.model_dump())

    if name == "all":
        results = await coordinator.run_all_crawlers()
    else:
        results = {name: await coordinator.run_crawler(name)}

    logger.info(f"Crawl finished: {json.dumps(results, ensure_ascii=False, default=str)}")


async def run_job(job: str, **kwargs):
    """Run a single coordinator job by method name."""
    config = _init()
    coordinator = JobCoordinator(config.model_dump())

    logger.info(f"Running job: {job}")
    result = await getattr(coordinator, job)(**kwargs)
    logger.info(f"Job {job} completed: {result}")


def run_api():
    """Run the FastAPI server."""
    import uvicorn

    from .api.main import app

    config = _init()

    logger.info("=" * 80)
    logger.info("avcatalog API - Starting")
    logger.info("=" * 80)

    uvicorn.run(
        app,
        host=config.api.host,
        port=config.api.port,
        log_level="info",
    )


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="avcatalog: affiliate video catalog")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("scheduler", help="Run the job scheduler")
    subparsers.add_parser("api", help="Run the API server")

    crawl_parser = subparsers.add_parser("crawl", help="Run a crawler")
    crawl_parser.add_argument(
        "crawler",
        choices=["duga", "sokmil", "b10f", "all"],
        help="Crawler to run",
    )

    reprocess_parser = subparsers.add_parser("reprocess", help="Rebuild products from unprocessed raw data")
    reprocess_parser.add_argument("--limit", type=int, default=100, help="Rows per crawler")

    subparsers.add_parser("backfill", help="Repair thumbnails and denormalized columns")

    reconcile_parser = subparsers.add_parser("reconcile", help="Merge duplicate products and performers")
    reconcile_parser.add_argument("--dry-run", action="store_true", help="Only report duplicates")

    subparsers.add_parser("news", help="Generate today's news digests")

    sitemap_parser = subparsers.add_parser("sitemap", help="Write sitemaps and notify search engines")
    sitemap_parser.add_argument("--out", default=None, help="Output directory")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        if args.command == "scheduler":
            asyncio.run(run_scheduler())
        elif args.command == "api":
            run_api()
        elif args.command == "crawl":
            asyncio.run(run_crawl(args.crawler))
        elif args.command == "reprocess":
            asyncio.run(run_job("reprocess_raw_data", limit=args.limit))
        elif args.command == "backfill":
            asyncio.run(run_job("run_backfill"))
        elif args.command == "reconcile":
            asyncio.run(run_job("run_reconcile", dry_run=args.dry_run))
        elif args.command == "news":
            asyncio.run(run_job("generate_news"))
        elif args.command == "sitemap":
            asyncio.run(run_job("publish_sitemaps", out_dir=args.out))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.opt(exception=True).error(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
