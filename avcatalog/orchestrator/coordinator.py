"""Job coordination for avcatalog."""

import json
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from ..catalog.parsing import validate_product_data
from ..catalog.registry import site_provider_ids
from ..crawlers import CRAWLERS, BaseCrawler
from ..jobs import backfill, news, reconcile
from ..publishing.indexing import IndexNowClient, ping_sitemap
from ..publishing.sitemap import write_sitemaps
from ..storage import queries
from ..storage.database import Database, RawUpsertResult
from ..utils.config import get_config


class JobCoordinator:
    """Coordinates ingestion, maintenance and publishing jobs."""

    def __init__(
        self,
        config: Optional[Dict] = None,
        db: Optional[Database] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize job coordinator.

        Args:
            config: Optional configuration dictionary
            db: Optional database; built from config["database"] when omitted
            transport: Optional httpx transport shared by every outbound client
        """
        if config is None:
            config = get_config().model_dump()

        self.config = config
        self.transport = transport

        if db is None:
            db_config = config.get("database", {})
            db = Database(db_config.get("url", "sqlite:///data/db/catalog.db"), echo=db_config.get("echo", False))
        self.db = db

        self.site_asps = site_provider_ids(config.get("site", {}).get("mode", "adult-v"))

        self._init_crawlers()

    def _init_crawlers(self):
        """Instantiate every enabled crawler."""
        sources = self.config.get("sources", {})
        self.crawlers: Dict[str, BaseCrawler] = {}

        for name, crawler_class in CRAWLERS.items():
            if not sources.get(name, {}).get("enabled", True):
                logger.info(f"Crawler {name} disabled by configuration")
                continue
            self.crawlers[name] = crawler_class(self.db, self.config, transport=self.transport)

        logger.info(f"Initialized {len(self.crawlers)} crawlers")

    async def run_crawler(self, name: str) -> Optional[Dict[str, Any]]:
        """Run one crawler.

        Args:
            name: Crawler name (duga, sokmil, b10f)

        Returns:
            Crawler stats, or None when the crawler is unknown or unconfigured
        """
        crawler = self.crawlers.get(name)
        if not crawler:
            logger.error(f"Unknown or disabled crawler: {name}")
            return None

        if not crawler.is_configured():
            logger.warning(f"Skipping {name}: credentials are not configured")
            return None

        stats = await crawler.run()
        return stats.to_dict()

    async def run_all_crawlers(self) -> Dict[str, Optional[Dict[str, Any]]]:
        """Run every crawler in turn; one failing crawler does not stop the others."""
        results = {}
        for name in self.crawlers:
            try:
                results[name] = await self.run_crawler(name)
            except Exception as e:
                logger.error(f"Error in crawler {name}: {e}")
                results[name] = None
        return results

    async def reprocess_raw_data(self, limit: int = 100) -> int:
        """Build products again from staged raw rows that were never processed.

        Args:
            limit: Maximum rows per crawler

        Returns:
            Number of products saved
        """
        saved = 0

        for name, crawler in self.crawlers.items():
            rows = self.db.get_unprocessed_raw(crawler.raw_table, source=crawler.source_name, limit=limit)
            if not rows:
                continue
            logger.info(f"Reprocessing {len(rows)} raw rows for {name}")

            for row in rows:
                try:
                    if crawler.raw_table == "csv":
                        raw = row.raw_data
                    else:
                        raw = json.loads(row.html_content)

                    parsed = crawler.parse_item(raw)
                    if parsed is None or not validate_product_data(
                        parsed.title, parsed.description, crawler.asp_name, parsed.original_id
                    ).is_valid:
                        # Nothing usable in this payload; do not retry it every run
                        self.db.mark_raw_processed(crawler.raw_table, row.id)
                        continue

                    staged = RawUpsertResult(
                        id=row.id, is_new=False, should_skip=False, table=crawler.raw_table, hash=row.hash
                    )
                    crawler.save(parsed, staged)
                    saved += 1

                except Exception as e:
                    logger.error(f"Error reprocessing {name} raw row {row.id}: {e}")

        logger.info(f"Reprocessed {saved} products from raw data")
        return saved

    async def run_backfill(self) -> Dict[str, int]:
        """Repair thumbnails and the denormalized listing columns."""
        logger.info("Starting backfill")
        result = {
            "thumbnails": backfill.backfill_thumbnails(self.db),
            "recomputed": backfill.recompute_denormalized(self.db),
        }
        logger.info(f"Backfill completed: {result}")
        return result

    async def run_reconcile(self, dry_run: bool = False) -> Dict[str, Any]:
        """Merge duplicate products across ASPs, then duplicate performers."""
        logger.info("Starting reconcile")
        result = reconcile.reconcile_duplicates(self.db, dry_run=dry_run)
        if not dry_run:
            result["performersMerged"] = reconcile.merge_duplicate_performers(self.db)
        return result

    async def expire_sales(self) -> int:
        """Deactivate sales that have ended."""
        return backfill.expire_sales(self.db)

    async def generate_news(self, now: Optional[datetime] = None) -> Dict[str, bool]:
        """Publish the daily new-release and sale digests."""
        return news.generate_news(self.db, now=now)

    async def publish_sitemaps(self, out_dir: Optional[str] = None) -> List[Path]:
        """Write sitemaps, ping search engines and submit recent URLs to IndexNow.

        Args:
            out_dir: Output directory; defaults to indexing.sitemap_dir

        Returns:
            Paths of the written sitemap files
        """
        indexing = self.config.get("indexing", {})
        site_url = self.config.get("site", {}).get("site_url", "").rstrip("/")
        out_dir = out_dir or indexing.get("sitemap_dir", "data/sitemaps")

        paths = write_sitemaps(self.db, out_dir, site_url, site_asps=self.site_asps)

        endpoints = indexing.get("ping_endpoints") or []
        if endpoints:
            await ping_sitemap(f"{site_url}/sitemap.xml", endpoints, transport=self.transport)

        key = indexing.get("indexnow_key")
        if key:
            since = datetime.utcnow() - timedelta(hours=indexing.get("recent_hours", 24))
            product_ids = queries.recently_updated_products(self.db, since)
            urls = [f"{site_url}/products/{product_id}" for product_id in product_ids]
            client = IndexNowClient(
                key=key,
                host=site_url,
                key_location=indexing.get("key_location") or None,
                endpoint=indexing.get("indexnow_endpoint") or "https://api.indexnow.org/indexnow",
                transport=self.transport,
            )
            try:
                await client.submit_urls(urls)
            except Exception as e:
                logger.error(f"IndexNow submission failed: {e}")

        return paths
