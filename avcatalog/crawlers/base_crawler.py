"""Base crawler class for all ASP importers"""

import json
import re
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from ..catalog.parsing import validate_product_data
from ..storage.database import Database, RawUpsertResult, SaveResult
from ..storage.models import ParsedProduct
from ..utils.rate_limiter import get_rate_limiter


def to_int(value: Any) -> Optional[int]:
    """Digits of a price or count field as int: "1,980円" -> 1980."""
    if value is None or value == "":
        return None
    digits = re.sub(r"[^0-9]", "", str(value))
    return int(digits) if digits else None


@dataclass
class CrawlerStats:
    """Counters for one crawler run."""

    total_fetched: int = 0
    new_products: int = 0
    updated_products: int = 0
    skipped_unchanged: int = 0
    skipped_invalid: int = 0
    raw_data_saved: int = 0
    errors: int = 0
    sales_saved: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat() if self.started_at else None
        data["completed_at"] = self.completed_at.isoformat() if self.completed_at else None
        return data


class BaseCrawler(ABC):
    """Abstract base class for all crawlers.

    Subclasses fetch raw items (API records or CSV rows) and turn each into a
    ParsedProduct; staging, validation, persistence and bookkeeping live here.
    """

    # "html" stages JSON payloads in raw_html_data, "csv" stages rows in raw_csv_data
    raw_table = "html"
    data_source = "API"
    # Wait on the rate limiter after every item; API and CSV crawlers pace requests instead
    throttle_items = True

    def __init__(
        self,
        db: Database,
        config: dict,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.db = db
        self.config = config
        self.transport = transport

        crawling = config.get("crawling", {})
        self.force_reprocess = crawling.get("force_reprocess", False)
        self.max_retries = crawling.get("max_retries", 3)
        self.timeout = crawling.get("timeout", 30)
        self.rate_limiter = get_rate_limiter(self.source_name, crawling.get("rate_limits"))
        self.stats = CrawlerStats()

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Unique identifier of this crawler, used for raw staging and rate limits"""
        pass

    @property
    @abstractmethod
    def asp_name(self) -> str:
        """asp_name stored on product_sources"""
        pass

    @abstractmethod
    async def fetch_items(self) -> List[Any]:
        """Fetch raw items from the source"""
        pass

    @abstractmethod
    def parse_item(self, raw: Any) -> Optional[ParsedProduct]:
        """Turn one raw item into a ParsedProduct, or None when unusable"""
        pass

    def raw_url(self, raw: Any) -> str:
        """URL recorded alongside a staged payload"""
        return ""

    def is_configured(self) -> bool:
        """Whether the credentials this crawler needs are present"""
        return True

    async def on_complete(self):
        """Hook run after all items were processed successfully"""
        pass

    def get_http_client(self) -> httpx.AsyncClient:
        """HTTP client honouring the configured timeout and test transport"""
        return httpx.AsyncClient(
            timeout=float(self.timeout),
            transport=self.transport,
            follow_redirects=True,
            headers={"User-Agent": "avcatalog/1.0"},
        )

    def stage_raw(self, product_id: str, raw: Any) -> RawUpsertResult:
        """Store the raw item; the hash is taken over sorted-key JSON."""
        if self.raw_table == "csv":
            return self.db.upsert_raw_csv(self.source_name, product_id, raw)
        content = json.dumps(raw, sort_keys=True, ensure_ascii=False, default=str)
        return self.db.upsert_raw_html(self.source_name, product_id, content, url=self.raw_url(raw))

    def save(self, parsed: ParsedProduct, staged: Optional[RawUpsertResult]) -> SaveResult:
        return self.db.save_parsed_product(
            self.asp_name, parsed, raw=staged, data_source=self.data_source
        )

    async def process_item(self, raw: Any):
        """Parse, validate, stage and save one item, updating self.stats"""
        try:
            parsed = self.parse_item(raw)
            if parsed is None:
                self.stats.skipped_invalid += 1
                return

            validation = validate_product_data(
                parsed.title, parsed.description, self.asp_name, parsed.original_id
            )
            if not validation.is_valid:
                logger.debug(f"[{self.source_name}] Skipping {parsed.original_id}: {validation.reason}")
                self.stats.skipped_invalid += 1
                return

            staged = self.stage_raw(parsed.original_id, raw)
            if staged.is_new:
                self.stats.raw_data_saved += 1
            if staged.should_skip and not self.force_reprocess:
                self.stats.skipped_unchanged += 1
                return

            result = self.save(parsed, staged)
            if result.is_new:
                self.stats.new_products += 1
            else:
                self.stats.updated_products += 1
            if result.sale_saved:
                self.stats.sales_saved += 1

        except Exception as e:
            self.stats.errors += 1
            logger.error(f"[{self.source_name}] Error processing item: {e}")

        finally:
            if self.throttle_items:
                await self.rate_limiter.wait()

    async def run(self) -> CrawlerStats:
        """Fetch and process every item, recording the run in crawl_jobs"""
        self.stats = CrawlerStats(started_at=datetime.utcnow())
        job_id = self.db.start_crawl_job(self.source_name)
        status, error = "completed", None

        logger.info(f"Starting crawler: {self.source_name}")
        try:
            items = await self.fetch_items()
            self.stats.total_fetched = len(items)

            for raw in items:
                await self.process_item(raw)

            await self.on_complete()

        except Exception as e:
            status, error = "failed", str(e)
            self.stats.errors += 1
            logger.error(f"Crawler {self.source_name} failed: {e}")

        finally:
            self.stats.completed_at = datetime.utcnow()
            self.stats.duration = (self.stats.completed_at - self.stats.started_at).total_seconds()
            self.db.finish_crawl_job(job_id, self.stats.to_dict(), status=status, error=error)

        logger.info(
            f"Crawler {self.source_name} {status}: fetched={self.stats.total_fetched} "
            f"new={self.stats.new_products} updated={self.stats.updated_products} "
            f"unchanged={self.stats.skipped_unchanged} invalid={self.stats.skipped_invalid} "
            f"errors={self.stats.errors} sales={self.stats.sales_saved} "
            f"({self.stats.duration:.1f}s)"
        )
        return self.stats
