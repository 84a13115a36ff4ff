"""b10f affiliate CSV importer.

The feed is a single CSV of the whole catalog. The file is staged as one
raw_csv_data row (source "b10f_file") so an unchanged download can be
skipped without touching any product.
"""

import csv
import io
import json
import re
from typing import Any, Dict, List, Optional

from loguru import logger

from ..catalog.parsing import (
    is_valid_performer_name,
    normalize_text,
    parse_date,
    parse_duration,
    parse_performer_names,
)
from ..errors import ExternalServiceError
from ..storage.models import ParsedProduct
from .base_crawler import BaseCrawler, to_int

CSV_COLUMNS = [
    "productId",
    "releaseDate",
    "title",
    "captureCount",
    "imageType",
    "imageUrl",
    "productUrl",
    "description",
    "price",
    "duration",
    "brand",
    "category",
    "performers",
]

FILE_SOURCE = "b10f_file"


def parse_csv(text: str) -> List[Dict[str, str]]:
    """Rows of the b10f CSV as dicts; the header and short rows are dropped."""
    rows = []
    reader = csv.reader(io.StringIO(text))
    next(reader, None)
    for fields in reader:
        if len(fields) < len(CSV_COLUMNS):
            continue
        rows.append({name: fields[i].strip() for i, name in enumerate(CSV_COLUMNS)})
    return rows


def build_affiliate_url(product_id: str, affiliate_id: str) -> str:
    return f"https://b10f.jp/p/{product_id}.html?atv={affiliate_id}_U{product_id}TTXT_12_9"


def large_image_url(image_url: str) -> str:
    """.../1s.jpg -> .../1.jpg"""
    return re.sub(r"/(\d+)s\.jpg$", r"/\1.jpg", image_url)


def capture_image_urls(image_url: str, count: int) -> List[str]:
    """Capture stills live next to the package image as c1.jpg .. c{count}.jpg."""
    if not image_url or count <= 0:
        return []
    base = re.sub(r"/1s\.jpg$", "", image_url)
    return [f"{base}/c{i}.jpg" for i in range(1, count + 1)]


class B10fCrawler(BaseCrawler):
    """Imports the b10f product CSV."""

    raw_table = "csv"
    data_source = "CSV"
    throttle_items = False

    def __init__(self, db, config: dict, transport=None):
        super().__init__(db, config, transport=transport)
        source = config.get("sources", {}).get("b10f", {})
        self.affiliate_id = source.get("affiliate_id", "12556")
        self.csv_url = source.get("csv_url", "").format(affiliate_id=self.affiliate_id)
        self._file_raw_id: Optional[int] = None

    @property
    def source_name(self) -> str:
        return "b10f"

    @property
    def asp_name(self) -> str:
        return "b10f"

    def is_configured(self) -> bool:
        return bool(self.affiliate_id and self.csv_url)

    async def download_csv(self) -> str:
        await self.rate_limiter.wait()
        async with self.get_http_client() as client:
            response = await client.get(self.csv_url)
        if response.status_code >= 400:
            raise ExternalServiceError(
                f"b10f CSV download failed: {response.status_code}",
                service_name="b10f",
                status_code=response.status_code,
            )
        return response.text

    async def fetch_items(self) -> List[Dict[str, str]]:
        """Download the CSV; an unchanged, already imported file yields no rows."""
        self._file_raw_id = None
        text = await self.download_csv()
        logger.info(f"b10f CSV downloaded: {len(text)} chars")

        snapshot = {"content": text}
        file_hash = self.db.calculate_hash(json.dumps(snapshot, sort_keys=True, ensure_ascii=False))
        latest = self.db.get_latest_raw_hash(FILE_SOURCE)
        if latest and latest == (file_hash, True) and not self.force_reprocess:
            logger.info("b10f CSV unchanged since the last import, skipping")
            return []

        staged = self.db.upsert_raw_csv(FILE_SOURCE, file_hash[:16], snapshot)
        self._file_raw_id = staged.id

        rows = parse_csv(text)
        logger.info(f"b10f CSV parsed: {len(rows)} rows")
        return rows

    async def on_complete(self):
        if self._file_raw_id is not None:
            self.db.mark_raw_processed("csv", self._file_raw_id)

    def parse_item(self, raw: Dict[str, str]) -> Optional[ParsedProduct]:
        product_id = raw.get("productId")
        title = normalize_text(raw.get("title"))
        if not product_id or not title:
            return None

        image_url = raw.get("imageUrl") or ""
        package_url = large_image_url(image_url) if image_url else None
        capture_count = to_int(raw.get("captureCount")) or 0

        performers = [
            p.name
            for p in parse_performer_names(raw.get("performers"))
            if is_valid_performer_name(p.name)
        ]
        category = normalize_text(raw.get("category"))

        return ParsedProduct(
            original_id=product_id,
            normalized_product_id=f"b10f-{product_id}",
            title=title,
            description=normalize_text(raw.get("description")) or None,
            release_date=parse_date(raw.get("releaseDate")),
            duration=parse_duration(raw.get("duration")),
            thumbnail_url=package_url,
            package_url=package_url,
            sample_images=capture_image_urls(image_url, capture_count),
            affiliate_url=build_affiliate_url(product_id, self.affiliate_id),
            price=to_int(raw.get("price")),
            performers=performers,
            categories=[category] if category else [],
            maker=normalize_text(raw.get("brand")) or None,
        )
