"""DUGA (APEX) affiliate Web Service API client and crawler.

API version 1.2, JSON responses. DUGA allows 60 requests per 60 seconds per
application id.
"""

from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from ..catalog.parsing import normalize_text, parse_date
from ..errors import ExternalServiceError, RateLimitError, is_retryable_error
from ..storage.models import ParsedProduct, SaleInfo
from ..utils.rate_limiter import RateLimiter, SlidingWindowLimiter
from ..utils.retry import with_retry
from .base_crawler import BaseCrawler, to_int


def _first_size(entries: Any, sizes=("large", "midium", "small")) -> Optional[str]:
    """Largest available image URL from a list like [{"small": ...}, {"large": ...}]."""
    if not isinstance(entries, list):
        return None
    for size in sizes:
        for entry in entries:
            if isinstance(entry, dict) and entry.get(size):
                return entry[size]
    return None


def _named_list(entries: Any) -> List[Dict[str, str]]:
    """[{"data": {"id", "name"}}] -> [{"id", "name"}]"""
    result = []
    if isinstance(entries, list):
        for entry in entries:
            data = entry.get("data") if isinstance(entry, dict) else None
            if data and data.get("name"):
                result.append({"id": str(data.get("id", "")), "name": data["name"]})
    return result


class DugaApiClient:
    """Client for the DUGA affiliate search API."""

    BASE_URL = "http://affapi.duga.jp/search"
    API_VERSION = "1.2"

    def __init__(
        self,
        app_id: str,
        agent_id: str,
        banner_id: str = "01",
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        rate_limiter: Optional[RateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.app_id = app_id
        self.agent_id = agent_id
        self.banner_id = banner_id or "01"
        self.base_url = base_url or self.BASE_URL
        self.timeout = timeout
        self.max_retries = max_retries
        self.rate_limiter = rate_limiter
        self.transport = transport
        self.window = SlidingWindowLimiter(max_requests=60, window_seconds=60)

    async def search_products(self, **params: Any) -> Dict[str, Any]:
        """Search products.

        Args:
            **params: DUGA search parameters (keyword, hits, offset, sort,
                adult, target, category, performerid, releasestt, ...)

        Returns:
            {"hits", "count", "offset", "items"} with normalized items

        Raises:
            RateLimitError: more than 60 requests within 60 seconds
            ExternalServiceError: the API kept failing
        """
        self.window.check()

        query = {
            "version": params.pop("version", self.API_VERSION),
            "appid": self.app_id,
            "agentid": self.agent_id,
            "bannerid": self.banner_id,
            "format": params.pop("format", "json"),
        }
        query.update({k: str(v) for k, v in params.items() if v not in (None, "", 0)})

        async def request():
            if self.rate_limiter is not None:
                await self.rate_limiter.wait()
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self.transport,
                headers={"User-Agent": "DUGA-API-Client/1.0"},
            ) as client:
                response = await client.get(self.base_url, params=query)
            if response.status_code == 429:
                raise RateLimitError("DUGA API returned 429")
            if response.status_code >= 400:
                raise ExternalServiceError(
                    f"DUGA API error: {response.status_code}",
                    service_name="duga",
                    status_code=response.status_code,
                )
            return response.json()

        data = await with_retry(
            request,
            max_retries=self.max_retries,
            initial_delay=1.0,
            should_retry=lambda e, attempt: is_retryable_error(e),
            on_retry=lambda e, attempt, delay: logger.warning(
                f"DUGA API retry {attempt} after {delay:.1f}s: {e}"
            ),
        )
        return self.normalize_response(data)

    def normalize_response(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Coerce counters to int and normalize every item."""
        items = data.get("items") or data.get("products") or []
        return {
            "hits": to_int(data.get("hits")) or 0,
            "count": to_int(data.get("count")) or 0,
            "offset": to_int(data.get("offset")) or 0,
            "items": [self.normalize_product(item) for item in items],
        }

    def normalize_product(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Flatten one API item into a plain dict.

        Sample images are upgraded from /scap/ to /sample/. The price comes
        from the 通常版 sale type, then HD版, then the first one listed.
        """
        item = data.get("item", data)

        sample_images = []
        for thumb in item.get("thumbnail") or []:
            url = thumb.get("large") or thumb.get("midium") or thumb.get("image")
            if url:
                sample_images.append(url.replace("/scap/", "/sample/"))

        sample_videos = []
        for sample in item.get("samplemovie") or []:
            for size in ("midium", "large", "small"):
                movie = (sample.get(size) or {}).get("movie")
                if movie:
                    sample_videos.append(movie)
                    break

        package_url = _first_size(item.get("jacketimage"))
        poster_url = _first_size(item.get("posterimage"))

        label = (item.get("label") or [{}])[0]
        series = (item.get("series") or [{}])[0]

        price = None
        sale_info = None
        sale_types = item.get("saletype") or []
        if sale_types:
            by_type = {(s.get("data") or {}).get("type"): s for s in sale_types}
            target = by_type.get("通常版") or by_type.get("HD版") or sale_types[0]
            target_data = target.get("data") or {}
            price = to_int(target_data.get("price"))

            list_price = to_int(target_data.get("listprice"))
            sale_price = to_int(target_data.get("saleprice")) or price
            if list_price and sale_price and list_price > sale_price:
                sale_info = {
                    "regular_price": list_price,
                    "sale_price": sale_price,
                    "discount_percent": to_int(target_data.get("discountrate"))
                    or round((1 - sale_price / list_price) * 100),
                    "sale_type": "sale",
                }
                price = sale_price

        return {
            "product_id": item.get("productid") or item.get("product_id") or "",
            "title": item.get("title") or "",
            "title_kana": item.get("title_kana") or item.get("titleKana"),
            "description": item.get("caption") or item.get("description"),
            "thumbnail_url": package_url or poster_url,
            "package_url": package_url,
            "sample_images": sample_images,
            "sample_videos": sample_videos,
            "affiliate_url": item.get("affiliateurl") or item.get("affiliate_url") or "",
            "price": price,
            "release_date": (item.get("releasedate") or item.get("release_date") or "").replace("/", "-")
            or None,
            "open_date": (item.get("opendate") or item.get("open_date") or "").replace("/", "-") or None,
            "duration": to_int(item.get("volume")),
            "label": label.get("name"),
            "label_id": label.get("id"),
            "series": series.get("name"),
            "series_id": str(series["id"]) if series.get("id") is not None else None,
            "performers": _named_list(item.get("performer")),
            "categories": _named_list(item.get("category")),
            "sales_type": item.get("sales_type") or item.get("salesType"),
            "multi_device": bool(item.get("multi_device") or item.get("multiDevice")),
            "sale_info": sale_info,
        }

    async def search_by_keyword(self, keyword: str, **params: Any) -> Dict[str, Any]:
        return await self.search_products(keyword=keyword, **params)

    async def search_by_performer(self, performer_id: str, **params: Any) -> Dict[str, Any]:
        return await self.search_products(performerid=performer_id, **params)

    async def get_new_releases(self, limit: int = 20, offset: int = 1) -> Dict[str, Any]:
        return await self.search_products(sort="new", hits=limit, offset=offset, adult=1)

    async def get_popular_products(self, limit: int = 20, offset: int = 1) -> Dict[str, Any]:
        return await self.search_products(sort="favorite", hits=limit, offset=offset, adult=1)


class DugaCrawler(BaseCrawler):
    """Imports new releases from the DUGA API."""

    throttle_items = False

    def __init__(self, db, config: dict, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(db, config, transport=transport)
        source = config.get("sources", {}).get("duga", {})
        self.max_items = source.get("max_items", 500)
        self.hits = min(source.get("hits", 100), 100)
        self.client = DugaApiClient(
            app_id=source.get("app_id", ""),
            agent_id=source.get("agent_id", ""),
            banner_id=source.get("banner_id", "01"),
            timeout=float(self.timeout),
            max_retries=self.max_retries,
            rate_limiter=self.rate_limiter,
            transport=transport,
        )

    @property
    def source_name(self) -> str:
        return "duga"

    @property
    def asp_name(self) -> str:
        return "DUGA"

    def is_configured(self) -> bool:
        return bool(self.client.app_id and self.client.agent_id)

    def raw_url(self, raw: Dict[str, Any]) -> str:
        return raw.get("affiliate_url") or ""

    async def fetch_items(self) -> List[Dict[str, Any]]:
        """Page through new releases up to max_items."""
        items: List[Dict[str, Any]] = []
        offset = 1

        while len(items) < self.max_items:
            hits = min(self.hits, self.max_items - len(items))
            response = await self.client.get_new_releases(limit=hits, offset=offset)
            page = response["items"]
            if not page:
                break

            items.extend(page)
            logger.debug(f"DUGA page offset={offset}: {len(page)} items (total {len(items)})")

            offset += len(page)
            if len(page) < hits or (response["count"] and offset > response["count"]):
                break

        return items[: self.max_items]

    def parse_item(self, raw: Dict[str, Any]) -> Optional[ParsedProduct]:
        product_id = raw.get("product_id")
        title = normalize_text(raw.get("title"))
        if not product_id or not title:
            return None

        release = parse_date(raw.get("release_date") or raw.get("open_date"))
        sale = SaleInfo(**raw["sale_info"]) if raw.get("sale_info") else None

        return ParsedProduct(
            original_id=product_id,
            normalized_product_id=f"duga-{product_id}",
            title=title,
            description=normalize_text(raw.get("description")) or None,
            release_date=release,
            duration=raw.get("duration"),
            thumbnail_url=raw.get("thumbnail_url"),
            package_url=raw.get("package_url"),
            sample_images=raw.get("sample_images") or [],
            sample_videos=raw.get("sample_videos") or [],
            affiliate_url=raw.get("affiliate_url"),
            price=raw.get("price"),
            performers=[p["name"] for p in raw.get("performers") or []],
            categories=[c["name"] for c in raw.get("categories") or []],
            label=raw.get("label"),
            series=raw.get("series"),
            sale=sale,
        )
