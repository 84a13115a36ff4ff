"""SOKMIL affiliate API client and crawler."""

from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from ..catalog.parsing import normalize_text, parse_date
from ..errors import ExternalServiceError, RateLimitError, is_retryable_error
from ..storage.models import ParsedProduct
from ..utils.rate_limiter import RateLimiter
from ..utils.retry import with_retry
from .base_crawler import BaseCrawler, to_int

SORT_OPTIONS = ("price", "-price", "date")


def _sample_images(data: Dict[str, Any]) -> List[str]:
    """sampleImageURL may be a list, {"image": [...]} or any dict holding a list."""
    value = data.get("sampleImageURL") or data.get("sample_image_url")
    if isinstance(value, list):
        return [v for v in value if isinstance(v, str)]
    if isinstance(value, dict):
        if isinstance(value.get("image"), list):
            return value["image"]
        for candidate in value.values():
            if isinstance(candidate, list):
                return candidate
    return []


def _first_named(entries: Any) -> Optional[Dict[str, str]]:
    if isinstance(entries, list) and entries and isinstance(entries[0], dict):
        return {"id": str(entries[0].get("id", "")), "name": entries[0].get("name", "")}
    return None


def _named(entries: Any) -> List[Dict[str, str]]:
    if not isinstance(entries, list):
        return []
    return [
        {"id": str(e.get("id", "")), "name": e["name"]}
        for e in entries
        if isinstance(e, dict) and e.get("name")
    ]


class SokmilApiClient:
    """Client for the SOKMIL Item API."""

    BASE_URL = "https://sokmil-ad.com/api/v1"

    def __init__(
        self,
        api_key: str,
        affiliate_id: str = "47418-001",
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        rate_limiter: Optional[RateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.affiliate_id = affiliate_id or "47418-001"
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.rate_limiter = rate_limiter
        self.transport = transport

    async def _request(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        query = {"affiliate_id": self.affiliate_id, "api_key": self.api_key, "output": "json"}
        query.update({k: str(v) for k, v in params.items() if v is not None})
        url = f"{self.base_url}/{endpoint}"

        async def request():
            if self.rate_limiter is not None:
                await self.rate_limiter.wait()
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self.transport,
                headers={"User-Agent": "Sokmil-API-Client/1.0"},
            ) as client:
                response = await client.get(url, params=query)
            if response.status_code == 429:
                raise RateLimitError("SOKMIL API returned 429")
            if response.status_code >= 400:
                raise ExternalServiceError(
                    f"Sokmil API error: {response.status_code}",
                    service_name="sokmil",
                    status_code=response.status_code,
                )
            return response.json()

        data = await with_retry(
            request,
            max_retries=self.max_retries,
            initial_delay=1.0,
            should_retry=lambda e, attempt: is_retryable_error(e),
            on_retry=lambda e, attempt, delay: logger.warning(
                f"SOKMIL API retry {attempt} after {delay:.1f}s: {e}"
            ),
        )
        return self.normalize_response(data)

    def normalize_response(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """{"result": {status, total_count, first_position, result_count, items}}"""
        result = data.get("result", data)
        return {
            "status": "success" if str(result.get("status")) == "200" else "error",
            "total_count": to_int(result.get("total_count")) or 0,
            "first_position": to_int(result.get("first_position")) or 1,
            "result_count": to_int(result.get("result_count")) or 0,
            "items": result.get("items") or [],
            "error": result.get("error") or data.get("message"),
        }

    def normalize_product(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Flatten one item, including its iteminfo (maker, label, genre, actor, director)."""
        info = data.get("iteminfo") or {}
        images = data.get("imageURL") or {}
        prices = data.get("prices") or {}

        return {
            "item_id": str(data.get("id") or ""),
            "title": data.get("title") or "",
            "item_url": data.get("URL") or "",
            "affiliate_url": data.get("affiliateURL") or "",
            "thumbnail_url": images.get("large") or images.get("list") or images.get("small"),
            "package_url": images.get("large"),
            "sample_images": _sample_images(data),
            "sample_video_url": data.get("sampleMovieURL")
            or data.get("sampleVideoURL")
            or data.get("sample_movie_url"),
            "price": to_int(prices.get("price")),
            "release_date": data.get("date"),
            "duration": to_int(data.get("volume")),
            "maker": _first_named(info.get("maker")),
            "label": _first_named(info.get("label")),
            "genres": _named(info.get("genre")),
            "directors": _named(info.get("director")),
            "actors": _named(info.get("actor")),
            "description": data.get("description") or data.get("desc"),
        }

    async def search_items(
        self,
        hits: int = 20,
        offset: int = 1,
        sort: Optional[str] = None,
        keyword: Optional[str] = None,
        article: Optional[str] = None,
        article_id: Optional[str] = None,
        gte_date: Optional[str] = None,
        lte_date: Optional[str] = None,
        category: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Search items; hits is capped at 100 and offset is 1-based."""
        if sort is not None and sort not in SORT_OPTIONS:
            raise ValueError(f"Unsupported SOKMIL sort: {sort}")

        response = await self._request(
            "Item",
            {
                "hits": max(1, min(hits, 100)),
                "offset": max(1, offset),
                "sort": sort,
                "keyword": keyword,
                "article": article,
                "article_id": article_id,
                "gte_date": gte_date,
                "lte_date": lte_date,
                "category": category,
            },
        )
        response["items"] = [self.normalize_product(item) for item in response["items"]]
        return response

    async def get_new_releases(self, hits: int = 20, offset: int = 1) -> Dict[str, Any]:
        return await self.search_items(hits=hits, offset=offset, sort="date")

    async def search_by_keyword(self, keyword: str, hits: int = 20, offset: int = 1) -> Dict[str, Any]:
        return await self.search_items(hits=hits, offset=offset, keyword=keyword)

    async def search_by_actor(self, actor_id: str, hits: int = 20, offset: int = 1) -> Dict[str, Any]:
        return await self.search_items(hits=hits, offset=offset, article="actor", article_id=actor_id)


class SokmilCrawler(BaseCrawler):
    """Imports new releases from the SOKMIL API."""

    throttle_items = False

    def __init__(self, db, config: dict, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(db, config, transport=transport)
        source = config.get("sources", {}).get("sokmil", {})
        self.max_items = source.get("max_items", 500)
        self.hits = min(source.get("hits", 100), 100)
        self.client = SokmilApiClient(
            api_key=source.get("api_key", ""),
            affiliate_id=source.get("affiliate_id", "47418-001"),
            timeout=float(self.timeout),
            max_retries=self.max_retries,
            rate_limiter=self.rate_limiter,
            transport=transport,
        )

    @property
    def source_name(self) -> str:
        return "sokmil"

    @property
    def asp_name(self) -> str:
        return "SOKMIL"

    def is_configured(self) -> bool:
        return bool(self.client.api_key)

    def raw_url(self, raw: Dict[str, Any]) -> str:
        return raw.get("item_url") or raw.get("affiliate_url") or ""

    async def fetch_items(self) -> List[Dict[str, Any]]:
        """Page through new releases (1-based offsets) up to max_items."""
        items: List[Dict[str, Any]] = []
        offset = 1

        while len(items) < self.max_items:
            response = await self.client.get_new_releases(hits=self.hits, offset=offset)
            if response["status"] != "success":
                raise ExternalServiceError(
                    f"SOKMIL API returned an error: {response['error']}", service_name="sokmil"
                )
            page = response["items"]
            if not page:
                break

            items.extend(page)
            offset += len(page)
            if len(page) < self.hits or offset > response["total_count"]:
                break

        return items[: self.max_items]

    def parse_item(self, raw: Dict[str, Any]) -> Optional[ParsedProduct]:
        item_id = raw.get("item_id")
        title = normalize_text(raw.get("title"))
        if not item_id or not title:
            return None

        maker = raw.get("maker") or {}
        label = raw.get("label") or {}
        directors = raw.get("directors") or []

        return ParsedProduct(
            original_id=item_id,
            normalized_product_id=f"sokmil-{item_id}",
            title=title,
            description=normalize_text(raw.get("description")) or None,
            release_date=parse_date(raw.get("release_date")),
            duration=raw.get("duration"),
            thumbnail_url=raw.get("thumbnail_url"),
            package_url=raw.get("package_url"),
            sample_images=raw.get("sample_images") or [],
            sample_videos=[raw["sample_video_url"]] if raw.get("sample_video_url") else [],
            affiliate_url=raw.get("affiliate_url"),
            price=raw.get("price"),
            performers=[a["name"] for a in raw.get("actors") or []],
            categories=[g["name"] for g in raw.get("genres") or []],
            maker=maker.get("name") or None,
            label=label.get("name") or None,
            director=directors[0]["name"] if directors else None,
        )
