"""Search-engine notification: IndexNow submissions and sitemap pings."""

from typing import Dict, Iterable, List, Optional
from urllib.parse import urlparse

import httpx
from loguru import logger

from ..errors import ExternalServiceError, RateLimitError, is_retryable_error
from ..utils.retry import with_retry

INDEXNOW_ENDPOINT = "https://api.indexnow.org/indexnow"
MAX_URLS_PER_REQUEST = 10000


class IndexNowClient:
    """Submits changed URLs to IndexNow (Bing, Yandex, Seznam, ...)."""

    def __init__(
        self,
        key: str,
        host: str,
        key_location: Optional[str] = None,
        endpoint: str = INDEXNOW_ENDPOINT,
        timeout: float = 30.0,
        max_retries: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            key: IndexNow key, also served at key_location
            host: Site host, or a full site URL whose host is used
            key_location: URL of the key file; defaults to https://{host}/{key}.txt
            endpoint: IndexNow endpoint
            timeout: Request timeout in seconds
            max_retries: Retries for transient failures
            transport: Optional httpx transport (used by tests)
        """
        self.key = key
        self.host = urlparse(host).netloc or host
        self.key_location = key_location or f"https://{self.host}/{key}.txt"
        self.endpoint = endpoint
        self.timeout = timeout
        self.max_retries = max_retries
        self.transport = transport

    async def _post_batch(self, urls: List[str]) -> int:
        payload = {
            "host": self.host,
            "key": self.key,
            "keyLocation": self.key_location,
            "urlList": urls,
        }

        async def request() -> int:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    self.endpoint,
                    json=payload,
                    headers={"Content-Type": "application/json; charset=utf-8"},
                )
            if response.status_code in (200, 202):
                return response.status_code
            if response.status_code == 429:
                raise RateLimitError("IndexNow returned 429")
            raise ExternalServiceError(
                f"IndexNow submission failed: {response.status_code}",
                service_name="indexnow",
                status_code=response.status_code,
            )

        return await with_retry(
            request,
            max_retries=self.max_retries,
            initial_delay=1.0,
            should_retry=lambda e, attempt: is_retryable_error(e),
            on_retry=lambda e, attempt, delay: logger.warning(
                f"IndexNow retry {attempt} after {delay:.1f}s: {e}"
            ),
        )

    async def submit_urls(self, urls: Iterable[str]) -> int:
        """Submit URLs in batches of at most 10000.

        Returns:
            Number of URLs accepted

        Raises:
            RateLimitError: IndexNow kept answering 429
            ExternalServiceError: any other failure
        """
        unique = list(dict.fromkeys(url for url in urls if url))
        if not unique:
            return 0

        submitted = 0
        for start in range(0, len(unique), MAX_URLS_PER_REQUEST):
            batch = unique[start : start + MAX_URLS_PER_REQUEST]
            status = await self._post_batch(batch)
            submitted += len(batch)
            logger.info(f"IndexNow accepted {len(batch)} URLs (HTTP {status})")

        return submitted


async def ping_sitemap(
    sitemap_url: str,
    endpoints: Iterable[str],
    timeout: float = 10.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Optional[int]]:
    """GET {endpoint}?sitemap={sitemap_url} for each endpoint.

    Returns:
        Endpoint -> HTTP status, or None when the request failed
    """
    results: Dict[str, Optional[int]] = {}
    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        for endpoint in endpoints:
            try:
                response = await client.get(endpoint, params={"sitemap": sitemap_url})
                results[endpoint] = response.status_code
                logger.info(f"Pinged {endpoint}: HTTP {response.status_code}")
            except httpx.HTTPError as e:
                results[endpoint] = None
                logger.warning(f"Sitemap ping to {endpoint} failed: {e}")
    return results
