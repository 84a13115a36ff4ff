"""ASP crawlers: API clients and the CSV importer"""

from .b10f import B10fCrawler
from .base_crawler import BaseCrawler, CrawlerStats
from .duga import DugaApiClient, DugaCrawler
from .sokmil import SokmilApiClient, SokmilCrawler

CRAWLERS = {
    "duga": DugaCrawler,
    "sokmil": SokmilCrawler,
    "b10f": B10fCrawler,
}

__all__ = [
    "BaseCrawler",
    "CrawlerStats",
    "CRAWLERS",
    "B10fCrawler",
    "DugaApiClient",
    "DugaCrawler",
    "SokmilApiClient",
    "SokmilCrawler",
]
