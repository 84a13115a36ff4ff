"""Data storage and persistence layer"""

from .database import Database, RawUpsertResult, SaveResult
from .models import (
    CrawlJob,
    NewsArticle,
    ParsedProduct,
    Performer,
    PerformerAlias,
    Product,
    ProductImage,
    ProductPerformer,
    ProductRawDataLink,
    ProductSale,
    ProductSource,
    ProductTag,
    ProductVideo,
    RawCsvData,
    RawHtmlData,
    SaleInfo,
    Tag,
)

__all__ = [
    "Database",
    "RawUpsertResult",
    "SaveResult",
    "CrawlJob",
    "NewsArticle",
    "ParsedProduct",
    "Performer",
    "PerformerAlias",
    "Product",
    "ProductImage",
    "ProductPerformer",
    "ProductRawDataLink",
    "ProductSale",
    "ProductSource",
    "ProductTag",
    "ProductVideo",
    "RawCsvData",
    "RawHtmlData",
    "SaleInfo",
    "Tag",
]
