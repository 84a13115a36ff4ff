"""Maintenance jobs: backfills, duplicate reconciliation and news digests"""

from .backfill import backfill_thumbnails, expire_sales, recompute_denormalized
from .news import generate_news
from .reconcile import (
    find_duplicate_products,
    merge_duplicate_performers,
    merge_products,
    reconcile_duplicates,
)

__all__ = [
    "backfill_thumbnails",
    "expire_sales",
    "recompute_denormalized",
    "generate_news",
    "find_duplicate_products",
    "merge_duplicate_performers",
    "merge_products",
    "reconcile_duplicates",
]
