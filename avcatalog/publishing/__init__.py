"""Sitemaps and search-engine notification"""

from .indexing import IndexNowClient, ping_sitemap
from .sitemap import (
    SitemapEntry,
    build_sitemap_entries,
    chunk_entries,
    render_sitemap,
    render_sitemap_index,
    render_video_sitemap,
    write_sitemaps,
)

__all__ = [
    "IndexNowClient",
    "ping_sitemap",
    "SitemapEntry",
    "build_sitemap_entries",
    "chunk_entries",
    "render_sitemap",
    "render_sitemap_index",
    "render_video_sitemap",
    "write_sitemaps",
]
