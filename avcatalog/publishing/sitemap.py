"""XML sitemaps: pages, hreflang alternates, video entries and indexes."""

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from loguru import logger

from ..storage import queries
from ..storage.database import Database

SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"
XHTML_NS = "http://www.w3.org/1999/xhtml"
VIDEO_NS = "http://www.google.com/schemas/sitemap-video/1.1"

ET.register_namespace("", SITEMAP_NS)
ET.register_namespace("xhtml", XHTML_NS)
ET.register_namespace("video", VIDEO_NS)

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'

MAX_URLS_PER_SITEMAP = 50000
SITEMAP_LIMITS = {"products": 10000, "performers": 2000, "tags": 1000}
ALTERNATE_LOCALES = ("en", "zh", "zh-TW", "ko")
MAX_VIDEO_DESCRIPTION = 2048


@dataclass
class SitemapEntry:
    loc: str
    lastmod: Optional[Union[date, datetime]] = None
    changefreq: Optional[str] = None
    priority: Optional[float] = None
    alternates: Dict[str, str] = field(default_factory=dict)


def language_alternates(site_url: str, path: str) -> Dict[str, str]:
    """hreflang map for a path: ja is the bare URL, other locales add ?hl=."""
    base = f"{site_url.rstrip('/')}{path or '/'}"
    alternates = {"ja": base}
    for locale in ALTERNATE_LOCALES:
        alternates[locale] = f"{base}?hl={locale}"
    return alternates


def _page(site_url: str, path: str, priority: float, changefreq: str, lastmod=None, localized=True):
    return SitemapEntry(
        loc=f"{site_url.rstrip('/')}{path}",
        lastmod=lastmod,
        changefreq=changefreq,
        priority=priority,
        alternates=language_alternates(site_url, path) if localized else {},
    )


def build_sitemap_entries(
    db: Database,
    site_url: str,
    site_asps: Optional[Sequence[str]] = None,
    today: Optional[date] = None,
) -> List[SitemapEntry]:
    """Every URL of the public site, most important first.

    Args:
        db: Database instance
        site_url: Public base URL, e.g. https://example.com
        site_asps: Storefront provider ids restricting product, performer and tag pages
        today: lastmod used for pages without their own timestamp

    Returns:
        List of SitemapEntry
    """
    today = today or date.today()

    entries = [
        _page(site_url, "/", 1.0, "daily", today),
        _page(site_url, "/products", 0.9, "daily", today),
        _page(site_url, "/categories", 0.9, "weekly", today),
        _page(site_url, "/privacy", 0.3, "yearly", localized=False),
        _page(site_url, "/terms", 0.3, "yearly", localized=False),
    ]

    for product in queries.sitemap_products(db, SITEMAP_LIMITS["products"], site_asps=site_asps):
        lastmod = product["lastmod"] or today
        entries.append(_page(site_url, f"/products/{product['id']}", 0.7, "weekly", lastmod))
        normalized = product["normalizedProductId"]
        if normalized and normalized != str(product["id"]):
            entries.append(_page(site_url, f"/products/{normalized}", 0.6, "weekly", lastmod))

    for performer in queries.sitemap_performers(db, SITEMAP_LIMITS["performers"], site_asps=site_asps):
        entries.append(_page(site_url, f"/actress/{performer['id']}", 0.8, "weekly", today))

    for tag in queries.sitemap_tags(db, SITEMAP_LIMITS["tags"], site_asps=site_asps):
        entries.append(_page(site_url, f"/tags/{tag['id']}", 0.6, "weekly", today))

    return entries


def _format_lastmod(value: Union[date, datetime]) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    return value.isoformat()


def _to_xml(root: ET.Element) -> str:
    return XML_DECLARATION + ET.tostring(root, encoding="unicode")


def render_sitemap(entries: Iterable[SitemapEntry]) -> str:
    """Render a sitemaps.org urlset with xhtml:link alternates."""
    root = ET.Element(f"{{{SITEMAP_NS}}}urlset")

    for entry in entries:
        url = ET.SubElement(root, f"{{{SITEMAP_NS}}}url")
        ET.SubElement(url, f"{{{SITEMAP_NS}}}loc").text = entry.loc
        if entry.lastmod:
            ET.SubElement(url, f"{{{SITEMAP_NS}}}lastmod").text = _format_lastmod(entry.lastmod)
        if entry.changefreq:
            ET.SubElement(url, f"{{{SITEMAP_NS}}}changefreq").text = entry.changefreq
        if entry.priority is not None:
            ET.SubElement(url, f"{{{SITEMAP_NS}}}priority").text = f"{entry.priority:.1f}"
        for locale, href in entry.alternates.items():
            ET.SubElement(
                url,
                f"{{{XHTML_NS}}}link",
                {"rel": "alternate", "hreflang": locale, "href": href},
            )

    return _to_xml(root)


def render_video_sitemap(products: Iterable[Dict[str, Any]], site_url: str) -> str:
    """Render a Google video sitemap from video_sitemap_products() rows."""
    root = ET.Element(f"{{{SITEMAP_NS}}}urlset")

    for product in products:
        if not product.get("videoUrl") or not product.get("thumbnailUrl"):
            continue
        url = ET.SubElement(root, f"{{{SITEMAP_NS}}}url")
        ET.SubElement(url, f"{{{SITEMAP_NS}}}loc").text = f"{site_url.rstrip('/')}/products/{product['id']}"

        video = ET.SubElement(url, f"{{{VIDEO_NS}}}video")
        ET.SubElement(video, f"{{{VIDEO_NS}}}thumbnail_loc").text = product["thumbnailUrl"]
        ET.SubElement(video, f"{{{VIDEO_NS}}}title").text = product["title"]
        description = product.get("description") or product["title"]
        ET.SubElement(video, f"{{{VIDEO_NS}}}description").text = description[:MAX_VIDEO_DESCRIPTION]
        ET.SubElement(video, f"{{{VIDEO_NS}}}content_loc").text = product["videoUrl"]
        if product.get("duration"):
            # Stored in minutes, the schema wants seconds
            ET.SubElement(video, f"{{{VIDEO_NS}}}duration").text = str(int(product["duration"]) * 60)
        if product.get("releaseDate"):
            ET.SubElement(video, f"{{{VIDEO_NS}}}publication_date").text = _format_lastmod(
                product["releaseDate"]
            )

    return _to_xml(root)


def chunk_entries(entries: Sequence[SitemapEntry], size: int = MAX_URLS_PER_SITEMAP) -> List[List[SitemapEntry]]:
    if size <= 0:
        raise ValueError("size must be positive")
    return [list(entries[i : i + size]) for i in range(0, len(entries), size)]


def render_sitemap_index(urls: Iterable[str], lastmod: Optional[date] = None) -> str:
    """Render a sitemapindex pointing at child sitemaps."""
    root = ET.Element(f"{{{SITEMAP_NS}}}sitemapindex")
    for loc in urls:
        sitemap = ET.SubElement(root, f"{{{SITEMAP_NS}}}sitemap")
        ET.SubElement(sitemap, f"{{{SITEMAP_NS}}}loc").text = loc
        if lastmod:
            ET.SubElement(sitemap, f"{{{SITEMAP_NS}}}lastmod").text = _format_lastmod(lastmod)
    return _to_xml(root)


def write_sitemaps(
    db: Database,
    out_dir: Union[str, Path],
    site_url: str,
    site_asps: Optional[Sequence[str]] = None,
) -> List[Path]:
    """Write sitemap.xml (an index when there are too many URLs) and sitemap-videos.xml.

    Returns:
        Paths of every file written
    """
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    base = site_url.rstrip("/")
    written: List[Path] = []

    entries = build_sitemap_entries(db, site_url, site_asps=site_asps)
    chunks = chunk_entries(entries)

    if len(chunks) <= 1:
        path = out / "sitemap.xml"
        path.write_text(render_sitemap(entries), encoding="utf-8")
        written.append(path)
    else:
        child_urls = []
        for index, chunk in enumerate(chunks, start=1):
            path = out / f"sitemap-{index}.xml"
            path.write_text(render_sitemap(chunk), encoding="utf-8")
            written.append(path)
            child_urls.append(f"{base}/{path.name}")
        index_path = out / "sitemap.xml"
        index_path.write_text(render_sitemap_index(child_urls, date.today()), encoding="utf-8")
        written.append(index_path)

    videos = queries.video_sitemap_products(db, site_asps=site_asps)
    video_path = out / "sitemap-videos.xml"
    video_path.write_text(render_video_sitemap(videos, site_url), encoding="utf-8")
    written.append(video_path)

    logger.info(f"Wrote {len(written)} sitemap files ({len(entries)} URLs, {len(videos)} videos) to {out}")
    return written
