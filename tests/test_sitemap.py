import xml.etree.ElementTree as ET
from datetime import date

import pytest

from avcatalog.publishing.sitemap import (
    SITEMAP_NS,
    VIDEO_NS,
    XHTML_NS,
    SitemapEntry,
    build_sitemap_entries,
    chunk_entries,
    language_alternates,
    render_sitemap,
    render_sitemap_index,
    render_video_sitemap,
    write_sitemaps,
)

from avcatalog.storage.models import Performer, Tag

from conftest import build_parsed

SITE = "https://example.com"
NS = {"s": SITEMAP_NS, "x": XHTML_NS, "v": VIDEO_NS}


def locs(xml_text):
    root = ET.fromstring(xml_text.encode("utf-8"))
    return [el.text for el in root.iter(f"{{{SITEMAP_NS}}}loc")]


def test_language_alternates():
    alternates = language_alternates(SITE + "/", "/products")

    assert alternates["ja"] == "https://example.com/products"
    assert alternates["zh-TW"] == "https://example.com/products?hl=zh-TW"
    assert list(alternates) == ["ja", "en", "zh", "zh-TW", "ko"]


def test_render_sitemap_writes_lastmod_priority_and_alternates():
    entry = SitemapEntry(
        loc="https://example.com/products/1",
        lastmod=date(2025, 1, 10),
        changefreq="weekly",
        priority=0.7,
        alternates={"ja": "https://example.com/products/1", "en": "https://example.com/products/1?hl=en"},
    )

    xml_text = render_sitemap([entry])

    assert xml_text.startswith('<?xml version="1.0" encoding="UTF-8"?>')
    root = ET.fromstring(xml_text.encode("utf-8"))
    url = root.find("s:url", NS)
    assert url.find("s:loc", NS).text == "https://example.com/products/1"
    assert url.find("s:lastmod", NS).text == "2025-01-10"
    assert url.find("s:priority", NS).text == "0.7"
    links = url.findall("x:link", NS)
    assert [(l.get("hreflang"), l.get("rel")) for l in links] == [("ja", "alternate"), ("en", "alternate")]


def test_render_video_sitemap_converts_minutes_to_seconds():
    products = [
        {
            "id": 7,
            "title": "作品",
            "description": None,
            "thumbnailUrl": "https://img.example.test/7.jpg",
            "videoUrl": "https://cdn.example.test/7.mp4",
            "duration": 120,
            "releaseDate": date(2025, 1, 10),
        },
        {"id": 8, "title": "no thumbnail", "thumbnailUrl": None, "videoUrl": "https://cdn.example.test/8.mp4"},
    ]

    xml_text = render_video_sitemap(products, SITE)

    assert locs(xml_text) == ["https://example.com/products/7"]
    video = ET.fromstring(xml_text.encode("utf-8")).find("s:url/v:video", NS)
    assert video.find("v:duration", NS).text == "7200"
    assert video.find("v:description", NS).text == "作品"
    assert video.find("v:publication_date", NS).text == "2025-01-10"


def test_chunk_entries_and_index():
    entries = [SitemapEntry(loc=f"{SITE}/p/{i}") for i in range(5)]

    chunks = chunk_entries(entries, size=2)
    assert [len(c) for c in chunks] == [2, 2, 1]
    with pytest.raises(ValueError):
        chunk_entries(entries, size=0)

    index = render_sitemap_index([f"{SITE}/sitemap-1.xml", f"{SITE}/sitemap-2.xml"], date(2025, 1, 1))
    root = ET.fromstring(index.encode("utf-8"))
    assert root.tag == f"{{{SITEMAP_NS}}}sitemapindex"
    assert len(root.findall("s:sitemap", NS)) == 2


def test_build_sitemap_entries_covers_products_performers_and_tags(db):
    saved = db.save_parsed_product("DUGA", build_parsed(categories=["企画"]))
    db.save_parsed_product(
        "FANZA", build_parsed("mide00001", prefix="fanza", performers=["鈴木みく"], categories=["企画", "限定"])
    )
    with db.session() as session:
        fanza_performer = session.query(Performer.id).filter(Performer.name == "鈴木みく").scalar()
        fanza_tag = session.query(Tag.id).filter(Tag.name == "限定").scalar()
        shared_tag = session.query(Tag.id).filter(Tag.name == "企画").scalar()

    entries = build_sitemap_entries(db, SITE, site_asps=["duga"], today=date(2025, 1, 20))
    urls = [e.loc for e in entries]

    assert urls[0] == "https://example.com/"
    assert f"https://example.com/products/{saved.product_id}" in urls
    assert "https://example.com/products/duga-abc-0001" in urls
    assert "https://example.com/products/fanza-mide00001" not in urls
    assert any(u.startswith("https://example.com/actress/") for u in urls)
    assert f"https://example.com/actress/{fanza_performer}" not in urls
    assert f"https://example.com/tags/{shared_tag}" in urls
    assert f"https://example.com/tags/{fanza_tag}" not in urls

    everything = [e.loc for e in build_sitemap_entries(db, SITE, today=date(2025, 1, 20))]
    assert f"https://example.com/actress/{fanza_performer}" in everything
    assert f"https://example.com/tags/{fanza_tag}" in everything

    privacy = next(e for e in entries if e.loc.endswith("/privacy"))
    assert privacy.alternates == {}


def test_write_sitemaps(db, tmp_path):
    db.save_parsed_product("DUGA", build_parsed(sample_videos=["https://cdn.example.test/abc.mp4"]))

    written = write_sitemaps(db, tmp_path / "public", SITE)

    assert [p.name for p in written] == ["sitemap.xml", "sitemap-videos.xml"]
    assert "https://example.com/products/duga-abc-0001" in locs(written[0].read_text(encoding="utf-8"))
    video_locs = locs(written[1].read_text(encoding="utf-8"))
    assert len(video_locs) == 1


def test_write_sitemaps_restricts_videos_to_site(db, tmp_path):
    db.save_parsed_product("DUGA", build_parsed(sample_videos=["https://cdn.example.test/duga.mp4"]))
    db.save_parsed_product(
        "FANZA", build_parsed("mide00001", prefix="fanza", sample_videos=["https://cdn.example.test/fanza.mp4"])
    )

    written = write_sitemaps(db, tmp_path, SITE, site_asps=["duga", "sokmil", "b10f"])

    videos = written[-1].read_text(encoding="utf-8")
    assert "https://cdn.example.test/duga.mp4" in videos
    assert "fanza.mp4" not in videos
