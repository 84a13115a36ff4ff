from datetime import datetime, timedelta

import pytest

from avcatalog.errors import DatabaseError
from avcatalog.storage import Database
from avcatalog.storage.models import (
    CrawlJob,
    Performer,
    PerformerAlias,
    Product,
    ProductImage,
    ProductRawDataLink,
    ProductSale,
    ProductSource,
    RawHtmlData,
    Tag,
)

from conftest import build_parsed, build_sale


def test_upsert_raw_html_skips_identical_processed_content():
    db = Database("sqlite:///:memory:")

    first = db.upsert_raw_html("duga", "abc-0001", '{"title": "a"}', url="https://example.test/a")
    assert first.is_new
    assert not first.should_skip

    # Unprocessed rows are handed back for processing
    again = db.upsert_raw_html("duga", "abc-0001", '{"title": "a"}')
    assert not again.is_new
    assert not again.should_skip

    db.mark_raw_processed("html", first.id)
    processed = db.upsert_raw_html("duga", "abc-0001", '{"title": "a"}')
    assert processed.should_skip
    assert processed.id == first.id

    changed = db.upsert_raw_html("duga", "abc-0001", '{"title": "b"}')
    assert not changed.should_skip
    assert changed.hash != first.hash

    with db.session() as session:
        assert session.query(RawHtmlData).count() == 1
        row = session.query(RawHtmlData).first()
        assert row.processed_at is None
        assert row.url == "https://example.test/a"


def test_upsert_raw_csv_and_latest_hash():
    db = Database("sqlite:///:memory:")

    assert db.get_latest_raw_hash("b10f_file") is None

    staged = db.upsert_raw_csv("b10f_file", "deadbeef", {"content": "x"})
    assert db.get_latest_raw_hash("b10f_file") == (staged.hash, False)

    db.mark_raw_processed("csv", staged.id)
    assert db.get_latest_raw_hash("b10f_file") == (staged.hash, True)
    assert db.upsert_raw_csv("b10f_file", "deadbeef", {"content": "x"}).should_skip


def test_get_unprocessed_raw_filters_by_source():
    db = Database("sqlite:///:memory:")
    duga = db.upsert_raw_html("duga", "1", "{}")
    db.upsert_raw_html("sokmil", "2", "{}")
    done = db.upsert_raw_html("duga", "3", "{}")
    db.mark_raw_processed("html", done.id)

    rows = db.get_unprocessed_raw("html", source="duga")
    assert [row.id for row in rows] == [duga.id]
    assert rows[0].html_content == "{}"


def test_save_parsed_product_is_idempotent(db):
    parsed = build_parsed()

    first = db.save_parsed_product("DUGA", parsed)
    second = db.save_parsed_product("DUGA", parsed)

    assert first.is_new
    assert not second.is_new
    assert first.product_id == second.product_id

    with db.session() as session:
        assert session.query(Product).count() == 1
        assert session.query(ProductSource).count() == 1
        assert session.query(ProductImage).count() == 3
        assert session.query(Performer).count() == 1
        assert session.query(Tag).filter(Tag.category == "genre").count() == 1

        product = session.query(Product).first()
        assert product.performer_count == 1
        assert product.default_thumbnail_url == "https://img.example.test/abc-0001/package.jpg"
        assert product.min_price == 2980
        assert product.maker_product_code == "ABC-1"
        assert product.has_video is False


def test_second_asp_adds_a_source_to_the_same_product(db):
    db.save_parsed_product("DUGA", build_parsed())
    db.save_parsed_product(
        "SOKMIL",
        build_parsed(prefix="duga", price=1980, affiliate_url="https://aff.example.test/sokmil/abc-0001"),
    )

    with db.session() as session:
        assert session.query(Product).count() == 1
        sources = session.query(ProductSource).order_by(ProductSource.asp_name).all()
        assert [s.asp_name for s in sources] == ["DUGA", "SOKMIL"]
        assert session.query(Product).first().min_price == 1980


def test_sale_lifecycle_updates_denormalized_columns(db):
    end_at = datetime(2030, 1, 1)
    db.save_parsed_product("DUGA", build_parsed(sale=build_sale(end_at=end_at)))

    with db.session() as session:
        product = session.query(Product).first()
        assert product.has_active_sale
        assert product.min_price == 1980
        sale = session.query(ProductSale).one()
        assert sale.discount_percent == 34
        assert sale.end_at == end_at

    # Same sale again refreshes instead of duplicating
    db.save_parsed_product("DUGA", build_parsed(sale=build_sale(end_at=end_at)))
    with db.session() as session:
        assert session.query(ProductSale).count() == 1

    # A deeper sale supersedes the old one
    db.save_parsed_product("DUGA", build_parsed(sale=build_sale(sale_price=980)))
    with db.session() as session:
        active = session.query(ProductSale).filter(ProductSale.is_active.is_(True)).all()
        assert [s.sale_price for s in active] == [980]

    # The sale ending deactivates everything
    db.save_parsed_product("DUGA", build_parsed())
    with db.session() as session:
        assert session.query(ProductSale).filter(ProductSale.is_active.is_(True)).count() == 0
        product = session.query(Product).first()
        assert not product.has_active_sale
        assert product.min_price == 2980


def test_sale_not_below_regular_price_is_ignored(db):
    result = db.save_parsed_product("DUGA", build_parsed(sale=build_sale(regular_price=1980, sale_price=1980)))

    assert not result.sale_saved
    with db.session() as session:
        assert session.query(ProductSale).count() == 0


def test_performer_alias_resolves_to_existing_performer(db):
    db.save_parsed_product("DUGA", build_parsed(performers=["山田花子"]))
    with db.session() as session:
        performer = session.query(Performer).one()
        session.add(PerformerAlias(performer_id=performer.id, alias_name="やまだはなこ", source="manual"))

    db.save_parsed_product("SOKMIL", build_parsed("xyz-0002", prefix="sokmil", performers=["やまだはなこ"]))

    with db.session() as session:
        assert session.query(Performer).count() == 1
        assert {p.performer_count for p in session.query(Product)} == {1}


def test_invalid_image_urls_are_skipped(db):
    db.save_parsed_product(
        "DUGA",
        build_parsed(package_url=None, sample_images=["not-a-url", "https://img.example.test/s1.jpg"]),
    )

    with db.session() as session:
        images = session.query(ProductImage).all()
        assert [(i.image_url, i.image_type) for i in images] == [("https://img.example.test/s1.jpg", "sample")]
        assert session.query(Product).first().default_thumbnail_url == "https://img.example.test/s1.jpg"


def test_saving_links_and_processes_the_raw_row(db):
    staged = db.upsert_raw_html("duga", "abc-0001", '{"title": "x"}')
    db.save_parsed_product("DUGA", build_parsed(), raw=staged)

    with db.session() as session:
        link = session.query(ProductRawDataLink).one()
        assert link.raw_data_table == "raw_html_data"
        assert link.content_hash == staged.hash
        assert session.query(RawHtmlData).first().processed_at is not None

    assert db.upsert_raw_html("duga", "abc-0001", '{"title": "x"}').should_skip


def test_save_failure_raises_database_error_and_writes_nothing(db, monkeypatch):
    def fail(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(db, "_link_tags", fail)

    with pytest.raises(DatabaseError):
        db.save_parsed_product("DUGA", build_parsed())

    assert db.count_products() == 0


def test_crawl_job_bookkeeping(db):
    job_id = db.start_crawl_job("duga")
    db.finish_crawl_job(job_id, {"new_products": 3}, status="failed", error="timeout")

    with db.session() as session:
        job = session.query(CrawlJob).one()
        assert job.status == "failed"
        assert job.stats == {"new_products": 3}
        assert job.error == "timeout"
        assert job.duration_seconds is not None


def test_news_articles_are_unique_per_slug_and_expire(db):
    now = datetime(2025, 1, 10, 12, 0, 0)

    assert db.save_news_article("sales-20250110", "sales", "セール速報", published_at=now, expires_at=now + timedelta(days=1))
    assert not db.save_news_article("sales-20250110", "sales", "重複")
    assert db.save_news_article("new_releases-20250110", "new_releases", "新着", published_at=now)

    articles, total = db.list_news(now=now)
    assert total == 2

    articles, total = db.list_news(now=now + timedelta(days=2))
    assert total == 1
    assert articles[0].slug == "new_releases-20250110"

    articles, total = db.list_news(category="sales", now=now)
    assert [a.title for a in articles] == ["セール速報"]
