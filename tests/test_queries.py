from datetime import date, datetime, timedelta

import pytest

from avcatalog.storage import Database, queries
from avcatalog.storage.models import Performer, Product
from avcatalog.storage.queries import ProductQuery

from conftest import build_parsed, build_sale


@pytest.fixture
def catalog():
    db = Database("sqlite:///:memory:")
    duga = db.save_parsed_product(
        "DUGA",
        build_parsed(
            "abc-0001",
            title="夏の思い出 海辺のバカンス",
            release_date=date(2025, 1, 10),
            price=2980,
            performers=["山田花子"],
            categories=["企画"],
            maker="メーカーA",
            sample_videos=["https://cdn.example.test/abc.mp4"],
        ),
    )
    sokmil = db.save_parsed_product(
        "SOKMIL",
        build_parsed(
            "sok001",
            prefix="sokmil",
            title="冬の温泉旅行 完全版",
            release_date=date(2025, 1, 5),
            price=1480,
            performers=["山田花子", "佐藤愛"],
            categories=["温泉"],
            sale=build_sale(regular_price=1480, sale_price=980),
        ),
    )
    fanza = db.save_parsed_product(
        "FANZA",
        build_parsed(
            "mide00001",
            prefix="fanza",
            title="別サイト限定の作品",
            release_date=date(2025, 1, 1),
            price=3980,
            performers=["鈴木みく"],
        ),
    )
    return db, {"duga": duga.product_id, "sokmil": sokmil.product_id, "fanza": fanza.product_id}


ADULT_V = ["duga", "sokmil", "b10f"]


def test_search_products_respects_site_restriction(catalog):
    db, ids = catalog

    products, total = queries.search_products(db, ProductQuery(site_asps=ADULT_V))

    assert total == 2
    assert [p["id"] for p in products] == [ids["duga"], ids["sokmil"]]


def test_search_products_sorting_and_filters(catalog):
    db, ids = catalog

    by_price, _ = queries.search_products(db, ProductQuery(sort_by="priceAsc"))
    assert [p["id"] for p in by_price] == [ids["sokmil"], ids["duga"], ids["fanza"]]

    on_sale, total = queries.search_products(db, ProductQuery(on_sale=True))
    assert total == 1
    assert on_sale[0]["salePrice"] == 980
    assert on_sale[0]["discountPercent"] == 34
    assert on_sale[0]["onSale"] is True

    with_video, _ = queries.search_products(db, ProductQuery(has_video=True))
    assert [p["id"] for p in with_video] == [ids["duga"]]

    priced, _ = queries.search_products(db, ProductQuery(min_price=1000, max_price=3000))
    assert [p["id"] for p in priced] == [ids["duga"]]

    excluded, _ = queries.search_products(db, ProductQuery(exclude_providers=["fanza"]))
    assert ids["fanza"] not in [p["id"] for p in excluded]


def test_search_products_by_performer_tag_and_text(catalog):
    db, ids = catalog
    with db.session() as session:
        sato = session.query(Performer).filter(Performer.name == "佐藤愛").one().id

    by_actress, _ = queries.search_products(db, ProductQuery(actress_id=sato))
    assert [p["id"] for p in by_actress] == [ids["sokmil"]]

    by_tag, _ = queries.search_products(db, ProductQuery(tags=["温泉"]))
    assert [p["id"] for p in by_tag] == [ids["sokmil"]]

    by_category, _ = queries.search_products(db, ProductQuery(category="企画"))
    assert [p["id"] for p in by_category] == [ids["duga"], ids["fanza"]]

    by_title, _ = queries.search_products(db, ProductQuery(query="温泉旅行"))
    assert [p["id"] for p in by_title] == [ids["sokmil"]]

    by_code, _ = queries.search_products(db, ProductQuery(query="abc0001"))
    assert [p["id"] for p in by_code] == [ids["duga"]]


def test_search_products_keeps_requested_id_order(catalog):
    db, ids = catalog

    products, total = queries.search_products(db, ProductQuery(ids=[ids["fanza"], ids["duga"]]))

    assert total == 2
    assert [p["id"] for p in products] == [ids["fanza"], ids["duga"]]


def test_is_new_uses_release_window(catalog):
    db, ids = catalog
    criteria = queries.build_product_filter(ProductQuery(is_new=True), today=date(2025, 1, 20))
    with db.session() as session:
        assert session.query(Product).filter(*criteria).count() == 3

    criteria = queries.build_product_filter(ProductQuery(is_new=True), today=date(2025, 2, 6))
    with db.session() as session:
        assert session.query(Product).filter(*criteria).count() == 1


def test_serialized_product_shape(catalog):
    db, ids = catalog

    product = queries.get_product_detail(db, str(ids["duga"]))

    assert product["normalizedProductId"] == "duga-abc-0001"
    assert product["productCode"] == "ABC-1"
    assert product["provider"] == "duga"
    assert product["aspName"] == "duga"
    assert product["releaseDate"] == "2025-01-10"
    assert product["sampleImages"] == [
        "https://img.example.test/abc-0001/sample1.jpg",
        "https://img.example.test/abc-0001/sample2.jpg",
    ]
    assert product["sampleVideos"] == ["https://cdn.example.test/abc.mp4"]
    assert product["hasVideo"] is True
    assert [t["category"] for t in product["tags"]] == ["genre", "maker"]
    assert product["sources"][0]["affiliateUrl"] == "https://aff.example.test/duga/abc-0001"


def test_get_product_detail_lookups(catalog):
    db, ids = catalog

    assert queries.get_product_detail(db, "duga-abc-0001")["id"] == ids["duga"]
    assert queries.get_product_detail(db, "ABC-0001")["id"] == ids["duga"]
    assert queries.get_product_detail(db, "MIDE-001")["id"] == ids["fanza"]
    assert queries.get_product_detail(db, "99999") is None
    assert queries.get_product_detail(db, str(ids["fanza"]), site_asps=ADULT_V) is None


def test_list_performers_and_detail(catalog):
    db, ids = catalog

    performers, total = queries.list_performers(db)
    assert total == 3
    assert performers[0]["name"] == "山田花子"
    assert performers[0]["productCount"] == 2

    restricted, total = queries.list_performers(db, site_asps=ADULT_V)
    assert total == 2
    assert "鈴木みく" not in [p["name"] for p in restricted]

    filtered, total = queries.list_performers(db, query="佐藤")
    assert [p["name"] for p in filtered] == ["佐藤愛"]

    detail = queries.get_performer_detail(db, performers[0]["id"])
    assert detail["productCount"] == 2
    assert detail["services"] == ["duga", "sokmil"]
    assert detail["topGenres"] == ["企画", "温泉"]
    assert detail["debutYear"] == 2025
    assert detail["latestProduct"]["id"] == ids["duga"]

    assert queries.get_performer_detail(db, 9999) is None


def test_list_tags_counts_products(catalog):
    db, _ = catalog

    genres = queries.list_tags(db, category="genre")

    assert {t["name"]: t["productCount"] for t in genres} == {"企画": 2, "温泉": 1}


def test_autocomplete_mixes_kinds(catalog):
    db, ids = catalog

    results = queries.autocomplete(db, "山田")
    assert results[0]["type"] == "actress"
    assert results[0]["label"] == "山田花子"

    codes = queries.autocomplete(db, "abc-0001")
    assert codes[0]["type"] == "product_id"
    assert codes[0]["id"] == ids["duga"]

    titles = queries.autocomplete(db, "温泉旅行")
    assert [(r["type"], r["id"]) for r in titles] == [("product", ids["sokmil"])]


def test_rankings_and_stats(catalog):
    db, ids = catalog

    ranking = queries.performer_ranking(db, days=30, today=date(2025, 1, 20))
    assert ranking[0]["name"] == "山田花子"
    assert ranking[0]["rank"] == 1
    assert ranking[0]["productCount"] == 2

    sales = queries.sale_ranking(db)
    assert len(sales) == 1
    assert sales[0]["productId"] == ids["sokmil"]
    assert sales[0]["provider"] == "sokmil"

    stats = queries.asp_stats(db)
    assert stats["totalProducts"] == 3
    assert stats["totalPerformers"] == 3
    by_asp = {a["aspName"]: a for a in stats["asps"]}
    assert by_asp["sokmil"]["activeSales"] == 1
    assert by_asp["duga"]["displayName"] == "DUGA"

    restricted = queries.asp_stats(db, site_asps=ADULT_V)
    assert restricted["totalProducts"] == 2
    assert "fanza" not in {a["aspName"] for a in restricted["asps"]}


def test_sitemap_sources(catalog):
    db, ids = catalog

    products = queries.sitemap_products(db, site_asps=ADULT_V)
    assert [p["id"] for p in products] == [ids["duga"], ids["sokmil"]]

    tags = queries.sitemap_tags(db)
    assert {t["name"] for t in tags} == {"企画", "温泉"}

    videos = queries.video_sitemap_products(db)
    assert [v["id"] for v in videos] == [ids["duga"]]
    assert videos[0]["videoUrl"] == "https://cdn.example.test/abc.mp4"

    recent = queries.recently_updated_products(db, datetime.utcnow() - timedelta(hours=1))
    assert set(recent) == set(ids.values())
