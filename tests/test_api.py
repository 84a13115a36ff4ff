from datetime import date

import pytest
from fastapi.testclient import TestClient

from avcatalog.api.main import app, get_db, get_site_asps
from avcatalog.storage import Database
from avcatalog.storage.models import Product

from conftest import build_parsed, build_sale


@pytest.fixture
def catalog_db():
    db = Database("sqlite:///:memory:")
    db.save_parsed_product(
        "DUGA",
        build_parsed(
            title="夏の思い出 海辺のバカンス",
            maker="メーカーA",
            sample_videos=["https://cdn.example.test/abc.mp4"],
        ),
    )
    db.save_parsed_product(
        "SOKMIL",
        build_parsed(
            "sok001",
            prefix="sokmil",
            title="冬の温泉旅行 完全版",
            release_date=date(2025, 1, 5),
            price=1480,
            performers=["佐藤愛"],
            categories=["温泉"],
            sale=build_sale(regular_price=1480, sale_price=980),
        ),
    )
    db.save_parsed_product(
        "FANZA",
        build_parsed(
            "mide00001",
            prefix="fanza",
            title="別サイト限定の作品",
            performers=["鈴木みく"],
            sample_videos=["https://cdn.example.test/fanza.mp4"],
        ),
    )
    return db


@pytest.fixture
def client(catalog_db):
    app.dependency_overrides[get_db] = lambda: catalog_db
    app.dependency_overrides[get_site_asps] = lambda: ["duga", "sokmil", "b10f"]
    yield TestClient(app)
    app.dependency_overrides.clear()


def product_id(db, normalized):
    with db.session() as session:
        return session.query(Product.id).filter(Product.normalized_product_id == normalized).scalar()


def test_health_and_root(client):
    assert client.get("/health").json()["status"] == "healthy"
    root = client.get("/").json()
    assert root["status"] == "running"
    assert root["jsonLd"]["@type"] == "WebSite"


def test_list_products_restricted_to_site(client):
    response = client.get("/api/products")

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert body["limit"] == 96
    assert {p["normalizedProductId"] for p in body["products"]} == {"duga-abc-0001", "sokmil-sok001"}
    assert response.headers["cache-control"] == "public, s-maxage=300, stale-while-revalidate=600"


def test_list_products_rejects_out_of_range_limit(client):
    response = client.get("/api/products", params={"limit": 5})

    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid parameter 'limit'")

    assert client.get("/api/products", params={"limit": 101}).status_code == 400


def test_list_products_rejects_bad_ids(client):
    response = client.get("/api/products", params={"ids": "1,abc"})

    assert response.status_code == 400
    assert response.json() == {"error": "ids must be comma-separated integers"}


def test_list_products_by_ids_adjusts_limit_and_caches_longer(client, catalog_db):
    duga = product_id(catalog_db, "duga-abc-0001")

    response = client.get("/api/products", params={"ids": str(duga), "offset": 10})

    body = response.json()
    assert body["limit"] == 1
    assert body["offset"] == 0
    assert [p["id"] for p in body["products"]] == [duga]
    assert response.headers["cache-control"] == "public, s-maxage=3600, stale-while-revalidate=7200"


def test_list_products_filters(client):
    on_sale = client.get("/api/products", params={"onSale": "true"}).json()
    assert [p["normalizedProductId"] for p in on_sale["products"]] == ["sokmil-sok001"]

    priced = client.get("/api/products", params={"priceRange": "2000-3000"}).json()
    assert [p["normalizedProductId"] for p in priced["products"]] == ["duga-abc-0001"]

    assert client.get("/api/products", params={"priceRange": "cheap"}).status_code == 400

    text = client.get("/api/products", params={"query": "温泉"})
    assert text.headers["cache-control"] == "public, s-maxage=60, stale-while-revalidate=120"


def test_search_requires_query(client):
    missing = client.get("/api/products/search")
    assert missing.status_code == 400
    assert missing.json() == {"error": "Search query (q) is required"}

    too_long = client.get("/api/products/search", params={"q": "あ" * 201})
    assert too_long.status_code == 400

    found = client.get("/api/products/search", params={"q": "温泉旅行"}).json()
    assert found["count"] == 1
    assert found["query"] == "温泉旅行"


def test_product_detail_includes_seo(client, catalog_db):
    response = client.get("/api/products/duga-abc-0001")

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == product_id(catalog_db, "duga-abc-0001")
    assert "夏の思い出 海辺のバカンス" in body["seo"]["description"]
    assert [schema["@type"] for schema in body["seo"]["jsonLd"]] == ["Product", "BreadcrumbList", "VideoObject"]
    assert len(body["seo"]["sampleImageAlts"]) == 2


def test_product_detail_not_found_and_hidden(client, catalog_db):
    assert client.get("/api/products/99999").json() == {"error": "Product not found"}

    fanza = product_id(catalog_db, "fanza-mide00001")
    assert client.get(f"/api/products/{fanza}").status_code == 404


def test_autocomplete(client):
    assert client.get("/api/search/autocomplete", params={"q": "a"}).json() == {"results": []}

    body = client.get("/api/search/autocomplete", params={"q": "佐藤"}).json()
    assert body["results"][0]["label"] == "佐藤愛"


def test_actresses(client):
    body = client.get("/api/actresses").json()
    assert "鈴木みく" not in [a["name"] for a in body["actresses"]]

    yamada = next(a for a in body["actresses"] if a["name"] == "山田花子")
    detail = client.get(f"/api/actresses/{yamada['id']}").json()
    assert detail["seo"]["description"].startswith("山田花子の作品一覧")
    assert detail["seo"]["jsonLd"][0]["@type"] == "Person"

    missing = client.get("/api/actresses/99999")
    assert missing.status_code == 404
    assert missing.json() == {"error": "Actress not found"}


def test_tags_rankings_and_stats(client):
    tags = client.get("/api/tags", params={"category": "genre"}).json()["tags"]
    assert {t["name"] for t in tags} == {"企画", "温泉"}

    actresses = client.get("/api/rankings/actresses", params={"days": 365}).json()
    assert actresses["jsonLd"]["@type"] == "ItemList"

    sales = client.get("/api/rankings/sales").json()["ranking"]
    assert len(sales) == 1

    stats = client.get("/api/stats").json()
    assert stats["totalProducts"] == 2


def test_news(client, catalog_db):
    catalog_db.save_news_article("new_releases-20250110", "new_releases", "新着作品まとめ")

    body = client.get("/api/news").json()

    assert body["total"] == 1
    assert body["articles"][0]["slug"] == "new_releases-20250110"


def test_sitemaps(client):
    response = client.get("/sitemap.xml")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/xml")
    assert "/products/duga-abc-0001" in response.text
    assert "/products/fanza-mide00001" not in response.text

    videos = client.get("/sitemap-videos.xml")
    assert "https://cdn.example.test/abc.mp4" in videos.text
    assert "fanza.mp4" not in videos.text
