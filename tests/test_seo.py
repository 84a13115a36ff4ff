from datetime import date

from avcatalog.catalog import seo


def test_description_leads_with_sale_and_ends_with_rating():
    description = seo.generate_optimized_description(
        "テスト作品タイトル",
        actress_name="山田花子",
        product_id="ABC-123",
        discount=30,
        rating=4.5,
        review_count=10,
        duration=120,
        provider="DUGA",
    )

    assert description == "【30%OFF】 - ABC-123 - テスト作品タイトル - 山田花子出演 - 120分 - DUGAで今すぐ視聴 - ★4.5評価"


def test_description_hides_weak_ratings_and_falls_back_to_english():
    low = seo.generate_optimized_description("Title here", rating=3.9, review_count=50, locale="en")
    assert "★" not in low

    few_reviews = seo.generate_optimized_description("Title here", rating=4.8, review_count=2)
    assert "★" not in few_reviews

    unknown = seo.generate_optimized_description("Title here", provider="DUGA", locale="fr")
    assert unknown == "Title here - Watch now on DUGA"


def test_description_is_truncated_to_160_characters():
    description = seo.generate_optimized_description("タイトル" * 30, actress_name="名" * 200)

    assert len(description) == seo.MAX_DESCRIPTION_LENGTH
    assert description.endswith("...")


def test_actress_description_by_locale():
    ja = seo.generate_actress_description("山田花子", work_count=12, top_genres=["企画", "巨乳"], latest_work="最新作")
    assert ja.startswith("山田花子の作品一覧 | 全12本 | 人気ジャンル: 企画・巨乳 | 最新作「最新作」")

    en = seo.generate_actress_description("Hanako", work_count=3, locale="en")
    assert en == "Hanako's videos | 3 titles | Browse top-rated and sale items"

    assert seo.generate_actress_description("Hanako", locale="de") == "Hanako - Video list and profile"


def test_actress_alt_text_joins_aliases_count_and_services():
    alt = seo.generate_actress_alt_text(
        "三上悠亜", product_count=120, services=["FANZA", "MGS", "FANZA"], aliases=["鬼头桃菜", "三上悠亜"]
    )
    assert alt == "三上悠亜（鬼头桃菜） - 120作品 - FANZA・MGS動画"

    assert seo.generate_actress_alt_text("山田花子") == "山田花子"
    assert seo.generate_actress_alt_text("Hanako", product_count=5, locale="en") == "Hanako - 5 titles"


def test_image_alt_texts():
    sample = seo.generate_sample_image_alt_text(
        "テスト作品", product_code="ABC-1", performer_names=["山田花子"], index=2, total=5
    )
    assert sample == "ABC-1 - テスト作品 - 山田花子 - サンプル画像 2/5"

    product = seo.generate_product_alt_text("Test title", ["Hanako"], "ABC-1", locale="en")
    assert product == "Test title cover image - Hanako - ABC-1"


def test_product_schema_offer_and_rating():
    schema = seo.generate_product_schema(
        name="テスト作品",
        description="説明",
        image="https://img.example.test/p.jpg",
        url="/products/1",
        price=2980,
        sale_price=1980,
        brand="メーカーX",
        sku="ABC-1",
        today=date(2025, 1, 1),
    )

    assert schema["@type"] == "Product"
    assert schema["url"].endswith("/products/1")
    assert schema["brand"] == {"@type": "Brand", "name": "メーカーX"}
    assert schema["offers"]["price"] == 1980
    assert schema["offers"]["priceValidUntil"] == "2025-01-31"
    assert "aggregateRating" not in schema

    rated = seo.generate_product_schema("x", "y", None, "/products/2", rating_value=4.2, review_count=7)
    assert rated["aggregateRating"]["reviewCount"] == 7
    assert "offers" not in rated
    assert "image" not in rated


def test_breadcrumb_and_video_schema():
    crumbs = seo.generate_breadcrumb_schema([{"name": "Home", "url": "/"}, {"name": "Products", "url": "/products"}])
    assert [item["position"] for item in crumbs["itemListElement"]] == [1, 2]
    assert crumbs["itemListElement"][1]["item"].endswith("/products")

    video = seo.generate_video_object_schema("x", "y", None, "https://cdn.example.test/v.mp4", duration=120)
    assert video["duration"] == "PT120M"
    assert "thumbnailUrl" not in video


def test_person_schema():
    person = seo.generate_person_schema(
        "山田花子", None, None, "/actress/1", work_count=12, debut_year=2019, aliases=["やまだはなこ"]
    )
    assert person["@type"] == "Person"
    assert person["alternateName"] == ["やまだはなこ"]
    assert person["knowsAbout"] == "12作品以上に出演"
    assert person["birthDate"] == "2019"


def test_website_and_item_list_schema():
    website = seo.generate_website_schema("en")
    assert website["@type"] == "WebSite"
    assert website["potentialAction"]["target"]["urlTemplate"].endswith("/en/products?q={search_term_string}")

    ranking = seo.generate_item_list_schema([{"name": "山田花子", "url": "/actress/1"}], "ranking")
    assert ranking["itemListElement"][0]["position"] == 1
    assert ranking["itemListElement"][0]["item"].endswith("/actress/1")


def test_site_settings_are_passed_per_call():
    site = seo.SeoSite.from_values(site_name="Other Site", alternate_name=None, site_url="https://other.test/")

    assert site.alternate_name == seo.DEFAULT_SITE.alternate_name
    website = seo.generate_website_schema("ja", site=site)
    assert website["name"] == "Other Site"
    assert website["url"] == "https://other.test"
    crumbs = seo.generate_breadcrumb_schema([{"name": "Home", "url": "/"}], site=site)
    assert crumbs["itemListElement"][0]["item"] == "https://other.test/"

    assert seo.generate_website_schema("ja")["url"] == "https://example.com"
