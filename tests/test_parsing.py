from avcatalog.catalog.parsing import (
    extract_price,
    extract_price_info,
    extract_product_codes,
    get_last_path_segment,
    is_valid_image_url,
    is_valid_performer,
    is_valid_performer_name,
    is_valid_title,
    is_valid_video_url,
    normalize_performer_name,
    normalize_text,
    parse_date,
    parse_duration,
    parse_performer_name,
    parse_performer_names,
    resolve_url,
    sanitize_product_data,
    strip_html,
    validate_product_data,
)


def test_extract_price():
    assert extract_price("¥1,980") == 1980
    assert extract_price("1980円") == 1980
    assert extract_price("価格未定") is None
    assert extract_price(None) is None


def test_extract_price_info_with_discount_in_text():
    info = extract_price_info("¥2,980 → ¥1,980 (33%OFF)")

    assert info.regular_price == 2980
    assert info.sale_price == 1980
    assert info.discount_percent == 33


def test_extract_price_info_computes_discount():
    info = extract_price_info("2980円 1980円")
    assert (info.regular_price, info.sale_price, info.discount_percent) == (2980, 1980, 34)

    single = extract_price_info("¥1,480")
    assert single.regular_price == 1480
    assert single.sale_price is None

    assert extract_price_info("無料") is None


def test_parse_performer_name_variants():
    kana = parse_performer_name("山田花子（やまだはなこ）")
    assert kana.name == "山田花子"
    assert kana.name_kana == "やまだはなこ"

    alias = parse_performer_name("山田花子 / Hanako Yamada")
    assert alias.name == "山田花子"
    assert alias.alias_names == ["Hanako Yamada"]

    assert parse_performer_name("   ") is None


def test_parse_performer_names_splits_on_japanese_separators():
    names = [p.name for p in parse_performer_names("山田花子,佐藤愛、鈴木みく")]
    assert names == ["山田花子", "佐藤愛", "鈴木みく"]
    assert parse_performer_names(None) == []


def test_performer_name_checks():
    assert normalize_performer_name("山田　花子（やまだ）") == "山田 花子"

    assert is_valid_performer_name("山田花子")
    assert not is_valid_performer_name("素人娘")
    assert not is_valid_performer_name("Name123")
    assert not is_valid_performer_name("あ")

    assert is_valid_performer("山田")
    assert not is_valid_performer("デ")
    assert not is_valid_performer("A→B")


def test_parse_date_formats():
    assert parse_date("2024年1月15日") == "2024-01-15"
    assert parse_date("2024/01/15") == "2024-01-15"
    assert parse_date("01/15/2024") == "2024-01-15"
    assert parse_date("24.01.15") == "2024-01-15"
    assert parse_date("2024-01-15T10:00:00+09:00") == "2024-01-15"
    assert parse_date("Jan 15, 2024") == "2024-01-15"
    assert parse_date("近日発売") is None


def test_parse_duration_formats():
    assert parse_duration("120分") == 120
    assert parse_duration("1時間30分") == 90
    assert parse_duration("2時間") == 120
    assert parse_duration("2:30:00") == 150
    assert parse_duration("90") == 90
    assert parse_duration("不明") is None


def test_text_helpers():
    assert normalize_text("ＡＢＣ　１２３") == "ABC 123"
    assert strip_html("<p>Tom&amp;Jerry</p><br>") == "Tom&Jerry"
    assert is_valid_image_url("https://img.example.test/a.jpg")
    assert not is_valid_image_url("ftp://img.example.test/a.jpg")
    assert is_valid_video_url("https://cdn.example.test/sample.mp4?token=1")
    assert not is_valid_title("12345")
    assert not is_valid_title("無題")


def test_validate_product_data_rejects_placeholders_and_top_pages():
    assert not validate_product_data("", None, "DUGA", "abc-001").is_valid
    assert not validate_product_data("DUGA-abc-001", None, "DUGA", "abc-001").is_valid
    assert not validate_product_data("ソクミル-12345", None, "SOKMIL", "999").is_valid
    assert not validate_product_data(
        "普通のタイトルです", "18歳未満の方の閲覧を禁止します", "SOKMIL", "1"
    ).is_valid
    assert not validate_product_data("短い", None, "DUGA", "1").is_valid

    result = validate_product_data("夏の思い出 海辺のバカンス", "説明", "DUGA", "abc-001")
    assert result.is_valid
    assert result.reason is None


def test_sanitize_product_data_strips_tags_and_brackets():
    title, description = sanitize_product_data("【<b>限定 作品</b>】", "<p>説明   文</p>")
    assert title == "限定 作品"
    assert description == "説明 文"


def test_extract_product_codes():
    assert extract_product_codes("FANZA-gvh00802") == ["FANZA-GVH00802", "GVH00802", "GVH-802", "GVH802"]
    assert extract_product_codes("425bdsx-01902") == ["425BDSX-01902", "BDSX-1902", "BDSX01902", "BDSX-01902"]


def test_url_helpers():
    assert resolve_url("https://example.test/a/b.html", "../c.jpg") == "https://example.test/c.jpg"
    assert get_last_path_segment("https://example.test/items/abc-001/") == "abc-001"
    assert get_last_path_segment("https://example.test/") is None
