from avcatalog.catalog.product_ids import (
    extract_maker_code,
    format_product_code_for_display,
    generate_product_id_variations,
    match_product_id,
    normalize_product_id_for_search,
    product_id_to_like_pattern,
    strip_asp_prefix,
)


def test_normalize_for_search():
    assert normalize_product_id_for_search(" MIDE-001 ") == "mide001"
    assert normalize_product_id_for_search("abc_123") == "abc123"
    assert match_product_id("MIDE-001", "mide001")
    assert not match_product_id("MIDE-001", "MIDE-002")


def test_variations_cover_case_separators_and_padding():
    variations = generate_product_id_variations("MIDE-001")

    assert variations[0] == "MIDE-001"
    for expected in ("mide-001", "MIDE001", "mide001", "MIDE-1", "mide1", "MIDE-00001", "mide00001"):
        assert expected in variations
    assert len(variations) == len(set(variations))


def test_variations_for_fanza_and_prefixed_ids():
    fanza = generate_product_id_variations("mide00001")
    assert "MIDE-001" in fanza
    assert "FANZA-mide00001" in fanza

    prefixed = generate_product_id_variations("CARIBBEAN-123456_01")
    assert "123456_01" in prefixed
    assert "123456-01" in prefixed
    assert "12345601" in prefixed


def test_variations_for_mgs_and_tmp_shapes():
    mgs = generate_product_id_variations("259LUXU1234")
    assert "259LUXU-1234" in mgs
    assert "259luxu-1234" in mgs

    tmp = generate_product_id_variations("4037-PPV2543")
    assert "4037-ppv2543" in tmp
    assert "4037PPV2543" in tmp


def test_strip_asp_prefix():
    assert strip_asp_prefix("CARIBBEAN-123456") == "123456"
    assert strip_asp_prefix("heydouga-4037-PPV2543") == "4037-PPV2543"
    assert strip_asp_prefix("MIDE-001") == "MIDE-001"


def test_like_pattern_tolerates_missing_separator():
    assert product_id_to_like_pattern("MIDE-001") == "mide%001"
    assert product_id_to_like_pattern("mide001") == "mide%001"


def test_format_product_code_for_display():
    assert format_product_code_for_display("107START-470") == "START-470"
    assert format_product_code_for_display("ssis00865") == "SSIS-865"
    assert format_product_code_for_display("h_1234abc00123") == "ABC-123"
    assert format_product_code_for_display("300mium01359") == "300MIUM-1359"
    assert format_product_code_for_display("abc-000") == "ABC-0"
    assert format_product_code_for_display("???") == "???"
    assert format_product_code_for_display("") is None
    assert format_product_code_for_display(None) is None


def test_extract_maker_code():
    assert extract_maker_code("SSIS-865") == "SSIS-865"
    assert extract_maker_code("abc00123") == "ABC-123"
    assert extract_maker_code("DUGA-abc-0001") == "ABC-1"
    assert extract_maker_code("123456") is None
    assert extract_maker_code(None) is None
