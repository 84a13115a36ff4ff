from avcatalog.catalog.registry import (
    ASP_DISPLAY_ORDER,
    DEFAULT_BADGE_COLOR,
    VALID_PROVIDER_IDS,
    asp_names_for_providers,
    get_asp_badge_color,
    get_asp_display_name,
    get_asp_entry_by_db_name,
    get_provider_label,
    is_dti_sub_service,
    is_valid_asp_name,
    map_legacy_provider,
    map_legacy_services,
    normalize_asp_name,
    site_provider_ids,
)


def test_normalize_asp_name_handles_db_names_and_japanese_aliases():
    assert normalize_asp_name("DUGA") == "duga"
    assert normalize_asp_name("APEX") == "duga"
    assert normalize_asp_name("ソクミル") == "sokmil"
    assert normalize_asp_name("一本道") == "1pondo"
    assert normalize_asp_name("b10f.jp") == "b10f"
    assert normalize_asp_name("SomethingElse") == "somethingelse"
    assert normalize_asp_name("") == ""


def test_normalize_asp_name_resolves_dti_rows_by_url():
    assert normalize_asp_name("DTI", "https://www.heyzo.com/moviepages/1234/index.html") == "heyzo"
    assert normalize_asp_name("DTI", "https://www.caribbeancompr.com/moviepages/1/") == "caribbeancompr"
    assert normalize_asp_name("DTI", None) == "dti"


def test_map_legacy_provider_collapses_dti_and_falls_back_to_duga():
    assert map_legacy_provider("heyzo") == "dti"
    assert map_legacy_provider("一本道") == "dti"
    assert map_legacy_provider("APEX") == "duga"
    assert map_legacy_provider("DMM") == "fanza"
    assert map_legacy_provider(" SOKMIL ") == "sokmil"
    assert map_legacy_provider("not-a-provider") == "duga"
    assert map_legacy_provider(None) == "duga"

    for value in ("heyzo", "FANZA", "ソクミル", "unknown", ""):
        assert map_legacy_provider(value) in VALID_PROVIDER_IDS


def test_map_legacy_services_dedupes_in_order():
    assert map_legacy_services(["DUGA", "apex", "heyzo", "1pondo", "MGS"]) == ["duga", "dti", "mgs"]


def test_site_provider_ids_by_mode():
    assert site_provider_ids("all") is None
    assert site_provider_ids("fanza") == ["fanza"]

    adult_v = site_provider_ids("adult-v")
    assert "fanza" not in adult_v
    for provider in ("duga", "sokmil", "b10f", "heyzo", "1pondo"):
        assert provider in adult_v


def test_display_helpers():
    assert ASP_DISPLAY_ORDER[:4] == ["sokmil", "duga", "fanza", "b10f"]
    assert get_asp_display_name("SOKMIL") == "SOKMIL"
    assert get_asp_display_name("mystery") == "mystery"
    assert get_provider_label("MGS") == "MGS動画"
    assert get_asp_badge_color("DUGA") == {
        "bg": "bg-orange-600",
        "text": "text-white",
        "border": "border-orange-500",
    }
    assert get_asp_badge_color("caribbeancompr")["border"] == "border-teal-600"
    assert get_asp_badge_color("mystery") == DEFAULT_BADGE_COLOR


def test_validity_checks():
    assert is_valid_asp_name("DUGA")
    assert not is_valid_asp_name("mystery")
    assert is_dti_sub_service("heyzo")
    assert not is_dti_sub_service("DUGA")


def test_asp_names_for_providers_lists_every_spelling():
    names = asp_names_for_providers(["duga"])
    assert set(names) == {"duga", "DUGA", "APEX"}


def test_get_asp_entry_by_db_name():
    assert get_asp_entry_by_db_name("APEX").id == "duga"
    assert get_asp_entry_by_db_name("ソクミル").id == "sokmil"
    assert get_asp_entry_by_db_name("UNKNOWN") is None
