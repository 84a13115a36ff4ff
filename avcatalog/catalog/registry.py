"""ASP registry: the single source of truth for affiliate service providers.

Adding an ASP means adding one entry to ASP_REGISTRY; every lookup map below
is derived from it.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import case, func


@dataclass(frozen=True)
class AspDefinition:
    """Metadata for one ASP or DTI sub-service."""

    id: str
    display_name: str
    db_names: Tuple[str, ...]
    display_order: Optional[int]
    in_adult_v: bool
    in_fanza: bool
    badge_color: Dict[str, str]
    provider_label: str
    ja_aliases: Tuple[str, ...] = ()
    parent_id: Optional[str] = None
    url_pattern: Optional[str] = None
    is_subscription: bool = False


def _badge(color: str) -> Dict[str, str]:
    """Badge classes for a Tailwind colour such as "purple" or "teal-700"."""
    if "-" in color:
        name, shade = color.split("-")
        border = f"{name}-{int(shade) - 100}"
        bg = f"{name}-{shade}"
    else:
        bg = f"{color}-600"
        border = f"{color}-500"
    return {"bg": f"bg-{bg}", "text": "text-white", "border": f"border-{border}"}


def _dti(
    id: str,
    display_name: str,
    url_pattern: str,
    display_order: Optional[int],
    color: str = "gray",
    ja_aliases: Tuple[str, ...] = (),
    provider_label: Optional[str] = None,
    in_adult_v: bool = True,
) -> AspDefinition:
    return AspDefinition(
        id=id,
        display_name=display_name,
        db_names=(id.upper(),),
        ja_aliases=ja_aliases,
        parent_id="dti",
        url_pattern=url_pattern,
        display_order=display_order,
        in_adult_v=in_adult_v,
        in_fanza=False,
        badge_color=_badge(color),
        provider_label=provider_label or display_name,
        is_subscription=True,
    )


ASP_REGISTRY: Tuple[AspDefinition, ...] = (
    # Main ASPs
    AspDefinition("sokmil", "SOKMIL", ("SOKMIL", "ソクミル"), 0, True, False, _badge("purple"), "ソクミル"),
    AspDefinition("duga", "DUGA", ("DUGA", "APEX"), 1, True, False, _badge("orange"), "DUGA"),
    AspDefinition("fanza", "FANZA", ("FANZA", "DMM"), 2, False, True, _badge("pink"), "FANZA"),
    AspDefinition("b10f", "B10F", ("B10F", "b10f.jp"), 3, True, False, _badge("emerald"), "b10f.jp"),
    AspDefinition(
        "mgs", "MGS動画", ("MGS",), 4, True, False, _badge("blue"), "MGS動画", ja_aliases=("MGS動画",)
    ),
    AspDefinition("fc2", "FC2", ("FC2",), 7, True, False, _badge("red"), "FC2"),
    AspDefinition(
        "japanska", "Japanska", ("Japanska", "JAPANSKA"), 12, True, False, _badge("indigo"), "Japanska"
    ),
    AspDefinition("dti", "DTI", ("DTI",), None, False, False, _badge("gray"), "DTI"),
    # DTI sub-services
    _dti(
        "caribbeancompr",
        "カリビアンコムPR",
        "caribbeancompr.com",
        5,
        "teal-700",
        ("カリビアンコムプレミアム", "カリビアンコムPR"),
        "カリビアンコムプレミアム",
    ),
    _dti("heyzo", "HEYZO", "heyzo.com", 6, "sky"),
    _dti("1pondo", "一本道", "1pondo.tv", 8, "cyan", ("一本道",)),
    _dti("caribbeancom", "カリビアンコム", "caribbeancom.com", 9, "teal-600", ("カリビアンコム",)),
    _dti("heydouga", "Hey動画", "heydouga.com", 10, "amber"),
    _dti("x1x", "X1X", "x1x.com", 11, provider_label="x1x.com"),
    _dti("enkou55", "エンコウ55", "enkou55.com", 13),
    _dti("urekko", "ウレッコ", "urekko", 14),
    _dti("tvdeav", "TVDEAV", "tvdeav", 15),
    _dti(
        "tokyohot",
        "Tokyo Hot",
        "tokyo-hot.com",
        16,
        "red-700",
        ("Tokyo Hot", "トウキョウホット"),
        "Tokyo-Hot",
    ),
    _dti("10musume", "天然むすめ", "10musume.com", None, "rose", ("天然むすめ",)),
    _dti("pacopacomama", "パコパコママ", "pacopacomama.com", None, "fuchsia", ("パコパコママ",)),
    _dti(
        "muramura",
        "ムラムラ",
        "muramura.tv",
        None,
        ja_aliases=("ムラムラ", "ムラムラってくる素人"),
        provider_label="ムラムラってくる素人",
    ),
    _dti("av9898", "AV9898", "av9898.com", None, in_adult_v=False),
    _dti("honnamatv", "ホンナマTV", "honnamatv.com", None, provider_label="honnamatv", in_adult_v=False),
)

DEFAULT_PROVIDER = "duga"
DEFAULT_BADGE_COLOR = _badge("gray")

# Derived lookup tables
DTI_URL_PATTERNS: Dict[str, str] = {e.url_pattern: e.id for e in ASP_REGISTRY if e.url_pattern}

JA_TO_EN_MAP: Dict[str, str] = {ja: e.id for e in ASP_REGISTRY for ja in e.ja_aliases}

UPPER_TO_LOWER_MAP: Dict[str, str] = {db: e.id for e in ASP_REGISTRY for db in e.db_names}

ASP_DISPLAY_NAMES: Dict[str, str] = {e.id: e.display_name for e in ASP_REGISTRY}

VALID_ASP_NAMES = frozenset(e.id for e in ASP_REGISTRY)

ASP_DISPLAY_ORDER: List[str] = [
    e.id
    for e in sorted(
        (e for e in ASP_REGISTRY if e.display_order is not None), key=lambda e: e.display_order
    )
]

ASP_BADGE_COLORS: Dict[str, Dict[str, str]] = {
    **{e.id: e.badge_color for e in ASP_REGISTRY},
    "default": DEFAULT_BADGE_COLOR,
}

PROVIDER_LABEL_MAP: Dict[str, str] = {db: e.provider_label for e in ASP_REGISTRY for db in e.db_names}

PROVIDER_TO_ASP_MAPPING: Dict[str, List[str]] = {e.id: list(e.db_names) for e in ASP_REGISTRY}

ASP_TO_PROVIDER_ID: Dict[str, str] = {
    **{e.id: e.id for e in ASP_REGISTRY},
    **{db: e.id for e in ASP_REGISTRY for db in e.db_names},
    **{ja: e.id for e in ASP_REGISTRY for ja in e.ja_aliases},
    "DMM": "fanza",
    "人妻斬り": "muramura",
    "金髪天國": "tokyohot",
}

# Main ASPs are stored under their first db name, DTI sub-services under their id
ADULT_V_ASPS: List[str] = [
    e.id if e.parent_id else e.db_names[0] for e in ASP_REGISTRY if e.in_adult_v
]

FANZA_ASPS: List[str] = [e.db_names[0] for e in ASP_REGISTRY if e.in_fanza]

VALID_PROVIDER_IDS: Tuple[str, ...] = tuple(e.id for e in ASP_REGISTRY if not e.parent_id)

DTI_SUB_SERVICE_IDS: Tuple[str, ...] = tuple(e.id for e in ASP_REGISTRY if e.parent_id == "dti")

LEGACY_PROVIDER_MAP: Dict[str, str] = {
    **{e.id: e.id for e in ASP_REGISTRY if not e.parent_id},
    **{db.lower(): e.id for e in ASP_REGISTRY if not e.parent_id for db in e.db_names},
    **{e.id: "dti" for e in ASP_REGISTRY if e.parent_id == "dti"},
    **{ja: "dti" for e in ASP_REGISTRY if e.parent_id == "dti" for ja in e.ja_aliases},
    "apex": "duga",
    "dmm": "fanza",
}

_REGISTRY_BY_ID: Dict[str, AspDefinition] = {e.id: e for e in ASP_REGISTRY}


def get_asp_entry(asp_id: str) -> Optional[AspDefinition]:
    """Look up a registry entry by canonical id."""
    return _REGISTRY_BY_ID.get(asp_id)


def get_asp_entry_by_db_name(db_name: str) -> Optional[AspDefinition]:
    """Look up a registry entry by a stored asp_name value."""
    asp_id = UPPER_TO_LOWER_MAP.get(db_name)
    return _REGISTRY_BY_ID.get(asp_id) if asp_id else None


def resolve_dti_service(url: Optional[str]) -> str:
    """Resolve a DTI affiliate URL to its sub-service id, or "dti"."""
    if url:
        for pattern, asp_id in DTI_URL_PATTERNS.items():
            if pattern in url:
                return asp_id
    return "dti"


def normalize_asp_name(asp_name: str, url: Optional[str] = None) -> str:
    """Normalize a stored, Japanese or mixed-case ASP name to its canonical id.

    Args:
        asp_name: ASP name as found in product_sources or on a page
        url: Affiliate URL, used to resolve DTI rows to their sub-service

    Returns:
        Canonical lowercase id; unknown names are lowercased as-is
    """
    if not asp_name:
        return ""

    if asp_name.upper() == "DTI":
        return resolve_dti_service(url)

    if asp_name in UPPER_TO_LOWER_MAP:
        return UPPER_TO_LOWER_MAP[asp_name]
    if asp_name in JA_TO_EN_MAP:
        return JA_TO_EN_MAP[asp_name]
    return asp_name.lower()


def get_asp_display_name(asp_name: str) -> str:
    """Display name for an ASP, or the input when unknown."""
    return ASP_DISPLAY_NAMES.get(normalize_asp_name(asp_name), asp_name)


def is_valid_asp_name(asp_name: str) -> bool:
    return bool(asp_name) and normalize_asp_name(asp_name) in VALID_ASP_NAMES


def is_dti_sub_service(asp_name: str) -> bool:
    normalized = normalize_asp_name(asp_name)
    return normalized == "dti" or normalized in DTI_SUB_SERVICE_IDS


def get_asp_badge_color(asp_name: str) -> Dict[str, str]:
    return ASP_BADGE_COLORS.get(normalize_asp_name(asp_name), DEFAULT_BADGE_COLOR)


def get_provider_label(asp_name: str) -> str:
    """Label shown next to a price for a stored asp_name."""
    if asp_name in PROVIDER_LABEL_MAP:
        return PROVIDER_LABEL_MAP[asp_name]
    entry = get_asp_entry(normalize_asp_name(asp_name))
    return entry.provider_label if entry else asp_name


def map_legacy_provider(value: Optional[str]) -> str:
    """Map any legacy provider string to one of VALID_PROVIDER_IDS.

    Old service ids, stored db names, Japanese aliases and mixed-case
    variants are accepted. DTI sub-services collapse to "dti"; anything
    unrecognised falls back to DEFAULT_PROVIDER.
    """
    if not value:
        return DEFAULT_PROVIDER

    key = value.strip()
    for candidate in (key, key.lower()):
        if candidate in LEGACY_PROVIDER_MAP:
            return LEGACY_PROVIDER_MAP[candidate]

    provider = ASP_TO_PROVIDER_ID.get(key) or normalize_asp_name(key)
    if provider in DTI_SUB_SERVICE_IDS:
        return "dti"
    if provider in VALID_PROVIDER_IDS:
        return provider
    return DEFAULT_PROVIDER


def map_legacy_services(values: Iterable[str]) -> List[str]:
    """Map legacy provider strings, dropping duplicates but keeping order."""
    seen: List[str] = []
    for value in values:
        provider = map_legacy_provider(value)
        if provider not in seen:
            seen.append(provider)
    return seen


def site_asp_names(mode: str) -> Optional[List[str]]:
    """Stored asp_name values visible on a storefront; None means unrestricted."""
    if mode == "fanza":
        return list(FANZA_ASPS)
    if mode == "adult-v":
        return list(ADULT_V_ASPS)
    return None


def site_provider_ids(mode: str) -> Optional[List[str]]:
    """Canonical ids visible on a storefront; None means unrestricted."""
    names = site_asp_names(mode)
    if names is None:
        return None
    return [normalize_asp_name(name) for name in names]


def asp_normalization_expression(asp_column, url_column):
    """SQL CASE expression computing normalize_asp_name() in the database.

    Args:
        asp_column: Column holding the stored asp_name
        url_column: Column holding the affiliate URL, used for DTI rows

    Returns:
        SQLAlchemy expression yielding the canonical id
    """
    whens = [
        ((func.upper(asp_column) == "DTI") & url_column.like(f"%{pattern}%"), asp_id)
        for pattern, asp_id in DTI_URL_PATTERNS.items()
    ]
    whens.append((func.upper(asp_column) == "DTI", "dti"))
    whens.extend((asp_column == name, asp_id) for name, asp_id in UPPER_TO_LOWER_MAP.items())
    whens.extend((asp_column == name, asp_id) for name, asp_id in JA_TO_EN_MAP.items())
    return case(*whens, else_=func.lower(asp_column))


def asp_names_for_providers(provider_ids: Iterable[str]) -> List[str]:
    """All stored asp_name spellings that normalize to any of provider_ids."""
    names: List[str] = []
    for provider_id in provider_ids:
        entry = get_asp_entry(provider_id)
        if entry is None:
            names.append(provider_id)
            continue
        names.append(entry.id)
        names.extend(entry.db_names)
        names.extend(entry.ja_aliases)
    return names
