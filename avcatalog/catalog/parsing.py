"""Text parsing helpers shared by crawlers.

Price extraction, performer name parsing, date and duration conversion,
plus the validation that rejects store top pages and placeholder records.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urljoin, urlparse

# ============================================================================
# Prices
# ============================================================================


@dataclass
class PriceInfo:
    """Regular price, plus the sale price and discount when discounted."""

    regular_price: int
    sale_price: Optional[int] = None
    discount_percent: Optional[int] = None


def extract_price(text: Optional[str]) -> Optional[int]:
    """Extract an integer price: '¥1,980' -> 1980, '1980円' -> 1980."""
    if not text:
        return None

    cleaned = re.sub(r"[¥￥$円,、]", "", text)
    cleaned = re.sub(r"\s", "", cleaned)
    match = re.search(r"(\d+)", cleaned)
    return int(match.group(1)) if match else None


def extract_price_info(text: Optional[str]) -> Optional[PriceInfo]:
    """Extract regular and sale price from text such as '¥2,980 → ¥1,980 (33%OFF)'.

    With two or more prices the larger is the regular price and the smaller
    the sale price. The discount is taken from the text, or computed.
    """
    if not text:
        return None

    discount = None
    discount_match = re.search(r"(\d+)\s*%\s*(OFF|引き|オフ)", text, re.IGNORECASE)
    if discount_match:
        discount = int(discount_match.group(1))
        # Keep the percentage out of the price scan
        text = text[: discount_match.start()] + text[discount_match.end() :]

    prices = []
    for match in re.finditer(r"[¥￥]?\s*(\d{1,3}(?:[,，]\d{3})+|\d+)\s*円?", text):
        value = int(re.sub(r"[,，]", "", match.group(1)))
        if value > 0:
            prices.append(value)

    if not prices:
        return None

    if len(prices) == 1:
        return PriceInfo(regular_price=prices[0], discount_percent=discount)

    prices.sort(reverse=True)
    regular, sale = prices[0], prices[1]
    if not discount and regular > sale:
        discount = round((regular - sale) / regular * 100)
    return PriceInfo(regular_price=regular, sale_price=sale, discount_percent=discount)


# ============================================================================
# Performers
# ============================================================================


@dataclass
class ParsedPerformer:
    name: str
    name_kana: Optional[str] = None
    alias_names: List[str] = field(default_factory=list)


_INVALID_PERFORMER_FRAGMENTS = {"デ", "ラ", "ゆ", "な", "他"}

_PERFORMER_EXCLUDE_WORDS = [
    "素人", "ナンパ", "企画", "AV", "動画", "サンプル", "無料",
    "高画質", "HD", "4K", "VR", "カテゴリ", "タグ", "ジャンル",
    "人気", "ランキング", "新着", "特集", "セール", "配信",
    "page", "Page", "PAGE", "next", "prev",
]


def parse_performer_name(text: Optional[str]) -> Optional[ParsedPerformer]:
    """Parse '山田太郎（やまだたろう）' or '山田太郎 / Taro Yamada'."""
    if not text:
        return None
    trimmed = text.strip()
    if not trimmed:
        return None

    result = ParsedPerformer(name=trimmed)

    kana_match = re.match(r"^(.+?)[（(]([ぁ-んァ-ン]+)[）)]$", trimmed)
    if kana_match:
        result.name = kana_match.group(1).strip()
        result.name_kana = kana_match.group(2).strip()

    slash_match = re.match(r"^(.+?)\s*[/／]\s*(.+)$", trimmed)
    if slash_match:
        result.name = slash_match.group(1).strip()
        result.alias_names = [slash_match.group(2).strip()]

    return result


def parse_performer_names(text: Optional[str], separators: str = r"[,、，\n]+") -> List[ParsedPerformer]:
    if not text:
        return []
    parsed = (parse_performer_name(part) for part in re.split(separators, text))
    return [p for p in parsed if p is not None]


def normalize_performer_name(name: str) -> str:
    """Unify spacing and drop a trailing parenthesised reading."""
    name = name.strip().replace("　", " ")
    name = re.sub(r"\s+", " ", name)
    name = re.sub(r"[（(][^）)]*[）)]$", "", name)
    return name.strip()


def is_valid_performer(name: Optional[str]) -> bool:
    """Whether a stored performer is fit for display."""
    if not name or len(name) <= 1:
        return False
    if "→" in name:
        return False
    return name not in _INVALID_PERFORMER_FRAGMENTS


def is_valid_performer_name(name: Optional[str]) -> bool:
    """Stricter check applied to names scraped from listings."""
    if not name or len(name) < 2 or len(name) > 30:
        return False
    if not re.match(r"^[\u3040-\u309F\u30A0-\u30FF\u4E00-\u9FAF\sA-Za-z・]+$", name):
        return False
    return not any(word in name for word in _PERFORMER_EXCLUDE_WORDS)


# ============================================================================
# Dates and durations
# ============================================================================

_ENGLISH_MONTHS = {
    "jan": 1, "january": 1, "feb": 2, "february": 2, "mar": 3, "march": 3,
    "apr": 4, "april": 4, "may": 5, "jun": 6, "june": 6, "jul": 7, "july": 7,
    "aug": 8, "august": 8, "sep": 9, "september": 9, "oct": 10, "october": 10,
    "nov": 11, "november": 11, "dec": 12, "december": 12,
}


def _format_date(year: str, month: str, day: str) -> str:
    if len(year) == 2:
        year = f"20{year}"
    return f"{year}-{month.zfill(2)}-{day.zfill(2)}"


def parse_date(text: Optional[str]) -> Optional[str]:
    """Parse a date into YYYY-MM-DD.

    Accepts '2024年1月15日', '2024/01/15', '01/15/2024', '24.01.15',
    ISO timestamps and 'Jan 15, 2024'.
    """
    if not text:
        return None
    trimmed = text.strip()

    match = re.search(r"(\d{4})年\s*(\d{1,2})月\s*(\d{1,2})日", trimmed)
    if match:
        return _format_date(*match.groups())

    match = re.search(r"(\d{2,4})[/\-.](\d{1,2})[/\-.](\d{1,4})", trimmed)
    if match:
        part1, part2, part3 = match.groups()
        if int(part1) > 12:
            return _format_date(part1, part2, part3[:2])
        if int(part3) > 31:
            # US order: MM/DD/YYYY
            return _format_date(part3, part1, part2)
        return _format_date(part1, part2, part3)

    match = re.search(r"([A-Za-z]+)\s+(\d{1,2}),?\s*(\d{4})", trimmed)
    if match:
        month = _ENGLISH_MONTHS.get(match.group(1).lower())
        if month:
            return _format_date(match.group(3), str(month), match.group(2))

    return None


def parse_duration(text: Optional[str]) -> Optional[int]:
    """Parse a running time into minutes: '120分', '1時間30分', '2:30:00', '90'."""
    if not text:
        return None
    trimmed = text.strip()

    match = re.search(r"(\d+)\s*分", trimmed)
    if match and "時間" not in trimmed:
        return int(match.group(1))

    match = re.search(r"(\d+)\s*時間\s*(?:(\d+)\s*分)?", trimmed)
    if match:
        return int(match.group(1)) * 60 + int(match.group(2) or 0)

    match = re.search(r"(\d{1,2}):(\d{2})(?::(\d{2}))?", trimmed)
    if match:
        if match.group(3):
            return int(match.group(1)) * 60 + int(match.group(2))
        return int(match.group(1))

    match = re.match(r"^(\d+)$", trimmed)
    if match:
        return int(match.group(1))

    return None


# ============================================================================
# Text and URLs
# ============================================================================

_HTML_ENTITIES = {
    "&nbsp;": " ",
    "&amp;": "&",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#39;": "'",
}


def strip_html(html: Optional[str]) -> str:
    if not html:
        return ""
    text = re.sub(r"<[^>]*>", " ", html)
    for entity, char in _HTML_ENTITIES.items():
        text = text.replace(entity, char)
    return re.sub(r"\s+", " ", text).strip()


def normalize_text(text: Optional[str]) -> str:
    """Convert full-width alphanumerics and spaces to half-width."""
    if not text:
        return ""
    text = re.sub(r"[Ａ-Ｚａ-ｚ０-９]", lambda m: chr(ord(m.group(0)) - 0xFEE0), text)
    text = text.replace("　", " ")
    return re.sub(r"\s+", " ", text).strip()


def resolve_url(base: str, relative: str) -> str:
    return urljoin(base, relative)


def get_last_path_segment(url: str) -> Optional[str]:
    path = urlparse(url).path if "://" in url else url
    segments = [s for s in path.split("/") if s]
    return segments[-1] if segments else None


def is_valid_image_url(url: Optional[str]) -> bool:
    if not url:
        return False
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return False
    return bool(re.search(r"\.(jpg|jpeg|png|gif|webp|avif)$", parsed.path, re.IGNORECASE)) or (
        "/images/" in url
    )


def is_valid_video_url(url: Optional[str]) -> bool:
    if not url:
        return False
    return bool(re.search(r"\.(mp4|webm|m3u8|mpd)(\?|$)", url, re.IGNORECASE)) or "/video/" in url


def is_valid_title(title: Optional[str]) -> bool:
    if not title:
        return False
    trimmed = title.strip()
    if len(trimmed) < 2 or trimmed.isdigit():
        return False
    return not re.match(r"^(untitled|no title|タイトルなし|無題)$", trimmed, re.IGNORECASE)


# ============================================================================
# Product validation
# ============================================================================

TOP_PAGE_TITLE_PATTERNS = [
    re.compile(r"^ソクミル-\d+$"),
    re.compile(r"^Japanska-\d+$"),
    re.compile(r"^FC2動画アダルト$"),
    re.compile(r"^MGS動画\(成人認証\)"),
    re.compile(r"^アダルト動画.*ソクミル"),
    re.compile(r"^無修正動画.*カリビアンコム"),
    re.compile(r"^エロ動画・アダルトビデオ\s*-MGS動画"),
    re.compile(r"^MGS動画＜プレステージ\s*グループ＞$"),
]

TOP_PAGE_DESCRIPTION_PATTERNS = [
    re.compile(r"アダルト動画・エロ動画ソクミル"),
    re.compile(r"人気のアダルトビデオを高画質・低価格"),
    re.compile(r"全作品無料のサンプル動画付き"),
    re.compile(r"18歳未満.*閲覧.*禁止"),
    re.compile(r"年齢確認.*18歳以上"),
    re.compile(r"プレステージグループのMGS動画は、10年以上の運営実績"),
    re.compile(r"独占作品をはじめ、人気AV女優、素人、アニメ、VR作品など"),
]


@dataclass
class ValidationResult:
    is_valid: bool
    reason: Optional[str] = None


def validate_product_data(
    title: Optional[str],
    description: Optional[str],
    asp_name: str,
    original_id: str,
) -> ValidationResult:
    """Reject records scraped from a redirect, age gate or store top page."""
    if not title or not title.strip():
        return ValidationResult(False, "タイトルが空")

    placeholder = re.compile(f"^{re.escape(asp_name)}-{re.escape(original_id)}$", re.IGNORECASE)
    if placeholder.match(title):
        return ValidationResult(False, "プレースホルダータイトル")

    for pattern in TOP_PAGE_TITLE_PATTERNS:
        if pattern.search(title):
            return ValidationResult(False, f"トップページタイトル: {title}")

    if description:
        for pattern in TOP_PAGE_DESCRIPTION_PATTERNS:
            if pattern.search(description):
                return ValidationResult(False, "トップページ説明文を検出")

    if len(title) < 5:
        return ValidationResult(False, f"タイトルが短すぎる: {title}")

    return ValidationResult(True)


def sanitize_product_data(title: Optional[str], description: Optional[str]) -> tuple[str, str]:
    """Strip tags and surrounding brackets; returns (title, description)."""
    title = re.sub(r"<[^>]*>", "", title or "").strip()
    description = re.sub(r"<[^>]*>", "", description or "").strip()

    title = re.sub(r"\s+", " ", title)
    description = re.sub(r"\s+", " ", description)

    title = re.sub(r"^[【\[(（『「]|[】\])）』」]$", "", title).strip()
    return title, description


def extract_product_codes(normalized_id: str) -> List[str]:
    """Candidate maker codes for a normalized product id.

    FANZA-gvh00802 -> [FANZA-GVH00802, GVH00802, GVH-802, GVH802]
    425bdsx-01902  -> [425BDSX-01902, BDSX-1902, BDSX01902, BDSX-01902]
    """
    codes = []
    upper = normalized_id.upper()
    codes.append(upper)

    if upper.startswith("FANZA-"):
        without_fanza = upper.replace("FANZA-", "", 1)
        codes.append(without_fanza)
        match = re.match(r"^([A-Z]+)(\d+)$", without_fanza)
        if match:
            letters, numbers = match.group(1), match.group(2).lstrip("0")
            codes.append(f"{letters}-{numbers}")
            codes.append(f"{letters}{numbers}")

    match = re.match(r"^\d+([A-Z]+)-?(\d+)$", upper)
    if match:
        letters, digits = match.groups()
        codes.append(f"{letters}-{digits.lstrip('0')}")
        codes.append(f"{letters}{digits}")

    match = re.match(r"^(\d{2,3})([A-Z]+)-?(\d+)$", upper)
    if match:
        letters, digits = match.group(2), match.group(3)
        codes.append(f"{letters}-{digits}")
        codes.append(f"{letters}-{digits.lstrip('0')}")

    return list(dict.fromkeys(codes))
