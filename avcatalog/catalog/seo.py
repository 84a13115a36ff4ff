"""SEO helpers: meta descriptions, image alt text and JSON-LD structured data."""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Sequence

from .registry import get_provider_label

SUPPORTED_LOCALES = ("ja", "en", "zh", "zh-TW", "ko")

MAX_DESCRIPTION_LENGTH = 160

@dataclass(frozen=True)
class SeoSite:
    """Site-wide values used in structured data."""

    site_name: str = "Adult Viewer Lab"
    alternate_name: str = "アダルトビューアーラボ"
    default_description: str = (
        "複数のプラットフォームを横断し、ヘビー視聴者向けに女優・ジャンル別のレビュー、"
        "ランキング、キャンペーン速報を届けるアフィリエイトサイト。"
    )
    site_url: str = "https://example.com"

    @classmethod
    def from_values(cls, **values: Optional[str]) -> "SeoSite":
        """Build from config values; empty values keep the defaults."""
        return cls(**{k: v for k, v in values.items() if v})

    @property
    def base_url(self) -> str:
        return self.site_url.rstrip("/")


DEFAULT_SITE = SeoSite()


def _truncate(text: str, limit: int = MAX_DESCRIPTION_LENGTH) -> str:
    return text[: limit - 3] + "..." if len(text) > limit else text


def _shorten(title: str, max_len: int) -> str:
    return title[:max_len] + "…" if len(title) > max_len else title


# ============================================================================
# Meta descriptions
# ============================================================================

# locale -> (sale badge, actress, duration, call to action, rating, title lengths)
_DESCRIPTION_TEMPLATES = {
    "ja": ("【{d}%OFF】", "{a}出演", "{m}分", "{p}で今すぐ視聴", "★{r}評価", (30, 40)),
    "en": ("[{d}% OFF]", "feat. {a}", "{m}min", "Watch now on {p}", "★{r}", (30, 40)),
    "zh": ("【{d}%优惠】", "{a}出演", "{m}分钟", "立即在{p}观看", "★{r}", (25, 35)),
    "zh-TW": ("【{d}%折扣】", "{a}出演", "{m}分鐘", "立即在{p}觀看", "★{r}", (25, 35)),
    "ko": ("[{d}% 할인]", "{a} 출연", "{m}분", "{p}에서 바로 시청", "★{r}", (25, 35)),
}


def generate_optimized_description(
    title: str,
    actress_name: Optional[str] = None,
    tags: Optional[Sequence[str]] = None,
    release_date: Optional[str] = None,
    product_id: Optional[str] = None,
    sale_price: Optional[int] = None,
    regular_price: Optional[int] = None,
    discount: Optional[int] = None,
    rating: Optional[float] = None,
    review_count: Optional[int] = None,
    duration: Optional[int] = None,
    provider: Optional[str] = None,
    locale: str = "ja",
) -> str:
    """Build a click-through oriented meta description of at most 160 characters.

    Sales lead the description, then the product code, a shortened title,
    the performer, running time and a call to action naming the provider.
    Ratings are shown only when high (>= 4.0 with at least 3 reviews).
    Unknown locales use the English template.

    Args:
        title: Product title
        actress_name: Main performer
        tags: Genre tags (unused by the templates, accepted for call-site symmetry)
        release_date: Release date (unused by the templates)
        product_id: Product code shown for search hits
        sale_price: Current sale price
        regular_price: Regular price
        discount: Discount percent
        rating: Average rating out of 5
        review_count: Number of reviews
        duration: Running time in minutes
        provider: Provider label
        locale: Output language

    Returns:
        Description text
    """
    sale_tpl, actress_tpl, duration_tpl, cta_tpl, rating_tpl, lengths = _DESCRIPTION_TEMPLATES.get(
        locale, _DESCRIPTION_TEMPLATES["en"]
    )
    parts: List[str] = []

    if discount and discount > 0:
        parts.append(sale_tpl.format(d=discount))
    if product_id:
        parts.append(product_id)
    if title:
        parts.append(_shorten(title, lengths[0] if discount else lengths[1]))
    if actress_name:
        parts.append(actress_tpl.format(a=actress_name))
    if duration and duration > 0:
        parts.append(duration_tpl.format(m=duration))
    if provider:
        parts.append(cta_tpl.format(p=provider))
    if rating and rating >= 4.0 and review_count and review_count >= 3:
        parts.append(rating_tpl.format(r=f"{rating:.1f}"))

    return _truncate(" - ".join(parts))


def generate_actress_description(
    name: str,
    work_count: Optional[int] = None,
    top_genres: Optional[Sequence[str]] = None,
    latest_work: Optional[str] = None,
    locale: str = "ja",
) -> str:
    """Meta description for a performer page."""
    genres = list(top_genres or [])[:3]

    if locale == "ja":
        parts = [f"{name}の作品一覧"]
        if work_count and work_count > 0:
            parts.append(f"全{work_count}本")
        if genres:
            parts.append(f"人気ジャンル: {'・'.join(genres)}")
        if latest_work:
            parts.append(f"最新作「{latest_work[:20]}」")
        parts.append("高評価作品からセール中作品まで一覧でチェック")
        return _truncate(" | ".join(parts))

    if locale == "en":
        parts = [f"{name}'s videos"]
        if work_count:
            parts.append(f"{work_count} titles")
        if genres:
            parts.append(f"Genres: {', '.join(genres)}")
        parts.append("Browse top-rated and sale items")
        return " | ".join(parts)[:MAX_DESCRIPTION_LENGTH]

    if locale in ("zh", "zh-TW"):
        parts = [f"{name}的作品列表"]
        if work_count:
            parts.append(f"共{work_count}部")
        if genres:
            parts.append(f"热门类型: {'・'.join(genres)}")
        parts.append("浏览高评分和特价作品")
        return " | ".join(parts)[:MAX_DESCRIPTION_LENGTH]

    if locale == "ko":
        parts = [f"{name}의 작품 목록"]
        if work_count:
            parts.append(f"총 {work_count}편")
        if genres:
            parts.append(f"인기 장르: {'・'.join(genres)}")
        parts.append("인기작과 할인작 확인하기")
        return " | ".join(parts)[:MAX_DESCRIPTION_LENGTH]

    return f"{name} - Video list and profile"


# ============================================================================
# Alt text
# ============================================================================

_ALT_TEXT_LABELS = {
    "ja": {"works": "{n}作品", "sample": "サンプル画像 {i}/{t}", "product": "{title}のパッケージ画像"},
    "en": {"works": "{n} titles", "sample": "Sample image {i}/{t}", "product": "{title} cover image"},
    "zh": {"works": "{n}部作品", "sample": "样本图片 {i}/{t}", "product": "{title}封面图片"},
    "zh-TW": {"works": "{n}部作品", "sample": "樣本圖片 {i}/{t}", "product": "{title}封面圖片"},
    "ko": {"works": "{n}편", "sample": "샘플 이미지 {i}/{t}", "product": "{title} 커버 이미지"},
}


def _labels(locale: str) -> Dict[str, str]:
    return _ALT_TEXT_LABELS.get(locale, _ALT_TEXT_LABELS["ja"])


def generate_actress_alt_text(
    name: str,
    product_count: Optional[int] = None,
    services: Optional[Sequence[str]] = None,
    aliases: Optional[Sequence[str]] = None,
    locale: str = "ja",
) -> str:
    """Alt text for a performer image.

    Always contains the name; empty segments are omitted:
    '三上悠亜（鬼头桃菜） - 120作品 - FANZA・MGS動画'
    """
    head = name
    alias_list = [a for a in (aliases or []) if a and a != name]
    if alias_list:
        head = f"{name}（{'、'.join(alias_list[:3])}）"

    segments = [head]
    if product_count and product_count > 0:
        segments.append(_labels(locale)["works"].format(n=product_count))

    labels: List[str] = []
    for service in services or []:
        if not service:
            continue
        label = get_provider_label(service)
        if label not in labels:
            labels.append(label)
    if labels:
        segments.append("・".join(labels))

    return " - ".join(segments)


def generate_sample_image_alt_text(
    title: Optional[str],
    product_code: Optional[str] = None,
    performer_names: Optional[Sequence[str]] = None,
    index: int = 1,
    total: Optional[int] = None,
    locale: str = "ja",
) -> str:
    """Alt text for the index-th (1-based) sample image of a product."""
    segments: List[str] = []
    if product_code:
        segments.append(product_code)
    if title:
        segments.append(_shorten(title, 40))
    names = [n for n in (performer_names or []) if n]
    if names:
        segments.append("・".join(names[:3]))
    segments.append(_labels(locale)["sample"].format(i=index, t=total or index))
    return " - ".join(segments)


def generate_product_alt_text(
    title: str,
    performer_names: Optional[Sequence[str]] = None,
    product_code: Optional[str] = None,
    locale: str = "ja",
) -> str:
    """Alt text for a product package image."""
    segments = [_labels(locale)["product"].format(title=_shorten(title, 40))]
    names = [n for n in (performer_names or []) if n]
    if names:
        segments.append("・".join(names[:3]))
    if product_code:
        segments.append(product_code)
    return " - ".join(segments)


# ============================================================================
# Structured data (schema.org JSON-LD)
# ============================================================================

_WEBSITE_DESCRIPTIONS = {
    "en": (
        "Cross-platform adult streaming hub covering DUGA, MGS, DTI with actress-based "
        "reviews, rankings, and campaign updates for heavy users."
    ),
    "zh": "跨平台成人影音中心，涵盖DUGA、MGS、DTI，提供基于女优的评论、排名和活动更新，专为重度用户打造。",
    "ko": (
        "여러 플랫폼을 아우르는 성인 스트리밍 허브로, DUGA, MGS, DTI를 다루며 헤비 유저를 위한 "
        "여배우 기반 리뷰, 랭킹 및 캠페인 업데이트를 제공합니다."
    ),
}


def generate_website_schema(locale: str = "ja", site: SeoSite = DEFAULT_SITE) -> Dict[str, Any]:
    site_url = site.base_url
    return {
        "@context": "https://schema.org",
        "@type": "WebSite",
        "name": site.site_name,
        "alternateName": site.alternate_name,
        "url": site_url,
        "description": _WEBSITE_DESCRIPTIONS.get(locale, site.default_description),
        "inLanguage": ["ja", "en", "zh", "ko"],
        "publisher": {"@type": "Organization", "name": site.site_name, "url": site_url},
        "potentialAction": {
            "@type": "SearchAction",
            "target": {
                "@type": "EntryPoint",
                "urlTemplate": f"{site_url}/{locale}/products?q={{search_term_string}}",
            },
            "query-input": "required name=search_term_string",
        },
    }


def generate_breadcrumb_schema(items: Sequence[Dict[str, str]], site: SeoSite = DEFAULT_SITE) -> Dict[str, Any]:
    """BreadcrumbList from [{"name": ..., "url": "/path"}, ...]."""
    site_url = site.base_url
    return {
        "@context": "https://schema.org",
        "@type": "BreadcrumbList",
        "itemListElement": [
            {
                "@type": "ListItem",
                "position": position,
                "name": item["name"],
                "item": f"{site_url}{item['url']}",
            }
            for position, item in enumerate(items, start=1)
        ],
    }


def generate_person_schema(
    name: str,
    description: Optional[str],
    image: Optional[str],
    url: str,
    work_count: Optional[int] = None,
    debut_year: Optional[int] = None,
    aliases: Optional[Sequence[str]] = None,
    site: SeoSite = DEFAULT_SITE,
) -> Dict[str, Any]:
    schema: Dict[str, Any] = {
        "@context": "https://schema.org",
        "@type": "Person",
        "name": name,
        "description": description or f"{name}の作品一覧、出演情報、プロフィールをご覧いただけます。",
        "image": image,
        "url": f"{site.base_url}{url}",
        "jobTitle": "AV女優",
    }
    if aliases:
        schema["alternateName"] = list(aliases)
    if work_count and work_count > 0:
        schema["knowsAbout"] = f"{work_count}作品以上に出演"
    if debut_year:
        schema["birthDate"] = str(debut_year)
    return schema


def generate_product_schema(
    name: str,
    description: str,
    image: Optional[str],
    url: str,
    price: Optional[int] = None,
    brand: Optional[str] = None,
    rating_value: Optional[float] = None,
    review_count: Optional[int] = None,
    sale_price: Optional[int] = None,
    currency: str = "JPY",
    sku: Optional[str] = None,
    today: Optional[date] = None,
    site: SeoSite = DEFAULT_SITE,
) -> Dict[str, Any]:
    """Product schema with an Offer; aggregateRating only when there are reviews."""
    schema: Dict[str, Any] = {
        "@context": "https://schema.org",
        "@type": "Product",
        "name": name,
        "description": description,
        "url": f"{site.base_url}{url}",
    }
    if image:
        schema["image"] = image
    if sku:
        schema["sku"] = sku
        schema["productID"] = sku
    if brand:
        schema["brand"] = {"@type": "Brand", "name": brand}

    if price is not None or sale_price is not None:
        offer: Dict[str, Any] = {
            "@type": "Offer",
            "price": sale_price if sale_price is not None else price,
            "priceCurrency": currency,
            "availability": "https://schema.org/InStock",
        }
        if sale_price and price and sale_price < price:
            valid_until = (today or date.today()) + timedelta(days=30)
            offer["priceValidUntil"] = valid_until.isoformat()
        schema["offers"] = offer

    if rating_value and rating_value > 0 and review_count and review_count > 0:
        schema["aggregateRating"] = {
            "@type": "AggregateRating",
            "ratingValue": rating_value,
            "bestRating": 5,
            "worstRating": 1,
            "reviewCount": review_count,
        }
    return schema


def generate_video_object_schema(
    name: str,
    description: str,
    thumbnail_url: Optional[str],
    url: str,
    duration: Optional[float] = None,
    upload_date: Optional[str] = None,
) -> Dict[str, Any]:
    schema: Dict[str, Any] = {
        "@context": "https://schema.org",
        "@type": "VideoObject",
        "name": name,
        "description": description,
        "contentUrl": url,
        "embedUrl": url,
    }
    if thumbnail_url:
        schema["thumbnailUrl"] = thumbnail_url
    if duration:
        schema["duration"] = f"PT{round(duration)}M"
    if upload_date:
        schema["uploadDate"] = upload_date
    return schema


def generate_item_list_schema(
    items: Sequence[Dict[str, str]], list_name: str, site: SeoSite = DEFAULT_SITE
) -> Dict[str, Any]:
    site_url = site.base_url
    return {
        "@context": "https://schema.org",
        "@type": "ItemList",
        "name": list_name,
        "itemListElement": [
            {
                "@type": "ListItem",
                "position": position,
                "name": item["name"],
                "item": f"{site_url}{item['url']}",
            }
            for position, item in enumerate(items, start=1)
        ],
    }
