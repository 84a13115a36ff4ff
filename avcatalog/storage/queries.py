"""Read-side queries backing the JSON API and the sitemap writers.

Every function takes a Database and returns plain dicts shaped like the API
responses (camelCase keys), so callers never hold ORM objects outside a
session.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session, selectinload

from ..catalog.parsing import is_valid_performer
from ..catalog.product_ids import (
    format_product_code_for_display,
    generate_product_id_variations,
    normalize_product_id_for_search,
    product_id_to_like_pattern,
)
from ..catalog.registry import (
    ASP_DISPLAY_ORDER,
    DTI_SUB_SERVICE_IDS,
    asp_normalization_expression,
    get_asp_display_name,
    get_provider_label,
    map_legacy_provider,
    normalize_asp_name,
)
from .database import Database
from .models import (
    Performer,
    PerformerAlias,
    Product,
    ProductPerformer,
    ProductSale,
    ProductSource,
    ProductTag,
    Tag,
)

SORT_OPTIONS = (
    "releaseDateDesc",
    "releaseDateAsc",
    "priceAsc",
    "priceDesc",
    "titleAsc",
    "durationDesc",
    "durationAsc",
    "random",
)
DEFAULT_SORT = "releaseDateDesc"

NEW_RELEASE_DAYS = 30
AUTOCOMPLETE_PER_KIND = 5
AUTOCOMPLETE_TOTAL = 10


@dataclass
class ProductQuery:
    """Filters, sorting and paging for product listings."""

    ids: Optional[List[int]] = None
    provider: Optional[str] = None
    providers: Optional[List[str]] = None
    exclude_providers: Optional[List[str]] = None
    actress_id: Optional[int] = None
    tags: Optional[List[str]] = None
    exclude_tags: Optional[List[str]] = None
    category: Optional[str] = None
    has_video: bool = False
    has_image: bool = False
    is_new: bool = False
    is_featured: bool = False
    on_sale: bool = False
    min_price: Optional[int] = None
    max_price: Optional[int] = None
    query: Optional[str] = None
    site_asps: Optional[List[str]] = None
    sort_by: str = DEFAULT_SORT
    limit: int = 96
    offset: int = 0


# ============================================================================
# Shared helpers
# ============================================================================


def _provider_expression():
    return asp_normalization_expression(ProductSource.asp_name, ProductSource.affiliate_url)


def expand_provider_ids(values: Iterable[str]) -> List[str]:
    """Canonical ids for provider filters; "dti" also covers its sub-services."""
    expanded: List[str] = []
    for value in values:
        if not value:
            continue
        provider = normalize_asp_name(value.strip())
        if provider not in expanded:
            expanded.append(provider)
        if provider == "dti":
            expanded.extend(p for p in DTI_SUB_SERVICE_IDS if p not in expanded)
    return expanded


def _has_source_in(provider_ids: Sequence[str]):
    return Product.sources.any(_provider_expression().in_(list(provider_ids)))


def _tag_clause(values: Sequence[str]):
    ids = [int(v) for v in values if str(v).isdigit()]
    names = [v for v in values if not str(v).isdigit()]
    conditions = []
    if ids:
        conditions.append(Tag.id.in_(ids))
    if names:
        conditions.append(Tag.name.in_(names))
    return Product.tag_links.any(ProductTag.tag.has(or_(*conditions)))


def _search_clause(text: str):
    text = text.strip()
    like = f"%{text}%"
    variations = generate_product_id_variations(text)
    return or_(
        Product.title.ilike(like),
        Product.normalized_product_id.ilike(like),
        Product.normalized_product_id.ilike(f"%{product_id_to_like_pattern(text)}%"),
        Product.maker_product_code.ilike(like),
        Product.maker_product_code == (format_product_code_for_display(text) or text),
        Product.sources.any(ProductSource.original_product_id.in_(variations)),
    )


def _nulls_last(column, descending: bool = False):
    return [column.is_(None), column.desc() if descending else column.asc()]


def _order_by(sort_by: str) -> list:
    if sort_by == "releaseDateAsc":
        return _nulls_last(Product.release_date) + [Product.id]
    if sort_by == "priceAsc":
        return _nulls_last(Product.min_price) + [Product.id]
    if sort_by == "priceDesc":
        return _nulls_last(Product.min_price, descending=True) + [Product.id]
    if sort_by == "titleAsc":
        return [Product.title.asc(), Product.id]
    if sort_by == "durationDesc":
        return _nulls_last(Product.duration, descending=True) + [Product.id]
    if sort_by == "durationAsc":
        return _nulls_last(Product.duration) + [Product.id]
    if sort_by == "random":
        return [func.random()]
    return _nulls_last(Product.release_date, descending=True) + [Product.id.desc()]


def _with_children(query):
    return query.options(
        selectinload(Product.sources).selectinload(ProductSource.sales),
        selectinload(Product.performer_links).selectinload(ProductPerformer.performer),
        selectinload(Product.tag_links).selectinload(ProductTag.tag),
        selectinload(Product.images),
        selectinload(Product.videos),
    )


def _active_sale(source: ProductSource) -> Optional[ProductSale]:
    active = [s for s in source.sales if s.is_active]
    return min(active, key=lambda s: s.sale_price) if active else None


def _visible_sources(product: Product, site_asps: Optional[Sequence[str]]) -> List[ProductSource]:
    sources = list(product.sources)
    if site_asps is not None:
        allowed = set(expand_provider_ids(site_asps))
        sources = [s for s in sources if normalize_asp_name(s.asp_name, s.affiliate_url) in allowed]

    def order_key(source: ProductSource):
        asp_id = normalize_asp_name(source.asp_name, source.affiliate_url)
        position = ASP_DISPLAY_ORDER.index(asp_id) if asp_id in ASP_DISPLAY_ORDER else len(ASP_DISPLAY_ORDER)
        return position, source.id

    return sorted(sources, key=order_key)


def _isoformat(value) -> Optional[str]:
    return value.isoformat() if value else None


def _serialize_source(source: ProductSource) -> Dict[str, Any]:
    sale = _active_sale(source)
    return {
        "aspName": normalize_asp_name(source.asp_name, source.affiliate_url),
        "provider": map_legacy_provider(source.asp_name),
        "providerLabel": get_provider_label(source.asp_name),
        "originalProductId": source.original_product_id,
        "affiliateUrl": source.affiliate_url,
        "price": source.price,
        "salePrice": sale.sale_price if sale else None,
        "discountPercent": sale.discount_percent if sale else None,
        "saleEndAt": _isoformat(sale.end_at) if sale else None,
        "dataSource": source.data_source,
    }


def serialize_product(
    product: Product, site_asps: Optional[Sequence[str]] = None, detail: bool = False
) -> Dict[str, Any]:
    """API shape of a product; the first visible source is the primary one."""
    sources = _visible_sources(product, site_asps) or list(product.sources)
    primary = sources[0] if sources else None
    primary_sale = _active_sale(primary) if primary else None

    performers = [
        {"id": link.performer.id, "name": link.performer.name}
        for link in product.performer_links
        if is_valid_performer(link.performer.name)
    ]
    tags = [
        {"id": link.tag.id, "name": link.tag.name, "category": link.tag.category}
        for link in product.tag_links
    ]

    data: Dict[str, Any] = {
        "id": product.id,
        "normalizedProductId": product.normalized_product_id,
        "productCode": product.maker_product_code
        or (format_product_code_for_display(primary.original_product_id) if primary else None),
        "title": product.title,
        "description": product.description,
        "releaseDate": _isoformat(product.release_date),
        "duration": product.duration,
        "thumbnailUrl": product.default_thumbnail_url,
        "price": primary.price if primary else product.min_price,
        "minPrice": product.min_price,
        "salePrice": primary_sale.sale_price if primary_sale else None,
        "discountPercent": primary_sale.discount_percent if primary_sale else None,
        "saleEndAt": _isoformat(primary_sale.end_at) if primary_sale else None,
        "onSale": bool(product.has_active_sale),
        "hasVideo": bool(product.has_video),
        "rating": product.rating,
        "reviewCount": product.review_count,
        "provider": map_legacy_provider(primary.asp_name) if primary else None,
        "aspName": normalize_asp_name(primary.asp_name, primary.affiliate_url) if primary else None,
        "providerLabel": get_provider_label(primary.asp_name) if primary else None,
        "affiliateUrl": primary.affiliate_url if primary else None,
        "performers": performers,
        "tags": tags,
    }

    if detail:
        images = sorted(product.images, key=lambda i: (i.display_order or 0, i.id))
        videos = sorted(product.videos, key=lambda v: (v.display_order or 0, v.id))
        data["sampleImages"] = [i.image_url for i in images if i.image_type == "sample"]
        data["sampleVideos"] = [v.video_url for v in videos]
        data["sources"] = [_serialize_source(s) for s in sources]
    return data


# ============================================================================
# Products
# ============================================================================


def build_product_filter(q: ProductQuery, today: Optional[date] = None) -> list:
    """SQLAlchemy criteria for a ProductQuery (AND-ed together)."""
    today = today or date.today()
    criteria = []

    if q.ids:
        criteria.append(Product.id.in_(q.ids))
    if q.site_asps is not None:
        criteria.append(_has_source_in(expand_provider_ids(q.site_asps)))

    include = list(q.providers or [])
    if q.provider:
        include.append(q.provider)
    if include:
        criteria.append(_has_source_in(expand_provider_ids(include)))
    if q.exclude_providers:
        criteria.append(~_has_source_in(expand_provider_ids(q.exclude_providers)))

    if q.actress_id is not None:
        criteria.append(Product.performer_links.any(ProductPerformer.performer_id == q.actress_id))
    if q.tags:
        for value in q.tags:
            criteria.append(_tag_clause([value]))
    if q.exclude_tags:
        criteria.append(~_tag_clause(q.exclude_tags))
    if q.category:
        criteria.append(
            Product.tag_links.any(
                ProductTag.tag.has(and_(Tag.name == q.category, Tag.category == "genre"))
            )
        )

    if q.has_video:
        criteria.append(Product.has_video.is_(True))
    if q.has_image or q.is_featured:
        criteria.append(Product.default_thumbnail_url.isnot(None))
    if q.is_new:
        criteria.append(Product.release_date >= today - timedelta(days=NEW_RELEASE_DAYS))
    if q.on_sale or q.is_featured:
        criteria.append(Product.has_active_sale.is_(True))
    if q.min_price is not None:
        criteria.append(Product.min_price >= q.min_price)
    if q.max_price is not None:
        criteria.append(Product.min_price <= q.max_price)
    if q.query and q.query.strip():
        criteria.append(_search_clause(q.query))

    return criteria


def search_products(db: Database, q: ProductQuery) -> Tuple[List[Dict[str, Any]], int]:
    """Products matching q, serialized, and the total match count."""
    criteria = build_product_filter(q)
    sort_by = q.sort_by if q.sort_by in SORT_OPTIONS else DEFAULT_SORT

    with db.session() as session:
        base = session.query(Product).filter(*criteria)
        total = base.order_by(None).count()
        products = _with_children(base).order_by(*_order_by(sort_by)).limit(q.limit).offset(q.offset).all()

        if q.ids and sort_by == DEFAULT_SORT:
            position = {product_id: i for i, product_id in enumerate(q.ids)}
            products.sort(key=lambda p: position.get(p.id, len(position)))

        return [serialize_product(p, q.site_asps) for p in products], total


def _find_product(session: Session, id_or_code: str) -> Optional[Product]:
    query = _with_children(session.query(Product))
    value = str(id_or_code).strip()

    if value.isdigit():
        product = query.filter(Product.id == int(value)).first()
        if product:
            return product

    product = query.filter(Product.normalized_product_id == value).first()
    if product:
        return product

    display = format_product_code_for_display(value)
    if display:
        product = query.filter(Product.maker_product_code == display).order_by(Product.id).first()
        if product:
            return product

    variations = generate_product_id_variations(value)
    return (
        query.filter(Product.sources.any(ProductSource.original_product_id.in_(variations)))
        .order_by(Product.id)
        .first()
    )


def get_product_detail(
    db: Database, id_or_code: str, site_asps: Optional[Sequence[str]] = None
) -> Optional[Dict[str, Any]]:
    """Full product by numeric id, normalized id, maker code or ASP product id."""
    with db.session() as session:
        product = _find_product(session, id_or_code)
        if product is None:
            return None
        if site_asps is not None and not _visible_sources(product, site_asps):
            return None
        return serialize_product(product, site_asps, detail=True)


# ============================================================================
# Performers and tags
# ============================================================================


def _performer_counts(session: Session, site_asps: Optional[Sequence[str]], since: Optional[date] = None):
    count = func.count(func.distinct(ProductPerformer.product_id)).label("product_count")
    query = session.query(ProductPerformer.performer_id, count).join(
        Product, Product.id == ProductPerformer.product_id
    )
    if site_asps is not None:
        query = query.filter(_has_source_in(expand_provider_ids(site_asps)))
    if since is not None:
        query = query.filter(Product.release_date >= since)
    return query.group_by(ProductPerformer.performer_id).subquery()


def _performer_thumbnail(session: Session, performer: Performer) -> Optional[str]:
    if performer.profile_image_url:
        return performer.profile_image_url
    row = (
        session.query(Product.default_thumbnail_url)
        .join(ProductPerformer, ProductPerformer.product_id == Product.id)
        .filter(ProductPerformer.performer_id == performer.id, Product.default_thumbnail_url.isnot(None))
        .order_by(*_nulls_last(Product.release_date, descending=True))
        .first()
    )
    return row[0] if row else None


def list_performers(
    db: Database,
    query: Optional[str] = None,
    sort: str = "productCount",
    limit: int = 50,
    offset: int = 0,
    site_asps: Optional[Sequence[str]] = None,
) -> Tuple[List[Dict[str, Any]], int]:
    """Performers with at least one visible product.

    Args:
        query: Substring of the name or any alias
        sort: "productCount" (default), "name" or "recent"
    """
    with db.session() as session:
        counts = _performer_counts(session, site_asps)
        base = session.query(Performer, counts.c.product_count).join(
            counts, counts.c.performer_id == Performer.id
        )
        if query and query.strip():
            like = f"%{query.strip()}%"
            base = base.filter(
                or_(Performer.name.ilike(like), Performer.aliases.any(PerformerAlias.alias_name.ilike(like)))
            )

        total = base.count()
        if sort == "name":
            base = base.order_by(Performer.name)
        elif sort == "recent":
            base = base.order_by(Performer.created_at.desc(), Performer.id.desc())
        else:
            base = base.order_by(counts.c.product_count.desc(), Performer.id)

        rows = base.options(selectinload(Performer.aliases)).limit(limit).offset(offset).all()
        performers = [
            {
                "id": performer.id,
                "name": performer.name,
                "nameKana": performer.name_kana,
                "thumbnailUrl": _performer_thumbnail(session, performer),
                "productCount": product_count,
                "aliases": [a.alias_name for a in performer.aliases if a.alias_name != performer.name],
            }
            for performer, product_count in rows
        ]
        return performers, total


def get_performer_detail(
    db: Database, performer_id: int, site_asps: Optional[Sequence[str]] = None
) -> Optional[Dict[str, Any]]:
    """Performer profile with services, top genres and latest work."""
    with db.session() as session:
        performer = (
            session.query(Performer)
            .options(selectinload(Performer.aliases))
            .filter(Performer.id == performer_id)
            .first()
        )
        if performer is None:
            return None

        products_query = (
            _with_children(session.query(Product))
            .join(ProductPerformer, ProductPerformer.product_id == Product.id)
            .filter(ProductPerformer.performer_id == performer.id)
        )
        if site_asps is not None:
            products_query = products_query.filter(_has_source_in(expand_provider_ids(site_asps)))
        products = products_query.order_by(*_order_by(DEFAULT_SORT)).all()

        services: List[str] = []
        genre_counts: Dict[str, int] = {}
        for product in products:
            for source in _visible_sources(product, site_asps):
                asp_id = normalize_asp_name(source.asp_name, source.affiliate_url)
                if asp_id not in services:
                    services.append(asp_id)
            for link in product.tag_links:
                if link.tag.category == "genre":
                    genre_counts[link.tag.name] = genre_counts.get(link.tag.name, 0) + 1

        top_genres = [name for name, _ in sorted(genre_counts.items(), key=lambda kv: (-kv[1], kv[0]))[:3]]
        years = [p.release_date.year for p in products if p.release_date]
        latest = products[0] if products else None

        return {
            "id": performer.id,
            "name": performer.name,
            "nameKana": performer.name_kana,
            "profileImageUrl": performer.profile_image_url,
            "thumbnailUrl": _performer_thumbnail(session, performer),
            "aliases": [a.alias_name for a in performer.aliases if a.alias_name != performer.name],
            "productCount": len(products),
            "services": services,
            "topGenres": top_genres,
            "debutYear": min(years) if years else None,
            "latestProduct": (
                {"id": latest.id, "title": latest.title, "releaseDate": _isoformat(latest.release_date)}
                if latest
                else None
            ),
        }


def list_tags(db: Database, category: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
    """Tags ordered by how many products carry them."""
    with db.session() as session:
        count = func.count(ProductTag.product_id).label("product_count")
        query = session.query(Tag, count).outerjoin(ProductTag, ProductTag.tag_id == Tag.id)
        if category:
            query = query.filter(Tag.category == category)
        rows = query.group_by(Tag.id).order_by(count.desc(), Tag.name).limit(limit).all()
        return [
            {"id": tag.id, "name": tag.name, "category": tag.category, "productCount": product_count}
            for tag, product_count in rows
        ]


def autocomplete(
    db: Database, q: str, site_asps: Optional[Sequence[str]] = None
) -> List[Dict[str, Any]]:
    """Suggestions for the search box.

    Product codes come first, then performers, tags and product titles;
    at most five of each kind and ten overall.
    """
    text = q.strip()
    like = f"%{text}%"
    results: List[Dict[str, Any]] = []

    with db.session() as session:
        visible = [_has_source_in(expand_provider_ids(site_asps))] if site_asps is not None else []

        normalized = normalize_product_id_for_search(text)
        variations = generate_product_id_variations(text)
        code_hits = (
            session.query(Product)
            .filter(
                *visible,
                or_(
                    Product.normalized_product_id.ilike(f"%{normalized}%"),
                    Product.maker_product_code.ilike(like),
                    Product.sources.any(ProductSource.original_product_id.in_(variations)),
                ),
            )
            .order_by(*_order_by(DEFAULT_SORT))
            .limit(AUTOCOMPLETE_PER_KIND)
            .all()
        )
        for product in code_hits:
            results.append(
                {
                    "type": "product_id",
                    "id": product.id,
                    "label": product.maker_product_code or product.normalized_product_id,
                    "title": product.title,
                    "thumbnailUrl": product.default_thumbnail_url,
                }
            )

        performers = (
            session.query(Performer)
            .filter(or_(Performer.name.ilike(like), Performer.aliases.any(PerformerAlias.alias_name.ilike(like))))
            .order_by(Performer.name)
            .limit(AUTOCOMPLETE_PER_KIND)
            .all()
        )
        for performer in performers:
            if is_valid_performer(performer.name):
                results.append({"type": "actress", "id": performer.id, "label": performer.name})

        tags = session.query(Tag).filter(Tag.name.ilike(like)).order_by(Tag.name).limit(AUTOCOMPLETE_PER_KIND).all()
        for tag in tags:
            results.append({"type": "tag", "id": tag.id, "label": tag.name, "category": tag.category})

        seen = {r["id"] for r in results if r["type"] == "product_id"}
        titles = (
            session.query(Product)
            .filter(*visible, Product.title.ilike(like))
            .order_by(*_order_by(DEFAULT_SORT))
            .limit(AUTOCOMPLETE_PER_KIND)
            .all()
        )
        for product in titles:
            if product.id not in seen:
                results.append(
                    {
                        "type": "product",
                        "id": product.id,
                        "label": product.title,
                        "thumbnailUrl": product.default_thumbnail_url,
                    }
                )

    return results[:AUTOCOMPLETE_TOTAL]


# ============================================================================
# Rankings and stats
# ============================================================================


def performer_ranking(
    db: Database,
    days: int = 30,
    limit: int = 20,
    site_asps: Optional[Sequence[str]] = None,
    today: Optional[date] = None,
) -> List[Dict[str, Any]]:
    """Performers by number of releases in the last `days` days."""
    since = (today or date.today()) - timedelta(days=days)
    with db.session() as session:
        counts = _performer_counts(session, site_asps, since=since)
        rows = (
            session.query(Performer, counts.c.product_count)
            .join(counts, counts.c.performer_id == Performer.id)
            .order_by(counts.c.product_count.desc(), Performer.id)
            .limit(limit)
            .all()
        )
        ranking = []
        for performer, product_count in rows:
            if not is_valid_performer(performer.name):
                continue
            ranking.append(
                {
                    "rank": len(ranking) + 1,
                    "id": performer.id,
                    "name": performer.name,
                    "productCount": product_count,
                    "thumbnailUrl": _performer_thumbnail(session, performer),
                }
            )
        return ranking


def sale_ranking(
    db: Database, limit: int = 20, site_asps: Optional[Sequence[str]] = None
) -> List[Dict[str, Any]]:
    """Active sales, deepest discount first, one entry per product."""
    with db.session() as session:
        query = (
            session.query(ProductSale, ProductSource, Product)
            .join(ProductSource, ProductSource.id == ProductSale.product_source_id)
            .join(Product, Product.id == ProductSource.product_id)
            .filter(ProductSale.is_active.is_(True))
        )
        if site_asps is not None:
            query = query.filter(_provider_expression().in_(expand_provider_ids(site_asps)))
        rows = query.order_by(
            ProductSale.discount_percent.desc(), ProductSale.sale_price, ProductSale.id
        ).all()

        ranking: List[Dict[str, Any]] = []
        seen = set()
        for sale, source, product in rows:
            if product.id in seen:
                continue
            seen.add(product.id)
            ranking.append(
                {
                    "rank": len(ranking) + 1,
                    "productId": product.id,
                    "title": product.title,
                    "thumbnailUrl": product.default_thumbnail_url,
                    "aspName": normalize_asp_name(source.asp_name, source.affiliate_url),
                    "provider": map_legacy_provider(source.asp_name),
                    "affiliateUrl": source.affiliate_url,
                    "regularPrice": sale.regular_price,
                    "salePrice": sale.sale_price,
                    "discountPercent": sale.discount_percent,
                    "endAt": _isoformat(sale.end_at),
                }
            )
            if len(ranking) >= limit:
                break
        return ranking


def asp_stats(db: Database, site_asps: Optional[Sequence[str]] = None) -> Dict[str, Any]:
    """Product and active-sale counts per ASP."""
    with db.session() as session:
        provider = _provider_expression().label("provider")
        query = session.query(provider, func.count(func.distinct(ProductSource.product_id)))
        if site_asps is not None:
            query = query.filter(_provider_expression().in_(expand_provider_ids(site_asps)))
        product_rows = dict(query.group_by(provider).all())

        sale_provider = _provider_expression().label("provider")
        sale_rows = dict(
            session.query(sale_provider, func.count(ProductSale.id))
            .join(ProductSale, ProductSale.product_source_id == ProductSource.id)
            .filter(ProductSale.is_active.is_(True))
            .group_by(sale_provider)
            .all()
        )

        asps = [
            {
                "aspName": asp_id,
                "displayName": get_asp_display_name(asp_id),
                "productCount": count,
                "activeSales": sale_rows.get(asp_id, 0),
            }
            for asp_id, count in sorted(product_rows.items(), key=lambda kv: (-kv[1], kv[0]))
        ]

        total_query = session.query(func.count(Product.id))
        if site_asps is not None:
            total_query = total_query.filter(_has_source_in(expand_provider_ids(site_asps)))

        return {
            "totalProducts": total_query.scalar() or 0,
            "totalPerformers": session.query(func.count(Performer.id)).scalar() or 0,
            "asps": asps,
        }


# ============================================================================
# Sitemaps
# ============================================================================


def sitemap_products(
    db: Database, limit: int = 10000, site_asps: Optional[Sequence[str]] = None
) -> List[Dict[str, Any]]:
    with db.session() as session:
        query = session.query(Product.id, Product.normalized_product_id, Product.updated_at)
        if site_asps is not None:
            query = query.filter(_has_source_in(expand_provider_ids(site_asps)))
        rows = query.order_by(*_order_by(DEFAULT_SORT)).limit(limit).all()
        return [
            {"id": row.id, "normalizedProductId": row.normalized_product_id, "lastmod": row.updated_at}
            for row in rows
        ]


def sitemap_performers(
    db: Database, limit: int = 2000, site_asps: Optional[Sequence[str]] = None
) -> List[Dict[str, Any]]:
    with db.session() as session:
        count = func.count(ProductPerformer.product_id).label("product_count")
        query = (
            session.query(Performer.id, Performer.name, count)
            .join(ProductPerformer, ProductPerformer.performer_id == Performer.id)
            .join(Product, Product.id == ProductPerformer.product_id)
        )
        if site_asps is not None:
            query = query.filter(_has_source_in(expand_provider_ids(site_asps)))
        rows = (
            query.group_by(Performer.id, Performer.name)
            .order_by(count.desc(), Performer.id)
            .limit(limit)
            .all()
        )
        return [{"id": row.id, "name": row.name, "productCount": row.product_count} for row in rows]


def sitemap_tags(
    db: Database, limit: int = 1000, site_asps: Optional[Sequence[str]] = None
) -> List[Dict[str, Any]]:
    with db.session() as session:
        count = func.count(ProductTag.product_id).label("product_count")
        query = (
            session.query(Tag.id, Tag.name, count)
            .join(ProductTag, ProductTag.tag_id == Tag.id)
            .join(Product, Product.id == ProductTag.product_id)
            .filter(Tag.category == "genre")
        )
        if site_asps is not None:
            query = query.filter(_has_source_in(expand_provider_ids(site_asps)))
        rows = query.group_by(Tag.id, Tag.name).order_by(count.desc(), Tag.id).limit(limit).all()
        return [{"id": row.id, "name": row.name, "productCount": row.product_count} for row in rows]


def video_sitemap_products(
    db: Database, limit: int = 1000, site_asps: Optional[Sequence[str]] = None
) -> List[Dict[str, Any]]:
    """Products with a sample movie, newest first."""
    with db.session() as session:
        query = session.query(Product).options(selectinload(Product.videos)).filter(Product.has_video.is_(True))
        if site_asps is not None:
            query = query.filter(_has_source_in(expand_provider_ids(site_asps)))
        products = query.order_by(*_order_by(DEFAULT_SORT)).limit(limit).all()
        entries = []
        for product in products:
            videos = sorted(product.videos, key=lambda v: (v.display_order or 0, v.id))
            if not videos:
                continue
            entries.append(
                {
                    "id": product.id,
                    "title": product.title,
                    "description": product.description or product.title,
                    "thumbnailUrl": product.default_thumbnail_url,
                    "videoUrl": videos[0].video_url,
                    "duration": product.duration,
                    "releaseDate": product.release_date,
                }
            )
        return entries


def recently_updated_products(db: Database, since: datetime, limit: int = 10000) -> List[int]:
    """Ids of products updated after `since`, for search-engine notification."""
    with db.session() as session:
        rows = (
            session.query(Product.id)
            .filter(Product.updated_at >= since)
            .order_by(Product.updated_at.desc())
            .limit(limit)
            .all()
        )
        return [row.id for row in rows]
