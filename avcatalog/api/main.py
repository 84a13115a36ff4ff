"""FastAPI application for avcatalog."""

from datetime import datetime
from typing import List, Optional, Tuple

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from .. import __version__
from ..catalog import seo
from ..catalog.registry import site_provider_ids
from ..publishing.sitemap import build_sitemap_entries, render_sitemap, render_video_sitemap
from ..storage import queries
from ..storage.database import Database
from ..utils.config import get_config

MAX_QUERY_LENGTH = 200
AUTOCOMPLETE_MIN_LENGTH = 2

# Initialize FastAPI app
app = FastAPI(
    title="avcatalog API",
    description="Aggregated affiliate video catalog",
    version=__version__,
)

# Load configuration
config = get_config()

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.api.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

SEO_SITE = seo.SeoSite.from_values(
    site_name=config.site.site_name,
    alternate_name=config.site.alternate_name,
    site_url=config.site.site_url,
)

_db: Optional[Database] = None


def get_db() -> Database:
    """Database dependency, opened on first use."""
    global _db
    if _db is None:
        _db = Database(config.database.url, echo=config.database.echo)
    return _db


def get_site_asps() -> Optional[List[str]]:
    """Provider ids visible on this storefront; None means every ASP."""
    return site_provider_ids(config.site.mode)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ())[1:]) or "request"
        message = f"Invalid parameter '{field}': {first.get('msg', 'invalid value')}"
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.on_event("startup")
async def startup_event():
    """Run on application startup."""
    logger.info(f"avcatalog API starting up (site mode: {config.site.mode})")


@app.on_event("shutdown")
async def shutdown_event():
    """Run on application shutdown."""
    logger.info("avcatalog API shutting down")


# ============================================================================
# Parameter helpers
# ============================================================================


def _csv_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def parse_ids(value: Optional[str]) -> Optional[List[int]]:
    """'1,2,3' -> [1, 2, 3]; anything non-numeric is a 400."""
    parts = _csv_list(value)
    if not parts:
        return None
    try:
        return [int(part) for part in parts]
    except ValueError:
        raise HTTPException(status_code=400, detail="ids must be comma-separated integers")


def parse_price_range(value: Optional[str]) -> Tuple[Optional[int], Optional[int]]:
    """'1000-3000' -> (1000, 3000); '1000' -> (1000, None)."""
    if not value:
        return None, None
    try:
        if "-" in value:
            low, high = value.split("-", 1)
            return (int(low) if low else None), (int(high) if high else None)
        return int(value), None
    except ValueError:
        raise HTTPException(status_code=400, detail="priceRange must look like 'min-max' or 'min'")


def cache_control_for(ids: Optional[List[int]], actress_id: Optional[int], query: Optional[str]) -> str:
    """Longer CDN caching for stable lookups, short for free-text search."""
    if ids or actress_id is not None:
        max_age = 3600
    elif query:
        max_age = 60
    else:
        max_age = 300
    return f"public, s-maxage={max_age}, stale-while-revalidate={max_age * 2}"


# ============================================================================
# Endpoints
# ============================================================================


@app.get("/")
async def root(locale: str = Query("ja", alias="hl")):
    """Root endpoint, with the WebSite JSON-LD for the storefront."""
    return {
        "name": "avcatalog API",
        "version": __version__,
        "status": "running",
        "jsonLd": seo.generate_website_schema(locale, site=SEO_SITE),
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
    }


@app.get("/api/products")
async def list_products(
    response: Response,
    limit: int = Query(96, ge=12, le=100, description="Number of results"),
    offset: int = Query(0, ge=0, description="Pagination offset"),
    ids: Optional[str] = Query(None, description="Comma-separated product ids"),
    provider: Optional[str] = Query(None),
    include_asp: Optional[str] = Query(None, alias="includeAsp"),
    exclude_asp: Optional[str] = Query(None, alias="excludeAsp"),
    actress_id: Optional[int] = Query(None, alias="actressId"),
    tags: Optional[str] = Query(None, description="Comma-separated tag ids or names"),
    category: Optional[str] = Query(None),
    query: Optional[str] = Query(None),
    has_video: bool = Query(False, alias="hasVideo"),
    is_new: bool = Query(False, alias="isNew"),
    is_featured: bool = Query(False, alias="isFeatured"),
    on_sale: bool = Query(False, alias="onSale"),
    price_range: Optional[str] = Query(None, alias="priceRange"),
    sort: Optional[str] = Query(None),
    db: Database = Depends(get_db),
    site_asps: Optional[List[str]] = Depends(get_site_asps),
):
    """List products with filtering, sorting and paging.

    Returns:
        {products, total, limit, offset}
    """
    id_list = parse_ids(ids)
    min_price, max_price = parse_price_range(price_range)

    if id_list and config.api.adjust_limit_offset_for_ids:
        limit, offset = len(id_list), 0

    q = queries.ProductQuery(
        ids=id_list,
        provider=provider,
        providers=_csv_list(include_asp) or None,
        exclude_providers=_csv_list(exclude_asp) or None,
        actress_id=actress_id,
        tags=_csv_list(tags) or None,
        category=category,
        has_video=has_video,
        is_new=is_new,
        is_featured=is_featured,
        on_sale=on_sale,
        min_price=min_price,
        max_price=max_price,
        query=query,
        site_asps=site_asps,
        sort_by=sort if sort in queries.SORT_OPTIONS else queries.DEFAULT_SORT,
        limit=limit,
        offset=offset,
    )

    try:
        products, total = queries.search_products(db, q)
    except Exception as e:
        logger.error(f"Error listing products: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch products")

    response.headers["Cache-Control"] = cache_control_for(id_list, actress_id, query)
    return {"products": products, "total": total, "limit": limit, "offset": offset}


@app.get("/api/products/search")
async def search_products(
    q: Optional[str] = Query(None, description="Search text"),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    limit: int = Query(20),
    offset: int = Query(0),
    tags: Optional[str] = Query(None),
    exclude_tags: Optional[str] = Query(None, alias="excludeTags"),
    has_video: bool = Query(False, alias="hasVideo"),
    has_image: bool = Query(False, alias="hasImage"),
    min_price: Optional[int] = Query(None, alias="minPrice"),
    max_price: Optional[int] = Query(None, alias="maxPrice"),
    site: Optional[str] = Query(None, description="Restrict to one provider"),
    db: Database = Depends(get_db),
    site_asps: Optional[List[str]] = Depends(get_site_asps),
):
    """Full-text product search; a database failure degrades to an empty result."""
    text = (q or "").strip()
    if not text:
        raise HTTPException(status_code=400, detail="Search query (q) is required")
    if len(text) > MAX_QUERY_LENGTH:
        raise HTTPException(
            status_code=400, detail=f"Search query is too long (max {MAX_QUERY_LENGTH} characters)"
        )

    product_query = queries.ProductQuery(
        query=text,
        provider=site,
        tags=_csv_list(tags) or None,
        exclude_tags=_csv_list(exclude_tags) or None,
        has_video=has_video,
        has_image=has_image,
        min_price=min_price,
        max_price=max_price,
        site_asps=site_asps,
        sort_by=sort_by if sort_by in queries.SORT_OPTIONS else queries.DEFAULT_SORT,
        limit=max(1, min(limit, 100)),
        offset=max(0, offset),
    )

    try:
        products, _ = queries.search_products(db, product_query)
    except Exception as e:
        logger.error(f"Error searching products for '{text}': {e}")
        return {"products": [], "count": 0, "query": text, "fallback": True}

    return {"products": products, "count": len(products), "query": text}


@app.get("/api/products/{product_id}")
async def get_product(
    product_id: str,
    locale: str = Query("ja", alias="hl"),
    db: Database = Depends(get_db),
    site_asps: Optional[List[str]] = Depends(get_site_asps),
):
    """Product detail by id, normalized id or product code, with SEO metadata."""
    try:
        product = queries.get_product_detail(db, product_id, site_asps=site_asps)
    except Exception as e:
        logger.error(f"Error getting product {product_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch product")

    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    product["seo"] = _product_seo(product, locale)
    return product


def _product_seo(product: dict, locale: str) -> dict:
    performer_names = [p["name"] for p in product["performers"]]
    genres = [t["name"] for t in product["tags"] if t["category"] == "genre"]
    makers = [t["name"] for t in product["tags"] if t["category"] == "maker"]
    path = f"/products/{product['id']}"

    description = seo.generate_optimized_description(
        product["title"],
        actress_name=performer_names[0] if performer_names else None,
        tags=genres,
        release_date=product["releaseDate"],
        product_id=product["productCode"],
        sale_price=product["salePrice"],
        regular_price=product["price"],
        discount=product["discountPercent"],
        rating=product["rating"],
        review_count=product["reviewCount"],
        duration=product["duration"],
        provider=product["providerLabel"],
        locale=locale,
    )

    json_ld = [
        seo.generate_product_schema(
            name=product["title"],
            description=description,
            image=product["thumbnailUrl"],
            url=path,
            price=product["price"],
            brand=makers[0] if makers else None,
            rating_value=product["rating"],
            review_count=product["reviewCount"],
            sale_price=product["salePrice"],
            sku=product["productCode"],
            site=SEO_SITE,
        ),
        seo.generate_breadcrumb_schema(
            [{"name": "Home", "url": "/"}, {"name": "Products", "url": "/products"}, {"name": product["title"], "url": path}],
            site=SEO_SITE,
        ),
    ]
    if product["sampleVideos"]:
        json_ld.append(
            seo.generate_video_object_schema(
                name=product["title"],
                description=description,
                thumbnail_url=product["thumbnailUrl"],
                url=product["sampleVideos"][0],
                duration=product["duration"],
                upload_date=product["releaseDate"],
            )
        )

    total = len(product["sampleImages"])
    return {
        "description": description,
        "jsonLd": json_ld,
        "imageAlt": seo.generate_product_alt_text(
            product["title"], performer_names, product["productCode"], locale=locale
        ),
        "sampleImageAlts": [
            seo.generate_sample_image_alt_text(
                product["title"],
                product_code=product["productCode"],
                performer_names=performer_names,
                index=i,
                total=total,
                locale=locale,
            )
            for i in range(1, total + 1)
        ],
    }


@app.get("/api/search/autocomplete")
async def search_autocomplete(
    q: Optional[str] = Query(None),
    db: Database = Depends(get_db),
    site_asps: Optional[List[str]] = Depends(get_site_asps),
):
    """Search-box suggestions across product ids, actresses, tags and titles."""
    text = (q or "").strip()
    if len(text) < AUTOCOMPLETE_MIN_LENGTH:
        return {"results": []}

    try:
        results = queries.autocomplete(db, text, site_asps=site_asps)
    except Exception as e:
        logger.error(f"Autocomplete failed for '{text}': {e}")
        raise HTTPException(status_code=500, detail="Autocomplete failed")

    return {"query": text, "results": results}


@app.get("/api/actresses")
async def list_actresses(
    query: Optional[str] = Query(None),
    sort: str = Query("productCount"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Database = Depends(get_db),
    site_asps: Optional[List[str]] = Depends(get_site_asps),
):
    """List performers with at least one visible product."""
    try:
        performers, total = queries.list_performers(
            db, query=query, sort=sort, limit=limit, offset=offset, site_asps=site_asps
        )
    except Exception as e:
        logger.error(f"Error listing actresses: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch actresses")

    return {"actresses": performers, "total": total, "limit": limit, "offset": offset}


@app.get("/api/actresses/{actress_id}")
async def get_actress(
    actress_id: int,
    locale: str = Query("ja", alias="hl"),
    db: Database = Depends(get_db),
    site_asps: Optional[List[str]] = Depends(get_site_asps),
):
    """Performer profile with SEO metadata."""
    try:
        performer = queries.get_performer_detail(db, actress_id, site_asps=site_asps)
    except Exception as e:
        logger.error(f"Error getting actress {actress_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch actress")

    if not performer:
        raise HTTPException(status_code=404, detail="Actress not found")

    latest = performer["latestProduct"]
    description = seo.generate_actress_description(
        performer["name"],
        work_count=performer["productCount"],
        top_genres=performer["topGenres"],
        latest_work=latest["title"] if latest else None,
        locale=locale,
    )
    path = f"/actress/{performer['id']}"
    performer["seo"] = {
        "description": description,
        "imageAlt": seo.generate_actress_alt_text(
            performer["name"],
            product_count=performer["productCount"],
            services=performer["services"],
            aliases=performer["aliases"],
            locale=locale,
        ),
        "jsonLd": [
            seo.generate_person_schema(
                name=performer["name"],
                description=description,
                image=performer["profileImageUrl"] or performer["thumbnailUrl"],
                url=path,
                work_count=performer["productCount"],
                debut_year=performer["debutYear"],
                aliases=performer["aliases"],
                site=SEO_SITE,
            ),
            seo.generate_breadcrumb_schema(
                [{"name": "Home", "url": "/"}, {"name": performer["name"], "url": path}],
                site=SEO_SITE,
            ),
        ],
    }
    return performer


@app.get("/api/tags")
async def list_tags(
    category: Optional[str] = Query(None, description="genre, maker, label, series or director"),
    limit: int = Query(100, ge=1, le=500),
    db: Database = Depends(get_db),
):
    try:
        return {"tags": queries.list_tags(db, category=category, limit=limit)}
    except Exception as e:
        logger.error(f"Error listing tags: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch tags")


@app.get("/api/rankings/actresses")
async def actress_ranking(
    days: int = Query(30, ge=1, le=365),
    limit: int = Query(20, ge=1, le=100),
    db: Database = Depends(get_db),
    site_asps: Optional[List[str]] = Depends(get_site_asps),
):
    """Performers ranked by releases in the last `days` days."""
    try:
        ranking = queries.performer_ranking(db, days=days, limit=limit, site_asps=site_asps)
    except Exception as e:
        logger.error(f"Error building actress ranking: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch ranking")

    json_ld = seo.generate_item_list_schema(
        [{"name": row["name"], "url": f"/actress/{row['id']}"} for row in ranking],
        list_name=f"Actress ranking ({days} days)",
        site=SEO_SITE,
    )
    return {"ranking": ranking, "days": days, "jsonLd": json_ld}


@app.get("/api/rankings/sales")
async def sales_ranking(
    limit: int = Query(20, ge=1, le=100),
    db: Database = Depends(get_db),
    site_asps: Optional[List[str]] = Depends(get_site_asps),
):
    """Active sales ranked by discount."""
    try:
        ranking = queries.sale_ranking(db, limit=limit, site_asps=site_asps)
    except Exception as e:
        logger.error(f"Error building sale ranking: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch ranking")
    return {"ranking": ranking}


@app.get("/api/news")
async def list_news(
    category: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Database = Depends(get_db),
):
    try:
        articles, total = db.list_news(category=category, limit=limit, offset=offset)
    except Exception as e:
        logger.error(f"Error listing news: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch news")

    return {
        "articles": [
            {
                "slug": a.slug,
                "category": a.category,
                "title": a.title,
                "excerpt": a.excerpt,
                "content": a.content,
                "publishedAt": a.published_at.isoformat() if a.published_at else None,
                "expiresAt": a.expires_at.isoformat() if a.expires_at else None,
            }
            for a in articles
        ],
        "total": total,
    }


@app.get("/api/stats")
async def get_stats(
    db: Database = Depends(get_db),
    site_asps: Optional[List[str]] = Depends(get_site_asps),
):
    """Catalog totals and per-ASP product counts."""
    try:
        return queries.asp_stats(db, site_asps=site_asps)
    except Exception as e:
        logger.error(f"Error getting stats: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch stats")


@app.get("/sitemap.xml")
async def sitemap_xml(
    db: Database = Depends(get_db),
    site_asps: Optional[List[str]] = Depends(get_site_asps),
):
    entries = build_sitemap_entries(db, config.site.site_url, site_asps=site_asps)
    return Response(content=render_sitemap(entries), media_type="application/xml")


@app.get("/sitemap-videos.xml")
async def video_sitemap_xml(
    db: Database = Depends(get_db),
    site_asps: Optional[List[str]] = Depends(get_site_asps),
):
    products = queries.video_sitemap_products(db, site_asps=site_asps)
    return Response(content=render_video_sitemap(products, config.site.site_url), media_type="application/xml")
