"""Daily news digests: new releases and sales."""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy import func

from ..catalog.registry import get_asp_display_name
from ..storage.database import Database
from ..storage.models import Product, ProductSale, ProductSource

DIGEST_WINDOW = timedelta(hours=24)
TOP_ITEMS = 5


def news_slug(category: str, now: datetime) -> str:
    """One article per category per day: new_releases-20250101"""
    return f"{category}-{now:%Y%m%d}"


def build_new_releases_digest(db: Database, now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
    """Digest of products added in the last 24 hours, or None when there are none."""
    now = now or datetime.utcnow()
    since = now - DIGEST_WINDOW

    with db.session() as session:
        total = session.query(func.count(Product.id)).filter(Product.created_at >= since).scalar() or 0
        if total == 0:
            return None

        per_asp = (
            session.query(ProductSource.asp_name, func.count(ProductSource.id))
            .join(Product, Product.id == ProductSource.product_id)
            .filter(Product.created_at >= since)
            .group_by(ProductSource.asp_name)
            .order_by(func.count(ProductSource.id).desc())
            .all()
        )
        top = (
            session.query(Product.title, Product.normalized_product_id)
            .filter(Product.created_at >= since)
            .order_by(Product.created_at.desc(), Product.id.desc())
            .limit(TOP_ITEMS)
            .all()
        )

    breakdown = "、".join(f"{get_asp_display_name(asp)} {count}件" for asp, count in per_asp)
    lines = [f"直近24時間で{total}作品が追加されました。", ""]
    if breakdown:
        lines += [f"配信サイト別: {breakdown}", ""]
    lines.append("注目の新着:")
    lines += [f"- {row.title} ({row.normalized_product_id})" for row in top]

    return {
        "category": "new_releases",
        "title": f"{now.month}月{now.day}日の新着作品まとめ（{total}作品）",
        "excerpt": f"直近24時間で{total}作品が追加されました。" + (f"（{breakdown}）" if breakdown else ""),
        "content": "\n".join(lines),
        "expires_at": None,
    }


def build_sales_digest(db: Database, now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
    """Digest of sales that started in the last 24 hours and are still running.

    The article expires when the earliest of those sales ends.
    """
    now = now or datetime.utcnow()
    since = now - DIGEST_WINDOW

    with db.session() as session:
        active = (
            session.query(ProductSale, Product.title)
            .join(ProductSource, ProductSource.id == ProductSale.product_source_id)
            .join(Product, Product.id == ProductSource.product_id)
            .filter(
                ProductSale.is_active.is_(True),
                ProductSale.start_at >= since,
                (ProductSale.end_at.is_(None)) | (ProductSale.end_at > now),
            )
            .order_by(ProductSale.discount_percent.desc(), ProductSale.id)
            .all()
        )
        if not active:
            return None

        sale_count = len(active)
        max_discount = max((sale.discount_percent or 0) for sale, _ in active)
        end_dates = [sale.end_at for sale, _ in active if sale.end_at]
        earliest_end = min(end_dates) if end_dates else None
        top = [(title, sale.sale_price, sale.discount_percent) for sale, title in active[:TOP_ITEMS]]

    lines = [f"{sale_count}作品のセールが始まりました。最大{max_discount}%OFF。", ""]
    if earliest_end:
        lines += [f"最短終了: {earliest_end:%Y-%m-%d %H:%M}", ""]
    lines.append("値下げ率の大きい作品:")
    lines += [f"- {title}: ¥{price:,} ({discount or 0}%OFF)" for title, price, discount in top]

    return {
        "category": "sales",
        "title": f"{now.month}月{now.day}日のセール速報（最大{max_discount}%OFF）",
        "excerpt": f"{sale_count}作品が値下げ中です。",
        "content": "\n".join(lines),
        "expires_at": earliest_end,
    }


def generate_news(db: Database, now: Optional[datetime] = None) -> Dict[str, bool]:
    """Publish today's digests; an existing slug for the day is left alone.

    Returns:
        Category -> whether a new article was created
    """
    now = now or datetime.utcnow()
    created: Dict[str, bool] = {}

    for category, builder in (
        ("new_releases", build_new_releases_digest),
        ("sales", build_sales_digest),
    ):
        try:
            digest = builder(db, now)
            if digest is None:
                created[category] = False
                continue
            created[category] = db.save_news_article(
                slug=news_slug(category, now),
                category=category,
                title=digest["title"],
                excerpt=digest["excerpt"],
                content=digest["content"],
                published_at=now,
                expires_at=digest["expires_at"],
            )
        except Exception as e:
            created[category] = False
            logger.error(f"News generation failed for {category}: {e}")

    logger.info(f"News generation finished: {created}")
    return created
