"""Repair jobs for derived product columns."""

from datetime import datetime
from typing import Optional

from loguru import logger

from ..storage.database import Database, pick_thumbnail, refresh_denormalized
from ..storage.models import Product, ProductSale, ProductSource


def backfill_thumbnails(db: Database, batch_size: int = 500) -> int:
    """Fill default_thumbnail_url where it is missing.

    Args:
        db: Database instance
        batch_size: Products loaded per query

    Returns:
        Number of products that received a thumbnail
    """
    updated = 0
    last_id = 0

    while True:
        with db.session() as session:
            products = (
                session.query(Product)
                .filter(Product.id > last_id, Product.default_thumbnail_url.is_(None))
                .order_by(Product.id)
                .limit(batch_size)
                .all()
            )
            if not products:
                break

            for product in products:
                thumbnail = pick_thumbnail(session, product.id)
                if thumbnail:
                    product.default_thumbnail_url = thumbnail
                    updated += 1
            last_id = products[-1].id

    logger.info(f"Thumbnail backfill: {updated} products updated")
    return updated


def recompute_denormalized(db: Database, batch_size: int = 500) -> int:
    """Recompute performer_count, has_video, has_active_sale and min_price for every product."""
    processed = 0
    last_id = 0

    while True:
        with db.session() as session:
            products = (
                session.query(Product)
                .filter(Product.id > last_id)
                .order_by(Product.id)
                .limit(batch_size)
                .all()
            )
            if not products:
                break

            for product in products:
                refresh_denormalized(session, product)
            processed += len(products)
            last_id = products[-1].id

    logger.info(f"Recomputed denormalized columns for {processed} products")
    return processed


def expire_sales(db: Database, now: Optional[datetime] = None) -> int:
    """Deactivate sales whose end_at has passed and refresh the affected products.

    Returns:
        Number of sales deactivated
    """
    now = now or datetime.utcnow()

    with db.session() as session:
        ended = (
            session.query(ProductSale)
            .filter(
                ProductSale.is_active.is_(True),
                ProductSale.end_at.isnot(None),
                ProductSale.end_at < now,
            )
            .all()
        )
        if not ended:
            return 0

        source_ids = {sale.product_source_id for sale in ended}
        for sale in ended:
            sale.is_active = False
            sale.updated_at = now

        product_ids = {
            row.product_id
            for row in session.query(ProductSource.product_id).filter(ProductSource.id.in_(source_ids))
        }
        for product in session.query(Product).filter(Product.id.in_(product_ids)):
            refresh_denormalized(session, product)

    logger.info(f"Expired {len(ended)} sales across {len(product_ids)} products")
    return len(ended)
