"""Database operations and management"""

import hashlib
import json
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from loguru import logger
from sqlalchemy import create_engine, func
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..catalog.parsing import is_valid_image_url
from ..catalog.product_ids import extract_maker_code
from ..errors import DatabaseError
from .models import (
    Base,
    CrawlJob,
    NewsArticle,
    ParsedProduct,
    Performer,
    PerformerAlias,
    Product,
    ProductImage,
    ProductPerformer,
    ProductRawDataLink,
    ProductSale,
    ProductSource,
    ProductTag,
    ProductVideo,
    RawCsvData,
    RawHtmlData,
    SaleInfo,
    Tag,
)

RAW_TABLES = {"html": RawHtmlData, "csv": RawCsvData}


@dataclass
class RawUpsertResult:
    """Outcome of staging a raw payload."""

    id: int
    is_new: bool
    should_skip: bool
    table: str = "html"
    hash: str = ""


@dataclass
class SaveResult:
    """Outcome of save_parsed_product."""

    product_id: int
    is_new: bool
    sale_saved: bool = False


def refresh_denormalized(session: Session, product: Product):
    """Recompute the cached listing columns of a product from its child rows."""
    session.flush()

    product.performer_count = (
        session.query(func.count(ProductPerformer.performer_id))
        .filter(ProductPerformer.product_id == product.id)
        .scalar()
        or 0
    )
    product.has_video = (
        session.query(ProductVideo.id).filter(ProductVideo.product_id == product.id).first()
        is not None
    )

    sources = session.query(ProductSource).filter(ProductSource.product_id == product.id).all()
    prices = []
    has_active_sale = False
    for source in sources:
        active = (
            session.query(ProductSale)
            .filter(ProductSale.product_source_id == source.id, ProductSale.is_active.is_(True))
            .order_by(ProductSale.sale_price)
            .first()
        )
        if active:
            has_active_sale = True
            prices.append(active.sale_price)
        elif source.price:
            prices.append(source.price)
    product.has_active_sale = has_active_sale
    product.min_price = min(prices) if prices else None

    product.default_thumbnail_url = pick_thumbnail(session, product.id)


def pick_thumbnail(session: Session, product_id: int) -> Optional[str]:
    """Package image, else thumbnail, else the first sample image."""
    for image_type in ("package", "thumbnail", "sample"):
        image = (
            session.query(ProductImage)
            .filter(ProductImage.product_id == product_id, ProductImage.image_type == image_type)
            .order_by(ProductImage.display_order, ProductImage.id)
            .first()
        )
        if image:
            return image.image_url
    return None


class Database:
    """Database management class"""

    def __init__(self, db_url: str = "sqlite:///data/db/catalog.db", echo: bool = False):
        self.db_url = db_url
        engine_kwargs: Dict[str, Any] = {"echo": echo}
        if db_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in db_url or db_url == "sqlite://":
                engine_kwargs["poolclass"] = StaticPool
        self.engine = create_engine(db_url, **engine_kwargs)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)
        logger.info(f"Database initialized: {db_url}")

    @contextmanager
    def session(self):
        """Context manager for database sessions"""
        session = self.Session()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Raw staging
    # ------------------------------------------------------------------

    @staticmethod
    def calculate_hash(content: Union[str, bytes]) -> str:
        """SHA-256 hex digest of a payload."""
        if isinstance(content, str):
            content = content.encode("utf-8")
        return hashlib.sha256(content).hexdigest()

    def upsert_raw_html(
        self, source: str, product_id: str, content: str, url: str = ""
    ) -> RawUpsertResult:
        """Stage an HTML page or JSON payload.

        Unchanged, already processed content is flagged should_skip. Changed
        content replaces the stored payload and clears processed_at.
        """
        content_hash = self.calculate_hash(content)

        with self.session() as session:
            existing = (
                session.query(RawHtmlData)
                .filter(RawHtmlData.source == source, RawHtmlData.product_id == product_id)
                .first()
            )

            if existing:
                if existing.hash == content_hash:
                    return RawUpsertResult(
                        id=existing.id,
                        is_new=False,
                        should_skip=existing.processed_at is not None,
                        table="html",
                        hash=content_hash,
                    )

                existing.html_content = content
                existing.url = url or existing.url
                existing.hash = content_hash
                existing.crawled_at = datetime.utcnow()
                existing.processed_at = None
                return RawUpsertResult(existing.id, False, False, "html", content_hash)

            row = RawHtmlData(
                source=source, product_id=product_id, url=url or "", html_content=content, hash=content_hash
            )
            session.add(row)
            session.flush()
            return RawUpsertResult(row.id, True, False, "html", content_hash)

    def upsert_raw_csv(self, source: str, product_id: str, raw_data: Dict[str, Any]) -> RawUpsertResult:
        """Stage one CSV row (stored as JSON), same rules as upsert_raw_html."""
        content_hash = self.calculate_hash(json.dumps(raw_data, sort_keys=True, ensure_ascii=False))

        with self.session() as session:
            existing = (
                session.query(RawCsvData)
                .filter(RawCsvData.source == source, RawCsvData.product_id == product_id)
                .first()
            )

            if existing:
                if existing.hash == content_hash:
                    return RawUpsertResult(
                        id=existing.id,
                        is_new=False,
                        should_skip=existing.processed_at is not None,
                        table="csv",
                        hash=content_hash,
                    )

                existing.raw_data = raw_data
                existing.hash = content_hash
                existing.downloaded_at = datetime.utcnow()
                existing.processed_at = None
                return RawUpsertResult(existing.id, False, False, "csv", content_hash)

            row = RawCsvData(source=source, product_id=product_id, raw_data=raw_data, hash=content_hash)
            session.add(row)
            session.flush()
            return RawUpsertResult(row.id, True, False, "csv", content_hash)

    def get_latest_raw_hash(self, source: str) -> Optional[Tuple[str, bool]]:
        """Newest staged CSV hash for a source and whether it was processed."""
        with self.session() as session:
            row = (
                session.query(RawCsvData)
                .filter(RawCsvData.source == source)
                .order_by(RawCsvData.downloaded_at.desc(), RawCsvData.id.desc())
                .first()
            )
            if row is None:
                return None
            return row.hash, row.processed_at is not None

    def mark_raw_processed(self, table: str, raw_id: int):
        """Set processed_at on a staged row."""
        model = RAW_TABLES[table]
        with self.session() as session:
            row = session.query(model).filter(model.id == raw_id).first()
            if row:
                row.processed_at = datetime.utcnow()

    def get_unprocessed_raw(self, table: str, source: Optional[str] = None, limit: int = 100) -> list:
        """Staged rows not yet turned into products, oldest first."""
        model = RAW_TABLES[table]
        with self.session() as session:
            query = session.query(model).filter(model.processed_at.is_(None))
            if source:
                query = query.filter(model.source == source)
            rows = query.order_by(model.id).limit(limit).all()
            session.expunge_all()
            return rows

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def save_parsed_product(
        self,
        asp_name: str,
        parsed: ParsedProduct,
        raw: Optional[RawUpsertResult] = None,
        data_source: str = "API",
    ) -> SaveResult:
        """Insert or update a product and everything hanging off it.

        Runs in a single transaction:
        1. Upsert the product on normalized_product_id
        2. Upsert this ASP's source row
        3. Replace this ASP's images and videos
        4. Link performers (creating them and their primary alias)
        5. Link genre, maker, label, series and director tags
        6. Record the sale, deactivating superseded ones
        7. Recompute denormalized columns
        8. Link the raw row and mark it processed

        Raises:
            DatabaseError: if any step fails; nothing is written
        """
        try:
            with self.session() as session:
                product, is_new = self._upsert_product(session, parsed)
                source = self._upsert_source(session, product, asp_name, parsed, data_source)
                self._replace_media(session, product, asp_name, parsed)
                self._link_performers(session, product, asp_name, parsed.performers)
                self._link_tags(session, product, parsed)
                sale_saved = self._save_sale(session, source, parsed.sale)
                refresh_denormalized(session, product)
                if raw is not None:
                    self._link_raw(session, product, raw)

                logger.debug(
                    f"Saved product {parsed.normalized_product_id} (ID: {product.id}, new={is_new})"
                )
                return SaveResult(product_id=product.id, is_new=is_new, sale_saved=sale_saved)
        except DatabaseError:
            raise
        except Exception as e:
            raise DatabaseError(
                f"Failed to save product {parsed.normalized_product_id}", original_error=e
            ) from e

    def _upsert_product(self, session: Session, parsed: ParsedProduct) -> Tuple[Product, bool]:
        product = (
            session.query(Product)
            .filter(Product.normalized_product_id == parsed.normalized_product_id)
            .first()
        )
        is_new = product is None
        if is_new:
            product = Product(normalized_product_id=parsed.normalized_product_id, title=parsed.title)
            session.add(product)

        product.title = parsed.title
        if parsed.description:
            product.description = parsed.description
        if parsed.release_date:
            product.release_date = parsed.release_date
        if parsed.duration:
            product.duration = parsed.duration
        if parsed.rating is not None:
            product.rating = parsed.rating
            product.review_count = parsed.review_count
        maker_code = extract_maker_code(parsed.original_id)
        if maker_code:
            product.maker_product_code = maker_code
        product.updated_at = datetime.utcnow()

        session.flush()
        return product, is_new

    def _upsert_source(
        self,
        session: Session,
        product: Product,
        asp_name: str,
        parsed: ParsedProduct,
        data_source: str,
    ) -> ProductSource:
        source = (
            session.query(ProductSource)
            .filter(ProductSource.product_id == product.id, ProductSource.asp_name == asp_name)
            .first()
        )
        if source is None:
            source = ProductSource(product_id=product.id, asp_name=asp_name)
            session.add(source)

        source.original_product_id = parsed.original_id
        source.affiliate_url = parsed.affiliate_url or source.affiliate_url or ""
        source.price = parsed.price
        source.data_source = data_source
        source.last_updated = datetime.utcnow()
        session.flush()
        return source

    def _replace_media(self, session: Session, product: Product, asp_name: str, parsed: ParsedProduct):
        session.query(ProductImage).filter(
            ProductImage.product_id == product.id, ProductImage.asp_name == asp_name
        ).delete(synchronize_session=False)
        session.query(ProductVideo).filter(
            ProductVideo.product_id == product.id, ProductVideo.asp_name == asp_name
        ).delete(synchronize_session=False)

        seen = set()
        images = []
        if parsed.package_url:
            images.append((parsed.package_url, "package"))
        if parsed.thumbnail_url:
            images.append((parsed.thumbnail_url, "thumbnail"))
        images.extend((url, "sample") for url in parsed.sample_images)

        order = 0
        for url, image_type in images:
            if url in seen or not is_valid_image_url(url):
                continue
            seen.add(url)
            session.add(
                ProductImage(
                    product_id=product.id,
                    image_url=url,
                    image_type=image_type,
                    display_order=order,
                    asp_name=asp_name,
                )
            )
            order += 1

        for order, url in enumerate(dict.fromkeys(parsed.sample_videos)):
            session.add(
                ProductVideo(
                    product_id=product.id,
                    video_url=url,
                    video_type="sample",
                    asp_name=asp_name,
                    display_order=order,
                )
            )

    def _get_or_create_performer(self, session: Session, name: str, asp_name: str) -> Performer:
        performer = session.query(Performer).filter(Performer.name == name).first()
        if performer:
            return performer

        alias = session.query(PerformerAlias).filter(PerformerAlias.alias_name == name).first()
        if alias:
            return alias.performer

        performer = Performer(name=name)
        session.add(performer)
        session.flush()
        session.add(
            PerformerAlias(performer_id=performer.id, alias_name=name, source=asp_name, is_primary=True)
        )
        return performer

    def _link_performers(self, session: Session, product: Product, asp_name: str, names: Iterable[str]):
        for name in dict.fromkeys(n.strip() for n in names if n and n.strip()):
            performer = self._get_or_create_performer(session, name, asp_name)
            exists = (
                session.query(ProductPerformer)
                .filter(
                    ProductPerformer.product_id == product.id,
                    ProductPerformer.performer_id == performer.id,
                )
                .first()
            )
            if not exists:
                session.add(ProductPerformer(product_id=product.id, performer_id=performer.id))
                session.flush()

    def _link_tags(self, session: Session, product: Product, parsed: ParsedProduct):
        pairs: List[Tuple[str, str]] = [(name, "genre") for name in parsed.categories]
        for category in ("maker", "label", "series", "director"):
            value = getattr(parsed, category)
            if value:
                pairs.append((value, category))

        for name, category in dict.fromkeys((n.strip(), c) for n, c in pairs if n and n.strip()):
            tag = session.query(Tag).filter(Tag.name == name, Tag.category == category).first()
            if tag is None:
                tag = Tag(name=name, category=category)
                session.add(tag)
                session.flush()
            exists = (
                session.query(ProductTag)
                .filter(ProductTag.product_id == product.id, ProductTag.tag_id == tag.id)
                .first()
            )
            if not exists:
                session.add(ProductTag(product_id=product.id, tag_id=tag.id))
                session.flush()

    def _save_sale(self, session: Session, source: ProductSource, sale: Optional[SaleInfo]) -> bool:
        active = (
            session.query(ProductSale)
            .filter(ProductSale.product_source_id == source.id, ProductSale.is_active.is_(True))
            .all()
        )

        if sale is None or sale.sale_price >= sale.regular_price:
            for row in active:
                row.is_active = False
            return False

        for row in active:
            if row.sale_price == sale.sale_price:
                row.fetched_at = datetime.utcnow()
                if sale.end_at:
                    row.end_at = sale.end_at
                return True
            row.is_active = False

        discount = sale.discount_percent or round((1 - sale.sale_price / sale.regular_price) * 100)
        session.add(
            ProductSale(
                product_source_id=source.id,
                regular_price=sale.regular_price,
                sale_price=sale.sale_price,
                discount_percent=discount,
                sale_name=sale.sale_name,
                sale_type=sale.sale_type,
                end_at=sale.end_at,
                is_active=True,
            )
        )
        return True

    def _link_raw(self, session: Session, product: Product, raw: RawUpsertResult):
        table_name = RAW_TABLES[raw.table].__tablename__
        link = (
            session.query(ProductRawDataLink)
            .filter(
                ProductRawDataLink.product_id == product.id,
                ProductRawDataLink.raw_data_table == table_name,
                ProductRawDataLink.raw_data_id == raw.id,
            )
            .first()
        )
        if link is None:
            session.add(
                ProductRawDataLink(
                    product_id=product.id,
                    raw_data_table=table_name,
                    raw_data_id=raw.id,
                    content_hash=raw.hash,
                )
            )
        else:
            link.content_hash = raw.hash

        model = RAW_TABLES[raw.table]
        row = session.query(model).filter(model.id == raw.id).first()
        if row:
            row.processed_at = datetime.utcnow()

    def count_products(self) -> int:
        """Count total products"""
        with self.session() as session:
            return session.query(Product).count()

    # ------------------------------------------------------------------
    # Crawl jobs
    # ------------------------------------------------------------------

    def start_crawl_job(self, crawler_name: str) -> int:
        """Record the start of a crawler run"""
        with self.session() as session:
            job = CrawlJob(crawler_name=crawler_name, status="running")
            session.add(job)
            session.flush()
            return job.id

    def finish_crawl_job(
        self,
        job_id: int,
        stats: Optional[Dict[str, Any]] = None,
        status: str = "completed",
        error: Optional[str] = None,
    ):
        """Record a crawler run completion"""
        with self.session() as session:
            job = session.query(CrawlJob).filter(CrawlJob.id == job_id).first()
            if job is None:
                return
            job.completed_at = datetime.utcnow()
            job.status = status
            job.stats = stats
            job.error = error
            if job.started_at:
                job.duration_seconds = (job.completed_at - job.started_at).total_seconds()

    # ------------------------------------------------------------------
    # News
    # ------------------------------------------------------------------

    def save_news_article(
        self,
        slug: str,
        category: str,
        title: str,
        excerpt: Optional[str] = None,
        content: Optional[str] = None,
        published_at: Optional[datetime] = None,
        expires_at: Optional[datetime] = None,
    ) -> bool:
        """Insert a news article; returns False when the slug already exists."""
        with self.session() as session:
            if session.query(NewsArticle.id).filter(NewsArticle.slug == slug).first():
                return False
            session.add(
                NewsArticle(
                    slug=slug,
                    category=category,
                    title=title,
                    excerpt=excerpt,
                    content=content,
                    published_at=published_at or datetime.utcnow(),
                    expires_at=expires_at,
                )
            )
            return True

    def list_news(
        self,
        category: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
        now: Optional[datetime] = None,
    ) -> Tuple[List[NewsArticle], int]:
        """Published, unexpired articles, newest first, with the total count"""
        now = now or datetime.utcnow()
        with self.session() as session:
            query = session.query(NewsArticle).filter(
                NewsArticle.status == "published",
                (NewsArticle.expires_at.is_(None)) | (NewsArticle.expires_at > now),
            )
            if category:
                query = query.filter(NewsArticle.category == category)

            total = query.count()
            articles = (
                query.order_by(NewsArticle.published_at.desc(), NewsArticle.id.desc())
                .limit(limit)
                .offset(offset)
                .all()
            )
            session.expunge_all()
            return articles, total
