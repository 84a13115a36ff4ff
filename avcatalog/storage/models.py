"""Database models for avcatalog."""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


# ============================================================================
# Pydantic Models (for data transfer)
# ============================================================================


class SaleInfo(BaseModel):
    """Sale observed on an ASP listing."""

    regular_price: int
    sale_price: int
    discount_percent: Optional[int] = None
    sale_type: Optional[str] = None
    sale_name: Optional[str] = None
    end_at: Optional[datetime] = None


class ParsedProduct(BaseModel):
    """Normalized product data from any ASP feed."""

    original_id: str  # Product ID on the ASP
    normalized_product_id: str  # e.g. "duga-abc-0001", "b10f-1234"
    title: str
    description: Optional[str] = None
    release_date: Optional[date] = None
    duration: Optional[int] = None  # minutes
    thumbnail_url: Optional[str] = None
    package_url: Optional[str] = None
    sample_images: List[str] = Field(default_factory=list)
    sample_videos: List[str] = Field(default_factory=list)
    affiliate_url: Optional[str] = None
    price: Optional[int] = None

    performers: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    maker: Optional[str] = None
    label: Optional[str] = None
    series: Optional[str] = None
    director: Optional[str] = None

    sale: Optional[SaleInfo] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None


# ============================================================================
# SQLAlchemy Models (for database)
# ============================================================================


class Product(Base):
    """Master product table, one row per title across ASPs."""

    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    normalized_product_id = Column(String(100), unique=True, index=True, nullable=False)
    maker_product_code = Column(String(100), index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text)
    release_date = Column(Date, index=True)
    duration = Column(Integer)  # minutes
    rating = Column(Float)
    review_count = Column(Integer)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, index=True)

    # Denormalized (kept current by save_parsed_product and the backfill jobs)
    default_thumbnail_url = Column(Text)
    performer_count = Column(Integer, default=0)
    has_video = Column(Boolean, default=False)
    has_active_sale = Column(Boolean, default=False, index=True)
    min_price = Column(Integer)

    # Relationships
    sources = relationship("ProductSource", back_populates="product", cascade="all, delete-orphan")
    images = relationship("ProductImage", back_populates="product", cascade="all, delete-orphan")
    videos = relationship("ProductVideo", back_populates="product", cascade="all, delete-orphan")
    performer_links = relationship(
        "ProductPerformer", back_populates="product", cascade="all, delete-orphan"
    )
    tag_links = relationship("ProductTag", back_populates="product", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Product(id={self.id}, normalized_id='{self.normalized_product_id}')>"


class ProductSource(Base):
    """One ASP's listing of a product."""

    __tablename__ = "product_sources"
    __table_args__ = (UniqueConstraint("product_id", "asp_name", name="uq_product_source_asp"),)

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), index=True, nullable=False)
    asp_name = Column(String(50), index=True, nullable=False)  # 'DUGA', 'SOKMIL', 'b10f', ...
    original_product_id = Column(String(100), index=True, nullable=False)
    affiliate_url = Column(Text, nullable=False, default="")
    price = Column(Integer)
    data_source = Column(String(10), nullable=False, default="API")  # 'API' or 'CSV'
    last_updated = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    product = relationship("Product", back_populates="sources")
    sales = relationship("ProductSale", back_populates="source", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<ProductSource(id={self.id}, product_id={self.product_id}, asp='{self.asp_name}')>"


class ProductSale(Base):
    """Sale price history per product source."""

    __tablename__ = "product_sales"

    id = Column(Integer, primary_key=True)
    product_source_id = Column(Integer, ForeignKey("product_sources.id"), index=True, nullable=False)
    regular_price = Column(Integer, nullable=False)
    sale_price = Column(Integer, nullable=False)
    discount_percent = Column(Integer)
    sale_name = Column(String(200))
    sale_type = Column(String(50))
    start_at = Column(DateTime, default=datetime.utcnow)
    end_at = Column(DateTime, index=True)
    is_active = Column(Boolean, default=True, index=True)
    fetched_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    source = relationship("ProductSource", back_populates="sales")

    def __repr__(self):
        return f"<ProductSale(id={self.id}, source_id={self.product_source_id}, active={self.is_active})>"


class ProductImage(Base):
    """Package and sample images."""

    __tablename__ = "product_images"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), index=True, nullable=False)
    image_url = Column(Text, nullable=False)
    image_type = Column(String(50), nullable=False)  # 'thumbnail', 'package', 'sample'
    display_order = Column(Integer, default=0)
    asp_name = Column(String(50))

    # Relationships
    product = relationship("Product", back_populates="images")

    def __repr__(self):
        return f"<ProductImage(id={self.id}, product_id={self.product_id}, type='{self.image_type}')>"


class ProductVideo(Base):
    """Sample movies."""

    __tablename__ = "product_videos"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), index=True, nullable=False)
    video_url = Column(Text, nullable=False)
    video_type = Column(String(50), nullable=False, default="sample")
    duration = Column(Integer)  # seconds
    asp_name = Column(String(50))
    display_order = Column(Integer, default=0)

    # Relationships
    product = relationship("Product", back_populates="videos")

    def __repr__(self):
        return f"<ProductVideo(id={self.id}, product_id={self.product_id}, type='{self.video_type}')>"


class Performer(Base):
    """Performers (actresses)."""

    __tablename__ = "performers"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), unique=True, index=True, nullable=False)
    name_kana = Column(String(200))
    profile_image_url = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    aliases = relationship("PerformerAlias", back_populates="performer", cascade="all, delete-orphan")
    product_links = relationship("ProductPerformer", back_populates="performer")

    def __repr__(self):
        return f"<Performer(id={self.id}, name='{self.name}')>"


class PerformerAlias(Base):
    """Alternative names of a performer."""

    __tablename__ = "performer_aliases"
    __table_args__ = (UniqueConstraint("performer_id", "alias_name", name="uq_performer_alias"),)

    id = Column(Integer, primary_key=True)
    performer_id = Column(Integer, ForeignKey("performers.id"), index=True, nullable=False)
    alias_name = Column(String(200), index=True, nullable=False)
    source = Column(String(100))
    is_primary = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    performer = relationship("Performer", back_populates="aliases")

    def __repr__(self):
        return f"<PerformerAlias(performer_id={self.performer_id}, alias='{self.alias_name}')>"


class ProductPerformer(Base):
    """Product to performer link."""

    __tablename__ = "product_performers"

    product_id = Column(Integer, ForeignKey("products.id"), primary_key=True)
    performer_id = Column(Integer, ForeignKey("performers.id"), primary_key=True, index=True)

    # Relationships
    product = relationship("Product", back_populates="performer_links")
    performer = relationship("Performer", back_populates="product_links")


class Tag(Base):
    """Genre, maker, label and series tags."""

    __tablename__ = "tags"
    __table_args__ = (UniqueConstraint("name", "category", name="uq_tag_name_category"),)

    id = Column(Integer, primary_key=True)
    name = Column(String(100), index=True, nullable=False)
    category = Column(String(50), index=True)  # 'genre', 'maker', 'label', 'series', 'director'
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    product_links = relationship("ProductTag", back_populates="tag")

    def __repr__(self):
        return f"<Tag(id={self.id}, name='{self.name}', category='{self.category}')>"


class ProductTag(Base):
    """Product to tag link."""

    __tablename__ = "product_tags"

    product_id = Column(Integer, ForeignKey("products.id"), primary_key=True)
    tag_id = Column(Integer, ForeignKey("tags.id"), primary_key=True, index=True)

    # Relationships
    product = relationship("Product", back_populates="tag_links")
    tag = relationship("Tag", back_populates="product_links")


class NewsArticle(Base):
    """Automatically generated news digests."""

    __tablename__ = "news_articles"

    id = Column(Integer, primary_key=True)
    slug = Column(String(200), unique=True, index=True, nullable=False)
    category = Column(String(50), index=True, nullable=False)  # 'new_releases', 'sales'
    title = Column(String(300), nullable=False)
    excerpt = Column(Text)
    content = Column(Text)
    source = Column(String(50), default="auto")
    status = Column(String(20), default="published")
    published_at = Column(DateTime, default=datetime.utcnow, index=True)
    expires_at = Column(DateTime)

    def __repr__(self):
        return f"<NewsArticle(id={self.id}, slug='{self.slug}')>"


class RawHtmlData(Base):
    """Raw HTML pages and JSON API payloads, one row per (source, product_id)."""

    __tablename__ = "raw_html_data"
    __table_args__ = (UniqueConstraint("source", "product_id", name="uq_raw_html_source_product"),)

    id = Column(Integer, primary_key=True)
    source = Column(String(50), index=True, nullable=False)
    product_id = Column(String(100), nullable=False)
    url = Column(Text, nullable=False, default="")
    html_content = Column(Text, nullable=False)
    hash = Column(String(64), nullable=False)
    crawled_at = Column(DateTime, default=datetime.utcnow, index=True)
    processed_at = Column(DateTime)

    def __repr__(self):
        return f"<RawHtmlData(id={self.id}, source='{self.source}', product_id='{self.product_id}')>"


class RawCsvData(Base):
    """Raw CSV rows, one row per (source, product_id)."""

    __tablename__ = "raw_csv_data"
    __table_args__ = (UniqueConstraint("source", "product_id", name="uq_raw_csv_source_product"),)

    id = Column(Integer, primary_key=True)
    source = Column(String(50), index=True, nullable=False)
    product_id = Column(String(100), nullable=False)
    raw_data = Column(JSON, nullable=False)
    hash = Column(String(64), nullable=False)
    downloaded_at = Column(DateTime, default=datetime.utcnow, index=True)
    processed_at = Column(DateTime)

    def __repr__(self):
        return f"<RawCsvData(id={self.id}, source='{self.source}', product_id='{self.product_id}')>"


class ProductRawDataLink(Base):
    """Which raw row a product was built from."""

    __tablename__ = "product_raw_data_links"
    __table_args__ = (
        UniqueConstraint("product_id", "raw_data_table", "raw_data_id", name="uq_product_raw_link"),
    )

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), index=True, nullable=False)
    raw_data_table = Column(String(20), nullable=False)  # 'raw_html_data' or 'raw_csv_data'
    raw_data_id = Column(Integer, nullable=False)
    content_hash = Column(String(64))
    created_at = Column(DateTime, default=datetime.utcnow)


class CrawlJob(Base):
    """Track crawler runs for monitoring and debugging."""

    __tablename__ = "crawl_jobs"

    id = Column(Integer, primary_key=True)
    crawler_name = Column(String, index=True, nullable=False)
    started_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime)
    status = Column(String)  # running, completed, failed

    stats = Column(JSON)
    error = Column(Text)
    duration_seconds = Column(Float)

    def __repr__(self):
        return f"<CrawlJob(id={self.id}, crawler='{self.crawler_name}', status='{self.status}')>"
