"""SQLAlchemy database models for the dropship dashboard."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class ProductDB(Base):
    """Catalog product sourced from Amazon."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    asin: Mapped[str] = mapped_column(String(10), nullable=False, unique=True, index=True)
    title: Mapped[str] = mapped_column(Text, default="")
    description: Mapped[str] = mapped_column(Text, default="")
    brand: Mapped[str] = mapped_column(String(200), default="")
    category: Mapped[str] = mapped_column(String(200), default="Uncategorized", index=True)
    image_url: Mapped[str] = mapped_column(Text, default="")
    features_json: Mapped[str] = mapped_column(Text, default="[]")

    # Pricing
    amazon_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    cost: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    retail_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    compare_at_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    amazon_display_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    costco_display_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    ebay_display_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    sams_display_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    walmart_display_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    target_display_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    profit_margin: Mapped[Decimal | None] = mapped_column(Numeric(6, 2), nullable=True, index=True)
    profit_percent: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)

    # Listing signals
    rating: Mapped[Decimal | None] = mapped_column(Numeric(3, 1), nullable=True)
    review_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_prime: Mapped[bool] = mapped_column(Boolean, default=False)
    stock_status: Mapped[str] = mapped_column(String(20), default="unknown")

    # Lifecycle
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    last_price_check: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)

    # Shopify linkage
    shopify_product_id: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    shopify_variant_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    shopify_synced_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Relationships
    demand: Mapped[ProductDemandDB | None] = relationship(
        "ProductDemandDB",
        back_populates="product",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="joined",
    )
    queue_items: Mapped[list[ShopifyQueueDB]] = relationship(
        "ShopifyQueueDB", back_populates="product", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("ix_products_status_created", "status", "created_at"),)


class ProductDemandDB(Base):
    """Demand signals for a product, one row per product."""

    __tablename__ = "product_demand"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    asin: Mapped[str] = mapped_column(String(10), nullable=False, index=True)

    current_bsr: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    avg_bsr_30d: Mapped[int | None] = mapped_column(Integer, nullable=True)
    avg_bsr_90d: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bsr_volatility: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)
    bsr_trend: Mapped[str] = mapped_column(String(20), default="")
    bsr_history_json: Mapped[str] = mapped_column(Text, default="[]")
    price_history_json: Mapped[str] = mapped_column(Text, default="[]")

    demand_score: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    demand_tier: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True)
    estimated_monthly_sales: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_checked: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)

    # Relationships
    product: Mapped[ProductDB] = relationship("ProductDB", back_populates="demand")


class ShopifyQueueDB(Base):
    """Pending Shopify push for a product."""

    __tablename__ = "shopify_queue"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    asin: Mapped[str] = mapped_column(String(10), nullable=False)
    operation: Mapped[str] = mapped_column(String(20), default="create")
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    priority: Mapped[int] = mapped_column(Integer, default=5)
    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    max_retries: Mapped[int] = mapped_column(Integer, default=3)
    last_error: Mapped[str] = mapped_column(Text, default="")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, index=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Relationships
    product: Mapped[ProductDB] = relationship("ProductDB", back_populates="queue_items")

    __table_args__ = (Index("ix_shopify_queue_status_priority", "status", "priority"),)
