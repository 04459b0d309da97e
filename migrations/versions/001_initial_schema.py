"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-01-05 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Products table
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("asin", sa.String(10), nullable=False),
        sa.Column("title", sa.Text(), default=""),
        sa.Column("description", sa.Text(), default=""),
        sa.Column("brand", sa.String(200), default=""),
        sa.Column("category", sa.String(200), default="Uncategorized"),
        sa.Column("image_url", sa.Text(), default=""),
        sa.Column("features_json", sa.Text(), default="[]"),
        sa.Column("amazon_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("cost", sa.Numeric(10, 2), nullable=True),
        sa.Column("retail_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("compare_at_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("amazon_display_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("costco_display_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("ebay_display_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("sams_display_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("walmart_display_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("target_display_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("profit_margin", sa.Numeric(6, 2), nullable=True),
        sa.Column("profit_percent", sa.Numeric(8, 2), nullable=True),
        sa.Column("rating", sa.Numeric(3, 1), nullable=True),
        sa.Column("review_count", sa.Integer(), nullable=True),
        sa.Column("is_prime", sa.Boolean(), default=False),
        sa.Column("stock_status", sa.String(20), default="unknown"),
        sa.Column("status", sa.String(20), default="pending"),
        sa.Column("last_price_check", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("shopify_product_id", sa.String(50), nullable=True),
        sa.Column("shopify_variant_id", sa.String(50), nullable=True),
        sa.Column("shopify_synced_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_products_asin", "products", ["asin"], unique=True)
    op.create_index("ix_products_category", "products", ["category"])
    op.create_index("ix_products_profit_margin", "products", ["profit_margin"])
    op.create_index("ix_products_status", "products", ["status"])
    op.create_index("ix_products_created_at", "products", ["created_at"])
    op.create_index("ix_products_shopify_product_id", "products", ["shopify_product_id"])
    op.create_index("ix_products_status_created", "products", ["status", "created_at"])

    # Demand signals, one row per product
    op.create_table(
        "product_demand",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("asin", sa.String(10), nullable=False),
        sa.Column("current_bsr", sa.Integer(), nullable=True),
        sa.Column("avg_bsr_30d", sa.Integer(), nullable=True),
        sa.Column("avg_bsr_90d", sa.Integer(), nullable=True),
        sa.Column("bsr_volatility", sa.Numeric(8, 2), nullable=True),
        sa.Column("bsr_trend", sa.String(20), default=""),
        sa.Column("bsr_history_json", sa.Text(), default="[]"),
        sa.Column("price_history_json", sa.Text(), default="[]"),
        sa.Column("demand_score", sa.Integer(), nullable=True),
        sa.Column("demand_tier", sa.String(20), nullable=True),
        sa.Column("estimated_monthly_sales", sa.Integer(), nullable=True),
        sa.Column("last_checked", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("product_id"),
    )
    op.create_index("ix_product_demand_asin", "product_demand", ["asin"])
    op.create_index("ix_product_demand_current_bsr", "product_demand", ["current_bsr"])
    op.create_index("ix_product_demand_demand_score", "product_demand", ["demand_score"])
    op.create_index("ix_product_demand_demand_tier", "product_demand", ["demand_tier"])

    # Shopify push queue
    op.create_table(
        "shopify_queue",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("asin", sa.String(10), nullable=False),
        sa.Column("operation", sa.String(20), default="create"),
        sa.Column("status", sa.String(20), default="pending"),
        sa.Column("priority", sa.Integer(), default=5),
        sa.Column("retry_count", sa.Integer(), default=0),
        sa.Column("max_retries", sa.Integer(), default=3),
        sa.Column("last_error", sa.Text(), default=""),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_shopify_queue_product_id", "shopify_queue", ["product_id"])
    op.create_index("ix_shopify_queue_status", "shopify_queue", ["status"])
    op.create_index("ix_shopify_queue_created_at", "shopify_queue", ["created_at"])
    op.create_index("ix_shopify_queue_status_priority", "shopify_queue", ["status", "priority"])


def downgrade() -> None:
    op.drop_table("shopify_queue")
    op.drop_table("product_demand")
    op.drop_table("products")
