"""Repository pattern for database operations."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.core.errors import ConflictError, NotFoundError
from src.core.models import (
    ExportFilter,
    Product,
    ProductQuery,
    ProductStatus,
    QueueItem,
    QueueStatus,
)

from .models import ProductDB, ProductDemandDB, ShopifyQueueDB
from .schema import ProductRecord
from .session import session_scope

logger = logging.getLogger(__name__)

LIST_SORT_COLUMNS = {
    "title": ProductDB.title,
    "created_at": ProductDB.created_at,
    "updated_at": ProductDB.updated_at,
    "profit_margin": ProductDB.profit_margin,
    "amazon_price": ProductDB.amazon_price,
    "retail_price": ProductDB.retail_price,
    "rating": ProductDB.rating,
    "review_count": ProductDB.review_count,
}

EXPORT_SORT_COLUMNS = {
    **LIST_SORT_COLUMNS,
    "asin": ProductDB.asin,
    "demand_score": ProductDemandDB.demand_score,
    "current_bsr": ProductDemandDB.current_bsr,
}

_PRODUCT_COLUMNS = (
    "asin", "title", "description", "brand", "category", "image_url",
    "amazon_price", "cost", "retail_price", "compare_at_price",
    "amazon_display_price", "costco_display_price", "ebay_display_price",
    "sams_display_price", "walmart_display_price", "target_display_price",
    "profit_margin", "profit_percent", "rating", "review_count", "is_prime",
    "last_price_check", "shopify_product_id", "shopify_variant_id", "shopify_synced_at",
)


class Repository:
    """Data access repository for all database operations."""

    # ==================== Products ====================

    def create_product(self, product: Product) -> Product:
        """Insert a product; a duplicate ASIN raises ConflictError."""
        try:
            with session_scope() as session:
                db_product = ProductDB()
                self._apply_product(db_product, product)
                db_product.created_at = product.created_at
                session.add(db_product)
                session.flush()
                self._apply_demand(session, db_product, product)
                session.flush()
                product.id = db_product.id
        except IntegrityError as e:
            raise ConflictError("VALID_005", details=f"ASIN {product.asin} already exists") from e
        return product

    def save_product(self, product: Product) -> Product:
        """Insert or update a product and its demand row."""
        if product.id is None:
            return self.create_product(product)

        with session_scope() as session:
            db_product = session.get(ProductDB, product.id)
            if db_product is None:
                raise NotFoundError("PROD_004", details=f"Product {product.id} not found")
            self._apply_product(db_product, product)
            self._apply_demand(session, db_product, product)
            product.updated_at = datetime.now()
            db_product.updated_at = product.updated_at
        return product

    def get_product(self, product_id: int) -> Product | None:
        with session_scope() as session:
            db_product = session.get(ProductDB, product_id)
            if db_product:
                return self._db_to_product(db_product)
            return None

    def get_product_by_asin(self, asin: str) -> Product | None:
        with session_scope() as session:
            query = select(ProductDB).where(ProductDB.asin == asin.strip().upper())
            db_product = session.execute(query).unique().scalar_one_or_none()
            if db_product:
                return self._db_to_product(db_product)
            return None

    def list_products(
        self,
        query: ProductQuery,
        profit_threshold: Decimal = Decimal("30"),
        stale_days: int = 14,
    ) -> tuple[list[Product], int]:
        """Filtered, sorted page of products plus the total match count."""
        conditions = []

        if query.search:
            pattern = f"%{query.search}%"
            conditions.append(
                or_(
                    ProductDB.title.ilike(pattern),
                    ProductDB.asin.ilike(pattern),
                    ProductDB.description.ilike(pattern),
                )
            )
        if query.status and query.status != "all":
            conditions.append(ProductDB.status == query.status)
        if query.category:
            conditions.append(ProductDB.category == query.category)
        if query.ids:
            conditions.append(ProductDB.id.in_(query.ids))
        if query.min_price is not None:
            conditions.append(ProductDB.amazon_price >= query.min_price)
        if query.max_price is not None:
            conditions.append(ProductDB.amazon_price <= query.max_price)
        if query.min_margin is not None:
            conditions.append(ProductDB.profit_margin >= query.min_margin)
        if query.max_margin is not None:
            conditions.append(ProductDB.profit_margin <= query.max_margin)

        if query.profit_status == "profitable":
            conditions.append(ProductDB.profit_margin >= profit_threshold * 2)
        elif query.profit_status == "below_threshold":
            conditions.append(
                and_(
                    ProductDB.profit_margin >= profit_threshold,
                    ProductDB.profit_margin < profit_threshold * 2,
                )
            )
        elif query.profit_status == "unknown":
            conditions.append(
                or_(ProductDB.profit_margin.is_(None), ProductDB.profit_margin < profit_threshold)
            )

        if query.stale_only:
            cutoff = datetime.now() - timedelta(days=stale_days)
            conditions.append(
                or_(ProductDB.last_price_check.is_(None), ProductDB.last_price_check < cutoff)
            )
        if query.synced is True:
            conditions.append(ProductDB.shopify_product_id.is_not(None))
        elif query.synced is False:
            conditions.append(ProductDB.shopify_product_id.is_(None))

        sort_column = LIST_SORT_COLUMNS.get(query.sort_by, ProductDB.created_at)
        order = sort_column.asc() if query.sort_order == "asc" else sort_column.desc()

        with session_scope() as session:
            total = session.execute(
                select(func.count(ProductDB.id)).where(*conditions)
            ).scalar_one()
            stmt = (
                select(ProductDB)
                .where(*conditions)
                .order_by(order, ProductDB.id)
                .offset(query.offset)
                .limit(query.page_size)
            )
            rows = session.execute(stmt).unique().scalars().all()
            return [self._db_to_product(db) for db in rows], total

    def query_products(self, criteria: ExportFilter) -> list[Product]:
        """Products matching export criteria."""
        conditions = []

        if criteria.statuses:
            conditions.append(ProductDB.status.in_(criteria.statuses))
        if criteria.exclude_rejected:
            conditions.append(ProductDB.status != ProductStatus.REJECTED.value)
        if criteria.demand_tiers:
            conditions.append(ProductDemandDB.demand_tier.in_(criteria.demand_tiers))
        if criteria.categories:
            conditions.append(ProductDB.category.in_(criteria.categories))
        if criteria.stock_statuses:
            conditions.append(ProductDB.stock_status.in_(criteria.stock_statuses))
        if criteria.min_demand_score is not None:
            conditions.append(ProductDemandDB.demand_score >= criteria.min_demand_score)
        if criteria.max_demand_score is not None:
            conditions.append(ProductDemandDB.demand_score <= criteria.max_demand_score)
        if criteria.min_bsr is not None:
            conditions.append(ProductDemandDB.current_bsr >= criteria.min_bsr)
        if criteria.max_bsr is not None:
            conditions.append(ProductDemandDB.current_bsr <= criteria.max_bsr)
        if criteria.min_price is not None:
            conditions.append(ProductDB.retail_price >= criteria.min_price)
        if criteria.max_price is not None:
            conditions.append(ProductDB.retail_price <= criteria.max_price)
        if criteria.min_margin is not None:
            conditions.append(ProductDB.profit_margin >= criteria.min_margin)
        if criteria.is_prime is not None:
            conditions.append(ProductDB.is_prime == criteria.is_prime)
        if criteria.created_after is not None:
            conditions.append(ProductDB.created_at >= criteria.created_after)
        if criteria.created_before is not None:
            conditions.append(ProductDB.created_at <= criteria.created_before)
        if criteria.updated_after is not None:
            conditions.append(ProductDB.updated_at >= criteria.updated_after)
        if criteria.updated_before is not None:
            conditions.append(ProductDB.updated_at <= criteria.updated_before)
        if criteria.stale_before is not None:
            conditions.append(
                or_(
                    ProductDB.last_price_check.is_(None),
                    ProductDB.last_price_check < criteria.stale_before,
                )
            )

        sort_column = EXPORT_SORT_COLUMNS.get(criteria.sort_by, ProductDB.created_at)
        order = sort_column.asc() if criteria.sort_order == "asc" else sort_column.desc()

        stmt = (
            select(ProductDB)
            .outerjoin(ProductDemandDB, ProductDemandDB.product_id == ProductDB.id)
            .where(*conditions)
            .order_by(order, ProductDB.id)
        )
        if criteria.offset:
            stmt = stmt.offset(criteria.offset)
        if criteria.limit:
            stmt = stmt.limit(criteria.limit)

        with session_scope() as session:
            rows = session.execute(stmt).unique().scalars().all()
            return [self._db_to_product(db) for db in rows]

    def all_products(self) -> list[Product]:
        return self.query_products(ExportFilter())

    def update_status(self, product_ids: list[int], status: ProductStatus) -> list[int]:
        """Set status on the given products; returns the ids that existed."""
        with session_scope() as session:
            existing = list(
                session.execute(select(ProductDB.id).where(ProductDB.id.in_(product_ids))).scalars()
            )
            if existing:
                session.execute(
                    update(ProductDB)
                    .where(ProductDB.id.in_(existing))
                    .values(status=status.value, updated_at=datetime.now())
                )
            return existing

    def delete_products(self, product_ids: list[int]) -> list[int]:
        """Hard-delete products; demand and queue rows cascade."""
        with session_scope() as session:
            existing = list(
                session.execute(select(ProductDB.id).where(ProductDB.id.in_(product_ids))).scalars()
            )
            if existing:
                session.execute(
                    delete(ShopifyQueueDB).where(ShopifyQueueDB.product_id.in_(existing))
                )
                session.execute(
                    delete(ProductDemandDB).where(ProductDemandDB.product_id.in_(existing))
                )
                session.execute(delete(ProductDB).where(ProductDB.id.in_(existing)))
            logger.info(f"Deleted {len(existing)} products")
            return existing

    def count_by_status(self) -> dict[str, int]:
        with session_scope() as session:
            query = select(ProductDB.status, func.count(ProductDB.id)).group_by(ProductDB.status)
            return {status: count for status, count in session.execute(query).all()}

    def _apply_product(self, db: ProductDB, product: Product) -> None:
        for name in _PRODUCT_COLUMNS:
            setattr(db, name, getattr(product, name))
        db.asin = product.asin.strip().upper()
        db.features_json = json.dumps(product.features)
        db.stock_status = product.stock_status.value
        db.status = product.status.value

    def _apply_demand(self, session: Session, db_product: ProductDB, product: Product) -> None:
        has_demand = (
            product.current_bsr is not None
            or product.demand_score is not None
            or product.bsr_history
            or db_product.demand is not None
        )
        if not has_demand:
            return
        db_demand = db_product.demand
        if db_demand is None:
            db_demand = ProductDemandDB(product_id=db_product.id, asin=db_product.asin)
            session.add(db_demand)
            db_product.demand = db_demand
        db_demand.asin = db_product.asin
        db_demand.current_bsr = product.current_bsr
        db_demand.avg_bsr_30d = product.avg_bsr_30d
        db_demand.avg_bsr_90d = product.avg_bsr_90d
        db_demand.bsr_volatility = product.bsr_volatility
        db_demand.bsr_trend = product.bsr_trend
        db_demand.bsr_history_json = json.dumps(product.bsr_history)
        db_demand.price_history_json = json.dumps([str(p) for p in product.price_history])
        db_demand.demand_score = product.demand_score
        db_demand.demand_tier = product.demand_tier.value if product.demand_tier else None
        db_demand.estimated_monthly_sales = product.estimated_monthly_sales
        db_demand.last_checked = product.last_demand_check

    def _db_to_product(self, db: ProductDB) -> Product:
        return ProductRecord.from_db(db).to_product()

    # ==================== Shopify queue ====================

    def enqueue_sync(
        self,
        product_ids: list[int],
        operation: str = "create",
        priority: int = 5,
        max_retries: int = 3,
    ) -> list[QueueItem]:
        """Queue products for a Shopify push and mark them pending_sync."""
        with session_scope() as session:
            products = session.execute(
                select(ProductDB).where(ProductDB.id.in_(product_ids))
            ).unique().scalars().all()
            db_items = []
            for db_product in products:
                db_item = ShopifyQueueDB(
                    product_id=db_product.id,
                    asin=db_product.asin,
                    operation=operation,
                    status=QueueStatus.PENDING.value,
                    priority=priority,
                    max_retries=max_retries,
                )
                session.add(db_item)
                db_items.append(db_item)
                db_product.status = ProductStatus.PENDING_SYNC.value
            session.flush()
            return [self._db_to_queue_item(db) for db in db_items]

    def get_pending_queue_items(self, limit: int) -> list[QueueItem]:
        """Pending items, most urgent (lowest priority number) first."""
        with session_scope() as session:
            query = (
                select(ShopifyQueueDB)
                .where(ShopifyQueueDB.status == QueueStatus.PENDING.value)
                .order_by(ShopifyQueueDB.priority, ShopifyQueueDB.created_at, ShopifyQueueDB.id)
                .limit(limit)
            )
            return [self._db_to_queue_item(db) for db in session.execute(query).scalars().all()]

    def update_queue_item(self, item: QueueItem) -> None:
        with session_scope() as session:
            db_item = session.get(ShopifyQueueDB, item.id)
            if db_item is None:
                return
            db_item.status = item.status.value
            db_item.retry_count = item.retry_count
            db_item.last_error = item.last_error
            db_item.processed_at = item.processed_at

    def count_queue_by_status(self) -> dict[str, int]:
        with session_scope() as session:
            query = select(ShopifyQueueDB.status, func.count(ShopifyQueueDB.id)).group_by(
                ShopifyQueueDB.status
            )
            return {status: count for status, count in session.execute(query).all()}

    def _db_to_queue_item(self, db: ShopifyQueueDB) -> QueueItem:
        return QueueItem(
            id=db.id,
            product_id=db.product_id,
            asin=db.asin,
            operation=db.operation,
            status=QueueStatus.from_string(db.status),
            priority=db.priority,
            retry_count=db.retry_count,
            max_retries=db.max_retries,
            last_error=db.last_error or "",
            created_at=db.created_at,
            processed_at=db.processed_at,
        )
