"""Demand refresh from Keepa into stored products."""

from __future__ import annotations

import logging
from datetime import datetime

from src.api.keepa import KEEPA_MAX_ASINS, KeepaClient
from src.db.repository import Repository

from .config import PricingRules
from .models import BulkOperationResult, Product
from .pricing import PricingEngine

logger = logging.getLogger(__name__)

# Product fields overwritten from every fresh Keepa read
DEMAND_FIELDS = (
    "current_bsr",
    "avg_bsr_30d",
    "avg_bsr_90d",
    "bsr_volatility",
    "bsr_trend",
    "bsr_history",
    "price_history",
    "demand_score",
    "demand_tier",
    "estimated_monthly_sales",
    "last_demand_check",
)

# Catalog fields only filled in where the stored product has none
CATALOG_FIELDS = ("title", "brand", "image_url", "rating", "review_count")


class DemandRefreshService:
    """Re-reads BSR, demand and Amazon price for stored products and reprices them."""

    def __init__(
        self,
        repository: Repository,
        client: KeepaClient,
        rules: PricingRules,
        engine: PricingEngine | None = None,
    ) -> None:
        self.repository = repository
        self.client = client
        self.rules = rules
        self.engine = engine or PricingEngine(rules)

    def refresh(self, product_ids: list[int], now: datetime | None = None) -> BulkOperationResult:
        result = BulkOperationResult(operation="refresh_demand")
        now = now or datetime.now()

        products: dict[int, Product] = {}
        for product_id in product_ids:
            product = self.repository.get_product(product_id)
            if product is not None:
                products[product_id] = product

        fresh, errors = self._fetch(list(dict.fromkeys(p.asin for p in products.values())))

        for product_id in product_ids:
            product = products.get(product_id)
            if product is None:
                result.record_failure(product_id, "Product not found")
            elif product.asin in errors:
                result.record_failure(product_id, errors[product.asin])
            elif product.asin not in fresh:
                result.record_failure(product_id, f"No Keepa data for {product.asin}")
            else:
                self.apply(product, fresh[product.asin], now=now)
                self.repository.save_product(product)
                result.record_success(product_id)

        logger.info(
            f"Demand refresh finished: {result.successful} refreshed, {result.failed} failed"
        )
        return result

    def _fetch(self, asins: list[str]) -> tuple[dict[str, Product], dict[str, str]]:
        """Keepa products by ASIN, plus an error per ASIN whose request failed."""
        fresh: dict[str, Product] = {}
        errors: dict[str, str] = {}
        for start in range(0, len(asins), KEEPA_MAX_ASINS):
            chunk = asins[start:start + KEEPA_MAX_ASINS]
            parsed, response = self.client.fetch_and_parse(chunk)
            if not response.success:
                error = "KEEPA_004" if response.error_message == "Rate limited" else response.error_message
                logger.warning(f"Keepa refresh of {len(chunk)} ASIN(s) failed: {response.error_message}")
                errors.update({asin: error for asin in chunk})
                continue
            fresh.update({p.asin: p for p in parsed})
        return fresh, errors

    def apply(self, product: Product, fresh: Product, now: datetime | None = None) -> Product:
        """Copy demand data from a Keepa read onto a stored product."""
        now = now or datetime.now()
        for name in DEMAND_FIELDS:
            setattr(product, name, getattr(fresh, name))
        product.last_demand_check = now
        for name in CATALOG_FIELDS:
            if not getattr(product, name) and getattr(fresh, name):
                setattr(product, name, getattr(fresh, name))

        product.stock_status = fresh.stock_status
        if fresh.amazon_price is not None and fresh.amazon_price > 0:
            if fresh.amazon_price != product.amazon_price:
                product.amazon_price = fresh.amazon_price
                product.retail_price = None
            self.engine.price_product(product, now=now)
        return product
